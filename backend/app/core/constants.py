QUERY_TYPES = ("property", "service", "project", "general")

ACTIONS = ("rent", "sale", "book", "info", "search")

ENTITY_KEYS = (
    "location",
    "bedrooms",
    "budget",
    "listing_type",
    "service_category",
    "property_type",
)

LISTING_TYPES = ("rent", "sale")

PROPERTY_TYPES = ("residential", "commercial")

# Keyword bags for the rule-based intent scan
PROPERTY_KEYWORDS = [
    "rent", "rental", "sale", "buy", "property", "house",
    "apartment", "flat", "bhk", "bedroom",
]

SERVICE_KEYWORDS = [
    "service", "book", "cleaning", "plumbing", "electrical",
    "maintenance", "repair", "install",
]

PROJECT_KEYWORDS = [
    "project", "construction", "build", "contractor", "renovation",
]

# Alphabetical so the first hit is deterministic
SERVICE_CATEGORIES = [
    ("carpentry", ["carpenter", "carpentry", "furniture", "wood"]),
    ("cleaning", ["clean", "housekeeping"]),
    ("electrical", ["electric", "wiring"]),
    ("maintenance", ["maintain", "maintenance", "repair", "fix"]),
    ("painting", ["paint"]),
    ("plumbing", ["plumb", "pipe", "leak"]),
]

COMPLEXITY_MARKERS = [
    # conjunctive / contrastive
    "and", "or", "but", "however", "although",
    # comparison
    "compare", "difference", "better", "best", "versus", "similar", "like",
    # explanatory
    "explain", "how", "why", "what if", "recommend",
    # spatial
    "near", "close to", "within", "around",
]

COMPLEX_LENGTH_THRESHOLD = 100

GREETING_WORDS = [
    "hello", "hi", "hey", "good morning", "good afternoon", "good evening",
    "namaste", "namaskar", "greetings",
]

HELP_WORDS = [
    "help", "assist", "support", "guide", "how", "what", "can you",
    "do you", "are you", "tell me", "explain", "show me",
]

INDIAN_CITIES = [
    "siliguri", "delhi", "mumbai", "bangalore", "chennai", "kolkata",
    "hyderabad", "pune", "ahmedabad", "jaipur", "lucknow", "kanpur",
    "nagpur", "indore", "thane", "bhopal", "visakhapatnam", "pimpri",
    "patna", "vadodara", "ludhiana", "agra", "nashik", "faridabad",
    "meerut", "rajkot", "kalyan", "vasai", "varanasi", "srinagar",
    "aurangabad", "noida", "solapur", "vijayawada", "kolhapur", "amritsar",
    "allahabad", "ranchi", "howrah", "coimbatore", "raipur", "jabalpur",
    "gwalior", "jodhpur", "madurai", "guwahati", "chandigarh", "hubli",
    "mysore", "gurgaon", "aligarh", "jalandhar", "bhubaneswar", "salem",
    "warangal", "guntur", "bhiwandi", "saharanpur", "gorakhpur", "bikaner",
    "amravati", "jamshedpur", "bhilai", "cuttack", "firozabad", "kochi",
    "bhavnagar", "dehradun", "durgapur", "asansol", "rourkela", "nanded",
    "ajmer", "akola", "gulbarga", "jamnagar", "ujjain", "jhansi",
    "ulhasnagar", "nellore", "jammu", "sangli", "belgaum", "mangalore",
    "tirunelveli", "malegaon", "gaya", "jalgaon", "udaipur", "ghaziabad",
    "kota", "darjeeling", "jalpaiguri",
]

PROPERTY_RENT_SUGGESTIONS = [
    "Filter properties by location",
    "Set up alerts for new rental listings",
    "Compare rental properties in your area",
    "Contact property owners directly",
    "Schedule property visits",
]

PROPERTY_SALE_SUGGESTIONS = [
    "Browse properties for sale",
    "Get property valuation estimates",
    "Find home loan options",
    "Contact real estate agents",
    "Schedule property inspections",
]

PROPERTY_GENERAL_SUGGESTIONS = [
    "Search properties by budget range",
    "Find properties near your location",
    "Compare property features and prices",
    "Get property recommendations",
]

SERVICE_SUGGESTIONS = [
    "Book cleaning service",
    "Find plumbing services in your area",
    "Schedule electrical maintenance",
    "Get quotes for home renovation",
    "Contact service providers directly",
]

PROJECT_SUGGESTIONS = [
    "Browse construction projects",
    "Find infrastructure development projects",
    "Get project quotes and timelines",
    "Contact project managers",
    "Start your own project",
]

GREETING_SUGGESTIONS = [
    "Find rental properties",
    "Browse properties for sale",
    "Book home services",
    "Explore construction projects",
]

HELP_SUGGESTIONS = [
    "3BHK rent in Siliguri",
    "Book cleaning service",
    "Find construction projects",
    "Contact support",
]

GENERAL_SUGGESTIONS = [
    "Search properties",
    "Book services",
    "Find projects",
    "Get help",
]

FALLBACK_SUGGESTIONS = [
    "Find properties",
    "Book services",
    "Contact support",
]

DEFAULT_SUGGESTIONS = {
    "property": PROPERTY_RENT_SUGGESTIONS + PROPERTY_SALE_SUGGESTIONS[:2],
    "service": SERVICE_SUGGESTIONS,
    "project": PROJECT_SUGGESTIONS,
    "general": GREETING_SUGGESTIONS + ["Get help"],
}

MAX_SUGGESTIONS = 5
MAX_LISTINGS = 10
LISTINGS_IN_REPLY = 3
DESCRIPTION_PREVIEW_CHARS = 100

SUGGESTIONS_DEFAULT_LIMIT = 10
SUGGESTIONS_MAX_LIMIT = 20
