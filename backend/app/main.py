import logging
from contextlib import asynccontextmanager

# .env must be loaded before any app module reads settings
from dotenv import load_dotenv

load_dotenv()

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.chatbot.store import SessionStore
from app.core.config import get_settings
from app.core.errors import ChatbotError
from app.core.responses import error_response, failure
from app.database.base import Base
from app.database.session import SessionLocal, engine
from app.models.chatbot import ChatbotSession  # noqa: F401
from app.models.property import Property  # noqa: F401
from app.routers.api import chatbot as chatbot_api
from app.routers.api import chatbot_ws

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


def init_db():
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        store = SessionStore(db, ttl_hours=settings.session_ttl_hours)
        store.seed_suggestions()
        store.cleanup_expired()
    finally:
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    logger.info(
        "Chatbot ready (llm=%s, fast_path=%s)",
        "on" if settings.llm_enabled else "off",
        settings.fast_path_enabled,
    )
    yield


app = FastAPI(title=f"{settings.platform_name} Chatbot", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins),
    allow_credentials=settings.cors_origins != ("*",),
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(chatbot_api.router)
app.include_router(chatbot_ws.router)


@app.exception_handler(ChatbotError)
async def chatbot_exception_handler(request: Request, exc: ChatbotError):
    if exc.status_code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
    return error_response(exc)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        first = errors[0]
        where = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{where}: {first.get('msg')}" if where else first.get("msg")
    else:
        message = "Malformed request"
    return failure("malformed_request", message, status.HTTP_400_BAD_REQUEST)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404:
        code = "not_found"
    elif exc.status_code == 405:
        code = "method_not_allowed"
    else:
        code = "http_error"
    return failure(code, str(exc.detail), exc.status_code)
