"""Error taxonomy for the chatbot pipeline.

Session lifecycle errors surface as HTTP status codes; listing store and LLM
errors are recovered inside the dialog handler and only show up as canned
replies.
"""
from typing import Any, Dict, Optional

from fastapi import status


class ChatbotError(Exception):
    code = "chatbot_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Chatbot error"

    def __init__(self, message: Optional[str] = None, **details: Any):
        self.message = message or self.default_message
        self.details: Dict[str, Any] = details
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, str]:
        return {"code": self.code, "message": self.message}


class SessionNotFound(ChatbotError):
    code = "session_not_found"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Session not found"


class SessionExpired(ChatbotError):
    code = "session_expired"
    status_code = status.HTTP_410_GONE
    default_message = "Session has expired"


class MalformedRequest(ChatbotError):
    code = "malformed_request"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Malformed request"


class ListingStoreError(ChatbotError):
    code = "listing_store_error"
    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "Listing store query failed"


class DeadlineExceeded(ChatbotError):
    code = "deadline_exceeded"
    status_code = status.HTTP_504_GATEWAY_TIMEOUT
    default_message = "Request deadline exceeded"


# ---------- LLM ----------

class LLMError(ChatbotError):
    code = "llm_error"
    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "LLM call failed"


class LLMUnconfigured(LLMError):
    code = "llm_unconfigured"
    default_message = "LLM API key is not configured"


class LLMUpstreamError(LLMError):
    code = "llm_upstream_error"
    default_message = "LLM endpoint returned an error"

    def __init__(self, message=None, status_code=None, body=""):
        super().__init__(message, upstream_status=status_code, body=body)
        self.upstream_status = status_code
        self.body = body


class LLMEmptyResponse(LLMError):
    code = "llm_empty_response"
    default_message = "LLM returned no choices"


class LLMMalformedJSON(LLMError):
    code = "llm_malformed_json"
    default_message = "LLM output is not well-formed JSON"

    def __init__(self, message=None, raw=""):
        super().__init__(message)
        self.raw = raw
