import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from app.chatbot.dependencies import get_dialog_handler, get_llm_client
from app.chatbot.handler import DialogHandler
from app.core.config import Settings, get_settings
from app.core.errors import DeadlineExceeded
from app.core.responses import error_response, success
from app.schemas.chatbot import (
    CreateSessionRequest,
    HealthOut,
    MessageOut,
    ReplyOut,
    SendMessageRequest,
    SessionCreated,
    SessionDetail,
    SessionOut,
    SuggestionsOut,
)
from app.services.llm_service import LLMClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chatbot", tags=["Chatbot"])


@router.post("/session", name="create_chatbot_session")
def create_session(
    payload: CreateSessionRequest,
    handler: DialogHandler = Depends(get_dialog_handler),
):
    session, welcome = handler.create_session(
        user_id=payload.user_id,
        location=(payload.location or "").strip(),
        context=payload.context,
    )
    created = SessionCreated(
        session=SessionOut.model_validate(session),
        message=MessageOut.model_validate(welcome) if welcome else None,
    )
    return success(created)


@router.post("/session/{session_id}/message", name="send_chatbot_message")
def send_message(
    session_id: str,
    payload: SendMessageRequest,
    handler: DialogHandler = Depends(get_dialog_handler),
):
    reply = handler.handle_message(session_id, payload.message, payload.context)
    body = ReplyOut.model_validate(reply)
    if reply.deadline_exceeded:
        return error_response(DeadlineExceeded(), data=body)
    return success(body)


@router.get("/session/{session_id}", name="get_chatbot_session")
def get_session(
    session_id: str,
    handler: DialogHandler = Depends(get_dialog_handler),
):
    session, messages = handler.get_session(session_id)
    detail = SessionDetail(
        **SessionOut.model_validate(session).model_dump(),
        messages=[MessageOut.model_validate(m) for m in messages],
    )
    return success(detail)


@router.delete("/session/{session_id}", name="delete_chatbot_session")
def delete_session(
    session_id: str,
    handler: DialogHandler = Depends(get_dialog_handler),
):
    handler.delete_session(session_id)
    return success({"session_id": session_id, "deleted": True})


@router.get("/suggestions", name="chatbot_suggestions")
def list_suggestions(
    category: Optional[str] = None,
    limit: Optional[int] = Query(default=None),
    handler: DialogHandler = Depends(get_dialog_handler),
):
    suggestions = handler.list_suggestions(category, limit)
    return success(SuggestionsOut(category=category, suggestions=suggestions))


@router.get("/health", name="chatbot_health")
def health(
    settings: Settings = Depends(get_settings),
    llm: LLMClient = Depends(get_llm_client),
):
    return success(
        HealthOut(
            status="ok",
            llm_configured=llm.is_configured,
            model=settings.llm_model,
            fast_path_enabled=settings.fast_path_enabled,
        )
    )
