import json
import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

from app.chatbot.dependencies import get_dialog_handler
from app.chatbot.handler import DialogHandler
from app.core.errors import ChatbotError, DeadlineExceeded, MalformedRequest, SessionExpired, SessionNotFound
from app.core.responses import envelope
from app.schemas.chatbot import ReplyOut, SendMessageRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chatbot", tags=["Chatbot"])

# errors after which the socket has nothing left to serve
TERMINAL_ERRORS = (SessionNotFound, SessionExpired)


def _parse_frame(raw: str) -> SendMessageRequest:
    try:
        return SendMessageRequest.model_validate(json.loads(raw))
    except ValueError as exc:
        # ValidationError is a ValueError too
        reason = exc.errors()[0]["msg"] if isinstance(exc, ValidationError) else "Frame is not valid JSON"
        raise MalformedRequest(reason) from exc


@router.websocket("/session/{session_id}/ws")
async def chatbot_socket(
    websocket: WebSocket,
    session_id: str,
    handler: DialogHandler = Depends(get_dialog_handler),
):
    await websocket.accept()
    logger.info("Chatbot socket opened for session %s", session_id)

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                frame = _parse_frame(raw)
                reply = await run_in_threadpool(
                    handler.handle_message, session_id, frame.message, frame.context
                )
            except ChatbotError as exc:
                await websocket.send_json(envelope(error=exc.to_dict()))
                if isinstance(exc, TERMINAL_ERRORS):
                    await websocket.close(code=1008)
                    return
                continue

            body = ReplyOut.model_validate(reply)
            if reply.deadline_exceeded:
                error = DeadlineExceeded()
                await websocket.send_json(envelope(body, error.to_dict()))
            else:
                await websocket.send_json(envelope(body))
    except WebSocketDisconnect:
        logger.info("Chatbot socket closed for session %s", session_id)
