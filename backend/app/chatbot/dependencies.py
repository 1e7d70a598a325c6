from functools import lru_cache

from fastapi import Depends
from sqlalchemy.orm import Session

from app.chatbot.handler import DialogHandler
from app.core.config import Settings, get_settings
from app.database.session import get_db
from app.services.llm_service import LLMClient
from app.utils.clock import utcnow


@lru_cache
def _shared_llm_client() -> LLMClient:
    return LLMClient(get_settings())


def get_llm_client() -> LLMClient:
    return _shared_llm_client()


def get_clock():
    return utcnow


def get_dialog_handler(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    llm: LLMClient = Depends(get_llm_client),
    clock=Depends(get_clock),
) -> DialogHandler:
    return DialogHandler(db, settings, llm, clock=clock)
