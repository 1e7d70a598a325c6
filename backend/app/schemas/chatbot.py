from datetime import datetime
from typing import Annotated, Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, StringConstraints


class CreateSessionRequest(BaseModel):
    user_id: Optional[int] = None
    location: Optional[str] = Field(default=None, max_length=100)
    context: Optional[Dict[str, Any]] = None


class SendMessageRequest(BaseModel):
    message: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=2000)]
    context: Optional[Dict[str, Any]] = None


class MessageOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    session_id: str
    role: str
    content: str
    message_type: str = "text"
    created_at: datetime
    processing_time_ms: Optional[int] = None
    model_used: Optional[str] = None
    data_results: Optional[Dict[str, Any]] = None
    suggestions: List[str] = []


class SessionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    session_id: str
    user_id: Optional[int] = None
    location: Optional[str] = ""
    context: Dict[str, Any] = {}
    last_query_type: Optional[str] = "general"
    is_active: bool
    created_at: datetime
    last_message_at: datetime
    expires_at: datetime


class SessionCreated(BaseModel):
    session: SessionOut
    message: Optional[MessageOut] = None


class SessionDetail(SessionOut):
    messages: List[MessageOut] = []


class ReplyOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    session_id: str
    message_id: Optional[int] = None
    content: str
    query_type: str
    data_results: Dict[str, Any] = {}
    suggestions: List[str] = []
    needs_more_info: bool = False
    missing_info: List[str] = []
    next_step: str = ""
    used_llm: bool = False
    elapsed_ms: int = 0
    deadline_exceeded: bool = False
    created_at: Optional[datetime] = None
    context: Dict[str, Any] = {}


class SuggestionsOut(BaseModel):
    category: Optional[str] = None
    suggestions: List[str]


class HealthOut(BaseModel):
    status: str
    llm_configured: bool
    model: str
    fast_path_enabled: bool
