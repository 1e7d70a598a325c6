from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
)
from sqlalchemy.ext.mutable import MutableDict, MutableList
from sqlalchemy.orm import relationship

from app.database.base import Base
from app.utils.clock import utcnow


class ChatbotSession(Base):
    __tablename__ = "chatbot_sessions"

    id = Column(Integer, primary_key=True)
    session_id = Column(String(36), unique=True, index=True, nullable=False)
    user_id = Column(Integer, nullable=True, index=True)

    location = Column(String(100), default="")
    context = Column(MutableDict.as_mutable(JSON), default=dict)
    last_query_type = Column(String(20), default="general")

    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=utcnow)
    last_message_at = Column(DateTime, default=utcnow)
    expires_at = Column(DateTime, nullable=False)
    deleted_at = Column(DateTime, nullable=True)

    messages = relationship(
        "ChatbotMessage",
        back_populates="session",
        order_by="ChatbotMessage.created_at",
        cascade="all, delete-orphan",
    )

    def is_expired(self, now) -> bool:
        return now >= self.expires_at


class ChatbotMessage(Base):
    __tablename__ = "chatbot_messages"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(
        String(36),
        ForeignKey("chatbot_sessions.session_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    role = Column(String(20), nullable=False)  # user | assistant
    content = Column(Text, nullable=False)
    message_type = Column(String(20), default="text")

    processing_time_ms = Column(Integer, nullable=True)
    model_used = Column(String(100), nullable=True)

    context_snapshot = Column(JSON, default=dict)
    data_results = Column(JSON, default=dict)
    suggestions = Column(MutableList.as_mutable(JSON), default=list)

    created_at = Column(DateTime, nullable=False, index=True)

    session = relationship("ChatbotSession", back_populates="messages")


class ChatbotSuggestion(Base):
    __tablename__ = "chatbot_suggestions"

    id = Column(Integer, primary_key=True, index=True)
    text = Column(String(200), nullable=False)
    category = Column(String(20), index=True)  # property | service | project | general
    priority = Column(Integer, default=0)
    usage_count = Column(Integer, default=0)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=utcnow)
