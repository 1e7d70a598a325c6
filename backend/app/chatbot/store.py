import logging
import threading
import uuid
from datetime import timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.constants import DEFAULT_SUGGESTIONS, SUGGESTIONS_DEFAULT_LIMIT
from app.core.errors import SessionNotFound
from app.models.chatbot import ChatbotMessage, ChatbotSession, ChatbotSuggestion
from app.utils.clock import utcnow

logger = logging.getLogger(__name__)

_locks: Dict[str, threading.Lock] = {}
_locks_guard = threading.Lock()

TICK = timedelta(microseconds=1)


def session_lock(session_id: str) -> threading.Lock:
    """In-process lock serializing writes on one session."""
    with _locks_guard:
        lock = _locks.get(session_id)
        if lock is None:
            lock = _locks[session_id] = threading.Lock()
        return lock


def _forget_lock(session_id: str):
    with _locks_guard:
        _locks.pop(session_id, None)


class SessionStore:
    def __init__(self, db: Session, clock: Callable = utcnow, ttl_hours: int = 24):
        self.db = db
        self.clock = clock
        self.ttl = timedelta(hours=ttl_hours)

    session_lock = staticmethod(session_lock)
    forget_lock = staticmethod(_forget_lock)

    # ---------- sessions ----------

    def create(
        self,
        user_id: Optional[int] = None,
        location: str = "",
        context: Optional[Dict[str, Any]] = None,
    ) -> ChatbotSession:
        now = self.clock()
        session = ChatbotSession(
            session_id=str(uuid.uuid4()),
            user_id=user_id,
            location=location or "",
            context=dict(context or {}),
            last_query_type="general",
            is_active=True,
            created_at=now,
            last_message_at=now,
            expires_at=now + self.ttl,
        )
        self.db.add(session)
        self.db.commit()
        self.db.refresh(session)
        logger.info("Created chatbot session %s", session.session_id)
        return session

    def get(self, session_id: str, fresh: bool = False) -> ChatbotSession:
        """Load a live session; ``fresh`` overwrites any copy already in the identity map."""
        query = self.db.query(ChatbotSession).filter(
            ChatbotSession.session_id == session_id,
            ChatbotSession.deleted_at.is_(None),
        )
        if fresh:
            query = query.populate_existing()
        session = query.first()
        if not session:
            raise SessionNotFound(session_id=session_id)
        return session

    def update(self, session: ChatbotSession, touch: bool = False) -> ChatbotSession:
        """Persist ``session``; ``touch`` also extends its expiry window."""
        if touch:
            now = self.clock()
            session.last_message_at = now
            session.expires_at = now + self.ttl
        self.db.commit()
        self.db.refresh(session)
        return session

    def is_expired(self, session: ChatbotSession) -> bool:
        return session.is_expired(self.clock())

    def deactivate(self, session: ChatbotSession):
        if session.is_active:
            session.is_active = False
            self.db.commit()
            logger.info("Session %s expired", session.session_id)
        _forget_lock(session.session_id)

    def soft_delete(self, session_id: str):
        session = self.get(session_id)
        session.deleted_at = self.clock()
        session.is_active = False
        self.db.commit()
        _forget_lock(session_id)
        logger.info("Deleted chatbot session %s", session_id)

    def cleanup_expired(self) -> int:
        now = self.clock()
        expired = [
            row.session_id
            for row in self.db.query(ChatbotSession.session_id).filter(
                ChatbotSession.is_active.is_(True),
                ChatbotSession.expires_at <= now,
            )
        ]
        if not expired:
            return 0
        count = (
            self.db.query(ChatbotSession)
            .filter(ChatbotSession.session_id.in_(expired))
            .update({ChatbotSession.is_active: False}, synchronize_session=False)
        )
        self.db.commit()
        for session_id in expired:
            _forget_lock(session_id)
        if count:
            logger.info("Deactivated %d expired chatbot sessions", count)
        return count

    # ---------- messages ----------

    def _next_timestamp(self, session_id: str):
        now = self.clock()
        last = (
            self.db.query(func.max(ChatbotMessage.created_at))
            .filter(ChatbotMessage.session_id == session_id)
            .scalar()
        )
        if last is not None and now <= last:
            return last + TICK
        return now

    def append_message(
        self,
        session_id: str,
        role: str,
        content: str,
        *,
        processing_time_ms: Optional[int] = None,
        model_used: Optional[str] = None,
        context_snapshot: Optional[Dict[str, Any]] = None,
        data_results: Optional[Dict[str, Any]] = None,
        suggestions: Optional[List[str]] = None,
    ) -> ChatbotMessage:
        message = ChatbotMessage(
            session_id=session_id,
            role=role,
            content=content,
            message_type="text",
            processing_time_ms=processing_time_ms,
            model_used=model_used,
            context_snapshot=dict(context_snapshot or {}),
            data_results=dict(data_results or {}),
            suggestions=list(suggestions or []),
            created_at=self._next_timestamp(session_id),
        )
        self.db.add(message)
        self.db.commit()
        self.db.refresh(message)
        return message

    def list_messages(self, session_id: str) -> List[ChatbotMessage]:
        return (
            self.db.query(ChatbotMessage)
            .filter(ChatbotMessage.session_id == session_id)
            .order_by(ChatbotMessage.created_at, ChatbotMessage.id)
            .all()
        )

    def recent_messages(self, session_id: str, n: int, exclude_ids: Iterable[int] = ()) -> List[ChatbotMessage]:
        if n <= 0:
            return []
        query = self.db.query(ChatbotMessage).filter(ChatbotMessage.session_id == session_id)
        exclude_ids = list(exclude_ids)
        if exclude_ids:
            query = query.filter(ChatbotMessage.id.notin_(exclude_ids))
        rows = query.order_by(ChatbotMessage.created_at.desc(), ChatbotMessage.id.desc()).limit(n).all()
        return list(reversed(rows))

    # ---------- suggestions ----------

    def list_suggestions(self, category: Optional[str] = None, limit: int = SUGGESTIONS_DEFAULT_LIMIT) -> List[str]:
        query = self.db.query(ChatbotSuggestion).filter(ChatbotSuggestion.is_active.is_(True))
        if category:
            query = query.filter(ChatbotSuggestion.category == category)
        rows = (
            query.order_by(
                ChatbotSuggestion.priority.desc(),
                ChatbotSuggestion.usage_count.desc(),
                ChatbotSuggestion.id,
            )
            .limit(limit)
            .all()
        )
        return [row.text for row in rows]

    def seed_suggestions(self) -> int:
        if self.db.query(ChatbotSuggestion.id).first() is not None:
            return 0
        count = 0
        for category, texts in DEFAULT_SUGGESTIONS.items():
            for i, text in enumerate(texts):
                self.db.add(
                    ChatbotSuggestion(
                        text=text,
                        category=category,
                        priority=len(texts) - i,
                        is_active=True,
                        created_at=self.clock(),
                    )
                )
                count += 1
        self.db.commit()
        logger.info("Seeded %d chatbot suggestions", count)
        return count
