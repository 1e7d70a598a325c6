import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.chatbot import replies
from app.chatbot.context import SessionContext
from app.chatbot.intent import Intent, detect_intent, is_complex, is_greeting, is_help_request
from app.chatbot.prompts import (
    build_parse_prompt,
    build_reply_prompt,
    build_suggestions_prompt,
    intent_from_llm,
)
from app.chatbot.services import SearchResult, missing, property_suggestions, search
from app.chatbot.store import SessionStore
from app.core.config import Settings
from app.core.constants import (
    DEFAULT_SUGGESTIONS,
    FALLBACK_SUGGESTIONS,
    GENERAL_SUGGESTIONS,
    GREETING_SUGGESTIONS,
    HELP_SUGGESTIONS,
    MAX_SUGGESTIONS,
    PROJECT_SUGGESTIONS,
    QUERY_TYPES,
    SERVICE_SUGGESTIONS,
    SUGGESTIONS_DEFAULT_LIMIT,
    SUGGESTIONS_MAX_LIMIT,
)
from app.core.errors import (
    DeadlineExceeded,
    ListingStoreError,
    LLMError,
    LLMUnconfigured,
    MalformedRequest,
    SessionExpired,
    SessionNotFound,
)
from app.utils.clock import utcnow

logger = logging.getLogger(__name__)

FIELD_LABELS = {
    "location": "location",
    "bedrooms": "number of bedrooms",
    "budget": "budget",
}


@dataclass
class Reply:
    content: str
    query_type: str
    session_id: str
    data_results: Dict[str, Any] = field(default_factory=dict)
    suggestions: List[str] = field(default_factory=list)
    needs_more_info: bool = False
    missing_info: List[str] = field(default_factory=list)
    next_step: str = ""
    used_llm: bool = False
    elapsed_ms: int = 0
    deadline_exceeded: bool = False
    message_id: Optional[int] = None
    created_at: Optional[datetime] = None
    context: Dict[str, Any] = field(default_factory=dict)


@dataclass
class _Outcome:
    intent: Intent
    content: str
    result: SearchResult = field(default_factory=SearchResult)
    suggestions: List[str] = field(default_factory=list)
    used_llm: bool = False
    model_used: Optional[str] = None
    deadline_exceeded: bool = False


def merge_suggestions(*sources: Iterable[str], cap: int = MAX_SUGGESTIONS) -> List[str]:
    """Concatenate in priority order, dropping case-insensitive duplicates."""
    merged, seen = [], set()
    for source in sources:
        for text in source or []:
            if not isinstance(text, str) or not text.strip():
                continue
            key = text.strip().lower()
            if key in seen:
                continue
            seen.add(key)
            merged.append(text.strip())
            if len(merged) >= cap:
                return merged
    return merged


def seed_suggestions(intent: Intent) -> List[str]:
    if intent.type == "property":
        return property_suggestions(intent)
    if intent.type == "service":
        return list(SERVICE_SUGGESTIONS)
    if intent.type == "project":
        return list(PROJECT_SUGGESTIONS)
    if is_greeting(intent.original_text):
        return list(GREETING_SUGGESTIONS)
    if is_help_request(intent.original_text):
        return list(HELP_SUGGESTIONS)
    return list(GENERAL_SUGGESTIONS)


def next_step_for(intent: Intent, missing_info: List[str]) -> str:
    if not missing_info:
        return ""
    labels = [FIELD_LABELS.get(key, key) for key in missing_info]
    if len(labels) == 1:
        wanted = labels[0]
    else:
        wanted = ", ".join(labels[:-1]) + " and " + labels[-1]
    return f"Please share your preferred {wanted} for better property recommendations."


class DialogHandler:
    """Runs one chatbot turn: rule-based fast path first, LLM slow path second."""

    def __init__(
        self,
        db: Session,
        settings: Settings,
        llm,
        clock: Callable[[], datetime] = utcnow,
        timer: Callable[[], float] = time.monotonic,
    ):
        self.db = db
        self.settings = settings
        self.llm = llm
        self.clock = clock
        self.timer = timer
        self.store = SessionStore(db, clock=clock, ttl_hours=settings.session_ttl_hours)

    # ---------- session lifecycle ----------

    def create_session(
        self,
        user_id: Optional[int] = None,
        location: str = "",
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = SessionContext.from_dict(context)
        if location and not ctx.location:
            ctx.location = location
        session = self.store.create(user_id=user_id, location=location, context=ctx.to_dict())

        welcome = None
        if self.settings.send_welcome_message:
            welcome = self.store.append_message(
                session.session_id,
                "assistant",
                replies.welcome(self.settings.platform_name),
                context_snapshot=session.context,
                suggestions=GREETING_SUGGESTIONS[:MAX_SUGGESTIONS],
            )
        return session, welcome

    def get_session(self, session_id: str):
        session = self.store.get(session_id)
        return session, self.store.list_messages(session_id)

    def delete_session(self, session_id: str):
        with self.store.session_lock(session_id):
            self.store.soft_delete(session_id)

    def list_suggestions(self, category: Optional[str] = None, limit: Optional[int] = None) -> List[str]:
        if category and category not in QUERY_TYPES:
            raise MalformedRequest(f"Unknown suggestion category: {category}")
        limit = SUGGESTIONS_DEFAULT_LIMIT if limit is None else limit
        limit = max(1, min(SUGGESTIONS_MAX_LIMIT, limit))

        found = self.store.list_suggestions(category, limit)
        if found:
            return found
        if category:
            return DEFAULT_SUGGESTIONS[category][:limit]
        pooled = [text for texts in DEFAULT_SUGGESTIONS.values() for text in texts]
        return merge_suggestions(pooled, cap=limit)

    # ---------- one turn ----------

    def handle_message(
        self,
        session_id: str,
        text: str,
        ambient_context: Optional[Dict[str, Any]] = None,
    ) -> Reply:
        started = self.timer()
        deadline = started + self.settings.request_deadline_seconds
        text = (text or "").strip()
        lock = self.store.session_lock(session_id)

        with lock:
            try:
                session = self.store.get(session_id)
            except SessionNotFound:
                self.store.forget_lock(session_id)
                raise
            if self.store.is_expired(session):
                self.store.deactivate(session)
                raise SessionExpired(session_id=session_id)

            context = SessionContext.from_dict(session.context)
            if ambient_context:
                context.merge(ambient_context)
                session.context = context.to_dict()
                self.store.update(session)
            user_message = self.store.append_message(
                session_id, "user", text, context_snapshot=context.to_dict()
            )
            previous_type = session.last_query_type
            location = session.location or context.location or context.city or ""

        intent0 = detect_intent(text, location)
        if intent0.type == "property" and previous_type == "property":
            context.fill_intent(intent0)

        outcome = None
        if self.settings.fast_path_enabled and not is_complex(text):
            try:
                outcome = self._fast_path(intent0, context)
            except Exception:
                logger.exception("Fast path failed for session %s, using LLM", session_id)

        if outcome is None:
            try:
                outcome = self._slow_path(session_id, text, intent0, context, location, user_message.id, deadline)
            except DeadlineExceeded:
                logger.warning("Deadline exceeded for session %s", session_id)
                outcome = _Outcome(
                    intent=intent0,
                    content=replies.APOLOGY_MESSAGE,
                    suggestions=merge_suggestions(seed_suggestions(intent0), FALLBACK_SUGGESTIONS),
                    deadline_exceeded=True,
                )

        missing_info = missing(outcome.intent)
        elapsed_ms = int((self.timer() - started) * 1000)

        with lock:
            session = self.store.get(session_id, fresh=True)
            current = SessionContext.from_dict(session.context)
            if ambient_context:
                current.merge(ambient_context)
            current.apply_intent(outcome.intent)
            snapshot = current.to_dict()

            assistant = self.store.append_message(
                session_id,
                "assistant",
                outcome.content,
                processing_time_ms=elapsed_ms,
                model_used=outcome.model_used,
                context_snapshot=snapshot,
                data_results=outcome.result.to_dict(),
                suggestions=outcome.suggestions,
            )
            session.context = snapshot
            session.last_query_type = outcome.intent.type
            self.store.update(session, touch=True)

        logger.info(
            "Session %s answered %s query in %dms (llm=%s)",
            session_id, outcome.intent.type, elapsed_ms, outcome.used_llm,
        )
        return Reply(
            content=outcome.content,
            query_type=outcome.intent.type,
            session_id=session_id,
            data_results=outcome.result.to_dict(),
            suggestions=outcome.suggestions,
            needs_more_info=bool(missing_info),
            missing_info=missing_info,
            next_step=next_step_for(outcome.intent, missing_info),
            used_llm=outcome.used_llm,
            elapsed_ms=elapsed_ms,
            deadline_exceeded=outcome.deadline_exceeded,
            message_id=assistant.id,
            created_at=assistant.created_at,
            context=snapshot,
        )

    # ---------- branches ----------

    def _search(self, intent: Intent, context: SessionContext) -> SearchResult:
        try:
            return search(self.db, intent, context.to_dict())
        except ListingStoreError:
            # already logged by the fetcher
            self.db.rollback()
            return SearchResult()

    def _stored_suggestions(self, category: str) -> List[str]:
        try:
            return self.store.list_suggestions(category, MAX_SUGGESTIONS)
        except SQLAlchemyError:
            logger.exception("Could not load stored suggestions for %s", category)
            self.db.rollback()
            return []

    def _fast_path(self, intent: Intent, context: SessionContext) -> _Outcome:
        result = self._search(intent, context)
        data = replies.TemplateData(
            listings=result.listings,
            total=result.total,
            filters=result.applied_filters,
            missing=missing(intent),
            platform_name=self.settings.platform_name,
        )
        return _Outcome(
            intent=intent,
            content=replies.render(intent, data),
            result=result,
            suggestions=merge_suggestions(seed_suggestions(intent)),
        )

    def _remaining(self, deadline: float) -> float:
        remaining = deadline - self.timer()
        if remaining <= 0:
            raise DeadlineExceeded()
        return remaining

    def _call_llm(self, method, messages, deadline: float, **params):
        timeout = self._remaining(deadline)
        try:
            return method(messages, timeout=timeout, **params)
        except LLMError:
            if self.timer() >= deadline:
                raise DeadlineExceeded()
            raise

    def _slow_path(
        self,
        session_id: str,
        text: str,
        intent0: Intent,
        context: SessionContext,
        location: str,
        user_message_id: int,
        deadline: float,
    ) -> _Outcome:
        intent = intent0
        try:
            payload = self._call_llm(
                self.llm.complete_json,
                build_parse_prompt(text, location, context.prompt_fields()),
                deadline,
                temperature=0,
            )
            intent = intent_from_llm(payload, intent0)
        except LLMError as exc:
            logger.info("Structured parse unavailable (%s), using rule-based intent", exc.code)

        result = self._search(intent, context)

        history = self.store.recent_messages(
            session_id, self.settings.max_history_turns, exclude_ids=[user_message_id]
        )
        prompt = build_reply_prompt(
            text=text,
            intent=intent,
            history=history,
            listings=result.listings,
            total=result.total,
            location=location,
            platform_name=self.settings.platform_name,
            max_listings=self.settings.max_listings_in_prompt,
        )

        used_llm = False
        model_used = None
        try:
            content = self._call_llm(self.llm.complete, prompt, deadline)
            used_llm = True
            model_used = self.llm.model
        except LLMUnconfigured:
            content = replies.llm_unavailable()
        except LLMError as exc:
            logger.warning("LLM reply failed for session %s: %s", session_id, exc.message)
            content = replies.APOLOGY_MESSAGE

        llm_suggestions: List[str] = []
        if used_llm:
            try:
                raw = self._call_llm(
                    self.llm.complete_json, build_suggestions_prompt(intent, location), deadline
                )
                if isinstance(raw, list):
                    llm_suggestions = [s for s in raw if isinstance(s, str)]
            except LLMError as exc:
                logger.info("LLM suggestions unavailable (%s)", exc.code)
            except DeadlineExceeded:
                # keep the answer we already have
                logger.info("No time left for LLM suggestions in session %s", session_id)

        suggestions = merge_suggestions(
            llm_suggestions,
            self._stored_suggestions(intent.type),
            seed_suggestions(intent),
            FALLBACK_SUGGESTIONS,
        )
        return _Outcome(
            intent=intent,
            content=content,
            result=result,
            suggestions=suggestions,
            used_llm=used_llm,
            model_used=model_used,
        )
