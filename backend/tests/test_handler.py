import json
import threading
from dataclasses import replace
from datetime import timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from app.chatbot import replies, services
from app.chatbot import store as store_module
from app.chatbot.handler import DialogHandler, merge_suggestions
from app.chatbot.intent import detect_intent
from app.chatbot.services import search_properties
from app.core.constants import FALLBACK_SUGGESTIONS, PROJECT_SUGGESTIONS
from app.core.errors import (
    ListingStoreError,
    LLMUpstreamError,
    MalformedRequest,
    SessionExpired,
    SessionNotFound,
)
from app.database.base import Base
from app.models.chatbot import ChatbotMessage

from conftest import FakeLLM


class FakeTimer:
    def __init__(self):
        self.t = 0.0

    def __call__(self):
        return self.t


@pytest.fixture
def make_handler(db, settings, clock):
    def _make(llm=None, timer=None, **overrides):
        return DialogHandler(
            db,
            replace(settings, **overrides),
            llm or FakeLLM(configured=False),
            clock=clock,
            timer=timer or FakeTimer(),
        )

    return _make


def _messages(db, session_id):
    return (
        db.query(ChatbotMessage)
        .filter(ChatbotMessage.session_id == session_id)
        .order_by(ChatbotMessage.created_at)
        .all()
    )


def test_create_session_sends_welcome(make_handler):
    handler = make_handler()
    session, welcome = handler.create_session(location="Siliguri")
    assert session.location == "Siliguri"
    assert session.context == {"location": "Siliguri"}
    assert welcome.role == "assistant"
    assert "Welcome to TreesIndia" in welcome.content
    assert 0 < len(welcome.suggestions) <= 5


def test_create_session_without_welcome(make_handler):
    handler = make_handler(send_welcome_message=False)
    session, welcome = handler.create_session()
    assert welcome is None
    assert handler.get_session(session.session_id)[1] == []


def test_fast_path_property_query(make_handler, add_listing):
    add_listing(title="Hill view", bedrooms=3, city="Siliguri", monthly_rent=18000)
    llm = FakeLLM()
    handler = make_handler(llm=llm)
    session, _ = handler.create_session(location="Siliguri")

    reply = handler.handle_message(session.session_id, "3bhk rent in siliguri")

    assert reply.query_type == "property"
    assert reply.used_llm is False
    assert llm.calls == []
    filters = reply.data_results["filters"]
    assert filters["bedrooms"] == 3
    assert filters["listing_type"] == "rent"
    assert filters["city"] == "Siliguri"
    assert reply.data_results["total"] == 1
    assert reply.needs_more_info is True
    assert reply.missing_info == ["budget"]
    assert "budget" in reply.next_step
    assert 0 < len(reply.suggestions) <= 5


def test_fast_path_data_matches_listing_search(make_handler, add_listing, db):
    for i in range(4):
        add_listing(title=f"Flat {i}", bedrooms=2, monthly_rent=10000 + i)
    handler = make_handler()
    session, _ = handler.create_session(location="Siliguri")

    reply = handler.handle_message(session.session_id, "2bhk rent in siliguri under 15k")

    expected = search_properties(db, detect_intent("2bhk rent in siliguri under 15k", "Siliguri"))
    assert reply.data_results["properties"] == expected.listings
    assert "Found 4 properties" in reply.content
    assert "… and 1 more" in reply.content


def test_missing_location_is_reported(make_handler):
    handler = make_handler()
    session, _ = handler.create_session()

    reply = handler.handle_message(session.session_id, "15k budget for 2 bhk rent")

    assert reply.data_results["filters"]["bedrooms"] == 2
    assert reply.data_results["filters"]["max_price"] == 15000
    assert reply.data_results["filters"]["listing_type"] == "rent"
    assert reply.needs_more_info is True
    assert reply.missing_info == ["location"]


def test_greeting(make_handler):
    handler = make_handler()
    session, _ = handler.create_session()

    reply = handler.handle_message(session.session_id, "hello")

    assert reply.query_type == "general"
    assert reply.content == replies.greeting("TreesIndia")
    assert 0 < len(reply.suggestions) <= 5
    assert reply.used_llm is False


def test_complex_query_with_failing_llm_gets_apology(make_handler):
    llm = FakeLLM([LLMUpstreamError(status_code=500), LLMUpstreamError(status_code=500)])
    handler = make_handler(llm=llm)
    session, _ = handler.create_session()

    reply = handler.handle_message(
        session.session_id,
        "can you compare 3bhk rentals in siliguri and near airport within 20k?",
    )

    assert reply.content == replies.APOLOGY_MESSAGE
    assert reply.used_llm is False
    assert reply.suggestions
    assert len(reply.suggestions) <= 5
    assert len(llm.calls) == 2


def test_complex_query_without_llm_key_gets_unavailable_message(make_handler):
    handler = make_handler()
    session, _ = handler.create_session()

    reply = handler.handle_message(session.session_id, "compare cleaning and plumbing services")

    assert reply.content == replies.llm_unavailable()
    assert reply.used_llm is False
    assert reply.suggestions


def test_slow_path_uses_llm_reply_and_merges_suggestions(make_handler, add_listing, db):
    add_listing(title="Airport road flat", bedrooms=3, monthly_rent=19000)
    parse = json.dumps({
        "query_type": "property",
        "intent": "rent",
        "entities": {"location": "Siliguri", "bedrooms": 3, "budget": 20000, "listing_type": "rent"},
        "confidence": 0.95,
    })
    suggestions = json.dumps(["Schedule property visits", "See flats near the airport"])
    llm = FakeLLM([parse, "Here is a great option near the airport.", suggestions])
    handler = make_handler(llm=llm)
    session, _ = handler.create_session()
    handler.handle_message(session.session_id, "hello")

    text = "can you compare 3bhk rentals in siliguri and near airport within 20k?"
    reply = handler.handle_message(session.session_id, text)

    assert reply.used_llm is True
    assert reply.content == "Here is a great option near the airport."
    assert reply.data_results["total"] == 1
    assert reply.suggestions[:2] == ["Schedule property visits", "See flats near the airport"]
    assert len(reply.suggestions) == 5
    assert len({s.lower() for s in reply.suggestions}) == 5

    reply_prompt = llm.calls[1]["messages"]
    assert reply_prompt[-1].content == text
    history = [m.content for m in reply_prompt if m.role in ("user", "assistant")][:-1]
    assert text not in history
    assert "hello" in history

    assistant = _messages(db, session.session_id)[-1]
    assert assistant.model_used == llm.model
    assert assistant.role == "assistant"


def test_malformed_structured_parse_falls_back_to_rules(make_handler):
    llm = FakeLLM(["not json at all", "A friendly answer.", "also not json"])
    handler = make_handler(llm=llm)
    session, _ = handler.create_session()

    reply = handler.handle_message(session.session_id, "how and why do i book cleaning service?")

    assert reply.query_type == "service"
    assert reply.used_llm is True
    assert reply.content == "A friendly answer."
    assert reply.suggestions


def test_fast_path_disabled_routes_everything_to_llm(make_handler):
    handler = make_handler(fast_path_enabled=False)
    session, _ = handler.create_session()

    reply = handler.handle_message(session.session_id, "hello")

    assert reply.content == replies.llm_unavailable()


def test_fast_path_failure_falls_through_to_slow_path(make_handler, monkeypatch):
    def explode(intent, data):
        raise RuntimeError("template bug")

    monkeypatch.setattr(replies, "render", explode)
    llm = FakeLLM(["{}", "LLM answer", "[]"])
    handler = make_handler(llm=llm)
    session, _ = handler.create_session()

    reply = handler.handle_message(session.session_id, "hello")

    assert reply.content == "LLM answer"
    assert reply.used_llm is True


def test_listing_store_error_degrades_to_empty_results(make_handler, monkeypatch):
    def broken(db, intent, context=None):
        raise ListingStoreError()

    monkeypatch.setitem(services.SEARCHERS, "property", broken)
    handler = make_handler()
    session, _ = handler.create_session(location="Siliguri")

    reply = handler.handle_message(session.session_id, "2bhk rent in siliguri under 20k")

    assert reply.data_results == {"properties": [], "total": 0, "filters": {}}
    assert "No properties found" in reply.content


def test_expired_session_rejects_message_without_appending(make_handler, clock, db):
    handler = make_handler()
    session, _ = handler.create_session()
    before = len(_messages(db, session.session_id))

    clock.advance(hours=25)
    with pytest.raises(SessionExpired):
        handler.handle_message(session.session_id, "hello")

    assert len(_messages(db, session.session_id)) == before
    assert handler.get_session(session.session_id)[0].is_active is False
    assert session.session_id not in store_module._locks


def test_message_extends_expiry(make_handler, clock):
    handler = make_handler()
    session, _ = handler.create_session()

    clock.advance(hours=23)
    handler.handle_message(session.session_id, "hello")
    clock.advance(hours=23)
    handler.handle_message(session.session_id, "hello again")

    refreshed, _ = handler.get_session(session.session_id)
    assert refreshed.expires_at == clock.now + timedelta(hours=24)


def test_unknown_session(make_handler):
    with pytest.raises(SessionNotFound):
        make_handler().handle_message("missing", "hello")
    assert "missing" not in store_module._locks


def test_deadline_exceeded_returns_apology(make_handler, db):
    timer = FakeTimer()

    class SlowLLM(FakeLLM):
        def complete(self, messages, **params):
            timer.t += 100
            raise LLMUpstreamError("timed out")

    handler = make_handler(llm=SlowLLM(), timer=timer)
    session, _ = handler.create_session()

    reply = handler.handle_message(session.session_id, "compare and explain the best projects")

    assert reply.deadline_exceeded is True
    assert reply.used_llm is False
    assert reply.content == replies.APOLOGY_MESSAGE
    assert _messages(db, session.session_id)[-1].content == replies.APOLOGY_MESSAGE


def test_llm_timeout_is_bounded_by_remaining_deadline(make_handler):
    timer = FakeTimer()
    llm = FakeLLM(["{}", "ok", "[]"])
    handler = make_handler(llm=llm, timer=timer, request_deadline_seconds=10.0)
    session, _ = handler.create_session()

    handler.handle_message(session.session_id, "compare and explain the best projects")

    assert all(call["timeout"] <= 10.0 for call in llm.calls)


def test_running_out_of_time_after_llm_reply_keeps_the_reply(make_handler, add_listing):
    add_listing(title="Riverside flat", bedrooms=2, monthly_rent=14000)
    timer = FakeTimer()

    class LateLLM(FakeLLM):
        def complete(self, messages, **params):
            answer = super().complete(messages, **params)
            if answer == "Here are two good flats.":
                timer.t += 100
            return answer

    llm = LateLLM(["{}", "Here are two good flats.", '["never asked"]'])
    handler = make_handler(llm=llm, timer=timer)
    session, _ = handler.create_session()

    reply = handler.handle_message(session.session_id, "compare and explain 2bhk rentals in siliguri near the river")

    assert reply.content == "Here are two good flats."
    assert reply.used_llm is True
    assert reply.deadline_exceeded is False
    assert reply.data_results["total"] == 1
    assert "never asked" not in reply.suggestions
    assert reply.suggestions
    assert len(llm.calls) == 2


def test_suggestion_store_error_falls_back_to_seeds(make_handler, monkeypatch):
    def broken(category, limit):
        raise SQLAlchemyError("suggestions table unavailable")

    llm = FakeLLM(["{}", "An answer about projects.", "[]"])
    handler = make_handler(llm=llm)
    session, _ = handler.create_session()
    monkeypatch.setattr(handler.store, "list_suggestions", broken)

    reply = handler.handle_message(session.session_id, "compare and explain the best projects")

    assert reply.content == "An answer about projects."
    assert reply.suggestions
    assert set(reply.suggestions) <= set(PROJECT_SUGGESTIONS + FALLBACK_SUGGESTIONS)


def test_property_follow_up_inherits_filters(make_handler, add_listing):
    add_listing(title="Three", bedrooms=3, monthly_rent=18000, city="Siliguri")
    handler = make_handler()
    session, _ = handler.create_session()

    handler.handle_message(session.session_id, "2 bhk for rent in siliguri")
    reply = handler.handle_message(session.session_id, "show me 3 bhk flats under 20k")

    filters = reply.data_results["filters"]
    assert filters == {
        "listing_type": "rent",
        "bedrooms": 3,
        "property_type": "residential",
        "city": "Siliguri",
        "max_price": 20000,
    }
    assert reply.needs_more_info is False
    assert reply.context["bedrooms"] == 3


def test_ambient_context_is_merged(make_handler):
    handler = make_handler()
    session, _ = handler.create_session()

    reply = handler.handle_message(session.session_id, "hello", {"page": "listing", "city": "Pune"})

    assert reply.context["city"] == "Pune"
    assert reply.context["extensions"] == {"page": "listing"}


def test_list_suggestions_clamps_limit(make_handler):
    handler = make_handler()
    handler.store.seed_suggestions()
    assert len(handler.list_suggestions(None, 500)) == 20
    assert len(handler.list_suggestions("service", 0)) == 1
    assert len(handler.list_suggestions()) == 10
    with pytest.raises(MalformedRequest):
        handler.list_suggestions("weather")


def test_list_suggestions_falls_back_to_builtins(make_handler):
    assert make_handler().list_suggestions("project", 3) == [
        "Browse construction projects",
        "Find infrastructure development projects",
        "Get project quotes and timelines",
    ]


def test_delete_session_hides_it(make_handler):
    handler = make_handler()
    session, _ = handler.create_session()
    handler.delete_session(session.session_id)
    with pytest.raises(SessionNotFound):
        handler.get_session(session.session_id)


def test_merge_suggestions_dedupes_case_insensitively_and_caps():
    merged = merge_suggestions(["Find Flats", "book services"], ["find flats", "A", "B", "C", "D"])
    assert merged == ["Find Flats", "book services", "A", "B", "C"]


def test_concurrent_messages_on_one_session(tmp_path, settings):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'chat.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    setup = factory()
    session, _ = DialogHandler(setup, settings, FakeLLM(configured=False)).create_session()
    session_id = session.session_id
    setup.close()

    barrier = threading.Barrier(2)
    errors, contexts = [], []

    def worker(text):
        db = factory()
        try:
            handler = DialogHandler(db, settings, FakeLLM(configured=False))
            barrier.wait()
            contexts.append(handler.handle_message(session_id, text).context)
        except Exception as exc:  # surfaced by the assertion below
            errors.append(exc)
        finally:
            db.close()

    threads = [
        threading.Thread(target=worker, args=("2bhk rent in siliguri",)),
        threading.Thread(target=worker, args=("book cleaning in pune",)),
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    check = factory()
    try:
        handler = DialogHandler(check, settings, FakeLLM(configured=False))
        stored, messages = handler.get_session(session_id)
        user_turns = sorted(m.content for m in messages if m.role == "user")
        assert user_turns == ["2bhk rent in siliguri", "book cleaning in pune"]
        assert len(messages) == 5
        stamps = [m.created_at for m in messages]
        assert all(a < b for a, b in zip(stamps, stamps[1:]))
        assert stored.context in contexts
    finally:
        check.close()
        engine.dispose()
