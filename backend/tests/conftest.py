import os
import tempfile
from datetime import datetime, timedelta
from pathlib import Path

import pytest

# Keep the import-time engine away from the working directory.
os.environ.setdefault(
    "DATABASE_URL", "sqlite:///" + str(Path(tempfile.gettempdir()) / "treesindia-chatbot-test.db")
)

from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.chatbot.dependencies import get_clock, get_llm_client  # noqa: E402
from app.core.config import Settings, get_settings  # noqa: E402
from app.core.errors import LLMUnconfigured  # noqa: E402
from app.database.base import Base  # noqa: E402
from app.database.session import get_db  # noqa: E402
from app.main import app  # noqa: E402
from app.models.property import Property  # noqa: E402
from app.services.llm_service import LLMClient  # noqa: E402


class FakeClock:
    def __init__(self, start=None):
        self.now = start or datetime(2024, 1, 1, 12, 0, 0)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


class FakeLLM(LLMClient):
    """LLMClient whose transport is a scripted list of answers.

    Each entry is either a string returned as the completion or an exception
    instance raised from ``complete``.
    """

    def __init__(self, answers=None, settings=None, configured=True):
        super().__init__(settings or Settings(), client=None)
        self.answers = list(answers or [])
        self.configured = configured
        self.calls = []

    @property
    def is_configured(self):
        return self.configured

    def complete(self, messages, *, max_tokens=None, temperature=None, timeout=None):
        self.calls.append({"messages": list(messages), "timeout": timeout, "temperature": temperature})
        if not self.configured:
            raise LLMUnconfigured()
        if not self.answers:
            raise AssertionError("FakeLLM ran out of scripted answers")
        answer = self.answers.pop(0)
        if isinstance(answer, Exception):
            raise answer
        return answer


@pytest.fixture
def settings():
    return Settings(llm_api_key="", database_url="sqlite://", send_welcome_message=True)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_llm():
    return FakeLLM(configured=False)


@pytest.fixture
def add_listing(db):
    counter = {"n": 0}

    def _add(**overrides):
        counter["n"] += 1
        values = {
            "title": f"Listing {counter['n']}",
            "description": "Bright apartment close to the market",
            "monthly_rent": 12000,
            "sale_price": None,
            "bedrooms": 2,
            "bathrooms": 1,
            "area": 900,
            "city": "Siliguri",
            "state": "West Bengal",
            "address": "Hill Cart Road",
            "listing_type": "rent",
            "property_type": "residential",
            "images": [],
            "status": "available",
            "is_approved": True,
            "created_at": datetime(2024, 1, 1) + timedelta(minutes=counter["n"]),
        }
        values.update(overrides)
        listing = Property(**values)
        db.add(listing)
        db.commit()
        db.refresh(listing)
        return listing

    return _add


@pytest.fixture
def client(session_factory, settings, fake_llm, clock):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_llm_client] = lambda: fake_llm
    app.dependency_overrides[get_clock] = lambda: clock
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
