"""
Test configuration and fixtures.

Provides:
- Fresh in-memory SQLite database per test
- Static fact source, dry-run email sender and fake AI provider
- HTTPX AsyncClient over the ASGI app
"""
import os
from typing import AsyncGenerator, Generator

# Must be set before flowops modules read settings
os.environ["TESTING"] = "1"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("ENV", "dev")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from flowops.core.deps import get_db
from flowops.core.operators import DEFAULT_OPERATORS, OperatorDirectory
from flowops.db.base import Base
import flowops.db.models  # noqa: F401
from flowops.main import app
from flowops.services.ai_provider import AIProvider, AIProviderError, set_ai_provider
from flowops.services.email_sender import DryRunEmailSender, set_email_sender
from flowops.services.fact_tools import StaticFactSource, set_fact_source


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db(engine) -> Generator[Session, None, None]:
    """Session on a fresh database. App code may commit freely."""
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    yield session
    session.close()


# =============================================================================
# Integration Fakes
# =============================================================================

SAMPLE_OUTPUTS = {
    "handoff_summary_v1": {
        "summary_text": "Customer asked for a refund on a pro plan.",
        "key_facts": ["plan=pro", "invoice inv_123 paid"],
        "risks": [],
        "recommended_human_next_step": "Confirm the refund amount.",
    },
    "reply_draft_v1": {
        "draft_text": "Hi, I will confirm your refund shortly.",
        "tone": "empathetic",
        "citations": ["invoice inv_123"],
        "disclaimers": [],
    },
    "risk_assessment_v1": {
        "risk_level": "medium",
        "reasons": ["Refund requested on a paid invoice."],
        "attention_flags": ["financial_sensitivity"],
    },
    "resolution_suggestion_v1": {
        "suggested_category": "refund_possible",
        "confidence": 0.8,
        "uncertainties": ["Refund amount not confirmed by billing."],
        "key_facts_used": ["invoice inv_123"],
        "suggested_internal_notes": "Approve within policy.",
        "suggested_customer_message": None,
    },
}


class FakeAIProvider(AIProvider):
    """Returns canned outputs per schema; ``fail_with`` makes every call raise."""

    def __init__(self) -> None:
        self.outputs = {name: dict(value) for name, value in SAMPLE_OUTPUTS.items()}
        self.fail_with: Exception | None = None
        self.calls: list[dict] = []

    async def generate(self, system, user, schema_name, schema, timeout):
        self.calls.append({"schema_name": schema_name, "system": system, "user": user})
        if self.fail_with is not None:
            raise self.fail_with
        if schema_name not in self.outputs:
            raise AIProviderError(f"No canned output for {schema_name}")
        return dict(self.outputs[schema_name])


@pytest.fixture(autouse=True)
def facts() -> Generator[StaticFactSource, None, None]:
    source = StaticFactSource()
    set_fact_source(source)
    yield source
    set_fact_source(None)


@pytest.fixture(autouse=True)
def email_sender() -> Generator[DryRunEmailSender, None, None]:
    sender = DryRunEmailSender()
    set_email_sender(sender)
    yield sender
    set_email_sender(None)


@pytest.fixture(autouse=True)
def ai_provider() -> Generator[FakeAIProvider, None, None]:
    provider = FakeAIProvider()
    set_ai_provider(provider)
    yield provider
    set_ai_provider(None)


# =============================================================================
# Client Fixtures
# =============================================================================

@pytest.fixture(scope="function")
async def client(db: Session) -> AsyncGenerator[AsyncClient, None]:
    """AsyncClient against the app with get_db bound to the test session."""
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.state.operators = OperatorDirectory(DEFAULT_OPERATORS)

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()
