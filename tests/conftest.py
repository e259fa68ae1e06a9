import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import datetime, timezone
from unittest.mock import AsyncMock, Mock, patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401
from app.database import Base, get_db
from app.dependencies import get_inbox, get_registry
from app.main import app
from app.models import Integration
from app.services.inbox_client import InboxClient
from app.services.platforms import build_registry
from app.services.smooch_client import ClientState


@pytest.fixture(autouse=True)
def _no_alerts():
    with patch("app.services.alert_service.ALERT_BOT_TOKEN", None), patch(
        "app.services.alert_service.ALERT_CHAT_ID", None
    ):
        yield


@pytest.fixture
def db_session():
    """In-memory SQLite session with all tables."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def smooch_client():
    client = Mock()
    client.ready = True
    client.state = ClientState.READY
    client.send_message = AsyncMock(return_value={"message": {"_id": "smooch-msg-1"}})
    client.create_integration = AsyncMock(return_value={"integration": {"_id": "smooch-int-1"}})
    return client


@pytest.fixture
def whatsapp_client():
    client = Mock()
    client.send_message = AsyncMock(return_value={"sent": True, "id": "wa-msg-1"})
    client.send_file = AsyncMock(return_value={"sent": True, "id": "wa-file-1"})
    return client


@pytest.fixture
def inbox():
    """Enabled inbox client with canned ids."""
    client = Mock(spec=InboxClient)
    client.enabled = True
    client.create_customer = AsyncMock(return_value="inbox-customer-1")
    client.create_conversation = AsyncMock(return_value="inbox-conversation-1")
    client.create_message = AsyncMock(return_value="inbox-message-1")
    return client


@pytest.fixture
def registry(smooch_client, whatsapp_client):
    return build_registry(smooch_client, whatsapp_client)


def make_integration(db, kind="telegram", erxes_api_id="erxes-1", external_id="t1", credentials=None):
    integration = Integration(
        kind=kind,
        erxes_api_id=erxes_api_id,
        external_id=external_id,
        credentials=credentials if credentials is not None else {"telegram_bot_token": "bot-token"},
        created_at=datetime.now(timezone.utc),
    )
    db.add(integration)
    db.commit()
    return integration


@pytest.fixture
def integration_factory(db_session):
    return lambda **kwargs: make_integration(db_session, **kwargs)


@pytest.fixture
def telegram_integration(db_session):
    return make_integration(db_session)


@pytest.fixture
def whatsapp_integration(db_session):
    return make_integration(
        db_session,
        kind="whatsapp",
        erxes_api_id="erxes-wa",
        external_id="1001",
        credentials={"whatsapp_instance_ids": ["1001"], "whatsapp_tokens": {"1001": "wa-token"}},
    )


@pytest.fixture
def client(db_session, registry):
    app.dependency_overrides[get_db] = lambda: db_session
    app.dependency_overrides[get_registry] = lambda: registry
    app.dependency_overrides[get_inbox] = lambda: InboxClient(None)
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
