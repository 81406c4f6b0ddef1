"""
Global pytest configuration and shared fixtures.
"""
import pytest
from typing import AsyncGenerator
from httpx import AsyncClient, ASGITransport
from unittest.mock import patch

from seminar_api.main import app
from seminar_api.config import settings
from tests.utils.fake_db import FakeDatabase
from tests.utils.factories import WEBHOOK_SECRET
from tests.utils.mocks import FakeGateway, NotificationRecorder

# Every module that opens connections with get_db_connection
DB_MODULES = [
    'seminar_api.database',
    'seminar_api.services.orders_service',
    'seminar_api.services.checkout_service',
    'seminar_api.services.webhook_service',
    'seminar_api.services.notification_service',
    'seminar_api.services.participant_sync_service',
    'seminar_api.tasks.reconciliation',
]


# ============================================================================
# Async HTTP client
# ============================================================================

@pytest.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client against the ASGI app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# ============================================================================
# Database
# ============================================================================

@pytest.fixture(autouse=True)
def db():
    """In-memory database patched in place of the asyncpg pool."""
    fake = FakeDatabase()
    factory = fake.connection_factory()
    patches = [patch(f"{module}.get_db_connection", factory) for module in DB_MODULES]
    for p in patches:
        p.start()
    yield fake
    for p in reversed(patches):
        p.stop()


# ============================================================================
# Settings
# ============================================================================

@pytest.fixture(autouse=True)
def gateway_settings(monkeypatch):
    """Known gateway secrets and lifecycle defaults for every test."""
    monkeypatch.setattr(settings, "komoju_secret_key", "sk_test")
    monkeypatch.setattr(settings, "komoju_webhook_secret", WEBHOOK_SECRET)
    monkeypatch.setattr(settings, "payment_failure_threshold", 3)
    monkeypatch.setattr(settings, "order_rate_limit_per_hour", 10)
    monkeypatch.setattr(settings, "trusted_proxy_hops", 1)
    monkeypatch.setattr(settings, "blacklisted_email_domains", ["tempmail.com", "guerrillamail.com"])
    monkeypatch.setattr(settings, "gateway_timeout_seconds", 1.0)
    monkeypatch.setattr(settings, "participant_sync_url", None)
    monkeypatch.setattr(settings, "cron_secret", "test-cron-secret")


# ============================================================================
# External collaborators
# ============================================================================

@pytest.fixture(autouse=True)
def gateway():
    """Fake payment gateway used by checkout and webhook ingestion."""
    fake = FakeGateway()
    with patch('seminar_api.services.checkout_service.get_gateway', return_value=fake):
        with patch('seminar_api.services.webhook_service.get_gateway', return_value=fake):
            yield fake


@pytest.fixture(autouse=True)
def notifications():
    """Records notify() calls instead of sending email."""
    recorder = NotificationRecorder()
    with patch('seminar_api.services.notification_service.notify', recorder):
        yield recorder


@pytest.fixture(autouse=True)
def participant_sync():
    """Records participant sync requests."""
    recorder = NotificationRecorder()

    async def register(order_id):
        recorder.calls.append((order_id, "participant_sync", None))
        return True

    with patch('seminar_api.services.participant_sync_service.register_participants', register):
        yield recorder


@pytest.fixture
def cron_headers():
    return {"Authorization": "Bearer test-cron-secret"}
