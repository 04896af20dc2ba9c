import pytest
from fastapi.testclient import TestClient

from app.core.config import Settings
from app.dependencies.storage import get_subscription_store, get_user_directory
from app.main import create_app
from app.services.subscription_store import SubscriptionStore
from tests.fakes import FakeDirectory, FakeSupabase

TEST_SETTINGS = Settings(
    supabase_url="https://example.supabase.co",
    supabase_service_role_key="service-role-key",
)


@pytest.fixture
def fake_db():
    return FakeSupabase()


@pytest.fixture
def store(fake_db):
    return SubscriptionStore(fake_db)


@pytest.fixture
def directory():
    return FakeDirectory()


@pytest.fixture
def app(store, directory):
    application = create_app(TEST_SETTINGS)
    application.dependency_overrides[get_subscription_store] = lambda: store
    application.dependency_overrides[get_user_directory] = lambda: directory
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def anyio_backend():
    return "asyncio"
