"""
Pytest fixtures for ardent_auth. Each test gets its own SQLite file under tmp_path and a fake
Frontier behind httpx.MockTransport, so nothing touches the network.
"""
import pytest

from ardent_auth.cache_store import CacheStore
from ardent_auth.config import load_settings
from ardent_auth.database import Database
from ardent_auth.frontier import FrontierClient
from ardent_auth.token_store import TokenStore
from fakes import Clock, FakeFrontier


@pytest.fixture
def settings(tmp_path):
    return load_settings(
        environ={},
        environment="test",
        database_url=f"sqlite:///{tmp_path / 'auth.db'}",
        jwt_secret="test-jwt-secret",
        client_id="test-client",
        auth_base_url="https://auth.example",
        www_base_url="https://www.example",
    )


@pytest.fixture
def db(settings):
    database = Database(settings.database_url, busy_timeout_ms=settings.busy_timeout_ms)
    database.init_db()
    yield database
    database.close()


@pytest.fixture
def token_store(db):
    return TokenStore(db)


@pytest.fixture
def cache_store(db):
    return CacheStore(db)


@pytest.fixture
def fake_frontier():
    return FakeFrontier()


@pytest.fixture
def frontier(settings, fake_frontier):
    client = FrontierClient(settings, http=fake_frontier.client())
    yield client
    client.close()


@pytest.fixture
def clock():
    return Clock()
