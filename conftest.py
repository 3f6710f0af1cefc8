import pytest

from app import create_app
from core.data_store import DataStore
from core.storage import MemoryStorage


class FakeClock:
    """Manually advanced epoch-seconds clock"""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def app():
    app = create_app('testing')
    yield app
    app.extensions['focusos']['storage'].close()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth_client(client):
    response = client.post('/api/auth/login', json={
        'email': 'maya@example.com',
        'password': 'anything'
    })
    assert response.status_code == 200
    client.user = response.get_json()['user']
    return client


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def store(storage):
    data_store = DataStore(storage, 'user-1')
    data_store.load()
    return data_store


@pytest.fixture
def clock():
    return FakeClock()
