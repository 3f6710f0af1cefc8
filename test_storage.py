import fnmatch

import pytest
import redis

from core.storage import MemoryStorage, RedisStorage, StorageError, create_storage


class FakeRedis:
    """Just enough of the redis client for RedisStorage"""

    def __init__(self, reachable=True):
        self.data = {}
        self.reachable = reachable
        self.closed = False

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value):
        self.data[key] = value

    def delete(self, key):
        self.data.pop(key, None)

    def scan_iter(self, match):
        return [key for key in list(self.data) if fnmatch.fnmatch(key, match)]

    def ping(self):
        if not self.reachable:
            raise redis.ConnectionError("connection refused")
        return True

    def close(self):
        self.closed = True


def test_memory_storage_json_helpers():
    storage = MemoryStorage()
    storage.set_json('focusos_tasks_u1', [{'title': 'a'}])
    assert storage.get_json('focusos_tasks_u1') == [{'title': 'a'}]
    assert storage.get_json('missing', default=[]) == []

    storage.set('broken', '{oops')
    assert storage.get_json('broken', default='fallback') == 'fallback'

    storage.remove('focusos_tasks_u1')
    assert storage.get('focusos_tasks_u1') is None


def test_memory_storage_keys_by_prefix():
    storage = MemoryStorage()
    for key in ('focusos_tasks_u1', 'focusos_friends_u1', 'other'):
        storage.set(key, '1')
    assert list(storage.keys('focusos_')) == ['focusos_friends_u1', 'focusos_tasks_u1']
    assert len(storage) == 3


def test_redis_storage_namespaces_keys():
    client = FakeRedis()
    storage = RedisStorage(client, namespace='test')
    storage.set_json('focusos_moods_u1', [])
    assert 'test:focusos_moods_u1' in client.data
    assert list(storage.keys('focusos_')) == ['focusos_moods_u1']
    storage.remove('focusos_moods_u1')
    assert client.data == {}


def test_redis_storage_decodes_bytes():
    client = FakeRedis()
    client.data['focusos:k'] = b'"value"'
    assert RedisStorage(client).get_json('k') == 'value'


def test_redis_ping_failure_is_reported():
    storage = RedisStorage(FakeRedis(reachable=False))
    assert storage.ping() is False


def test_create_storage_memory_and_unknown():
    assert isinstance(create_storage({'STORAGE_BACKEND': 'memory'}), MemoryStorage)
    with pytest.raises(StorageError):
        create_storage({'STORAGE_BACKEND': 'sqlite'})


def test_create_storage_redis_fallback(monkeypatch):
    monkeypatch.setattr(RedisStorage, 'from_url',
                        classmethod(lambda cls, url, namespace='focusos': cls(FakeRedis(False), namespace)))
    storage = create_storage({'STORAGE_BACKEND': 'redis', 'REDIS_REQUIRED': False})
    assert isinstance(storage, MemoryStorage)

    with pytest.raises(StorageError):
        create_storage({'STORAGE_BACKEND': 'redis', 'REDIS_REQUIRED': True})


def test_create_storage_redis_connected(monkeypatch):
    monkeypatch.setattr(RedisStorage, 'from_url',
                        classmethod(lambda cls, url, namespace='focusos': cls(FakeRedis(), namespace)))
    storage = create_storage({'STORAGE_BACKEND': 'redis', 'STORAGE_NAMESPACE': 'app'})
    assert isinstance(storage, RedisStorage)
    assert storage.namespace == 'app'
