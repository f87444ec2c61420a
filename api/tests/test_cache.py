from redis.exceptions import LockNotOwnedError

from app.core.cache import CacheClient


class FakeLock:
    def __init__(self, store: dict[str, str], name: str, timeout: int) -> None:
        self.store = store
        self.name = name
        self.timeout = timeout
        self.token: str | None = None
        self.released = False

    def acquire(self, blocking: bool = True, token: str | None = None) -> bool:
        assert blocking is False
        if self.name in self.store:
            return False
        self.store[self.name] = token
        self.token = token
        return True

    def release(self) -> None:
        if self.store.get(self.name) != self.token:
            raise LockNotOwnedError("Cannot release a lock that's no longer owned")
        del self.store[self.name]
        self.released = True


class FakeRedis:
    def __init__(self) -> None:
        self.store: dict[str, str] = {}
        self.locks: list[FakeLock] = []

    def lock(self, name: str, timeout: int, thread_local: bool = True) -> FakeLock:
        lock = FakeLock(self.store, name, timeout)
        self.locks.append(lock)
        return lock


def _redis_cache() -> tuple[CacheClient, FakeRedis]:
    cache = CacheClient()
    fake = FakeRedis()
    cache._redis = fake
    return cache, fake


def test_redis_lock_is_exclusive_until_released():
    cache, fake = _redis_cache()

    token = cache.acquire_lock("adjustment-lock:demo", 30)
    assert token is not None
    assert fake.locks[0].timeout == 30
    assert cache.acquire_lock("adjustment-lock:demo", 30) is None

    cache.release_lock("adjustment-lock:demo", token)

    assert fake.locks[0].released is True
    assert cache.acquire_lock("adjustment-lock:demo", 30) is not None


def test_redis_release_leaves_lock_taken_over_after_expiry():
    cache, fake = _redis_cache()
    token = cache.acquire_lock("adjustment-lock:demo", 30)

    fake.store["adjustment-lock:demo"] = "other-holder"
    cache.release_lock("adjustment-lock:demo", token)

    assert fake.store["adjustment-lock:demo"] == "other-holder"


def test_fallback_lock_ignores_foreign_token():
    cache = CacheClient()

    token = cache.acquire_lock("adjustment-lock:demo", 30)
    assert token is not None
    assert cache.acquire_lock("adjustment-lock:demo", 30) is None

    cache.release_lock("adjustment-lock:demo", "not-the-holder")
    assert cache.acquire_lock("adjustment-lock:demo", 30) is None

    cache.release_lock("adjustment-lock:demo", token)
    assert cache.acquire_lock("adjustment-lock:demo", 30) is not None


def test_fallback_json_entries_expire():
    cache = CacheClient()

    cache.set_json("price-options:demo", {"tags": ["sale"]}, ttl_seconds=0)

    assert cache.get_json("price-options:demo").hit is False
