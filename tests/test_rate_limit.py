import asyncio

import pytest
import redis
from fastapi import HTTPException
from starlette.requests import Request

from trustgrid import rate_limit


class FakePipeline:
    def __init__(self, backend):
        self.backend = backend
        self.ops = []

    def __getattr__(self, name):
        def queue(*args, **kwargs):
            self.ops.append((name, args, kwargs))
        return queue

    def execute(self):
        if self.backend.down:
            raise redis.ConnectionError("connection reset")
        return [getattr(self.backend, name)(*args, **kwargs) for name, args, kwargs in self.ops]


class FakeRedis:
    """Sorted sets as lists of (member, score); duplicate members are kept."""

    def __init__(self):
        self.sets = {}
        self.down = False

    def pipeline(self):
        return FakePipeline(self)

    def zremrangebyscore(self, key, low, high):
        entries = self.sets.get(key, [])
        kept = [e for e in entries if not low <= e[1] <= high]
        self.sets[key] = kept
        return len(entries) - len(kept)

    def zcard(self, key):
        return len(self.sets.get(key, []))

    def zadd(self, key, mapping):
        self.sets.setdefault(key, []).extend(mapping.items())
        return len(mapping)

    def expire(self, key, seconds):
        return True

    def zrange(self, key, start, end, withscores=False):
        entries = sorted(self.sets.get(key, []), key=lambda e: e[1])
        return entries[start:end + 1]


def _request(ip="1.2.3.4"):
    return Request({"type": "http", "client": (ip, 1234), "headers": []})


@pytest.fixture
def fake_redis(monkeypatch):
    fake = FakeRedis()
    monkeypatch.setattr(rate_limit, "_get_redis", lambda: fake)
    monkeypatch.setattr(rate_limit.settings, "VERIFY_RATE_LIMIT", 2)
    monkeypatch.setattr(rate_limit.settings, "COLLECT_RATE_LIMIT", 2)
    return fake


def _verify(token, ip="1.2.3.4"):
    asyncio.run(rate_limit.rate_limit_verify(_request(ip), token))


def _collect(handle, ip="1.2.3.4"):
    asyncio.run(rate_limit.rate_limit_collect(_request(ip), handle))


def test_verify_limit_returns_429_with_retry_after(fake_redis):
    _verify("tok-a")
    _verify("tok-a")
    with pytest.raises(HTTPException) as exc:
        _verify("tok-a")
    assert exc.value.status_code == 429
    assert int(exc.value.headers["Retry-After"]) >= 1


def test_verify_counts_each_link_separately(fake_redis):
    _verify("tok-a", ip="10.0.0.1")
    _verify("tok-a", ip="10.0.0.2")

    # a fresh client still cannot keep hitting the same link
    with pytest.raises(HTTPException):
        _verify("tok-a", ip="10.0.0.3")

    _verify("tok-b", ip="10.0.0.4")


def test_verify_caps_token_guessing_per_client(fake_redis):
    _verify("guess-1")
    _verify("guess-2")
    with pytest.raises(HTTPException):
        _verify("guess-3")


def test_collect_is_counted_per_wall(fake_redis):
    _collect("acme")
    _collect("ACME")
    with pytest.raises(HTTPException) as exc:
        _collect("acme")
    assert exc.value.status_code == 429

    _collect("other-wall")
    _collect("acme", ip="5.6.7.8")


def test_rate_key_hides_raw_values():
    key = rate_limit._rate_key("verify-token", "secret-token")
    assert key.startswith("rl:verify-token:")
    assert "secret-token" not in key


def test_fails_open_without_redis(monkeypatch):
    monkeypatch.setattr(rate_limit, "_get_redis", lambda: None)
    for _ in range(50):
        _verify("tok-a")
        _collect("acme")


def test_fails_open_on_redis_error(fake_redis):
    fake_redis.down = True
    for _ in range(5):
        _verify("tok-a")
        _collect("acme")
