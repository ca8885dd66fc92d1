"""Tests for the in-memory one-time session-code store."""
import re
import threading
import time

import pytest

from verify_callback.errors import ExpiredError, NotFoundError, ValidationError
from verify_callback.session_store import InMemorySessionStore, SessionTokens


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _tokens(**overrides) -> SessionTokens:
    data = {
        "access_token": "a" * 60,
        "refresh_token": "b" * 20,
        "expires_in": 3600,
        "token_type": "bearer",
        "type": "signup",
    }
    data.update(overrides)
    return SessionTokens.from_mapping(data)


def test_put_returns_64_char_hex_code():
    store = InMemorySessionStore()
    issued = store.put(_tokens())
    assert re.fullmatch(r"[0-9a-f]{64}", issued.code)


def test_put_then_take_returns_same_bundle():
    store = InMemorySessionStore()
    tokens = _tokens()
    issued = store.put(tokens)
    assert store.take(issued.code) == tokens


def test_codes_are_unique():
    store = InMemorySessionStore()
    codes = {store.put(_tokens()).code for _ in range(50)}
    assert len(codes) == 50


def test_second_take_is_not_found():
    store = InMemorySessionStore()
    issued = store.put(_tokens())
    store.take(issued.code)
    with pytest.raises(NotFoundError):
        store.take(issued.code)


def test_take_unknown_code_is_not_found():
    store = InMemorySessionStore()
    with pytest.raises(NotFoundError):
        store.take("0" * 64)


def test_end_to_end_expires_at_is_five_minutes_ahead():
    """a*60 / b*20 bundle: 64-hex code, expires_at ~ now + 300000 ms, single redemption."""
    store = InMemorySessionStore()
    before_ms = int(time.time() * 1000)
    issued = store.put(
        SessionTokens.from_mapping(
            {"access_token": "a" * 60, "refresh_token": "b" * 20, "expires_in": 3600, "token_type": "bearer"}
        )
    )
    assert len(issued.code) == 64
    assert abs(issued.expires_at_ms - (before_ms + 300_000)) < 2_000
    tokens = store.take(issued.code)
    assert tokens.access_token == "a" * 60
    assert tokens.refresh_token == "b" * 20
    assert tokens.expires_in == 3600
    assert tokens.token_type == "bearer"
    with pytest.raises(NotFoundError):
        store.take(issued.code)


def test_expired_code_raises_expired_then_not_found():
    clock = FakeClock()
    store = InMemorySessionStore(ttl_seconds=300, clock=clock)
    issued = store.put(_tokens())
    clock.advance(301)
    with pytest.raises(ExpiredError):
        store.take(issued.code)
    with pytest.raises(NotFoundError):
        store.take(issued.code)


def test_code_still_valid_at_exact_expiry():
    clock = FakeClock()
    store = InMemorySessionStore(ttl_seconds=300, clock=clock)
    issued = store.put(_tokens())
    clock.advance(300)
    assert store.take(issued.code).access_token == "a" * 60


def test_put_without_refresh_token_stores_nothing():
    store = InMemorySessionStore()
    with pytest.raises(ValidationError):
        store.put(_tokens(refresh_token=None))
    assert len(store) == 0


@pytest.mark.parametrize(
    "overrides",
    [
        {"access_token": None},
        {"access_token": ""},
        {"access_token": "short"},
        {"access_token": 12345},
        {"refresh_token": "1234567"},
        {"refresh_token": ["b" * 20]},
    ],
)
def test_put_rejects_malformed_tokens(overrides):
    store = InMemorySessionStore()
    with pytest.raises(ValidationError):
        store.put(_tokens(**overrides))
    assert len(store) == 0


@pytest.mark.parametrize("code", ["", "abc", "0" * 63, "0" * 65, None, 42])
def test_take_rejects_wrong_length_without_touching_store(code):
    store = InMemorySessionStore()
    store.put(_tokens())
    with pytest.raises(ValidationError):
        store.take(code)
    assert len(store) == 1


def test_sweep_removes_only_expired_entries():
    clock = FakeClock()
    store = InMemorySessionStore(ttl_seconds=300, clock=clock)
    old = store.put(_tokens())
    clock.advance(200)
    fresh = store.put(_tokens())
    clock.advance(150)
    assert store.sweep() == 1
    assert len(store) == 1
    with pytest.raises(NotFoundError):
        store.take(old.code)
    assert store.take(fresh.code).refresh_token == "b" * 20


def test_put_sweeps_expired_entries():
    clock = FakeClock()
    store = InMemorySessionStore(ttl_seconds=300, clock=clock)
    store.put(_tokens())
    clock.advance(301)
    store.put(_tokens())
    assert len(store) == 1


def test_concurrent_take_only_one_succeeds():
    store = InMemorySessionStore()
    issued = store.put(_tokens())
    barrier = threading.Barrier(2)
    results = []
    lock = threading.Lock()

    def worker():
        barrier.wait()
        try:
            tokens = store.take(issued.code)
            outcome = ("ok", tokens)
        except NotFoundError as e:
            outcome = ("not_found", e)
        with lock:
            results.append(outcome)

    threads = [threading.Thread(target=worker) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    kinds = sorted(r[0] for r in results)
    assert kinds == ["not_found", "ok"]


def test_many_concurrent_takes_single_winner():
    store = InMemorySessionStore()
    issued = store.put(_tokens())
    successes = []
    failures = []

    def worker():
        try:
            successes.append(store.take(issued.code))
        except NotFoundError:
            failures.append(1)

    threads = [threading.Thread(target=worker) for _ in range(16)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert len(successes) == 1
    assert len(failures) == 15


def test_tokens_response_uses_type_key():
    tokens = _tokens()
    assert tokens.to_response() == {
        "access_token": "a" * 60,
        "refresh_token": "b" * 20,
        "expires_in": 3600,
        "token_type": "bearer",
        "type": "signup",
    }
