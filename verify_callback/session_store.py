"""
One-time session-code store: code -> token bundle, single use, short TTL.
put() issues a code, take() returns and deletes it, sweep() evicts expired entries.

InMemorySessionStore is for a single process (and tests); RedisSessionStore survives
restarts and is shared between instances.
"""
import json
import logging
import threading
import time
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Callable

import redis

from verify_callback.codes import code_preview, generate_session_code, is_well_formed_code
from verify_callback.config import SESSION_CODE_TTL_SECONDS, SESSION_STORE_URL
from verify_callback.errors import ExpiredError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

# Plausibility floor for provider tokens (JWT access token, opaque refresh token)
MIN_ACCESS_TOKEN_LENGTH = 50
MIN_REFRESH_TOKEN_LENGTH = 8

# Redis keeps entries a little past expiry so a late take() reports "expired", not "not found"
REDIS_EXPIRY_GRACE_SECONDS = 60


@dataclass(frozen=True)
class SessionTokens:
    access_token: str
    refresh_token: str
    expires_in: int | None = None
    token_type: str | None = None
    verification_type: str | None = None

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> "SessionTokens":
        """Build from a request/provider payload; `type` is the verification type."""
        return cls(
            access_token=data.get("access_token"),
            refresh_token=data.get("refresh_token"),
            expires_in=data.get("expires_in"),
            token_type=data.get("token_type"),
            verification_type=data.get("type", data.get("verification_type")),
        )

    def to_response(self) -> dict[str, Any]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_in": self.expires_in,
            "token_type": self.token_type,
            "type": self.verification_type,
        }


@dataclass(frozen=True)
class IssuedSessionCode:
    code: str
    expires_at: float  # epoch seconds

    @property
    def expires_at_ms(self) -> int:
        return int(self.expires_at * 1000)


@dataclass
class _Entry:
    tokens: SessionTokens
    expires_at: float

    def expired(self, now: float) -> bool:
        return now > self.expires_at


def validate_tokens(tokens: SessionTokens) -> None:
    """Raise ValidationError unless both tokens are present and plausibly sized."""
    if not tokens.access_token or not tokens.refresh_token:
        raise ValidationError("Missing required tokens")
    if not isinstance(tokens.access_token, str) or len(tokens.access_token) < MIN_ACCESS_TOKEN_LENGTH:
        raise ValidationError("Invalid access token format")
    if not isinstance(tokens.refresh_token, str) or len(tokens.refresh_token) < MIN_REFRESH_TOKEN_LENGTH:
        raise ValidationError("Invalid refresh token format")


def validate_code(code) -> None:
    if not is_well_formed_code(code):
        raise ValidationError("Invalid session code format")


class SessionStore:
    """Interface shared by the in-memory and Redis stores."""

    ttl_seconds: int

    def put(self, tokens: SessionTokens) -> IssuedSessionCode:
        raise NotImplementedError

    def take(self, code: str) -> SessionTokens:
        raise NotImplementedError

    def sweep(self) -> int:
        raise NotImplementedError


class InMemorySessionStore(SessionStore):
    """Mutex-guarded dict. Codes are lost on restart and not shared across processes."""

    def __init__(self, ttl_seconds: int = SESSION_CODE_TTL_SECONDS, clock: Callable[[], float] = time.time):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, _Entry] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def put(self, tokens: SessionTokens) -> IssuedSessionCode:
        validate_tokens(tokens)
        code = generate_session_code()
        expires_at = self._clock() + self.ttl_seconds
        with self._lock:
            self._entries[code] = _Entry(tokens=tokens, expires_at=expires_at)
        logger.info(
            "Created session code %s (expires %s)",
            code_preview(code),
            datetime.fromtimestamp(expires_at, timezone.utc).isoformat(),
        )
        self.sweep()
        return IssuedSessionCode(code=code, expires_at=expires_at)

    def take(self, code: str) -> SessionTokens:
        validate_code(code)
        with self._lock:
            entry = self._entries.pop(code, None)
        if entry is None:
            raise NotFoundError("Session code not found")
        if entry.expired(self._clock()):
            logger.info("Session code %s expired before retrieval", code_preview(code))
            raise ExpiredError("Session code expired")
        logger.info("Session code %s redeemed", code_preview(code))
        return entry.tokens

    def sweep(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [c for c, e in self._entries.items() if e.expired(now)]
            for c in expired:
                del self._entries[c]
        if expired:
            logger.info("Cleaned up %d expired session codes", len(expired))
        return len(expired)


class RedisSessionStore(SessionStore):
    """
    Redis-backed store. Entries carry their own expires_at and a native TTL slightly
    longer than it; take() uses GETDEL so only one caller can ever read a code.
    """

    def __init__(
        self,
        redis_client,
        ttl_seconds: int = SESSION_CODE_TTL_SECONDS,
        key_prefix: str = "session_code:",
        clock: Callable[[], float] = time.time,
    ):
        self.redis = redis_client
        self.ttl_seconds = ttl_seconds
        self.key_prefix = key_prefix
        self._clock = clock

    def _key(self, code: str) -> str:
        return f"{self.key_prefix}{code}"

    def put(self, tokens: SessionTokens) -> IssuedSessionCode:
        validate_tokens(tokens)
        code = generate_session_code()
        expires_at = self._clock() + self.ttl_seconds
        value = json.dumps({"tokens": asdict(tokens), "expires_at": expires_at})
        self.redis.set(self._key(code), value, ex=self.ttl_seconds + REDIS_EXPIRY_GRACE_SECONDS)
        logger.info("Created session code %s in redis (ttl=%ss)", code_preview(code), self.ttl_seconds)
        return IssuedSessionCode(code=code, expires_at=expires_at)

    def take(self, code: str) -> SessionTokens:
        validate_code(code)
        raw = self.redis.getdel(self._key(code))
        if not raw:
            raise NotFoundError("Session code not found")
        data = json.loads(raw)
        if self._clock() > float(data["expires_at"]):
            logger.info("Session code %s expired before retrieval", code_preview(code))
            raise ExpiredError("Session code expired")
        logger.info("Session code %s redeemed", code_preview(code))
        return SessionTokens(**data["tokens"])

    def sweep(self) -> int:
        # Redis evicts expired keys on its own
        return 0


def build_session_store(url: str | None = SESSION_STORE_URL) -> SessionStore:
    """Redis when a URL is configured, otherwise the in-memory store."""
    if url:
        logger.info("Using redis session store")
        return RedisSessionStore(redis.Redis.from_url(url))
    logger.info("Using in-memory session store (single process only)")
    return InMemorySessionStore()
