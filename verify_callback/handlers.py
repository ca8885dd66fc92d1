"""
Request handlers as plain functions: structured request in, HandlerResult out.
main.py binds them to HTTP; tests call them directly.
"""
import json
import logging
from dataclasses import dataclass, field
from typing import Any

from verify_callback.client_kind import classify_client
from verify_callback.codes import code_preview
from verify_callback.config import RATE_LIMIT_RETRIEVE_PER_MINUTE, RATE_LIMIT_VERIFY_PER_MINUTE
from verify_callback.errors import SessionCodeError, VerificationError, VerificationReason
from verify_callback.messages import message_for
from verify_callback.provider import classify_callback_error
from verify_callback.rate_limit import FixedWindowRateLimiter
from verify_callback.redirects import ErrorOutcome, RedirectBuilder, SuccessOutcome
from verify_callback.relay import VerificationRelay
from verify_callback.session_store import SessionStore, SessionTokens
from verify_callback.webhook import WebhookProcessor, verify_signature

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HandlerResult:
    status_code: int
    body: dict[str, Any] | None = None
    location: str | None = None
    headers: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class VerifyRequest:
    token_hash: str | None = None
    verification_type: str | None = None
    user_agent: str | None = None
    declared_client: str | None = None
    client_ip: str | None = None
    # Errors the provider forwards on the callback URL
    error: str | None = None
    error_code: str | None = None
    error_description: str | None = None


@dataclass
class Services:
    store: SessionStore
    relay: VerificationRelay
    redirects: RedirectBuilder
    rate_limiter: FixedWindowRateLimiter
    verify_limit: int = RATE_LIMIT_VERIFY_PER_MINUTE
    retrieve_limit: int = RATE_LIMIT_RETRIEVE_PER_MINUTE


def _error_outcome(reason: VerificationReason) -> ErrorOutcome:
    return ErrorOutcome(message=message_for(reason), code=reason.value)


def handle_verify(req: VerifyRequest, services: Services) -> HandlerResult:
    """GET /verify: always answers with a 302, to a deep link or the frontend."""
    client_kind = classify_client(req.user_agent, req.declared_client)
    logger.info(
        "Email verification request: token=%s type=%s client=%s",
        code_preview(req.token_hash),
        req.verification_type,
        client_kind.value,
    )

    outcome: SuccessOutcome | ErrorOutcome
    allowed, _ = services.rate_limiter.check_and_consume(f"verify:{req.client_ip or 'unknown'}", services.verify_limit)
    if not allowed:
        logger.warning("Verify rate limit exceeded for %s", req.client_ip)
        outcome = _error_outcome(VerificationReason.RATE_LIMITED)
    elif req.error:
        reason = classify_callback_error(req.error, req.error_code)
        logger.warning(
            "Provider returned error on callback: error=%s error_code=%s description=%s",
            req.error,
            req.error_code,
            req.error_description,
        )
        outcome = _error_outcome(reason)
    else:
        try:
            session = services.relay.verify(req.token_hash, req.verification_type)
            outcome = services.relay.handoff(session, client_kind)
        except VerificationError as e:
            logger.warning("Verification failed (%s): %s", e.reason.value, e.detail)
            outcome = _error_outcome(e.reason)
        except Exception:
            logger.exception("Unexpected email verification error")
            outcome = _error_outcome(VerificationReason.SERVER_ERROR)

    try:
        location = services.redirects.build(outcome, client_kind)
    except Exception:
        logger.exception("Failed to build redirect; using generic error redirect")
        location = services.redirects.generic_error_url(client_kind)
    return HandlerResult(status_code=302, location=location)


def handle_create_session(payload: Any, store: SessionStore) -> HandlerResult:
    """POST /session: issue a one-time code for a token bundle."""
    if not isinstance(payload, dict):
        return HandlerResult(400, {"error": "Request body must be a JSON object"})
    try:
        issued = store.put(SessionTokens.from_mapping(payload))
    except SessionCodeError as e:
        return HandlerResult(e.status_code, {"error": str(e)})
    except Exception:
        logger.exception("Error creating session code")
        return HandlerResult(500, {"error": "Failed to create secure session code"})
    return HandlerResult(200, {"session_code": issued.code, "expires_at": issued.expires_at_ms})


def handle_retrieve_session(
    payload: Any,
    services: Services,
    client_ip: str | None = None,
) -> HandlerResult:
    """POST /session/retrieve: redeem a one-time code (delete-on-read)."""
    allowed, retry_after = services.rate_limiter.check_and_consume(
        f"retrieve:{client_ip or 'unknown'}", services.retrieve_limit
    )
    if not allowed:
        logger.warning("Session retrieve rate limit exceeded for %s", client_ip)
        return HandlerResult(429, {"error": "Too many requests"}, headers={"Retry-After": str(retry_after)})

    code = payload.get("session_code") if isinstance(payload, dict) else None
    try:
        tokens = services.store.take(code)
    except SessionCodeError as e:
        logger.info("Session code %s rejected: %s", code_preview(code if isinstance(code, str) else None), e)
        return HandlerResult(e.status_code, {"error": str(e)})
    except Exception:
        logger.exception("Error retrieving tokens from session code")
        return HandlerResult(500, {"error": "Failed to retrieve session tokens"})
    return HandlerResult(200, tokens.to_response())


def handle_webhook(raw_body: bytes, signature: str | None, processor: WebhookProcessor) -> HandlerResult:
    """POST /webhook: signature check, then event processing."""
    if not verify_signature(raw_body, signature, processor.secret):
        logger.error("Invalid webhook signature")
        return HandlerResult(401, {"error": "Invalid signature"})
    try:
        event = json.loads(raw_body or b"null")
    except ValueError:
        return HandlerResult(400, {"error": "Invalid JSON body"})
    if not isinstance(event, dict):
        return HandlerResult(400, {"error": "Invalid webhook payload"})
    try:
        processor.process(event)
    except Exception:
        logger.exception("Webhook processing error")
        return HandlerResult(500, {"error": "Internal server error"})
    return HandlerResult(
        200,
        {"success": True, "message": "Webhook processed successfully", "eventType": event.get("type")},
    )
