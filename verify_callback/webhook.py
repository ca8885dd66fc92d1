"""
Provider webhook (POST /webhook): detects unverified -> verified transitions, provisions the
profile best-effort and records a verification event for the legacy lookup.

Two payload shapes are accepted:
  database webhook: {"type": "UPDATE", "table": "users", "record": {...}, "old_record": {...}}
  auth webhook:     {"type": "auth.user.updated", "user": {...}}
"""
import hashlib
import hmac
import logging
from typing import Any, Callable

from sqlalchemy.orm import Session

from verify_callback.events import (
    EVENT_EMAIL_VERIFIED,
    EVENT_EMAIL_VERIFIED_AUTH_WEBHOOK,
    purge_old_events,
    record_verification_event,
)
from verify_callback.provisioning import ProfileProvisioner, extract_user_type

logger = logging.getLogger(__name__)

SIGNATURE_HEADERS = ("x-webhook-signature", "webhook-signature")


def compute_signature(raw_body: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()


def verify_signature(raw_body: bytes, signature: str | None, secret: str) -> bool:
    """Hex HMAC-SHA256 of the raw body, constant-time compare. No secret configured = accept."""
    if not secret:
        return True
    if not signature:
        return False
    return hmac.compare_digest(compute_signature(raw_body, secret), signature.strip().lower())


def detect_verified_user(event: dict[str, Any]) -> tuple[dict[str, Any], str, str] | None:
    """
    Return (user, event_type, verification_method) when the event shows a freshly
    verified email, else None.
    """
    event_type = event.get("type")
    if event_type == "UPDATE" and event.get("table") == "users":
        user = event.get("record") or {}
        old = event.get("old_record") or {}
        if not old.get("email_confirmed_at") and user.get("email_confirmed_at") and user.get("email"):
            return user, EVENT_EMAIL_VERIFIED, "email_link"
        return None
    if event_type == "auth.user.updated":
        user = event.get("user") or {}
        # No previous state in this shape; provisioning is idempotent
        if user.get("email_confirmed_at") and user.get("email"):
            return user, EVENT_EMAIL_VERIFIED_AUTH_WEBHOOK, "auth_webhook"
    return None


def _full_name(user: dict[str, Any]) -> str:
    for source in ("user_metadata", "raw_user_meta_data"):
        name = (user.get(source) or {}).get("full_name")
        if name:
            return name
    return user["email"].split("@")[0]


class WebhookProcessor:
    def __init__(
        self,
        provisioner: ProfileProvisioner | None,
        session_factory: Callable[[], Session],
        secret: str = "",
    ):
        self.provisioner = provisioner
        self.session_factory = session_factory
        self.secret = secret
        if not secret:
            logger.warning("SUPABASE_WEBHOOK_SECRET not set; webhook signatures are not enforced")

    def process(self, event: dict[str, Any]) -> bool:
        """Handle one event. Returns True when a verification was detected and recorded."""
        detected = detect_verified_user(event)
        logger.info("Webhook received: type=%s verified=%s", event.get("type"), detected is not None)
        if detected is None:
            return False
        user, event_type, method = detected
        lookup = self.provisioner.lookup_user_type if self.provisioner else None
        user_type, sources = extract_user_type(user, lookup=lookup)
        logger.info("Email verification detected for user %s (user_type=%s)", user.get("id"), user_type)

        if self.provisioner is not None:
            try:
                self.provisioner.ensure_profile(user, user_type)
            except Exception as e:
                logger.error("Profile creation after verification failed for %s: %s", user.get("id"), e)

        db = self.session_factory()
        try:
            record_verification_event(
                db,
                user_id=str(user.get("id", "")),
                user_email=user["email"],
                verified_at=user.get("email_confirmed_at"),
                event_type=event_type,
                metadata={
                    "user_type": user_type,
                    "full_name": _full_name(user),
                    "verification_method": method,
                    "metadata_sources_checked": sources,
                },
            )
            if event_type == EVENT_EMAIL_VERIFIED:
                purge_old_events(db)
        finally:
            db.close()
        return True
