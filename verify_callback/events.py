"""
Verification events recorded by the webhook, and the legacy lookup of the most recent one
(GET /verification/recent). Events are short-lived and hold no tokens.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from verify_callback.database import get_db
from verify_callback.models import VerificationEvent

logger = logging.getLogger(__name__)

EVENT_EMAIL_VERIFIED = "email_verified"
EVENT_EMAIL_VERIFIED_AUTH_WEBHOOK = "email_verified_auth_webhook"

EVENT_TTL = timedelta(minutes=15)
EVENT_RETENTION = timedelta(hours=1)
RECENT_WINDOW = timedelta(minutes=15)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything we store is UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value: str | None) -> datetime:
    """Provider timestamps are ISO 8601; fall back to now for anything unparseable."""
    if value:
        try:
            return _as_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
        except ValueError:
            logger.debug("Unparseable timestamp %r; using now", value)
    return datetime.now(timezone.utc)


def record_verification_event(
    db: Session,
    *,
    user_id: str,
    user_email: str,
    verified_at: str | None,
    event_type: str,
    metadata: dict[str, Any],
) -> VerificationEvent:
    now = datetime.now(timezone.utc)
    event = VerificationEvent(
        user_id=user_id,
        user_email=user_email,
        verified_at=parse_timestamp(verified_at),
        event_type=event_type,
        event_metadata=metadata,
        expires_at=now + EVENT_TTL,
        created_at=now,
    )
    db.add(event)
    db.commit()
    logger.info("Verification event stored for user %s (%s)", user_id, event_type)
    return event


def purge_old_events(db: Session, older_than: timedelta = EVENT_RETENTION) -> int:
    cutoff = datetime.now(timezone.utc) - older_than
    deleted = (
        db.query(VerificationEvent)
        .filter(VerificationEvent.created_at < cutoff)
        .delete(synchronize_session=False)
    )
    db.commit()
    if deleted:
        logger.info("Purged %d old verification events", deleted)
    return deleted


def get_recent_verification(db: Session, window: timedelta = RECENT_WINDOW) -> dict[str, Any] | None:
    """Most recent unexpired event verified within the window, or None."""
    now = datetime.now(timezone.utc)
    event = (
        db.query(VerificationEvent)
        .filter(VerificationEvent.expires_at > now)
        .filter(VerificationEvent.verified_at >= now - window)
        .order_by(VerificationEvent.verified_at.desc())
        .first()
    )
    if event is None:
        return None
    verified_at = _as_utc(event.verified_at)
    minutes_ago = (now - verified_at).total_seconds() / 60
    return {
        "success": True,
        "email": event.user_email,
        "verified_at": verified_at.isoformat(),
        "minutes_ago": round(minutes_ago, 1),
        "event_type": event.event_type,
        "metadata": event.event_metadata,
    }


router = APIRouter(tags=["verification"])


@router.get("/verification/recent")
def recent_verification(db: Session = Depends(get_db)):
    """Legacy device-agnostic lookup: latest verified email in the last 15 minutes."""
    result = get_recent_verification(db)
    if result is None:
        return JSONResponse(
            {"error": "No recent verification found", "message": "No email verification in the last 15 minutes"},
            status_code=404,
        )
    return result
