"""
Profile provisioning after email verification. Best-effort: callers log and swallow
ProvisioningError; a verified email stays verified whatever happens here.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Callable

import httpx

from verify_callback.errors import ProvisioningError
from verify_callback.provider import IdentityProviderClient

logger = logging.getLogger(__name__)

DEFAULT_USER_TYPE = "customer"
PROVIDER_USER_TYPE = "provider"
PROVIDER_DEFAULT_DESCRIPTION = "Proveedor de servicios profesionales en Chile"

_METADATA_SOURCES = ("user_metadata", "raw_user_meta_data", "app_metadata")


def _meta(user: dict[str, Any], field: str):
    """First non-empty value of `field` in user_metadata, then raw_user_meta_data."""
    for source in ("user_metadata", "raw_user_meta_data"):
        value = (user.get(source) or {}).get(field)
        if value:
            return value
    return None


def extract_user_type(
    user: dict[str, Any],
    lookup: Callable[[str], str | None] | None = None,
) -> tuple[str, dict[str, bool]]:
    """
    Resolve the user's type from auth metadata, then an optional database lookup.
    Returns (user_type, sources) where sources records which places had a value.
    """
    sources = {s: bool((user.get(s) or {}).get("user_type")) for s in _METADATA_SOURCES}
    for source in _METADATA_SOURCES:
        if sources[source]:
            return user[source]["user_type"], sources

    sources["database_query"] = False
    if lookup is not None and user.get("id"):
        try:
            found = lookup(user["id"])
        except Exception as e:
            logger.info("user_type lookup failed for %s, using default: %s", user.get("id"), e)
            found = None
        if found:
            sources["database_query"] = True
            return found, sources
    return DEFAULT_USER_TYPE, sources


def build_profile(user: dict[str, Any], user_type: str) -> dict[str, Any]:
    now = datetime.now(timezone.utc).isoformat()
    return {
        "id": user["id"],
        "email": user.get("email"),
        "full_name": _meta(user, "full_name"),
        "user_type": user_type,
        "phone_number": _meta(user, "phone_number"),
        "display_name": _meta(user, "display_name"),
        "nombres": _meta(user, "nombres"),
        "apellidos": _meta(user, "apellidos"),
        "is_verified": True,
        "email_verified_at": user.get("email_confirmed_at"),
        "onboarding_completed": False,
        "created_at": now,
        "updated_at": now,
        "last_seen_at": now,
    }


class ProfileProvisioner:
    def __init__(self, provider: IdentityProviderClient):
        self.provider = provider

    def lookup_user_type(self, user_id: str) -> str | None:
        rows = self.provider.rest_select("users", {"id": user_id}, select="user_type")
        return rows[0].get("user_type") if rows else None

    def ensure_profile(self, user: dict[str, Any], user_type: str) -> bool:
        """
        Create the users row for a verified account if missing.
        Returns True when a profile was created, False when it already existed.
        """
        user_id = user.get("id")
        if not user_id:
            raise ProvisioningError("user has no id")
        try:
            existing = self.provider.rest_select("users", {"id": user_id}, select="id")
        except httpx.HTTPError as e:
            raise ProvisioningError(f"profile lookup failed for {user_id}: {e}") from e
        if existing:
            logger.info("Profile already exists for verified user %s", user_id)
            return False

        try:
            self.provider.rest_insert("users", build_profile(user, user_type))
        except httpx.HTTPError as e:
            raise ProvisioningError(f"profile insert failed for {user_id}: {e}") from e
        logger.info("Created profile for verified user %s (user_type=%s)", user_id, user_type)

        if user_type == PROVIDER_USER_TYPE:
            self._ensure_provider_profile(user_id)
        return True

    def _ensure_provider_profile(self, user_id: str) -> None:
        """RPC first (bypasses recursive triggers), direct insert as fallback. Never raises."""
        try:
            self.provider.rest_rpc(
                "create_provider_profile_webhook_safe",
                {"p_user_id": user_id, "p_description": PROVIDER_DEFAULT_DESCRIPTION},
            )
            logger.info("Provider profile created via RPC for %s", user_id)
            return
        except httpx.HTTPError as e:
            logger.info("Provider profile RPC unavailable (%s); using direct insert", e)

        now = datetime.now(timezone.utc).isoformat()
        try:
            self.provider.rest_insert(
                "provider_profiles",
                {
                    "user_id": user_id,
                    "business_name": None,
                    "description": PROVIDER_DEFAULT_DESCRIPTION,
                    "verification_status": "pending",
                    "created_at": now,
                    "updated_at": now,
                },
            )
            logger.info("Provider profile created via direct insert for %s", user_id)
        except httpx.HTTPError as e:
            # Can be completed during onboarding
            logger.error("Provider profile creation failed for %s: %s", user_id, e)
