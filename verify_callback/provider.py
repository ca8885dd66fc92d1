"""
Identity provider (Supabase GoTrue + PostgREST) client.
verify_otp exchanges an email token hash for a session; rest_* helpers back profile provisioning.
Every call carries a timeout; a timeout is a provider failure, never a hang.
"""
import logging
from typing import Any

import httpx

from verify_callback.codes import code_preview
from verify_callback.config import (
    PROVIDER_TIMEOUT_SECONDS,
    SUPABASE_ANON_KEY,
    SUPABASE_SERVICE_ROLE_KEY,
    SUPABASE_URL,
)
from verify_callback.errors import ProviderError, VerificationReason

logger = logging.getLogger(__name__)


def classify_provider_error(error_code: str | None, message: str | None) -> VerificationReason:
    """Map a provider rejection onto a user-facing category."""
    code = (error_code or "").lower()
    msg = (message or "").lower()
    if code in ("otp_expired", "flow_state_expired") or "expired" in msg or "invalid" in msg:
        return VerificationReason.EXPIRED_LINK
    if code == "email_exists" or "already" in msg or "confirmed" in msg:
        return VerificationReason.ALREADY_VERIFIED
    if code == "user_not_found" or "not found" in msg:
        return VerificationReason.USER_NOT_FOUND
    return VerificationReason.SERVER_ERROR


def classify_callback_error(error: str, error_code: str | None = None) -> VerificationReason:
    """Errors the provider forwards on the callback URL (?error=...&error_code=...)."""
    if error == "server_error":
        if error_code == "unexpected_failure":
            return VerificationReason.EXPIRED_LINK
        return VerificationReason.SERVER_ERROR
    if error == "invalid_request":
        return VerificationReason.INVALID_LINK
    if error == "access_denied":
        return VerificationReason.EXPIRED_LINK
    return VerificationReason.SERVER_ERROR


def _error_from_response(r: httpx.Response) -> ProviderError:
    try:
        body = r.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}
    error_code = body.get("error_code") or body.get("error")
    message = body.get("msg") or body.get("message") or body.get("error_description") or r.text
    # Bad API key or provider outage: not the user's link
    if r.status_code == 401 or r.status_code >= 500:
        reason = VerificationReason.SERVER_ERROR
    else:
        reason = classify_provider_error(error_code, message)
    return ProviderError(reason, detail=f"{r.status_code} {error_code}: {message}", status_code=r.status_code)


class IdentityProviderClient:
    def __init__(
        self,
        base_url: str = SUPABASE_URL,
        anon_key: str = SUPABASE_ANON_KEY,
        service_role_key: str = SUPABASE_SERVICE_ROLE_KEY,
        timeout: float = PROVIDER_TIMEOUT_SECONDS,
    ):
        self.base_url = base_url.rstrip("/")
        self.anon_key = anon_key
        self.service_role_key = service_role_key or anon_key
        self.timeout = timeout

    def _headers(self, key: str) -> dict[str, str]:
        return {
            "apikey": key,
            "Authorization": f"Bearer {key}",
            "Accept": "application/json",
        }

    def verify_otp(self, token_hash: str, verification_type: str) -> dict[str, Any]:
        """
        POST /auth/v1/verify with a token hash. Returns the provider's session payload
        (access_token, refresh_token, expires_in, expires_at, token_type, user).
        Raises ProviderError on rejection, transport failure or timeout.
        """
        logger.info("Verifying token hash %s (type=%s)", code_preview(token_hash), verification_type)
        try:
            r = httpx.post(
                f"{self.base_url}/auth/v1/verify",
                json={"type": verification_type, "token_hash": token_hash},
                headers=self._headers(self.anon_key),
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            raise ProviderError(VerificationReason.SERVER_ERROR, detail=f"timeout after {self.timeout}s: {e}")
        except httpx.HTTPError as e:
            raise ProviderError(VerificationReason.SERVER_ERROR, detail=f"transport error: {e}")

        if r.status_code != 200:
            raise _error_from_response(r)
        try:
            data = r.json()
        except ValueError:
            raise ProviderError(VerificationReason.SERVER_ERROR, detail="non-JSON verify response")
        if not isinstance(data, dict):
            raise ProviderError(VerificationReason.SERVER_ERROR, detail="unexpected verify response shape")
        return data

    # --- PostgREST (service role) ---

    def rest_select(self, table: str, filters: dict[str, str], select: str = "*") -> list[dict[str, Any]]:
        params = {"select": select, **{k: f"eq.{v}" for k, v in filters.items()}}
        r = httpx.get(
            f"{self.base_url}/rest/v1/{table}",
            params=params,
            headers=self._headers(self.service_role_key),
            timeout=self.timeout,
        )
        r.raise_for_status()
        return r.json()

    def rest_insert(self, table: str, row: dict[str, Any]) -> None:
        headers = self._headers(self.service_role_key)
        headers["Prefer"] = "return=minimal"
        r = httpx.post(
            f"{self.base_url}/rest/v1/{table}",
            json=row,
            headers=headers,
            timeout=self.timeout,
        )
        r.raise_for_status()

    def rest_rpc(self, function: str, args: dict[str, Any]) -> Any:
        r = httpx.post(
            f"{self.base_url}/rest/v1/rpc/{function}",
            json=args,
            headers=self._headers(self.service_role_key),
            timeout=self.timeout,
        )
        r.raise_for_status()
        return r.json() if r.content else None
