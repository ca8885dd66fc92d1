"""
Redirect targets for verification outcomes.

Mobile app: deep link (manito://auth/verified?... or manito://auth/error?...).
Browser: our frontend. Errors go in the query string (safe to log); token payloads
go in the fragment, which browsers never send to servers.
"""
import logging
import re
from dataclasses import dataclass
from urllib.parse import urlencode

from verify_callback.client_kind import ClientKind
from verify_callback.config import APP_SCHEME, FRONTEND_URL, MAX_REDIRECT_URL_LENGTH
from verify_callback.errors import RedirectTooLongError
from verify_callback.session_store import SessionTokens

logger = logging.getLogger(__name__)

MAX_PARAM_LENGTH = 200
_UNSAFE_CHARS = re.compile(r"[<>\"'&\x00-\x1f\x7f]")


def sanitize_param(value):
    """Strip markup and control characters, cap the length. Non-strings pass through."""
    if not isinstance(value, str):
        return value
    return _UNSAFE_CHARS.sub("", value)[:MAX_PARAM_LENGTH]


@dataclass(frozen=True)
class SuccessOutcome:
    """Either a one-time session code or the raw token bundle (mobile, or fallback)."""

    verification_type: str | None = None
    session_code: str | None = None
    tokens: SessionTokens | None = None
    # Provider session expiry (epoch seconds), forwarded to the app
    expires_at: int | None = None


@dataclass(frozen=True)
class ErrorOutcome:
    message: str
    code: str


class RedirectBuilder:
    def __init__(
        self,
        frontend_url: str = FRONTEND_URL,
        app_scheme: str = APP_SCHEME,
        max_length: int = MAX_REDIRECT_URL_LENGTH,
    ):
        self.frontend_url = frontend_url.rstrip("/")
        self.app_scheme = app_scheme
        self.max_length = max_length

    def build(self, outcome: SuccessOutcome | ErrorOutcome, client_kind: ClientKind) -> str:
        if isinstance(outcome, ErrorOutcome):
            params = {
                "type": "error",
                "error": sanitize_param(outcome.message),
                "error_code": sanitize_param(outcome.code),
            }
            if client_kind.is_mobile:
                url = f"{self.app_scheme}://auth/error?{urlencode(params)}"
            else:
                url = f"{self.frontend_url}/?{urlencode(params)}"
            logger.info("Redirecting %s client with error %s", client_kind.value, params["error_code"])
        elif client_kind.is_mobile:
            params = self._success_params(outcome)
            params.update({"auth_method": "email", "flow_type": "pkce", "verified": "true"})
            url = f"{self.app_scheme}://auth/verified?{urlencode(params)}"
            logger.info("Redirecting mobile client to deep link (has_tokens=%s)", outcome.tokens is not None)
        else:
            params = {"type": "success"}
            params.update(self._success_params(outcome))
            params["flow"] = "pkce"
            url = f"{self.frontend_url}/#{urlencode(params)}"
            logger.info(
                "Redirecting browser to frontend (session_code=%s)", outcome.session_code is not None
            )

        # Cap applies to browser URLs only; deep links carry full-size provider tokens
        if not client_kind.is_mobile and len(url) > self.max_length:
            raise RedirectTooLongError(f"Redirect URL is {len(url)} chars (max {self.max_length})")
        return url

    def _success_params(self, outcome: SuccessOutcome) -> dict[str, str]:
        params: dict[str, str] = {}
        if outcome.session_code:
            params["session_code"] = outcome.session_code
        if outcome.tokens is not None:
            tokens = outcome.tokens
            # Token values are opaque: never sanitized
            params["access_token"] = tokens.access_token
            params["refresh_token"] = tokens.refresh_token
            params["expires_in"] = str(tokens.expires_in if tokens.expires_in is not None else 3600)
            params["token_type"] = sanitize_param(tokens.token_type or "bearer")
            if outcome.expires_at is not None:
                params["expires_at"] = str(outcome.expires_at)
        if outcome.verification_type:
            params["verification_type"] = sanitize_param(outcome.verification_type)
        return params

    def generic_error_url(self, client_kind: ClientKind = ClientKind.WEB) -> str:
        """Last-resort redirect when building the real one failed."""
        if client_kind.is_mobile:
            return f"{self.app_scheme}://auth/error?type=error&error=invalid_request&error_code=server_error"
        return f"{self.frontend_url}/?error=invalid_request&type=error"
