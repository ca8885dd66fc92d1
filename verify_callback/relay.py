"""
Verification relay: forwards the email token hash to the identity provider, provisions
the profile (best-effort), and decides how the session reaches the client.
"""
import logging
from dataclasses import dataclass
from typing import Any

from verify_callback.claims import user_from_claims
from verify_callback.client_kind import ClientKind
from verify_callback.codes import code_preview
from verify_callback.errors import ProviderError, VerificationError, VerificationReason
from verify_callback.provider import IdentityProviderClient
from verify_callback.provisioning import ProfileProvisioner, extract_user_type
from verify_callback.redirects import SuccessOutcome
from verify_callback.session_store import SessionStore, SessionTokens

logger = logging.getLogger(__name__)

VERIFICATION_TYPES = {"signup", "invite", "magiclink", "recovery", "email_change", "email"}
DEFAULT_VERIFICATION_TYPE = "email"
MIN_TOKEN_HASH_LENGTH = 10

# New accounts get a profile; recovery / email change do not
PROVISIONED_TYPES = {"signup", "email"}


@dataclass(frozen=True)
class VerifiedSession:
    user: dict[str, Any]
    tokens: SessionTokens
    expires_at: int | None = None


class VerificationRelay:
    def __init__(
        self,
        provider: IdentityProviderClient,
        store: SessionStore,
        provisioner: ProfileProvisioner | None = None,
    ):
        self.provider = provider
        self.store = store
        self.provisioner = provisioner

    def verify(self, token_hash: str | None, verification_type: str | None = None) -> VerifiedSession:
        """
        Exchange a token hash for a session. Raises VerificationError for bad input and
        ProviderError when the provider rejects or fails the exchange.
        """
        if not token_hash:
            raise VerificationError(VerificationReason.INVALID_LINK, "missing token_hash/code")
        if len(token_hash) < MIN_TOKEN_HASH_LENGTH:
            raise VerificationError(VerificationReason.INVALID_LINK, f"token hash too short ({len(token_hash)})")
        verification_type = verification_type or DEFAULT_VERIFICATION_TYPE
        if verification_type not in VERIFICATION_TYPES:
            raise VerificationError(VerificationReason.INVALID_LINK, f"unsupported type {verification_type!r}")

        data = self.provider.verify_otp(token_hash, verification_type)
        session = data.get("session") if isinstance(data.get("session"), dict) else data
        access_token = session.get("access_token")
        refresh_token = session.get("refresh_token")
        if not access_token or not refresh_token:
            raise ProviderError(VerificationReason.SERVER_ERROR, "verification succeeded but no session was returned")

        user = data.get("user") or session.get("user") or user_from_claims(access_token)
        tokens = SessionTokens(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=session.get("expires_in"),
            token_type=session.get("token_type") or "bearer",
            verification_type=verification_type,
        )
        logger.info(
            "Email verification succeeded for user %s (token %s, type=%s)",
            user.get("id", "unknown"),
            code_preview(token_hash),
            verification_type,
        )

        if verification_type in PROVISIONED_TYPES:
            self._provision(user)
        return VerifiedSession(user=user, tokens=tokens, expires_at=session.get("expires_at"))

    def _provision(self, user: dict[str, Any]) -> None:
        if self.provisioner is None or not user.get("id"):
            return
        try:
            user_type, _ = extract_user_type(user, lookup=self.provisioner.lookup_user_type)
            self.provisioner.ensure_profile(user, user_type)
        except Exception as e:
            logger.warning("Profile provisioning failed for %s (non-fatal): %s", user.get("id"), e)

    def handoff(self, session: VerifiedSession, client_kind: ClientKind) -> SuccessOutcome:
        """
        Mobile app: raw tokens straight into the deep link.
        Browser: a one-time session code; raw tokens in the fragment if the store fails.
        """
        if client_kind.is_mobile:
            return SuccessOutcome(
                verification_type=session.tokens.verification_type,
                tokens=session.tokens,
                expires_at=session.expires_at,
            )
        try:
            issued = self.store.put(session.tokens)
        except Exception as e:
            logger.warning("Session code creation failed, falling back to direct tokens: %s", e)
            return SuccessOutcome(
                verification_type=session.tokens.verification_type,
                tokens=session.tokens,
                expires_at=session.expires_at,
            )
        return SuccessOutcome(verification_type=session.tokens.verification_type, session_code=issued.code)
