"""
Verification callback configuration. Values come from the environment.
Keys are credentials; nothing secret has a default here.
"""
import os

# Identity provider (Supabase project URL); OTP verify and PostgREST live under it
SUPABASE_URL = os.environ.get("SUPABASE_URL", "http://127.0.0.1:54321").rstrip("/")

# Anonymous key: used for the OTP / token-hash exchange
SUPABASE_ANON_KEY = os.environ.get("SUPABASE_ANON_KEY", "")

# Service-role key: used for profile provisioning. Falls back to the anon key when unset.
SUPABASE_SERVICE_ROLE_KEY = os.environ.get("SUPABASE_SERVICE_ROLE_KEY", "")

# HMAC secret for POST /webhook; empty = signature not enforced (warning logged)
SUPABASE_WEBHOOK_SECRET = os.environ.get("SUPABASE_WEBHOOK_SECRET", "")

# Browser redirects land on our own frontend
FRONTEND_URL = os.environ.get("FRONTEND_URL", "http://127.0.0.1:3000").rstrip("/")

# Mobile app deep-link scheme (manito://auth/verified) and its User-Agent marker
APP_SCHEME = os.environ.get("APP_SCHEME", "manito")
APP_USER_AGENT_TOKEN = os.environ.get("APP_USER_AGENT_TOKEN", "manito")

# User-facing message catalog: "es" (default) or "en"
MESSAGE_LOCALE = os.environ.get("MESSAGE_LOCALE", "es")

# Upper bound for the provider call (seconds); a timeout is a relay failure
PROVIDER_TIMEOUT_SECONDS = float(os.environ.get("PROVIDER_TIMEOUT_SECONDS", "10"))

# One-time session code lifetime (seconds). Short: the app claims it right after the redirect.
SESSION_CODE_TTL_SECONDS = int(os.environ.get("SESSION_CODE_TTL_SECONDS", "300"))

# Redis URL for the session-code store; empty = in-memory (single process only)
SESSION_STORE_URL = os.environ.get("SESSION_STORE_URL", "").strip() or None

# Background sweep of expired codes (seconds); 0 disables the timer (put still sweeps)
SESSION_SWEEP_INTERVAL_SECONDS = int(os.environ.get("SESSION_SWEEP_INTERVAL_SECONDS", "60"))

# Redirects longer than this are replaced by the generic error redirect
MAX_REDIRECT_URL_LENGTH = int(os.environ.get("MAX_REDIRECT_URL_LENGTH", "2048"))

# Rate limiting: per client IP, per minute. 0 disables.
RATE_LIMIT_VERIFY_PER_MINUTE = int(os.environ.get("RATE_LIMIT_VERIFY_PER_MINUTE", "5"))
RATE_LIMIT_RETRIEVE_PER_MINUTE = int(os.environ.get("RATE_LIMIT_RETRIEVE_PER_MINUTE", "30"))

# Verification events recorded by the webhook (SQLite for development)
DATABASE_URL = os.environ.get("VERIFY_DATABASE_URL", "sqlite:///./verify_callback.db")

# GET /verification/recent exposes the latest verified email to any caller; off unless asked for
LEGACY_RECENT_VERIFICATION_ENABLED = os.environ.get("LEGACY_RECENT_VERIFICATION_ENABLED", "false").lower() in (
    "1",
    "true",
    "yes",
)

LOG_LEVEL = os.environ.get("LOG_LEVEL", "info")

# Reverse proxies in front of us that append to X-Forwarded-For. 0 = use the socket peer only.
TRUSTED_PROXY_HOPS = int(os.environ.get("TRUSTED_PROXY_HOPS", "0"))
