"""
Email verification callback service.
GET /verify, POST /session, POST /session/retrieve, POST /webhook; optional GET /verification/recent.
Routes are thin adapters over verify_callback.handlers.
"""
import asyncio
import json
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, RedirectResponse

from verify_callback.config import (
    LEGACY_RECENT_VERIFICATION_ENABLED,
    LOG_LEVEL,
    SESSION_SWEEP_INTERVAL_SECONDS,
    SUPABASE_WEBHOOK_SECRET,
    TRUSTED_PROXY_HOPS,
)
from verify_callback.database import SessionLocal, init_db
from verify_callback.events import router as events_router
from verify_callback.handlers import (
    HandlerResult,
    Services,
    VerifyRequest,
    handle_create_session,
    handle_retrieve_session,
    handle_verify,
    handle_webhook,
)
from verify_callback.provider import IdentityProviderClient
from verify_callback.provisioning import ProfileProvisioner
from verify_callback.rate_limit import FixedWindowRateLimiter
from verify_callback.redirects import RedirectBuilder
from verify_callback.relay import VerificationRelay
from verify_callback.session_store import SessionStore, build_session_store
from verify_callback.webhook import SIGNATURE_HEADERS, WebhookProcessor

logger = logging.getLogger(__name__)


def build_services(store: SessionStore | None = None, provider: IdentityProviderClient | None = None) -> Services:
    """Wire the default collaborators from configuration."""
    store = store if store is not None else build_session_store()
    provider = provider if provider is not None else IdentityProviderClient()
    return Services(
        store=store,
        relay=VerificationRelay(provider, store, ProfileProvisioner(provider)),
        redirects=RedirectBuilder(),
        rate_limiter=FixedWindowRateLimiter(),
    )


def get_client_ip(request: Request, trusted_hops: int = TRUSTED_PROXY_HOPS) -> str | None:
    """
    Client IP for rate limiting. With trusted_hops proxies in front, the address the
    outermost trusted proxy appended to X-Forwarded-For; otherwise the socket peer.
    Entries left of that one are client-supplied and ignored.
    """
    if trusted_hops > 0:
        hops = [h.strip() for h in request.headers.get("x-forwarded-for", "").split(",") if h.strip()]
        if len(hops) >= trusted_hops:
            return hops[-trusted_hops]
    if request.client is None:
        return None
    return getattr(request.client, "host", None)


def _to_response(result: HandlerResult):
    if result.location is not None:
        return RedirectResponse(url=result.location, status_code=result.status_code, headers=result.headers or None)
    return JSONResponse(result.body, status_code=result.status_code, headers=result.headers or None)


async def _json_body(request: Request):
    """Parsed JSON body, or None when the body is empty or not JSON (handlers answer 400)."""
    raw_body = await request.body()
    try:
        return json.loads(raw_body) if raw_body else None
    except ValueError:
        return None


async def _sweep_periodically(store: SessionStore, interval: float) -> None:
    while True:
        await asyncio.sleep(interval)
        try:
            await run_in_threadpool(store.sweep)
        except Exception:
            logger.exception("Session code sweep failed")


def create_app(
    services: Services | None = None,
    webhook_processor: WebhookProcessor | None = None,
    enable_recent_verification: bool = LEGACY_RECENT_VERIFICATION_ENABLED,
    sweep_interval: float = SESSION_SWEEP_INTERVAL_SECONDS,
    trusted_proxy_hops: int = TRUSTED_PROXY_HOPS,
) -> FastAPI:
    services = services if services is not None else build_services()
    if webhook_processor is None:
        webhook_processor = WebhookProcessor(
            provisioner=services.relay.provisioner,
            session_factory=SessionLocal,
            secret=SUPABASE_WEBHOOK_SECRET,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Create tables; sweep expired session codes on a timer while running."""
        init_db()
        sweeper = None
        if sweep_interval > 0:
            sweeper = asyncio.create_task(_sweep_periodically(services.store, sweep_interval))
        try:
            yield
        finally:
            if sweeper is not None:
                sweeper.cancel()

    app = FastAPI(title="Verify Callback", version="1.0.0", lifespan=lifespan)
    app.state.services = services
    app.state.webhook_processor = webhook_processor
    if enable_recent_verification:
        app.include_router(events_router)

    @app.get("/health")
    def health():
        """Health check endpoint."""
        return {"status": "ok", "service": "verify_callback"}

    @app.get("/verify")
    def verify(
        request: Request,
        token_hash: str | None = None,
        code: str | None = None,
        type: str | None = None,
        error: str | None = None,
        error_code: str | None = None,
        error_description: str | None = None,
    ):
        """
        Verification link target. ?token_hash=&type= (or ?code=). Always redirects (302):
        deep link for the mobile app, frontend URL for browsers.
        """
        req = VerifyRequest(
            token_hash=token_hash or code,
            verification_type=type,
            user_agent=request.headers.get("user-agent"),
            declared_client=request.headers.get("x-client-type"),
            client_ip=get_client_ip(request, trusted_proxy_hops),
            error=error,
            error_code=error_code,
            error_description=error_description,
        )
        return _to_response(handle_verify(req, services))

    @app.post("/session")
    async def create_session(request: Request):
        """Issue a one-time session code for {access_token, refresh_token, expires_in, token_type}."""
        payload = await _json_body(request)
        result = await run_in_threadpool(handle_create_session, payload, services.store)
        return _to_response(result)

    @app.post("/session/retrieve")
    async def retrieve_session(request: Request):
        """Redeem a session code once: 200 tokens, 400 bad format, 404 unknown, 410 expired."""
        payload = await _json_body(request)
        client_ip = get_client_ip(request, trusted_proxy_hops)
        result = await run_in_threadpool(handle_retrieve_session, payload, services, client_ip)
        return _to_response(result)

    @app.post("/webhook")
    async def webhook(request: Request):
        """Provider user-update events; records email verifications."""
        raw_body = await request.body()
        signature = next((request.headers[h] for h in SIGNATURE_HEADERS if h in request.headers), None)
        result = await run_in_threadpool(handle_webhook, raw_body, signature, webhook_processor)
        return _to_response(result)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "verify_callback.main:app",
        host="127.0.0.1",
        port=8000,
        log_level=LOG_LEVEL,
        reload=True,
    )
