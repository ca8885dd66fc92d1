"""
Classify the requesting client as the mobile app, a web browser, or unknown.
A declared X-Client-Type header wins over User-Agent sniffing; unknown is routed as web.
"""
from enum import Enum

from verify_callback.config import APP_USER_AGENT_TOKEN


class ClientKind(str, Enum):
    MOBILE = "mobile"
    WEB = "web"
    UNKNOWN = "unknown"

    @property
    def is_mobile(self) -> bool:
        return self is ClientKind.MOBILE


_DECLARED_MOBILE = {"mobile", "app", "ios", "android"}
_DECLARED_WEB = {"web", "browser"}

# React Native / Expo HTTP stacks identify themselves in the User-Agent
_MOBILE_UA_TOKENS = ("expo", "reactnative", "okhttp")


def classify_client(
    user_agent: str | None,
    declared_client: str | None = None,
    app_token: str = APP_USER_AGENT_TOKEN,
) -> ClientKind:
    if declared_client:
        declared = declared_client.strip().lower()
        if declared in _DECLARED_MOBILE:
            return ClientKind.MOBILE
        if declared in _DECLARED_WEB:
            return ClientKind.WEB

    ua = (user_agent or "").strip().lower()
    if not ua:
        return ClientKind.UNKNOWN
    tokens = _MOBILE_UA_TOKENS + ((app_token.lower(),) if app_token else ())
    if any(t in ua for t in tokens):
        return ClientKind.MOBILE
    # Mobile browsers also say "Mobile"; only the app tokens mean the installed app
    if ua.startswith("mozilla/"):
        return ClientKind.WEB
    return ClientKind.UNKNOWN
