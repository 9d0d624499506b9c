"""
Global slowapi rate limiter, keyed per tenant.

Callers are identified by the platform account behind their bearer token
(the same digest the tenant registry uses), so every client of one tenant
shares a budget. Unauthenticated requests fall back to the remote address.

Storage: RATE_LIMIT_STORAGE_URI (e.g. the service Redis). Defaults to
in-memory, which is per-process. Disabled when ENV_NAME=development.
"""
import os

from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request

from openmam.platform.client import account_key

DEFAULT_LIMITS = ["300/minute"]


def tenant_rate_key(request: Request) -> str:
    scheme, _, token = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() == "bearer" and token.strip():
        return f"account:{account_key(token.strip())}"
    return f"ip:{get_remote_address(request)}"


limiter = Limiter(
    key_func=tenant_rate_key,
    default_limits=DEFAULT_LIMITS,
    storage_uri=os.getenv("RATE_LIMIT_STORAGE_URI", "memory://"),
    enabled=os.getenv("ENV_NAME") != "development",
)
