"""
FastAPI dependencies shared by every router.

Callers authenticate with their own Open Source Cloud personal access token
(``Authorization: Bearer <token>``). The token is not validated locally: the
platform rejects it on first use, which surfaces as 503/401 from the tenant
resolution below.
"""
from __future__ import annotations

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from openmam.config import Settings
from openmam.exceptions import NotAuthenticated, PlatformUnavailable
from openmam.platform.exceptions import PlatformError
from openmam.task_queue import PipelineQueue
from openmam.tenancy import TenantHandles, TenantRegistry

http_bearer = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_registry(request: Request) -> TenantRegistry:
    return request.app.state.registry


def get_pipeline_queue(request: Request) -> PipelineQueue | None:
    """The ARQ pipeline queue, or None when pipelines run in-process."""
    return getattr(request.app.state, "pipeline_queue", None)


async def get_platform_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(http_bearer),
) -> str:
    if not credentials or not credentials.credentials:
        raise NotAuthenticated()
    return credentials.credentials


async def get_tenant(
    token: str = Depends(get_platform_token),
    registry: TenantRegistry = Depends(get_registry),
) -> TenantHandles:
    try:
        return await registry.resolve(token)
    except PlatformError as exc:
        if exc.status_code in (401, 403):
            raise NotAuthenticated()
        raise PlatformUnavailable()
