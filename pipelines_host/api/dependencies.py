"""
================================================================================
FILE: pipelines_host/api/dependencies.py
================================================================================

PURPOSE:
FastAPI dependency injection functions, injected into route handlers via
Depends():
- Configuration access
- Container / lifecycle manager / dispatcher access
- Admin authentication (Authorization: Bearer <API_KEY>)

DEPENDENCY CHAIN:
get_settings()
├─ Used by: admin endpoints, /models
get_http_client()
├─ Depends on: get_settings (download timeout)
├─ Used by: /pipelines/add
get_container()
├─ Used by: get_registry, get_lifecycle, get_dispatcher
require_admin()
├─ Depends on: get_settings
├─ Used by: /pipelines/add, /pipelines/upload, /pipelines/delete,
│           /pipelines/reload

KEY FACTS:
- Settings and container live on app.state (set by the lifespan in main.py)
- Override in tests with app.dependency_overrides[...] if needed
"""
#================================================================================
#IMPORTS
#================================================================================

import logging
import secrets
from typing import AsyncIterator, Optional

import httpx
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from pipelines_host.config.settings import Settings
from pipelines_host.container.service_container import ServiceContainer
from pipelines_host.core.exceptions import AuthenticationError
from pipelines_host.pipeline.dispatcher import ExecutionDispatcher
from pipelines_host.pipeline.lifecycle import LifecycleManager
from pipelines_host.pipeline.registry import PipelineRegistry

logger = logging.getLogger(__name__)

_bearer_scheme = HTTPBearer(auto_error=False)

#================================================================================
#DEPENDENCY FUNCTIONS
#================================================================================

async def get_settings(request: Request) -> Settings:
    """
    Get application settings.

    Raises:
        HTTPException: If settings not initialized (startup failed)
    """
    settings = getattr(request.app.state, "settings", None)
    if settings is None:
        logger.error("Settings not available on app.state")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Service initialization failed",
        )
    return settings


async def get_container(request: Request) -> ServiceContainer:
    """
    Get the ServiceContainer built at startup.

    Raises:
        HTTPException: If container initialization failed
    """
    container = getattr(request.app.state, "container", None)
    if container is None:
        logger.error("Container not available on app.state")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service container not initialized",
        )
    return container


async def get_registry(container: ServiceContainer = Depends(get_container)) -> PipelineRegistry:
    return container.get_registry()


async def get_lifecycle(container: ServiceContainer = Depends(get_container)) -> LifecycleManager:
    return container.get_lifecycle()


async def get_dispatcher(container: ServiceContainer = Depends(get_container)) -> ExecutionDispatcher:
    return container.get_dispatcher()


async def require_admin(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
    settings: Settings = Depends(get_settings),
) -> None:
    """
    Admin routes need Authorization: Bearer <API_KEY>.

    Raises:
        AuthenticationError: header missing or key mismatch (401)
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Missing bearer token")
    if not secrets.compare_digest(credentials.credentials, settings.api_key):
        logger.warning("Rejected admin request with an invalid API key")
        raise AuthenticationError()


async def get_http_client(settings: Settings = Depends(get_settings)) -> AsyncIterator[httpx.AsyncClient]:
    """Per-request httpx client for pipeline downloads."""
    async with httpx.AsyncClient(timeout=settings.download_timeout, follow_redirects=True) as client:
        yield client
