"""
HTTP write guard: API key, origin allow-list and user-agent check.

Applied as a dependency to every POST under /api/. GET endpoints are public.
"""

from __future__ import annotations

import hmac

from fastapi import Depends, Request

from backend_bossraid.api_server.deps import get_settings_dep
from backend_bossraid.bossraid_logging import get_logger
from backend_bossraid.config.settings import Settings
from backend_bossraid.core.exceptions import UnauthorizedError

logger = get_logger(__name__)

API_KEY_HEADER = "x-api-key"


def check_write_access(
    api_key: str | None,
    origin: str | None,
    user_agent: str | None,
    settings: Settings,
) -> None:
    """Raise UnauthorizedError unless the request may write."""
    if not settings.api_key or not api_key or not hmac.compare_digest(api_key, settings.api_key):
        raise UnauthorizedError("Unauthorized - Invalid API Key")
    if origin and origin not in settings.allowed_origins:
        raise UnauthorizedError("Unauthorized - Invalid Origin")
    if not user_agent or len(user_agent) < settings.min_user_agent_length:
        raise UnauthorizedError("Unauthorized - Invalid User Agent")


def require_write_access(
    request: Request,
    settings: Settings = Depends(get_settings_dep),
) -> None:
    """Dependency for write endpoints."""
    try:
        check_write_access(
            request.headers.get(API_KEY_HEADER),
            request.headers.get("origin"),
            request.headers.get("user-agent"),
            settings,
        )
    except UnauthorizedError as e:
        logger.warning(
            "write_rejected",
            path=request.url.path,
            reason=e.message,
            client=request.client.host if request.client else None,
        )
        raise
