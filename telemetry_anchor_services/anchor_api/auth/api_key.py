"""Header-based guards for the public and internal endpoints.

SECURITY: in production ANCHOR_API_KEY and INTERNAL_JOB_KEY must be set.
"""

from __future__ import annotations

import hmac
import logging
import os

from fastapi import Header, HTTPException, Request

logger = logging.getLogger(__name__)


def _is_production() -> bool:
    return os.getenv("ENVIRONMENT") == "production"


def _matches(given: str, expected: str) -> bool:
    return hmac.compare_digest(given.encode("utf-8"), expected.encode("utf-8"))


def require_api_key(
    request: Request,
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
) -> None:
    """Validate the API key. Without a configured key, access is open (dev only)."""
    expected = request.app.state.container.settings.api_key

    if not expected:
        if _is_production():
            logger.error("CRITICAL: ANCHOR_API_KEY not configured in production!")
            raise HTTPException(status_code=500, detail="Server misconfiguration: API key not set")
        logger.debug("[SECURITY] ANCHOR_API_KEY not set - allowing unauthenticated access")
        return

    if not x_api_key:
        raise HTTPException(status_code=401, detail="API key required")

    if not _matches(x_api_key, expected):
        logger.warning("[SECURITY] Invalid API key attempt from request")
        raise HTTPException(status_code=401, detail="Invalid API key")


def require_internal_key(
    request: Request,
    x_internal_key: str | None = Header(default=None, alias="x-internal-key"),
    x_inernal_key: str | None = Header(default=None, alias="x-inernal-key"),
) -> None:
    """Guard for job-only endpoints. The misspelled header is still sent by older jobs."""
    expected = request.app.state.container.settings.internal_job_key
    if not expected:
        logger.error("[SECURITY] INTERNAL_JOB_KEY not configured - internal endpoint disabled")
        raise HTTPException(status_code=503, detail="Internal endpoint not configured")

    given = x_internal_key or x_inernal_key
    if not given or not _matches(given, expected):
        logger.warning("[SECURITY] Rejected internal call with missing or wrong key")
        raise HTTPException(status_code=401, detail="Unauthorized")


def current_user_id(x_user_id: str | None = Header(default=None, alias="X-User-Id")) -> str:
    """User id asserted by the upstream auth gateway."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="User identity required")
    return x_user_id.strip()
