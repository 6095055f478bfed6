"""Authentication API endpoints."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, status

from langcms.api.deps import get_settings
from langcms.config import Settings
from langcms.schemas.auth import TokenRequest, TokenResponse
from langcms.services.auth_service import authenticate_admin, issue_admin_token
from langcms.services.rate_limit_service import FailureRateLimiter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _get_client_ip(request: Request) -> str:
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",", maxsplit=1)[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def _raise_if_limited(limiter: FailureRateLimiter, key: str) -> None:
    retry_after = limiter.retry_after(key)
    if retry_after:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many failed token requests",
            headers={"Retry-After": str(retry_after)},
        )


@router.post("/token", response_model=TokenResponse)
async def issue_token(
    body: TokenRequest,
    request: Request,
    settings: Annotated[Settings, Depends(get_settings)],
) -> TokenResponse:
    """Exchange admin credentials for a bearer access token."""
    limiter: FailureRateLimiter = request.app.state.rate_limiter
    client_key = f"token:{_get_client_ip(request)}"
    _raise_if_limited(limiter, client_key)

    if not authenticate_admin(settings, body.username, body.password):
        limiter.record_failure(client_key)
        logger.warning("Rejected token request for %r from %s", body.username, client_key)
        _raise_if_limited(limiter, client_key)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid username or password",
        )

    limiter.reset(client_key)
    return TokenResponse(
        access_token=issue_admin_token(settings),
        expires_in=settings.access_token_expire_minutes * 60,
    )
