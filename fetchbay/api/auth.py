"""Login endpoint.

- POST /api/auth exchanges the shared password for a bearer token
"""

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, status

from fetchbay.api.schemas import AuthRequest, AuthResponse
from fetchbay.core.errors import ErrorCode
from fetchbay.core.metrics import MetricsCollector
from fetchbay.core.rate_limiter import RateLimiter, get_rate_limiter
from fetchbay.middleware.auth import InvalidPasswordError, SessionAuth, get_auth

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api", tags=["auth"])


@router.post(
    "/auth",
    response_model=AuthResponse,
    responses={
        401: {"description": "Invalid password"},
        429: {"description": "Too many login attempts"},
    },
)
async def login(
    body: AuthRequest,
    request: Request,
    auth: SessionAuth = Depends(get_auth),  # noqa: B008
    limiter: RateLimiter = Depends(get_rate_limiter),  # noqa: B008
) -> AuthResponse:
    """
    Log in with the shared password.

    Returns the token ``no-auth`` when no password is configured. Attempts
    are rate limited per client address.
    """
    client_ip = request.client.host if request.client else "unknown"

    allowed, retry_after = limiter.check(client_ip)
    if not allowed:
        MetricsCollector.record_login_throttled()
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={
                "error_code": ErrorCode.RATE_LIMIT_EXCEEDED,
                "message": "Too many login attempts",
            },
            headers={"Retry-After": str(int(retry_after) + 1)},
        )

    try:
        token = auth.login(body.password)
    except InvalidPasswordError:
        logger.warning("login_failed", client_ip=client_ip)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error_code": ErrorCode.AUTH_FAILED, "message": "Invalid password"},
        )

    logger.info("login_succeeded", client_ip=client_ip, auth_enabled=auth.enabled)
    return AuthResponse(token=token)
