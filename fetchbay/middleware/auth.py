"""Password session authentication and dependencies.

A single shared password is exchanged for a random bearer token via
POST /api/auth. Tokens expire after the configured session TTL. With no
password configured every request is allowed and the login endpoint hands
out the fixed token ``no-auth``.
"""

import hmac
import secrets
import threading
import time
from typing import Dict, Optional

import structlog
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from fetchbay.core.logging import hash_token

logger = structlog.get_logger(__name__)

NO_AUTH_TOKEN = "no-auth"
DEFAULT_SESSION_TTL_SECONDS = 8 * 60 * 60

# FastAPI security scheme for OpenAPI docs
bearer_scheme = HTTPBearer(auto_error=False)


class InvalidPasswordError(Exception):
    """Raised when a login attempt uses the wrong password."""


class SessionAuth:
    """Issues and validates bearer session tokens.

    Expired tokens are dropped lazily when they are next presented and on
    every successful login.
    """

    def __init__(
        self,
        password: Optional[str] = None,
        session_ttl: float = DEFAULT_SESSION_TTL_SECONDS,
    ):
        """
        Initialize session authentication.

        Args:
            password: Shared password. Empty or None disables authentication.
            session_ttl: Token lifetime in seconds.
        """
        self._password = password or ""
        self.session_ttl = session_ttl
        self._sessions: Dict[str, float] = {}
        self._lock = threading.Lock()

        if not self._password:
            logger.warning("authentication_disabled", component="auth")
        else:
            logger.info("session_auth_initialized", session_ttl=session_ttl)

    @property
    def enabled(self) -> bool:
        """Check if a password is configured."""
        return bool(self._password)

    @property
    def session_count(self) -> int:
        with self._lock:
            return len(self._sessions)

    def login(self, password: Optional[str]) -> str:
        """
        Exchange the password for a new session token.

        Raises:
            InvalidPasswordError: If the password does not match.
        """
        if not self.enabled:
            return NO_AUTH_TOKEN

        candidate = (password or "").encode()
        if not hmac.compare_digest(candidate, self._password.encode()):
            raise InvalidPasswordError("Invalid password")

        token = secrets.token_hex(32)
        now = time.monotonic()
        with self._lock:
            self._purge_expired(now)
            self._sessions[token] = now + self.session_ttl

        logger.info("session_created", token_hash=hash_token(token))
        return token

    def validate(self, token: Optional[str]) -> bool:
        """Check a bearer token, dropping it if it has expired."""
        if not self.enabled:
            return True
        if not token:
            return False

        now = time.monotonic()
        with self._lock:
            expires_at = self._sessions.get(token)
            if expires_at is None:
                return False
            if expires_at <= now:
                del self._sessions[token]
                logger.info("session_expired", token_hash=hash_token(token))
                return False
        return True

    def revoke(self, token: str) -> None:
        with self._lock:
            self._sessions.pop(token, None)

    def _purge_expired(self, now: float) -> None:
        expired = [token for token, expires_at in self._sessions.items() if expires_at <= now]
        for token in expired:
            del self._sessions[token]

    def authenticate(self, request: Request, token: Optional[str]) -> None:
        """
        Authenticate a request.

        Raises:
            HTTPException: If the token is missing, unknown or expired.
        """
        if self.validate(token):
            return

        logger.warning(
            "authentication_failed",
            path=request.url.path,
            token_hash=hash_token(token) if token else "none",
            client_ip=request.client.host if request.client else "unknown",
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )


# Global auth instance (configured at startup)
_auth_instance: Optional[SessionAuth] = None


def configure_auth(
    password: Optional[str] = None,
    session_ttl: float = DEFAULT_SESSION_TTL_SECONDS,
) -> SessionAuth:
    """Configure the global auth instance."""
    global _auth_instance
    _auth_instance = SessionAuth(password=password, session_ttl=session_ttl)
    return _auth_instance


def get_auth() -> SessionAuth:
    """
    Get the global auth instance.

    Returns an open (password-less) instance if none was configured.
    """
    if _auth_instance is None:
        return SessionAuth()
    return _auth_instance


async def require_session(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),  # noqa: B008
) -> Optional[str]:
    """Require a valid session token for the route.

    Returns:
        The presented token (None when authentication is disabled and no
        header was sent).

    Raises:
        HTTPException: If authentication fails.
    """
    token = credentials.credentials if credentials else None
    get_auth().authenticate(request, token)
    return token
