from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum
import logging
import os
import secrets
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from jose import JWTError, jwt

from jurynow.config.loader import get_auth_settings

# Dedicated logger for authentication events
logger = logging.getLogger("auth_module")


class Role(str, Enum):
    ADMIN = "admin"
    JUROR = "juror"
    REQUESTER = "requester"


@dataclass(frozen=True)
class AuthenticatedIdentity:
    """Subject and role decoded from a verified access token."""

    subject: str
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


# --- Configuration ---
def generate_dev_key() -> str:
    """Generate a secure default key for development environments ONLY."""
    key = secrets.token_urlsafe(48)
    logger.warning(
        "\n"
        + "*" * 80
        + "\n"
        + "DEVELOPMENT MODE: Using generated secret key.\n"
        + "This is NOT secure for production use!\n"
        + "Set JURYNOW_JWT_SECRET_KEY in your environment variables for production.\n"
        + "*" * 80
    )
    return key


def validate_secret_key(key: str) -> bool:
    """Validate that a JWT secret key meets minimum security requirements."""
    if not key:
        return False
    if len(key) < 32:
        logger.error("JWT secret key must be at least 32 characters long for security.")
        return False
    return True


def _is_production_mode() -> bool:
    env = os.getenv("JURYNOW_ENV", "development").strip().lower()
    return env in {"production", "prod"}


_auth_settings = get_auth_settings()

SECRET_KEY = os.getenv("JURYNOW_JWT_SECRET_KEY")
ALGORITHM = "HS256"
JWT_ISSUER = _auth_settings["issuer"]
ACCESS_TOKEN_EXPIRE_MINUTES = _auth_settings["access_token_expire_minutes"]

if not SECRET_KEY:
    if _is_production_mode():
        raise RuntimeError(
            "Missing JURYNOW_JWT_SECRET_KEY while JURYNOW_ENV is set to production. "
            + "Configure a strong static secret before startup."
        )
    SECRET_KEY = generate_dev_key()
elif not validate_secret_key(SECRET_KEY):
    raise RuntimeError(
        "Invalid JWT secret key configuration. "
        + "The key must be at least 32 characters long. "
        + "Update JURYNOW_JWT_SECRET_KEY in your environment variables."
    )
else:
    logger.info("JWT secret key validated and loaded from environment.")

if ACCESS_TOKEN_EXPIRE_MINUTES > 60:
    logger.warning(
        f"Long token expiration time configured: {ACCESS_TOKEN_EXPIRE_MINUTES} minutes. "
        + "Consider reducing this value for better security."
    )


# --- Token Utilities ---


def create_access_token(
    subject: str,
    role: Role = Role.JUROR,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Creates a new JWT access token.
    The 'sub' claim is the juror id (or requester/admin id); 'role' drives access.
    """
    now = datetime.now(UTC)
    expire = now + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode = {
        "sub": subject,
        "role": Role(role).value,
        "exp": expire,
        "iat": now,
        "iss": JWT_ISSUER,
    }
    try:
        encoded_jwt = jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)
        logger.info(f"Successfully created access token for subject: {subject}")
        return encoded_jwt
    except Exception as e:
        logger.error(
            f"Error creating access token for subject {subject}: {str(e)}",
            exc_info=True,
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Could not create access token due to an internal error.",
        )


async def get_token(request: Request) -> Optional[str]:
    """
    Extracts the JWT from the Authorization header, falling back to the
    'access_token' cookie. Handles an optional 'Bearer ' prefix on either.
    """
    raw = request.headers.get("Authorization") or request.cookies.get("access_token")
    if not raw:
        logger.debug("No bearer token or 'access_token' cookie found in request.")
        return None
    if raw.startswith("Bearer "):
        return raw.split(" ", 1)[1].strip() or None
    return raw.strip() or None


def decode_access_token(token: str) -> AuthenticatedIdentity:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials. Invalid or expired token.",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(
            token,
            SECRET_KEY,
            algorithms=[ALGORITHM],
            issuer=JWT_ISSUER,
            options={"verify_aud": False},
        )
    except JWTError as e:
        logger.warning(f"JWTError during token decoding: {str(e)}")
        raise credentials_exception

    subject: Optional[str] = payload.get("sub")
    if not subject:
        logger.error("Token decoding error: 'sub' claim missing in token payload.")
        raise credentials_exception
    try:
        role = Role(payload.get("role"))
    except ValueError:
        logger.warning(f"Token for {subject} carries unknown role {payload.get('role')!r}.")
        raise credentials_exception
    return AuthenticatedIdentity(subject=subject, role=role)


# --- Identity Dependencies ---


async def get_current_identity(
    request: Request,
    token: Optional[str] = Depends(get_token),
) -> AuthenticatedIdentity:
    """
    FastAPI dependency resolving the caller from its access token.
    Raises 401 if the token is missing or invalid.
    """
    if token is None:
        logger.warning("Authentication required: No token found.")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    identity = decode_access_token(token)
    # Read by the audit middleware.
    request.state.identity = identity
    logger.debug(f"Token decoded for {identity.subject} ({identity.role.value}).")
    return identity


def require_role(*roles: Role):
    """
    FastAPI dependency factory admitting only callers holding one of `roles`.
    """
    allowed = {Role(role) for role in roles}

    async def _require_role_dependency(
        identity: AuthenticatedIdentity = Depends(get_current_identity),
    ) -> AuthenticatedIdentity:
        if identity.role not in allowed:
            logger.warning(
                f"Access denied: role '{identity.role.value}' not in "
                f"{sorted(role.value for role in allowed)} for {identity.subject}."
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access restricted. Role '{identity.role.value}' is not permitted.",
            )
        return identity

    return _require_role_dependency
