from .auth import (
    Role,
    AuthenticatedIdentity,
    create_access_token,
    decode_access_token,
    get_token,
    get_current_identity,
    require_role,
)

__all__ = [
    "Role",
    "AuthenticatedIdentity",
    "create_access_token",
    "decode_access_token",
    "get_token",
    "get_current_identity",
    "require_role",
]
