from fastapi import Depends, Header, HTTPException, status
from syncbridge.auth.context import AuthContext
from syncbridge.auth.jwt import decode_access_token


def _extract_bearer_token(authorization: str | None) -> str | None:
    """Extract token from 'Bearer <token>' header."""
    if not authorization:
        return None
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return parts[1]


def auth_context_from_token(token: str | None) -> AuthContext | None:
    """Build an AuthContext from a raw session token, or None if it does not verify."""
    if not token:
        return None
    payload = decode_access_token(token)
    if not payload:
        return None
    return AuthContext(
        org_id=payload.get("org_id") or payload["organizationId"],
        user_id=payload["sub"],
        role=payload.get("role") or "DEV",
        name=payload.get("name"),
    )


async def get_current_user(authorization: str | None = Header(None)) -> AuthContext:
    """
    JWT session only auth. Tokens are issued by the host platform; this
    service only verifies them.
    """
    token = _extract_bearer_token(authorization)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authorization header",
        )

    auth = auth_context_from_token(token)
    if not auth:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired session",
        )

    return auth


def require_permission(permission_key: str):
    async def _require(auth: AuthContext = Depends(get_current_user)) -> AuthContext:
        if permission_key not in auth.permissions:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Permission required: {permission_key}",
            )
        return auth

    return _require
