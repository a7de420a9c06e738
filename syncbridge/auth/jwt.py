from jose import jwt, JWTError
from syncbridge.config import settings


def decode_access_token(token: str) -> dict | None:
    """Decode and validate a session JWT. Returns payload or None if invalid."""
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None
    if payload.get("type", "session") != "session":
        return None
    if not payload.get("sub") or not (payload.get("org_id") or payload.get("organizationId")):
        return None
    return payload
