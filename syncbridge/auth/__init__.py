from syncbridge.auth.context import AuthContext
from syncbridge.auth.dependencies import (
    auth_context_from_token,
    get_current_user,
    require_permission,
)
from syncbridge.auth.sync_key import require_sync_key

__all__ = [
    "AuthContext",
    "auth_context_from_token",
    "get_current_user",
    "require_permission",
    "require_sync_key",
]
