from dataclasses import dataclass
from syncbridge.auth.permissions import normalize_role, permissions_for_role


@dataclass
class AuthContext:
    """Identity of a signed-in user, taken from a session token issued by the host platform."""
    org_id: str
    user_id: str
    role: str
    name: str | None = None
    permissions: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        self.role = normalize_role(self.role)
        if self.permissions:
            self.permissions = tuple(sorted(set(self.permissions)))
            return
        self.permissions = tuple(sorted(permissions_for_role(self.role)))
