"""Roles and resolved identities for authorization."""

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    """Storefront roles relevant to the realtime layer."""

    USER = "user"
    ADMIN = "admin"


@dataclass(frozen=True)
class Identity:
    """Who is on the other end of a request or connection."""

    user_id: str
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN

    def to_dict(self) -> dict:
        return {"userId": self.user_id, "role": self.role.value}
