"""Actor identity passed into every engine operation."""

from dataclasses import dataclass
from typing import Any, Optional

from .enums import Role


@dataclass(frozen=True)
class Actor:
    """
    Who is issuing a command, and in which role.

    The engine trusts this value. Authentication and authorization belong to
    the caller (see views.get_actor for the HTTP path).
    """
    user: Any
    role: str

    def __post_init__(self):
        object.__setattr__(self, "role", Role(self.role))

    @property
    def user_id(self):
        return getattr(self.user, "pk", None)


def actor_user(actor: Optional[Actor]):
    """Return the user behind an actor, or None."""
    return actor.user if actor is not None else None


def actor_role(actor: Optional[Actor]) -> str:
    return actor.role if actor is not None else ""
