from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Principal:
    """Authenticated identity extracted from a validated JWT.

    user_id: subject claim, the platform's numeric user id as a string
    roles: platform roles (admin, instructor, student)
    """

    user_id: str
    roles: frozenset[str]

    def has_any_role(self, roles: set[str]) -> bool:
        return bool(self.roles & roles)

    @property
    def actor_id(self) -> int | None:
        """Subject as an integer id; None when it is not a plain number."""
        if not self.user_id.isdecimal():
            return None
        return int(self.user_id)
