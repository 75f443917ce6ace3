# pharmacy_pos/utils/auth.py
"""
Identity of the operator logged in at this terminal.

Login itself happens elsewhere; the POS core only needs to know who is
operating so sales are stamped with ``created_by`` and the today's-sales
list can be narrowed to the operator's own sales.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class OperatorContext:
    user_id: Optional[int] = None
    username: str = ""
    role: str = "user"

    @classmethod
    def from_user(cls, current_user: dict | None) -> "OperatorContext":
        """Build from the ``current_user`` dict the login dialog hands to controllers."""
        if not current_user:
            return cls()
        uid = current_user.get("user_id")
        return cls(
            user_id=int(uid) if uid is not None else None,
            username=str(current_user.get("username") or ""),
            role=str(current_user.get("role") or "user"),
        )

    @property
    def current_operator_id(self) -> Optional[int]:
        return self.user_id

