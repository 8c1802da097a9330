"""
In-process session records for clients that cannot persist a user id.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict


@dataclass(slots=True)
class UserSession:
    """Session payload bound to an ephemeral user id."""

    user_id: str
    last_access: datetime
    data: Dict[str, Any] = field(default_factory=dict)

    def touch(self, now: datetime) -> None:
        self.last_access = now


__all__ = ["UserSession"]
