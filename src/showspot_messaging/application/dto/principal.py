from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Principal:
    """Authenticated account extracted from JWT."""

    account_id: str

    @property
    def principal_key(self) -> str:
        """Unique key for WS connection registry."""
        return f"account:{self.account_id}"
