from __future__ import annotations

from dataclasses import dataclass

from showspot_messaging.domain.value_objects.enums import EntityType


@dataclass(frozen=True, slots=True)
class EntityRef:
    """Typed identifier of a messaging participant."""

    id: str
    type: EntityType

    @property
    def key(self) -> str:
        return f"{self.type}:{self.id}"

    @property
    def is_spotter(self) -> bool:
        return self.type == EntityType.SPOTTER

    @classmethod
    def spotter(cls, spotter_id: str) -> EntityRef:
        return cls(id=spotter_id, type=EntityType.SPOTTER)


def conversation_key(a: EntityRef, b: EntityRef) -> str:
    """Order-independent key for the pair of participants."""
    first, second = sorted((a.key, b.key))
    return f"{first}|{second}"
