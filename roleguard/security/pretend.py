from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum

from roleguard.core.config import PretendSettings


class EntryPoint(StrEnum):
    IS = "is"
    CAN = "can"
    ALLOWED = "allowed"
    HAS = "has"


@dataclass(slots=True)
class PretendMode:
    """Canned answers for test harnesses that need no backing store."""

    enabled: bool = False
    options: dict[str, bool] = field(default_factory=dict)

    @classmethod
    def from_settings(cls, settings: PretendSettings) -> PretendMode:
        return cls(enabled=settings.enabled, options=dict(settings.options))

    def answer(self, entry_point: EntryPoint | str) -> bool:
        return bool(self.options.get(str(entry_point), False))
