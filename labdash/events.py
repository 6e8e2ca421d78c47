"""Events the controller consumes and work items it hands back to the runtime."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Mapping

from .cache import DetailSnapshot
from .status import HealthOutcome


class Key(Enum):
    UP = "up"
    DOWN = "down"
    SELECT = "select"
    ESCAPE = "escape"
    QUIT = "quit"


@dataclass(frozen=True)
class Tick:
    results: Mapping[str, HealthOutcome]


@dataclass(frozen=True)
class Input:
    key: Key


@dataclass(frozen=True)
class DetailFetched:
    service: str
    snapshot: DetailSnapshot | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.snapshot is not None


Event = Tick | Input | DetailFetched


@dataclass(frozen=True)
class ScheduleSweep:
    delay: float


@dataclass(frozen=True)
class FetchDetail:
    service: str


Work = ScheduleSweep | FetchDetail
