from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable

HTTP_OK = 200

LOADING_MESSAGE = "loading..."
ALL_HEALTHY_MESSAGE = "all healthy"


class Health(Enum):
    REACHABLE = ("reachable", 0)
    UNREACHABLE = ("unreachable", 1)

    def __init__(self, key: str, severity: int) -> None:
        self.key = key
        self.severity = severity


def health_from_status_code(status_code: int) -> Health:
    if status_code == HTTP_OK:
        return Health.REACHABLE
    return Health.UNREACHABLE


@dataclass(frozen=True)
class HealthOutcome:
    health: Health
    status_code: int
    error: str | None = None
    latency_ms: int | None = None

    @classmethod
    def from_status_code(cls, status_code: int, *, latency_ms: int | None = None) -> HealthOutcome:
        return cls(health=health_from_status_code(status_code), status_code=status_code, latency_ms=latency_ms)

    @classmethod
    def unreachable(cls, error: str, *, latency_ms: int | None = None) -> HealthOutcome:
        return cls(health=Health.UNREACHABLE, status_code=0, error=error, latency_ms=latency_ms)

    @property
    def ok(self) -> bool:
        return self.health is Health.REACHABLE


def aggregate_status(outcomes: Iterable[tuple[str, HealthOutcome | None]]) -> str:
    """Status line for a sweep, naming the first unhealthy service in registry order."""
    for name, outcome in outcomes:
        if outcome is None or not outcome.ok:
            return f"{name} might be having issues..."
    return ALL_HEALTHY_MESSAGE
