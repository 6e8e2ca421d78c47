from __future__ import annotations

from typing import Iterator

from .config import AppConfig, ServiceConfig
from .sources import Integration, build_integration


class ServiceRegistry:
    """Ordered, read-only collection of monitored services keyed by name."""

    def __init__(self, integrations: list[Integration]) -> None:
        names = [i.name for i in integrations]
        if len(set(names)) != len(names):
            raise ValueError("Service names must be unique.")
        self._integrations = tuple(integrations)
        self._by_name = {i.name: i for i in integrations}

    @classmethod
    def from_services(cls, services: list[ServiceConfig]) -> ServiceRegistry:
        return cls([build_integration(s) for s in services])

    @classmethod
    def from_config(cls, cfg: AppConfig) -> ServiceRegistry:
        return cls.from_services(cfg.services)

    def __iter__(self) -> Iterator[Integration]:
        return iter(self._integrations)

    def __len__(self) -> int:
        return len(self._integrations)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    @property
    def names(self) -> list[str]:
        return [i.name for i in self._integrations]

    def get(self, name: str) -> Integration | None:
        return self._by_name.get(name)

    def at(self, index: int) -> Integration:
        return self._integrations[index]
