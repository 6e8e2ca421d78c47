from __future__ import annotations

import os
import re
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

DEFAULT_CONFIG_PATH = ".labdash.toml"
DEFAULT_TITLE = "labdash"
DEFAULT_INTERVAL_SECONDS = 30.0
DEFAULT_FRESHNESS_SECONDS = 60.0
DEFAULT_TIMEOUT_SECONDS = 10.0

SERVICE_TYPES = {"http", "pihole", "sonarr"}

_ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class ServiceConfig:
    name: str
    url: str
    description: str = ""
    type: str = "http"
    auth_header: str | None = None
    auth_key: str | None = None
    basic_auth_username: str | None = None
    basic_auth_password: str | None = None

    @property
    def header_auth(self) -> tuple[str, str] | None:
        if self.auth_header and self.auth_key:
            return self.auth_header, self.auth_key
        return None

    @property
    def basic_auth(self) -> tuple[str, str] | None:
        if self.basic_auth_username:
            return self.basic_auth_username, self.basic_auth_password or ""
        return None


@dataclass(frozen=True)
class AppConfig:
    title: str
    interval_seconds: float
    freshness_seconds: float
    timeout_seconds: float
    services: list[ServiceConfig]


def _interpolate_env(value: str) -> str:
    # ${VAR} keeps the literal when unset; ${VAR:-default} falls back.
    def _replace(match: re.Match[str]) -> str:
        expr = match.group(1)
        if ":-" in expr:
            var_name, default = expr.split(":-", 1)
            return os.environ.get(var_name.strip(), default)
        return os.environ.get(expr.strip(), match.group(0))

    return _ENV_VAR_PATTERN.sub(_replace, value)


def _opt_str(svc: dict[str, Any], key: str) -> str | None:
    raw = svc.get(key)
    if raw is None:
        return None
    value = _interpolate_env(str(raw)).strip()
    return value or None


def _positive(raw: dict[str, Any], key: str, default: float) -> float:
    value = raw.get(key, default)
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"'{key}' must be a number, got {value!r}.") from None
    if number <= 0:
        raise ConfigError(f"'{key}' must be greater than zero, got {value!r}.")
    return number


def _parse_service(i: int, svc: Any) -> ServiceConfig:
    if not isinstance(svc, dict):
        raise ConfigError(f"Service config at index {i} must be a table.")
    name = str(svc.get("name", "")).strip()
    url = _interpolate_env(str(svc.get("url", ""))).strip()
    if not name or not url:
        raise ConfigError(f"Service config at index {i} must include 'name' and 'url'.")
    stype = str(svc.get("type") or "http").strip().lower()
    if stype not in SERVICE_TYPES:
        known = ", ".join(sorted(SERVICE_TYPES))
        raise ConfigError(f"Service '{name}' has unknown type '{stype}' (expected one of: {known}).")
    return ServiceConfig(
        name=name,
        url=url,
        description=str(svc.get("description") or "").strip(),
        type=stype,
        auth_header=_opt_str(svc, "auth_header"),
        auth_key=_opt_str(svc, "auth_key"),
        basic_auth_username=_opt_str(svc, "basic_auth_username"),
        basic_auth_password=_opt_str(svc, "basic_auth_password"),
    )


def parse_config(raw: dict[str, Any]) -> AppConfig:
    services_raw = raw.get("services", [])
    if not isinstance(services_raw, list) or not services_raw:
        raise ConfigError("Config must include a non-empty [[services]] list.")

    services: list[ServiceConfig] = []
    seen: set[str] = set()
    for i, svc in enumerate(services_raw):
        service = _parse_service(i, svc)
        if service.name in seen:
            raise ConfigError(f"Duplicate service name '{service.name}'; names must be unique.")
        seen.add(service.name)
        services.append(service)

    return AppConfig(
        title=str(raw.get("title") or DEFAULT_TITLE),
        interval_seconds=_positive(raw, "interval", DEFAULT_INTERVAL_SECONDS),
        freshness_seconds=_positive(raw, "freshness", DEFAULT_FRESHNESS_SECONDS),
        timeout_seconds=_positive(raw, "timeout", DEFAULT_TIMEOUT_SECONDS),
        services=services,
    )


def load_config(path: Path) -> AppConfig:
    if not path.exists():
        raise ConfigError(f"Config file {path} does not exist.")
    try:
        with path.open("rb") as fh:
            raw = tomllib.load(fh)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Failed to decode config file {path}: {exc}") from exc
    return parse_config(raw)
