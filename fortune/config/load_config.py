from __future__ import annotations

import copy
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Mapping

from fortune.utils.logger import get_logger


logger = get_logger(__name__)


class ConfigError(RuntimeError):
    pass


DEFAULTS: dict[str, Any] = {
    # database setup
    "adapter": "sqlite",
    "host": "localhost",
    "port": None,
    "db": "fortune",
    "username": "",
    "password": "",
    "flags": {},
    # fortune options
    "base_url": "",
    "namespace": "",
    "cors": True,
    "production": False,
}

_ALIASES = {"baseUrl": "base_url"}

_TRUE = {"1", "true", "yes", "y", "on"}
_FALSE = {"0", "false", "no", "n", "off"}


def _as_bool(value: Any, *, key: str) -> bool:
    if isinstance(value, bool):
        return value
    v = str(value).strip().lower()
    if v in _TRUE:
        return True
    if v in _FALSE:
        return False
    raise ConfigError(f"Invalid bool for {key}: {value!r}")


def _as_int(value: Any, *, key: str) -> int:
    try:
        return int(value)
    except Exception as e:
        raise ConfigError(f"Invalid int for {key}: {value!r}") from e


def _normalize_namespace(value: Any) -> str:
    ns = str(value or "").strip().strip("/")
    return f"/{ns}" if ns else ""


@dataclass(frozen=True)
class FortuneOptions:
    adapter: Any = "sqlite"
    host: str = "localhost"
    port: int | None = None
    db: str = "fortune"
    username: str = ""
    password: str = ""
    flags: dict[str, Any] = field(default_factory=dict)
    base_url: str = ""
    namespace: str = ""
    cors: bool | dict[str, Any] = True
    production: bool = False

    @property
    def cors_enabled(self) -> bool:
        if isinstance(self.cors, Mapping):
            return bool(self.cors)
        return self.cors is True


def merge_options(options: Mapping[str, Any] | FortuneOptions | None = None) -> FortuneOptions:
    """Apply DEFAULTS under user options.

    Keys present in `options` are kept as given, falsy values included.
    """
    if isinstance(options, FortuneOptions):
        return options
    raw = dict(options) if isinstance(options, Mapping) else {}

    known = {f.name for f in fields(FortuneOptions)}
    merged: dict[str, Any] = {}
    for key, value in raw.items():
        key = _ALIASES.get(key, key)
        if key not in known:
            logger.warning('Unknown option "%s" ignored.', key)
            continue
        merged[key] = value

    for key, default in DEFAULTS.items():
        if key not in merged:
            merged[key] = copy.deepcopy(default)

    merged["namespace"] = _normalize_namespace(merged["namespace"])
    merged["base_url"] = str(merged["base_url"] or "").rstrip("/")
    if merged["flags"] is None:
        merged["flags"] = {}
    return FortuneOptions(**merged)


_ENV_KEYS: dict[str, str] = {
    "ADAPTER": "adapter",
    "DB": "db",
    "DB_HOST": "host",
    "DB_PORT": "port",
    "DB_USERNAME": "username",
    "DB_PASSWORD": "password",
    "BASE_URL": "base_url",
    "NAMESPACE": "namespace",
    "CORS": "cors",
    "PRODUCTION": "production",
}


def load_options_from_env(prefix: str = "FORTUNE_") -> dict[str, Any]:
    out: dict[str, Any] = {}
    for suffix, key in _ENV_KEYS.items():
        name = prefix + suffix
        raw = os.getenv(name)
        if raw is None:
            continue
        if key == "port":
            out[key] = _as_int(raw, key=name) if raw.strip() else None
        elif key in {"cors", "production"}:
            out[key] = _as_bool(raw, key=name)
        else:
            out[key] = raw
    return out


@dataclass(frozen=True)
class ResourceConfig:
    name: str
    schema: dict[str, Any]
    read_only: bool = False
    no_index: bool = False


@dataclass(frozen=True)
class AppConfig:
    options: dict[str, Any]
    resources: list[ResourceConfig]


def default_config_path() -> Path:
    return Path(os.getenv("FORTUNE_CONFIG_PATH", "config/fortune.toml")).expanduser().resolve()


def _parse_resource(name: str, raw: Any) -> ResourceConfig:
    if not isinstance(raw, Mapping):
        raise ConfigError(f"Invalid resources.{name}: expected a table")
    schema = dict(raw)
    markers = schema.pop("_options", {}) or {}
    if not isinstance(markers, Mapping):
        raise ConfigError(f"Invalid resources.{name}._options: expected a table")
    return ResourceConfig(
        name=name,
        schema=schema,
        read_only=_as_bool(markers.get("read_only", False), key=f"resources.{name}._options.read_only"),
        no_index=_as_bool(markers.get("no_index", False), key=f"resources.{name}._options.no_index"),
    )


def load_app_config(path: Path | None = None) -> AppConfig:
    cfg_path = path or default_config_path()
    if not cfg_path.exists():
        raise ConfigError(f"Config file not found: {cfg_path}")

    try:
        import tomllib  # py3.11+
    except Exception as e:
        raise ConfigError("tomllib is required (Python 3.11+).") from e

    try:
        raw = tomllib.loads(cfg_path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {cfg_path}: {e}") from e

    options: dict[str, Any] = {}
    for section in ("fortune", "database"):
        table = raw.get(section, {})
        if not isinstance(table, Mapping):
            raise ConfigError(f"Invalid [{section}]: expected a table")
        options.update(table)

    if "port" in options and options["port"] is not None:
        options["port"] = _as_int(options["port"], key="database.port")
    for key in ("cors", "production"):
        if key in options and not isinstance(options[key], Mapping):
            options[key] = _as_bool(options[key], key=f"fortune.{key}")

    resources_raw = raw.get("resources", {})
    if not isinstance(resources_raw, Mapping):
        raise ConfigError("Invalid [resources]: expected a table")
    resources = [_parse_resource(str(name), table) for name, table in resources_raw.items()]

    return AppConfig(options=options, resources=resources)
