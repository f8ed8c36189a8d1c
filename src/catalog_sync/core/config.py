"""Configuration loading, validation, and access."""

from __future__ import annotations

import os
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from catalog_sync.core.exceptions import ConfigError

_KNOWN_KINDS = ("http", "warehouse")
_CONFIG_ENV = "CATALOG_SYNC_CONFIG"
_DEFAULT_CONFIG = Path("catalog-sync.yml")
_BOOL_WORDS = {"true": True, "false": False}


class SourceConfig(BaseModel):
    """One upstream provider as declared in the config file."""

    model_config = ConfigDict(frozen=True)

    name: str
    code: str
    kind: str = "http"
    sells: bool = True
    buys: bool = False
    sealed: bool = False

    # http sources
    inventory_url: str | None = None
    buylist_url: str | None = None

    # warehouse sources
    inventory_table: str | None = None
    buylist_table: str | None = None
    custom_fields: list[str] = []

    # market sources: sub-sellers to keep, and the buylist code to publish under
    keepers: list[str] = []
    keepers_buylist: str | None = None

    # side ("seller"/"vendor") or keeper code -> history namespace
    history: dict[str, str] = {}

    timeout_seconds: float | None = None

    # still loaded when sync.dev_mode restricts the source set
    dev_enabled: bool = False

    @field_validator("kind")
    @classmethod
    def kind_is_known(cls, v: str) -> str:
        if v not in _KNOWN_KINDS:
            raise ValueError(f"kind must be one of {_KNOWN_KINDS}, got {v!r}")
        return v

    @field_validator("code")
    @classmethod
    def code_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("code must not be blank")
        return v.strip()

    @field_validator("timeout_seconds")
    @classmethod
    def timeout_positive(cls, v: float | None) -> float | None:
        if v is not None and v <= 0:
            raise ValueError("timeout_seconds must be > 0")
        return v

    @model_validator(mode="after")
    def has_a_side(self) -> SourceConfig:
        if not self.sells and not self.buys:
            raise ValueError(f"source {self.code!r} must sell, buy, or both")
        if self.kind == "http":
            if self.sells and not self.inventory_url:
                raise ValueError(f"http source {self.code!r} needs inventory_url")
            if self.buys and not self.buylist_url:
                raise ValueError(f"http source {self.code!r} needs buylist_url")
        if self.kind == "warehouse":
            if self.sells and not self.inventory_table:
                raise ValueError(f"warehouse source {self.code!r} needs inventory_table")
            if self.buys and not self.buylist_table:
                raise ValueError(f"warehouse source {self.code!r} needs buylist_table")
        return self


class CacheConfig(BaseModel):
    """Local snapshot cache directories."""

    model_config = ConfigDict(frozen=True)

    sellers_dir: str = "./data/sellers"
    vendors_dir: str = "./data/vendors"
    # also keep a dated copy per store under <dir>/YYYY-MM-DD/HH/
    archive: bool = True


class RemoteConfig(BaseModel):
    """Remote object storage mirror for the snapshot cache."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = False
    base_url: str | None = None
    bucket: str = "catalog-sync"
    token: str | None = None
    timeout_seconds: float = 30.0

    @model_validator(mode="after")
    def url_required_when_enabled(self) -> RemoteConfig:
        if self.enabled and not self.base_url:
            raise ValueError("base_url is required when remote is enabled")
        return self


class HistoryConfig(BaseModel):
    """Historical price store configuration."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = False
    sqlite_path: str = "./data/history.db"


class WarehouseConfig(BaseModel):
    """Bulk warehouse database read by warehouse sources."""

    model_config = ConfigDict(frozen=True)

    sqlite_path: str = "./data/warehouse.db"


class SyncSettings(BaseModel):
    """Refresh engine behaviour."""

    model_config = ConfigDict(frozen=True)

    source_timeout: float = 300.0
    max_retries: int = 3
    skip_refresh_cooldown: float = 0.0
    skip_initial_refresh: bool = False
    interval_seconds: float = 3600.0
    # load only sources marked dev_enabled
    dev_mode: bool = False

    @field_validator("source_timeout", "interval_seconds")
    @classmethod
    def positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be > 0")
        return v

    @field_validator("max_retries")
    @classmethod
    def retries_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("max_retries must be >= 0")
        return v


class NotifyConfig(BaseModel):
    """Observer notification sink configuration."""

    model_config = ConfigDict(frozen=True)

    webhook_url: str | None = None
    dev_mode: bool = False
    timeout_seconds: float = 10.0


class SyncConfig(BaseModel):
    """Root configuration for the entire catalog-sync system."""

    model_config = ConfigDict(frozen=True)

    cache: CacheConfig = CacheConfig()
    remote: RemoteConfig = RemoteConfig()
    history: HistoryConfig = HistoryConfig()
    warehouse: WarehouseConfig = WarehouseConfig()
    sync: SyncSettings = SyncSettings()
    notify: NotifyConfig = NotifyConfig()
    sources: list[SourceConfig] = []

    @model_validator(mode="after")
    def codes_unique(self) -> SyncConfig:
        seen: set[str] = set()
        for source in self.sources:
            for code in [source.code, *source.keepers]:
                if code in seen:
                    raise ValueError(f"duplicate source code: {code!r}")
                seen.add(code)
        return self


def load_config(
    config_path: str | None = None,
    env_prefix: str = "CATALOG_SYNC_",
) -> SyncConfig:
    """Build the SyncConfig from defaults, the YAML file and env vars.

    Env vars win over the file and the file wins over built-in defaults,
    e.g. ``CATALOG_SYNC_REMOTE__ENABLED=true`` sets ``remote.enabled``.
    Every failure, validation included, surfaces as ConfigError.
    """
    try:
        path = _resolve_config_path(config_path)
        sections = _load_yaml(path) if path is not None else {}
        return SyncConfig.model_validate(_merge_env_vars(sections, env_prefix))
    except ConfigError:
        raise
    except Exception as e:
        raise ConfigError(str(e), context={"source": "load_config"}) from e


def _resolve_config_path(explicit: str | None) -> Path | None:
    """Pick the YAML file to read; None means run on defaults and env only.

    An explicit path or ``CATALOG_SYNC_CONFIG`` must exist. The default
    ``./catalog-sync.yml`` is optional.
    """
    for origin, raw in (("config_path", explicit), (_CONFIG_ENV, os.environ.get(_CONFIG_ENV))):
        if not raw:
            continue
        path = Path(raw)
        if path.exists():
            return path
        where = "--config" if origin == "config_path" else _CONFIG_ENV
        raise ConfigError(
            f"No config file at {raw} (from {where})",
            context={"field": origin, "value": raw},
        )
    return _DEFAULT_CONFIG if _DEFAULT_CONFIG.exists() else None


def _load_yaml(path: Path) -> dict:
    """Read the config file into a dict of sections. An empty file is ``{}``."""
    context = {"field": "config_file", "value": str(path)}
    try:
        data = yaml.safe_load(path.read_text())
    except yaml.YAMLError as e:
        raise ConfigError(f"Cannot parse {path}: {e}", context=context) from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(
            f"{path}: top level must be a mapping of sections, got {type(data).__name__}",
            context=context,
        )
    return data


def _merge_env_vars(base: dict, prefix: str) -> dict:
    """Overlay ``CATALOG_SYNC_*`` variables onto the YAML sections.

    ``__`` separates nesting levels, so ``CATALOG_SYNC_SYNC__SOURCE_TIMEOUT``
    sets ``sync.source_timeout``. Sources are a list and can only be
    declared in YAML.
    """
    result = dict(base)

    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue

        parts = [p.lower() for p in key[len(prefix) :].split("__")]
        # CATALOG_SYNC_CONFIG names the file, it is not a setting.
        if parts == ["config"]:
            continue

        target = result
        for part in parts[:-1]:
            section = target.get(part)
            target[part] = dict(section) if isinstance(section, dict) else {}
            target = target[part]
        target[parts[-1]] = _auto_cast(value)

    return result


def _auto_cast(value: str) -> str | int | float | bool:
    """Turn an env string into the bool, int or float it spells, else keep it."""
    if value.lower() in _BOOL_WORDS:
        return _BOOL_WORDS[value.lower()]
    for cast in (int, float):
        try:
            return cast(value)
        except ValueError:
            continue
    return value
