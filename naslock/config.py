"""
Configuration for naslock.

Loaded from a TOML file (or YAML, by suffix) into frozen dataclasses. The
file names the KeePass database, one or more appliances under ``[nas.*]`` and
one or more unlockable datasets under ``[volume.*]``.

Usage:
    from naslock.config import load_config, resolve_config_path
    cfg = load_config(resolve_config_path(args.config))
    volume = cfg.find_volume("media")
"""

from __future__ import annotations

import logging
import os
import sys
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]

from naslock.credentials import AuthMethod, FieldNames, UnlockMode
from naslock.errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_ENV = "NASLOCK_CONFIG"


@dataclass(frozen=True)
class KeepassConfig:
    """Location of the KeePass database."""

    path: Path
    key_file: Path | None = None


@dataclass(frozen=True)
class NasConfig:
    """One TrueNAS appliance and where its admin login lives."""

    name: str
    host: str
    auth_entry: str
    auth_method: AuthMethod = AuthMethod.AUTO
    fields: FieldNames = field(default_factory=FieldNames)
    skip_tls_verify: bool = False
    timeout: float = 10.0  # seconds per HTTP request
    attempts: int = 3  # total tries when the appliance is unreachable
    backoff: float = 1.0  # first retry delay, doubled each time
    job_timeout: float = 120.0


@dataclass(frozen=True)
class VolumeConfig:
    """One encrypted dataset and where its passphrase or key lives."""

    name: str
    nas: str
    dataset: str
    unlock_entry: str
    unlock_mode: UnlockMode = UnlockMode.AUTO
    fields: FieldNames = field(default_factory=FieldNames)
    recursive: bool = True
    force: bool = False
    toggle_attachments: bool = True  # restart services attached to the dataset


@dataclass(frozen=True)
class Config:
    """Top-level naslock configuration."""

    keepass: KeepassConfig
    nas: Mapping[str, NasConfig] = field(default_factory=dict)
    volumes: Mapping[str, VolumeConfig] = field(default_factory=dict)
    path: Path | None = None

    def find_volume(self, name: str) -> VolumeConfig:
        """Look up a volume by its config name, or by dataset id.

        A dataset id only resolves if exactly one volume points at it.
        """
        if name in self.volumes:
            return self.volumes[name]
        by_dataset = [v for v in self.volumes.values() if v.dataset == name]
        if len(by_dataset) == 1:
            return by_dataset[0]
        if len(by_dataset) > 1:
            raise ConfigError(
                f"Dataset '{name}' is configured by several volumes",
                f"Use one of: {', '.join(sorted(v.name for v in by_dataset))}",
            )
        available = ", ".join(sorted(self.volumes)) or "(none)"
        raise ConfigError(f"Unknown volume '{name}'", f"Configured volumes: {available}")

    def nas_for(self, volume: VolumeConfig) -> NasConfig:
        try:
            return self.nas[volume.nas]
        except KeyError:
            raise ConfigError(f"Unknown NAS '{volume.nas}' in volume '{volume.name}'") from None


# ─── Paths ───────────────────────────────────────────────────────────────


def default_config_path() -> Path:
    """Per-user config location for the current platform."""
    if sys.platform == "darwin":
        base = Path.home() / "Library" / "Application Support"
    elif sys.platform.startswith("win"):
        base = Path(os.environ.get("APPDATA", Path.home() / "AppData" / "Roaming"))
    else:
        base = Path(os.environ.get("XDG_CONFIG_HOME") or Path.home() / ".config")
    return base / "naslock" / "config.toml"


def resolve_config_path(cli_path: str | Path | None = None) -> Path:
    """--config wins, then $NASLOCK_CONFIG, then the platform default."""
    if cli_path:
        return expand_path(Path(cli_path))
    env_path = os.environ.get(CONFIG_ENV)
    if env_path:
        return expand_path(Path(env_path))
    return default_config_path()


def expand_path(path: Path, base_dir: Path | None = None) -> Path:
    """Expand ``~`` and anchor relative paths at ``base_dir``."""
    expanded = path.expanduser()
    if not expanded.is_absolute() and base_dir is not None:
        return base_dir / expanded
    return expanded


# ─── Loading ─────────────────────────────────────────────────────────────


def load_config(path: Path) -> Config:
    """Read and validate a config file."""
    try:
        text = path.read_text()
    except FileNotFoundError:
        raise ConfigError(
            f"Config file not found: {path}",
            f"Create it or point --config / ${CONFIG_ENV} at an existing file.",
        ) from None
    except OSError as e:
        raise ConfigError(f"Failed to read config file {path}: {e.strerror or e}") from e

    try:
        if path.suffix.lower() in (".yaml", ".yml"):
            raw = yaml.safe_load(text) or {}
        else:
            raw = tomllib.loads(text)
    except (tomllib.TOMLDecodeError, yaml.YAMLError) as e:
        raise ConfigError(f"Failed to parse config file {path}", str(e)) from e

    if not isinstance(raw, dict):
        raise ConfigError(f"Config file {path} must contain a table of settings")

    cfg = parse_config(raw, base_dir=path.parent)
    logger.debug(
        "Loaded %s: %d NAS, %d volume(s)", path, len(cfg.nas), len(cfg.volumes)
    )
    return replace(cfg, path=path)


def parse_config(raw: dict[str, Any], base_dir: Path | None = None) -> Config:
    """Build a Config from already-parsed TOML/YAML data."""
    keepass_raw = _table(raw, "keepass", "config")
    kp_path = _str(keepass_raw, "path", "keepass", required=True)
    kp_key = _str(keepass_raw, "key_file", "keepass")
    keepass = KeepassConfig(
        path=expand_path(Path(kp_path), base_dir),
        key_file=expand_path(Path(kp_key), base_dir) if kp_key else None,
    )

    nas = {
        name: _parse_nas(name, _as_table(section, f"nas.{name}"))
        for name, section in _table(raw, "nas", "config").items()
    }

    volumes_raw = raw.get("volume", raw.get("volumes"))
    if volumes_raw is None:
        raise ConfigError("Missing [volume.<name>] section in config")
    volumes = {
        name: _parse_volume(name, _as_table(section, f"volume.{name}"))
        for name, section in _as_table(volumes_raw, "volume").items()
    }

    for volume in volumes.values():
        if volume.nas not in nas:
            available = ", ".join(sorted(nas)) or "(none)"
            raise ConfigError(
                f"Volume '{volume.name}' refers to unknown NAS '{volume.nas}'",
                f"Configured NAS: {available}",
            )

    return Config(keepass=keepass, nas=nas, volumes=volumes)


def _parse_nas(name: str, raw: dict[str, Any]) -> NasConfig:
    where = f"nas.{name}"
    defaults = FieldNames()
    fields = FieldNames(
        username=_override(raw, "username_field", where, defaults.username),
        password=_override(raw, "password_field", where, defaults.password),
        api_key=_override(raw, "api_key_field", where, defaults.api_key),
    )
    attempts = _int(raw, "attempts", where, 3)
    if attempts < 1:
        raise ConfigError(f"[{where}] attempts must be at least 1")
    return NasConfig(
        name=name,
        host=_str(raw, "host", where, required=True),
        auth_entry=_str(raw, "auth_entry", where, required=True),
        auth_method=_enum(raw, "auth_method", where, AuthMethod, AuthMethod.AUTO),
        fields=fields,
        skip_tls_verify=_bool(raw, "skip_tls_verify", where, False),
        timeout=_float(raw, "timeout", where, 10.0),
        attempts=attempts,
        backoff=_float(raw, "backoff", where, 1.0),
        job_timeout=_float(raw, "job_timeout", where, 120.0),
    )


def _parse_volume(name: str, raw: dict[str, Any]) -> VolumeConfig:
    where = f"volume.{name}"
    defaults = FieldNames()
    # unlock_field applies to whichever secret shape is in use
    unlock_field = _str(raw, "unlock_field", where)
    shared = (unlock_field,) if unlock_field else None
    fields = FieldNames(
        passphrase=_override(raw, "passphrase_field", where, shared or defaults.passphrase),
        key=_override(raw, "key_field", where, shared or defaults.key),
    )
    mode = _enum(raw, "unlock_mode", where, UnlockMode, UnlockMode.AUTO, aliases={"key_file": "key"})
    return VolumeConfig(
        name=name,
        nas=_str(raw, "nas", where, required=True),
        dataset=_str(raw, "dataset", where, required=True),
        unlock_entry=_str(raw, "unlock_entry", where, required=True),
        unlock_mode=mode,
        fields=fields,
        recursive=_bool(raw, "recursive", where, True),
        force=_bool(raw, "force", where, False),
        toggle_attachments=_bool(raw, "toggle_attachments", where, True),
    )


# ─── Typed accessors ─────────────────────────────────────────────────────


def _as_table(value: Any, where: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise ConfigError(f"[{where}] must be a table")
    return value


def _table(raw: dict[str, Any], key: str, where: str) -> dict[str, Any]:
    if key not in raw:
        raise ConfigError(f"Missing [{key}] section in {where}")
    return _as_table(raw[key], key)


def _str(raw: dict[str, Any], key: str, where: str, required: bool = False) -> str | None:
    value = raw.get(key)
    if value is None:
        if required:
            raise ConfigError(f"[{where}] is missing required key '{key}'")
        return None
    if not isinstance(value, str) or (required and not value.strip()):
        raise ConfigError(f"[{where}] '{key}' must be a non-empty string")
    return value


def _override(
    raw: dict[str, Any], key: str, where: str, default: tuple[str, ...]
) -> tuple[str, ...]:
    value = _str(raw, key, where)
    return (value,) if value else default


def _bool(raw: dict[str, Any], key: str, where: str, default: bool) -> bool:
    value = raw.get(key, default)
    if not isinstance(value, bool):
        raise ConfigError(f"[{where}] '{key}' must be true or false")
    return value


def _int(raw: dict[str, Any], key: str, where: str, default: int) -> int:
    value = raw.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"[{where}] '{key}' must be an integer")
    return value


def _float(raw: dict[str, Any], key: str, where: str, default: float) -> float:
    value = raw.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        raise ConfigError(f"[{where}] '{key}' must be a non-negative number")
    return float(value)


def _enum(raw: dict[str, Any], key: str, where: str, enum_cls, default, aliases=None):
    value = raw.get(key)
    if value is None:
        return default
    normalized = str(value).strip().lower().replace("-", "_")
    normalized = (aliases or {}).get(normalized, normalized)
    try:
        return enum_cls(normalized)
    except ValueError:
        choices = ", ".join(m.value for m in enum_cls)
        raise ConfigError(f"[{where}] '{key}' must be one of: {choices}") from None
