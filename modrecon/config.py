"""Configuration loading for modrecon (.modrecon.yml)."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import yaml

from .models import AliasMapping

CONFIG_FILENAME = ".modrecon.yml"
DEFAULT_MAX_ITERATIONS = 10
DEFAULT_REQUEST_TIMEOUT = 30.0


class ConfigError(RuntimeError):
    """Raised when the configuration file cannot be parsed."""


@dataclass
class CascadeConfig:
    """Settings for the dynamic import cascade pass."""

    base_url: Optional[str] = None
    bundles_dir: Optional[Path] = None
    static_dir: Optional[Path] = None
    manifest: Optional[Path] = None
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT


@dataclass
class ModreconConfig:
    """Represents the settings defined in .modrecon.yml."""

    root: Path
    aliases: List[AliasMapping] = field(default_factory=list)
    exclude_paths: List[str] = field(default_factory=list)
    cascade: Optional[CascadeConfig] = None


def load_config(config_path: Path) -> ModreconConfig:
    """Load configuration from a project directory or a config file path."""
    config_file = _resolve_config_path(Path(config_path))
    root = config_file.parent.resolve()

    if not config_file.exists():
        return ModreconConfig(root=root)

    data = _read_config(config_file)
    if not isinstance(data, dict):
        raise ConfigError(f"{CONFIG_FILENAME} must contain a mapping at the root")

    aliases = _parse_aliases(data.get("aliases"))
    exclude_paths = _as_str_list(data.get("exclude_paths"))

    cascade_data = _as_dict(data.get("cascade"))
    cascade = None
    if cascade_data:
        max_iterations = _as_int(cascade_data.get("max_iterations"))
        if max_iterations is not None and max_iterations < 1:
            raise ConfigError("cascade.max_iterations must be a positive integer")
        request_timeout = _as_float(cascade_data.get("request_timeout"))
        cascade = CascadeConfig(
            base_url=_as_str(cascade_data.get("base_url")),
            bundles_dir=_as_path(root, cascade_data.get("bundles_dir")),
            static_dir=_as_path(root, cascade_data.get("static_dir")),
            manifest=_as_path(root, cascade_data.get("manifest")),
            max_iterations=max_iterations or DEFAULT_MAX_ITERATIONS,
            request_timeout=request_timeout or DEFAULT_REQUEST_TIMEOUT,
        )

    return ModreconConfig(
        root=root,
        aliases=aliases,
        exclude_paths=exclude_paths,
        cascade=cascade,
    )


def _resolve_config_path(config_path: Path) -> Path:
    config_path = config_path.expanduser()
    if config_path.is_dir():
        return (config_path / CONFIG_FILENAME).resolve()
    if config_path.name != CONFIG_FILENAME:
        return (config_path.parent / CONFIG_FILENAME).resolve()
    return config_path.resolve()


def _read_config(path: Path) -> Any:
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    return loaded if loaded is not None else {}


def _parse_aliases(value: Any) -> List[AliasMapping]:
    """Accept either ``{alias: path}`` or a list of ``{alias, path}`` entries."""
    aliases: List[AliasMapping] = []
    if isinstance(value, dict):
        for alias, path in value.items():
            path_str = _as_str(path)
            if isinstance(alias, str) and alias and path_str:
                aliases.append(AliasMapping(alias=alias, path=path_str))
    elif isinstance(value, list):
        for entry in value:
            if not isinstance(entry, dict):
                raise ConfigError("aliases entries must be mappings with 'alias' and 'path'")
            alias = _as_str(entry.get("alias"))
            path_str = _as_str(entry.get("path"))
            if not alias or not path_str:
                raise ConfigError("aliases entries must define both 'alias' and 'path'")
            aliases.append(AliasMapping(alias=alias, path=path_str))
    elif value is not None:
        raise ConfigError("aliases must be a mapping or a list")
    return aliases


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    return str(value) if isinstance(value, (str, int, float)) and not isinstance(value, bool) else None


def _as_path(root: Path, value: Any) -> Optional[Path]:
    text = _as_str(value)
    if not text:
        return None
    path = Path(text).expanduser()
    return path if path.is_absolute() else root / path


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Sequence):
        return [str(item) for item in value if isinstance(item, (str, int, float))]
    return []


__all__ = [
    "CONFIG_FILENAME",
    "CascadeConfig",
    "ConfigError",
    "ModreconConfig",
    "load_config",
]
