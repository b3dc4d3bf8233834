"""Explicit configuration passed into every component.

Global defaults are read once from a YAML file and handed to the project and
orchestrators at construction time; nothing reads configuration ambiently.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Mapping

import yaml

from metamirror.errors import ConfigCorruptError

CORE_TYPES = [
    "ApexClass",
    "ApexComponent",
    "ApexPage",
    "ApexTrigger",
    "StaticResource",
]

DEFAULT_CONFIG_PATH = Path.home() / ".metamirror" / "config.yaml"


@dataclass(frozen=True)
class MirrorConfig:
    """Settings that shape how projects are created, synced and deployed."""

    workspaces: list[str] = field(default_factory=list)
    compile_with_tooling_api: bool = False
    default_subscription: list[str] = field(default_factory=lambda: list(CORE_TYPES))
    default_package: list[str] = field(default_factory=lambda: list(CORE_TYPES))
    scratch_prefix: str = "mm_"
    api_version: str = "30.0"

    @property
    def default_workspace(self) -> str | None:
        return self.workspaces[0] if self.workspaces else None

    def with_overrides(self, overrides: Mapping[str, Any]) -> MirrorConfig:
        """Return a copy with user-level project settings applied on top.

        Unknown keys are ignored.
        """
        values = _translate(overrides)
        return replace(self, **values) if values else self


# Keys as they appear in user-facing config files.
_KEY_MAP = {
    "mm_workspace": "workspaces",
    "mm_compile_with_tooling_api": "compile_with_tooling_api",
    "mm_default_subscription": "default_subscription",
    "mm_default_package": "default_package",
    "mm_scratch_prefix": "scratch_prefix",
    "mm_api_version": "api_version",
}


def _translate(data: Mapping[str, Any]) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for key, attr in _KEY_MAP.items():
        if key not in data:
            continue
        value = data[key]
        if attr == "workspaces" and isinstance(value, str):
            value = [value]
        elif attr == "compile_with_tooling_api":
            value = bool(value)
        elif attr == "api_version":
            value = str(value)
        values[attr] = value
    return values


def load_config(path: str | Path | None = None) -> MirrorConfig:
    """Load configuration from a YAML file.

    A missing file yields the defaults. A file that is not valid YAML, or
    whose top level is not a mapping, raises ConfigCorruptError.
    """
    config_path = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    if not config_path.exists():
        return MirrorConfig()

    try:
        with open(config_path) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigCorruptError(f"Could not parse config {config_path}: {e}") from e

    if data is None:
        return MirrorConfig()
    if not isinstance(data, dict):
        raise ConfigCorruptError(f"Config {config_path} must be a mapping")

    return MirrorConfig(**_translate(data))
