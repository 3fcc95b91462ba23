"""Installer settings loaded from YAML and overridden from the CLI."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from .exceptions import MineKitError

DEFAULT_BASE_ROOT = Path("~/.gemini/antigravity")
HOME_ENV = "MINE_HOME"


class InstallerSettings(BaseModel):
    """Tunable knobs for a sync run."""

    base_root: Path = Field(
        default=DEFAULT_BASE_ROOT,
        description="Directory every installed path derives from",
    )
    source_base: str | None = Field(
        default=None,
        description="Override for the catalog's source base URL",
    )
    catalog: Path | None = Field(
        default=None,
        description="Catalog YAML, defaults to the bundled catalog",
    )
    concurrency: int = Field(default=4, ge=1, description="Parallel fetches")
    timeout: float = Field(default=10.0, gt=0, description="Seconds per fetch")
    max_attempts: int = Field(default=3, ge=1, description="Attempts per fetch")
    lock: bool = Field(default=True, description="Hold an advisory lock")
    lock_ttl: float = Field(default=120.0, gt=0, description="Stale lock age")

    @field_validator("base_root", "catalog")
    @classmethod
    def expand_user(cls, v: Path | None) -> Path | None:
        """Expand ~ in configured paths."""
        return Path(v).expanduser() if v is not None else None


def load_settings(path: Path | None = None, **overrides: Any) -> InstallerSettings:
    """Load settings from an optional YAML file, then apply overrides.

    Overrides set to None are ignored, so CLI options left at their
    defaults do not mask file values. The MINE_HOME environment variable
    sits between the file and explicit overrides.

    Raises:
        MineKitError: If the file cannot be read or holds invalid settings
    """
    data: dict[str, Any] = {}
    if path is not None:
        try:
            with Path(path).open(encoding="utf-8") as f:
                loaded = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            msg = f"Failed to parse settings YAML: {e}"
            raise MineKitError(msg) from e
        except OSError as e:
            msg = f"Failed to read settings file: {e}"
            raise MineKitError(msg) from e
        if not isinstance(loaded, dict):
            msg = f"Settings file must contain a mapping: {path}"
            raise MineKitError(msg)
        data.update(loaded)

    if env_home := os.environ.get(HOME_ENV):
        data["base_root"] = env_home

    data.update({k: v for k, v in overrides.items() if v is not None})

    try:
        return InstallerSettings.model_validate(data)
    except ValidationError as e:
        msg = f"Invalid installer settings: {e}"
        raise MineKitError(msg) from e
