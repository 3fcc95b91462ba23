"""Backup-and-recreate recovery for malformed assistant state files.

The assistant keeps its own JSON state (brain.json, session.json). MineKit
never writes those during a sync; this module only repairs one on request:
a malformed file is moved aside with a timestamped ``.bak`` suffix and a
fresh copy is created from the installed template.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any

import jsonschema

from .exceptions import StateFileError
from .writer import LocalWriter

logger = logging.getLogger(__name__)


class StateFileStatus(str, Enum):
    """Health of a state file."""

    OK = "ok"
    MISSING = "missing"
    MALFORMED = "malformed"


@dataclass
class StateFileCheck:
    """Outcome of inspecting a state file."""

    path: Path
    status: StateFileStatus
    reason: str | None = None


@dataclass
class RecoveryResult:
    """What the repair did."""

    path: Path
    check: StateFileCheck
    backup_path: Path | None = None
    recreated: bool = False


def _load_schema(schema_path: Path | None) -> dict[str, Any] | None:
    if schema_path is None:
        return None
    try:
        return json.loads(Path(schema_path).read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as e:
        msg = f"Failed to load schema {schema_path}: {e}"
        raise StateFileError(msg) from e


def check_state_file(path: Path, schema_path: Path | None = None) -> StateFileCheck:
    """Inspect a state file without modifying it."""
    path = Path(path)
    schema = _load_schema(schema_path)
    if not path.exists():
        return StateFileCheck(path, StateFileStatus.MISSING)

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        return StateFileCheck(path, StateFileStatus.MALFORMED, f"Invalid JSON: {e}")
    except OSError as e:
        msg = f"Cannot read state file {path}: {e}"
        raise StateFileError(msg) from e

    if schema is not None:
        try:
            jsonschema.validate(data, schema)
        except jsonschema.ValidationError as e:
            return StateFileCheck(
                path,
                StateFileStatus.MALFORMED,
                f"Schema validation failed: {e.message}",
            )

    return StateFileCheck(path, StateFileStatus.OK)


def backup_path_for(path: Path, now: datetime | None = None) -> Path:
    """Sibling backup path with a UTC timestamp suffix."""
    stamp = (now or datetime.now(tz=UTC)).strftime("%Y%m%dT%H%M%SZ")
    candidate = path.with_name(f"{path.name}.{stamp}.bak")
    counter = 1
    while candidate.exists():
        candidate = path.with_name(f"{path.name}.{stamp}-{counter}.bak")
        counter += 1
    return candidate


def recover_state_file(
    path: Path,
    template_path: Path,
    schema_path: Path | None = None,
    writer: LocalWriter | None = None,
    now: datetime | None = None,
) -> RecoveryResult:
    """Back up a malformed state file and recreate it from a template.

    Well-formed files are left untouched. Missing files are created from
    the template without a backup.

    Raises:
        StateFileError: If the template is unusable or the backup fails
    """
    path = Path(path)
    writer = writer or LocalWriter()
    check = check_state_file(path, schema_path)
    result = RecoveryResult(path=path, check=check)
    if check.status == StateFileStatus.OK:
        return result

    try:
        template = Path(template_path).read_bytes()
        json.loads(template)
    except (OSError, json.JSONDecodeError, UnicodeDecodeError) as e:
        msg = f"Template {template_path} is not usable: {e}"
        raise StateFileError(msg) from e

    if check.status == StateFileStatus.MALFORMED:
        backup = backup_path_for(path, now)
        try:
            path.replace(backup)
        except OSError as e:
            msg = f"Failed to back up {path}: {e}"
            raise StateFileError(msg) from e
        result.backup_path = backup
        logger.warning("Backed up malformed %s to %s (%s)", path, backup, check.reason)

    writer.write(path, template)
    result.recreated = True
    logger.info("Recreated %s from %s", path, template_path)
    return result
