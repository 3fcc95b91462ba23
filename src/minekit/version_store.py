"""Persistence of the installed version token."""

from __future__ import annotations

import logging
from pathlib import Path

from .models import VersionState
from .writer import LocalWriter

logger = logging.getLogger(__name__)


class VersionStore:
    """Reads and writes a single version token at a fixed path."""

    def __init__(self, path: Path, writer: LocalWriter | None = None) -> None:
        self.path = Path(path)
        self.writer = writer or LocalWriter()

    def read(self) -> VersionState:
        """Read the installed version.

        An empty or unreadable token is treated as not installed.
        """
        try:
            raw = self.writer.read(self.path)
        except OSError as e:
            logger.warning("Cannot read version file %s: %s", self.path, e)
            return VersionState()
        if raw is None:
            return VersionState()

        token = raw.decode("utf-8", errors="replace").strip()
        return VersionState(installed_version=token or None)

    def write(self, version: str) -> None:
        """Overwrite the version token.

        Raises:
            WriteError: If the token cannot be written
        """
        self.writer.write_text(self.path, f"{version}\n")
        logger.info("Recorded installed version %s", version)

    def clear(self) -> bool:
        """Remove the version token. Returns whether one existed."""
        return self.writer.delete(self.path)
