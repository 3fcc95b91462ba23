"""First-install bootstrap of the user preferences document."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from .models import BootstrapOutcome, Preferences
from .writer import LocalWriter

logger = logging.getLogger(__name__)


def ensure_defaults(
    path: Path,
    defaults: Preferences | None = None,
    writer: LocalWriter | None = None,
) -> BootstrapOutcome:
    """Write default preferences only if no preferences file exists.

    Existing content is never read, validated, or overwritten.

    Raises:
        WriteError: If the defaults cannot be written
    """
    writer = writer or LocalWriter()
    path = Path(path)
    if path.exists():
        logger.debug("Preferences already present at %s", path)
        return BootstrapOutcome.ALREADY_PRESENT

    payload = (defaults or Preferences()).model_dump(mode="json")
    writer.write_text(path, json.dumps(payload, indent=2, ensure_ascii=False) + "\n")
    logger.info("Created default preferences at %s", path)
    return BootstrapOutcome.CREATED
