"""MineKit: installer and sync engine for Mine assistant workflows."""

__version__ = "0.1.0"
__author__ = "MineKit Contributors"
__description__ = "Installer and sync engine for Mine assistant workflows"

from .catalog import load_catalog
from .merger import MARKER, merge, strip
from .models import InstallTarget, OperationReport, ResourceCatalog, RunResult
from .orchestrator import SyncOrchestrator

__all__ = [
    "MARKER",
    "InstallTarget",
    "OperationReport",
    "ResourceCatalog",
    "RunResult",
    "SyncOrchestrator",
    "load_catalog",
    "merge",
    "strip",
]
