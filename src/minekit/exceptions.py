"""Custom exceptions for MineKit."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from pathlib import Path

    from .models import (
        FatalErrorKind,
        FetchErrorKind,
        OperationReport,
        WriteErrorKind,
    )


class MineKitError(Exception):
    """Base exception for all MineKit errors."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.details = details or {}


class CatalogError(MineKitError):
    """Raised when the resource catalog cannot be loaded or is invalid."""


class FetchError(MineKitError):
    """Raised when a resource cannot be fetched from its source."""

    def __init__(
        self,
        message: str,
        kind: FetchErrorKind,
        locator: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.kind = kind
        self.locator = locator


class WriteError(MineKitError):
    """Raised when a local file cannot be written or deleted."""

    def __init__(
        self,
        message: str,
        kind: WriteErrorKind,
        path: Path,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.kind = kind
        self.path = path


class MergeError(MineKitError):
    """Raised when the managed document cannot be read for merging."""

    kind = "unreadable"


class FatalError(MineKitError):
    """Raised when a run fails as a whole rather than per resource.

    Carries the partial report accumulated before the failure.
    """

    def __init__(
        self,
        message: str,
        kind: FatalErrorKind,
        report: OperationReport | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.kind = kind
        self.report = report


class NotInstalledError(MineKitError):
    """Raised when an upgrade is requested but nothing is installed."""


class LockError(MineKitError):
    """Raised when another installer run holds the base root lock."""


class StateFileError(MineKitError):
    """Raised when a downstream state file cannot be repaired."""
