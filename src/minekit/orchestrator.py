"""Sync orchestrator composing catalog, fetcher, writer, and merger."""

from __future__ import annotations

import logging
import signal
import threading
from collections.abc import Iterator
from contextlib import AbstractContextManager, contextmanager, nullcontext

from .compiler import render_managed_block
from .exceptions import (
    FatalError,
    FetchError,
    MergeError,
    MineKitError,
    NotInstalledError,
    WriteError,
)
from .fetcher import DEFAULT_TIMEOUT, Fetcher
from .lock import acquire_install_lock
from .merger import MARKER, decode_document, merge, strip
from .models import (
    BootstrapOutcome,
    FatalErrorKind,
    InstallTarget,
    OperationReport,
    PlanAction,
    Preferences,
    ResourceCatalog,
    ResourceDescriptor,
    ResourceGroup,
    RunResult,
    RunStatus,
    SyncPhase,
    SyncPlan,
    VersionState,
)
from .preferences import ensure_defaults
from .version_store import VersionStore
from .writer import LocalWriter

logger = logging.getLogger(__name__)


@contextmanager
def deferred_interrupts() -> Iterator[list[int]]:
    """Hold off SIGINT until the block completes.

    Yields the list of signals received while the block ran. The caller
    decides whether to re-raise once it knows the outcome. Only effective
    on the main thread; elsewhere nothing is deferred.
    """
    received: list[int] = []
    if threading.current_thread() is not threading.main_thread():
        yield received
        return

    def _handler(signum: int, _frame: object) -> None:
        logger.warning("Interrupt received, finishing the managed document update first")
        received.append(signum)

    previous = signal.signal(signal.SIGINT, _handler)
    try:
        yield received
    finally:
        signal.signal(signal.SIGINT, previous)


class SyncOrchestrator:
    """Installs, upgrades, and uninstalls catalog resources under a base root.

    One instance drives one run at a time. Only the fetch phase runs in
    parallel; writing, merging, and finalizing happen sequentially on the
    calling thread.
    """

    def __init__(
        self,
        catalog: ResourceCatalog,
        target: InstallTarget,
        fetcher: Fetcher | None = None,
        writer: LocalWriter | None = None,
        version: str | None = None,
        concurrency: int = 4,
        timeout: float = DEFAULT_TIMEOUT,
        use_lock: bool = True,
        lock_ttl: float = 120.0,
        preferences: Preferences | None = None,
        marker: str = MARKER,
    ) -> None:
        """Initialize orchestrator.

        Args:
            catalog: Resources to manage
            target: Resolved install paths
            fetcher: Source of resource bytes, not needed for uninstall
            writer: Local filesystem writer
            version: Target version, defaults to the catalog's
            concurrency: Maximum parallel fetches
            timeout: Per-fetch timeout in seconds
            use_lock: Whether to hold the advisory lock while writing
            lock_ttl: Age after which a held lock is considered stale
            preferences: Defaults written on first install
            marker: Header line delimiting the managed block
        """
        self.catalog = catalog
        self.target = target
        self.fetcher = fetcher
        self.writer = writer or LocalWriter()
        self.target_version = version or catalog.version
        self.concurrency = concurrency
        self.timeout = timeout
        self.use_lock = use_lock
        self.lock_ttl = lock_ttl
        self.preferences = preferences
        self.marker = marker
        self.version_store = VersionStore(target.version_file, self.writer)
        self.phase = SyncPhase.IDLE

    def _enter(self, phase: SyncPhase) -> None:
        self.phase = phase
        logger.info("Entering %s phase", phase.value)

    def _entries(self) -> list[tuple[ResourceGroup, ResourceDescriptor]]:
        return [(g, d) for g in self.catalog.groups() for d in g.resources]

    def _lock(self) -> AbstractContextManager[object]:
        if not self.use_lock:
            return nullcontext()
        return acquire_install_lock(self.target.lock_dir, ttl_seconds=self.lock_ttl)

    def plan(self, force: bool = False) -> SyncPlan:
        """Decide between fresh install, upgrade, and no-op.

        An installed version that differs from the target, including one
        this catalog does not recognize, selects the upgrade path.
        """
        self._enter(SyncPhase.PLANNING)
        installed = self.version_store.read()
        entries = self._entries()
        missing = [
            d
            for g, d in entries
            if not d.optional and not self.writer.exists(self.target.destination(g, d))
        ]

        if not installed.is_installed:
            action = PlanAction.FRESH_INSTALL
        elif installed.installed_version == self.target_version and not missing and not force:
            action = PlanAction.UP_TO_DATE
        else:
            action = PlanAction.UPGRADE

        logger.info(
            "Plan: %s (installed=%s, target=%s, missing=%d)",
            action.value,
            installed.installed_version,
            self.target_version,
            len(missing),
        )
        return SyncPlan(
            action=action,
            target_version=self.target_version,
            installed=installed,
            descriptors=[d for _, d in entries],
            missing=missing,
        )

    def install(self, force: bool = False) -> RunResult:
        """Install or upgrade, short-circuiting when already up to date."""
        return self._sync(self.plan(force=force))

    def upgrade(self, force: bool = False) -> RunResult:
        """Upgrade an existing installation.

        Raises:
            NotInstalledError: If no version has ever been installed
        """
        plan = self.plan(force=force)
        if plan.action == PlanAction.FRESH_INSTALL:
            msg = f"Nothing installed under {self.target.base_root}"
            raise NotInstalledError(msg, details={"base_root": str(self.target.base_root)})
        return self._sync(plan)

    def _sync(self, plan: SyncPlan) -> RunResult:
        report = OperationReport()

        if plan.action == PlanAction.UP_TO_DATE:
            report.unchanged.extend(plan.descriptors)
            self._enter(SyncPhase.DONE)
            return RunResult(status=RunStatus.DONE, report=report, plan=plan)

        fetched = self._fetch(report)

        with self._lock():
            self._write(fetched, report)

            with deferred_interrupts() as interrupted:
                result = self._merge_and_finalize(plan, report)

        return _raise_if_interrupted(interrupted, result)

    def _merge_and_finalize(self, plan: SyncPlan, report: OperationReport) -> RunResult:
        self._enter(SyncPhase.MERGING)
        try:
            self._merge()
        except (MergeError, WriteError) as e:
            return self._fatal(FatalErrorKind.MERGE_FAILED, e, report, plan)

        self._enter(SyncPhase.FINALIZING)
        outcome = None
        if plan.action == PlanAction.FRESH_INSTALL:
            outcome = self._bootstrap_preferences()

        try:
            self.version_store.write(self.target_version)
        except WriteError as e:
            return self._fatal(FatalErrorKind.VERSION_STORE_UNWRITABLE, e, report, plan)

        self._enter(SyncPhase.DONE)
        return RunResult(
            status=RunStatus.DONE,
            report=report,
            plan=plan,
            preferences=outcome,
        )

    def _fetch(
        self,
        report: OperationReport,
    ) -> list[tuple[ResourceGroup, ResourceDescriptor, bytes]]:
        self._enter(SyncPhase.FETCHING)
        if self.fetcher is None:
            msg = "A fetcher is required to install or upgrade"
            raise MineKitError(msg)
        entries = self._entries()
        results = self.fetcher.fetch_all(
            [d for _, d in entries],
            concurrency=self.concurrency,
            timeout=self.timeout,
        )

        fetched = []
        for group, descriptor in entries:
            result = results[descriptor.key]
            if not isinstance(result, FetchError):
                fetched.append((group, descriptor, result))
            elif descriptor.optional:
                logger.warning("Skipping optional %s: %s", descriptor.name, result)
                report.record_skip(descriptor)
            else:
                logger.warning("Failed to fetch %s: %s", descriptor.name, result)
                report.record_failure(descriptor, result.kind, str(result))
        return fetched

    def _write(
        self,
        fetched: list[tuple[ResourceGroup, ResourceDescriptor, bytes]],
        report: OperationReport,
    ) -> None:
        self._enter(SyncPhase.WRITING)
        for group, descriptor, data in fetched:
            dest = self.target.destination(group, descriptor)
            try:
                self.writer.write(dest, data)
            except WriteError as e:
                logger.warning("Failed to write %s: %s", dest, e)
                report.record_failure(descriptor, e.kind, str(e))
            else:
                report.record_success(descriptor)

    def _read_document(self) -> str | None:
        path = self.target.managed_document
        try:
            raw = self.writer.read(path)
        except OSError as e:
            msg = f"Cannot read managed document {path}: {e}"
            raise MergeError(msg, details={"path": str(path)}) from e
        return decode_document(raw)

    def _merge(self) -> None:
        existing = self._read_document()
        block = render_managed_block(
            self.catalog,
            self.target,
            self.target_version,
            self.marker,
        )
        self.writer.write_text(
            self.target.managed_document,
            merge(existing, self.marker, block),
        )
        logger.info("Updated managed block in %s", self.target.managed_document)

    def _bootstrap_preferences(self) -> BootstrapOutcome | None:
        try:
            return ensure_defaults(
                self.target.preferences_file,
                self.preferences,
                writer=self.writer,
            )
        except WriteError as e:
            logger.warning("Could not create default preferences: %s", e)
            return None

    def _fatal(
        self,
        kind: FatalErrorKind,
        cause: Exception,
        report: OperationReport,
        plan: SyncPlan | None,
    ) -> RunResult:
        error = FatalError(str(cause), kind, report=report)
        error.__cause__ = cause
        logger.error("Run failed during %s: %s", self.phase.value, cause)
        return RunResult(
            status=RunStatus.FATAL_ERROR,
            report=report,
            plan=plan,
            phase=self.phase,
            error=error,
        )

    def uninstall(self) -> RunResult:
        """Remove every catalog resource, the managed block, and the version.

        Never touches the network. Paths that are already absent are not
        errors.
        """
        self._enter(SyncPhase.UNINSTALLING)
        report = OperationReport()
        plan = SyncPlan(
            action=PlanAction.UNINSTALL,
            target_version=None,
            installed=self.version_store.read(),
            descriptors=[d for _, d in self._entries()],
        )

        lock = self._lock() if self.target.base_root.exists() else nullcontext()
        with lock:
            for group, descriptor in self._entries():
                try:
                    removed = self.writer.delete(self.target.destination(group, descriptor))
                except WriteError as e:
                    logger.warning("Failed to remove %s: %s", descriptor.name, e)
                    report.record_failure(descriptor, e.kind, str(e))
                    continue
                if removed:
                    report.record_success(descriptor)

            for group in self.catalog.groups():
                self.writer.prune_empty_dirs(self.target.group_root(group))

            with deferred_interrupts() as interrupted:
                result = self._strip_and_clear(plan, report)

        return _raise_if_interrupted(interrupted, result)

    def _strip_and_clear(self, plan: SyncPlan, report: OperationReport) -> RunResult:
        try:
            self._strip()
        except (MergeError, WriteError) as e:
            return self._fatal(FatalErrorKind.MERGE_FAILED, e, report, plan)

        try:
            self.writer.delete(self.target.preferences_file)
        except WriteError as e:
            logger.warning("Could not remove preferences: %s", e)

        try:
            self.version_store.clear()
        except WriteError as e:
            return self._fatal(FatalErrorKind.VERSION_STORE_UNWRITABLE, e, report, plan)

        self._enter(SyncPhase.DONE)
        return RunResult(status=RunStatus.DONE, report=report, plan=plan)

    def _strip(self) -> None:
        existing = self._read_document()
        if existing is None:
            return
        remaining = strip(existing, self.marker)
        if remaining is None:
            self.writer.delete(self.target.managed_document)
            logger.info("Removed %s, nothing but the managed block remained", self.target.managed_document)
        elif remaining != existing:
            self.writer.write_text(self.target.managed_document, remaining)
            logger.info("Removed managed block from %s", self.target.managed_document)


def _raise_if_interrupted(interrupted: list[int], result: RunResult) -> RunResult:
    """Re-raise a deferred interrupt once a run has completed.

    A failed run is returned as is so its partial report reaches the caller.
    """
    if interrupted and result.ok:
        raise KeyboardInterrupt
    if interrupted:
        logger.warning("Interrupt received during a failed run, returning the failure")
    return result


def installed_version(target: InstallTarget) -> VersionState:
    """Read the installed version for a target without building a run."""
    return VersionStore(target.version_file).read()
