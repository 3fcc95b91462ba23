"""Core data models for the MineKit resource synchronizer."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator


class FetchErrorKind(str, Enum):
    """Why a resource could not be fetched."""

    TIMEOUT = "timeout"
    NOT_FOUND = "not_found"
    NETWORK = "network"


class WriteErrorKind(str, Enum):
    """Why a resource could not be written or deleted locally."""

    PERMISSION_DENIED = "permission_denied"
    DISK_FULL = "disk_full"
    IO_ERROR = "io_error"


class FatalErrorKind(str, Enum):
    """Failures that abort a run as a whole."""

    VERSION_STORE_UNWRITABLE = "version_store_unwritable"
    MERGE_FAILED = "merge_failed"


class RunStatus(str, Enum):
    """Terminal status of an orchestrator run."""

    DONE = "done"
    FATAL_ERROR = "fatal_error"


class PlanAction(str, Enum):
    """Branch chosen during planning."""

    FRESH_INSTALL = "fresh_install"
    UPGRADE = "upgrade"
    UP_TO_DATE = "up_to_date"
    UNINSTALL = "uninstall"


class SyncPhase(str, Enum):
    """Orchestrator state machine phases."""

    IDLE = "idle"
    PLANNING = "planning"
    FETCHING = "fetching"
    WRITING = "writing"
    MERGING = "merging"
    FINALIZING = "finalizing"
    UNINSTALLING = "uninstalling"
    DONE = "done"


class BootstrapOutcome(str, Enum):
    """Result of bootstrapping the preferences document."""

    CREATED = "created"
    ALREADY_PRESENT = "already_present"


class DocumentState(str, Enum):
    """Observed state of the shared managed document."""

    ABSENT = "absent"
    NO_BLOCK = "no_block"
    BLOCK_PRESENT = "block_present"


class ResourceDescriptor(BaseModel):
    """A single tool-managed file declared by the catalog."""

    model_config = ConfigDict(frozen=True)

    group: str = Field(..., description="Name of the owning resource group")
    name: str = Field(..., description="Name unique within the group")
    source_locator: str = Field(..., description="URL the bytes are fetched from")
    relative_dest_path: str = Field(
        ...,
        description="Destination path relative to the group root",
    )
    optional: bool = Field(
        default=False,
        description="Whether a fetch failure is downgraded to a skip",
    )
    command: str | None = Field(
        default=None,
        description="Slash command a workflow is invoked with",
    )
    summary: str | None = Field(
        default=None,
        description="One-line description shown in the command table",
    )

    @field_validator("relative_dest_path")
    @classmethod
    def validate_relative(cls, v: str) -> str:
        """Reject absolute destinations and parent traversal."""
        parts = Path(v).parts
        if Path(v).is_absolute() or ".." in parts or not parts:
            msg = f"Destination must be a relative path inside the group: {v!r}"
            raise ValueError(msg)
        return v

    @property
    def key(self) -> tuple[str, str]:
        """Identity of the descriptor."""
        return (self.group, self.name)


class ResourceGroup(BaseModel):
    """Named collection of descriptors sharing a destination root."""

    name: str = Field(..., description="Group name (workflows, schemas, ...)")
    dest: str = Field(..., description="Subdirectory of the base root")
    resources: list[ResourceDescriptor] = Field(default_factory=list)


class ResourceCatalog(BaseModel):
    """Versioned declaration of every resource the installer manages."""

    version: str = Field(..., description="Target version of this catalog")
    source_base: str = Field(..., description="Base URL all sources hang off")
    resource_groups: list[ResourceGroup] = Field(default_factory=list)

    @field_validator("version")
    @classmethod
    def validate_semver(cls, v: str) -> str:
        """Validate version follows semantic versioning."""
        semver_pattern = r"^\d+\.\d+\.\d+(?:-[a-zA-Z0-9\-.]+)?(?:\+[a-zA-Z0-9\-.]+)?$"
        if not re.match(semver_pattern, v):
            msg = "Version must follow semantic versioning (e.g., 3.5.0)"
            raise ValueError(msg)
        return v

    def groups(self) -> list[ResourceGroup]:
        """Enumerate resource groups in declaration order."""
        return list(self.resource_groups)

    def group(self, name: str) -> ResourceGroup | None:
        """Look up a group by name."""
        for group in self.resource_groups:
            if group.name == name:
                return group
        return None

    def descriptors(self) -> list[ResourceDescriptor]:
        """All descriptors across all groups."""
        return [r for group in self.resource_groups for r in group.resources]


class InstallTarget(BaseModel):
    """Absolute paths resolved once per run from the base root."""

    base_root: Path = Field(..., description="Root all other paths derive from")
    version_file: Path
    managed_document: Path
    preferences_file: Path
    lock_dir: Path

    @classmethod
    def from_base_root(cls, base_root: Path) -> InstallTarget:
        """Derive every well-known path from a base root."""
        root = Path(base_root).expanduser().resolve()
        return cls(
            base_root=root,
            version_file=root / "mine_version",
            managed_document=root.parent / "GEMINI.md",
            preferences_file=root / "preferences.json",
            lock_dir=root / ".mine.lock",
        )

    def group_root(self, group: ResourceGroup) -> Path:
        """Absolute destination root of a group."""
        return self.base_root / group.dest

    def destination(self, group: ResourceGroup, descriptor: ResourceDescriptor) -> Path:
        """Absolute destination of a single resource."""
        return self.group_root(group) / descriptor.relative_dest_path


class Preferences(BaseModel):
    """Default user preferences written on first install."""

    version: str = "1.0.0"
    language: str = "vi"
    tone: str = "friendly"
    technical_level: str = "basic"
    detail_level: str = "balanced"
    autonomy: str = "ask_first"
    custom_rules: list[str] = Field(default_factory=list)


@dataclass(frozen=True)
class VersionState:
    """Installed version token, absent before the first install."""

    installed_version: str | None = None

    @property
    def is_installed(self) -> bool:
        """Whether any version has been finalized."""
        return self.installed_version is not None


@dataclass(frozen=True)
class FailedResource:
    """A resource that failed to fetch or write."""

    descriptor: ResourceDescriptor
    kind: FetchErrorKind | WriteErrorKind
    message: str = ""


@dataclass
class OperationReport:
    """Per-run aggregate of resource outcomes. Never persisted."""

    succeeded: list[ResourceDescriptor] = field(default_factory=list)
    failed: list[FailedResource] = field(default_factory=list)
    skipped_optional: list[ResourceDescriptor] = field(default_factory=list)
    unchanged: list[ResourceDescriptor] = field(default_factory=list)

    def record_success(self, descriptor: ResourceDescriptor) -> None:
        """Record a resource that was placed or removed."""
        self.succeeded.append(descriptor)

    def record_failure(
        self,
        descriptor: ResourceDescriptor,
        kind: FetchErrorKind | WriteErrorKind,
        message: str = "",
    ) -> None:
        """Record a resource whose fetch or write failed."""
        self.failed.append(FailedResource(descriptor, kind, message))

    def record_skip(self, descriptor: ResourceDescriptor) -> None:
        """Record an optional resource that could not be fetched."""
        self.skipped_optional.append(descriptor)

    @property
    def has_failures(self) -> bool:
        """Whether any required resource failed."""
        return bool(self.failed)


@dataclass
class SyncPlan:
    """Decision made in the planning phase."""

    action: PlanAction
    target_version: str | None
    installed: VersionState
    descriptors: list[ResourceDescriptor] = field(default_factory=list)
    missing: list[ResourceDescriptor] = field(default_factory=list)


@dataclass
class RunResult:
    """Terminal output of an orchestrator run."""

    status: RunStatus
    report: OperationReport
    plan: SyncPlan | None = None
    phase: SyncPhase = SyncPhase.DONE
    error: Exception | None = None
    preferences: BootstrapOutcome | None = None

    @property
    def ok(self) -> bool:
        """Whether the run reached Done without a fatal error."""
        return self.status == RunStatus.DONE
