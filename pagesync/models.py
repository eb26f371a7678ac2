"""Core data models for the synchronization engine.

Covers: commit references, synchronization records, touched sets, trust
state, the frozen per-run plan, and the results of the apply and publish
stages.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

SHORT_SHA_LENGTH = 7


class TrustState(Enum):
    """Whether a located synchronization point can drive an incremental run."""

    TRUSTED = "trusted"
    UNTRUSTED = "untrusted"


class SyncMode(Enum):
    """What a run will do."""

    NOOP = "noop"  # Publish branch already matches source HEAD
    INCREMENTAL = "incremental"  # Re-render only the touched set
    FULL = "full"  # Re-render every tracked file


class FallbackReason(Enum):
    """Why a run was forced onto the full-rebuild path."""

    BRANCH_MISSING = "branch_missing"  # First-ever publish
    NO_RECORD = "no_record"  # No (well-formed) record on the publish branch
    UNTRUSTED = "untrusted"  # Recorded source commit not in source history
    CONFIG_TOUCHED = "config_touched"  # Diff touches the reserved config directory
    POLICY_RULE = "policy_rule"  # Diff matches a configured full-rebuild rule


# --- Version control ---


@dataclass(frozen=True)
class CommitRef:
    """An immutable reference to one commit."""

    sha: str
    subject: str = ""

    @property
    def short(self) -> str:
        return self.sha[:SHORT_SHA_LENGTH]

    def __str__(self) -> str:
        return f"{self.short} {self.subject}".rstrip()


@dataclass(frozen=True)
class SyncRecord:
    """A decoded synchronization record.

    ``publish_sha`` is the publish commit carrying the record, ``source_sha``
    the (possibly abbreviated) source commit it claims to mirror.
    """

    publish_sha: str
    source_sha: str
    source_subject: str = ""
    schema_version: int = 1


@dataclass
class TouchedSet:
    """Paths to re-render and paths whose artifacts must go."""

    added_or_modified: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.added_or_modified and not self.deleted

    @property
    def all_paths(self) -> list[str]:
        return sorted(set(self.added_or_modified) | set(self.deleted))


# --- Planning ---


@dataclass(frozen=True)
class TrustVerdict:
    """Result of validating a record against source history."""

    state: TrustState
    commit: CommitRef | None = None
    detail: str = ""

    @property
    def trusted(self) -> bool:
        return self.state == TrustState.TRUSTED


@dataclass
class SyncPlan:
    """The decision for one run, fixed before anything is rendered."""

    mode: SyncMode
    head: CommitRef
    trust: TrustState = TrustState.UNTRUSTED
    record: SyncRecord | None = None
    synced_commit: CommitRef | None = None
    touched: TouchedSet = field(default_factory=TouchedSet)
    reason: FallbackReason | None = None
    trigger_paths: list[str] = field(default_factory=list)
    publish_ref: str | None = None
    first_publish: bool = False

    @property
    def is_noop(self) -> bool:
        return self.mode == SyncMode.NOOP

    @property
    def reanchors(self) -> bool:
        """Full rebuilds always write a fresh record, even over an unchanged tree."""
        return self.mode == SyncMode.FULL

    def summary(self) -> str:
        if self.mode == SyncMode.NOOP:
            return f"Already synchronized with {self.head}"
        if self.mode == SyncMode.INCREMENTAL:
            base = self.synced_commit.short if self.synced_commit else "?"
            return (
                f"Incremental {base}..{self.head.short}: "
                f"{len(self.touched.added_or_modified)} touched, "
                f"{len(self.touched.deleted)} deleted"
            )
        reason = self.reason.value if self.reason else "unknown"
        return (
            f"Full rebuild at {self.head.short} ({reason}): "
            f"{len(self.touched.added_or_modified)} files"
        )


# --- Apply / publish ---


@dataclass
class ItemFailure:
    """A non-fatal failure for one file."""

    path: str
    error: str


@dataclass
class ApplyResult:
    """What the apply stage did to the publish worktree."""

    rendered: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failures: list[ItemFailure] = field(default_factory=list)
    languages: dict[str, float] = field(default_factory=dict)
    assets_copied: int = 0

    @property
    def ok(self) -> bool:
        return not self.failures


@dataclass
class SyncOutcome:
    """The end state of a run."""

    plan: SyncPlan
    applied: ApplyResult | None = None
    published: CommitRef | None = None
    pushed: bool = False

    @property
    def committed(self) -> bool:
        return self.published is not None
