"""Collaborator interfaces consumed by the engine and the apply stage.

The decision logic only ever talks to these protocols, so it can run against
a real repository (``pagesync.utils.git_ops.GitVCS``) or an in-memory double.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Protocol

from pagesync.models import CommitRef


class VCS(Protocol):
    """Read-only version-control queries."""

    def head(self, ref: str) -> CommitRef:
        """Resolve ``ref`` to its commit."""

    def branch_ref(self, branch: str, remote_only: bool = False) -> str | None:
        """Return a resolvable ref for ``branch``, or None if it exists nowhere.

        With ``remote_only`` only the remote-tracking branch is considered.
        """

    def iter_log(self, ref: str) -> Iterator[tuple[str, str]]:
        """Yield ``(sha, message)`` pairs reachable from ``ref``, newest first."""

    def find_commit(self, prefix: str, ref: str) -> CommitRef | None:
        """First commit in ``ref``'s history whose sha starts with ``prefix``."""

    def list_files(self, sha: str) -> list[str]:
        """All tracked paths at ``sha``."""

    def name_status(self, old: str, new: str) -> str:
        """Raw ``git diff --name-status -z --no-renames`` output between two commits."""


@dataclass
class Classification:
    """Language statistics plus the files the service considers real sources."""

    languages: dict[str, float] = field(default_factory=dict)
    files: list[str] = field(default_factory=list)


class Classifier(Protocol):
    def classify(self, repo_path: Path, files: list[str] | None = None) -> Classification:
        """Classify ``repo_path``, filtering ``files`` when given."""


class Renderer(Protocol):
    def render(self, source: Path, repo_id: str, output_dir: Path, relpath: str) -> Path:
        """Render one source file and return the artifact path.

        Raises ``pagesync.errors.RenderError`` on failure.
        """
