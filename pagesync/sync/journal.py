"""Run journal — an append-only local history of sync runs.

One JSON line per finished run, kept under the storage root. It is for
operators only: the trust decision is taken from the publish branch itself
and never reads the journal.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from pagesync.models import SyncOutcome


@dataclass
class JournalEntry:
    """A single run, successful or not."""

    repo: str
    mode: str
    reason: str = ""
    source_sha: str = ""
    published_sha: str = ""
    pushed: bool = False
    rendered: int = 0
    removed: int = 0
    failures: list[str] = field(default_factory=list)
    error: str = ""
    finished_at: str = ""

    @property
    def succeeded(self) -> bool:
        return not self.error


class SyncJournal:
    """Stores and retrieves journal entries."""

    JOURNAL_FILE = "journal.jsonl"

    def __init__(self, storage_root: str | Path):
        self.storage_root = Path(storage_root)
        self.journal_file = self.storage_root / self.JOURNAL_FILE

    def record(self, entry: JournalEntry) -> None:
        """Append an entry."""
        self.storage_root.mkdir(parents=True, exist_ok=True)

        if not entry.finished_at:
            entry.finished_at = datetime.now(timezone.utc).isoformat()

        with open(self.journal_file, "a") as f:
            f.write(json.dumps(asdict(entry)) + "\n")

    def record_outcome(self, repo: str, outcome: SyncOutcome) -> JournalEntry:
        plan = outcome.plan
        applied = outcome.applied
        entry = JournalEntry(
            repo=repo,
            mode=plan.mode.value,
            reason=plan.reason.value if plan.reason else "",
            source_sha=plan.head.sha,
            published_sha=outcome.published.sha if outcome.published else "",
            pushed=outcome.pushed,
            rendered=len(applied.rendered) if applied else 0,
            removed=len(applied.removed) if applied else 0,
            failures=[f"{f.path}: {f.error}" for f in applied.failures] if applied else [],
        )
        self.record(entry)
        return entry

    def record_error(self, repo: str, error: Exception) -> JournalEntry:
        entry = JournalEntry(repo=repo, mode="aborted", error=str(error))
        self.record(entry)
        return entry

    def get_history(self, repo: str | None = None) -> list[JournalEntry]:
        """Retrieve entries, oldest first, optionally filtered by repo."""
        if not self.journal_file.exists():
            return []

        entries = []
        with open(self.journal_file) as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    data = json.loads(line)
                except json.JSONDecodeError:
                    continue
                if repo and data.get("repo") != repo:
                    continue
                entries.append(
                    JournalEntry(
                        repo=data.get("repo", ""),
                        mode=data.get("mode", ""),
                        reason=data.get("reason", ""),
                        source_sha=data.get("source_sha", ""),
                        published_sha=data.get("published_sha", ""),
                        pushed=data.get("pushed", False),
                        rendered=data.get("rendered", 0),
                        removed=data.get("removed", 0),
                        failures=data.get("failures", []),
                        error=data.get("error", ""),
                        finished_at=data.get("finished_at", ""),
                    )
                )
        return entries

    def get_latest(self, repo: str) -> JournalEntry | None:
        history = self.get_history(repo)
        return history[-1] if history else None
