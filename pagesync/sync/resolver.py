"""Touched-set resolver — which source files changed between two commits.

Rename detection is disabled on the diff, so a rename always arrives as a
deletion of the old path plus an addition of the new one. If a collaborator
reports rename or copy statuses anyway, they are split the same way. The
resolver may over-report work but never drops a deletion.
"""

from __future__ import annotations

import logging

from pagesync.errors import VCSError
from pagesync.interfaces import VCS
from pagesync.models import CommitRef, TouchedSet

logger = logging.getLogger(__name__)

ADDED_OR_MODIFIED = {"A", "M", "T"}
DELETED = {"D"}
PAIRED = {"R", "C"}  # status followed by two paths


def parse_name_status(raw: str) -> list[tuple[str, list[str]]]:
    """Parse ``git diff --name-status`` output into ``(status, paths)`` entries.

    Accepts both NUL-separated (``-z``) and tab/newline-separated output.
    The status is reduced to its letter (``R100`` -> ``R``).
    """
    if "\0" in raw:
        tokens = raw.split("\0")
        if tokens and tokens[-1] == "":
            tokens.pop()
    else:
        tokens = []
        for line in raw.splitlines():
            if line.strip():
                tokens.extend(line.split("\t"))

    entries: list[tuple[str, list[str]]] = []
    i = 0
    while i < len(tokens):
        status = tokens[i].strip()[:1].upper()
        width = 2 if status in PAIRED else 1
        paths = tokens[i + 1 : i + 1 + width]
        if not status or len(paths) != width:
            raise ValueError(f"Truncated name-status entry at token {i}: {tokens[i:]!r}")
        entries.append((status, paths))
        i += 1 + width
    return entries


def classify_entries(entries: list[tuple[str, list[str]]]) -> TouchedSet:
    """Fold parsed entries into a disjoint touched set; deletions win."""
    touched: set[str] = set()
    deleted: set[str] = set()

    for status, paths in entries:
        if status in DELETED:
            deleted.add(paths[0])
        elif status in PAIRED:
            old, new = paths
            if status == "R":
                deleted.add(old)
            touched.add(new)
        elif status in ADDED_OR_MODIFIED:
            touched.add(paths[0])
        else:
            # Unmerged (U), unknown (X) and anything newer: re-render.
            logger.debug("Treating status %s for %s as modified", status, paths[0])
            touched.add(paths[0])

    touched -= deleted
    return TouchedSet(added_or_modified=sorted(touched), deleted=sorted(deleted))


def resolve_touched(vcs: VCS, older: CommitRef, newer: CommitRef) -> TouchedSet:
    """Diff ``older``..``newer`` into a touched set."""
    raw = vcs.name_status(older.sha, newer.sha)
    try:
        entries = parse_name_status(raw)
    except ValueError as e:
        raise VCSError(f"Unreadable diff {older.short}..{newer.short}: {e}") from e
    result = classify_entries(entries)
    logger.info(
        "Resolved %s..%s: %d added/modified, %d deleted",
        older.short,
        newer.short,
        len(result.added_or_modified),
        len(result.deleted),
    )
    return result


def full_touched_set(vcs: VCS, head: CommitRef) -> TouchedSet:
    """Every tracked file at ``head`` is touched; nothing is explicitly deleted."""
    files = sorted(vcs.list_files(head.sha))
    logger.info("Full rebuild at %s: %d tracked files", head.short, len(files))
    return TouchedSet(added_or_modified=files, deleted=[])
