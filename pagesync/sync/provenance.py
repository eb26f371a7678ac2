"""Provenance — the synchronization record carried by every publish commit.

Each publish commit message embeds the source commit it mirrors so that the
next run can resume incrementally. The record is a versioned trailer block::

    pagesync: synced 1a2b3c4 Fix the build

    Pagesync-Schema: 1
    Pagesync-Source: 1a2b3c4d5e...
    Pagesync-Source-Subject: Fix the build

Messages written before the trailer block existed carry only the first line
(``synced <7-hex> <subject>``); they decode as schema version 0.

Decoding never raises. A message that claims to be a record but does not
parse cleanly decodes to ``None``, which the engine treats as "no record".
"""

from __future__ import annotations

import re

from pagesync.models import SHORT_SHA_LENGTH, CommitRef, SyncRecord

SCHEMA_VERSION = 1
LEGACY_SCHEMA_VERSION = 0

MARKER = "synced"
TITLE_PREFIX = "pagesync:"

TRAILER_SCHEMA = "Pagesync-Schema"
TRAILER_SOURCE = "Pagesync-Source"
TRAILER_SUBJECT = "Pagesync-Source-Subject"

FULL_SHA_LENGTHS = (40, 64)  # SHA-1 and SHA-256 object formats

_MARKER_RE = re.compile(rf"\b{MARKER} (\S+)(?: (.*))?$")
_TRAILER_RE = re.compile(r"^([A-Za-z0-9][A-Za-z0-9-]*):\s*(.*)$")
_HEX_RE = re.compile(r"^[0-9a-f]+$")


def encode_record(source: CommitRef) -> str:
    """Build the publish commit message recording ``source``."""
    subject = _one_line(source.subject)
    title = f"{TITLE_PREFIX} {MARKER} {source.short} {subject}".rstrip()
    trailers = [
        f"{TRAILER_SCHEMA}: {SCHEMA_VERSION}",
        f"{TRAILER_SOURCE}: {source.sha}",
        f"{TRAILER_SUBJECT}: {subject}",
    ]
    return title + "\n\n" + "\n".join(trailers) + "\n"


def parse_trailers(message: str) -> dict[str, str]:
    """Parse the trailing ``Key: value`` paragraph of a commit message.

    Only the last paragraph is considered, and only if every line in it is a
    trailer and it is not also the title line. Later keys override earlier ones.
    """
    paragraphs = [p for p in re.split(r"\n\s*\n", message.strip()) if p.strip()]
    if len(paragraphs) < 2:
        return {}

    trailers: dict[str, str] = {}
    for line in paragraphs[-1].splitlines():
        match = _TRAILER_RE.match(line.strip())
        if not match:
            return {}
        trailers[match.group(1)] = match.group(2).strip()
    return trailers


def claims_record(message: str) -> bool:
    """True if ``message`` presents itself as a synchronization record."""
    if TRAILER_SCHEMA in parse_trailers(message):
        return True
    return _MARKER_RE.search(_title(message)) is not None


def decode_record(message: str, publish_sha: str) -> SyncRecord | None:
    """Decode the record in ``message``, or ``None`` if absent or malformed."""
    trailers = parse_trailers(message)
    marker = _MARKER_RE.search(_title(message))

    if TRAILER_SCHEMA in trailers:
        return _decode_structured(trailers, marker, publish_sha)
    if marker:
        return _decode_legacy(marker, publish_sha)
    return None


def _decode_structured(
    trailers: dict[str, str],
    marker: re.Match | None,
    publish_sha: str,
) -> SyncRecord | None:
    try:
        version = int(trailers[TRAILER_SCHEMA])
    except ValueError:
        return None
    if version != SCHEMA_VERSION:
        return None

    source = trailers.get(TRAILER_SOURCE, "")
    if len(source) not in FULL_SHA_LENGTHS or not _HEX_RE.match(source):
        return None

    # The human-readable title must agree with the trailer it summarizes.
    if marker and not source.startswith(marker.group(1)):
        return None

    return SyncRecord(
        publish_sha=publish_sha,
        source_sha=source,
        source_subject=trailers.get(TRAILER_SUBJECT, ""),
        schema_version=version,
    )


def _decode_legacy(marker: re.Match, publish_sha: str) -> SyncRecord | None:
    token = marker.group(1)
    if len(token) != SHORT_SHA_LENGTH or not _HEX_RE.match(token):
        return None
    return SyncRecord(
        publish_sha=publish_sha,
        source_sha=token,
        source_subject=(marker.group(2) or "").strip(),
        schema_version=LEGACY_SCHEMA_VERSION,
    )


def _title(message: str) -> str:
    stripped = message.strip()
    return stripped.splitlines()[0] if stripped else ""


def _one_line(text: str) -> str:
    return " ".join(text.split())
