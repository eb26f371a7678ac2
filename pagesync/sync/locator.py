"""Revision locator — find the newest synchronization record on the publish branch."""

from __future__ import annotations

import logging

from pagesync.interfaces import VCS
from pagesync.models import SyncRecord
from pagesync.sync.provenance import claims_record, decode_record

logger = logging.getLogger(__name__)


def locate_record(vcs: VCS, publish_ref: str | None) -> SyncRecord | None:
    """Return the record carried by the newest claiming commit on ``publish_ref``.

    ``publish_ref`` is the already-resolved publish branch ref, so the plan
    and the record always describe the same tip. Returns ``None`` when the
    ref is ``None``, when no commit in its history claims to be a record, or
    when the newest claim is malformed. Older records behind a malformed one
    are not consulted.
    """
    if publish_ref is None:
        logger.info("Publish branch does not exist")
        return None

    for sha, message in vcs.iter_log(publish_ref):
        if not claims_record(message):
            continue
        record = decode_record(message, sha)
        if record is None:
            logger.warning(
                "Newest synchronization record on %s (%s) is malformed",
                publish_ref,
                sha[:7],
            )
        else:
            logger.info(
                "Found synchronization record %s -> %s on %s",
                sha[:7],
                record.source_sha[:7],
                publish_ref,
            )
        return record

    logger.info("No synchronization record on %s", publish_ref)
    return None
