"""Trust validator — check a recorded source commit against source history."""

from __future__ import annotations

import logging

from pagesync.interfaces import VCS
from pagesync.models import SyncRecord, TrustState, TrustVerdict

logger = logging.getLogger(__name__)


def validate_record(vcs: VCS, record: SyncRecord | None, source_ref: str) -> TrustVerdict:
    """Resolve ``record.source_sha`` within ``source_ref``'s history.

    The lookup is by prefix and the first (newest) match wins. Anything that
    cannot be resolved, including a shallow or rewritten history that no
    longer contains the commit, is UNTRUSTED.
    """
    if record is None or not record.source_sha:
        return TrustVerdict(TrustState.UNTRUSTED, detail="no record")

    commit = vcs.find_commit(record.source_sha, source_ref)
    if commit is None:
        logger.warning(
            "Recorded source commit %s is not in the history of %s",
            record.source_sha[:7],
            source_ref,
        )
        return TrustVerdict(
            TrustState.UNTRUSTED,
            detail=f"{record.source_sha[:7]} not found in {source_ref}",
        )

    return TrustVerdict(TrustState.TRUSTED, commit=commit)
