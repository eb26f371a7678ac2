"""Synchronization engine — decide what a run must do.

The engine is a pure function of repository state. It walks the state
machine below and returns a frozen ``SyncPlan``; it never writes anything::

    LOCATE -> no record ------------------------------> FULL
           -> record -> VALIDATE -> untrusted --------> FULL
                                 -> head == synced ---> NOOP
                                 -> head != synced ---> DIFF
                                        -> rule hit --> FULL
                                        -> otherwise -> INCREMENTAL
"""

from __future__ import annotations

import logging

from pagesync.interfaces import VCS
from pagesync.models import (
    CommitRef,
    FallbackReason,
    SyncMode,
    SyncPlan,
    SyncRecord,
    TrustState,
    TrustVerdict,
)
from pagesync.sync.locator import locate_record
from pagesync.sync.resolver import full_touched_set, resolve_touched
from pagesync.sync.triggers import TriggerSet, pre_diff_reason
from pagesync.sync.trust import validate_record

logger = logging.getLogger(__name__)


class SyncEngine:
    """Plans one run for a source ref and a publish branch."""

    def __init__(
        self,
        vcs: VCS,
        source_ref: str,
        publish_branch: str,
        triggers: TriggerSet,
        remote_only: bool = False,
    ):
        self.vcs = vcs
        self.source_ref = source_ref
        self.publish_branch = publish_branch
        self.triggers = triggers
        # Production runs plan against what the remote serves, ignoring
        # unpushed local publish commits.
        self.remote_only = remote_only

    def plan(self, head: CommitRef | None = None) -> SyncPlan:
        """Compute the plan; ``head`` pins the source commit if already resolved."""
        head = head or self.vcs.head(self.source_ref)
        logger.info("Source head %s", head)

        publish_ref = self.vcs.branch_ref(self.publish_branch, remote_only=self.remote_only)
        record = locate_record(self.vcs, publish_ref)
        verdict = validate_record(self.vcs, record, self.source_ref) if record else None

        reason = pre_diff_reason(publish_ref, record, verdict)
        if reason is not None:
            return self._full(head, reason, publish_ref, record, verdict)

        synced = verdict.commit
        if synced.sha == head.sha:
            logger.info("Publish branch already mirrors %s", head.short)
            return SyncPlan(
                mode=SyncMode.NOOP,
                head=head,
                trust=TrustState.TRUSTED,
                record=record,
                synced_commit=synced,
                publish_ref=publish_ref,
            )

        touched = resolve_touched(self.vcs, synced, head)
        decision = self.triggers.evaluate(touched)
        if decision.fired:
            logger.info("Full rebuild forced by %s", ", ".join(decision.paths))
            plan = self._full(head, decision.reason, publish_ref, record, verdict)
            plan.trigger_paths = decision.paths
            return plan

        return SyncPlan(
            mode=SyncMode.INCREMENTAL,
            head=head,
            trust=TrustState.TRUSTED,
            record=record,
            synced_commit=synced,
            touched=touched,
            publish_ref=publish_ref,
        )

    def _full(
        self,
        head: CommitRef,
        reason: FallbackReason,
        publish_ref: str | None,
        record: SyncRecord | None,
        verdict: TrustVerdict | None,
    ) -> SyncPlan:
        logger.info("Full rebuild: %s", reason.value)
        return SyncPlan(
            mode=SyncMode.FULL,
            head=head,
            trust=TrustState.UNTRUSTED,
            record=record,
            synced_commit=verdict.commit if verdict else None,
            touched=full_touched_set(self.vcs, head),
            reason=reason,
            publish_ref=publish_ref,
            first_publish=publish_ref is None,
        )
