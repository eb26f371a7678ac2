"""Run orchestration — checkout, plan, apply, commit, push.

Every mutation happens in scratch worktrees created only after the plan is
fixed. A fatal error anywhere before the final commit leaves the publish
branch, locally and remotely, exactly as it was.
"""

from __future__ import annotations

import logging
from contextlib import ExitStack
from dataclasses import dataclass
from pathlib import Path

from pagesync.apply.stage import ApplyStage
from pagesync.classifier.client import ClassifierClient
from pagesync.config import SyncConfig, apply_repo_config, repo_config_path
from pagesync.interfaces import Classifier, Renderer
from pagesync.models import SyncMode, SyncOutcome, SyncPlan
from pagesync.render.renderer import CommandRenderer, PygmentsRenderer
from pagesync.sync.engine import SyncEngine
from pagesync.sync.journal import SyncJournal
from pagesync.sync.triggers import TriggerSet
from pagesync.sync.writer import commit_publish, publish_commit
from pagesync.utils.git_ops import (
    GitVCS,
    PublishWorktree,
    RepoHandle,
    ScratchWorktree,
    ensure_local_repo,
)

logger = logging.getLogger(__name__)


@dataclass
class PreparedRun:
    """A resolved checkout with its effective config and frozen plan."""

    handle: RepoHandle
    vcs: GitVCS
    config: SyncConfig
    plan: SyncPlan


def prepare(repo_path: str, config: SyncConfig, explicit: frozenset[str] = frozenset()) -> PreparedRun:
    """Fetch the repository and compute the plan without mutating anything.

    ``explicit`` names config keys the operator set; the repository's own
    config file cannot override those.
    """
    handle = ensure_local_repo(repo_path, config.storage_root, config.remote)
    vcs = GitVCS(handle.repo, config.remote)
    source_ref = vcs.source_ref(config.source_branch)
    head = vcs.head(source_ref)

    config = apply_repo_config(config, vcs.read_file(head.sha, repo_config_path(config)), set(explicit))
    triggers = TriggerSet.for_config_dir(config.config_dir, config.trigger_rules())

    engine = SyncEngine(vcs, source_ref, config.publish_branch, triggers, remote_only=config.production)
    plan = engine.plan(head)
    logger.info("Plan: %s", plan.summary())
    return PreparedRun(handle=handle, vcs=vcs, config=config, plan=plan)


def execute(
    run: PreparedRun,
    classifier: Classifier | None = None,
    renderer: Renderer | None = None,
) -> SyncOutcome:
    """Apply a prepared plan and publish the result."""
    plan = run.plan
    config = run.config
    if plan.is_noop:
        return SyncOutcome(plan=plan)

    if plan.mode == SyncMode.FULL:
        live_files = plan.touched.added_or_modified
    else:
        live_files = run.vcs.list_files(plan.head.sha)
    repo = run.vcs.repo

    with ExitStack() as stack:
        if classifier is None:
            classifier = stack.enter_context(
                ClassifierClient(config.classifier_url, timeout=config.classifier_timeout)
            )
        renderer = renderer or _default_renderer(config)

        source = stack.enter_context(ScratchWorktree(repo, plan.head.sha))
        publish = stack.enter_context(
            PublishWorktree(
                repo,
                config.publish_branch,
                plan.publish_ref or plan.head.sha,
                orphan=plan.publish_ref is None,
            )
        )

        stage = ApplyStage(
            classifier=classifier,
            renderer=renderer,
            repo_id=run.handle.display_path,
            assets_source=Path(config.assets_dir).expanduser() if config.assets_dir else None,
        )
        applied = stage.apply(plan, source.path, publish.path, live_files)

        commit = commit_publish(
            publish,
            plan.head,
            first_publish=plan.first_publish,
            reanchor=plan.reanchors,
            author_name=config.author_name,
            author_email=config.author_email,
        )
        pushed = False
        if commit is not None:
            pushed = publish_commit(publish, commit, config.remote, config.production)

    return SyncOutcome(plan=plan, applied=applied, published=commit, pushed=pushed)


def sync_repository(
    repo_path: str,
    config: SyncConfig,
    classifier: Classifier | None = None,
    renderer: Renderer | None = None,
    explicit: frozenset[str] = frozenset(),
    journal: SyncJournal | None = None,
) -> SyncOutcome:
    """Run one complete synchronization of ``repo_path``."""
    try:
        run = prepare(repo_path, config, explicit)
        outcome = execute(run, classifier=classifier, renderer=renderer)
    except Exception as e:
        if journal is not None:
            journal.record_error(repo_path, e)
        raise

    if journal is not None:
        journal.record_outcome(repo_path, outcome)
    return outcome


def _default_renderer(config: SyncConfig) -> Renderer:
    if config.render_command:
        return CommandRenderer(config.render_command, timeout=config.render_timeout)
    return PygmentsRenderer()
