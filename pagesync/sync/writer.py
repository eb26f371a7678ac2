"""Commit the publish worktree and record the source it mirrors."""

from __future__ import annotations

import logging

from git import GitCommandError

from pagesync.errors import VCSError
from pagesync.models import CommitRef
from pagesync.sync.provenance import encode_record
from pagesync.utils.git_ops import PublishWorktree

logger = logging.getLogger(__name__)


def commit_publish(
    worktree: PublishWorktree,
    head: CommitRef,
    first_publish: bool = False,
    reanchor: bool = False,
    author_name: str = "pagesync",
    author_email: str = "pagesync@localhost",
) -> CommitRef | None:
    """Stage everything and create the single publish commit for this run.

    Returns ``None`` without committing when the staged tree is identical to
    the worktree's base. With ``reanchor`` (every full rebuild, first publish
    included) the commit is made anyway, so the branch tip carries a record
    of ``head`` and later runs can resume from it. A first publish commit has
    no parent.
    """
    repo = worktree.repo
    try:
        repo.git.add("--all")
        changed = repo.is_dirty(index=True, working_tree=False, untracked_files=False)
        if not (changed or first_publish or reanchor):
            logger.info("Publish tree unchanged; no commit")
            return None

        tree = repo.git.write_tree()
        parents = [] if first_publish else ["-p", "HEAD"]
        identity = {
            "GIT_AUTHOR_NAME": author_name,
            "GIT_AUTHOR_EMAIL": author_email,
            "GIT_COMMITTER_NAME": author_name,
            "GIT_COMMITTER_EMAIL": author_email,
        }
        with repo.git.custom_environment(**identity):
            sha = repo.git.commit_tree(*parents, "--no-gpg-sign", "-m", encode_record(head), tree)
        subject = repo.git.log("-1", "--format=%s", sha)
    except GitCommandError as e:
        raise VCSError(f"Failed to commit publish tree: {e}") from e

    logger.info("Committed %s recording source %s", sha[:7], head.short)
    return CommitRef(sha=sha, subject=subject)


def publish_commit(
    worktree: PublishWorktree,
    commit: CommitRef,
    remote: str,
    production: bool,
) -> bool:
    """Make ``commit`` the publish branch tip; push it first in production.

    The local branch only moves after a successful push, so a failed push
    leaves both the remote and the local checkout as they were. Returns
    whether a push happened.
    """
    pushed = False
    if production:
        refspec = f"{commit.sha}:refs/heads/{worktree.branch}"
        logger.info("Pushing %s to %s", refspec, remote)
        try:
            worktree.repo.git.push(remote, refspec)
        except GitCommandError as e:
            raise VCSError(f"Failed to push {worktree.branch} to {remote}: {e.stderr.strip() or e}") from e
        pushed = True

    worktree.advance_branch(commit.sha)
    return pushed
