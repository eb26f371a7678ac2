"""Git operations — resolve checkouts, query history, manage the publish worktree."""

from __future__ import annotations

import hashlib
import logging
import re
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

from git import GitCommandError, InvalidGitRepositoryError, NoSuchPathError, Repo
from gitdb.exc import BadName

from pagesync.errors import VCSError
from pagesync.models import CommitRef

logger = logging.getLogger(__name__)

_HEX_RE = re.compile(r"^[0-9a-fA-F]+$")


@dataclass
class RepoHandle:
    """Tracks a resolved source checkout and where it came from."""

    local_path: Path
    """Filesystem path to the repo root (may live under the storage root)."""

    source_url: str = ""
    """Original URL if the repo was cloned, empty for local repos."""

    managed: bool = False
    """True when ``local_path`` is a clone owned by the storage root."""

    @property
    def repo(self) -> Repo:
        return Repo(self.local_path)

    @property
    def display_path(self) -> str:
        """Return the source URL (for cloned repos) or the local path string."""
        return self.source_url if self.source_url else str(self.local_path)


def ensure_local_repo(repo_path: str, storage_root: Path, remote: str = "origin") -> RepoHandle:
    """Resolve ``repo_path`` to an up-to-date local checkout.

    Local repositories are used in place. URLs are cloned once into
    ``storage_root`` and fetched on later runs. The checkout itself is never
    modified beyond fetching.

    Raises:
        VCSError: If the path is not a repo, or cloning/fetching fails.
    """
    path = Path(repo_path)

    if path.is_dir():
        try:
            repo = Repo(path)
        except InvalidGitRepositoryError:
            raise VCSError(f"Directory exists but is not a Git repo: {repo_path}")
        _fetch(repo, remote)
        return RepoHandle(local_path=path, source_url=_get_remote_url(repo, remote))

    if repo_path.startswith(("http://", "https://", "git@", "git://", "ssh://", "file://")):
        clone_dir = Path(storage_root) / _slug(repo_path)
        if (clone_dir / ".git").exists():
            _fetch(Repo(clone_dir), remote)
        else:
            _clone_repo(repo_path, clone_dir, remote)
        return RepoHandle(local_path=clone_dir, source_url=repo_path, managed=True)

    raise VCSError(f"Not a valid repo path or URL: {repo_path}")


def _clone_repo(url: str, clone_dir: Path, remote: str) -> None:
    """Clone with full history; a shallow clone would make every record untrusted."""
    logger.info("Cloning %s into %s", url, clone_dir)
    clone_dir.parent.mkdir(parents=True, exist_ok=True)
    try:
        Repo.clone_from(url, clone_dir, origin=remote, no_checkout=True)
    except GitCommandError as e:
        shutil.rmtree(clone_dir, ignore_errors=True)
        raise VCSError(f"Failed to clone {url}: {e.stderr.strip() or e}") from e


def _fetch(repo: Repo, remote: str) -> None:
    if remote not in [r.name for r in repo.remotes]:
        logger.debug("No remote %s in %s; using local refs only", remote, repo.working_dir)
        return
    logger.info("Fetching %s", remote)
    try:
        repo.remote(remote).fetch(prune=True)
    except GitCommandError as e:
        raise VCSError(f"Failed to fetch {remote}: {e.stderr.strip() or e}") from e


def _get_remote_url(repo: Repo, remote: str) -> str:
    """Return the URL of ``remote`` for a local repo, or empty string."""
    for r in repo.remotes:
        if r.name == remote:
            return r.url
    return ""


def _slug(url: str) -> str:
    base = url.rstrip("/")
    if base.endswith(".git"):
        base = base[:-4]
    name = re.sub(r"[^A-Za-z0-9._-]+", "_", base.rsplit("/", 1)[-1]) or "repo"
    digest = hashlib.sha1(url.encode()).hexdigest()[:10]
    return f"{name}-{digest}"


class GitVCS:
    """The ``VCS`` collaborator backed by a GitPython repository."""

    def __init__(self, repo: Repo, remote: str = "origin"):
        self.repo = repo
        self.remote = remote

    def head(self, ref: str) -> CommitRef:
        try:
            commit = self.repo.commit(ref)
        except (BadName, ValueError, GitCommandError) as e:
            raise VCSError(f"Cannot resolve {ref}: {e}") from e
        return CommitRef(sha=commit.hexsha, subject=commit.summary)

    def source_ref(self, branch: str) -> str:
        """Resolve the source branch to a ref; empty means the remote's default."""
        if branch:
            ref = self.branch_ref(branch)
            if ref is None:
                raise VCSError(f"Source branch {branch} not found")
            return ref
        default = f"refs/remotes/{self.remote}/HEAD"
        return default if self._verify(default) else "HEAD"

    def branch_ref(self, branch: str, remote_only: bool = False) -> str | None:
        """Pick the ref to read ``branch`` from.

        The local branch wins when it contains the remote-tracking one (a
        dry-run publish not pushed yet); otherwise the remote is
        authoritative. With ``remote_only`` the local branch is ignored.
        """
        remote_ref = f"refs/remotes/{self.remote}/{branch}"
        local_ref = f"refs/heads/{branch}"
        has_remote = self._verify(remote_ref)
        if remote_only:
            return remote_ref if has_remote else None
        has_local = self._verify(local_ref)

        if has_remote and has_local:
            return local_ref if self.repo.is_ancestor(remote_ref, local_ref) else remote_ref
        if has_remote:
            return remote_ref
        if has_local:
            return local_ref
        return None

    def iter_log(self, ref: str) -> Iterator[tuple[str, str]]:
        try:
            for commit in self.repo.iter_commits(ref):
                yield commit.hexsha, commit.message
        except GitCommandError as e:
            raise VCSError(f"Cannot read log of {ref}: {e}") from e

    def find_commit(self, prefix: str, ref: str) -> CommitRef | None:
        if not prefix or not _HEX_RE.match(prefix):
            return None
        prefix = prefix.lower()
        try:
            shas = self.repo.git.rev_list(ref).splitlines()
        except GitCommandError as e:
            raise VCSError(f"Cannot list history of {ref}: {e}") from e
        for sha in shas:
            if sha.startswith(prefix):
                return self.head(sha)
        return None

    def list_files(self, sha: str) -> list[str]:
        try:
            out = self.repo.git.ls_tree("-r", "--name-only", "-z", sha)
        except GitCommandError as e:
            raise VCSError(f"Cannot list files at {sha[:7]}: {e}") from e
        return [p for p in out.split("\0") if p]

    def name_status(self, old: str, new: str) -> str:
        try:
            return self.repo.git.diff("--name-status", "-z", "--no-renames", old, new)
        except GitCommandError as e:
            raise VCSError(f"Cannot diff {old[:7]}..{new[:7]}: {e}") from e

    def read_file(self, sha: str, path: str) -> str | None:
        """Contents of ``path`` at ``sha``, or None if it is not tracked there."""
        try:
            return self.repo.git.show(f"{sha}:{path}")
        except GitCommandError:
            return None

    def _verify(self, ref: str) -> bool:
        try:
            self.repo.git.rev_parse("--verify", "--quiet", f"{ref}^{{commit}}")
        except GitCommandError:
            return False
        return True


class ScratchWorktree:
    """A detached worktree of ``base_ref`` in a temporary directory.

    Use as a context manager; the scratch area is removed however the block
    exits, including on interrupt::

        with ScratchWorktree(repo, head.sha) as wt:
            read_sources(wt.path)
    """

    label = "scratch"

    def __init__(self, repo: Repo, base_ref: str):
        self.source_repo = repo
        self.base_ref = base_ref
        self._scratch: Path | None = None
        self.path: Path | None = None
        self.repo: Repo | None = None

    def __enter__(self):
        self._scratch = Path(tempfile.mkdtemp(prefix="pagesync_"))
        self.path = self._scratch / self.label
        try:
            self.source_repo.git.worktree("add", "--detach", str(self.path), self.base_ref)
            self.repo = Repo(self.path)
        except (GitCommandError, InvalidGitRepositoryError, NoSuchPathError) as e:
            self.cleanup()
            raise VCSError(f"Failed to create {self.label} worktree at {self.base_ref}: {e}") from e
        except BaseException:
            self.cleanup()
            raise
        logger.debug("%s worktree at %s (%s)", self.label, self.path, self.base_ref)
        return self

    def __exit__(self, *exc) -> None:
        self.cleanup()

    def cleanup(self) -> None:
        """Remove the worktree and its scratch directory."""
        if self.repo is not None:
            self.repo.close()
            self.repo = None
        if self.path is not None and self.path.exists():
            try:
                self.source_repo.git.worktree("remove", "--force", str(self.path))
            except GitCommandError as e:
                logger.warning("Could not remove worktree %s: %s", self.path, e)
        if self._scratch is not None:
            shutil.rmtree(self._scratch, ignore_errors=True)
            self._scratch = None
        try:
            self.source_repo.git.worktree("prune")
        except GitCommandError as e:
            logger.warning("git worktree prune failed: %s", e)


class PublishWorktree(ScratchWorktree):
    """The scratch worktree the next publish commit is built in.

    Nothing outside the scratch area changes until :meth:`advance_branch`.
    With ``orphan`` set the worktree starts empty, for a branch that does not
    exist yet; ``base_ref`` then only has to name some commit to check out.
    """

    label = "publish"

    def __init__(self, repo: Repo, branch: str, base_ref: str, orphan: bool = False):
        super().__init__(repo, base_ref)
        self.branch = branch
        self.orphan = orphan

    def __enter__(self):
        super().__enter__()
        if self.orphan:
            try:
                self.repo.git.rm("-r", "-f", "-q", "--ignore-unmatch", ".")
            except GitCommandError as e:
                self.cleanup()
                raise VCSError(f"Failed to empty publish worktree: {e}") from e
            except BaseException:
                self.cleanup()
                raise
        return self

    def advance_branch(self, sha: str) -> None:
        """Point the local publish branch at ``sha``."""
        try:
            self.source_repo.git.update_ref(f"refs/heads/{self.branch}", sha)
        except GitCommandError as e:
            raise VCSError(f"Failed to update {self.branch}: {e}") from e
