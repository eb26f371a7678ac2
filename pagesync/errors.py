"""Exceptions raised by pagesync.

Anything that makes the trust decision unreliable, or that would leave the
publish branch half-updated, surfaces as a ``PagesyncError`` and aborts the run.
Recoverable conditions (a malformed record, an unknown source commit, a single
file failing to render) never raise past their stage.
"""

from __future__ import annotations


class PagesyncError(RuntimeError):
    """Base class for fatal run errors."""


class ConfigError(PagesyncError):
    """Invalid or unreadable configuration."""


class VCSError(PagesyncError):
    """A version-control operation (clone, fetch, worktree, commit, push) failed."""


class ClassifierError(PagesyncError):
    """The classification service was unreachable or answered with an error."""


class RenderError(PagesyncError):
    """Rendering a single file failed.

    Raised by renderers and caught by the apply stage, which records it as a
    per-item failure instead of aborting.
    """

    def __init__(self, path: str, message: str):
        super().__init__(f"{path}: {message}")
        self.path = path
        self.message = message
