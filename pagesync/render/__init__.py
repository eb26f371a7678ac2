"""Per-file document renderers."""

from pagesync.render.renderer import (
    CommandRenderer,
    PygmentsRenderer,
    artifact_path_for,
)

__all__ = ["CommandRenderer", "PygmentsRenderer", "artifact_path_for"]
