"""Apply stage — render the touched set into the publish worktree.

Order matters: the classifier is consulted before anything is written, so an
unreachable service aborts the run with the worktree untouched. After that,
every failure is per file and is collected rather than raised.
"""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path

from pagesync.errors import RenderError
from pagesync.interfaces import Classifier, Renderer
from pagesync.models import ApplyResult, ItemFailure, SyncMode, SyncPlan
from pagesync.render.renderer import ARTIFACT_SUFFIX, artifact_path_for

logger = logging.getLogger(__name__)

ASSETS_DIR = "assets"
STYLESHEET_NAME = "pygments.css"


class ApplyStage:
    """Applies a frozen plan to a publish worktree."""

    def __init__(
        self,
        classifier: Classifier,
        renderer: Renderer,
        repo_id: str,
        assets_source: Path | None = None,
    ):
        self.classifier = classifier
        self.renderer = renderer
        self.repo_id = repo_id
        self.assets_source = assets_source

    def apply(
        self,
        plan: SyncPlan,
        source_root: Path,
        publish_root: Path,
        live_files: list[str],
    ) -> ApplyResult:
        """Render ``plan.touched`` from ``source_root`` into ``publish_root``.

        ``live_files`` is every tracked path at the source head; it guards
        artifact removal and drives the dangling-artifact sweep on full rebuilds.

        Raises:
            ClassifierError: If the classification service cannot answer.
        """
        result = ApplyResult()
        touched = plan.touched

        classification = self.classifier.classify(source_root, list(touched.added_or_modified))
        result.languages = classification.languages
        real = set(classification.files)
        result.skipped = [p for p in touched.added_or_modified if p not in real]
        logger.info(
            "Classifier kept %d of %d touched files",
            len(real),
            len(touched.added_or_modified),
        )

        result.assets_copied = self._refresh_assets(publish_root)

        live_artifacts = {artifact_path_for(p) for p in live_files}
        for rel in touched.deleted:
            artifact = artifact_path_for(rel)
            if artifact in live_artifacts:
                # Another live source renders to the same artifact.
                continue
            if _remove(publish_root / artifact):
                result.removed.append(artifact)

        for rel in sorted(real):
            try:
                self.renderer.render(source_root / rel, self.repo_id, publish_root, rel)
                result.rendered.append(rel)
            except RenderError as e:
                logger.warning("Render failed for %s: %s", rel, e.message)
                result.failures.append(ItemFailure(path=rel, error=e.message))

        if plan.mode == SyncMode.FULL:
            result.removed.extend(self._sweep(publish_root, set(live_files), live_artifacts))

        logger.info(
            "Applied: %d rendered, %d removed, %d failed",
            len(result.rendered),
            len(result.removed),
            len(result.failures),
        )
        return result

    def _refresh_assets(self, publish_root: Path) -> int:
        target = publish_root / ASSETS_DIR
        copied = 0

        if self.assets_source is not None:
            if not self.assets_source.is_dir():
                logger.warning("Assets directory %s does not exist", self.assets_source)
            else:
                for src in sorted(self.assets_source.rglob("*")):
                    if src.is_file():
                        dst = target / src.relative_to(self.assets_source)
                        dst.parent.mkdir(parents=True, exist_ok=True)
                        shutil.copy2(src, dst)
                        copied += 1

        stylesheet = getattr(self.renderer, "stylesheet", None)
        if callable(stylesheet):
            target.mkdir(parents=True, exist_ok=True)
            (target / STYLESHEET_NAME).write_text(stylesheet(), encoding="utf-8")
            copied += 1

        return copied

    def _sweep(self, publish_root: Path, live: set[str], live_artifacts: set[str]) -> list[str]:
        """Remove artifacts whose source no longer exists."""
        removed = []
        for dirpath, dirnames, filenames in os.walk(publish_root):
            rel_dir = Path(dirpath).relative_to(publish_root).as_posix()
            if rel_dir == ".":
                dirnames[:] = [d for d in dirnames if d not in {".git", ASSETS_DIR}]
                rel_dir = ""
            for name in filenames:
                if not name.endswith(ARTIFACT_SUFFIX):
                    continue
                rel = f"{rel_dir}/{name}" if rel_dir else name
                if rel in live or rel in live_artifacts:
                    continue
                if _remove(publish_root / rel):
                    removed.append(rel)
        if removed:
            logger.info("Swept %d dangling artifacts", len(removed))
        return sorted(removed)


def _remove(path: Path) -> bool:
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    return True
