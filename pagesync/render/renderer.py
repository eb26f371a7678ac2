"""Renderers — turn one source file into one HTML artifact.

The artifact path is derived from the source path alone: the last extension is
stripped and ``.html`` appended (``pkg/mod.py`` -> ``pkg/mod.html``).
"""

from __future__ import annotations

import html
import subprocess
from pathlib import Path, PurePosixPath

from pygments import highlight
from pygments.formatters import HtmlFormatter
from pygments.lexers import TextLexer, get_lexer_for_filename
from pygments.util import ClassNotFound

from pagesync.errors import RenderError

ARTIFACT_SUFFIX = ".html"
MAX_ERROR_OUTPUT = 2000


def artifact_path_for(relpath: str) -> str:
    """Return the artifact path (relative, POSIX) for a source path."""
    path = PurePosixPath(relpath)
    return str(path.with_name(path.stem + ARTIFACT_SUFFIX))


class PygmentsRenderer:
    """Renders a syntax-highlighted HTML fragment with Pygments."""

    def __init__(self, linenos: bool = True, css_class: str = "highlight"):
        self.formatter = HtmlFormatter(
            linenos="table" if linenos else False,
            cssclass=css_class,
            wrapcode=True,
        )

    def render(self, source: Path, repo_id: str, output_dir: Path, relpath: str) -> Path:
        try:
            code = source.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            raise RenderError(relpath, "not a UTF-8 text file")
        except OSError as e:
            raise RenderError(relpath, str(e))

        try:
            lexer = get_lexer_for_filename(source.name, code)
        except ClassNotFound:
            lexer = TextLexer()

        body = highlight(code, lexer, self.formatter)
        fragment = (
            f'<article class="pagesync-doc" data-repo="{html.escape(repo_id)}"'
            f' data-source="{html.escape(relpath)}">\n'
            f"<h1>{html.escape(relpath)}</h1>\n{body}</article>\n"
        )
        return _write_artifact(output_dir, relpath, fragment)

    def stylesheet(self) -> str:
        return self.formatter.get_style_defs(f".{self.formatter.cssclass}")


class CommandRenderer:
    """Renders by running an external command per file.

    ``command`` is an argument list whose items may reference ``{source}``,
    ``{output}``, ``{repo}`` and ``{relpath}``. The command must write the
    artifact to ``{output}``.
    """

    def __init__(self, command: list[str], timeout: float = 60.0):
        if not command:
            raise ValueError("CommandRenderer needs a non-empty command")
        self.command = command
        self.timeout = timeout

    def render(self, source: Path, repo_id: str, output_dir: Path, relpath: str) -> Path:
        output = output_dir / artifact_path_for(relpath)
        output.parent.mkdir(parents=True, exist_ok=True)
        output.unlink(missing_ok=True)
        values = {
            "source": str(source),
            "output": str(output),
            "repo": repo_id,
            "relpath": relpath,
        }
        try:
            argv = [part.format(**values) for part in self.command]
        except (KeyError, IndexError) as e:
            raise RenderError(relpath, f"bad render_command placeholder {e}")

        try:
            proc = subprocess.run(
                argv,
                cwd=output_dir,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            raise RenderError(relpath, f"renderer timed out after {self.timeout:g}s")
        except OSError as e:
            raise RenderError(relpath, f"cannot run {argv[0]}: {e}")

        if proc.returncode != 0:
            stderr = proc.stderr.strip()[:MAX_ERROR_OUTPUT]
            raise RenderError(relpath, f"renderer exited {proc.returncode}: {stderr}")
        if not output.is_file():
            raise RenderError(relpath, "renderer produced no output")
        return output


def _write_artifact(output_dir: Path, relpath: str, content: str) -> Path:
    output = output_dir / artifact_path_for(relpath)
    try:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(content, encoding="utf-8")
    except OSError as e:
        raise RenderError(relpath, f"cannot write artifact: {e}")
    return output
