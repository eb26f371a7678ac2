"""HTTP client for the language-classification service.

The service answers two questions for a repository: which languages it is
written in, and which of a list of candidate paths are real source files
(as opposed to vendored or generated files). Failing to get an answer is
fatal to the run.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import httpx

from pagesync.errors import ClassifierError
from pagesync.interfaces import Classification

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
CLASSIFY_PATH = "/classify"


class ClassifierClient:
    """Thin wrapper around the classification service's JSON API.

    Parameters
    ----------
    base_url : str
        Service root, e.g. ``http://localhost:8080``.
    timeout : float
        Per-request timeout in seconds.
    transport : httpx.BaseTransport | None
        Optional transport, mainly for tests.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        if not base_url:
            raise ClassifierError("Classifier not configured. Set classifier_url.")
        self.base_url = base_url.rstrip("/")
        self._client = httpx.Client(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    def __enter__(self) -> ClassifierClient:
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def classify(self, repo_path: Path, files: list[str] | None = None) -> Classification:
        """Classify ``repo_path``; when ``files`` is given, filter it to real sources."""
        payload: dict[str, Any] = {"path": str(repo_path)}
        if files is not None:
            payload["files"] = files

        try:
            resp = self._client.post(CLASSIFY_PATH, json=payload)
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPStatusError as exc:
            raise ClassifierError(
                f"Classifier error: {exc.response.status_code} from {self.base_url}"
            ) from exc
        except httpx.RequestError as exc:
            raise ClassifierError(f"Failed to reach classifier at {self.base_url}: {exc}") from exc
        except ValueError as exc:
            raise ClassifierError(f"Classifier returned invalid JSON: {exc}") from exc

        return _parse_response(data, files)


def _parse_response(data: Any, candidates: list[str] | None) -> Classification:
    if not isinstance(data, dict):
        raise ClassifierError("Classifier response is not a JSON object")

    languages = data.get("languages") or {}
    returned = data.get("files")
    if not isinstance(languages, dict) or (returned is not None and not isinstance(returned, list)):
        raise ClassifierError("Classifier response has unexpected shape")

    files = [str(f) for f in (returned or [])]
    if candidates is not None:
        # Never render something that was not asked about.
        allowed = set(candidates)
        stray = [f for f in files if f not in allowed]
        if stray:
            logger.warning("Classifier returned %d paths outside the candidate list", len(stray))
        files = [f for f in files if f in allowed]

    try:
        stats = {str(k): float(v) for k, v in languages.items()}
    except (TypeError, ValueError) as exc:
        raise ClassifierError(f"Classifier language statistics are not numeric: {exc}") from exc

    return Classification(languages=stats, files=files)
