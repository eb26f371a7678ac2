"""Run configuration.

Settings come from three layers, later ones winning: built-in defaults, the
per-repository ``<config_dir>/config.yaml`` in the source tree, and explicit
values (an operator YAML file or CLI options).
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

import yaml

from pagesync.errors import ConfigError
from pagesync.sync.triggers import TriggerRule, load_rules

DEFAULT_CONFIG_DIR = ".pagesync"
REPO_CONFIG_FILE = "config.yaml"
DEFAULT_STORAGE_ROOT = Path.home() / ".pagesync" / "repos"

# Keys a repository may set about itself. Where it is published, how it is
# fetched and whether it is pushed stay with the operator.
REPO_SCOPED_KEYS = {
    "render_command",
    "render_timeout",
    "assets_dir",
    "full_rebuild_rules",
    "classifier_timeout",
}


@dataclass
class SyncConfig:
    """Everything a run needs to know, injected rather than read from globals."""

    source_branch: str = ""  # Empty: the remote's default branch / current HEAD
    publish_branch: str = "gh-pages"
    remote: str = "origin"
    config_dir: str = DEFAULT_CONFIG_DIR
    storage_root: Path = field(default_factory=lambda: DEFAULT_STORAGE_ROOT)
    classifier_url: str = ""
    classifier_timeout: float = 30.0
    render_command: list[str] = field(default_factory=list)
    render_timeout: float = 60.0
    assets_dir: str = ""
    production: bool = False
    author_name: str = "pagesync"
    author_email: str = "pagesync@localhost"
    full_rebuild_rules: list[dict] = field(default_factory=list)

    def trigger_rules(self) -> list[TriggerRule]:
        try:
            return load_rules(self.full_rebuild_rules)
        except (KeyError, ValueError, TypeError, AttributeError) as e:
            raise ConfigError(f"Invalid full_rebuild_rules entry: {e}") from e

    def merged(self, overrides: dict[str, Any]) -> SyncConfig:
        """Return a copy with ``overrides`` applied (``None`` values ignored)."""
        clean = {k: v for k, v in overrides.items() if v is not None}
        _check_keys(clean, "overrides")
        return replace(self, **_coerce(clean))


def load_config(path: str | Path | None = None, **overrides: Any) -> SyncConfig:
    """Load a ``SyncConfig`` from an optional YAML file plus keyword overrides."""
    config = SyncConfig()
    if path:
        config = config.merged(_read_yaml(Path(path)))
    return config.merged(overrides)


def explicit_keys(path: str | Path | None = None, **overrides: Any) -> frozenset[str]:
    """Names of the settings an operator chose, from a file and/or overrides."""
    keys = {k for k, v in overrides.items() if v is not None}
    if path:
        keys |= set(_read_yaml(Path(path)))
    return frozenset(keys)


def repo_config_path(config: SyncConfig) -> str:
    return f"{config.config_dir}/{REPO_CONFIG_FILE}"


def apply_repo_config(config: SyncConfig, text: str | None, explicit: set[str]) -> SyncConfig:
    """Layer the source tree's ``<config_dir>/config.yaml`` under explicit values.

    ``text`` is the file's contents at the source commit (``None`` if absent).
    Only repository-scoped keys are honoured, and only where the operator has
    not set them explicitly.
    """
    if text is None:
        return config

    origin = repo_config_path(config)
    data = _parse_yaml(text, origin)
    ignored = sorted(set(data) - REPO_SCOPED_KEYS)
    if ignored:
        raise ConfigError(f"{origin}: keys not allowed in repository config: {', '.join(ignored)}")

    return config.merged({k: v for k, v in data.items() if k not in explicit})


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        text = path.read_text()
    except OSError as e:
        raise ConfigError(f"Failed to read config {path}: {e}") from e
    return _parse_yaml(text, str(path))


def _parse_yaml(text: str, origin: str) -> dict[str, Any]:
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse config {origin}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{origin}: expected a mapping at the top level")
    return data


def _check_keys(data: dict[str, Any], origin: str) -> None:
    known = {f.name for f in fields(SyncConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"Unknown config keys in {origin}: {', '.join(unknown)}")


def _coerce(data: dict[str, Any]) -> dict[str, Any]:
    out = dict(data)
    try:
        if "storage_root" in out:
            out["storage_root"] = Path(out["storage_root"]).expanduser()
        for key in ("classifier_timeout", "render_timeout"):
            if key in out:
                out[key] = float(out[key])
        if "production" in out and not isinstance(out["production"], bool):
            raise ConfigError("production must be true or false")
        if "render_command" in out:
            command = out["render_command"]
            if isinstance(command, str):
                command = command.split()
            out["render_command"] = [str(part) for part in command]
        if "full_rebuild_rules" in out and not isinstance(out["full_rebuild_rules"], list):
            raise ConfigError("full_rebuild_rules must be a list")
        for key in ("source_branch", "publish_branch", "remote", "config_dir",
                    "classifier_url", "assets_dir", "author_name", "author_email"):
            if key in out and not isinstance(out[key], str):
                raise ConfigError(f"{key} must be a string")
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid config value: {e}") from e
    if "config_dir" in out:
        out["config_dir"] = out["config_dir"].strip("/") or DEFAULT_CONFIG_DIR
    return out
