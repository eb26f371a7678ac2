"""Fallback triggers — conditions that force a full rebuild.

Some are known before any diff exists (no publish branch, no usable record,
an untrusted record). Others are rules evaluated against the resolved touched
set. The reserved configuration directory is always one of them; extra rules
can be declared in configuration.
"""

from __future__ import annotations

import fnmatch
from dataclasses import dataclass, field
from enum import Enum

from pagesync.models import FallbackReason, SyncRecord, TouchedSet, TrustVerdict


class TriggerScope(Enum):
    """What a trigger rule's patterns are matched against."""

    FILE = "file"  # Glob patterns on the full path
    DIRECTORY = "directory"  # Directory prefixes


@dataclass
class TriggerRule:
    """A single full-rebuild rule."""

    name: str
    scope: TriggerScope
    patterns: list[str] = field(default_factory=list)
    description: str = ""
    reason: FallbackReason = FallbackReason.POLICY_RULE

    def matches(self, path: str) -> bool:
        if self.scope == TriggerScope.DIRECTORY:
            return any(_under_directory(path, p) for p in self.patterns)
        return any(fnmatch.fnmatchcase(path, p) for p in self.patterns)


@dataclass
class TriggerDecision:
    """Result of evaluating trigger rules against a touched set."""

    reason: FallbackReason | None = None
    matched_rules: list[TriggerRule] = field(default_factory=list)
    paths: list[str] = field(default_factory=list)

    @property
    def fired(self) -> bool:
        return self.reason is not None

    @property
    def reasons(self) -> list[str]:
        return [f"[{r.reason.value}] {r.name}: {r.description}" for r in self.matched_rules]


@dataclass
class TriggerSet:
    """The rules checked once the diff is known."""

    rules: list[TriggerRule] = field(default_factory=list)

    @classmethod
    def for_config_dir(cls, config_dir: str, extra: list[TriggerRule] | None = None) -> TriggerSet:
        return cls(rules=[reserved_config_rule(config_dir), *(extra or [])])

    def evaluate(self, touched: TouchedSet) -> TriggerDecision:
        """Match every rule against added, modified and deleted paths alike."""
        matched: list[TriggerRule] = []
        paths: set[str] = set()

        for rule in self.rules:
            hits = [p for p in touched.all_paths if rule.matches(p)]
            if hits:
                matched.append(rule)
                paths.update(hits)

        if not matched:
            return TriggerDecision()

        # The reserved directory outranks configured rules when both fire.
        if any(r.reason == FallbackReason.CONFIG_TOUCHED for r in matched):
            reason = FallbackReason.CONFIG_TOUCHED
        else:
            reason = FallbackReason.POLICY_RULE

        return TriggerDecision(reason=reason, matched_rules=matched, paths=sorted(paths))


def reserved_config_rule(config_dir: str) -> TriggerRule:
    return TriggerRule(
        name="reserved-config",
        scope=TriggerScope.DIRECTORY,
        patterns=[config_dir],
        description=f"Per-repository settings under {config_dir}/ changed",
        reason=FallbackReason.CONFIG_TOUCHED,
    )


def pre_diff_reason(
    publish_ref: str | None,
    record: SyncRecord | None,
    verdict: TrustVerdict | None,
) -> FallbackReason | None:
    """The fallback reason decidable before diffing, if any."""
    if publish_ref is None:
        return FallbackReason.BRANCH_MISSING
    if record is None:
        return FallbackReason.NO_RECORD
    if verdict is None or not verdict.trusted:
        return FallbackReason.UNTRUSTED
    return None


def load_rules(data: list[dict]) -> list[TriggerRule]:
    """Build trigger rules from configuration entries."""
    rules = []
    for rule_data in data:
        patterns = rule_data.get("patterns", [])
        if isinstance(patterns, str):
            patterns = [patterns]
        rules.append(
            TriggerRule(
                name=rule_data["name"],
                scope=TriggerScope(rule_data.get("scope", "file")),
                patterns=list(patterns),
                description=rule_data.get("description", ""),
            )
        )
    return rules


def _under_directory(path: str, directory: str) -> bool:
    directory = directory.strip("/")
    return path == directory or path.startswith(directory + "/")
