"""Tests for full-rebuild triggers."""

from pagesync.models import (
    CommitRef,
    FallbackReason,
    SyncRecord,
    TouchedSet,
    TrustState,
    TrustVerdict,
)
from pagesync.sync.triggers import (
    TriggerRule,
    TriggerScope,
    TriggerSet,
    load_rules,
    pre_diff_reason,
)


def test_reserved_config_dir_fires():
    triggers = TriggerSet.for_config_dir(".pagesync")
    decision = triggers.evaluate(TouchedSet(added_or_modified=["src/a.py", ".pagesync/theme.yaml"]))
    assert decision.fired
    assert decision.reason == FallbackReason.CONFIG_TOUCHED
    assert decision.paths == [".pagesync/theme.yaml"]


def test_deleting_config_file_fires():
    triggers = TriggerSet.for_config_dir(".pagesync")
    decision = triggers.evaluate(TouchedSet(deleted=[".pagesync/config.yaml"]))
    assert decision.reason == FallbackReason.CONFIG_TOUCHED


def test_sibling_with_same_prefix_does_not_fire():
    triggers = TriggerSet.for_config_dir(".pagesync")
    decision = triggers.evaluate(TouchedSet(added_or_modified=[".pagesync-old/x", ".pagesyncrc"]))
    assert not decision.fired


def test_no_match_when_outside_config():
    triggers = TriggerSet.for_config_dir(".pagesync")
    decision = triggers.evaluate(TouchedSet(added_or_modified=["src/a.py"], deleted=["b.py"]))
    assert not decision.fired
    assert decision.reason is None


def test_configured_glob_rule_fires():
    rule = TriggerRule(
        name="templates",
        scope=TriggerScope.FILE,
        patterns=["*.jinja"],
        description="Template changes affect every page",
    )
    triggers = TriggerSet.for_config_dir(".pagesync", [rule])
    decision = triggers.evaluate(TouchedSet(added_or_modified=["theme/base.jinja"]))
    assert decision.reason == FallbackReason.POLICY_RULE
    assert decision.reasons == ["[policy_rule] templates: Template changes affect every page"]


def test_config_dir_outranks_configured_rule():
    rule = TriggerRule(name="any-yaml", scope=TriggerScope.FILE, patterns=["*.yaml"])
    triggers = TriggerSet.for_config_dir(".pagesync", [rule])
    decision = triggers.evaluate(TouchedSet(added_or_modified=[".pagesync/config.yaml", "x.yaml"]))
    assert decision.reason == FallbackReason.CONFIG_TOUCHED
    assert len(decision.matched_rules) == 2
    assert decision.paths == [".pagesync/config.yaml", "x.yaml"]


def test_load_rules():
    rules = load_rules([
        {"name": "templates", "scope": "directory", "patterns": "templates"},
        {"name": "makefile", "patterns": ["Makefile"], "description": "build"},
    ])
    assert rules[0].scope == TriggerScope.DIRECTORY
    assert rules[0].patterns == ["templates"]
    assert rules[1].scope == TriggerScope.FILE
    assert rules[1].matches("Makefile")
    assert not rules[1].matches("sub/Makefile")


def test_pre_diff_reasons():
    record = SyncRecord(publish_sha="p" * 40, source_sha="a" * 40)
    trusted = TrustVerdict(TrustState.TRUSTED, commit=CommitRef(sha="a" * 40))
    untrusted = TrustVerdict(TrustState.UNTRUSTED)

    assert pre_diff_reason(None, None, None) == FallbackReason.BRANCH_MISSING
    assert pre_diff_reason("refs/heads/gh-pages", None, None) == FallbackReason.NO_RECORD
    assert pre_diff_reason("refs/heads/gh-pages", record, untrusted) == FallbackReason.UNTRUSTED
    assert pre_diff_reason("refs/heads/gh-pages", record, trusted) is None
