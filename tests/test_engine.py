"""Tests for the decision engine against an in-memory repository."""

import hashlib

import pytest

from pagesync.errors import VCSError
from pagesync.models import CommitRef, FallbackReason, SyncMode, TrustState
from pagesync.sync.engine import SyncEngine
from pagesync.sync.locator import locate_record
from pagesync.sync.provenance import encode_record
from pagesync.sync.resolver import resolve_touched
from pagesync.sync.triggers import TriggerSet
from pagesync.sync.trust import validate_record


def _sha(label: str) -> str:
    return hashlib.sha1(label.encode()).hexdigest()


class FakeVCS:
    """Branches are newest-first lists of (sha, message)."""

    def __init__(self):
        self.branches: dict[str, list[tuple[str, str]]] = {}
        self.files: dict[str, list[str]] = {}
        self.diffs: dict[tuple[str, str], str] = {}
        self.diff_calls: list[tuple[str, str]] = []
        self.log_refs: list[str] = []
        self.branch_ref_calls = 0
        self.remote_only: list[bool] = []

    def commit(self, branch: str, message: str, files: list[str] | None = None) -> CommitRef:
        sha = _sha(f"{branch}-{len(self.branches.get(branch, []))}-{message}")
        self.branches.setdefault(branch, []).insert(0, (sha, message))
        if files is not None:
            self.files[sha] = files
        return CommitRef(sha=sha, subject=message.splitlines()[0] if message else "")

    def head(self, ref):
        sha, message = self.branches[ref][0]
        return CommitRef(sha=sha, subject=message.splitlines()[0])

    def branch_ref(self, branch, remote_only=False):
        self.branch_ref_calls += 1
        self.remote_only.append(remote_only)
        return branch if branch in self.branches else None

    def iter_log(self, ref):
        self.log_refs.append(ref)
        yield from self.branches[ref]

    def find_commit(self, prefix, ref):
        for sha, message in self.branches.get(ref, []):
            if prefix and sha.startswith(prefix):
                return CommitRef(sha=sha, subject=message.splitlines()[0])
        return None

    def list_files(self, sha):
        return list(self.files[sha])

    def name_status(self, old, new):
        self.diff_calls.append((old, new))
        return self.diffs[(old, new)]


ALL_FILES = ["README.md", "src/a.py", "src/b.py", "src/c.py", "src/d.py", ".pagesync/config.yaml"]


def _engine(vcs: FakeVCS) -> SyncEngine:
    return SyncEngine(vcs, "main", "gh-pages", TriggerSet.for_config_dir(".pagesync"))


def _source_history(vcs: FakeVCS) -> tuple[CommitRef, CommitRef]:
    old = vcs.commit("main", "Initial import", files=ALL_FILES)
    new = vcs.commit("main", "Rework modules", files=[f for f in ALL_FILES if f != "src/d.py"])
    return old, new


# --- Locator ---


def test_locator_no_branch():
    vcs = FakeVCS()
    assert locate_record(vcs, vcs.branch_ref("gh-pages")) is None


def test_locator_skips_non_record_commits():
    vcs = FakeVCS()
    source = CommitRef(sha=_sha("src"), subject="Initial import")
    vcs.commit("gh-pages", encode_record(source))
    vcs.commit("gh-pages", "Manual fix to index page")

    record = locate_record(vcs, "gh-pages")
    assert record.source_sha == source.sha


def test_locator_stops_at_newest_claim_even_if_malformed():
    vcs = FakeVCS()
    vcs.commit("gh-pages", encode_record(CommitRef(sha=_sha("good"))))
    vcs.commit("gh-pages", "pagesync: synced nothex! broken")

    assert locate_record(vcs, "gh-pages") is None


def test_locator_no_record_in_history():
    vcs = FakeVCS()
    vcs.commit("gh-pages", "Initial pages")
    assert locate_record(vcs, "gh-pages") is None


# --- Trust ---


def test_trust_resolves_by_prefix():
    vcs = FakeVCS()
    old, _ = _source_history(vcs)
    vcs.commit("gh-pages", f"synced {old.short} {old.subject}")
    record = locate_record(vcs, "gh-pages")

    verdict = validate_record(vcs, record, "main")
    assert verdict.state == TrustState.TRUSTED
    assert verdict.commit.sha == old.sha


def test_trust_rejects_unknown_commit():
    vcs = FakeVCS()
    _source_history(vcs)
    vcs.commit("gh-pages", encode_record(CommitRef(sha=_sha("rewritten away"))))
    record = locate_record(vcs, "gh-pages")

    verdict = validate_record(vcs, record, "main")
    assert verdict.state == TrustState.UNTRUSTED
    assert verdict.commit is None


def test_trust_without_record():
    verdict = validate_record(FakeVCS(), None, "main")
    assert not verdict.trusted


# --- Scenarios ---


def test_scenario_a_first_publish():
    vcs = FakeVCS()
    _, head = _source_history(vcs)

    plan = _engine(vcs).plan()
    assert plan.mode == SyncMode.FULL
    assert plan.reason == FallbackReason.BRANCH_MISSING
    assert plan.first_publish
    assert plan.head == head
    assert plan.touched.added_or_modified == sorted(vcs.files[head.sha])
    assert plan.touched.deleted == []


def test_scenario_b_already_synchronized():
    vcs = FakeVCS()
    _, head = _source_history(vcs)
    vcs.commit("gh-pages", encode_record(head))

    plan = _engine(vcs).plan()
    assert plan.mode == SyncMode.NOOP
    assert plan.is_noop
    assert plan.trust == TrustState.TRUSTED
    assert plan.touched.is_empty
    assert vcs.diff_calls == []


def test_scenario_c_incremental():
    vcs = FakeVCS()
    old, head = _source_history(vcs)
    vcs.commit("gh-pages", encode_record(old))
    vcs.diffs[(old.sha, head.sha)] = "M\0src/a.py\0M\0src/b.py\0M\0src/c.py\0D\0src/d.py\0"

    plan = _engine(vcs).plan()
    assert plan.mode == SyncMode.INCREMENTAL
    assert plan.trust == TrustState.TRUSTED
    assert plan.synced_commit == old
    assert plan.touched.added_or_modified == ["src/a.py", "src/b.py", "src/c.py"]
    assert plan.touched.deleted == ["src/d.py"]
    assert not plan.first_publish


def test_scenario_d_config_path_forces_full():
    vcs = FakeVCS()
    old, head = _source_history(vcs)
    vcs.commit("gh-pages", encode_record(old))
    vcs.diffs[(old.sha, head.sha)] = (
        "M\0src/a.py\0M\0.pagesync/config.yaml\0M\0src/c.py\0D\0src/d.py\0"
    )

    plan = _engine(vcs).plan()
    assert plan.mode == SyncMode.FULL
    assert plan.reason == FallbackReason.CONFIG_TOUCHED
    assert plan.trust == TrustState.UNTRUSTED
    assert plan.trigger_paths == [".pagesync/config.yaml"]
    assert plan.touched.added_or_modified == sorted(vcs.files[head.sha])
    assert plan.touched.deleted == []
    assert not plan.first_publish


def test_scenario_e_unresolvable_record_matches_first_publish():
    vcs = FakeVCS()
    _, head = _source_history(vcs)
    first = _engine(vcs).plan()

    vcs.commit("gh-pages", encode_record(CommitRef(sha=_sha("lost to a shallow fetch"))))
    plan = _engine(vcs).plan()

    assert plan.mode == SyncMode.FULL
    assert plan.reason == FallbackReason.UNTRUSTED
    assert plan.touched == first.touched
    assert vcs.diff_calls == []


@pytest.mark.parametrize(
    "message",
    [
        "synced 0000000 Ancient history",
        "synced fffffff Ancient history",
        "synced 12345 too short",
        "synced 123456789abc too long",
        "synced GGGGGGG not hex",
        encode_record(CommitRef(sha="0" * 40)),
        encode_record(CommitRef(sha="f" * 64)),
    ],
)
def test_fallback_soundness(message):
    vcs = FakeVCS()
    _, head = _source_history(vcs)
    vcs.commit("gh-pages", message)

    plan = _engine(vcs).plan()
    assert plan.mode == SyncMode.FULL
    assert plan.reason in (FallbackReason.NO_RECORD, FallbackReason.UNTRUSTED)
    assert plan.touched.added_or_modified == sorted(vcs.files[head.sha])
    assert plan.touched.deleted == []


def test_plan_pins_given_head():
    vcs = FakeVCS()
    old, head = _source_history(vcs)
    vcs.commit("gh-pages", encode_record(old))

    plan = _engine(vcs).plan(head=old)
    assert plan.mode == SyncMode.NOOP


def test_plan_reads_record_from_the_resolved_publish_ref():
    vcs = FakeVCS()
    old, head = _source_history(vcs)
    vcs.commit("gh-pages", encode_record(old))
    vcs.diffs[(old.sha, head.sha)] = "M\0src/a.py\0"

    plan = _engine(vcs).plan()

    assert plan.publish_ref == "gh-pages"
    assert plan.record.source_sha == old.sha
    assert vcs.branch_ref_calls == 1
    assert vcs.log_refs == ["gh-pages"]


def test_remote_only_engine_resolves_publish_branch_from_remote():
    vcs = FakeVCS()
    _source_history(vcs)

    SyncEngine(vcs, "main", "gh-pages", TriggerSet.for_config_dir(".pagesync"), remote_only=True).plan()
    _engine(vcs).plan()

    assert vcs.remote_only == [True, False]


def test_resolve_touched_uses_name_status():
    vcs = FakeVCS()
    old, head = _source_history(vcs)
    vcs.diffs[(old.sha, head.sha)] = "R100\0src/d.py\0src/e.py\0"

    touched = resolve_touched(vcs, old, head)
    assert touched.added_or_modified == ["src/e.py"]
    assert touched.deleted == ["src/d.py"]


def test_unreadable_diff_is_vcs_error():
    vcs = FakeVCS()
    old, head = _source_history(vcs)
    vcs.diffs[(old.sha, head.sha)] = "R100\0src/d.py\0"

    with pytest.raises(VCSError, match="Unreadable diff"):
        resolve_touched(vcs, old, head)
