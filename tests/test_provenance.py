"""Tests for the synchronization record codec."""

from pagesync.models import CommitRef
from pagesync.sync.provenance import (
    LEGACY_SCHEMA_VERSION,
    SCHEMA_VERSION,
    claims_record,
    decode_record,
    encode_record,
    parse_trailers,
)

SOURCE_SHA = "1a2b3c4d5e6f708192a3b4c5d6e7f80912a3b4c5"
PUBLISH_SHA = "9" * 40


def test_encode_then_decode():
    source = CommitRef(sha=SOURCE_SHA, subject="Fix the build")
    message = encode_record(source)

    assert message.startswith("pagesync: synced 1a2b3c4 Fix the build\n\n")
    record = decode_record(message, PUBLISH_SHA)
    assert record is not None
    assert record.publish_sha == PUBLISH_SHA
    assert record.source_sha == SOURCE_SHA
    assert record.source_subject == "Fix the build"
    assert record.schema_version == SCHEMA_VERSION


def test_encode_flattens_multiline_subject():
    source = CommitRef(sha=SOURCE_SHA, subject="line one\nline two")
    record = decode_record(encode_record(source), PUBLISH_SHA)
    assert record.source_subject == "line one line two"


def test_subject_with_colon_survives():
    source = CommitRef(sha=SOURCE_SHA, subject="docs: explain: things")
    record = decode_record(encode_record(source), PUBLISH_SHA)
    assert record.source_subject == "docs: explain: things"


def test_parse_trailers_last_paragraph_only():
    message = "Title\n\nBody: not a trailer block\nbecause this line is prose\n\nKey-A: 1\nKey-B: two"
    assert parse_trailers(message) == {"Key-A": "1", "Key-B": "two"}


def test_parse_trailers_requires_every_line():
    assert parse_trailers("Title\n\nKey: value\nnot a trailer") == {}


def test_parse_trailers_ignores_title_only():
    assert parse_trailers("Key: value") == {}


def test_legacy_first_line_record():
    record = decode_record("synced 1a2b3c4 Fix the build", PUBLISH_SHA)
    assert record is not None
    assert record.source_sha == "1a2b3c4"
    assert record.source_subject == "Fix the build"
    assert record.schema_version == LEGACY_SCHEMA_VERSION


def test_legacy_record_wrong_length_is_malformed():
    assert decode_record("synced 1a2b3c4d Fix", PUBLISH_SHA) is None
    assert decode_record("synced 1a2b3 Fix", PUBLISH_SHA) is None


def test_legacy_record_non_hex_is_malformed():
    assert decode_record("synced zzzzzzz Fix", PUBLISH_SHA) is None


def test_unknown_schema_version_is_malformed():
    message = encode_record(CommitRef(sha=SOURCE_SHA)).replace(
        "Pagesync-Schema: 1", "Pagesync-Schema: 7"
    )
    assert claims_record(message)
    assert decode_record(message, PUBLISH_SHA) is None


def test_non_numeric_schema_is_malformed():
    message = encode_record(CommitRef(sha=SOURCE_SHA)).replace(
        "Pagesync-Schema: 1", "Pagesync-Schema: one"
    )
    assert decode_record(message, PUBLISH_SHA) is None


def test_truncated_source_trailer_is_malformed():
    message = encode_record(CommitRef(sha=SOURCE_SHA)).replace(SOURCE_SHA, SOURCE_SHA[:39])
    assert decode_record(message, PUBLISH_SHA) is None


def test_uppercase_source_trailer_is_malformed():
    message = encode_record(CommitRef(sha=SOURCE_SHA)).replace(SOURCE_SHA, SOURCE_SHA.upper())
    assert decode_record(message, PUBLISH_SHA) is None


def test_title_disagreeing_with_trailer_is_malformed():
    message = encode_record(CommitRef(sha=SOURCE_SHA, subject="x")).replace(
        "synced 1a2b3c4", "synced 7777777"
    )
    assert decode_record(message, PUBLISH_SHA) is None


def test_sha256_source_is_accepted():
    sha = "ab" * 32
    record = decode_record(encode_record(CommitRef(sha=sha)), PUBLISH_SHA)
    assert record.source_sha == sha


def test_ordinary_messages_do_not_claim():
    assert not claims_record("Add a feature")
    assert not claims_record("Unsynced caches are cleared")
    assert not claims_record("")
    assert decode_record("Add a feature", PUBLISH_SHA) is None


def test_word_synced_in_prose_claims_but_is_malformed():
    message = "docs synced with upstream"
    assert claims_record(message)
    assert decode_record(message, PUBLISH_SHA) is None
