from __future__ import annotations

import base64

import pytest

from insight.errors import DiffParseError
from insight.review.models import Finding
from insight.review.vote import (
    APPROVAL_MESSAGE,
    DISAPPROVAL_MESSAGE,
    build_review_input,
    parse_patch,
    strip_binary_sections,
)

PATCH = "\n".join(
    [
        "From 1111 Mon Sep 17 00:00:00 2001",
        "Subject: [PATCH] demo",
        "---",
        "",
        "diff --git a/src/a.c b/src/a.c",
        "--- a/src/a.c",
        "+++ b/src/a.c",
        "@@ -40,2 +40,3 @@",
        " int n = 0;",
        " int m = 0;",
        "+if (n > m) return -1;",
        "-- ",
        "2.39.2",
        "",
    ]
)

BINARY_ONLY = "\n".join(
    [
        "Subject: [PATCH] logo",
        "---",
        "diff --git a/res/logo.png b/res/logo.png",
        "index 3b18e51..a9c2f0e 100644",
        "Binary files differ",
        "",
    ]
)


def _encode(text: str) -> bytes:
    return base64.b64encode(text.encode("utf-8"))


def test_empty_findings_vote_approval_without_comments() -> None:
    review = build_review_input([], parse_patch(_encode(PATCH)))
    assert review.labels == {"Code-Review": "+1"}
    assert review.message == APPROVAL_MESSAGE
    assert "comments" not in review.model_dump(exclude_none=True)


def test_only_findings_on_added_lines_are_posted() -> None:
    findings = [
        Finding(file="src/a.c", line=42, message="bad"),
        Finding(file="src/a.c", line=43, message="oops"),
        Finding(file="src/other.c", line=1, message="x"),
    ]
    review = build_review_input(findings, parse_patch(_encode(PATCH)))
    assert review.labels == {"Code-Review": "-1"}
    assert review.message == DISAPPROVAL_MESSAGE
    assert review.comments == {"src/a.c": [{"line": 42, "message": "bad"}]}


def test_file_level_and_commit_message_findings_are_clamped_to_line_one() -> None:
    findings = [
        Finding(file="/COMMIT_MSG", line=0, message="Subject shorter than 25 characters (found 7)"),
        Finding(file="src/a.c", line=0, message="Conflict character found"),
        Finding(file="src/a.c", line=42, message=""),
    ]
    review = build_review_input(findings, parse_patch(_encode(PATCH)))
    assert review.comments == {
        "/COMMIT_MSG": [{"line": 1, "message": "Subject shorter than 25 characters (found 7)"}],
        "src/a.c": [{"line": 1, "message": "Conflict character found"}],
    }


def test_posted_lines_always_exist_as_added_lines() -> None:
    diffs = parse_patch(_encode(PATCH))
    added = {(d.pathNew, n) for d in diffs for n in d.added_lines()}
    findings = [Finding(file="src/a.c", line=n, message="m") for n in range(1, 60)]
    review = build_review_input(findings, diffs)
    assert review.comments is not None
    for file, comments in review.comments.items():
        for comment in comments:
            assert ("b/" + file, comment["line"]) in added


def test_binary_only_patch_votes_approval() -> None:
    assert strip_binary_sections(BINARY_ONLY) == ""
    findings = [Finding(file="res/logo.png", line=3, message="x")]
    review = build_review_input(findings, parse_patch(_encode(BINARY_ONLY)))
    assert review.labels == {"Code-Review": "+1"}
    assert review.comments is None


def test_vote_payload_is_stable_across_invocations() -> None:
    findings = [Finding(file="src/a.c", line=42, message="bad")]
    first = build_review_input(findings, parse_patch(_encode(PATCH))).model_dump_json(exclude_none=True)
    second = build_review_input(findings, parse_patch(_encode(PATCH))).model_dump_json(exclude_none=True)
    assert first == second


def test_patch_without_diff_section_raises() -> None:
    with pytest.raises(DiffParseError):
        parse_patch(_encode("Subject: [PATCH] empty\n"))


def test_patch_with_invalid_base64_raises() -> None:
    with pytest.raises(DiffParseError):
        parse_patch(b"not-base64!")


def test_findings_on_quoted_non_ascii_paths_are_posted() -> None:
    patch = "\n".join(
        [
            "Subject: [PATCH] rename",
            "---",
            'diff --git "a/src/\\344\\270\\255.c" "b/src/\\344\\270\\255.c"',
            '--- "a/src/\\344\\270\\255.c"',
            '+++ "b/src/\\344\\270\\255.c"',
            "@@ -1 +1,2 @@",
            " keep",
            "+add",
            "",
        ]
    )
    review = build_review_input([Finding(file="src/中.c", line=2, message="bad")], parse_patch(_encode(patch)))
    assert review.labels == {"Code-Review": "-1"}
    assert review.comments == {"src/中.c": [{"line": 2, "message": "bad"}]}
