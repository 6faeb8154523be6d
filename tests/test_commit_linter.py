from __future__ import annotations

from pathlib import Path

import pytest

from insight.linters.commit_linter import CommitLinter, check_message
from insight.review.models import parse_finding

LONG_DESCRIPTION = (
    "This is an overly long description line that exceeds the eighty-character maximum allowed by the rule."
)


def _write(root: Path, rel: str, data: str) -> None:
    target = root / rel.lstrip("/")
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(data)


def test_commit_message_rule(tmp_path: Path) -> None:
    _write(tmp_path, "/COMMIT_MSG", f"Fix bug\n{LONG_DESCRIPTION}\nChange-Id: Ia1b2c3\n")
    findings = CommitLinter().lint(tmp_path, ["/COMMIT_MSG"])
    assert [f.format() for f in findings] == [
        "/COMMIT_MSG:0:Error:Subject shorter than 25 characters (found 7)",
        f"/COMMIT_MSG:0:Error:Description longer than 80 characters (found {len(LONG_DESCRIPTION)})",
    ]


def test_message_after_change_id_is_ignored() -> None:
    text = "A subject line that is long enough\n\nChange-Id: I1\n" + "x" * 120 + "\n"
    assert check_message(text) == []


def test_message_reports_each_oversize_line_once() -> None:
    text = "y" * 81 + "\n\n" + "z" * 90 + "\n" + "w" * 85 + "\nshort\nChange-Id: I1\n"
    assert check_message(text) == [
        "Subject longer than 80 characters (found 81)",
        "Description longer than 80 characters (found 90)",
        "Description longer than 80 characters (found 85)",
    ]


def test_message_lengths_count_characters() -> None:
    assert check_message("修复" * 13 + "\n") == []


def test_conflict_rule(tmp_path: Path) -> None:
    _write(tmp_path, "foo.txt", "x\n<<<<<<< HEAD\ny\n")
    _write(tmp_path, "bar.apk", "x\n<<<<<<< HEAD\ny\n")
    findings = CommitLinter().lint(tmp_path, ["foo.txt", "bar.apk"])
    assert [f.format() for f in findings] == ["foo.txt:0:Error:Conflict character found"]


@pytest.mark.parametrize(("content", "expected"), [("allow x y;", 1), ("allow x y;\n", 0)])
def test_newline_rule(tmp_path: Path, content: str, expected: int) -> None:
    _write(tmp_path, "sepolicy/policy.te", content)
    findings = CommitLinter().lint(tmp_path, ["sepolicy/policy.te"])
    assert len(findings) == expected
    if expected:
        assert findings[0].format() == "sepolicy/policy.te:0:Error:No newline at end of file"


def test_newline_rule_matches_file_contexts_basename(tmp_path: Path) -> None:
    _write(tmp_path, "sepolicy/file_contexts", "/system(/.*)? u:object_r:system_file:s0")
    findings = CommitLinter().lint(tmp_path, ["sepolicy/file_contexts"])
    assert [f.message for f in findings] == ["No newline at end of file"]


def test_json_and_xml_rules(tmp_path: Path) -> None:
    _write(tmp_path, "a.json", '{"a": 1,}')
    _write(tmp_path, "b.xml", "<a><b></a>")
    _write(tmp_path, "ok.json", '{"a": 1}')
    _write(tmp_path, "ok.xml", "<a/>")
    findings = CommitLinter().lint(tmp_path, ["a.json", "b.xml", "ok.json", "ok.xml"])
    assert [(f.file, f.severity) for f in findings] == [("a.json", "Error"), ("b.xml", "Error")]
    assert all(f.message for f in findings)


def test_rules_run_in_documented_order(tmp_path: Path) -> None:
    _write(tmp_path, "/COMMIT_MSG", "short\n")
    _write(tmp_path, "x.xml", "<<<<<<< HEAD\n")
    _write(tmp_path, "y.te", "no newline")
    findings = CommitLinter().lint(tmp_path, ["x.xml", "y.te", "/COMMIT_MSG"])
    assert [f.file for f in findings] == ["x.xml", "/COMMIT_MSG", "y.te", "x.xml"]


def test_unreadable_file_yields_one_error_and_run_continues(tmp_path: Path) -> None:
    _write(tmp_path, "ok.te", "x")
    findings = CommitLinter().lint(tmp_path, ["missing.json", "ok.te"])
    assert [f.file for f in findings] == ["missing.json", "ok.te"]
    assert findings[0].severity == "Error"
    assert "No such file" in findings[0].message


def test_empty_file_list_yields_no_findings(tmp_path: Path) -> None:
    assert CommitLinter().lint(tmp_path, []) == []


@pytest.mark.anyio
async def test_run_returns_formatted_strings(tmp_path: Path) -> None:
    _write(tmp_path, "policy.te", "x")
    lines = await CommitLinter().run(tmp_path, ["policy.te"])
    assert lines == ["policy.te:0:Error:No newline at end of file"]
    assert parse_finding(lines[0]).message == "No newline at end of file"
