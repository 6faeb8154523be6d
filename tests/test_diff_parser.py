from __future__ import annotations

import pytest

from insight.errors import DiffParseError
from insight.review.diff_parser import parse_unified_diff


def test_parse_multi_file_diff_tracks_paths_and_line_numbers() -> None:
    diff = "\n".join(
        [
            "diff --git a/src/a.c b/src/a.c",
            "index 3b18e51..a9c2f0e 100644",
            "--- a/src/a.c",
            "+++ b/src/a.c",
            "@@ -10,3 +10,3 @@ int main(void)",
            " int a;",
            "-int b;",
            "+int c;",
            " int d;",
            "diff --git a/docs/new.md b/docs/new.md",
            "new file mode 100644",
            "--- /dev/null",
            "+++ b/docs/new.md",
            "@@ -0,0 +1,2 @@",
            "+# Title",
            "+text",
            "\\ No newline at end of file",
        ]
    )
    files = parse_unified_diff(diff)
    assert [(f.pathOld, f.pathNew) for f in files] == [("a/src/a.c", "b/src/a.c"), ("/dev/null", "b/docs/new.md")]

    lines = files[0].hunks[0].lines
    assert [(l.type, l.lnumOld, l.lnumNew) for l in lines] == [
        ("context", 10, 10),
        ("removed", 11, 0),
        ("added", 0, 11),
        ("context", 12, 12),
    ]
    assert files[1].added_lines() == {1, 2}


def test_format_patch_trailer_is_not_a_removed_line() -> None:
    diff = "\n".join(
        [
            "diff --git a/a.txt b/a.txt",
            "--- a/a.txt",
            "+++ b/a.txt",
            "@@ -1 +1,2 @@",
            " keep",
            "+add",
            "-- ",
            "2.39.2",
        ]
    )
    files = parse_unified_diff(diff)
    assert len(files) == 1
    assert [l.type for l in files[0].hunks[0].lines] == ["context", "added"]


def test_invalid_hunk_header_raises() -> None:
    diff = "\n".join(["--- a/x", "+++ b/x", "@@ -x +1 @@", "+y"])
    with pytest.raises(DiffParseError):
        parse_unified_diff(diff)


def test_hunk_without_file_header_raises() -> None:
    with pytest.raises(DiffParseError):
        parse_unified_diff("@@ -1 +1 @@\n+x")


def test_quoted_non_ascii_paths_are_unquoted() -> None:
    diff = "\n".join(
        [
            'diff --git "a/src/\\344\\270\\255.c" "b/src/\\344\\270\\255.c"',
            "index 3b18e51..a9c2f0e 100644",
            '--- "a/src/\\344\\270\\255.c"',
            '+++ "b/src/\\344\\270\\255.c"',
            "@@ -1 +1,2 @@",
            " keep",
            "+add",
            "diff --git a/plain.c b/plain.c",
            "--- a/plain.c",
            "+++ b/plain.c",
            "@@ -1 +1 @@",
            "-old",
            "+new",
        ]
    )
    files = parse_unified_diff(diff)
    assert [(f.pathOld, f.pathNew) for f in files] == [("a/src/中.c", "b/src/中.c"), ("a/plain.c", "b/plain.c")]
    assert files[0].added_lines() == {2}


def test_quoted_git_header_with_escapes() -> None:
    diff = "\n".join(['diff --git "a/my \\"doc\\".txt" b/plain.txt', "@@ -0,0 +1 @@", "+x"])
    files = parse_unified_diff(diff)
    assert (files[0].pathOld, files[0].pathNew) == ('a/my "doc".txt', "b/plain.txt")


def test_unterminated_quoted_header_raises() -> None:
    with pytest.raises(DiffParseError):
        parse_unified_diff('diff --git "a/broken b/broken\n@@ -1 +1 @@\n+x')
