from __future__ import annotations

import os
from pathlib import Path

import pytest

from insight.linters.kernel_linter import KernelLinter, parse_output, resolve_linter

OUTPUT = "\n".join(
    [
        "kernel.c:1: WARNING: Missing or malformed SPDX-License-Identifier tag in line 1",
        "kernel.c:8: ERROR: code indent should use tabs where possible",
        "kernel.c:12: CHECK: Alignment should match open parenthesis",
        "total: 1 errors, 1 warnings, 12 lines checked",
        "",
    ]
)


def test_parse_output_maps_fields() -> None:
    findings = parse_output("kernel.c", OUTPUT)
    assert [(f.line, f.severity) for f in findings] == [(1, "Warn"), (8, "Error"), (12, "Info")]
    assert findings[0].message == "Missing or malformed SPDX-License-Identifier tag in line 1"
    assert findings[1].format() == "kernel.c:8:Error:code indent should use tabs where possible"


def test_parse_output_joins_extra_fields_with_spaces() -> None:
    findings = parse_output("a.c", "a.c:3: WARNING: use of foo: prefer bar")
    assert findings[0].message == "use of foo  prefer bar"


def test_parse_output_discards_short_lines() -> None:
    assert parse_output("a.c", "nothing:here\nplain text") == []


def test_resolve_linter_checks_explicit_paths(tmp_path: Path) -> None:
    assert resolve_linter(str(tmp_path / "checkpatch.pl")) is None
    script = tmp_path / "checkpatch.pl"
    script.write_text("#!/bin/sh\n")
    assert resolve_linter(str(script)) == str(script)


@pytest.mark.anyio
async def test_lint_runs_tool_once_per_file(tmp_path: Path) -> None:
    script = tmp_path / "checkpatch.pl"
    script.write_text('#!/bin/sh\necho "$(basename "$3"):4: ERROR: bad $1 $EXTRA" >&2\n')
    os.chmod(script, 0o755)
    (tmp_path / "src").mkdir()

    linter = KernelLinter(str(script), ["--terse"], env={"EXTRA": "env"})
    lines = await linter.run(tmp_path / "src", ["a.c", "b.c"])

    assert lines == ["a.c:4:Error:bad --terse env", "b.c:4:Error:bad --terse env"]
