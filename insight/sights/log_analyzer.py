"""
构建日志分析（纯函数，不做 I/O）。

- 只看窗口 `[start, start+len)`；len <= 0 表示到日志末尾
- 识别编译器风格的诊断：`path:line[:col]: error|warning: message`
- 没有诊断时退回到第一条包含 `error` 的行（文件级，line 为 0）
"""

from __future__ import annotations

import re
from collections.abc import Sequence

from insight.proto.trigger import LoggingInfo
from insight.review.models import Finding

_DIAGNOSTIC_PATTERN = re.compile(
    r"^\s*(?P<file>[^\s:][^:]*?):(?P<line>\d+)(?::(?P<col>\d+))?:\s*"
    r"(?P<type>fatal error|error|warning):\s*(?P<detail>.*)$",
    re.IGNORECASE,
)
_ERROR_WORD = "error"

SEVERITY_BY_TYPE = {"error": "Error", "warning": "Warn"}


def log_window(lines: Sequence[str], start: int, length: int) -> list[str]:
    start = max(start, 0)
    if length <= 0:
        return list(lines[start:])
    return list(lines[start : start + length])


def _normalise_path(path: str) -> str:
    return path.strip().removeprefix("./")


def parse_diagnostic(line: str) -> LoggingInfo | None:
    match = _DIAGNOSTIC_PATTERN.match(line)
    if match is None:
        return None
    kind = match.group("type").lower()
    return LoggingInfo(
        file=_normalise_path(match.group("file")),
        line=int(match.group("line")),
        type="error" if kind == "fatal error" else kind,
        detail=match.group("detail").strip(),
    )


def collect_diagnostics(lines: Sequence[str], count: int = 0) -> list[LoggingInfo]:
    """按日志顺序收集诊断；count > 0 时最多保留 count 条。"""
    found: list[LoggingInfo] = []
    for line in lines:
        diagnostic = parse_diagnostic(line)
        if diagnostic is None:
            continue
        found.append(diagnostic)
        if 0 < count <= len(found):
            break
    return found


def summarize(lines: Sequence[str], diagnostics: Sequence[LoggingInfo]) -> LoggingInfo:
    """第一条 error 诊断；否则第一条诊断；否则第一条包含 error 的行；都没有时为空。"""
    for diagnostic in diagnostics:
        if diagnostic.type == "error":
            return diagnostic
    if diagnostics:
        return diagnostics[0]
    for line in lines:
        if _ERROR_WORD in line.lower():
            return LoggingInfo(type="error", detail=line.strip())
    return LoggingInfo()


def diagnostics_to_findings(diagnostics: Sequence[LoggingInfo]) -> list[Finding]:
    return [
        Finding(file=d.file, line=d.line, severity=SEVERITY_BY_TYPE[d.type], message=d.detail)
        for d in diagnostics
        if d.detail
    ]
