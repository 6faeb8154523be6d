"""
Review 领域模型（Pydantic）。

用途：
- `Finding`：linter 输出、review 评论的统一结构
- `FileDiff` / `Hunk` / `DiffLine`：unified diff 解析结果（vote 分类用）
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from insight.errors import DecodeError

COMMIT_MSG = "/COMMIT_MSG"

Severity = Literal["Error", "Info", "Warn"]
SEVERITIES: tuple[str, ...] = ("Error", "Info", "Warn")


class Finding(BaseModel):
    """单条 lint 结果；line 为 0 表示文件级问题。"""

    file: str
    line: int = 0
    severity: Severity = "Error"
    message: str

    def format(self) -> str:
        return f"{self.file}:{self.line}:{self.severity}:{self.message}"


def parse_finding(text: str) -> Finding:
    """
    解析 `<file>:<line>:<severity>:<message>`。

    只按前三个冒号切分，message 内部允许再出现冒号。
    """
    parts = text.split(":", 3)
    if len(parts) != 4:
        raise DecodeError(f"Invalid finding: {text!r}")
    file, line, severity, message = parts
    try:
        line_no = int(line)
    except ValueError as exc:
        raise DecodeError(f"Invalid finding line: {text!r}") from exc
    if severity not in SEVERITIES:
        raise DecodeError(f"Invalid finding severity: {text!r}")
    return Finding(file=file, line=line_no, severity=severity, message=message)


class DiffLine(BaseModel):
    """
    diff 中的一行。

    - added：lnumOld 为 0
    - removed：lnumNew 为 0
    """

    type: Literal["context", "added", "removed"]
    lnumNew: int = 0
    lnumOld: int = 0
    text: str = ""


class Hunk(BaseModel):
    oldStart: int = 0
    oldCount: int = 0
    newStart: int = 0
    newCount: int = 0
    lines: list[DiffLine] = Field(default_factory=list)


class FileDiff(BaseModel):
    """单个文件的 diff（pathOld/pathNew 保留 `a/` `b/` 前缀）。"""

    pathOld: str = ""
    pathNew: str = ""
    hunks: list[Hunk] = Field(default_factory=list)

    def added_lines(self) -> set[int]:
        return {line.lnumNew for hunk in self.hunks for line in hunk.lines if line.type == "added"}
