"""
Vote 分类（确定性输出）。

注意：
- 这里不依赖网络：输入是 patch 文本 + findings，输出是 POST .../review 的请求体
- 只有落在新增行上的 finding 才会变成评论，其余直接丢弃（避免评论打到不存在的行）
"""

from __future__ import annotations

import base64
import binascii
from collections.abc import Sequence

from insight.errors import DiffParseError
from insight.review.diff_parser import parse_unified_diff
from insight.review.models import COMMIT_MSG, FileDiff, Finding
from insight.review.schemas import ReviewInput

VOTE_LABEL = "Code-Review"
VOTE_APPROVAL = "+1"
VOTE_DISAPPROVAL = "-1"
APPROVAL_MESSAGE = "Voting Code-Review +1 by pipeflow insight"
DISAPPROVAL_MESSAGE = "Voting Code-Review -1 by pipeflow insight"

DIFF_SEPARATOR = "diff --git"
BINARY_MARKER = "Binary files differ"
PATH_PREFIX = "b/"


def decode_patch(encoded: str | bytes) -> str:
    """base64 patch -> 文本；解码失败抛 `DiffParseError`。"""
    try:
        raw = base64.b64decode(encoded, validate=False)
    except (binascii.Error, ValueError) as exc:
        raise DiffParseError(f"Failed to decode patch: {exc}") from exc
    return raw.decode("utf-8", errors="replace")


def strip_binary_sections(patch: str) -> str:
    """
    从第一个 `diff --git` 开始截取，并丢掉包含 `Binary files differ` 的文件段。

    找不到 `diff --git` 时抛 `DiffParseError`（patch 不完整）。
    """
    index = patch.find(DIFF_SEPARATOR)
    if index < 0:
        raise DiffParseError("Patch does not contain a diff section")

    kept: list[str] = []
    for section in patch[index:].split(DIFF_SEPARATOR):
        if not section:
            continue
        if BINARY_MARKER in section:
            continue
        kept.append(DIFF_SEPARATOR + section)
    return "".join(kept)


def parse_patch(encoded: str | bytes) -> list[FileDiff]:
    return parse_unified_diff(strip_binary_sections(decode_patch(encoded)))


def in_scope(finding: Finding, diffs: Sequence[FileDiff]) -> bool:
    if finding.file == COMMIT_MSG:
        return True
    for file_diff in diffs:
        if file_diff.pathNew.removeprefix(PATH_PREFIX) != finding.file:
            continue
        if finding.line <= 0:
            return True
        if finding.line in file_diff.added_lines():
            return True
    return False


def group_comments(findings: Sequence[Finding], diffs: Sequence[FileDiff]) -> dict[str, list[dict[str, object]]]:
    """按文件分组（保持首次出现顺序）；行号小于 1 的提升到 1。"""
    comments: dict[str, list[dict[str, object]]] = {}
    for finding in findings:
        if not finding.message or not in_scope(finding, diffs):
            continue
        comments.setdefault(finding.file, []).append({"line": max(finding.line, 1), "message": finding.message})
    return comments


def build_review_input(findings: Sequence[Finding], diffs: Sequence[FileDiff]) -> ReviewInput:
    """没有可评论的 finding 时投 +1（不带 comments），否则 -1 并附上评论。"""
    comments = group_comments(findings, diffs)
    if not comments:
        return ReviewInput(labels={VOTE_LABEL: VOTE_APPROVAL}, message=APPROVAL_MESSAGE)
    return ReviewInput(labels={VOTE_LABEL: VOTE_DISAPPROVAL}, message=DISAPPROVAL_MESSAGE, comments=comments)
