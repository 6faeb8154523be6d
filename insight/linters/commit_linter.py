"""
CommitLinter：对一次 change 的文件做确定性检查（不依赖外部工具）。

规则按固定顺序执行：conflict, json, message, newline, xml。
每条规则对输入文件列表逐个检查，输出 `<file>:<line>:<severity>:<message>`。

文件读取失败：该文件只产出一条 Error（内容为 I/O 错误信息），其余规则跳过它，整体继续。
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Callable, Sequence
from pathlib import Path
from xml.etree import ElementTree

from anyio import to_thread

from insight.review.models import COMMIT_MSG, Finding

logger = logging.getLogger(__name__)

CONFLICT_HEAD = b"<<<<<<< HEAD"
CONFLICT_TAIL = b">>>>>>> CHANGE"

CONFLICT_EXCLUDED = frozenset({".apk", ".bin", ".so"})
JSON_INCLUDED = frozenset({".json"})
NEWLINE_INCLUDED = frozenset({".te"})
NEWLINE_NAMES = frozenset({"file_contexts"})
XML_INCLUDED = frozenset({".xml"})

MESSAGE_SEPARATOR = "Change-Id"
SUBJECT_MIN = 25
SUBJECT_MAX = 80
DESCRIPTION_MAX = 80


class _Files:
    """按需读取并缓存文件内容；读取失败只上报一次。"""

    def __init__(self, root: Path) -> None:
        self._root = root
        self._cache: dict[str, bytes | OSError] = {}
        self._reported: set[str] = set()

    def read(self, rel: str, findings: list[Finding]) -> bytes | None:
        if rel not in self._cache:
            try:
                self._cache[rel] = (self._root / rel.lstrip("/")).read_bytes()
            except OSError as exc:
                self._cache[rel] = exc
        data = self._cache[rel]
        if isinstance(data, OSError):
            if rel not in self._reported:
                self._reported.add(rel)
                findings.append(Finding(file=rel, line=0, severity="Error", message=str(data)))
            return None
        return data


def _suffix(rel: str) -> str:
    return os.path.splitext(rel)[1]


def lint_conflict(files: _Files, names: Sequence[str]) -> list[Finding]:
    findings: list[Finding] = []
    for rel in names:
        if _suffix(rel) in CONFLICT_EXCLUDED:
            continue
        data = files.read(rel, findings)
        if data is None:
            continue
        if CONFLICT_HEAD in data or CONFLICT_TAIL in data:
            findings.append(Finding(file=rel, message="Conflict character found"))
    return findings


def lint_json(files: _Files, names: Sequence[str]) -> list[Finding]:
    findings: list[Finding] = []
    for rel in names:
        if _suffix(rel) not in JSON_INCLUDED:
            continue
        data = files.read(rel, findings)
        if data is None:
            continue
        try:
            json.loads(data)
        except ValueError as exc:
            findings.append(Finding(file=rel, message=str(exc)))
    return findings


def check_message(text: str) -> list[str]:
    """
    commit message 形状检查，返回错误描述列表。

    - 遇到包含 `Change-Id` 的行就截断（含该行）
    - 第一条非空行是 subject，之后的非空行是 description
    - 长度按字符计
    """
    lines = text.splitlines()
    for index, line in enumerate(lines):
        if MESSAGE_SEPARATOR in line:
            lines = lines[: index + 1]
            break

    errors: list[str] = []
    subject_seen = False
    for raw in lines:
        line = raw.strip()
        if not line:
            continue
        if not subject_seen:
            subject_seen = True
            if len(line) < SUBJECT_MIN:
                errors.append(f"Subject shorter than {SUBJECT_MIN} characters (found {len(line)})")
            elif len(line) > SUBJECT_MAX:
                errors.append(f"Subject longer than {SUBJECT_MAX} characters (found {len(line)})")
            continue
        if len(line) > DESCRIPTION_MAX:
            errors.append(f"Description longer than {DESCRIPTION_MAX} characters (found {len(line)})")
    return errors


def lint_message(files: _Files, names: Sequence[str]) -> list[Finding]:
    findings: list[Finding] = []
    for rel in names:
        if rel != COMMIT_MSG:
            continue
        data = files.read(rel, findings)
        if data is None:
            continue
        for message in check_message(data.decode("utf-8", errors="replace")):
            findings.append(Finding(file=COMMIT_MSG, message=message))
    return findings


def lint_newline(files: _Files, names: Sequence[str]) -> list[Finding]:
    findings: list[Finding] = []
    for rel in names:
        if _suffix(rel) not in NEWLINE_INCLUDED and os.path.basename(rel) not in NEWLINE_NAMES:
            continue
        data = files.read(rel, findings)
        if data is None:
            continue
        if not data.endswith(b"\n"):
            findings.append(Finding(file=rel, message="No newline at end of file"))
    return findings


def lint_xml(files: _Files, names: Sequence[str]) -> list[Finding]:
    findings: list[Finding] = []
    for rel in names:
        if _suffix(rel) not in XML_INCLUDED:
            continue
        data = files.read(rel, findings)
        if data is None:
            continue
        try:
            ElementTree.fromstring(data)
        except ElementTree.ParseError as exc:
            findings.append(Finding(file=rel, message=str(exc)))
    return findings


Rule = Callable[[_Files, Sequence[str]], list[Finding]]

RULES: tuple[tuple[str, Rule], ...] = (
    ("conflict", lint_conflict),
    ("json", lint_json),
    ("message", lint_message),
    ("newline", lint_newline),
    ("xml", lint_xml),
)


class CommitLinter:
    """按固定规则顺序执行；`check`/`run` 把文件读取放到 worker thread。"""

    def lint(self, root: str | Path, names: Sequence[str]) -> list[Finding]:
        files = _Files(Path(root))
        findings: list[Finding] = []
        for name, rule in RULES:
            found = rule(files, names)
            if found:
                logger.debug(f"Commit rule {name}: {len(found)} finding(s)")
            findings.extend(found)
        return findings

    async def check(self, root: str | Path, names: Sequence[str]) -> list[Finding]:
        return await to_thread.run_sync(self.lint, root, list(names))

    async def run(self, root: str | Path, names: Sequence[str]) -> list[str]:
        return [f.format() for f in await self.check(root, names)]
