"""
KernelLinter：调用 `checkpatch.pl` 并把输出解析为 finding。

- 每个文件执行一次：`checkpatch.pl <options> -f <root/file>`（stdout+stderr 合并）
- 只解析至少 4 个 `:` 字段的行：`file:line:type:message`
- checkpatch 的退出码不代表执行失败（有告警时非 0），这里不检查
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from collections.abc import Mapping, Sequence
from pathlib import Path

import anyio

from insight.errors import LocalIOError
from insight.review.models import SEVERITIES, Finding

logger = logging.getLogger(__name__)

FIELD_SEPARATOR = ":"
MIN_FIELDS = 4
DEFAULT_SEVERITY = "Info"


def parse_output(name: str, output: str) -> list[Finding]:
    """
    解析 checkpatch 输出。

    - line：第 2 个字段转 int，失败取 0
    - severity：Error/Info/Warn 中第一个（忽略大小写）被第 3 个字段包含的；都不匹配时为 Info
    - message：剩余字段用空格拼接
    """
    findings: list[Finding] = []
    for raw in output.splitlines():
        fields = raw.split(FIELD_SEPARATOR)
        if len(fields) < MIN_FIELDS:
            continue
        try:
            line = int(fields[1].strip())
        except ValueError:
            line = 0
        kind = fields[2].strip().lower()
        severity = next((s for s in SEVERITIES if s.lower() in kind), DEFAULT_SEVERITY)
        message = " ".join(fields[3:]).strip()
        findings.append(Finding(file=name, line=line, severity=severity, message=message))
    return findings


def resolve_linter(linter: str) -> str | None:
    """按 PATH 查找 checkpatch.pl；给的是路径时只检查文件是否存在。"""
    if os.sep in linter:
        return linter if os.path.exists(linter) else None
    return shutil.which(linter)


class KernelLinter:
    def __init__(self, linter: str, options: Sequence[str], env: Mapping[str, str] | None = None) -> None:
        """
        - linter: checkpatch.pl 的绝对路径
        - options: 追加在 `-f <file>` 之前的参数
        - env: 叠加在当前进程环境变量之上的变量（来自 `spec.envVariables`）
        """
        self._linter = linter
        self._options = list(options)
        self._env = {**os.environ, **(env or {})}

    async def lint(self, root: str | Path, names: Sequence[str]) -> list[Finding]:
        findings: list[Finding] = []
        for name in names:
            cmd = [self._linter, *self._options, "-f", str(Path(root) / name.lstrip("/"))]
            try:
                result = await anyio.run_process(cmd, check=False, stderr=subprocess.STDOUT, env=self._env)
            except OSError as exc:
                raise LocalIOError(f"Failed to run {self._linter}: {exc}") from exc
            found = parse_output(name, result.stdout.decode("utf-8", errors="replace"))
            logger.debug(f"checkpatch {name}: {len(found)} finding(s)")
            findings.extend(found)
        return findings

    async def run(self, root: str | Path, names: Sequence[str]) -> list[str]:
        return [f.format() for f in await self.lint(root, names)]
