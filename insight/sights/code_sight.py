"""
CodeSight：对一个 patchset 做确定性 lint 并投票。

fetch -> decode -> CommitLinter (+ KernelLinter) -> vote -> clean

- finding 顺序：CommitLinter 在前，KernelLinter 在后
- trigger 为空（没有 gerritTrigger 或 patchsetRevision）：返回空 CodeInfo，不做网络调用
- 变更文件为空：不投票
- 临时目录在返回前删除（失败路径也删除）；删除失败只记日志，保留原始错误
"""

from __future__ import annotations

import logging
import tempfile
from pathlib import Path

from insight.config import Config
from insight.errors import PipelineError
from insight.linters.commit_linter import CommitLinter
from insight.linters.kernel_linter import KernelLinter
from insight.proto.trigger import CodeInfo, CodeTrigger, MailInfo
from insight.review.changeset import decode_changeset
from insight.review.client import ReviewClient
from insight.review.models import Finding
from insight.review.vote import VOTE_LABEL
from insight.sights.infos import code_mail, review_info

logger = logging.getLogger(__name__)

SCRATCH_DIR = "insight-review"


def scratch_root(config: Config) -> Path:
    root = config.spec.reviewConfig.root
    return Path(root) if root else Path(tempfile.gettempdir()) / SCRATCH_DIR


class CodeSight:
    def __init__(
        self,
        config: Config,
        review_client: ReviewClient | None,
        commit_linter: CommitLinter,
        kernel_linter: KernelLinter | None = None,
    ) -> None:
        self._root = scratch_root(config)
        self._review = review_client
        self._commit_linter = commit_linter
        self._kernel_linter = kernel_linter

    async def _lint(self, path: Path, names: list[str]) -> list[Finding]:
        findings = await self._commit_linter.check(path, names)
        if self._kernel_linter is not None:
            sources = [name for name in names if not name.startswith("/")]
            findings.extend(await self._kernel_linter.lint(path, sources))
        return findings

    async def run(self, trigger: CodeTrigger) -> CodeInfo:
        info = CodeInfo()
        gerrit = trigger.gerritTrigger
        if gerrit is None or not gerrit.patchsetRevision or self._review is None:
            logger.info("CodeSight: empty trigger, nothing to do")
            return info

        revision = gerrit.patchsetRevision
        try:
            info.reviewInfo = review_info(await self._review.get_commit(revision))
            path, _, fetched = await self._review.fetch(self._root, revision)
            try:
                names = decode_changeset(path, fetched)
                if not names:
                    logger.info(f"CodeSight: no files to lint for {revision}")
                    return info
                findings = await self._lint(path, names)
                info.findings = [f.format() for f in findings]
                review = await self._review.vote(revision, findings)
                info.vote = review.labels[VOTE_LABEL]
            finally:
                self._review.release(path)
        except Exception as exc:
            logger.error(f"CodeSight failed for {revision}: {exc}")
            raise PipelineError(f"codesight: {exc}", info=info) from exc

        logger.info(f"CodeSight: {len(info.findings)} finding(s), vote {info.vote}")
        return info

    @staticmethod
    def notify(trigger: CodeTrigger, info: CodeInfo) -> MailInfo | None:
        return code_mail(info)
