"""
BuildSight：构建日志分析 + git 溯源 + review 评论。

流程：
1. 日志窗口分析 -> LoggingInfo（纯本地计算）
2. repo client 查询 `commit:<patchsetRevision>` -> RepoInfo
3. review connector 查询 change -> ReviewInfo
4. 有诊断时把诊断作为 finding 投票（只评论新增行上的诊断）

没有 patchsetRevision 时跳过 2-4，不做任何网络调用。
"""

from __future__ import annotations

import logging

from insight.config import Config
from insight.errors import PipelineError
from insight.proto.trigger import BuildInfo, BuildTrigger, GerritTrigger, MailInfo
from insight.repo.client import RepoClient
from insight.review.client import ReviewClient
from insight.sights.infos import build_mail, repo_info, review_info
from insight.sights.log_analyzer import collect_diagnostics, diagnostics_to_findings, log_window, summarize

logger = logging.getLogger(__name__)


class BuildSight:
    def __init__(self, config: Config, repo_client: RepoClient | None, review_client: ReviewClient | None) -> None:
        self._logging = config.spec.buildConfig.loggingConfig
        self._repo = repo_client
        self._review = review_client

    async def run(self, trigger: BuildTrigger) -> BuildInfo:
        info = BuildInfo()
        logging_trigger = trigger.loggingTrigger
        start = logging_trigger.start or self._logging.start
        length = logging_trigger.len or self._logging.len
        lines = log_window(logging_trigger.lines, start, length)

        diagnostics = collect_diagnostics(lines, self._logging.count)
        info.loggingInfo = summarize(lines, diagnostics)
        logger.info(f"BuildSight: {len(lines)} log line(s), {len(diagnostics)} diagnostic(s)")

        gerrit = trigger.gerritTrigger
        revision = gerrit.patchsetRevision
        if not revision:
            logger.info("BuildSight: no patchset revision, skipping repo and review")
            return info

        try:
            if self._repo is not None and gerrit.project:
                commit = await self._repo.get_commit(gerrit.project, revision)
                info.repoInfo = repo_info(gerrit.project, gerrit.branch, commit)
            if self._review is not None:
                info.reviewInfo = review_info(await self._review.get_commit(revision))
                findings = diagnostics_to_findings(diagnostics)
                if findings:
                    await self._review.vote(revision, findings)
        except Exception as exc:
            logger.error(f"BuildSight failed for {revision}: {exc}")
            raise PipelineError(f"buildsight: {exc}", info=info) from exc

        return info

    @staticmethod
    def notify(trigger: BuildTrigger, info: BuildInfo) -> MailInfo | None:
        return build_mail(info, _recipient(trigger.gerritTrigger, info))


def _recipient(gerrit: GerritTrigger, info: BuildInfo) -> str:
    return gerrit.changeOwnerEmail or info.reviewInfo.owner
