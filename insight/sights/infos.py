"""
远端响应 -> Info 记录的转换，以及通知内容（MailInfo）。

sight 只负责流程，字段映射集中放在这里。
"""

from __future__ import annotations

from insight.proto.trigger import BuildInfo, CodeInfo, MailInfo, RepoInfo, ReviewInfo
from insight.repo.schemas import GitilesCommit, GitilesPerson
from insight.review.schemas import AccountInfo, ChangeInfo

MAIL_SUBJECT_PREFIX = "[pipeflow insight]"


def _account(account: AccountInfo) -> str:
    return account.email or account.username or account.name


def _person(person: GitilesPerson) -> str:
    return person.email or person.name


def review_info(change: ChangeInfo) -> ReviewInfo:
    """author/message 优先取 current revision 的 commit，缺失时退回 uploader/subject。"""
    revision = change.current()
    commit = revision.commit if revision is not None else None
    if commit is not None:
        author = commit.author.email or commit.author.name
        message = commit.message or change.subject
    else:
        author = _account(revision.uploader) if revision is not None else ""
        message = change.subject
    return ReviewInfo(
        project=change.project,
        branch=change.branch,
        change=change.number,
        owner=_account(change.owner),
        author=author,
        message=message,
        date=change.updated,
    )


def repo_info(project: str, branch: str, commit: GitilesCommit) -> RepoInfo:
    return RepoInfo(
        project=project,
        branch=branch,
        commit=commit.commit,
        committer=_person(commit.committer),
        author=_person(commit.author),
        message=commit.message,
        date=commit.committer.time,
    )


def build_mail(info: BuildInfo, recipient: str) -> MailInfo | None:
    """构建日志里有 error 时通知 change owner。"""
    logging_info = info.loggingInfo
    if logging_info.type != "error" or not recipient:
        return None
    location = f"{logging_info.file}:{logging_info.line}" if logging_info.file else "build log"
    change = info.reviewInfo.change
    subject = f"{MAIL_SUBJECT_PREFIX} Build failed"
    if change:
        subject += f" for change {change}"
    return MailInfo(
        to=[recipient],
        subject=subject,
        content=f"{location}: {logging_info.detail}",
    )


def code_mail(info: CodeInfo) -> MailInfo | None:
    """CodeSight 投了 -1 时通知 change owner，正文是全部 finding。"""
    if info.vote != "-1" or not info.reviewInfo.owner:
        return None
    return MailInfo(
        to=[info.reviewInfo.owner],
        subject=f"{MAIL_SUBJECT_PREFIX} Code-Review -1 for change {info.reviewInfo.change}",
        content="\n".join(info.findings),
    )
