"""
Trigger / Info 协议模型（与 orchestrator 之间的 JSON）。

说明：
- 字段名直接使用线上 JSON 的 camelCase，避免再维护一层 alias
- 所有 trigger 在一次运行中不可变；info 只由产生它的 sight 修改
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from insight.proto.node import NodeReport, NodeStat


class LoggingTrigger(BaseModel):
    lines: list[str] = Field(default_factory=list)
    start: int = 0
    len: int = 0


class GerritTrigger(BaseModel):
    """Gerrit 事件里和本次构建相关的 change/patchset 元数据。"""

    host: str = ""
    port: str = ""
    project: str = ""
    topic: str = ""
    branch: str = ""
    eventType: str = ""
    scheme: str = ""
    refspec: str = ""
    changeID: str = ""
    changeUrl: str = ""
    changeNumber: str = ""
    changeSubject: str = ""
    changeOwner: str = ""
    changeOwnerName: str = ""
    changeOwnerEmail: str = ""
    changeWIPState: str = ""
    changePrivateState: str = ""
    changeCommitMessage: str = ""
    patchsetNumber: str = ""
    patchsetRevision: str = ""
    patchsetUploader: str = ""
    patchsetUploaderName: str = ""
    patchsetUploaderEmail: str = ""


class BuildTrigger(BaseModel):
    loggingTrigger: LoggingTrigger = Field(default_factory=LoggingTrigger)
    gerritTrigger: GerritTrigger = Field(default_factory=GerritTrigger)


class CodeTrigger(BaseModel):
    """预留：为空时 CodeSight 不做任何网络调用。"""

    gerritTrigger: GerritTrigger | None = None


class SshTarget(BaseModel):
    """一次 SSH 连接的目标；password/key/key+passphrase 三选一。"""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    host: str
    port: int = Field(default=22, ge=1, le=65535)
    user: str = ""
    pass_: str = Field(default="", alias="pass")
    key: str = ""
    timeout: str = ""


class NodeTrigger(BaseModel):
    sshConfig: SshTarget


class TriggerRequest(BaseModel):
    buildTrigger: BuildTrigger | None = None
    codeTrigger: CodeTrigger | None = None
    nodeTrigger: NodeTrigger | None = None


class LoggingInfo(BaseModel):
    file: str = ""
    line: int = 0
    type: str = ""
    detail: str = ""


class RepoInfo(BaseModel):
    project: str = ""
    branch: str = ""
    commit: str = ""
    committer: str = ""
    author: str = ""
    message: str = ""
    date: str = ""


class ReviewInfo(BaseModel):
    project: str = ""
    branch: str = ""
    change: int = 0
    owner: str = ""
    author: str = ""
    message: str = ""
    date: str = ""


class BuildInfo(BaseModel):
    loggingInfo: LoggingInfo = Field(default_factory=LoggingInfo)
    repoInfo: RepoInfo = Field(default_factory=RepoInfo)
    reviewInfo: ReviewInfo = Field(default_factory=ReviewInfo)


class CodeInfo(BaseModel):
    reviewInfo: ReviewInfo = Field(default_factory=ReviewInfo)
    findings: list[str] = Field(default_factory=list)
    vote: Literal["", "+1", "-1"] = ""


class NodeInfo(BaseModel):
    nodeStat: NodeStat = Field(default_factory=NodeStat)
    nodeReport: NodeReport = Field(default_factory=NodeReport)
    error: str | None = None


class MailInfo(BaseModel):
    """调用方可见的通知内容（收件人/主题/正文）。"""

    to: list[str] = Field(default_factory=list)
    subject: str = ""
    content: str = ""


class TriggerResponse(BaseModel):
    buildInfo: BuildInfo | None = None
    codeInfo: CodeInfo | None = None
    nodeInfo: NodeInfo | None = None
    mailInfo: MailInfo | None = None
    error: str | None = None
