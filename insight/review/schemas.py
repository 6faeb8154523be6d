"""
Gerrit REST API response schemas（Pydantic）。

说明：
- 只覆盖连接器用到的字段；未知字段忽略
- `_number` / `_more_changes` 这类下划线开头的 key 用 alias 映射
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class _GerritModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class AccountInfo(_GerritModel):
    account_id: int = Field(default=0, alias="_account_id")
    name: str = ""
    email: str = ""
    username: str = ""


class GitPerson(_GerritModel):
    name: str = ""
    email: str = ""
    date: str = ""


class CommitInfo(_GerritModel):
    author: GitPerson = Field(default_factory=GitPerson)
    committer: GitPerson = Field(default_factory=GitPerson)
    subject: str = ""
    message: str = ""


class FileInfo(_GerritModel):
    """revision 下的单个文件；status 缺省表示 Modified。"""

    status: str = "M"
    old_path: str = ""
    binary: bool = False
    lines_inserted: int = 0
    lines_deleted: int = 0
    size: int = 0


class RevisionInfo(_GerritModel):
    number: int = Field(default=0, alias="_number")
    ref: str = ""
    created: str = ""
    uploader: AccountInfo = Field(default_factory=AccountInfo)
    commit: CommitInfo | None = None
    files: dict[str, FileInfo] = Field(default_factory=dict)


class ChangeInfo(_GerritModel):
    id: str = ""
    project: str = ""
    branch: str = ""
    topic: str = ""
    change_id: str = ""
    subject: str = ""
    status: str = ""
    created: str = ""
    updated: str = ""
    number: int = Field(default=0, alias="_number")
    owner: AccountInfo = Field(default_factory=AccountInfo)
    current_revision: str = ""
    revisions: dict[str, RevisionInfo] = Field(default_factory=dict)
    more_changes: bool = Field(default=False, alias="_more_changes")

    def current(self) -> RevisionInfo | None:
        return self.revisions.get(self.current_revision)


class ReviewInput(BaseModel):
    """POST .../review 的请求体；comments 为 None 时不序列化。"""

    labels: dict[str, str]
    message: str
    comments: dict[str, list[dict[str, object]]] | None = None
