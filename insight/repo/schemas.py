"""
Gitiles JSON response schemas（Pydantic）。

只覆盖 BuildSight 填 RepoInfo 需要的字段；其他字段忽略。
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class GitilesPerson(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = ""
    email: str = ""
    time: str = ""


class GitilesCommit(BaseModel):
    model_config = ConfigDict(extra="ignore")

    commit: str
    tree: str = ""
    parents: list[str] = Field(default_factory=list)
    author: GitilesPerson = Field(default_factory=GitilesPerson)
    committer: GitilesPerson = Field(default_factory=GitilesPerson)
    message: str = ""
