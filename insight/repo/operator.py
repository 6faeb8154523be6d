"""
Repo 操作符小语言。

- 空格分隔的 token：`branch:<x>` / `commit:<x>` / `tag:<x>`
- get/fetch：恰好一个 token
- query：最多两个 token；branch 与 tag 互斥；单独一个 commit 不合法
"""

from __future__ import annotations

from dataclasses import dataclass

from insight.errors import OperatorError

OP_BRANCH = "branch:"
OP_COMMIT = "commit:"
OP_TAG = "tag:"
OP_DELIMITER = " "
OP_GROUPS = 2


@dataclass(frozen=True)
class Operator:
    branch: str = ""
    commit: str = ""
    tag: str = ""


def _tokens(operator: str) -> list[str]:
    tokens = [t for t in operator.split(OP_DELIMITER) if t]
    if not tokens:
        raise OperatorError("Operator is empty")
    return tokens


def _parse_token(token: str) -> Operator:
    for prefix, field in ((OP_BRANCH, "branch"), (OP_COMMIT, "commit"), (OP_TAG, "tag")):
        if token.startswith(prefix):
            value = token[len(prefix) :]
            if not value:
                raise OperatorError(f"Operator value is empty: {token!r}")
            return Operator(**{field: value})
    raise OperatorError(f"Unknown operator: {token!r}")


def parse_single(operator: str) -> Operator:
    """get/fetch 用：恰好一个 token。"""
    tokens = _tokens(operator)
    if len(tokens) != 1:
        raise OperatorError(f"Expected exactly one operator: {operator!r}")
    return _parse_token(tokens[0])


def parse_query(operator: str) -> Operator:
    """query 用：`branch:x` / `tag:x` / `branch:x commit:y` / `tag:x commit:y`。"""
    tokens = _tokens(operator)
    if len(tokens) > OP_GROUPS:
        raise OperatorError(f"Too many operators: {operator!r}")

    branch = commit = tag = ""
    for token in tokens:
        parsed = _parse_token(token)
        branch = parsed.branch or branch
        commit = parsed.commit or commit
        tag = parsed.tag or tag

    if branch and tag:
        raise OperatorError(f"Operators branch and tag are exclusive: {operator!r}")
    if not branch and not tag:
        raise OperatorError(f"Operator needs a branch or a tag: {operator!r}")
    return Operator(branch=branch, commit=commit, tag=tag)
