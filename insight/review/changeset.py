"""
Review fetch -> linter 输入 adapter。

职责：
- `ReviewClient.fetch` 落盘的是 base64 内容，这里解码成普通文件树
- commit message 解码为 `COMMIT_MSG`，并以伪路径 `/COMMIT_MSG` 交给 linter
- 只做数据归一化，不做业务决策
"""

from __future__ import annotations

import base64
import binascii
from collections.abc import Sequence
from pathlib import Path

from insight.errors import DecodeError, LocalIOError
from insight.review.client import BASE64_SUFFIX, MESSAGE_FILE
from insight.review.models import COMMIT_MSG


def decode_changeset(path: str | Path, files: Sequence[str]) -> list[str]:
    """
    在 `path` 下把每个 `*.base64` 解码到去掉后缀的同名文件。

    返回 linter 使用的相对路径列表（顺序与 `files` 一致）。
    """
    root = Path(path)
    decoded: list[str] = []
    for rel in files:
        source = root / rel
        if rel == MESSAGE_FILE:
            target_rel = COMMIT_MSG
        elif rel.endswith(BASE64_SUFFIX):
            target_rel = rel[: -len(BASE64_SUFFIX)]
        else:
            raise DecodeError(f"Unexpected fetched file: {rel}")

        try:
            raw = source.read_bytes()
        except OSError as exc:
            raise LocalIOError(f"Failed to read {source}: {exc}") from exc
        try:
            body = base64.b64decode(raw)
        except (binascii.Error, ValueError) as exc:
            raise DecodeError(f"Failed to decode {rel}: {exc}") from exc

        target = root / target_rel.lstrip("/")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(body)
        except OSError as exc:
            raise LocalIOError(f"Failed to write {target}: {exc}") from exc
        decoded.append(target_rel)
    return decoded
