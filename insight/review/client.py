"""
Gerrit REST 客户端（外部系统连接器）。

约定：
- 这里只做“HTTP 调用 + 错误处理 + schema 校验”，vote 的分类逻辑在 `vote.py`
- 发生错误时**直接抛错**，不要吞异常（便于定位与告警）
- user/pass 都配置时走鉴权路径（`/a` 前缀 + basic auth），否则走匿名路径
"""

from __future__ import annotations

import logging
import shutil
from collections.abc import Sequence
from pathlib import Path
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from insight.errors import DecodeError, LocalIOError, RemoteHTTPError
from insight.infra.envelope import JsonValue, loads_xssi, walk
from insight.review.models import COMMIT_MSG, FileDiff, Finding
from insight.review.schemas import ChangeInfo, FileInfo, ReviewInput, RevisionInfo
from insight.review.vote import build_review_input, parse_patch

logger = logging.getLogger(__name__)

QUERY_LIMIT = 1000
QUERY_OPTIONS: tuple[str, ...] = ("CURRENT_FILES", "CURRENT_REVISION", "DETAILED_ACCOUNTS")
COMMIT_OPTIONS: tuple[str, ...] = ("CURRENT_REVISION",)

AUTH_PREFIX = "/a"
BASE64_SUFFIX = ".base64"
MESSAGE_FILE = "message.base64"
SKIPPED_STATUSES = frozenset({"D", "R"})


class ReviewClient:
    """最小 Gerrit client：query / detail / diff / fetch / vote / clean。"""

    def __init__(self, base_url: str, user: str, password: str, http_client: httpx.AsyncClient) -> None:
        """
        - base_url: Gerrit 实例地址（不包含末尾 /）
        - user/password: HTTP 凭据（建议用专用机器人账号）；任一为空时匿名访问
        - http_client: 复用的 httpx.AsyncClient
        """
        self._base_url = base_url.rstrip("/")
        self._user = user
        self._password = password
        self._http_client = http_client

    @property
    def _authenticated(self) -> bool:
        return bool(self._user and self._password)

    def _url(self, path: str) -> str:
        prefix = AUTH_PREFIX if self._authenticated else ""
        return f"{self._base_url}{prefix}{path}"

    def _auth(self) -> httpx.BasicAuth | None:
        return httpx.BasicAuth(self._user, self._password) if self._authenticated else None

    async def _get(self, path: str) -> bytes:
        url = self._url(path)
        try:
            response = await self._http_client.get(url, auth=self._auth())
        except httpx.HTTPError as exc:
            raise RemoteHTTPError(f"Gerrit request failed: {url}: {exc}") from exc
        if response.status_code != 200:
            raise RemoteHTTPError(f"Gerrit API error {response.status_code}: {url}", status_code=response.status_code)
        return response.content

    async def _post(self, path: str, payload: dict[str, object]) -> None:
        url = self._url(path)
        try:
            response = await self._http_client.post(
                url,
                json=payload,
                headers={"Content-Type": "application/json;charset=utf-8"},
                auth=self._auth(),
            )
        except httpx.HTTPError as exc:
            raise RemoteHTTPError(f"Gerrit request failed: {url}: {exc}") from exc
        if response.status_code != 200:
            raise RemoteHTTPError(f"Gerrit API error {response.status_code}: {url}", status_code=response.status_code)

    @staticmethod
    def _query_path(search: str, options: Sequence[str], start: int) -> str:
        opts = "".join(f"&o={opt}" for opt in options)
        return f"/changes/?q={quote(search, safe=':')}{opts}&start={start}&n={QUERY_LIMIT}"

    async def query(self, search: str, start: int = 0) -> list[JsonValue]:
        """
        按 search 查询 change，自动翻页。

        - 最后一个元素带 `_more_changes: true` 时，`start += len(page)` 继续请求
        - 返回各页按顺序拼接的结果；没有结果时返回空列表
        """
        results: list[JsonValue] = []
        offset = start
        while True:
            page = loads_xssi(await self._get(self._query_path(search, QUERY_OPTIONS, offset)))
            if not isinstance(page, list):
                raise DecodeError("Query response is not a list")
            if not page:
                break
            results.extend(page)
            last = page[-1]
            if not (isinstance(last, dict) and last.get("_more_changes") is True):
                break
            offset += len(page)
        logger.debug(f"Gerrit query {search!r}: {len(results)} change(s)")
        return results

    async def get_commit(self, commit: str) -> ChangeInfo:
        """按 commit hash 查询 change（带 CURRENT_REVISION），取第一条。"""
        data = loads_xssi(await self._get(self._query_path(f"commit:{commit}", COMMIT_OPTIONS, 0)))
        if isinstance(data, list) and not data:
            raise DecodeError(f"No change found for commit {commit}")
        change = _validate_change(walk(data, 0))
        _current(change)
        return change

    async def detail(self, change: int) -> ChangeInfo:
        return _validate_change(loads_xssi(await self._get(f"/changes/{change}/detail")))

    async def diff(self, change: int, file: str) -> JsonValue:
        """当前 revision 下某个文件的 diff（Gerrit DiffInfo 原样返回）。"""
        return loads_xssi(await self._get(f"/changes/{change}/revisions/current/files/{quote(file, safe='')}/diff"))

    async def files(self, change: int, revision: int) -> dict[str, FileInfo]:
        data = loads_xssi(await self._get(f"/changes/{change}/revisions/{revision}/files/"))
        if not isinstance(data, dict):
            raise DecodeError("Files response is not an object")
        try:
            return {name: FileInfo.model_validate(info) for name, info in data.items()}
        except ValidationError as exc:
            raise DecodeError(f"Invalid files response: {exc}") from exc

    async def content(self, change: int, revision: int, name: str) -> bytes:
        """文件内容（base64 编码，原样返回）。"""
        return await self._get(f"/changes/{change}/revisions/{revision}/files/{quote(name, safe='')}/content")

    async def patch(self, change: int, revision: int) -> bytes:
        return await self._get(f"/changes/{change}/revisions/{revision}/patch")

    async def fetch(self, root: str | Path, commit: str) -> tuple[Path, str, list[str]]:
        """
        把 commit 对应 revision 的变更文件落盘到 `root/<changeNum>/<revision>/`。

        - 删除/重命名（status D/R）的文件跳过
        - 每个文件保存为 `<dir>/<basename>.base64`；commit message 保存为 `message.base64`
        - 其他以 `/` 开头的 magic 文件（如 `/MERGE_LIST`）同样落在目录内
        - 中途失败时删除已写入的目录再抛错
        - 返回 (目录, project, 相对文件列表)
        """
        change = await self.get_commit(commit)
        revision = _current(change)
        path = Path(root) / str(change.number) / change.current_revision

        files = await self.files(change.number, revision.number)
        relative: list[str] = []
        try:
            for name, info in files.items():
                if info.status in SKIPPED_STATUSES:
                    continue
                body = await self.content(change.number, revision.number, name)
                target = MESSAGE_FILE if name == COMMIT_MSG else name.lstrip("/") + BASE64_SUFFIX
                _write(path / target, body)
                relative.append(target)
        except BaseException:
            self.release(path)
            raise

        logger.info(f"Fetched change {change.number} revision {revision.number}: {len(relative)} file(s)")
        return path, change.project, relative

    async def vote(self, commit: str, findings: Sequence[Finding]) -> ReviewInput:
        """
        分类 findings 并在 commit 对应的 revision 上投票（只 POST 一次）。

        状态机：QueryCommit -> FetchPatch -> ParseDiff -> Classify -> PostReview，
        任一步失败直接抛错，不做部分提交。
        """
        change = await self.get_commit(commit)
        revision = _current(change)
        diffs: list[FileDiff] = parse_patch(await self.patch(change.number, revision.number))
        review = build_review_input(findings, diffs)
        await self._post(
            f"/changes/{change.number}/revisions/{revision.number}/review",
            review.model_dump(exclude_none=True),
        )
        logger.info(f"Voted {review.labels} on change {change.number} revision {revision.number}")
        return review

    @staticmethod
    def clean(path: str | Path) -> None:
        """递归删除 fetch 产生的临时目录（不存在时忽略）。"""
        try:
            shutil.rmtree(path)
        except FileNotFoundError:
            return
        except OSError as exc:
            raise LocalIOError(f"Failed to clean {path}: {exc}") from exc

    @classmethod
    def release(cls, path: str | Path) -> None:
        """出错路径上的清理：删除失败只记日志，不覆盖原始错误。"""
        try:
            cls.clean(path)
        except LocalIOError as exc:
            logger.warning(f"Release of {path} failed: {exc}")


def _current(change: ChangeInfo) -> RevisionInfo:
    revision = change.current()
    if revision is None:
        raise DecodeError(f"Change {change.number} has no current revision")
    return revision


def _validate_change(data: JsonValue) -> ChangeInfo:
    try:
        return ChangeInfo.model_validate(data)
    except ValidationError as exc:
        raise DecodeError(f"Invalid change response: {exc}") from exc


def _write(path: Path, body: bytes) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(body)
    except OSError as exc:
        raise LocalIOError(f"Failed to write {path}: {exc}") from exc
