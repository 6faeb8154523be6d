"""
Gitiles 只读客户端（外部系统连接器）。

约定：
- 这里只做 HTTP 调用 + 错误处理 + schema 校验
- 出错直接抛错（不要吞），便于定位与告警
- JSON 响应都带 `)]}'` 前缀；`?format=TEXT` 的文件内容是 base64
"""

from __future__ import annotations

import base64
import binascii
import logging
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from insight.errors import DecodeError, OperatorError, RemoteHTTPError
from insight.infra.envelope import JsonValue, loads_xssi
from insight.repo.operator import Operator, parse_query, parse_single
from insight.repo.schemas import GitilesCommit

logger = logging.getLogger(__name__)

FORMAT_JSON = "format=JSON"
FORMAT_TEXT = "format=TEXT"
HEADS = "refs/heads/"
TAGS = "refs/tags/"


class RepoClient:
    """最小 Gitiles client（get / query / fetch / get_commit）。"""

    def __init__(self, base_url: str, user: str, password: str, http_client: httpx.AsyncClient) -> None:
        self._base_url = base_url.rstrip("/")
        self._user = user
        self._password = password
        self._http_client = http_client

    def _auth(self) -> httpx.BasicAuth | None:
        if self._user and self._password:
            return httpx.BasicAuth(self._user, self._password)
        return None

    def _project_url(self, project: str) -> str:
        if not project:
            raise OperatorError("Project is empty")
        return f"{self._base_url}/{quote(project, safe='/')}"

    async def _get(self, url: str) -> bytes:
        try:
            response = await self._http_client.get(url, auth=self._auth())
        except httpx.HTTPError as exc:
            raise RemoteHTTPError(f"Gitiles request failed: {url}: {exc}") from exc
        if response.status_code != 200:
            raise RemoteHTTPError(f"Gitiles API error {response.status_code}: {url}", status_code=response.status_code)
        return response.content

    @staticmethod
    def _ref(op: Operator) -> str:
        if op.branch:
            return HEADS + op.branch
        if op.tag:
            return TAGS + op.tag
        return op.commit

    async def get(self, project: str, operator: str) -> JsonValue:
        """
        单个 ref / commit 的详情。

        - `branch:main` -> `+/refs/heads/main`
        - `tag:v1` -> `+/refs/tags/v1`
        - `commit:<sha>` -> `+/<sha>`
        """
        op = parse_single(operator)
        url = f"{self._project_url(project)}/+/{self._ref(op)}?{FORMAT_JSON}"
        return loads_xssi(await self._get(url))

    async def query(self, project: str, operator: str) -> JsonValue:
        """
        commit log。

        - `branch:main` -> `+log/refs/heads/main`
        - `branch:main commit:<sha>` -> `+log/refs/heads/main/?s=<sha>`
        - tag 同理
        """
        op = parse_query(operator)
        ref = HEADS + op.branch if op.branch else TAGS + op.tag
        if op.commit:
            url = f"{self._project_url(project)}/+log/{ref}/?s={op.commit}&{FORMAT_JSON}"
        else:
            url = f"{self._project_url(project)}/+log/{ref}?{FORMAT_JSON}"
        return loads_xssi(await self._get(url))

    async def fetch(self, project: str, file: str, operator: str) -> bytes:
        """单个文件在 branch/commit/tag 下的内容（已 base64 解码）。"""
        if not file:
            raise OperatorError("File is empty")
        op = parse_single(operator)
        url = f"{self._project_url(project)}/+/{self._ref(op)}/{quote(file.lstrip('/'), safe='/')}?{FORMAT_TEXT}"
        body = await self._get(url)
        try:
            return base64.b64decode(body)
        except (binascii.Error, ValueError) as exc:
            raise DecodeError(f"Failed to decode file {file}: {exc}") from exc

    async def get_commit(self, project: str, commit: str) -> GitilesCommit:
        data = await self.get(project, f"commit:{commit}")
        try:
            result = GitilesCommit.model_validate(data)
        except ValidationError as exc:
            raise DecodeError(f"Invalid commit response: {exc}") from exc
        logger.debug(f"Gitiles commit {result.commit} in {project}")
        return result
