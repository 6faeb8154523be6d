"""
GPT Client（基于 OpenAI SDK，对接 OpenAI-compatible 服务）。

目标：
- **尽量薄**：只做协议适配与错误处理
- **可缺省**：`gptConfig.url` 为空时不创建 client，调用方按“无 GPT”处理
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

import httpx
from openai import AsyncOpenAI, OpenAIError
from pydantic import BaseModel

from insight.config import DEFAULT_GPT_TIMEOUT, GptConfig, parse_duration

logger = logging.getLogger(__name__)


class ChatMessage(BaseModel):
    """OpenAI chat message 的最小结构。"""

    role: str
    content: str


def _normalize_base_url(base_url: str) -> str:
    normalized = base_url.rstrip("/")
    if normalized.endswith("/v1"):
        return normalized
    return f"{normalized}/v1"


class GptClient:
    def __init__(
        self,
        api_key: str,
        base_url: str,
        http_client: httpx.AsyncClient,
        model: str,
        timeout: float = 100.0,
    ) -> None:
        """
        - api_key: API key（部分自建服务不校验，可为任意非空串）
        - base_url: OpenAI-compatible base URL
        - http_client: 复用 httpx.AsyncClient 连接池
        - timeout: 单次请求超时（秒）
        """
        self._base_url = _normalize_base_url(base_url=base_url)
        self._model = model
        self._client = AsyncOpenAI(
            api_key=api_key or "none",
            base_url=self._base_url,
            http_client=http_client,
            timeout=timeout,
        )

    async def complete_text(self, messages: Sequence[ChatMessage]) -> str:
        """
        调用 chat completion 并返回纯文本 content。

        出错直接抛异常，是否降级由上游决定（例如 NodeSight 报告为空串）。
        """
        try:
            logger.info(f"GPT request: model={self._model}, messages={len(messages)} msg(s)")
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=[m.model_dump() for m in messages],
            )
        except OpenAIError as exc:
            logger.error(f"GPT API error: {exc}")
            raise
        except httpx.HTTPError as exc:
            logger.error(f"GPT HTTP error: {exc}")
            raise

        content = response.choices[0].message.content
        if content is None:
            logger.error("GPT returned None content")
            raise RuntimeError("GPT returned None content")

        logger.info(f"GPT response: {len(content)} chars")
        return str(content)


def build_gpt_client(config: GptConfig, http_client: httpx.AsyncClient) -> GptClient | None:
    """url 为空表示没有部署 GPT，返回 None。"""
    if not config.url:
        return None
    return GptClient(
        api_key=config.key,
        base_url=config.url,
        http_client=http_client,
        model=config.model,
        timeout=parse_duration(config.timeout, DEFAULT_GPT_TIMEOUT),
    )
