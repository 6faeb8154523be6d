from __future__ import annotations

import json

import httpx
import pytest

from insight.config import GptConfig
from insight.gpt.client import ChatMessage, build_gpt_client


def _completion(content: str | None) -> dict[str, object]:
    return {
        "id": "chatcmpl-1",
        "object": "chat.completion",
        "created": 1700000000,
        "model": "node-reporter",
        "choices": [
            {"index": 0, "finish_reason": "stop", "message": {"role": "assistant", "content": content}},
        ],
    }


def test_empty_url_means_no_client() -> None:
    assert build_gpt_client(GptConfig(), httpx.AsyncClient()) is None


@pytest.mark.anyio
async def test_complete_text_posts_chat_completion() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=_completion("all good"))

    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    client = build_gpt_client(GptConfig(url="http://gpt.local", key="k", model="node-reporter"), http_client)

    text = await client.complete_text([ChatMessage(role="user", content="facet: cpuReport")])

    assert text == "all good"
    assert seen[0].url.path == "/v1/chat/completions"
    body = json.loads(seen[0].content)
    assert body["model"] == "node-reporter"
    assert body["messages"] == [{"role": "user", "content": "facet: cpuReport"}]


@pytest.mark.anyio
async def test_complete_text_raises_on_empty_content() -> None:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200, json=_completion(None))))
    client = build_gpt_client(GptConfig(url="http://gpt.local/v1", model="m"), http_client)

    with pytest.raises(RuntimeError):
        await client.complete_text([ChatMessage(role="user", content="x")])
