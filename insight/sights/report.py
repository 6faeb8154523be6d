"""
Node 报告生成（GPT 单次输出，不 loop）。

目标：
- 每个 facet 一次请求：只给模型对应的那一段 NodeStat（或 healthcheck 输出）
- 九个 facet 并发请求，互不影响

降级：
- 没有 GPT client：全部 facet 为空串
- 某个 facet 请求失败：只有该 facet 为空串（记录日志），报告整体仍然成功
"""

from __future__ import annotations

import logging

import anyio

from insight.gpt.client import ChatMessage, GptClient
from insight.proto.node import REPORT_FACETS, NodeReport, NodeStat

logger = logging.getLogger(__name__)

# facet -> NodeStat 字段（healthReport 使用 healthcheck 输出）
FACET_SECTIONS: dict[str, str] = {
    "cpuReport": "cpuStat",
    "diskReport": "diskStat",
    "dockerReport": "dockerStat",
    "hostReport": "hostStat",
    "loadReport": "loadStat",
    "memReport": "memStat",
    "netReport": "netStat",
    "processReport": "processStat",
}

MAX_SECTION_CHARS = 12000


def _truncate_text(text: str, max_chars: int) -> str:
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + "\n...TRUNCATED..."


def _system_prompt() -> str:
    return (
        "你是资深 SRE 工程师。"
        "根据给出的节点数据写一段简短的健康报告：先给结论，再列出异常项和建议（纯文本，不要 markdown 表格）。"
    )


def _user_prompt(facet: str, health: str, stat: NodeStat) -> str:
    if facet == "healthReport":
        data = health
    else:
        data = getattr(stat, FACET_SECTIONS[facet]).model_dump_json(indent=2)
    return f"facet: {facet}\n\n数据：\n{_truncate_text(data, MAX_SECTION_CHARS)}\n"


async def build_node_report(gpt_client: GptClient | None, health: str, stat: NodeStat) -> NodeReport:
    if gpt_client is None:
        logger.info("GPT is not configured, node report left empty")
        return NodeReport()

    facets: dict[str, str] = {}

    async def one(facet: str) -> None:
        messages = [
            ChatMessage(role="system", content=_system_prompt()),
            ChatMessage(role="user", content=_user_prompt(facet, health, stat)),
        ]
        try:
            facets[facet] = await gpt_client.complete_text(messages)
        except Exception as exc:
            logger.warning(f"GPT report for {facet} failed: {exc}")
            facets[facet] = ""

    async with anyio.create_task_group() as tg:
        for facet in REPORT_FACETS:
            tg.start_soon(one, facet)

    return NodeReport(**facets)
