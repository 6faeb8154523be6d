"""
Insight dispatcher（三个 sight 的并发编排）。

关键点：
- **每个非空 trigger 一个 worker**，在同一个 task group 里并发执行
- **第一个错误取消其余 worker**；已经产出的（部分）info 照样返回
- 并发上限是一个可选项（默认不限），截止时间到了返回 `CanceledError`
- MailInfo：多个 sight 都给出时，最后完成的那个生效
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Protocol

import anyio

from insight.errors import CanceledError, InsightError, PipelineError
from insight.proto.trigger import (
    BuildInfo,
    BuildTrigger,
    CodeInfo,
    CodeTrigger,
    MailInfo,
    NodeInfo,
    NodeTrigger,
    TriggerRequest,
    TriggerResponse,
)

logger = logging.getLogger(__name__)


class Sight(Protocol):
    async def run(self, trigger: Any) -> Any: ...

    def notify(self, trigger: Any, info: Any) -> MailInfo | None: ...


@dataclass(frozen=True)
class Dispatcher:
    """dispatcher 运行时依赖：三个 sight 以及并发/截止时间配置。"""

    build_sight: Sight
    code_sight: Sight
    node_sight: Sight
    limit: int | None = None
    deadline: float | None = None


@dataclass
class DispatchResult:
    build_info: BuildInfo | None = None
    code_info: CodeInfo | None = None
    node_info: NodeInfo | None = None
    mail_info: MailInfo | None = None
    error: InsightError | None = None

    def to_response(self) -> TriggerResponse:
        return TriggerResponse(
            buildInfo=self.build_info,
            codeInfo=self.code_info,
            nodeInfo=self.node_info,
            mailInfo=self.mail_info,
            error=str(self.error) if self.error is not None else None,
        )


async def run_insight(
    dispatcher: Dispatcher,
    build: BuildTrigger | None = None,
    code: CodeTrigger | None = None,
    node: NodeTrigger | None = None,
) -> DispatchResult:
    """
    并发跑一次 insight，返回各 sight 的 info 和第一个错误。

    错误不抛出而是放在 `DispatchResult.error`，调用方决定如何呈现。
    """
    result = DispatchResult()
    limiter = anyio.CapacityLimiter(dispatcher.limit) if dispatcher.limit else None

    jobs: list[tuple[str, Sight, object]] = []
    if build is not None:
        jobs.append(("build_info", dispatcher.build_sight, build))
    if code is not None:
        jobs.append(("code_info", dispatcher.code_sight, code))
    if node is not None:
        jobs.append(("node_info", dispatcher.node_sight, node))
    if not jobs:
        logger.info("Insight: no trigger given")
        return result

    async def worker(field: str, sight: Sight, trigger: object, cancel: Callable[[], None]) -> None:
        try:
            if limiter is not None:
                async with limiter:
                    info = await sight.run(trigger)
            else:
                info = await sight.run(trigger)
        except PipelineError as exc:
            if exc.info is not None:
                setattr(result, field, exc.info)
            if result.error is None:
                result.error = exc
                logger.error(f"Insight: {field} failed, cancelling the rest: {exc}")
                cancel()
            return

        setattr(result, field, info)
        mail = sight.notify(trigger, info)
        if mail is not None:
            result.mail_info = mail

    with anyio.move_on_after(dispatcher.deadline) as deadline_scope:
        async with anyio.create_task_group() as tg:
            for field, sight, trigger in jobs:
                tg.start_soon(worker, field, sight, trigger, tg.cancel_scope.cancel)

    if deadline_scope.cancelled_caught and result.error is None:
        result.error = CanceledError(f"Insight deadline of {dispatcher.deadline}s exceeded")
        logger.error(f"Insight: {result.error}")

    return result


async def run_request(dispatcher: Dispatcher, request: TriggerRequest) -> TriggerResponse:
    result = await run_insight(
        dispatcher,
        build=request.buildTrigger,
        code=request.codeTrigger,
        node=request.nodeTrigger,
    )
    return result.to_response()


RequestHandler = Callable[[TriggerRequest], Awaitable[TriggerResponse]]


def build_request_handler(dispatcher: Dispatcher) -> RequestHandler:
    """绑定 dispatcher，返回给 API 路由/CLI 调用的 `async def handle(request)`。"""

    async def handle(request: TriggerRequest) -> TriggerResponse:
        return await run_request(dispatcher, request)

    return handle
