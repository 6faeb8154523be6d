"""
Trigger 接入层（HTTP）。

职责：
- 解析 TriggerRequest（Pydantic 校验，非法请求直接 422）
- 调用 dispatcher handler，原样返回 TriggerResponse
- 业务错误放在响应的 `error` 字段里，不转成 HTTP 错误码
"""

from __future__ import annotations

from fastapi import APIRouter

from insight.dispatcher import RequestHandler
from insight.proto.trigger import TriggerRequest, TriggerResponse


def build_trigger_router(handler: RequestHandler) -> APIRouter:
    """创建 trigger 路由。"""
    router = APIRouter()

    @router.post("/trigger", response_model=TriggerResponse, response_model_exclude_none=True)
    async def trigger(request: TriggerRequest) -> TriggerResponse:
        return await handler(request)

    return router
