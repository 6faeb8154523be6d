"""
服务入口与依赖装配。

这里做三件事：
- 加载配置（YAML，严格校验）
- 组装外部依赖（HTTP Client / GPT / Review / Repo / SSH / linters）
- 装配 sights + dispatcher，并挂上路由（health + trigger）

注意：
- 业务流程不写在这里（由 `dispatcher.py` 和各 sight 负责）
- `httpx.AsyncClient` 在所有 sight 之间复用，进程退出时关闭
"""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

import httpx
from fastapi import FastAPI

from insight.api import build_trigger_router
from insight.config import DEFAULT_GPT_TIMEOUT, Config, load_config, parse_duration
from insight.dispatcher import Dispatcher, build_request_handler
from insight.gpt.client import build_gpt_client
from insight.linters.commit_linter import CommitLinter
from insight.linters.kernel_linter import KernelLinter, resolve_linter
from insight.repo.client import RepoClient
from insight.review.client import ReviewClient
from insight.sights.build_sight import BuildSight
from insight.sights.code_sight import CodeSight
from insight.sights.node_sight import NodeSight
from insight.ssh.client import SshClient

logger = logging.getLogger(__name__)

VERSION = "0.1.0"
CONFIG_ENV = "INSIGHT_CONFIG_FILE"


@dataclass(frozen=True)
class Runtime:
    """一次进程生命周期内共享的依赖。"""

    config: Config
    http_client: httpx.AsyncClient
    dispatcher: Dispatcher

    async def aclose(self) -> None:
        await self.http_client.aclose()


def _kernel_linter(config: Config) -> KernelLinter | None:
    code = config.spec.codeConfig
    linter = resolve_linter(code.kernelLinter)
    if linter is None:
        logger.info(f"{code.kernelLinter} not found, kernel lint disabled")
        return None
    return KernelLinter(linter, code.kernelOptions, env=config.env_mapping())


def build_runtime(config: Config, http_client: httpx.AsyncClient | None = None) -> Runtime:
    """组装全部 sight；review/repo 的 url 为空时对应 client 为 None（相关步骤跳过）。"""
    spec = config.spec
    if http_client is None:
        http_client = httpx.AsyncClient(timeout=httpx.Timeout(parse_duration(spec.gptConfig.timeout, DEFAULT_GPT_TIMEOUT)))

    review = spec.reviewConfig
    review_client = (
        ReviewClient(base_url=review.url, user=review.user, password=review.pass_, http_client=http_client)
        if review.url
        else None
    )
    repo = spec.repoConfig
    repo_client = (
        RepoClient(base_url=repo.url, user=repo.user, password=repo.pass_, http_client=http_client)
        if repo.url
        else None
    )
    gpt_client = build_gpt_client(spec.gptConfig, http_client)

    dispatcher = Dispatcher(
        build_sight=BuildSight(config, repo_client, review_client),
        code_sight=CodeSight(config, review_client, CommitLinter(), _kernel_linter(config)),
        node_sight=NodeSight(config, SshClient(), gpt_client),
    )
    return Runtime(config=config, http_client=http_client, dispatcher=dispatcher)


def build_app(config: Config | None = None) -> FastAPI:
    """创建并返回 FastAPI app；未传 config 时从 `INSIGHT_CONFIG_FILE` 加载。"""

    # 1) 配置：缺失/非法会直接抛错，启动失败（这是期望行为）
    if config is None:
        path = os.environ.get(CONFIG_ENV, "")
        if not path:
            raise RuntimeError(f"{CONFIG_ENV} is not set")
        config = load_config(path)

    # 2) 依赖装配
    runtime = build_runtime(config)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        yield
        await runtime.aclose()

    app = FastAPI(title="Insight Plugin", version=VERSION, lifespan=lifespan)
    app.state.runtime = runtime

    @app.get("/health")
    async def health() -> dict[str, str]:
        """健康检查：用于 k8s / LB 探活。"""
        return {"status": "ok"}

    app.include_router(build_trigger_router(build_request_handler(runtime.dispatcher)))
    return app
