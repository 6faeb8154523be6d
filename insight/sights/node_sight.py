"""
NodeSight：通过 SSH 在远端节点部署 agent，采集 NodeStat 并生成报告。

流程（线性，由工程代码控制）：
Detect -> Health -> Stat -> Report，最后无论成败都执行一次 Clean。

- Detect：下载 agent.sh 并安装 agent；任何输出都视为失败
- Health：下载 healthcheck.sh 并执行，输出即 health 文本
- Stat：执行 agent，stdout 是一个 NodeStat JSON
- Report：GPT 生成各 facet（GPT 不可用不算失败）
- Clean：删除 /tmp 下的两个脚本；失败只记日志，不覆盖原始错误
"""

from __future__ import annotations

import json
import logging
import shlex

import anyio
from pydantic import ValidationError

from insight.config import DEFAULT_NODE_DURATION, DEFAULT_SSH_TIMEOUT, Config, parse_duration
from insight.errors import DecodeError, InsightError, PipelineError, SshExecutionError, StatParseError
from insight.gpt.client import GptClient
from insight.proto.node import NodeStat
from insight.proto.trigger import MailInfo, NodeInfo, NodeTrigger, SshTarget
from insight.sights.report import build_node_report
from insight.ssh.client import SshClient

logger = logging.getLogger(__name__)

ARTIFACT_PATH = "devops-pipeflow/plugins"
AGENT_SCRIPT = "/tmp/agent.sh"
AGENT_BINARY = "/tmp/agent"
HEALTH_SCRIPT = "/tmp/healthcheck.sh"


class NodeSight:
    def __init__(self, config: Config, ssh_client: SshClient, gpt_client: GptClient | None) -> None:
        artifact = config.spec.artifactConfig
        self._artifact_url = f"{artifact.url.rstrip('/')}/{ARTIFACT_PATH}"
        self._user = artifact.user
        self._password = artifact.pass_
        self._duration = config.spec.nodeConfig.duration or DEFAULT_NODE_DURATION
        self._ssh = ssh_client
        self._gpt = gpt_client

    def _download(self, name: str, target: str) -> str:
        credentials = f"{shlex.quote(self._user)}:{shlex.quote(self._password)}"
        return f"curl -s -u{credentials} -L {self._artifact_url}/{name} -o {target}"

    def detect_commands(self) -> list[str]:
        return [
            self._download("agent.sh", AGENT_SCRIPT),
            f"cd /tmp; bash agent.sh {shlex.quote(self._user)} {shlex.quote(self._password)} "
            f"{self._artifact_url}/agent {AGENT_BINARY}",
        ]

    def health_commands(self) -> list[str]:
        return [
            self._download("healthcheck.sh", HEALTH_SCRIPT),
            "cd /tmp; bash healthcheck.sh --silent",
        ]

    def stat_commands(self) -> list[str]:
        return [f"{AGENT_BINARY} --duration-time={self._duration} --log-level=ERROR"]

    @staticmethod
    def clean_commands() -> list[str]:
        return [f"rm -f {AGENT_SCRIPT}", f"rm -f {HEALTH_SCRIPT}"]

    async def _detect(self, target: SshTarget) -> None:
        output = await self._ssh.run(target, self.detect_commands())
        if output.strip():
            raise SshExecutionError(f"Agent deploy on {target.host} failed", output=output)

    async def _health(self, target: SshTarget) -> str:
        return await self._ssh.run(target, self.health_commands())

    async def _stat(self, target: SshTarget) -> NodeStat:
        return parse_node_stat(await self._ssh.run(target, self.stat_commands()))

    async def _clean(self, target: SshTarget) -> None:
        # 取消/出错时也要执行：屏蔽外层取消，但自身受 SSH 超时约束
        timeout = parse_duration(target.timeout, DEFAULT_SSH_TIMEOUT) * 2
        with anyio.CancelScope(shield=True), anyio.move_on_after(timeout):
            try:
                await self._ssh.run(target, self.clean_commands())
            except InsightError as exc:
                logger.warning(f"Clean on {target.host} failed: {exc}")

    async def run(self, trigger: NodeTrigger) -> NodeInfo:
        target = trigger.sshConfig
        info = NodeInfo()
        logger.info(f"NodeSight start: host={target.host}")
        try:
            try:
                await self._detect(target)
                health = await self._health(target)
                info.nodeStat = await self._stat(target)
                info.nodeReport = await build_node_report(self._gpt, health, info.nodeStat)
            finally:
                await self._clean(target)
        except Exception as exc:
            info.error = str(exc)
            logger.error(f"NodeSight failed on {target.host}: {exc}")
            raise PipelineError(f"nodesight: {exc}", info=info) from exc

        logger.info(f"NodeSight done: host={target.host}")
        return info

    @staticmethod
    def notify(trigger: NodeTrigger, info: NodeInfo) -> MailInfo | None:
        return None


def parse_node_stat(output: str) -> NodeStat:
    """agent stdout -> NodeStat；空/非法 JSON 抛 `DecodeError`，结构不符抛 `StatParseError`。"""
    if not output.strip():
        raise DecodeError("Agent output is empty")
    try:
        data = json.loads(output)
    except json.JSONDecodeError as exc:
        raise DecodeError(f"Agent output is not valid JSON: {exc}") from exc
    try:
        return NodeStat.model_validate(data)
    except ValidationError as exc:
        raise StatParseError(f"Agent output does not match NodeStat: {exc}") from exc
