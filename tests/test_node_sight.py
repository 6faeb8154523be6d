from __future__ import annotations

import json
from collections.abc import Sequence

import pytest

from insight.config import parse_config
from insight.errors import DecodeError, PipelineError, SshConnectionError, StatParseError
from insight.gpt.client import ChatMessage
from insight.proto.trigger import NodeTrigger, SshTarget
from insight.sights.node_sight import NodeSight, parse_node_stat

STAT = {
    "cpuStat": {"physicalCount": 4, "logicalCount": 8, "cpuPercents": [1.5, 2.5]},
    "hostStat": {"hostname": "test-host", "procs": 120, "os": "linux"},
    "memStat": {"memVirtual": {"total": 1024, "used": 512, "usedPercent": 50.0}},
}


class _FakeSsh:
    """按命令内容返回输出；`fail_on` 命中时抛出对应异常。"""

    def __init__(self, stat: str = json.dumps(STAT), fail_on: str = "", detect_output: str = "") -> None:
        self.stat = stat
        self.fail_on = fail_on
        self.detect_output = detect_output
        self.calls: list[list[str]] = []

    async def run(self, target: SshTarget, cmds: Sequence[str]) -> str:
        self.calls.append(list(cmds))
        joined = " && ".join(cmds)
        if self.fail_on and self.fail_on in joined:
            raise SshConnectionError(f"SSH connect to {target.host}:{target.port} failed: refused")
        if "agent.sh" in joined and "rm -f" not in joined:
            return self.detect_output
        if "healthcheck.sh --silent" in joined:
            return "OK"
        if "--duration-time" in joined:
            return self.stat
        return ""

    def cleans(self) -> int:
        return sum(1 for cmds in self.calls if cmds[0].startswith("rm -f"))


class _StubGpt:
    async def complete_text(self, messages: Sequence[ChatMessage]) -> str:
        facet = messages[-1].content.splitlines()[0].removeprefix("facet: ")
        return "ok-report" if facet == "healthReport" else f"{facet}: fine"


def _sight(ssh: _FakeSsh, gpt: _StubGpt | None = None) -> NodeSight:
    config = parse_config(
        {
            "spec": {
                "artifactConfig": {"url": "http://artifact.local/", "user": "ci", "pass": "secret"},
                "nodeConfig": {"duration": "5s"},
            }
        }
    )
    return NodeSight(config, ssh, gpt)


def _trigger() -> NodeTrigger:
    return NodeTrigger(sshConfig=SshTarget(host="10.0.0.8", user="root", **{"pass": "pw"}))


@pytest.mark.anyio
async def test_node_sight_happy_path() -> None:
    ssh = _FakeSsh()
    info = await _sight(ssh, _StubGpt()).run(_trigger())

    assert info.nodeStat.hostStat.hostname == "test-host"
    assert info.nodeReport.healthReport == "ok-report"
    assert info.nodeReport.cpuReport == "cpuReport: fine"
    assert info.error is None
    assert ssh.cleans() == 1
    assert ssh.calls[-1] == ["rm -f /tmp/agent.sh", "rm -f /tmp/healthcheck.sh"]


@pytest.mark.anyio
async def test_node_sight_commands_in_order() -> None:
    ssh = _FakeSsh()
    await _sight(ssh).run(_trigger())

    assert ssh.calls == [
        [
            "curl -s -uci:secret -L http://artifact.local/devops-pipeflow/plugins/agent.sh -o /tmp/agent.sh",
            "cd /tmp; bash agent.sh ci secret http://artifact.local/devops-pipeflow/plugins/agent /tmp/agent",
        ],
        [
            "curl -s -uci:secret -L http://artifact.local/devops-pipeflow/plugins/healthcheck.sh -o /tmp/healthcheck.sh",
            "cd /tmp; bash healthcheck.sh --silent",
        ],
        ["/tmp/agent --duration-time=5s --log-level=ERROR"],
        ["rm -f /tmp/agent.sh", "rm -f /tmp/healthcheck.sh"],
    ]


@pytest.mark.anyio
async def test_node_sight_without_gpt_leaves_report_empty() -> None:
    info = await _sight(_FakeSsh()).run(_trigger())
    assert info.nodeStat.hostStat.hostname == "test-host"
    assert info.nodeReport.healthReport == ""
    assert info.error is None


@pytest.mark.anyio
async def test_node_sight_detect_output_is_failure() -> None:
    ssh = _FakeSsh(detect_output="bash: agent.sh: No such file or directory\n")

    with pytest.raises(PipelineError) as exc_info:
        await _sight(ssh).run(_trigger())

    info = exc_info.value.info
    assert "Agent deploy" in info.error
    assert ssh.cleans() == 1
    assert len(ssh.calls) == 2


@pytest.mark.parametrize("fail_on", ["agent.sh -o", "healthcheck.sh -o", "--duration-time"])
@pytest.mark.anyio
async def test_node_sight_cleans_once_on_every_failed_step(fail_on: str) -> None:
    ssh = _FakeSsh(fail_on=fail_on)

    with pytest.raises(PipelineError) as exc_info:
        await _sight(ssh).run(_trigger())

    assert isinstance(exc_info.value.__cause__, SshConnectionError)
    assert exc_info.value.info.error
    assert ssh.cleans() == 1


@pytest.mark.anyio
async def test_node_sight_clean_failure_does_not_mask_success() -> None:
    ssh = _FakeSsh(fail_on="rm -f")
    info = await _sight(ssh).run(_trigger())
    assert info.error is None
    assert ssh.cleans() == 1


@pytest.mark.anyio
async def test_node_sight_empty_stat_is_decode_error() -> None:
    ssh = _FakeSsh(stat="")

    with pytest.raises(PipelineError) as exc_info:
        await _sight(ssh).run(_trigger())

    assert isinstance(exc_info.value.__cause__, DecodeError)
    assert ssh.cleans() == 1


def test_parse_node_stat_accepts_short_names() -> None:
    stat = parse_node_stat(json.dumps({"host": {"hostname": "h"}, "disk": {"usage": {"path": "/", "total": 10}}}))
    assert stat.hostStat.hostname == "h"
    assert stat.diskStat.diskUsage.total == 10


def test_parse_node_stat_errors() -> None:
    with pytest.raises(DecodeError):
        parse_node_stat("   \n")
    with pytest.raises(DecodeError):
        parse_node_stat("{not json")
    with pytest.raises(StatParseError):
        parse_node_stat(json.dumps({"hostStat": {"procs": -1}}))
    with pytest.raises(StatParseError):
        parse_node_stat(json.dumps({"processStat": {"processInfos": [{"numThread": 2**40}]}}))
