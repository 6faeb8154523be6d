"""
insight-agent：在目标节点上采集一次 NodeStat，以单个 JSON 文档输出到 stdout。

日志只写 stderr，stdout 只有 JSON（NodeSight 直接解析 stdout）。
"""

from __future__ import annotations

import logging
import sys

import psutil
import typer

from insight.agent.collector import collect_node_stat
from insight.config import parse_duration
from insight.errors import ConfigError
from insight.logs import LOG_LEVELS, setup_logging

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="insight-agent",
    help="insight agent: print one NodeStat JSON document.",
    add_completion=False,
    context_settings={"help_option_names": ["-h", "--help"]},
)


@app.command()
def run(
    duration_time: str = typer.Option(..., "--duration-time", help="Sampling window, e.g. 10s, 500ms"),
    log_level: str = typer.Option("INFO", "--log-level", help="Log level (DEBUG|INFO|WARN|ERROR)"),
) -> None:
    """采集并输出 NodeStat；失败时错误写到 stderr，退出码非 0。"""
    if log_level.upper() not in LOG_LEVELS:
        typer.echo(f"Invalid log level: {log_level}", err=True)
        raise typer.Exit(code=2)
    setup_logging(log_level, stream=sys.stderr)

    try:
        duration = parse_duration(duration_time)
    except ConfigError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=2) from exc

    try:
        stat = collect_node_stat(duration)
    except (OSError, psutil.Error) as exc:
        logger.error(f"Failed to collect node stat: {exc}")
        typer.echo(f"failed to run agent: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    typer.echo(stat.model_dump_json())


def main() -> None:
    app()
