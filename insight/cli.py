"""
insight 命令行入口。

两种运行方式：
- `--trigger-file <json>`：跑一次 dispatcher，把 TriggerResponse 打印到 stdout
- 否则启动 HTTP 服务（uvicorn），通过 `POST /trigger` 接收请求

退出码：成功 0；配置错误/运行失败非 0，错误信息写 stderr。
"""

from __future__ import annotations

import logging
from pathlib import Path

import anyio
import typer
import uvicorn
from pydantic import ValidationError

from insight.config import Config, load_config
from insight.dispatcher import run_request
from insight.errors import ConfigError
from insight.logs import LOG_LEVELS, setup_logging
from insight.main import VERSION, build_app, build_runtime
from insight.proto.trigger import TriggerRequest, TriggerResponse

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="insight",
    help="insight plugin: build, code and node sights.",
    add_completion=False,
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _version(value: bool) -> None:
    if value:
        typer.echo(VERSION)
        raise typer.Exit()


async def _run_once(config: Config, request: TriggerRequest) -> TriggerResponse:
    runtime = build_runtime(config)
    try:
        return await run_request(runtime.dispatcher, request)
    finally:
        await runtime.aclose()


def _load_request(path: Path) -> TriggerRequest:
    try:
        return TriggerRequest.model_validate_json(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigError(f"Failed to open trigger file: {path}") from exc
    except ValidationError as exc:
        raise ConfigError(f"Invalid trigger file {path}: {exc}") from exc


@app.command()
def run(
    config_file: Path = typer.Option(..., "--config-file", help="Config file (.yml)"),
    log_level: str = typer.Option("INFO", "--log-level", help="Log level (DEBUG|INFO|WARN|ERROR)"),
    trigger_file: Path | None = typer.Option(None, "--trigger-file", help="Run once with this TriggerRequest JSON"),
    host: str = typer.Option("127.0.0.1", "--host", help="Serve host"),
    port: int = typer.Option(9090, "--port", help="Serve port"),
    version: bool = typer.Option(False, "--version", callback=_version, is_eager=True, help="Show version"),
) -> None:
    if log_level.upper() not in LOG_LEVELS:
        typer.echo(f"Invalid log level: {log_level}", err=True)
        raise typer.Exit(code=2)
    setup_logging(log_level)

    try:
        config = load_config(config_file)
        request = _load_request(trigger_file) if trigger_file is not None else None
    except ConfigError as exc:
        typer.echo(f"failed to init config: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    if request is None:
        logger.info(f"Serving insight on {host}:{port}")
        uvicorn.run(build_app(config), host=host, port=port)
        return

    response = anyio.run(_run_once, config, request)
    typer.echo(response.model_dump_json(exclude_none=True))
    if response.error is not None:
        typer.echo(f"failed to run insight: {response.error}", err=True)
        raise typer.Exit(code=1)


def main() -> None:
    app()
