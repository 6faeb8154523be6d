"""
应用配置加载。

设计目标：
- **严格**：YAML 格式错误、字段类型不对就直接报错（避免“看起来跑了其实没配置好”）
- **不可变**：启动时加载一次，之后按引用传给每个组件，运行期不修改
- **可测试**：`parse_config` 接收显式 mapping，便于单元测试
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from insight.errors import ConfigError

DEFAULT_NODE_DURATION = "10s"
DEFAULT_SSH_TIMEOUT = "10s"
DEFAULT_GPT_TIMEOUT = "100s"

DEFAULT_KERNEL_LINTER = "checkpatch.pl"
DEFAULT_KERNEL_OPTIONS: tuple[str, ...] = ("--no-signoff", "--no-summary", "--no-tree", "--terse")

_DURATION_UNITS: dict[str, float] = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class MetaData(_Frozen):
    name: str = ""


class EnvVariable(_Frozen):
    name: str
    value: str = ""


class LoggingConfig(_Frozen):
    start: int = 0
    len: int = 0
    count: int = 0


class BuildConfig(_Frozen):
    loggingConfig: LoggingConfig = Field(default_factory=LoggingConfig)


class CodeConfig(_Frozen):
    """checkpatch.pl 的位置与参数；为空时使用默认值。"""

    kernelLinter: str = DEFAULT_KERNEL_LINTER
    kernelOptions: tuple[str, ...] = DEFAULT_KERNEL_OPTIONS


class NodeConfig(_Frozen):
    duration: str = DEFAULT_NODE_DURATION


class CredentialConfig(_Frozen):
    """url/user/pass 三元组（artifact/repo/review 共用）。"""

    url: str = ""
    user: str = ""
    pass_: str = Field(default="", alias="pass")


class ArtifactConfig(CredentialConfig):
    pass


class RepoConfig(CredentialConfig):
    pass


class ReviewConfig(CredentialConfig):
    root: str = ""


class GptConfig(_Frozen):
    """OpenAI-compatible 服务；url 为空表示未部署 GPT。"""

    url: str = ""
    key: str = ""
    model: str = ""
    timeout: str = DEFAULT_GPT_TIMEOUT


class SshConfig(_Frozen):
    host: str = ""
    port: int = 22
    user: str = ""
    pass_: str = Field(default="", alias="pass")
    key: str = ""
    timeout: str = DEFAULT_SSH_TIMEOUT


class Spec(_Frozen):
    envVariables: tuple[EnvVariable, ...] = ()
    buildConfig: BuildConfig = Field(default_factory=BuildConfig)
    codeConfig: CodeConfig = Field(default_factory=CodeConfig)
    nodeConfig: NodeConfig = Field(default_factory=NodeConfig)
    artifactConfig: ArtifactConfig = Field(default_factory=ArtifactConfig)
    gptConfig: GptConfig = Field(default_factory=GptConfig)
    repoConfig: RepoConfig = Field(default_factory=RepoConfig)
    reviewConfig: ReviewConfig = Field(default_factory=ReviewConfig)
    sshConfig: SshConfig = Field(default_factory=SshConfig)


class Config(_Frozen):
    """插件运行配置（对应 YAML 顶层结构）。"""

    apiVersion: str = ""
    kind: str = ""
    metadata: MetaData = Field(default_factory=MetaData)
    spec: Spec = Field(default_factory=Spec)

    def env_mapping(self) -> dict[str, str]:
        """`spec.envVariables` 转成 name -> value，后写覆盖先写。"""
        return {item.name: item.value for item in self.spec.envVariables}


def parse_duration(text: str, default: str = "") -> float:
    """
    解析 Go 风格 duration（`300ms` / `10s` / `1m30s` / `1.5h`），返回秒数。

    - 空字符串：使用 `default`（`default` 也为空时返回 0）
    - 格式非法：抛 `ConfigError`
    """
    value = text.strip() or default.strip()
    if not value:
        return 0.0
    if value == "0":
        return 0.0

    total = 0.0
    pos = 0
    for match in _DURATION_PART.finditer(value):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos != len(value) or pos == 0:
        raise ConfigError(f"Invalid duration: {text!r}")
    return total


def parse_config(data: Mapping[str, object]) -> Config:
    """
    将已解析的 YAML mapping 校验为 `Config`。

    - 字段类型错误：抛 `ConfigError`（保留 pydantic 的原始错误作为 cause）
    - duration 字段在这里统一校验一次，避免运行到一半才发现
    """
    try:
        config = Config.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid config: {exc}") from exc

    parse_duration(config.spec.nodeConfig.duration, DEFAULT_NODE_DURATION)
    parse_duration(config.spec.sshConfig.timeout, DEFAULT_SSH_TIMEOUT)
    parse_duration(config.spec.gptConfig.timeout, DEFAULT_GPT_TIMEOUT)
    return config


def load_config(path: str | Path) -> Config:
    """从 YAML 文件加载配置；文件缺失/YAML 非法/校验失败都抛 `ConfigError`。"""
    path = Path(path)
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as exc:
        raise ConfigError(f"Failed to open config file: {path}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in config file: {path}") from exc

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file must contain a mapping: {path}")
    return parse_config(data)
