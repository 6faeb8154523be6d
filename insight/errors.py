"""
错误分类（整个插件共用）。

约定：
- 每一层只用一句简短上下文包装底层异常：`raise X("failed to ...") from exc`
- 最外层（dispatcher）原样返回第一个错误，不改变内部结构
- 核心层不做静默重试，重试策略由调用方决定
"""

from __future__ import annotations


class InsightError(RuntimeError):
    """插件内所有业务错误的基类。"""


class ConfigError(InsightError, ValueError):
    """配置错误：YAML 格式错误、缺少必填字段、duration 非法等。"""


class LocalIOError(InsightError):
    """本地文件系统错误（scratch 目录读写/删除）。"""


class RemoteHTTPError(InsightError):
    """HTTP 传输错误或非 200 状态码。"""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class DecodeError(InsightError):
    """JSON/XML/base64 解码失败，包括缺少 XSSI 前缀。"""


class DiffParseError(DecodeError):
    """unified diff 解析失败。"""


class OperatorError(InsightError, ValueError):
    """repo 操作符（branch:/commit:/tag:）不合法。"""


class SshConnectionError(InsightError):
    """SSH 建连/鉴权/打开 session 失败，超时也归为此类。"""


class SshExecutionError(InsightError):
    """远端命令执行失败；`output` 保留已捕获的合并输出。"""

    def __init__(self, message: str, output: str = "") -> None:
        super().__init__(message)
        self.output = output


class StatParseError(InsightError):
    """agent 输出的 JSON 与 NodeStat schema 不匹配。"""


class CanceledError(InsightError):
    """截止时间已到或被显式取消。"""


class PipelineError(InsightError):
    """
    sight 流水线失败。

    `info` 保存失败前已经产出的部分结果（例如 NodeInfo 里已解析的 NodeStat），
    dispatcher 会把它连同错误一起返回给调用方。
    """

    def __init__(self, message: str, info: object | None = None) -> None:
        super().__init__(message)
        self.info = info
