"""
Gerrit/Gitiles JSON 响应信封处理。

两个服务都会在 JSON 前面加 4 字节的 XSSI 防护前缀 `)]}'`，解析前必须剥掉。
部分接口（Query/Get）返回开放结构，这里保留 dict/list/标量的动态形态，
并提供 `walk` 按路径取值：路径上缺 key 或类型不对就抛 `DecodeError`。
"""

from __future__ import annotations

import json

from insight.errors import DecodeError

XSSI_PREFIX = ")]}'"

JsonValue = dict[str, "JsonValue"] | list["JsonValue"] | str | int | float | bool | None


def strip_xssi(body: str | bytes) -> str:
    text = body.decode("utf-8") if isinstance(body, bytes) else body
    if not text.startswith(XSSI_PREFIX):
        raise DecodeError("Response is missing the XSSI prefix")
    return text[len(XSSI_PREFIX) :]


def loads_xssi(body: str | bytes) -> JsonValue:
    """剥掉 XSSI 前缀后解析 JSON。"""
    text = strip_xssi(body)
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise DecodeError(f"Invalid JSON response: {exc}") from exc


def walk(value: JsonValue, *path: str | int) -> JsonValue:
    """
    沿 `path` 逐级取值。

    - str 元素：要求当前节点是 object 且包含该 key
    - int 元素：要求当前节点是 array 且下标合法
    """
    current = value
    for step in path:
        if isinstance(step, str):
            if not isinstance(current, dict) or step not in current:
                raise DecodeError(f"Missing key {step!r} in response")
            current = current[step]
        else:
            if not isinstance(current, list) or not -len(current) <= step < len(current):
                raise DecodeError(f"Missing index {step} in response")
            current = current[step]
    return current
