"""
SSH 执行通道（asyncssh）。

约定：
- 每次 `run` 独立建连：一个连接、一个 session，命令用 `" && "` 串起来执行
- stdout/stderr 合并后返回
- host key 默认不校验（节点在运行时才发现）；`strict_host_key=True` 时走 known_hosts
- 失败分两类：建连/鉴权/超时 -> `SshConnectionError`；命令非 0 退出 -> `SshExecutionError`
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Iterable, Sequence
from contextlib import asynccontextmanager

import anyio
import asyncssh
from asyncssh.encryption import get_default_encryption_algs, get_encryption_algs
from asyncssh.kex import get_default_kex_algs, get_kex_algs

from insight.config import DEFAULT_SSH_TIMEOUT, parse_duration
from insight.errors import SshConnectionError, SshExecutionError
from insight.proto.trigger import SshTarget

logger = logging.getLogger(__name__)

COMMAND_SEPARATOR = " && "

CIPHERS: tuple[str, ...] = (
    "3des-cbc",
    "aes128-cbc",
    "aes128-ctr",
    "aes128-gcm@openssh.com",
    "aes192-cbc",
    "aes192-ctr",
    "aes256-cbc",
    "aes256-ctr",
    "arcfour128",
    "arcfour256",
)

KEY_EXCHANGES: tuple[str, ...] = (
    "diffie-hellman-group1-sha1",
    "diffie-hellman-group-exchange-sha1",
    "diffie-hellman-group-exchange-sha256",
)


def offered_algorithms(preferred: Iterable[str], supported: Iterable[bytes], defaults: Iterable[bytes]) -> list[str]:
    """旧算法优先（只保留本地库支持的），后面接上库的默认算法。"""
    available = {alg.decode("ascii") for alg in supported}
    offered = [alg for alg in preferred if alg in available]
    for alg in defaults:
        name = alg.decode("ascii")
        if name not in offered:
            offered.append(name)
    return offered


def connect_options(target: SshTarget, strict_host_key: bool = False) -> dict[str, object]:
    """
    asyncssh.connect 参数。

    - 配了 key：只用该私钥认证，pass 作为私钥口令
    - 没配 key：只用密码认证（不加载本地默认私钥）
    """
    options: dict[str, object] = {
        "host": target.host,
        "port": target.port,
        "username": target.user or None,
        "encryption_algs": offered_algorithms(CIPHERS, get_encryption_algs(), get_default_encryption_algs()),
        "kex_algs": offered_algorithms(KEY_EXCHANGES, get_kex_algs(), get_default_kex_algs()),
    }
    if not strict_host_key:
        options["known_hosts"] = None

    if target.key:
        try:
            key = asyncssh.read_private_key(target.key, passphrase=target.pass_ or None)
        except (OSError, ValueError) as exc:
            raise SshConnectionError(f"Failed to read private key: {exc}") from exc
        options["client_keys"] = [key]
        options["password"] = None
    else:
        options["client_keys"] = None
        options["password"] = target.pass_
    return options


class SshClient:
    def __init__(self, strict_host_key: bool = False) -> None:
        self._strict_host_key = strict_host_key

    @asynccontextmanager
    async def _open(self, target: SshTarget) -> AsyncIterator[asyncssh.SSHClientConnection]:
        options = connect_options(target, strict_host_key=self._strict_host_key)
        timeout = parse_duration(target.timeout, DEFAULT_SSH_TIMEOUT)
        try:
            with anyio.fail_after(timeout):
                conn = await asyncssh.connect(**options)
        except TimeoutError as exc:
            raise SshConnectionError(f"SSH connect to {target.host}:{target.port} timed out after {timeout}s") from exc
        except (OSError, asyncssh.Error) as exc:
            raise SshConnectionError(f"SSH connect to {target.host}:{target.port} failed: {exc}") from exc

        async with conn:
            yield conn

    async def run(self, target: SshTarget, cmds: Sequence[str]) -> str:
        """执行一组命令并返回合并输出；命令按顺序执行，前一条失败则后面不再执行。"""
        if not cmds:
            raise ValueError("cmds must be non-empty")

        command = COMMAND_SEPARATOR.join(cmds)
        async with self._open(target) as conn:
            try:
                result = await conn.run(command, check=False, stderr=asyncssh.STDOUT)
            except asyncssh.ChannelOpenError as exc:
                raise SshConnectionError(f"SSH session open on {target.host} failed: {exc}") from exc
            except asyncssh.Error as exc:
                raise SshExecutionError(f"SSH command on {target.host} failed: {exc}") from exc

        output = result.stdout if isinstance(result.stdout, str) else ""
        if result.exit_status != 0:
            logger.debug(f"SSH command on {target.host} exited with {result.exit_status}")
            raise SshExecutionError(
                f"SSH command on {target.host} exited with status {result.exit_status}",
                output=output,
            )
        return output
