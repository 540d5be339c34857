# src/rcon_core/network.py
"""
RCON 核心库 - 网络模块 (Network) [Asyncio Edition]

封装 TCP 连接的建立、写入和关闭逻辑。
该模块屏蔽了底层 Transport 的复杂性，向上层提供纯粹的 bytes 收发接口。
"""

import asyncio
import logging
from collections.abc import Callable
from typing import Optional, cast

from .exceptions import ConnectionFailedError, NetworkError

logger = logging.getLogger(__name__)

DataCallback = Callable[[bytes], None]
LostCallback = Callable[[Optional[Exception]], None]


class RconStreamProtocol(asyncio.Protocol):
    """
    asyncio TCP 协议适配器。
    将回调风格的 data_received / connection_lost 转交给 NetworkClient。
    """

    def __init__(self, owner: "NetworkClient"):
        self.owner = owner
        self.transport: Optional[asyncio.Transport] = None

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        self.transport = cast(asyncio.Transport, transport)
        logger.debug("TCP Transport 已建立")

    def data_received(self, data: bytes) -> None:
        self.owner._handle_data(self, data)

    def connection_lost(self, exc: Optional[Exception]) -> None:
        """处理连接断开"""
        if exc:
            logger.warning(f"TCP 连接断开: {exc}")
        else:
            logger.debug("TCP 连接已关闭")
        self.transport = None
        self.owner._handle_lost(self, exc)


class NetworkClient:
    """
    封装 asyncio TCP 操作的客户端。

    每次 connect() 都会创建新的 Protocol 实例；
    来自旧连接的迟到回调 (如 close 之后的 connection_lost) 会被忽略。
    """

    def __init__(self, on_data: DataCallback, on_lost: LostCallback):
        self.on_data = on_data
        self.on_lost = on_lost
        self.protocol: Optional[RconStreamProtocol] = None
        self.transport: Optional[asyncio.Transport] = None

    @property
    def is_connected(self) -> bool:
        return self.transport is not None and not self.transport.is_closing()

    async def connect(self, host: str, port: int, timeout: float) -> None:
        """
        建立 TCP 连接。

        Raises:
            ConnectionFailedError: 超时或连接被拒绝。
        """
        loop = asyncio.get_running_loop()
        address = (host, port)

        try:
            transport, protocol = await asyncio.wait_for(
                loop.create_connection(lambda: RconStreamProtocol(self), host, port),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            raise ConnectionFailedError(f"连接超时 {address} ({timeout}s)") from None
        except OSError as e:
            raise ConnectionFailedError(f"连接失败 {address}: {e}") from e

        self.transport = cast(asyncio.Transport, transport)
        self.protocol = cast(RconStreamProtocol, protocol)
        logger.debug(f"TCP 连接成功: {address}")

    def write(self, data: bytes) -> None:
        """
        写入数据。写入是同步非阻塞的，由 Transport 负责缓冲。
        """
        if not self.transport or self.transport.is_closing():
            raise NetworkError("Transport 已关闭")

        try:
            self.transport.write(data)
        except Exception as e:
            raise NetworkError(f"发送失败: {e}") from e

    async def close(self) -> None:
        """关闭 Transport"""
        transport = self._detach()
        if transport:
            transport.close()
            logger.debug("TCP Transport 已关闭")

    def abort(self) -> None:
        """立即丢弃 Transport (协议错误时使用，不等待缓冲区写完)。"""
        transport = self._detach()
        if transport:
            transport.abort()
            logger.debug("TCP Transport 已中止")

    def _detach(self) -> Optional[asyncio.Transport]:
        transport = self.transport
        self.transport = None
        self.protocol = None
        return transport

    def _handle_data(self, protocol: RconStreamProtocol, data: bytes) -> None:
        if protocol is not self.protocol:
            return
        self.on_data(data)

    def _handle_lost(
        self, protocol: RconStreamProtocol, exc: Optional[Exception]
    ) -> None:
        if protocol is not self.protocol:
            return
        self._detach()
        self.on_lost(exc)
