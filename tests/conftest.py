# tests/conftest.py
import asyncio
import socket
import sys
from pathlib import Path

import pytest
import pytest_asyncio

# 确保 src 目录在 sys.path 中
src_path = Path(__file__).resolve().parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from rcon_core.config import RconConfig
from rcon_core.exceptions import CorruptFrameError
from rcon_core.protocols import constants
from rcon_core.protocols.assembler import StreamAssembler
from rcon_core.protocols.constants import PacketType
from rcon_core.protocols.packets import Frame, encode_packet
from rcon_core.state import ClientEvent


@pytest.fixture
def valid_config():
    """
    [Fixture] 返回一个不依赖网络的 RconConfig 对象。
    """
    return RconConfig(
        password="test_password",
        host="10.10.10.1",
        port=25575,
        timeout=5.0,
        reconnect_enabled=False,
    )


class StubRconServer:
    """进程内的 RCON 服务器桩，行为与 Source/Minecraft 服务器一致。

    - 认证成功: 先回一个空 RESPONSE_VALUE，再回 AUTH_RESPONSE (同 ID)。
    - 认证失败: 回 AUTH_RESPONSE，ID 为 -1。
    - 空命令 (哨兵): 回一个空 RESPONSE_VALUE。
    - 其他命令: 按 responses 表回复一个或多个分片。
    """

    def __init__(self, password: str = "secret"):
        self.password = password
        self.responses: dict[str, list[str | bytes]] = {}
        self.raw_replies: dict[str, bytes] = {}
        self.delays: dict[str, float] = {}
        self.stalled = False  # 不回复任何命令
        self.ignore_auth = False  # 不回复认证
        self.chunk_size: int | None = None  # 按指定大小拆分写入
        self.received: list[Frame] = []
        self.connections = 0
        self.port = 0
        self._server: asyncio.AbstractServer | None = None
        self._writers: set[asyncio.StreamWriter] = set()

    async def start(self) -> None:
        self._server = await asyncio.start_server(self._handle, "127.0.0.1", 0)
        self.port = self._server.sockets[0].getsockname()[1]

    async def stop(self) -> None:
        await self.drop_clients()
        if self._server:
            self._server.close()
            await self._server.wait_closed()

    async def drop_clients(self) -> None:
        """模拟服务器主动断开所有连接。"""
        for writer in list(self._writers):
            writer.close()
            try:
                await writer.wait_closed()
            except (ConnectionError, OSError):
                pass
        self._writers.clear()

    def exec_frames(self) -> list[Frame]:
        return [f for f in self.received if f.packet_type == PacketType.EXEC_COMMAND]

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        self.connections += 1
        self._writers.add(writer)
        assembler = StreamAssembler()
        try:
            while data := await reader.read(4096):
                for frame in assembler.feed(data):
                    self.received.append(frame)
                    await self._reply(frame, writer)
        except (ConnectionError, CorruptFrameError):
            pass
        finally:
            self._writers.discard(writer)
            writer.close()

    async def _reply(self, frame: Frame, writer: asyncio.StreamWriter) -> None:
        if frame.packet_type == PacketType.AUTH:
            if self.ignore_auth:
                return
            if frame.payload == self.password:
                out = encode_packet(
                    frame.request_id, PacketType.RESPONSE_VALUE
                ) + encode_packet(frame.request_id, constants.AUTH_RESPONSE)
            else:
                out = encode_packet(constants.AUTH_FAILED_ID, constants.AUTH_RESPONSE)
        elif self.stalled:
            return
        elif frame.payload in self.raw_replies:
            out = self.raw_replies[frame.payload]
        elif frame.payload == "":
            out = encode_packet(frame.request_id, PacketType.RESPONSE_VALUE)
        else:
            if frame.payload in self.delays:
                await asyncio.sleep(self.delays[frame.payload])
            fragments = self.responses.get(
                frame.payload, [f"Unknown command: {frame.payload}"]
            )
            out = b"".join(
                encode_packet(frame.request_id, PacketType.RESPONSE_VALUE, f)
                for f in fragments
            )
        await self._write(writer, out)

    async def _write(self, writer: asyncio.StreamWriter, data: bytes) -> None:
        if not self.chunk_size:
            writer.write(data)
            await writer.drain()
            return
        for i in range(0, len(data), self.chunk_size):
            writer.write(data[i : i + self.chunk_size])
            await writer.drain()


class EventRecorder:
    """记录客户端发布的事件，供测试等待与断言。"""

    def __init__(self):
        self.events: list[tuple[ClientEvent, str]] = []

    def __call__(self, event: ClientEvent, msg: str) -> None:
        self.events.append((event, msg))

    @property
    def names(self) -> list[ClientEvent]:
        return [e for e, _ in self.events]

    def count(self, event: ClientEvent) -> int:
        return self.names.count(event)

    async def wait_for(self, event: ClientEvent, times: int = 1, timeout: float = 3.0):
        async def _poll():
            while self.count(event) < times:
                await asyncio.sleep(0.01)

        await asyncio.wait_for(_poll(), timeout)


@pytest_asyncio.fixture
async def rcon_server():
    server = StubRconServer(password="secret")
    await server.start()
    yield server
    await server.stop()


@pytest.fixture
def client_config(rcon_server):
    return RconConfig(
        password="secret",
        host="127.0.0.1",
        port=rcon_server.port,
        timeout=1.0,
    )


@pytest.fixture
def recorder():
    return EventRecorder()


@pytest.fixture
def unused_port():
    """返回一个当前没有监听者的本地端口。"""
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]
