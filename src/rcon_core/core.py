# File: src/rcon_core/core.py
"""
RCON 核心引擎 (Core Engine)

职责：
1. 资源组装：State + Network + Assembler + Tracker + Config。
2. 认证状态机：Unauthenticated -> Authenticating -> Authenticated / AuthFailed。
3. 连接管理：Connect -> Authenticate -> Command -> Disconnect，以及自动重连。
"""

import asyncio
import inspect
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import replace
from typing import Any

from .config import RconConfig
from .exceptions import (
    AuthenticationError,
    CommandInFlightError,
    CommandTimeoutError,
    ConnectionFailedError,
    CorruptFrameError,
    NetworkError,
    NotAuthenticatedError,
    NotConnectedError,
    ProtocolError,
    StateError,
)
from .network import NetworkClient
from .protocols import constants
from .protocols.assembler import StreamAssembler
from .protocols.packets import (
    Frame,
    build_auth_packet,
    build_command_packet,
    build_sentinel_packet,
    is_auth_response,
)
from .protocols.reassembler import FragmentReassembler
from .state import AuthState, ClientEvent, ConnectionState, RconState
from .tracker import RequestKind, RequestTracker

logger = logging.getLogger(__name__)

# 定义回调函数类型别名：支持同步或异步函数
EventCallback = Callable[[ClientEvent, str], Any | Awaitable[Any]]


class RconClient:
    """RCON 协议客户端 (Async)。

    每个实例只维护一条连接，同一时刻最多只有一个未完成的命令。
    """

    def __init__(
        self,
        config: RconConfig,
        event_callback: EventCallback | None = None,
    ) -> None:
        """初始化客户端。

        Args:
            config: 全局配置对象。
            event_callback: 初始事件回调。也可以之后使用 add_listener 注册。
        """
        self.config = config

        self._listeners: list[EventCallback] = []
        if event_callback:
            self.add_listener(event_callback)

        self._state = RconState()
        self._assembler = StreamAssembler()
        self._tracker = RequestTracker(FragmentReassembler())
        self.net_client = NetworkClient(self._on_data, self._on_connection_lost)

        self._host = config.host
        self._port = config.port
        self._password = config.password
        self._auth_request_id: int | None = None

        self._reconnect_task: asyncio.Task | None = None
        self._background_tasks: set[asyncio.Task] = set()

    @property
    def state(self) -> RconState:
        """获取当前会话状态的只读副本。

        返回的是一个副本 (Copy)，修改它不会影响客户端内部状态。
        """
        return replace(self._state)

    @property
    def is_connected(self) -> bool:
        return self._state.is_connected

    @property
    def is_authenticated(self) -> bool:
        return self._state.is_authenticated

    @property
    def pending_requests(self) -> int:
        """尚未完成的请求数量。"""
        return len(self._tracker)

    def add_listener(self, callback: EventCallback) -> None:
        """注册事件监听器。"""
        if callback not in self._listeners:
            self._listeners.append(callback)

    def remove_listener(self, callback: EventCallback) -> None:
        """移除事件监听器。"""
        if callback in self._listeners:
            self._listeners.remove(callback)

    # ------------------------------------------------------------------
    # 公共 API
    # ------------------------------------------------------------------

    async def connect(
        self,
        host: str | None = None,
        port: int | None = None,
        timeout: float | None = None,
    ) -> None:
        """建立 TCP 连接。

        外部调用必须使用 await client.connect()。已连接时直接返回。

        Args:
            host: 覆盖配置中的服务器地址。
            port: 覆盖配置中的端口。
            timeout: 连接超时秒数，默认使用配置中的 timeout。

        Raises:
            ConnectionFailedError: 无法建立连接。
            StateError: 另一个 connect() 正在进行。
        """
        if self._state.is_connected:
            logger.warning("当前已连接，跳过连接")
            return
        if self._state.connection is not ConnectionState.DISCONNECTED:
            raise StateError(f"无法连接：当前状态为 {self._state.connection.name}")

        if host is not None:
            self._host = host
        if port is not None:
            self._port = port

        self._set_connection(
            ConnectionState.CONNECTING, f"正在连接 {self._host}:{self._port} ..."
        )

        try:
            await self.net_client.connect(
                self._host, self._port, timeout or self.config.timeout
            )
        except NetworkError as e:
            self._state.last_error = str(e)
            if self._state.connection is ConnectionState.CONNECTING:
                self._set_connection(ConnectionState.DISCONNECTED, f"连接失败: {e}")
            self._emit(ClientEvent.ERROR, str(e))
            raise

        if self._state.connection is not ConnectionState.CONNECTING:
            # 连接过程中被 disconnect() 打断
            await self.net_client.close()
            raise ConnectionFailedError("连接过程中被取消")

        self._assembler.clear()
        self._state.auth = AuthState.UNAUTHENTICATED
        self._state.last_error = ""
        self._set_connection(ConnectionState.CONNECTED, "连接成功")
        self._emit(ClientEvent.CONNECTED, f"{self._host}:{self._port}")

    async def authenticate(self, password: str | None = None) -> bool:
        """执行认证握手。

        Args:
            password: 覆盖配置中的密码。

        Returns:
            bool: 认证成功返回 True (已认证时直接返回 True)。

        Raises:
            NotConnectedError: 尚未连接。
            CommandInFlightError: 另一个认证正在进行。
            AuthenticationError: 服务器拒绝了密码。
            CommandTimeoutError: 服务器未在超时时间内响应。
            NetworkError: 认证过程中连接断开。
        """
        if self._state.auth is AuthState.AUTHENTICATED:
            return True
        if not self._state.is_connected:
            raise NotConnectedError("未连接，请先调用 connect()")
        if self._auth_request_id is not None:
            raise CommandInFlightError("认证正在进行中")

        if password is not None:
            self._password = password

        request_id = self._tracker.next_id()
        packet = build_auth_packet(request_id, self._password)
        future = self._tracker.register(
            request_id, RequestKind.AUTH, self.config.timeout
        )
        self._auth_request_id = request_id
        self._state.auth = AuthState.AUTHENTICATING
        self._set_connection(ConnectionState.AUTHENTICATING, "正在认证...")
        logger.debug(f"发送认证包 (id={request_id})")

        try:
            self.net_client.write(packet)
            await future
        except CommandTimeoutError as e:
            self._abort_auth(f"认证超时: {e}")
            raise
        except (NetworkError, asyncio.CancelledError):
            self._abort_auth("认证中断")
            raise
        finally:
            self._tracker.discard(request_id)
            if self._auth_request_id == request_id:
                self._auth_request_id = None

        return True

    async def send_command(self, command: str) -> str:
        """发送一条命令并等待完整响应。

        命令帧 (id=N) 后紧跟一个空的哨兵帧 (id=N+1)，
        收到 N+1 的回显时，N 的所有分片按到达顺序拼接后返回。

        Args:
            command: 命令文本。

        Returns:
            str: 服务器的响应文本 (可能为空)。

        Raises:
            NotAuthenticatedError: 尚未认证。
            CommandInFlightError: 上一个命令尚未完成。
            PayloadTooLargeError / InvalidPayloadError: 命令无法编码。
            CommandTimeoutError: 超时未收到完整响应，连接仍可继续使用。
            NetworkError / ProtocolError: 连接断开或字节流损坏。
        """
        if not self._state.is_authenticated:
            raise NotAuthenticatedError("未认证，请先调用 authenticate()")
        if self._tracker.has_pending(RequestKind.COMMAND):
            raise CommandInFlightError("上一个命令尚未完成")

        command_id = self._tracker.next_id()
        sentinel_id = self._tracker.next_id()
        packet = build_command_packet(command_id, command) + build_sentinel_packet(
            sentinel_id
        )

        self._tracker.reassembler.expect(command_id, sentinel_id)
        future = self._tracker.register(
            command_id,
            RequestKind.COMMAND,
            self.config.timeout,
            sentinel_id=sentinel_id,
        )
        logger.debug(
            f"发送命令 (id={command_id}, sentinel={sentinel_id}, "
            f"size={len(packet)} bytes)"
        )

        try:
            self.net_client.write(packet)
            return await future
        finally:
            self._tracker.discard(command_id)

    async def ping(self, command: str = "list") -> float:
        """发送一条无害命令探测连通性。

        Returns:
            float: 往返耗时 (秒)。
        """
        start = time.monotonic()
        await self.send_command(command)
        return time.monotonic() - start

    async def disconnect(self) -> None:
        """断开连接 (幂等)。

        停止自动重连，关闭 Transport，并以失败结束所有未完成的请求。
        """
        await self._cancel_reconnect()

        if self._state.connection is ConnectionState.DISCONNECTED:
            return

        self._set_connection(ConnectionState.CLOSING, "正在断开连接...")
        await self.net_client.close()
        self._teardown(NetworkError("连接已关闭"), "已断开连接")

    async def __aenter__(self):
        await self.connect()
        await self.authenticate()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.disconnect()

    # ------------------------------------------------------------------
    # 入站数据处理
    # ------------------------------------------------------------------

    def _on_data(self, data: bytes) -> None:
        """[Internal] Transport 收到数据。"""
        try:
            frames = self._assembler.feed(data)
        except CorruptFrameError as e:
            # 损坏位置之前的完整帧仍然有效
            for frame in e.frames:
                self._dispatch_frame(frame)
            self._handle_protocol_error(e)
            return

        for frame in frames:
            self._dispatch_frame(frame)

    def _dispatch_frame(self, frame: Frame) -> None:
        """[Internal] 按请求 ID 分发一个完整帧。"""
        logger.debug(
            f"收到数据包: id={frame.request_id}, type={frame.packet_type}, "
            f"size={len(frame.body)}"
        )

        if self._auth_request_id is not None and frame.request_id in (
            self._auth_request_id,
            constants.AUTH_FAILED_ID,
        ):
            self._handle_auth_frame(self._auth_request_id, frame)
            return

        if frame.request_id == constants.AUTH_FAILED_ID:
            logger.warning("收到认证失败响应，但当前没有进行中的认证")
            return

        reassembler = self._tracker.reassembler
        if reassembler.add_fragment(frame.request_id, frame.body):
            return

        if reassembler.is_sentinel(frame.request_id):
            request_id, payload = reassembler.complete(frame.request_id)
            self._tracker.resolve(request_id, payload)
            return

        logger.debug(f"丢弃未关联的数据包 (id={frame.request_id})")

    def _handle_auth_frame(self, request_id: int, frame: Frame) -> None:
        """[Internal] 认证状态机的响应处理。"""
        if frame.request_id == constants.AUTH_FAILED_ID:
            reason = "认证失败: 密码错误"
            self._state.auth = AuthState.AUTH_FAILED
            self._state.last_error = reason
            self._set_connection(ConnectionState.CONNECTED, reason)
            self._emit(ClientEvent.AUTH_FAILED, reason)
            self._tracker.reject(request_id, AuthenticationError(reason))
            return

        if not is_auth_response(frame):
            # Source 系服务器会先回一个空的 RESPONSE_VALUE
            logger.debug(f"忽略认证前导响应 (type={frame.packet_type})")
            return

        self._state.auth = AuthState.AUTHENTICATED
        self._set_connection(ConnectionState.AUTHENTICATED, "认证成功")
        self._emit(ClientEvent.AUTHENTICATED, "认证成功")
        self._tracker.resolve(request_id, frame.payload)

    def _abort_auth(self, msg: str) -> None:
        """[Internal] 认证未得出结论时回退状态。"""
        if self._state.auth is not AuthState.AUTHENTICATING:
            return
        self._state.auth = AuthState.UNAUTHENTICATED
        self._state.last_error = msg
        if self._state.connection is ConnectionState.AUTHENTICATING:
            self._set_connection(ConnectionState.CONNECTED, msg)
        self._emit(ClientEvent.AUTH_FAILED, msg)

    # ------------------------------------------------------------------
    # 连接生命周期
    # ------------------------------------------------------------------

    def _handle_protocol_error(self, exc: ProtocolError) -> None:
        """[Internal] 字节流损坏：中止连接，不尝试重新同步。"""
        msg = f"协议错误: {exc}"
        logger.error(msg)
        self._state.last_error = msg
        self._emit(ClientEvent.ERROR, msg)
        self.net_client.abort()
        self._teardown(exc, "协议错误，连接已拆除")

    def _on_connection_lost(self, exc: Exception | None) -> None:
        """[Internal] Transport 意外关闭。"""
        if self._state.connection in (
            ConnectionState.DISCONNECTED,
            ConnectionState.CLOSING,
        ):
            return

        cause = NetworkError(f"连接意外断开: {exc}" if exc else "服务器关闭了连接")
        self._state.last_error = str(cause)
        if exc:
            self._emit(ClientEvent.ERROR, str(cause))
        self._teardown(cause, str(cause))

        if self.config.reconnect_enabled:
            self._schedule_reconnect()

    def _teardown(self, exc: BaseException, msg: str) -> None:
        """[Internal] 统一的拆除路径：清空缓冲并拒绝所有未完成请求。"""
        was_connected = self._state.connection is not ConnectionState.DISCONNECTED

        self._assembler.clear()
        self._auth_request_id = None
        if self._state.auth is not AuthState.AUTH_FAILED:
            self._state.auth = AuthState.UNAUTHENTICATED
        self._set_connection(ConnectionState.DISCONNECTED, msg)
        self._tracker.cancel_all(exc)

        if was_connected:
            self._emit(ClientEvent.DISCONNECTED, msg)

    def _schedule_reconnect(self) -> None:
        if self._reconnect_task and not self._reconnect_task.done():
            return
        self._reconnect_task = asyncio.get_running_loop().create_task(
            self._reconnect_loop(), name="RconReconnectTask"
        )

    async def _reconnect_loop(self) -> None:
        """[Internal] 指数退避重连，成功后必须重新认证。

        未完成的命令不会被重放。
        """
        cfg = self.config
        attempt = 0

        try:
            while True:
                attempt += 1
                if cfg.reconnect_max_attempts and attempt > cfg.reconnect_max_attempts:
                    msg = f"自动重连放弃: 已尝试 {attempt - 1} 次"
                    logger.error(msg)
                    self._state.last_error = msg
                    self._emit(ClientEvent.ERROR, msg)
                    return

                self._state.reconnect_attempts = attempt
                delay = cfg.backoff_delay(attempt)
                logger.info(f"{delay:.2f}s 后进行第 {attempt} 次重连...")
                await asyncio.sleep(delay)

                try:
                    await self.connect()
                    await self.authenticate()
                except AuthenticationError as e:
                    logger.error(f"重连后认证被拒绝，停止自动重连: {e}")
                    return
                except (NetworkError, ProtocolError, CommandTimeoutError, StateError) as e:
                    logger.warning(f"第 {attempt} 次重连失败: {e}")
                    continue

                logger.info(f"自动重连成功 (第 {attempt} 次尝试)")
                return
        except asyncio.CancelledError:
            logger.debug("重连任务被取消")
            raise
        finally:
            self._state.reconnect_attempts = 0

    async def _cancel_reconnect(self) -> None:
        task = self._reconnect_task
        self._reconnect_task = None
        if task is None or task.done() or task is asyncio.current_task():
            return

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    def _set_connection(self, state: ConnectionState, msg: str) -> None:
        self._state.connection = state
        logger.info(f"[{state.name}] {msg}")

    def _emit(self, event: ClientEvent, msg: str) -> None:
        """异步触发所有监听器，回调永远不会在当前调用栈内执行。"""
        for callback in list(self._listeners):
            try:
                if inspect.iscoroutinefunction(callback):
                    task = asyncio.create_task(callback(event, msg))  # type: ignore
                    self._background_tasks.add(task)
                    task.add_done_callback(self._background_tasks.discard)
                else:
                    loop = asyncio.get_running_loop()
                    loop.call_soon(callback, event, msg)
            except RuntimeError:
                # 应对 loop 尚未运行或已关闭的边缘情况
                logger.debug(f"事件循环不可用，丢弃事件 {event.name}")
