# File: src/rcon_core/tracker.py
"""
RCON 核心库 - 请求跟踪器 (Request Tracker)

职责：
1. 分配请求 ID，并把发出的请求与最终响应关联起来。
2. 为每个请求启动超时计时器，并保证在任何结局下都取消它。
3. 保证每个请求只被完成一次 (resolve / reject / timeout 三选一)。
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum, auto

from .exceptions import CommandTimeoutError, StateError
from .protocols import constants
from .protocols.reassembler import FragmentReassembler

logger = logging.getLogger(__name__)


class RequestKind(Enum):
    AUTH = auto()
    COMMAND = auto()


@dataclass
class PendingRequest:
    """一个等待响应的请求。

    Attributes:
        request_id: 请求 ID。
        kind: 请求类型 (认证 / 命令)。
        future: 完成槽，调用方 await 它。
        timer: 超时计时器句柄。
        sentinel_id: 命令请求对应的哨兵 ID (认证请求为 None)。
        submitted_at: 提交时刻 (monotonic)。
    """

    request_id: int
    kind: RequestKind
    future: asyncio.Future
    timer: asyncio.TimerHandle | None = None
    sentinel_id: int | None = None
    submitted_at: float = field(default_factory=time.monotonic)

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self.submitted_at


class RequestTracker:
    """按请求 ID 管理所有未完成的请求。

    只在事件循环线程中使用，不需要加锁。
    """

    def __init__(self, reassembler: FragmentReassembler | None = None) -> None:
        self.reassembler = reassembler or FragmentReassembler()
        self._pending: dict[int, PendingRequest] = {}
        self._last_id = 0

    def next_id(self) -> int:
        """分配下一个请求 ID。

        从 1 开始单调递增，到达 int32 上限后回绕到 1，永远不会产生 -1。
        """
        self._last_id += 1
        if self._last_id > constants.MAX_REQUEST_ID:
            self._last_id = 1
        return self._last_id

    def register(
        self,
        request_id: int,
        kind: RequestKind,
        timeout: float,
        sentinel_id: int | None = None,
    ) -> asyncio.Future:
        """登记一个请求并启动超时计时器。

        Returns:
            asyncio.Future: 请求完成时得到响应文本或异常。

        Raises:
            StateError: request_id 已在等待中 (编程错误)。
        """
        if request_id in self._pending:
            raise StateError(f"请求 ID {request_id} 重复登记")

        loop = asyncio.get_running_loop()
        future = loop.create_future()
        pending = PendingRequest(
            request_id=request_id,
            kind=kind,
            future=future,
            sentinel_id=sentinel_id,
        )
        pending.timer = loop.call_later(timeout, self._expire, request_id, timeout)
        self._pending[request_id] = pending

        logger.debug(f"登记请求 {request_id} ({kind.name}, timeout={timeout}s)")
        return future

    def get(self, request_id: int) -> PendingRequest | None:
        return self._pending.get(request_id)

    def find(self, kind: RequestKind) -> PendingRequest | None:
        """返回某一类型中最早登记的未完成请求。"""
        for pending in self._pending.values():
            if pending.kind is kind:
                return pending
        return None

    def has_pending(self, kind: RequestKind | None = None) -> bool:
        if kind is None:
            return bool(self._pending)
        return self.find(kind) is not None

    def resolve(self, request_id: int, payload: str) -> bool:
        """以响应文本完成请求。

        Returns:
            bool: 请求不存在或已完成时返回 False。
        """
        pending = self._pop(request_id)
        if pending is None:
            return False

        logger.debug(f"请求 {request_id} 完成，耗时 {pending.elapsed:.3f}s")
        if pending.future.done():
            return False
        pending.future.set_result(payload)
        return True

    def reject(self, request_id: int, exc: BaseException) -> bool:
        """以异常完成请求。"""
        pending = self._pop(request_id)
        if pending is None:
            return False

        if pending.future.done():
            return False
        pending.future.set_exception(exc)
        return True

    def discard(self, request_id: int) -> None:
        """移除请求但不投递结果 (调用方已自行处理失败或被取消)。"""
        self._pop(request_id)

    def cancel_all(self, exc: BaseException) -> int:
        """断线时以同一个异常拒绝所有请求，并清空重组状态。

        Returns:
            int: 被拒绝的请求数量。
        """
        count = 0
        for request_id in list(self._pending):
            if self.reject(request_id, exc):
                count += 1
        self.reassembler.clear()
        if count:
            logger.debug(f"已拒绝 {count} 个未完成请求: {exc}")
        return count

    def _pop(self, request_id: int) -> PendingRequest | None:
        """[Internal] 取出请求，并释放它占用的计时器和分片缓冲。"""
        pending = self._pending.pop(request_id, None)
        if pending is None:
            return None
        if pending.timer is not None:
            pending.timer.cancel()
            pending.timer = None
        self.reassembler.discard(request_id)
        return pending

    def _expire(self, request_id: int, timeout: float) -> None:
        """[Internal] 超时回调。"""
        pending = self._pending.get(request_id)
        if pending is None:
            return
        pending.timer = None

        label = "认证" if pending.kind is RequestKind.AUTH else "命令"
        logger.warning(f"{label}请求 {request_id} 超时 ({timeout}s)")
        self.reject(
            request_id,
            CommandTimeoutError(f"{label}超时 ({timeout}s 内无响应)", request_id),
        )

    def __contains__(self, request_id: object) -> bool:
        return request_id in self._pending

    def __len__(self) -> int:
        return len(self._pending)
