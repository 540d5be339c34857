"""
RCON 分片重组器 (Fragment Reassembler)

协议本身不标记 "最后一个分片"，因此不能靠负载长度判断响应是否结束。
这里采用哨兵探针：发送命令 N 后紧跟一个空命令 N+1，
服务器按顺序回复，收到 N+1 的回显即说明 N 的所有分片均已到达。
"""

import logging

from ..exceptions import StateError

logger = logging.getLogger(__name__)


class FragmentReassembler:
    """按请求 ID 累积响应分片，直到对应的哨兵响应到达。"""

    def __init__(self) -> None:
        self._fragments: dict[int, list[bytes]] = {}
        self._sentinels: dict[int, int] = {}  # sentinel_id -> request_id

    def expect(self, request_id: int, sentinel_id: int) -> None:
        """开始为 request_id 收集分片，sentinel_id 的响应标志着结束。"""
        if request_id in self._fragments:
            raise StateError(f"请求 {request_id} 已在重组中")
        if sentinel_id in self._sentinels:
            raise StateError(f"哨兵 ID {sentinel_id} 已被占用")
        self._fragments[request_id] = []
        self._sentinels[sentinel_id] = request_id

    def add_fragment(self, request_id: int, body: bytes) -> bool:
        """按到达顺序追加一个分片的原始字节。

        Returns:
            bool: request_id 不在重组中时返回 False。
        """
        fragments = self._fragments.get(request_id)
        if fragments is None:
            return False
        fragments.append(body)
        logger.debug(f"请求 {request_id} 收到第 {len(fragments)} 个分片")
        return True

    def is_sentinel(self, request_id: int) -> bool:
        """该 ID 是否是某个进行中请求的哨兵。"""
        return request_id in self._sentinels

    def complete(self, sentinel_id: int) -> tuple[int, str] | None:
        """哨兵响应到达，拼接全部字节后统一解码并返回完整的响应。

        分片边界可能落在多字节字符中间，所以只在这里解码一次。

        Returns:
            (request_id, payload)；sentinel_id 未知时返回 None。
        """
        request_id = self._sentinels.pop(sentinel_id, None)
        if request_id is None:
            return None
        fragments = self._fragments.pop(request_id, [])
        return request_id, b"".join(fragments).decode("utf-8", errors="replace")

    def discard(self, request_id: int) -> None:
        """丢弃某个请求的所有分片及其哨兵映射 (超时或取消时调用)。"""
        self._fragments.pop(request_id, None)
        for sentinel_id, owner in list(self._sentinels.items()):
            if owner == request_id:
                del self._sentinels[sentinel_id]

    def clear(self) -> None:
        self._fragments.clear()
        self._sentinels.clear()

    def __contains__(self, request_id: object) -> bool:
        return request_id in self._fragments

    def __len__(self) -> int:
        return len(self._fragments)
