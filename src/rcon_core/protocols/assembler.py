"""
RCON 流式组帧器 (Stream Assembler)

TCP 不保证一次读取对应一个协议帧：一次 read 可能包含半个帧，
也可能包含多个帧。本模块负责把任意切分的字节块还原为完整帧。
"""

import logging

from ..exceptions import CorruptFrameError
from . import constants
from .packets import Frame, try_decode

logger = logging.getLogger(__name__)


class StreamAssembler:
    """增量式帧解析器。

    缓冲区保存自上一个完整帧边界以来尚未消费的字节。
    """

    def __init__(self, max_packet_length: int = constants.MAX_PACKET_LENGTH) -> None:
        self._buffer = bytearray()
        self.max_packet_length = max_packet_length

    @property
    def buffered(self) -> int:
        """当前缓冲区中尚未组成完整帧的字节数。"""
        return len(self._buffer)

    def feed(self, chunk: bytes) -> list[Frame]:
        """追加一段字节并返回其中所有完整的帧。

        Args:
            chunk: 从 Transport 读到的任意字节块。

        Returns:
            list[Frame]: 零个、一个或多个完整帧，按到达顺序排列。

        Raises:
            CorruptFrameError: 字节流已损坏。缓冲区会被清空，不做重新同步；
                损坏位置之前已解析出的帧放在异常的 frames 属性中，
                调用方应先处理它们再拆除连接。
        """
        self._buffer.extend(chunk)
        frames: list[Frame] = []
        offset = 0

        try:
            while True:
                result = try_decode(self._buffer, offset, self.max_packet_length)
                if result is None:
                    break
                frame, consumed = result
                frames.append(frame)
                offset += consumed
        except CorruptFrameError as e:
            logger.error(
                f"字节流损坏，丢弃缓冲区 ({len(self._buffer)} 字节，"
                f"此前已解析 {len(frames)} 帧)"
            )
            self._buffer.clear()
            e.frames = frames
            raise

        if offset:
            del self._buffer[:offset]

        return frames

    def clear(self) -> None:
        """丢弃所有未消费的字节 (断线时调用)。"""
        self._buffer.clear()
