# File: src/rcon_core/protocols/packets.py
"""
RCON 数据帧编解码器 (Frame Codec)

负责逻辑数据包 (id, type, payload) 与二进制字节流之间的相互转换。
本模块是无状态的 (Stateless)，不包含任何 I/O。

帧结构 (全部为小端序 int32):
    length | requestId | type | payload | 0x00 0x00
其中 length == 4 + 4 + len(payload) + 2。
"""

import logging
from dataclasses import dataclass

from ..exceptions import CorruptFrameError, InvalidPayloadError, PayloadTooLargeError
from . import constants

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Frame:
    """一个完整的协议帧。

    Attributes:
        request_id: 客户端分配的请求 ID (认证失败时为 -1)。
        packet_type: 包类型代码，见 constants.PacketType。
        body: 原始负载字节 (不含结尾的 NUL)。

    body 保持为 bytes：服务器可能在多字节 UTF-8 字符中间切分响应，
    只有拼接完所有分片后才能安全解码。
    """

    request_id: int
    packet_type: int
    body: bytes = b""

    @property
    def payload(self) -> str:
        """UTF-8 解码后的文本，无法解码的字节以 U+FFFD 替换。"""
        return self.body.decode("utf-8", errors="replace")


def encode_packet(
    request_id: int,
    packet_type: int,
    payload: str | bytes = "",
    max_payload_size: int = constants.MAX_PAYLOAD_SIZE,
) -> bytes:
    """构建一个完整的 RCON 数据帧。

    Args:
        request_id: 请求 ID。
        packet_type: 包类型代码。
        payload: 文本负载 (UTF-8 编码后发送)，或已编码的原始字节。
        max_payload_size: 负载字节数上限。

    Returns:
        bytes: 含长度前缀的完整帧。

    Raises:
        InvalidPayloadError: 负载中包含 NUL 字节。
        PayloadTooLargeError: 负载超过上限。
    """
    body = payload.encode("utf-8") if isinstance(payload, str) else bytes(payload)

    if b"\x00" in body:
        raise InvalidPayloadError("负载中不能包含 NUL 字节")
    if len(body) > max_payload_size:
        raise PayloadTooLargeError(len(body), max_payload_size)

    length = constants.MIN_PACKET_LENGTH + len(body)
    return b"".join(
        (
            constants.LENGTH_FIELD.pack(length),
            constants.HEADER.pack(request_id, int(packet_type)),
            body,
            constants.TERMINATOR,
        )
    )


def try_decode(
    buffer: bytes | bytearray,
    offset: int = 0,
    max_packet_length: int = constants.MAX_PACKET_LENGTH,
) -> tuple[Frame, int] | None:
    """尝试从缓冲区 offset 处解析出一个数据帧。

    缓冲区可以包含任意多的后续字节，函数只看 offset 起始的前缀。

    Args:
        buffer: 待解析的字节序列。
        offset: 帧起始位置。
        max_packet_length: 长度字段允许的最大值。

    Returns:
        (Frame, consumed) 或 None。None 表示数据不足 (NeedMoreData)，
        此时不消费任何字节；consumed 恰好等于 4 + length。

    Raises:
        CorruptFrameError: 长度字段越界或结尾不是两个 NUL 字节。
    """
    available = len(buffer) - offset
    if available < constants.LENGTH_FIELD_SIZE:
        return None

    (length,) = constants.LENGTH_FIELD.unpack_from(buffer, offset)

    # 尽早拒绝非法长度，避免被迫无限缓冲
    if length < constants.MIN_PACKET_LENGTH or length > max_packet_length:
        raise CorruptFrameError(
            f"非法的长度字段: {length} "
            f"(允许范围 {constants.MIN_PACKET_LENGTH}..{max_packet_length})"
        )

    total = constants.LENGTH_FIELD_SIZE + length
    if available < total:
        return None

    request_id, packet_type = constants.HEADER.unpack_from(
        buffer, offset + constants.LENGTH_FIELD_SIZE
    )

    body_start = offset + constants.LENGTH_FIELD_SIZE + constants.HEADER.size
    body_end = offset + total - len(constants.TERMINATOR)
    if bytes(buffer[body_end : offset + total]) != constants.TERMINATOR:
        raise CorruptFrameError(
            f"数据帧结尾缺少 NUL 终止符 (id={request_id}, length={length})"
        )

    body = bytes(buffer[body_start:body_end])
    return Frame(request_id, packet_type, body), total


def decode_packet(data: bytes) -> Frame:
    """解析一段恰好包含一个完整帧的字节串。

    Raises:
        CorruptFrameError: 数据不完整、包含多余字节或结构损坏。
    """
    result = try_decode(data)
    if result is None:
        raise CorruptFrameError(f"数据帧不完整 ({len(data)} 字节)")

    frame, consumed = result
    if consumed != len(data):
        raise CorruptFrameError(
            f"长度不匹配: 声明 {consumed} 字节，实际 {len(data)} 字节"
        )
    return frame


# =========================================================================
# 便捷构建函数
# =========================================================================


def build_auth_packet(request_id: int, password: str) -> bytes:
    """构建认证请求包 (Type 3)。"""
    return encode_packet(request_id, constants.PacketType.AUTH, password)


def build_command_packet(request_id: int, command: str) -> bytes:
    """构建命令请求包 (Type 2)。"""
    return encode_packet(request_id, constants.PacketType.EXEC_COMMAND, command)


def build_sentinel_packet(request_id: int) -> bytes:
    """构建用于标记响应结束的空命令包 (哨兵探针)。"""
    return encode_packet(request_id, constants.PacketType.EXEC_COMMAND, "")


def is_auth_response(frame: Frame) -> bool:
    """认证结果帧 (Type 2)。Source 服务器在它之前发送的空 Type 0 帧不算。"""
    return frame.packet_type == constants.AUTH_RESPONSE
