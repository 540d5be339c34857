# src/rcon_core/protocols/__init__.py
"""
RCON 协议层 (Protocol Layer)

本包负责协议数据帧的纯粹构建 (Build)、解析 (Parse) 与重组 (Reassemble)。

- 不包含任何 socket 操作或网络 I/O。
- 不包含任何连接/认证状态 (State)。
- 不依赖于 core 或 network 层。
"""

from . import constants
from .assembler import StreamAssembler
from .constants import PacketType
from .packets import (
    Frame,
    build_auth_packet,
    build_command_packet,
    build_sentinel_packet,
    decode_packet,
    encode_packet,
    try_decode,
)
from .reassembler import FragmentReassembler

# 公共 API
__all__ = [
    "constants",
    "PacketType",
    "Frame",
    "encode_packet",
    "decode_packet",
    "try_decode",
    "build_auth_packet",
    "build_command_packet",
    "build_sentinel_packet",
    "StreamAssembler",
    "FragmentReassembler",
]
