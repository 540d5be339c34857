"""
RCON 协议常量表 (Constants)

仅定义协议的结构性常量（包类型、长度上限、特殊 ID）。
"""

import struct
from enum import IntEnum


# =========================================================================
# 包类型 (Packet Types)
# =========================================================================
class PacketType(IntEnum):
    """协议包头部的 Type 字段定义。

    注意: EXEC_COMMAND 与 AUTH_RESPONSE 数值相同 (2)，
    只能根据方向 (Client -> Server / Server -> Client) 区分。
    """

    RESPONSE_VALUE = 0  # 命令响应 (Server -> Client)
    EXEC_COMMAND = 2  # 执行命令 (Client -> Server)
    AUTH = 3  # 认证请求 (Client -> Server)


AUTH_RESPONSE = 2  # 认证响应 (Server -> Client)，与 EXEC_COMMAND 同值

# =========================================================================
# 结构与长度 (Structure)
# =========================================================================
LENGTH_FIELD = struct.Struct("<i")
HEADER = struct.Struct("<ii")  # requestId + type

LENGTH_FIELD_SIZE = LENGTH_FIELD.size  # 4
TERMINATOR = b"\x00\x00"

# 长度字段之后至少包含 requestId(4) + type(4) + 终止符(2)
MIN_PACKET_LENGTH = HEADER.size + len(TERMINATOR)  # 10

# 双向通用的负载上限
MAX_PAYLOAD_SIZE = 4096
MAX_PACKET_LENGTH = MIN_PACKET_LENGTH + MAX_PAYLOAD_SIZE  # 4106

# =========================================================================
# 特殊请求 ID
# =========================================================================
AUTH_FAILED_ID = -1  # 服务器用于表示认证失败的哨兵 ID
MAX_REQUEST_ID = 2**31 - 1
