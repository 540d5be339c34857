# File: src/rcon_core/state.py
"""
RCON 核心库 - 状态模块

负责定义连接与认证的状态枚举，以及存放易变会话状态的数据容器。
本模块不包含业务逻辑；状态只由 RconClient 修改，其余组件只读。
"""

from dataclasses import dataclass
from enum import Enum, auto


class ConnectionState(Enum):
    """连接管理器的生命周期状态枚举。

    状态流转示意:
    DISCONNECTED -> CONNECTING -> CONNECTED -> AUTHENTICATING -> AUTHENTICATED
         ^              |             |               |                |
         |              v             v               v                v
         +---------- DISCONNECTED <----------- CLOSING <----------------+
    """

    DISCONNECTED = auto()
    """未连接。初始状态，也是任何拆除 (Teardown) 后的状态。"""

    CONNECTING = auto()
    """正在建立 TCP 连接。"""

    CONNECTED = auto()
    """TCP 已连接，尚未认证。"""

    AUTHENTICATING = auto()
    """认证包已发出，等待服务器响应。"""

    AUTHENTICATED = auto()
    """认证成功，可以发送命令。"""

    CLOSING = auto()
    """正在主动关闭连接。"""


class AuthState(Enum):
    """认证状态机。

    UNAUTHENTICATED -> AUTHENTICATING -> AUTHENTICATED
                              |
                              v
                         AUTH_FAILED
    """

    UNAUTHENTICATED = auto()
    AUTHENTICATING = auto()
    AUTHENTICATED = auto()
    AUTH_FAILED = auto()


class ClientEvent(Enum):
    """客户端对外发布的通知类型 (封闭集合)。"""

    CONNECTED = auto()
    AUTHENTICATED = auto()
    DISCONNECTED = auto()
    AUTH_FAILED = auto()
    ERROR = auto()


@dataclass
class RconState:
    """存储 RCON 会话的易变状态数据。

    每次重连后认证状态都会被重置，不会跨连接保留 AUTHENTICATED。

    Attributes:
        connection: 当前连接状态。
        auth: 当前认证状态。
        last_error: 最近一次发生的错误信息描述，用于 UI 显示。
        reconnect_attempts: 当前这一轮自动重连已尝试的次数。
    """

    connection: ConnectionState = ConnectionState.DISCONNECTED
    auth: AuthState = AuthState.UNAUTHENTICATED
    last_error: str = ""
    reconnect_attempts: int = 0

    @property
    def is_connected(self) -> bool:
        """判断 Transport 是否处于可用状态。"""
        return self.connection in (
            ConnectionState.CONNECTED,
            ConnectionState.AUTHENTICATING,
            ConnectionState.AUTHENTICATED,
        )

    @property
    def is_authenticated(self) -> bool:
        return self.auth is AuthState.AUTHENTICATED
