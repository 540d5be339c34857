# File: src/rcon_core/exceptions.py
"""
RCON 核心库 - 异常体系 (Exceptions)

定义库内统一使用的异常类，以便上层应用（如 CLI/REPL）能进行精细的错误处理。
"""


class RconError(Exception):
    """RCON 核心库的所有内部异常的基类。

    上层应用可以通过捕获此异常来处理所有由 rcon-core 抛出的已知错误。
    """

    pass


class ConfigError(RconError):
    """配置加载或校验失败。

    触发场景:
    1. 缺少必要字段 (如 password)。
    2. 字段格式错误 (如端口越界、超时时间非正数)。
    3. 找不到配置文件或环境变量。
    """

    pass


class NetworkError(RconError):
    """网络层面的错误 (I/O 级别)。

    触发场景:
    1. TCP 连接建立失败或超时。
    2. 写入时 Transport 已关闭。
    3. 服务器意外断开连接。

    注意: 此类错误通常是暂时的，可通过自动重连 (Reconnect) 恢复。
    """

    pass


class ConnectionFailedError(NetworkError):
    """connect() 阶段无法建立 TCP 连接。"""

    pass


class AuthenticationError(RconError):
    """认证被拒绝 (服务器以 requestId == -1 回应)。

    这通常意味着密码错误，对当前会话是致命的，不会被自动重试。
    """

    pass


class ProtocolError(RconError):
    """协议交互错误 (逻辑级别)。

    触发场景:
    1. 长度字段为负数、零或超出上限。
    2. 数据包结尾不是两个 NUL 字节。

    协议错误对连接是致命的：连接会被拆除，不会尝试重新同步。
    """

    pass


class CorruptFrameError(ProtocolError):
    """数据帧结构损坏，字节流已无法安全地继续解析。

    Attributes:
        frames: 同一批字节中、损坏位置之前已完整解析出的帧。
    """

    def __init__(self, message: str, frames: list | None = None) -> None:
        super().__init__(message)
        self.frames = list(frames or [])


class PayloadError(RconError, ValueError):
    """待发送的负载无法编码为合法的数据帧。"""

    pass


class PayloadTooLargeError(PayloadError):
    """负载超过协议允许的最大字节数。"""

    def __init__(self, size: int, limit: int) -> None:
        super().__init__(f"负载过大: {size} 字节 (上限 {limit} 字节)")
        self.size = size
        self.limit = limit


class InvalidPayloadError(PayloadError):
    """负载中包含 NUL 字节，会破坏帧边界。"""

    pass


class CommandTimeoutError(RconError):
    """在超时窗口内未收到对应的响应。

    超时只影响单个请求，连接本身仍然可用。
    """

    def __init__(self, message: str, request_id: int | None = None) -> None:
        super().__init__(message)
        self.request_id = request_id


class StateError(RconError):
    """状态机错误 (FSM Violation)。

    本地前置条件不满足，请求不会触达网络。
    """

    pass


class NotConnectedError(StateError):
    """Transport 尚未连接。"""

    pass


class NotAuthenticatedError(StateError):
    """尚未通过认证，不允许发送命令。"""

    pass


class CommandInFlightError(StateError):
    """上一个请求尚未完成 (哨兵往返未结束)。"""

    pass
