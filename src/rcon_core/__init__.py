# src/rcon_core/__init__.py
"""
rcon-core v1.0.0
面向 RCON (Remote Console) 协议的异步客户端核心库。
"""

# 暴露核心配置
from .config import (
    RconConfig,
    create_config_from_dict,
    load_config_from_env,
    load_config_from_toml,
)

# 暴露客户端与状态
from .core import RconClient

# 暴露异常体系 (方便上层 try-except)
from .exceptions import (
    AuthenticationError,
    CommandInFlightError,
    CommandTimeoutError,
    ConfigError,
    ConnectionFailedError,
    CorruptFrameError,
    InvalidPayloadError,
    NetworkError,
    NotAuthenticatedError,
    NotConnectedError,
    PayloadError,
    PayloadTooLargeError,
    ProtocolError,
    RconError,
    StateError,
)
from .state import AuthState, ClientEvent, ConnectionState, RconState

__version__ = "1.0.0"

__all__ = [
    "RconClient",
    "RconConfig",
    "RconState",
    "ConnectionState",
    "AuthState",
    "ClientEvent",
    "create_config_from_dict",
    "load_config_from_env",
    "load_config_from_toml",
    "RconError",
    "ConfigError",
    "NetworkError",
    "ConnectionFailedError",
    "AuthenticationError",
    "ProtocolError",
    "CorruptFrameError",
    "PayloadError",
    "PayloadTooLargeError",
    "InvalidPayloadError",
    "CommandTimeoutError",
    "StateError",
    "NotConnectedError",
    "NotAuthenticatedError",
    "CommandInFlightError",
]
