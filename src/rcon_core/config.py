"""
RCON 核心库 - 配置模块

负责配置的加载、解析与强类型转换。
支持从 TOML 文件、环境变量 (含 .env 文件) 或字典中加载配置。
"""

import logging
import os
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from .exceptions import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 25575
DEFAULT_TIMEOUT = 5.0

_TRUE_VALUES = ("true", "1", "t", "yes", "on")
_FALSE_VALUES = ("false", "0", "f", "no", "off", "")


@dataclass(frozen=True)
class RconConfig:
    """RconClient 的强类型配置对象。

    所有字段均为只读 (frozen=True)，确保配置在运行时不可变。

    Attributes:
        password: RCON 密码。
        host: 服务器地址。
        port: 服务器端口 (Minecraft 默认为 25575)。
        timeout: 单次操作 (连接/认证/命令) 的超时秒数。
        reconnect_enabled: 意外断线后是否自动重连。
        reconnect_initial_delay: 第一次重连前的等待秒数。
        reconnect_max_delay: 指数退避的上限秒数。
        reconnect_multiplier: 每次失败后等待时间的放大倍数。
        reconnect_max_attempts: 最大重连次数，0 表示不限。
    """

    password: str
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    timeout: float = DEFAULT_TIMEOUT

    reconnect_enabled: bool = False
    reconnect_initial_delay: float = 1.0
    reconnect_max_delay: float = 30.0
    reconnect_multiplier: float = 2.0
    reconnect_max_attempts: int = 0

    def __repr__(self) -> str:
        """
        覆盖默认的 repr，隐藏密码字段，防止日志泄露敏感信息。
        """
        return (
            f"<{self.__class__.__name__} "
            f"server={self.host}:{self.port}, "
            f"password='******', "
            f"timeout={self.timeout}, "
            f"reconnect={self.reconnect_enabled}>"
        )

    def backoff_delay(self, attempt: int) -> float:
        """计算第 attempt 次重连 (从 1 开始) 前的等待秒数。"""
        delay = self.reconnect_initial_delay * (
            self.reconnect_multiplier ** max(attempt - 1, 0)
        )
        return min(delay, self.reconnect_max_delay)


def create_config_from_dict(raw_data: dict[str, Any]) -> RconConfig:
    """通用工厂：将字典转换为强类型配置对象。

    负责字段的清洗、默认值注入和类型转换。

    Args:
        raw_data: 原始配置字典 (来自 TOML、Env 或 CLI)。

    Returns:
        RconConfig: 验证并转换后的配置对象。

    Raises:
        ConfigError: 当必要字段缺失或格式错误时抛出。
    """
    try:
        # --- 内部辅助函数 ---
        def _req(key: str) -> Any:
            """获取必要字段，缺失则报错"""
            if key not in raw_data or raw_data[key] is None:
                raise ConfigError(f"配置缺失: 缺少必要字段 '{key}'")
            return raw_data[key]

        def _get(key: str, default: Any) -> Any:
            """获取可选字段，缺失则使用默认值"""
            val = raw_data.get(key)
            return default if val is None else val

        def _to_bool(key: str, default: bool) -> bool:
            """兼容 TOML 布尔值与环境变量字符串"""
            val = _get(key, default)
            if isinstance(val, bool):
                return val
            clean = str(val).strip().lower()
            if clean in _TRUE_VALUES:
                return True
            if clean in _FALSE_VALUES:
                return False
            raise ConfigError(f"布尔值格式无效 '{key}': {val}")

        def _to_number(key: str, default: float, cast: type = float) -> Any:
            val = _get(key, default)
            try:
                return cast(val)
            except (TypeError, ValueError):
                raise ConfigError(f"数值格式无效 '{key}': {val}")

        port = _to_number("port", DEFAULT_PORT, int)
        if not 0 < port < 65536:
            raise ConfigError(f"端口越界: {port}")

        timeout = _to_number("timeout", DEFAULT_TIMEOUT)
        if timeout <= 0:
            raise ConfigError(f"超时时间必须为正数: {timeout}")

        initial_delay = _to_number("reconnect_initial_delay", 1.0)
        max_delay = _to_number("reconnect_max_delay", 30.0)
        multiplier = _to_number("reconnect_multiplier", 2.0)
        max_attempts = _to_number("reconnect_max_attempts", 0, int)
        if initial_delay < 0 or max_delay < initial_delay:
            raise ConfigError(
                f"重连退避参数无效: initial={initial_delay}, max={max_delay}"
            )
        if multiplier < 1:
            raise ConfigError(f"重连退避倍数必须 >= 1: {multiplier}")
        if max_attempts < 0:
            raise ConfigError(f"最大重连次数不能为负数: {max_attempts}")

        # --- 构建对象 ---
        return RconConfig(
            password=str(_req("password")),
            host=str(_get("host", DEFAULT_HOST)),
            port=port,
            timeout=timeout,
            reconnect_enabled=_to_bool("reconnect", False),
            reconnect_initial_delay=initial_delay,
            reconnect_max_delay=max_delay,
            reconnect_multiplier=multiplier,
            reconnect_max_attempts=max_attempts,
        )

    except Exception as e:
        if isinstance(e, ConfigError):
            raise
        raise ConfigError(f"配置生成失败: {e}") from e


def load_config_from_toml(file_path: Path, profile: str = "default") -> RconConfig:
    """从 TOML 文件加载配置。

    支持多层级查找策略:
    1. [profile.xxx]: 优先查找指定的 profile 块。
    2. [rcon]: 单服务器配置块。
    3. Root: 兼容根目录直接配置。

    Args:
        file_path: TOML 文件路径。
        profile: 配置预设名。默认为 "default"。

    Returns:
        RconConfig: 配置对象。

    Raises:
        ConfigError: 文件读取失败或 Profile 不存在。
    """
    return create_config_from_dict(read_toml_section(file_path, profile))


def read_toml_section(file_path: Path, profile: str = "default") -> dict[str, Any]:
    """读取 TOML 文件并返回选中的原始配置块 (未校验)。"""
    if not file_path.exists():
        raise ConfigError(f"配置文件未找到: {file_path}")

    try:
        with open(file_path, "rb") as f:
            data = tomllib.load(f)
    except Exception as e:
        raise ConfigError(f"读取 TOML 失败: {e}") from e

    if "profile" in data:
        if profile not in data["profile"]:
            raise ConfigError(f"未找到预设: [profile.{profile}]")
        return dict(data["profile"][profile])

    if "rcon" in data:
        if profile != "default":
            logger.warning(f"配置仅包含 [rcon] 节，忽略 profile='{profile}'。")
        return dict(data["rcon"])

    return dict(data)


# 字段映射表 (Config Field -> Env Suffix)
ENV_MAP = {
    "host": "HOST",
    "port": "PORT",
    "password": "PASSWORD",
    "timeout": "TIMEOUT",
    "reconnect": "RECONNECT",
    "reconnect_initial_delay": "RECONNECT_INITIAL_DELAY",
    "reconnect_max_delay": "RECONNECT_MAX_DELAY",
    "reconnect_multiplier": "RECONNECT_MULTIPLIER",
    "reconnect_max_attempts": "RECONNECT_MAX_ATTEMPTS",
}


def read_env_values(env_file: Path | None = None) -> dict[str, str]:
    """收集所有 `RCON_` 前缀的环境变量 (未校验)。

    如果提供了 env_file，先用 python-dotenv 载入；已存在的环境变量优先。
    """
    if env_file is not None:
        if not env_file.exists():
            raise ConfigError(f".env 文件未找到: {env_file}")
        load_dotenv(dotenv_path=env_file, override=False)

    raw_data = {}
    for cfg_key, env_suffix in ENV_MAP.items():
        val = os.environ.get(f"RCON_{env_suffix}")
        if val is not None:
            raw_data[cfg_key] = val
    return raw_data


def load_config_from_env(env_file: Path | None = None) -> RconConfig:
    """从环境变量加载配置 (Docker/Cloud Friendly)。

    自动读取所有以 `RCON_` 开头的环境变量，并映射到配置字段。
    例如: `RCON_PASSWORD` -> `password`。

    Args:
        env_file: 可选的 .env 文件路径。

    Returns:
        RconConfig: 配置对象。

    Raises:
        ConfigError: 未检测到任何相关环境变量。
    """
    raw_data = read_env_values(env_file)
    if not raw_data:
        raise ConfigError("未检测到 RCON_ 前缀的环境变量")

    return create_config_from_dict(raw_data)
