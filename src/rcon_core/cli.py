#!/usr/bin/env python
# src/rcon_core/cli.py
"""
rcon-core 命令行入口。

配置优先级: 命令行参数 > TOML 配置文件 > 环境变量 (.env) > 默认值。

用法示例:
    rcon-core -H 127.0.0.1 -P secret list
    rcon-core --config config.toml --profile survival -i
    rcon-core --ping 5 --interval 0.5
    rcon-core --info --detailed
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any

from . import __version__
from .config import RconConfig, create_config_from_dict, read_env_values, read_toml_section
from .core import RconClient
from .exceptions import (
    AuthenticationError,
    CommandTimeoutError,
    ConfigError,
    RconError,
)
from .state import ClientEvent

logger = logging.getLogger("rcon_core.cli")

EXIT_COMMANDS = ("quit", "exit")
INFO_COMMANDS = ("list", "version")
DETAILED_INFO_COMMANDS = INFO_COMMANDS + ("seed", "difficulty", "gamerule")

HELP_TEXT = """\
交互模式内置命令:
  help        显示本帮助
  status      显示连接与认证状态
  reconnect   断开并重新连接、认证
  quit/exit   退出
其余输入将作为 RCON 命令发送给服务器。"""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rcon-core",
        description="RCON (Remote Console) 命令行客户端",
    )
    parser.add_argument("-H", "--host", help="服务器地址 (默认 127.0.0.1)")
    parser.add_argument("-p", "--port", type=int, help="服务器端口 (默认 25575)")
    parser.add_argument("-P", "--password", help="RCON 密码")
    parser.add_argument("-t", "--timeout", type=float, help="单次操作超时秒数 (默认 5)")
    parser.add_argument("-c", "--config", type=Path, help="TOML 配置文件路径")
    parser.add_argument("--profile", default="default", help="TOML 中的预设名")
    parser.add_argument("--env-file", type=Path, help=".env 文件路径")
    parser.add_argument(
        "--reconnect", action="store_true", default=None, help="断线后自动重连"
    )
    parser.add_argument("-i", "--interactive", action="store_true", help="进入交互模式")
    parser.add_argument("--prompt", default="rcon> ", help="交互模式提示符")
    parser.add_argument(
        "--ping", type=int, metavar="COUNT", help="连续发送 COUNT 次探测并输出统计"
    )
    parser.add_argument(
        "--interval", type=float, default=1.0, help="两次探测之间的间隔秒数 (默认 1)"
    )
    parser.add_argument("--info", action="store_true", help="查询服务器基本信息")
    parser.add_argument(
        "--detailed", action="store_true", help="配合 --info 查询更多服务器信息"
    )
    parser.add_argument("--players", action="store_true", help="列出在线玩家")
    parser.add_argument("-v", "--verbose", action="store_true", help="输出调试日志")
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    parser.add_argument("command", nargs="*", help="要执行的命令 (例如: list)")
    return parser


def resolve_config(args: argparse.Namespace) -> RconConfig:
    """按优先级合并环境变量、TOML 与命令行参数。"""
    env_file = args.env_file
    if env_file is None and Path(".env").exists():
        env_file = Path(".env")

    raw: dict[str, Any] = dict(read_env_values(env_file))

    if args.config is not None:
        raw.update(read_toml_section(args.config, args.profile))

    overrides = {
        "host": args.host,
        "port": args.port,
        "password": args.password,
        "timeout": args.timeout,
        "reconnect": args.reconnect,
    }
    raw.update({k: v for k, v in overrides.items() if v is not None})

    return create_config_from_dict(raw)


def on_event(event: ClientEvent, msg: str) -> None:
    icon_map = {
        ClientEvent.CONNECTED: "🔗",
        ClientEvent.AUTHENTICATED: "✅",
        ClientEvent.DISCONNECTED: "🔌",
        ClientEvent.AUTH_FAILED: "⛔",
        ClientEvent.ERROR: "❌",
    }
    logger.debug(f"{icon_map.get(event, 'ℹ️')} {event.name}: {msg}")


async def run_interactive(client: RconClient, prompt: str) -> None:
    """交互式读取-执行循环。"""
    loop = asyncio.get_running_loop()
    print("已进入交互模式，输入 help 查看帮助，quit 退出。")

    while True:
        try:
            line = await loop.run_in_executor(None, input, prompt)
        except EOFError:
            print()
            break

        line = line.strip()
        if not line:
            continue
        if line in EXIT_COMMANDS:
            break
        if line == "help":
            print(HELP_TEXT)
            continue
        if line == "status":
            state = client.state
            print(
                f"连接: {state.connection.name} | 认证: {state.auth.name}"
                + (f" | 最近错误: {state.last_error}" if state.last_error else "")
            )
            continue
        if line == "reconnect":
            try:
                await client.disconnect()
                await client.connect()
                await client.authenticate()
                print("重连成功。")
            except RconError as e:
                print(f"❌ 重连失败: {e}", file=sys.stderr)
            continue

        try:
            response = await client.send_command(line)
        except RconError as e:
            print(f"❌ {e}", file=sys.stderr)
            continue

        if response:
            print(response)


async def run_ping(client: RconClient, count: int, interval: float) -> int:
    """连续探测 count 次，输出每次耗时与汇总。

    Returns:
        int: 成功次数。
    """
    print(f"正在探测 {client.config.host}:{client.config.port}，共 {count} 次")

    successful = 0
    total_time = 0.0
    for i in range(1, count + 1):
        try:
            elapsed = await client.ping()
        except RconError as e:
            print(f"❌ Ping {i}: 失败 - {e}", file=sys.stderr)
        else:
            successful += 1
            total_time += elapsed
            print(f"Ping {i}: {elapsed * 1000:.2f}ms")

        if i < count:
            await asyncio.sleep(interval)

    success_rate = successful / count * 100
    average = total_time / successful * 1000 if successful else 0.0
    print(
        f"统计: {successful}/{count} 成功 ({success_rate:.1f}%)，平均 {average:.2f}ms"
    )
    return successful


async def run_info(client: RconClient, detailed: bool = False) -> None:
    """逐条执行信息查询命令，单条失败不影响其余命令。"""
    commands = DETAILED_INFO_COMMANDS if detailed else INFO_COMMANDS
    for command in commands:
        try:
            response = await client.send_command(command)
        except RconError as e:
            print(f"❌ 获取 {command} 失败: {e}", file=sys.stderr)
            continue
        print(f"=== {command.upper()} ===")
        print(response)
        print()


async def run_players(client: RconClient) -> None:
    """列出在线玩家，优先带 UUID 的列表。"""
    try:
        response = await client.send_command("list uuids")
    except CommandTimeoutError:
        # 不支持 uuids 参数的服务器可能直接不回复
        response = await client.send_command("list")
    print(response)


async def _run(args: argparse.Namespace, config: RconConfig) -> int:
    client = RconClient(config, event_callback=on_event)
    try:
        await client.connect()
        await client.authenticate()

        if args.ping is not None:
            successful = await run_ping(client, args.ping, args.interval)
            return 0 if successful else 1
        if args.info:
            await run_info(client, args.detailed)
            return 0
        if args.players:
            await run_players(client)
            return 0

        if args.command:
            response = await client.send_command(" ".join(args.command))
            if response:
                print(response)

        if args.interactive or not args.command:
            await run_interactive(client, args.prompt)
        return 0
    finally:
        await client.disconnect()


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.ping is not None and args.ping <= 0:
        parser.error("--ping 次数必须大于 0")
    if args.interval <= 0:
        parser.error("--interval 必须大于 0")

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - [%(levelname)s] - %(message)s",
        datefmt="%H:%M:%S",
    )

    try:
        config = resolve_config(args)
        return asyncio.run(_run(args, config))
    except ConfigError as ce:
        print(f"🔧 配置错误: {ce}", file=sys.stderr)
    except AuthenticationError as ae:
        print(f"⛔ 认证被拒绝: {ae}", file=sys.stderr)
    except RconError as e:
        print(f"❌ {e}", file=sys.stderr)
    except KeyboardInterrupt:
        print("\n🛑 收到中断信号，已退出。", file=sys.stderr)
    return 1


if __name__ == "__main__":
    sys.exit(main())
