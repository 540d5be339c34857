# tests/test_cli.py
import os

import pytest

from rcon_core import RconConfig, cli
from rcon_core.exceptions import ConfigError


@pytest.fixture
def isolated(monkeypatch, tmp_path):
    """切换到空目录并清除 RCON_ 环境变量，避免读到本地 .env。"""
    env = {k: v for k, v in os.environ.items() if not k.startswith("RCON_")}
    monkeypatch.setattr(os, "environ", env)
    monkeypatch.chdir(tmp_path)
    return env


def test_parser_defaults():
    args = cli.build_parser().parse_args(["list"])

    assert args.command == ["list"]
    assert args.reconnect is None
    assert args.profile == "default"
    assert not args.interactive


def test_resolve_config_precedence(isolated, tmp_path):
    isolated.update(
        {"RCON_HOST": "env-host", "RCON_PASSWORD": "env-pass", "RCON_PORT": "1111"}
    )
    toml_path = tmp_path / "rcon.toml"
    toml_path.write_text('[rcon]\nhost = "toml-host"\nport = 2222\n', encoding="utf-8")

    args = cli.build_parser().parse_args(["-c", str(toml_path), "-p", "3333"])
    config = cli.resolve_config(args)

    assert config.password == "env-pass"  # 仅环境变量提供
    assert config.host == "toml-host"  # TOML 覆盖环境变量
    assert config.port == 3333  # 命令行覆盖 TOML
    assert config.reconnect_enabled is False


def test_resolve_config_reads_local_dotenv(isolated, tmp_path):
    (tmp_path / ".env").write_text("RCON_PASSWORD=dotenv\n", encoding="utf-8")

    config = cli.resolve_config(cli.build_parser().parse_args(["--reconnect"]))

    assert config.password == "dotenv"
    assert config.reconnect_enabled is True


def test_resolve_config_without_password(isolated):
    with pytest.raises(ConfigError):
        cli.resolve_config(cli.build_parser().parse_args(["list"]))


def test_main_reports_config_error(isolated, capsys):
    assert cli.main(["list"]) == 1
    assert "配置错误" in capsys.readouterr().err


def test_main_unreachable_server(isolated, unused_port, capsys):
    code = cli.main(["-p", str(unused_port), "-P", "x", "-t", "1", "list"])

    assert code == 1
    assert "连接失败" in capsys.readouterr().err


@pytest.mark.asyncio
async def test_run_single_command(rcon_server, client_config, capsys):
    rcon_server.responses["list"] = ["There are 0 players online"]
    args = cli.build_parser().parse_args(["list"])

    assert await cli._run(args, client_config) == 0

    assert "There are 0 players online" in capsys.readouterr().out
    assert rcon_server.exec_frames()[0].payload == "list"


@pytest.mark.asyncio
async def test_run_joins_command_words(rcon_server, client_config):
    args = cli.build_parser().parse_args(["say", "hello", "world"])

    await cli._run(args, client_config)

    assert rcon_server.exec_frames()[0].payload == "say hello world"


@pytest.mark.asyncio
async def test_interactive_session(rcon_server, client_config, monkeypatch, capsys):
    rcon_server.responses["list"] = ["nobody here"]
    lines = iter(["", "help", "status", "list", "quit"])
    monkeypatch.setattr("builtins.input", lambda prompt="": next(lines))
    args = cli.build_parser().parse_args(["-i"])

    assert await cli._run(args, client_config) == 0

    out = capsys.readouterr().out
    assert "交互模式内置命令" in out
    assert "AUTHENTICATED" in out
    assert "nobody here" in out
    assert [f.payload for f in rcon_server.exec_frames()] == ["list", ""]


@pytest.mark.asyncio
async def test_interactive_stops_on_eof(rcon_server, client_config, monkeypatch):
    def _eof(prompt=""):
        raise EOFError

    monkeypatch.setattr("builtins.input", _eof)
    args = cli.build_parser().parse_args([])

    assert await cli._run(args, client_config) == 0
    assert rcon_server.exec_frames() == []


@pytest.mark.asyncio
async def test_ping_mode(rcon_server, client_config, capsys):
    args = cli.build_parser().parse_args(["--ping", "3", "--interval", "0.01"])

    assert await cli._run(args, client_config) == 0

    out = capsys.readouterr().out
    assert "Ping 1:" in out and "Ping 3:" in out
    assert "3/3 成功 (100.0%)" in out
    assert [f.payload for f in rcon_server.exec_frames() if f.payload] == ["list"] * 3


@pytest.mark.asyncio
async def test_ping_mode_reports_failures(rcon_server, capsys):
    rcon_server.stalled = True
    config = RconConfig(
        password="secret", host="127.0.0.1", port=rcon_server.port, timeout=0.1
    )
    args = cli.build_parser().parse_args(["--ping", "2", "--interval", "0.01"])

    assert await cli._run(args, config) == 1

    captured = capsys.readouterr()
    assert "0/2 成功 (0.0%)" in captured.out
    assert "Ping 1: 失败" in captured.err


@pytest.mark.parametrize("argv", [["--ping", "0"], ["--ping", "2", "--interval", "0"]])
def test_ping_arguments_are_validated(isolated, argv):
    with pytest.raises(SystemExit):
        cli.main(argv)


@pytest.mark.asyncio
async def test_info_mode(rcon_server, client_config, capsys):
    rcon_server.responses["list"] = ["There are 0 players online"]
    rcon_server.responses["version"] = ["1.20.4"]
    args = cli.build_parser().parse_args(["--info"])

    assert await cli._run(args, client_config) == 0

    out = capsys.readouterr().out
    assert "=== LIST ===" in out
    assert "=== VERSION ===\n1.20.4" in out
    assert "=== SEED ===" not in out


@pytest.mark.asyncio
async def test_info_detailed(rcon_server, client_config, capsys):
    args = cli.build_parser().parse_args(["--info", "--detailed"])

    await cli._run(args, client_config)

    sent = [f.payload for f in rcon_server.exec_frames() if f.payload]
    assert sent == list(cli.DETAILED_INFO_COMMANDS)


@pytest.mark.asyncio
async def test_players_mode(rcon_server, client_config, capsys):
    rcon_server.responses["list uuids"] = ["Steve (069a79f4-44e9-4726-a5be-fca90e38aaf5)"]
    args = cli.build_parser().parse_args(["--players"])

    assert await cli._run(args, client_config) == 0
    assert "Steve" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_players_falls_back_to_list(rcon_server, capsys):
    rcon_server.responses["list"] = ["There are 1 players online: Alex"]
    # uuids 请求超时；桩服务器串行处理，迟到的响应会先于 list 的响应到达并被丢弃
    rcon_server.delays["list uuids"] = 0.7
    config = RconConfig(
        password="secret", host="127.0.0.1", port=rcon_server.port, timeout=0.5
    )
    args = cli.build_parser().parse_args(["--players"])

    assert await cli._run(args, config) == 0
    assert "Alex" in capsys.readouterr().out
