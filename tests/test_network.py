# tests/test_network.py
from unittest.mock import MagicMock

import pytest

from rcon_core.exceptions import ConnectionFailedError, NetworkError
from rcon_core.network import NetworkClient, RconStreamProtocol


@pytest.fixture
def net_client():
    return NetworkClient(on_data=MagicMock(), on_lost=MagicMock())


def _attach(client: NetworkClient) -> MagicMock:
    """模拟 connect() 成功后的内部状态"""
    transport = MagicMock()
    transport.is_closing.return_value = False
    client.transport = transport
    client.protocol = RconStreamProtocol(client)
    return transport


def test_write_without_transport(net_client):
    with pytest.raises(NetworkError, match="已关闭"):
        net_client.write(b"data")


def test_write_forwards_to_transport(net_client):
    transport = _attach(net_client)

    net_client.write(b"data")

    transport.write.assert_called_once_with(b"data")
    assert net_client.is_connected


def test_write_wraps_transport_errors(net_client):
    transport = _attach(net_client)
    transport.write.side_effect = RuntimeError("boom")

    with pytest.raises(NetworkError, match="发送失败"):
        net_client.write(b"data")


def test_data_is_forwarded_from_current_protocol(net_client):
    _attach(net_client)

    net_client.protocol.data_received(b"\x01\x02")

    net_client.on_data.assert_called_once_with(b"\x01\x02")


def test_stale_protocol_callbacks_are_ignored(net_client):
    _attach(net_client)
    stale = RconStreamProtocol(net_client)

    stale.data_received(b"old")
    stale.connection_lost(None)

    net_client.on_data.assert_not_called()
    net_client.on_lost.assert_not_called()
    assert net_client.is_connected


def test_connection_lost_detaches_and_notifies(net_client):
    _attach(net_client)
    error = ConnectionResetError("reset")

    net_client.protocol.connection_lost(error)

    net_client.on_lost.assert_called_once_with(error)
    assert not net_client.is_connected
    assert net_client.protocol is None


@pytest.mark.asyncio
async def test_close_does_not_report_loss(net_client):
    transport = _attach(net_client)
    protocol = net_client.protocol

    await net_client.close()
    # close 之后 Transport 迟到的 connection_lost 属于旧连接
    protocol.connection_lost(None)

    transport.close.assert_called_once()
    net_client.on_lost.assert_not_called()


def test_abort(net_client):
    transport = _attach(net_client)

    net_client.abort()

    transport.abort.assert_called_once()
    assert net_client.transport is None


@pytest.mark.asyncio
async def test_connect_refused(net_client, unused_port):
    with pytest.raises(ConnectionFailedError, match="连接失败"):
        await net_client.connect("127.0.0.1", unused_port, timeout=1.0)
    assert not net_client.is_connected
