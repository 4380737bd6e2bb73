"""
回环传输测试
"""

from unittest.mock import MagicMock

import pytest

from roomlink.errors import ChannelClosedError, TransportUnavailableError
from roomlink.loopback import LoopbackNetwork


@pytest.fixture
def net():
    return LoopbackNetwork()


def _open(net, address):
    ep = net.transport().open(address)
    opened = MagicMock()
    errors = MagicMock()
    ep.on("open", opened)
    ep.on("error", errors)
    return ep, opened, errors


class TestRegistration:
    def test_offline_raises(self):
        net = LoopbackNetwork(online=False)
        with pytest.raises(TransportUnavailableError):
            net.transport().open("a")

    def test_open_is_asynchronous(self, net):
        ep, opened, _ = _open(net, "a")
        opened.assert_not_called()
        net.flush()
        opened.assert_called_once_with("a")
        assert net.endpoint("a") is ep

    def test_duplicate_address(self, net):
        _open(net, "a")
        _, opened, errors = _open(net, "a")
        net.flush()
        opened.assert_not_called()
        errors.assert_called_once_with("unavailable-id")

    def test_destroy_releases_address(self, net):
        ep, _, _ = _open(net, "a")
        net.flush()
        ep.destroy()
        assert ep.destroyed
        assert net.endpoint("a") is None
        _, opened, _ = _open(net, "a")
        net.flush()
        opened.assert_called_once()


class TestChannels:
    def _pair(self, net):
        host, _, _ = _open(net, "host")
        client, _, client_errors = _open(net, "client")
        net.flush()
        incoming = []
        host.on("connection", incoming.append)
        channel = client.connect("host")
        net.flush()
        return host, client, channel, incoming[0], client_errors

    def test_connect_unknown_peer(self, net):
        client, _, errors = _open(net, "client")
        net.flush()
        ch = client.connect("nobody")
        net.flush()
        errors.assert_called_once_with("peer-unavailable")
        assert not ch.is_open

    def test_both_sides_open(self, net):
        _, _, out, inc, _ = self._pair(net)
        assert out.is_open and inc.is_open
        assert out.peer == "host"
        assert inc.peer == "client"

    def test_in_order_delivery(self, net):
        _, _, out, inc, _ = self._pair(net)
        got = []
        inc.on("data", got.append)
        for i in range(5):
            out.send({"n": i})
        net.flush()
        assert got == [{"n": i} for i in range(5)]

    def test_messages_are_copies(self, net):
        _, _, out, inc, _ = self._pair(net)
        got = []
        inc.on("data", got.append)
        payload = {"items": [1]}
        out.send(payload)
        payload["items"].append(2)
        net.flush()
        assert got == [{"items": [1]}]

    def test_close_propagates(self, net):
        _, _, out, inc, _ = self._pair(net)
        closed = MagicMock()
        inc.on("close", closed)
        out.close()
        net.flush()
        closed.assert_called_once()
        assert not inc.is_open
        with pytest.raises(ChannelClosedError):
            out.send({"x": 1})

    def test_send_before_open(self, net):
        client, _, _ = _open(net, "client")
        net.flush()
        ch = client.connect("host")
        with pytest.raises(ChannelClosedError):
            ch.send({"x": 1})

    def test_destroy_closes_remote_side(self, net):
        host, _, out, inc, _ = self._pair(net)
        closed = MagicMock()
        out.on("close", closed)
        host.destroy()
        net.flush()
        closed.assert_called_once()

    def test_unreachable_never_opens(self, net):
        _open(net, "host")
        client, _, errors = _open(net, "client")
        net.flush()
        net.unreachable.add("host")
        ch = client.connect("host")
        net.flush()
        assert not ch.is_open
        errors.assert_not_called()


class TestTimers:
    def test_fires_in_order(self, net):
        fired = []
        net.schedule(2.0, lambda: fired.append("b"))
        net.schedule(1.0, lambda: fired.append("a"))
        net.advance(1.5)
        assert fired == ["a"]
        net.advance(1.0)
        assert fired == ["a", "b"]
        assert net.now == 2.5

    def test_cancel(self, net):
        fired = []
        timer = net.schedule(1.0, lambda: fired.append(1))
        timer.cancel()
        net.advance(5)
        assert fired == []
        assert net.pending_timers == 0


class TestSignalling:
    def test_drop_and_reconnect(self, net):
        ep, opened, _ = _open(net, "a")
        net.flush()
        disconnected = MagicMock()
        ep.on("disconnected", disconnected)
        net.drop_signalling("a")
        net.flush()
        disconnected.assert_called_once()
        ep.reconnect()
        net.flush()
        assert opened.call_count == 2
        assert ep.reconnect_calls == 1

    def test_reconnect_while_offline(self, net):
        ep, opened, errors = _open(net, "a")
        net.flush()
        net.online = False
        ep.reconnect()
        net.flush()
        assert opened.call_count == 1
        errors.assert_called_once_with("network")
