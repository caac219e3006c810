import socket

import pytest

from proxyrules.port import (
    ListenPortOpener,
    LocalPort,
    PortFamily,
    PortProtocol,
    open_local_port,
)


def test_create_valid_port_keeps_fields():
    lp = LocalPort.create("svc", "1.2.3.4", "4", 80, "TCP")
    assert lp.ip == "1.2.3.4"
    assert lp.ip_family is PortFamily.IPV4
    assert lp.protocol is PortProtocol.TCP
    assert lp.port == 80


def test_create_rejects_unsupported_protocol():
    with pytest.raises(ValueError, match="Unsupported protocol SCTP"):
        LocalPort.create("svc", "", "", 80, "SCTP")


def test_create_rejects_invalid_family():
    with pytest.raises(ValueError, match="Invalid IP family"):
        LocalPort.create("svc", "", "5", 80, "TCP")


def test_create_rejects_invalid_ip():
    with pytest.raises(ValueError, match="invalid ip address"):
        LocalPort.create("svc", "not-an-ip", "", 80, "UDP")


@pytest.mark.parametrize(
    "ip, family",
    [("1.2.3.4", "6"), ("::1", "4")],
)
def test_create_rejects_family_mismatch(ip, family):
    with pytest.raises(ValueError, match="mismatch"):
        LocalPort.create("svc", ip, family, 80, "TCP")


def test_create_allows_any_family():
    lp = LocalPort.create("svc", "::1", "", 53, "UDP")
    assert lp.ip == "::1"
    assert lp.port == 53
    assert str(lp) == '"svc" ([::1]:53/udp)'


def test_str_ipv4():
    lp = LocalPort.create("nodePort for ns/svc", "1.2.3.4", "4", 80, "TCP")
    assert str(lp) == '"nodePort for ns/svc" (1.2.3.4:80/tcp4)'


def test_str_ipv6_brackets_host():
    lp = LocalPort.create("d", "::1", "6", 53, "UDP")
    assert str(lp) == '"d" ([::1]:53/udp6)'


def test_local_ports_are_usable_as_keys():
    a = LocalPort.create("d", "1.2.3.4", "4", 80, "TCP")
    b = LocalPort.create("d", "1.2.3.4", "4", 80, "TCP")
    assert {a: 1}[b] == 1


def test_open_tcp_port_on_loopback():
    lp = LocalPort.create("test", "127.0.0.1", "4", 0, "TCP")
    sock = open_local_port(lp)
    try:
        assert sock.type == socket.SOCK_STREAM
        assert sock.getsockname()[0] == "127.0.0.1"
        assert sock.getsockname()[1] > 0
    finally:
        sock.close()


def test_open_udp_port_via_opener():
    lp = LocalPort.create("test", "127.0.0.1", "4", 0, "UDP")
    sock = ListenPortOpener().open_local_port(lp)
    try:
        assert sock.type == socket.SOCK_DGRAM
        assert sock.getsockname()[0] == "127.0.0.1"
    finally:
        sock.close()


def test_open_port_in_use_fails():
    first = open_local_port(LocalPort.create("a", "127.0.0.1", "4", 0, "TCP"))
    try:
        port = first.getsockname()[1]
        with pytest.raises(OSError):
            open_local_port(LocalPort.create("b", "127.0.0.1", "4", port, "TCP"))
    finally:
        first.close()