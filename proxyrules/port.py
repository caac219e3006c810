"""Local ports that are held open so no other process can take them."""

from __future__ import annotations

import enum
import ipaddress
import json
import socket
from dataclasses import dataclass
from typing import Union


class PortFamily(str, enum.Enum):
    """Address family a local port is bound to; ANY leaves it open."""

    ANY = ""
    IPV4 = "4"
    IPV6 = "6"

    def __str__(self) -> str:
        return self.value


class PortProtocol(str, enum.Enum):
    TCP = "TCP"
    UDP = "UDP"

    def __str__(self) -> str:
        return self.value


def _join_host_port(host: str, port: int) -> str:
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


@dataclass(frozen=True)
class LocalPort:
    """An IP address and port pair with a protocol and optional family.

    An empty ``ip`` binds to every local address; port 0 lets the system pick.
    """

    description: str
    ip: str
    ip_family: PortFamily
    port: int
    protocol: PortProtocol

    @classmethod
    def create(
        cls,
        description: str,
        ip: str,
        ip_family: Union[PortFamily, str],
        port: int,
        protocol: Union[PortProtocol, str],
    ) -> "LocalPort":
        """Build a port, checking that protocol, family and IP agree."""
        try:
            checked_protocol = PortProtocol(protocol)
        except ValueError:
            raise ValueError(f"Unsupported protocol {protocol}") from None
        try:
            checked_family = PortFamily(ip_family)
        except ValueError:
            raise ValueError(f"Invalid IP family {ip_family}") from None
        if ip:
            try:
                parsed = ipaddress.ip_address(ip)
            except ValueError:
                raise ValueError(f"invalid ip address {ip}") from None
            is_v4 = parsed.version == 4 or (
                isinstance(parsed, ipaddress.IPv6Address)
                and parsed.ipv4_mapped is not None
            )
            if (not is_v4 and checked_family is PortFamily.IPV4) or (
                is_v4 and checked_family is PortFamily.IPV6
            ):
                raise ValueError(
                    f"ip address and family mismatch {ip}, {checked_family}"
                )
        return cls(description, ip, checked_family, port, checked_protocol)

    def __str__(self) -> str:
        ip_port = _join_host_port(self.ip, self.port)
        quoted = json.dumps(self.description, ensure_ascii=False)
        return f"{quoted} ({ip_port}/{self.protocol.value.lower()}{self.ip_family.value})"


def _bind_target(local_port: LocalPort) -> tuple[socket.AddressFamily, str, bool]:
    """Socket family, host to bind and whether the socket should be dual-stack."""
    if local_port.ip:
        ip = ipaddress.ip_address(local_port.ip)
        if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
            return socket.AF_INET, str(ip.ipv4_mapped), False
        if ip.version == 4:
            return socket.AF_INET, str(ip), False
        return socket.AF_INET6, str(ip), False
    if local_port.ip_family is PortFamily.IPV4:
        return socket.AF_INET, "0.0.0.0", False
    if local_port.ip_family is PortFamily.IPV6:
        return socket.AF_INET6, "::", False
    if socket.has_ipv6:
        return socket.AF_INET6, "::", True
    return socket.AF_INET, "0.0.0.0", False


def open_local_port(local_port: LocalPort) -> socket.socket:
    """Bind (and for TCP, listen on) the port; the returned socket holds it."""
    if local_port.protocol is PortProtocol.TCP:
        kind = socket.SOCK_STREAM
    elif local_port.protocol is PortProtocol.UDP:
        kind = socket.SOCK_DGRAM
    else:
        raise ValueError(f"unknown protocol {local_port.protocol!r}")

    family, host, dual_stack = _bind_target(local_port)
    sock = socket.socket(family, kind)
    try:
        if kind == socket.SOCK_STREAM and hasattr(socket, "SO_REUSEADDR") and (
            socket.SO_REUSEADDR and not hasattr(socket, "SO_EXCLUSIVEADDRUSE")
        ):
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        if family == socket.AF_INET6 and hasattr(socket, "IPV6_V6ONLY"):
            sock.setsockopt(
                socket.IPPROTO_IPV6, socket.IPV6_V6ONLY, 0 if dual_stack else 1
            )
        sock.bind((host, local_port.port))
        if kind == socket.SOCK_STREAM:
            sock.listen()
    except BaseException:
        sock.close()
        raise
    return sock


class ListenPortOpener:
    """Opens ports by binding and, for TCP, listening on them."""

    def open_local_port(self, local_port: LocalPort) -> socket.socket:
        return open_local_port(local_port)