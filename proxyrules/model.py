"""Services, endpoints and port mappings as seen by a node."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Iterable, Optional

from .ipset import IPAddress, IPSet


class Protocol(enum.IntEnum):
    UNKNOWN = 0
    TCP = 1
    UDP = 2
    SCTP = 3

    def __str__(self) -> str:
        return self.name


def parse_protocol(name: str) -> Protocol:
    """Return the protocol with this name, or UNKNOWN."""
    try:
        return Protocol[name]
    except KeyError:
        return Protocol.UNKNOWN


@dataclass
class PortMapping:
    name: str = ""
    node_port: int = 0
    port: int = 0
    protocol: Protocol = Protocol.UNKNOWN
    target_port: int = 0
    target_port_name: str = ""

    def src_ports(self) -> list[int]:
        """The non-zero service port and node port, in that order."""
        return [p for p in (self.port, self.node_port) if p != 0]


@dataclass
class Endpoint:
    ips: Optional[IPSet] = None
    local: bool = False
    port_overrides: dict[str, int] = field(default_factory=dict)

    def add_address(self, address: str) -> Optional[IPAddress]:
        """Add an address, returning it parsed, or None if it cannot be parsed."""
        if self.ips is None:
            self.ips = IPSet()
        return self.ips.add(address)

    def port_mapping(self, port: PortMapping) -> int:
        """Target port for this endpoint, honouring per-port overrides."""
        if port.target_port_name:
            # Overrides are keyed by the service port name, not the target port name.
            return self.port_overrides.get(port.name, port.target_port)
        return port.target_port

    def port_mappings(self, ports: Iterable[PortMapping]) -> dict[int, int]:
        return {port.port: self.port_mapping(port) for port in ports}


@dataclass
class ClientIPAffinity:
    timeout_seconds: int = 0


@dataclass
class IPFilter:
    target_ips: Optional[IPSet] = None
    source_ranges: list[str] = field(default_factory=list)


@dataclass
class ServiceIPs:
    cluster_ips: IPSet = field(default_factory=IPSet)
    external_ips: IPSet = field(default_factory=IPSet)
    load_balancer_ips: IPSet = field(default_factory=IPSet)

    def all(self) -> IPSet:
        result = IPSet()
        result.add_set(self.cluster_ips)
        result.add_set(self.external_ips)
        result.add_set(self.load_balancer_ips)
        return result

    def all_ingress(self) -> IPSet:
        result = IPSet()
        result.add_set(self.external_ips)
        result.add_set(self.load_balancer_ips)
        return result


@dataclass
class Service:
    namespace: str = ""
    name: str = ""
    type: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    ips: ServiceIPs = field(default_factory=ServiceIPs)
    ports: list[PortMapping] = field(default_factory=list)
    external_traffic_to_local: bool = False
    session_affinity: Optional[ClientIPAffinity] = None
    ip_filters: list[IPFilter] = field(default_factory=list)

    def namespaced_name(self) -> str:
        return f"{self.namespace}/{self.name}"