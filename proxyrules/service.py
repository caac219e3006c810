"""Per-port service information and tracking of service changes."""

from __future__ import annotations

import ipaddress
import logging
from dataclasses import dataclass, field, fields
from typing import Callable, Iterable, Optional, Union

from .chains import (
    service_firewall_chain_name,
    service_lb_chain_name,
    service_port_chain_name,
)
from .ipset import IPSet
from .model import ClientIPAffinity, IPFilter, PortMapping, Protocol, Service
from .naming import NamespacedName, ServicePortName
from .netutil import (
    IPFamily,
    get_cluster_ip_by_family,
    map_ips_by_ip_family,
    other_ip_family,
    requests_only_local_traffic,
)

log = logging.getLogger(__name__)

TOPOLOGY_AWARE_HINTS_ANNOTATION = "service.kubernetes.io/topology-aware-hints"

_IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


def _parse_ip(address: str) -> Optional[_IPAddress]:
    try:
        return ipaddress.ip_address(address)
    except ValueError:
        return None


@dataclass(frozen=True)
class SessionAffinity:
    """Session affinity of a service; ``client_ip`` is None when there is none."""

    client_ip: Optional[ClientIPAffinity] = None


@dataclass
class BaseServiceInfo:
    """What the proxy needs to know about one port of a service."""

    cluster_ip: Optional[_IPAddress] = None
    port: int = 0
    protocol: Protocol = Protocol.UNKNOWN
    node_port: int = 0
    load_balancer_ips: list[str] = field(default_factory=list)
    session_affinity: SessionAffinity = field(default_factory=SessionAffinity)
    sticky_max_age_seconds: int = 0
    external_ips: list[str] = field(default_factory=list)
    load_balancer_source_ranges: list[str] = field(default_factory=list)
    health_check_node_port: int = 0
    node_local_external: bool = False
    node_local_internal: bool = False
    internal_traffic_policy: Optional[str] = None
    hints_annotation: str = ""
    target_port: int = 0
    target_port_name: str = ""
    port_name: str = ""

    def __str__(self) -> str:
        ip = "<nil>" if self.cluster_ip is None else str(self.cluster_ip)
        return f"{ip}:{self.port}/{self.protocol}"


@dataclass
class ServiceInfo(BaseServiceInfo):
    """Service port information with its chain names precomputed."""

    service_name_string: str = ""
    service_port_chain_name: str = ""
    service_firewall_chain_name: str = ""
    service_lb_chain_name: str = ""


ServiceMap = dict[ServicePortName, BaseServiceInfo]
MakeServiceInfo = Callable[[PortMapping, Service, BaseServiceInfo], BaseServiceInfo]


def get_session_affinity(affinity: object) -> SessionAffinity:
    """Client-IP affinity if ``affinity`` is one, else no affinity."""
    if isinstance(affinity, ClientIPAffinity):
        return SessionAffinity(client_ip=affinity)
    return SessionAffinity()


def get_load_balancer_ips(ips: Optional[IPSet], ip_family: IPFamily) -> list[str]:
    """The load balancer IPs of the given family."""
    if ips is None:
        return []
    if ip_family == IPFamily.IPV4:
        return list(ips.v4)
    return list(ips.v6)


def get_load_balancer_source_ranges(filters: Iterable[IPFilter]) -> list[str]:
    """Every source range of every filter, in order."""
    return [source for f in filters for source in f.source_ranges]


def new_service_info(
    port: PortMapping, service: Service, base_info: BaseServiceInfo
) -> ServiceInfo:
    """Extend ``base_info`` with the service name string and chain names."""
    values = {f.name: getattr(base_info, f.name) for f in fields(BaseServiceInfo)}
    port_name = ServicePortName(
        NamespacedName(namespace=service.namespace, name=service.name),
        port.name,
        base_info.protocol,
    )
    name = str(port_name)
    protocol = str(base_info.protocol).lower()
    return ServiceInfo(
        **values,
        service_name_string=name,
        service_port_chain_name=service_port_chain_name(name, protocol),
        service_firewall_chain_name=service_firewall_chain_name(name, protocol),
        service_lb_chain_name=service_lb_chain_name(name, protocol),
    )


def is_service_ip_set(service: Service) -> bool:
    """True if the service has at least one cluster IP."""
    cluster_ips = service.ips.cluster_ips
    return bool(cluster_ips.v4) or bool(cluster_ips.v6)


class ServiceChangeTracker:
    """Uncommitted service changes for one address family.

    ``items`` maps each changed service to its new port map, or to None when
    the service was deleted.
    """

    def __init__(
        self,
        make_service_info: Optional[MakeServiceInfo] = None,
        ip_family: IPFamily = IPFamily.IPV4,
    ) -> None:
        self.items: dict[NamespacedName, Optional[ServiceMap]] = {}
        self.make_service_info = make_service_info
        self.ip_family = ip_family

    def new_base_service_info(
        self, port: PortMapping, service: Service
    ) -> BaseServiceInfo:
        """Build the base information for one port of ``service``."""
        cluster_ip = get_cluster_ip_by_family(self.ip_family, service)
        by_family = map_ips_by_ip_family(service.ips.external_ips)
        info = BaseServiceInfo(
            cluster_ip=_parse_ip(cluster_ip) if cluster_ip else None,
            port=port.port,
            port_name=port.name,
            target_port=port.target_port,
            target_port_name=port.target_port_name,
            protocol=port.protocol,
            node_port=port.node_port,
            node_local_external=requests_only_local_traffic(service),
            node_local_internal=False,
            hints_annotation=service.annotations.get(TOPOLOGY_AWARE_HINTS_ANNOTATION, ""),
            load_balancer_source_ranges=get_load_balancer_source_ranges(service.ip_filters),
            load_balancer_ips=get_load_balancer_ips(
                service.ips.load_balancer_ips, self.ip_family
            ),
            session_affinity=get_session_affinity(service.session_affinity),
            external_ips=list(by_family.get(self.ip_family, [])),
        )
        ignored = by_family.get(other_ip_family(self.ip_family), [])
        if ignored:
            log.debug(
                "service change tracker(%s) ignored the following external IPs(%s) "
                "for service %s/%s as they don't match IPFamily",
                self.ip_family,
                ",".join(ignored),
                service.namespace,
                service.name,
            )
        return info

    def update(self, service: Optional[Service]) -> bool:
        """Record the current state of ``service``; True if changes are pending."""
        if service is None:
            return False
        name = NamespacedName(namespace=service.namespace, name=service.name)
        change = self.service_to_service_map(service) or {}
        self.items[name] = change
        log.info("Service %s updated: %d ports", name, len(change))
        return bool(self.items)

    def delete(self, namespace: str, name: str) -> bool:
        """Record the deletion of a service; True if changes are pending."""
        key = NamespacedName(namespace=namespace, name=name)
        self.items[key] = None
        log.info("Service %s updated for delete", key)
        return bool(self.items)

    def service_to_service_map(self, service: Optional[Service]) -> Optional[ServiceMap]:
        """Port map of ``service``, or None if it has no cluster IP of this family."""
        if service is None:
            return None
        if not get_cluster_ip_by_family(self.ip_family, service):
            return None
        name = NamespacedName(namespace=service.namespace, name=service.name)
        result: ServiceMap = {}
        for port in service.ports:
            port_name = ServicePortName(name, port.name, port.protocol)
            base = self.new_base_service_info(port, service)
            if self.make_service_info is not None:
                result[port_name] = self.make_service_info(port, service, base)
            else:
                result[port_name] = base
        return result


@dataclass
class UpdateServiceMapResult:
    hc_service_node_ports: dict[NamespacedName, int] = field(default_factory=dict)
    udp_stale_cluster_ip: set[str] = field(default_factory=set)


class ServicesSnapshot(dict):
    """Port maps of every known service, keyed by namespaced name."""

    def update(self, changes: ServiceChangeTracker) -> UpdateServiceMapResult:  # type: ignore[override]
        """Apply and clear the pending changes; report health check node ports."""
        result = UpdateServiceMapResult()
        for name, change in changes.items.items():
            self.merge(name, change, result.udp_stale_cluster_ip)
        changes.items = {}

        for name, ports in self.items():
            for info in ports.values():
                if not isinstance(info, ServiceInfo):
                    log.error("Failed to cast serviceInfo svcName=%s", name)
                    continue
                if info.health_check_node_port != 0:
                    result.hc_service_node_ports[name] = info.health_check_node_port
        return result

    def merge(
        self,
        service_name: NamespacedName,
        change: Optional[ServiceMap],
        udp_stale_cluster_ips: set[str],
    ) -> None:
        """Store ``change``; None deletes the service, noting its UDP cluster IPs."""
        if change is None:
            for info in self.get(service_name, {}).values():
                if info.protocol == Protocol.UDP and info.cluster_ip is not None:
                    udp_stale_cluster_ips.add(str(info.cluster_ip))
            self.pop(service_name, None)
            return
        self[service_name] = change