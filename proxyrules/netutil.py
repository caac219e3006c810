"""Address-family helpers, rule line formatting and node address discovery."""

from __future__ import annotations

import enum
import ipaddress
import logging
import socket
from typing import Iterable, Mapping, Optional, Union

import psutil

from .ipset import IPSet
from .model import Service

log = logging.getLogger(__name__)

IPV4_ZERO_CIDR = "0.0.0.0/0"
IPV6_ZERO_CIDR = "::/0"

_IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


class IPFamily(str, enum.Enum):
    IPV4 = "IPv4"
    IPV6 = "IPv6"

    def __str__(self) -> str:
        return self.value


class AddressNotAllowedError(ValueError):
    """The address could not be parsed or is not allowed."""

    def __init__(self, message: str = "address not allowed") -> None:
        super().__init__(message)


def _parse_ip(address: str) -> Optional[_IPAddress]:
    try:
        ip = ipaddress.ip_address(address)
    except ValueError:
        return None
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        return ip.ipv4_mapped
    return ip


def _prefix_length(address: _IPAddress, netmask: Optional[str]) -> int:
    if not netmask:
        return address.max_prefixlen
    try:
        mask = ipaddress.ip_address(netmask.split("%", 1)[0])
    except ValueError:
        return address.max_prefixlen
    return bin(int(mask)).count("1")


class NetworkInterfacer:
    """Lists host interfaces and their addresses; subclass to substitute."""

    def interfaces(self) -> list[str]:
        """Names of the host's network interfaces."""
        return list(psutil.net_if_addrs())

    def addrs(self, interface: str) -> list[Optional[str]]:
        """Addresses of ``interface`` in ``ip/prefix`` form."""
        result: list[Optional[str]] = []
        for entry in psutil.net_if_addrs().get(interface, []):
            if entry.family not in (socket.AF_INET, socket.AF_INET6):
                continue
            ip = ipaddress.ip_address(entry.address.split("%", 1)[0])
            result.append(f"{ip}/{_prefix_length(ip, entry.netmask)}")
        return result


def is_zero_cidr(cidr: str) -> bool:
    return cidr in (IPV4_ZERO_CIDR, IPV6_ZERO_CIDR)


def format_line(*args: str) -> str:
    """Join words with spaces and end with a newline; nothing for no words."""
    if not args:
        return ""
    return " ".join(args) + "\n"


def format_rule_line(chain_name: str, *args: str) -> str:
    """An ``-A chain ...`` rule line, or nothing when there are no words."""
    if not args:
        return ""
    return f"-A {chain_name} " + format_line(*args)


def revert_ports(replacement_ports: Mapping, original_ports: Mapping) -> None:
    """Close the ports opened in this sync, leaving ones held before it."""
    for local_port, closeable in replacement_ports.items():
        if original_ports.get(local_port) is None:
            log.info("Closing local port %s", local_port)
            if closeable is not None:
                closeable.close()


def get_local_addrs() -> list[_IPAddress]:
    """Every IP address configured on the local system."""
    addresses: list[_IPAddress] = []
    for entries in psutil.net_if_addrs().values():
        for entry in entries:
            if entry.family not in (socket.AF_INET, socket.AF_INET6):
                continue
            addresses.append(ipaddress.ip_address(entry.address.split("%", 1)[0]))
    return addresses


def get_local_addr_set() -> set[_IPAddress]:
    """Local addresses as a set; empty if they cannot be read."""
    try:
        addresses = get_local_addrs()
    except (OSError, ValueError) as exc:
        log.error("Failed to get local addresses assuming no local IPs: %s", exc)
        return set()
    if not addresses:
        log.info("No local addresses were found")
    return set(addresses)


def get_node_addresses(cidrs: list[str], network: NetworkInterfacer) -> set[str]:
    """Node IPs matching ``cidrs``, collapsed by any zero CIDR among them.

    No CIDRs means both zero CIDRs. Raises ``LookupError`` if nothing matches.
    """
    unique: set[str] = set()
    if not cidrs:
        return {IPV4_ZERO_CIDR, IPV6_ZERO_CIDR}

    unique.update(cidr for cidr in cidrs if is_zero_cidr(cidr))

    try:
        interfaces = network.interfaces()
    except OSError as exc:
        raise OSError(f"error listing all interfaces from host, error: {exc}") from exc

    for cidr in cidrs:
        if is_zero_cidr(cidr):
            continue
        ip_net = ipaddress.ip_network(cidr, strict=False)
        for interface in interfaces:
            try:
                addrs = network.addrs(interface)
            except OSError as exc:
                raise OSError(
                    f"error getting address from interface {interface}, error: {exc}"
                ) from exc
            for addr in addrs:
                if addr is None:
                    continue
                try:
                    ip = ipaddress.ip_interface(addr).ip
                except ValueError as exc:
                    raise ValueError(
                        f"error parsing CIDR for interface {interface}, error: {exc}"
                    ) from exc
                if ip not in ip_net:
                    continue
                if ip.version == 6 and IPV6_ZERO_CIDR not in unique:
                    unique.add(str(ip))
                if ip.version == 4 and IPV4_ZERO_CIDR not in unique:
                    unique.add(str(ip))

    if not unique:
        raise LookupError(f"no addresses found for cidrs {cidrs}")
    return unique


def get_cluster_ip_by_family(ip_family: IPFamily, service: Service) -> str:
    """The service's first cluster IP of the given family, or ''."""
    cluster_ips = service.ips.cluster_ips
    if ip_family == IPFamily.IPV4 and cluster_ips.v4:
        return cluster_ips.v4[0]
    if ip_family == IPFamily.IPV6 and cluster_ips.v6:
        return cluster_ips.v6[0]
    return ""


def requests_only_local_traffic(service: Service) -> bool:
    """True for LoadBalancer or NodePort services asking for local-only traffic."""
    if service.type not in ("LoadBalancer", "NodePort"):
        return False
    return service.external_traffic_to_local


def map_ips_by_ip_family(ips: IPSet) -> dict[IPFamily, list[str]]:
    return {IPFamily.IPV4: list(ips.v4), IPFamily.IPV6: list(ips.v6)}


def ip_family_from_ip(address: str) -> IPFamily:
    ip = _parse_ip(address)
    if ip is None:
        raise AddressNotAllowedError()
    return IPFamily.IPV6 if ip.version == 6 else IPFamily.IPV4


def other_ip_family(ip_family: IPFamily) -> IPFamily:
    return IPFamily.IPV4 if ip_family == IPFamily.IPV6 else IPFamily.IPV6


def map_cidrs_by_ip_family(cidrs: Iterable[str]) -> dict[IPFamily, list[str]]:
    """Group valid CIDRs by family; invalid ones are logged and skipped."""
    result: dict[IPFamily, list[str]] = {}
    for cidr in cidrs:
        try:
            family = ip_family_from_cidr(cidr)
        except AddressNotAllowedError:
            log.error("Skipping invalid cidr: %s", cidr)
            continue
        result.setdefault(family, []).append(cidr)
    return result


def ip_family_from_cidr(cidr: str) -> IPFamily:
    if "/" not in cidr:
        raise AddressNotAllowedError()
    try:
        network = ipaddress.ip_network(cidr, strict=False)
    except ValueError as exc:
        raise AddressNotAllowedError() from exc
    return IPFamily.IPV6 if network.version == 6 else IPFamily.IPV4


def count_lines(data: Union[str, bytes]) -> int:
    """Number of newline characters in ``data``."""
    if isinstance(data, bytes):
        return data.count(b"\n")
    return data.count("\n")