"""Names of the iptables chains used for service proxying."""

from __future__ import annotations

import base64
import hashlib
from dataclasses import dataclass

TABLE_FILTER = "filter"
TABLE_NAT = "nat"

CHAIN_INPUT = "INPUT"
CHAIN_FORWARD = "FORWARD"
CHAIN_OUTPUT = "OUTPUT"
CHAIN_PREROUTING = "PREROUTING"
CHAIN_POSTROUTING = "POSTROUTING"

KUBE_SERVICES_CHAIN = "KUBE-SERVICES"
KUBE_EXTERNAL_SERVICES_CHAIN = "KUBE-EXTERNAL-SERVICES"
KUBE_NODE_PORTS_CHAIN = "KUBE-NODEPORTS"
KUBE_POSTROUTING_CHAIN = "KUBE-POSTROUTING"
KUBE_MARK_MASQ_CHAIN = "KUBE-MARK-MASQ"
KUBE_MARK_DROP_CHAIN = "KUBE-MARK-DROP"
KUBE_FORWARD_CHAIN = "KUBE-FORWARD"
KUBE_PROXY_CANARY_CHAIN = "KUBE-PROXY-CANARY"

_NEW_CONNECTIONS = ("-m", "conntrack", "--ctstate", "NEW")


@dataclass(frozen=True)
class JumpChain:
    """A rule in ``src_chain`` of ``table`` that jumps to ``dst_chain``."""

    table: str
    dst_chain: str
    src_chain: str
    comment: str
    extra_args: tuple[str, ...] = ()


IPTABLES_JUMP_CHAINS: tuple[JumpChain, ...] = (
    JumpChain(TABLE_FILTER, KUBE_EXTERNAL_SERVICES_CHAIN, CHAIN_INPUT,
              "kubernetes externally-visible service portals", _NEW_CONNECTIONS),
    JumpChain(TABLE_FILTER, KUBE_EXTERNAL_SERVICES_CHAIN, CHAIN_FORWARD,
              "kubernetes externally-visible service portals", _NEW_CONNECTIONS),
    JumpChain(TABLE_FILTER, KUBE_NODE_PORTS_CHAIN, CHAIN_INPUT,
              "kubernetes health check service ports"),
    JumpChain(TABLE_FILTER, KUBE_SERVICES_CHAIN, CHAIN_FORWARD,
              "kubernetes service portals", _NEW_CONNECTIONS),
    JumpChain(TABLE_FILTER, KUBE_SERVICES_CHAIN, CHAIN_OUTPUT,
              "kubernetes service portals", _NEW_CONNECTIONS),
    JumpChain(TABLE_FILTER, KUBE_FORWARD_CHAIN, CHAIN_FORWARD,
              "kubernetes forwarding rules"),
    JumpChain(TABLE_NAT, KUBE_SERVICES_CHAIN, CHAIN_OUTPUT,
              "kubernetes service portals"),
    JumpChain(TABLE_NAT, KUBE_SERVICES_CHAIN, CHAIN_PREROUTING,
              "kubernetes service portals"),
    JumpChain(TABLE_NAT, KUBE_POSTROUTING_CHAIN, CHAIN_POSTROUTING,
              "kubernetes postrouting rules"),
)

IPTABLES_ENSURE_CHAINS: tuple[tuple[str, str], ...] = (
    (TABLE_NAT, KUBE_MARK_DROP_CHAIN),
)

IPTABLES_CLEANUP_ONLY_CHAINS: tuple[JumpChain, ...] = (
    JumpChain(TABLE_FILTER, KUBE_SERVICES_CHAIN, CHAIN_INPUT,
              "kubernetes service portals", _NEW_CONNECTIONS),
)


def _hash16(text: str) -> str:
    digest = hashlib.sha256(text.encode()).digest()
    return base64.b32encode(digest).decode("ascii")[:16]


def port_proto_hash(service_port_name: str, protocol: str) -> str:
    """16-character base32 prefix of the SHA-256 of name and protocol.

    Chain names must stay within 28 characters, hence the truncation.
    """
    return _hash16(service_port_name + protocol)


def service_port_chain_name(service_port_name: str, protocol: str) -> str:
    return "KUBE-SVC-" + port_proto_hash(service_port_name, protocol)


def service_firewall_chain_name(service_port_name: str, protocol: str) -> str:
    return "KUBE-FW-" + port_proto_hash(service_port_name, protocol)


def service_lb_chain_name(service_port_name: str, protocol: str) -> str:
    return "KUBE-XLB-" + port_proto_hash(service_port_name, protocol)


def service_port_endpoint_chain_name(
    service_port_name: str, protocol: str, endpoint: str
) -> str:
    """Per-endpoint chain name; the endpoint is part of the hash."""
    return "KUBE-SEP-" + _hash16(service_port_name + protocol + endpoint)