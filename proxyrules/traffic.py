"""Detection of traffic that originates on this node."""

from __future__ import annotations

import abc
import ipaddress
import logging
from typing import Sequence

log = logging.getLogger(__name__)


class LocalTrafficDetector(abc.ABC):
    """Adds jump conditions depending on whether traffic is of local origin."""

    @abc.abstractmethod
    def is_implemented(self) -> bool:
        """True if the detector actually adds conditions."""

    @abc.abstractmethod
    def jump_if_local(self, args: Sequence[str], to_chain: str) -> list[str]:
        """Rule arguments that jump to ``to_chain`` for local traffic."""

    @abc.abstractmethod
    def jump_if_not_local(self, args: Sequence[str], to_chain: str) -> list[str]:
        """Rule arguments that jump to ``to_chain`` for non-local traffic."""


class NoOpLocalDetector(LocalTrafficDetector):
    """A detector that leaves the arguments untouched."""

    def is_implemented(self) -> bool:
        return False

    def jump_if_local(self, args: Sequence[str], to_chain: str) -> list[str]:
        return list(args)

    def jump_if_not_local(self, args: Sequence[str], to_chain: str) -> list[str]:
        return list(args)


def _is_ipv6_cidr(cidr: str) -> bool:
    try:
        return ipaddress.ip_network(cidr, strict=False).version == 6
    except ValueError:
        return False


class DetectLocalByCIDR(LocalTrafficDetector):
    """Treats traffic from a single CIDR as local."""

    def __init__(self, cidr: str, ipv6: bool) -> None:
        if _is_ipv6_cidr(cidr) != ipv6:
            raise ValueError(
                f"CIDR {cidr} has incorrect IP version: "
                f"expect isIPv6={str(ipv6).lower()}"
            )
        if "/" not in cidr:
            raise ValueError(f"invalid CIDR address: {cidr}")
        try:
            ipaddress.ip_network(cidr, strict=False)
        except ValueError as exc:
            raise ValueError(f"invalid CIDR address: {cidr}") from exc
        self.cidr = cidr

    def is_implemented(self) -> bool:
        return True

    def jump_if_local(self, args: Sequence[str], to_chain: str) -> list[str]:
        line = [*args, "-s", self.cidr, "-j", to_chain]
        log.debug("[DetectLocalByCIDR (%s)] Jump Local: %s", self.cidr, line)
        return line

    def jump_if_not_local(self, args: Sequence[str], to_chain: str) -> list[str]:
        line = [*args, "!", "-s", self.cidr, "-j", to_chain]
        log.debug("[DetectLocalByCIDR (%s)] Jump Not Local: %s", self.cidr, line)
        return line