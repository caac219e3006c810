"""Sorted, de-duplicated sets of IPv4 and IPv6 address strings."""

from __future__ import annotations

import bisect
import ipaddress
from dataclasses import dataclass, field
from typing import Iterable, Optional, Union

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


def insort_unique(items: list[str], value: str) -> None:
    """Insert ``value`` into the sorted list ``items`` unless it is already there."""
    index = bisect.bisect_left(items, value)
    if index != len(items) and items[index] == value:
        return
    items.insert(index, value)


def _parse_ip(address: str) -> Optional[IPAddress]:
    if "%" in address:
        return None
    try:
        ip = ipaddress.ip_address(address)
    except ValueError:
        return None
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        return ip.ipv4_mapped
    return ip


def _missing_from(source: list[str], reference: list[str]) -> list[str]:
    present = set(reference)
    return [item for item in source if item not in present]


@dataclass
class IPSet:
    """Addresses split by family, each list kept sorted and unique."""

    v4: list[str] = field(default_factory=list)
    v6: list[str] = field(default_factory=list)

    @classmethod
    def of(cls, *args: str) -> "IPSet":
        """Build a set from address strings; unparsable ones are ignored."""
        ip_set = cls()
        ip_set.add_all(args)
        return ip_set

    def is_empty(self) -> bool:
        return not self.v4 and not self.v6

    def first(self) -> str:
        """Return the first IPv4 address, else the first IPv6 one, else ''."""
        if self.v4:
            return self.v4[0]
        if self.v6:
            return self.v6[0]
        return ""

    def add(self, address: str) -> Optional[IPAddress]:
        """Add an address, returning it parsed, or None if it cannot be parsed."""
        ip = _parse_ip(address)
        if ip is None:
            return None
        if ip.version == 4:
            insort_unique(self.v4, address)
        else:
            insort_unique(self.v6, address)
        return ip

    def add_all(self, addresses: Iterable[str]) -> None:
        for address in addresses:
            self.add(address)

    def add_set(self, other: Optional["IPSet"]) -> None:
        """Merge another set into this one; None is ignored."""
        if other is None:
            return
        for address in other.v4:
            insort_unique(self.v4, address)
        for address in other.v6:
            insort_unique(self.v6, address)

    def all(self) -> list[str]:
        """All addresses, IPv4 first then IPv6."""
        return [*self.v4, *self.v6]

    def diff(self, other: "IPSet") -> tuple["IPSet", "IPSet"]:
        """Return ``(added, removed)`` going from this set to ``other``."""
        added = IPSet(
            v4=_missing_from(other.v4, self.v4),
            v6=_missing_from(other.v6, self.v6),
        )
        removed = IPSet(
            v4=_missing_from(self.v4, other.v4),
            v6=_missing_from(self.v6, other.v6),
        )
        return added, removed