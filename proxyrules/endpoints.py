"""Tracking of endpoint changes and the endpoints known per service."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

from .model import Endpoint
from .naming import NamespacedName, ServiceEndpoint, ServicePortName
from .netutil import IPFamily

log = logging.getLogger(__name__)

LAST_CHANGE_TRIGGER_TIME_ANNOTATION = "endpoints.kubernetes.io/last-change-trigger-time"

EndpointsByName = dict[str, Optional[Endpoint]]
TriggerTimes = dict[NamespacedName, list[datetime]]

_RFC3339 = re.compile(
    r"(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2}):(\d{2})(?:\.(\d{1,9}))?"
    r"(?:(Z)|([+-])(\d{2}):(\d{2}))"
)


def _parse_rfc3339(value: str) -> datetime:
    match = _RFC3339.fullmatch(value)
    if match is None:
        raise ValueError(f"cannot parse {value!r} as RFC 3339")
    year, month, day, hour, minute, second = (int(g) for g in match.groups()[:6])
    fraction, zulu, sign, off_h, off_m = match.groups()[6:]
    micro = int((fraction or "0").ljust(9, "0")[:6])
    if zulu:
        tz = timezone.utc
    else:
        offset = timedelta(hours=int(off_h), minutes=int(off_m))
        tz = timezone(-offset if sign == "-" else offset)
    return datetime(year, month, day, hour, minute, second, micro, tzinfo=tz)


def get_last_change_trigger_time(annotations: dict[str, str]) -> Optional[datetime]:
    """The last-change-trigger-time annotation, or None if absent or malformed."""
    value = annotations.get(LAST_CHANGE_TRIGGER_TIME_ANNOTATION)
    if value is None:
        return None
    try:
        return _parse_rfc3339(value)
    except ValueError as exc:
        log.warning(
            "Error while parsing EndpointsLastChangeTriggerTimeAnnotation: '%s'. Error is %s",
            value,
            exc,
        )
        return None


class EndpointsMap(dict):
    """Endpoints of each service, keyed by endpoint name."""

    def update(self, changes: "EndpointChangeTracker") -> "UpdateEndpointMapResult":  # type: ignore[override]
        """Apply pending changes and report local ready IP counts per service."""
        result = UpdateEndpointMapResult()
        self.merge(changes.endpoints_cache.tracker_by_service_map)
        changes.checkout_trigger_times(result.last_change_trigger_times)
        result.hc_endpoints_local_ip_size = {
            name: len(ips) for name, ips in self.local_ready_endpoint_ips().items()
        }
        changes.endpoints_cache.tracker_by_service_map = EndpointsMap()
        return result

    def merge(self, other: dict[NamespacedName, EndpointsByName]) -> None:
        """Bring in every entry of ``other``; a None endpoint removes the entry."""
        for service, endpoints in other.items():
            for key, endpoint in endpoints.items():
                if endpoint is None:
                    existing = self.get(service)
                    if existing is not None:
                        existing.pop(key, None)
                        if not existing:
                            del self[service]
                    continue
                self.setdefault(service, {})[key] = endpoint

    def local_ready_endpoint_ips(self) -> dict[NamespacedName, set[str]]:
        """IPs of endpoints running on this node, per service."""
        local_ips: dict[NamespacedName, set[str]] = {}
        for service, endpoints in self.items():
            for endpoint in endpoints.values():
                if endpoint is None or not endpoint.local:
                    continue
                addresses = endpoint.ips.all() if endpoint.ips is not None else []
                local_ips.setdefault(service, set()).update(addresses)
        return local_ips


class EndpointsCache:
    """Pending endpoint updates grouped by service and endpoint name."""

    def __init__(self, hostname: str, ip_family: IPFamily) -> None:
        self.tracker_by_service_map = EndpointsMap()
        self.hostname = hostname
        self.ip_family = ip_family

    def update_pending(
        self, service_key: NamespacedName, key: str, endpoint: Optional[Endpoint]
    ) -> bool:
        """Record an endpoint (None for a deletion) to apply on the next update."""
        self.tracker_by_service_map.setdefault(service_key, {})[key] = endpoint
        return True

    def is_local(self, hostname: str) -> bool:
        return bool(self.hostname) and hostname == self.hostname


class EndpointChangeTracker:
    """Uncommitted endpoint changes for one address family."""

    def __init__(self, hostname: str, ip_family: IPFamily) -> None:
        self.hostname = hostname
        self.ip_family = ip_family
        self.last_change_trigger_times: TriggerTimes = {}
        self.tracker_start_time = datetime.now(timezone.utc)
        self.endpoints_cache = EndpointsCache(hostname, ip_family)
        self.changes_seen = 0

    def endpoint_update(
        self,
        namespace: str,
        service_name: str,
        key: str,
        endpoint: Optional[Endpoint],
    ) -> None:
        """Queue a change; pass None as ``endpoint`` to delete it."""
        self.changes_seen += 1
        self.endpoints_cache.update_pending(
            NamespacedName(namespace=namespace, name=service_name), key, endpoint
        )

    def checkout_trigger_times(self, into: TriggerTimes) -> None:
        """Append the cached trigger times to ``into`` and clear the cache."""
        for name, times in self.last_change_trigger_times.items():
            into.setdefault(name, []).extend(times)
        self.last_change_trigger_times = {}


@dataclass
class UpdateEndpointMapResult:
    hc_endpoints_local_ip_size: dict[NamespacedName, int] = field(default_factory=dict)
    stale_endpoints: list[ServiceEndpoint] = field(default_factory=list)
    stale_service_names: list[ServicePortName] = field(default_factory=list)
    last_change_trigger_times: TriggerTimes = field(default_factory=dict)