"""Identifiers for services, service ports and endpoints."""

from __future__ import annotations

from dataclasses import dataclass

from .model import Protocol


def format_port_name(name: str) -> str:
    """Return ``:name``, or an empty string for an unnamed port."""
    return f":{name}" if name else ""


@dataclass(frozen=True)
class NamespacedName:
    namespace: str = ""
    name: str = ""

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


@dataclass(frozen=True)
class ServicePortName:
    """Namespace, name and port name: the identity of a load-balanced service."""

    namespaced_name: NamespacedName = NamespacedName()
    port: str = ""
    protocol: Protocol = Protocol.UNKNOWN

    def __str__(self) -> str:
        return f"{self.namespaced_name}{format_port_name(self.port)}"


@dataclass(frozen=True)
class ServiceEndpoint:
    """A service port paired with one of its endpoints."""

    endpoint: str
    service_port_name: ServicePortName