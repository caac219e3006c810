"""Service and endpoint tracking and iptables rule helpers for a node-level service proxy."""

__version__ = "0.1.0"

__all__ = [
    "chains",
    "endpoints",
    "ipset",
    "model",
    "naming",
    "netutil",
    "port",
    "service",
    "traffic",
]