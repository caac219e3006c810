# proxyrules

Building blocks for a node-level service proxy that programs iptables:
a model of services and endpoints, change trackers that fold updates into
snapshots, and helpers that derive the chain names and rule arguments such a
proxy writes.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Modules

- `proxyrules.ipset`: `IPSet` keeps IPv4 and IPv6 address strings in two
  sorted, duplicate-free lists (`v4`, `v6`). `IPSet.of(...)` builds one;
  `add` returns the parsed address or `None` for an unparsable string;
  `add_all`, `add_set`, `all`, `first`, `is_empty` and `diff` (which returns
  `(added, removed)`) complete it. `insort_unique` is the sorted insert it
  uses.
- `proxyrules.model`: `Service`, `ServiceIPs` (`all`, `all_ingress`),
  `PortMapping` (`src_ports`), `Endpoint` (`add_address`, `port_mapping`,
  `port_mappings`), `ClientIPAffinity`, `IPFilter`, the `Protocol` enum and
  `parse_protocol`, which gives `Protocol.UNKNOWN` for an unknown name.
- `proxyrules.chains`: names of the top-level chains, the `JumpChain` table
  (`IPTABLES_JUMP_CHAINS`, `IPTABLES_ENSURE_CHAINS`,
  `IPTABLES_CLEANUP_ONLY_CHAINS`), and hashed per-service chain names:
  `service_port_chain_name` (`KUBE-SVC-…`), `service_firewall_chain_name`
  (`KUBE-FW-…`), `service_lb_chain_name` (`KUBE-XLB-…`) and
  `service_port_endpoint_chain_name` (`KUBE-SEP-…`). The hash is the first 16
  characters of the base32-encoded SHA-256 (`port_proto_hash`).
- `proxyrules.naming`: `NamespacedName`, `ServicePortName` (shown as
  `namespace/name:port`), `ServiceEndpoint` and `format_port_name`.
- `proxyrules.netutil`: `IPFamily`, `ip_family_from_ip`,
  `ip_family_from_cidr` (both raise `AddressNotAllowedError`),
  `other_ip_family`, `map_ips_by_ip_family`, `map_cidrs_by_ip_family`,
  `get_cluster_ip_by_family`, `requests_only_local_traffic`, `is_zero_cidr`,
  `format_line`, `format_rule_line`, `count_lines`, `revert_ports`, and
  address discovery through psutil: `get_local_addrs`, `get_local_addr_set`,
  and `get_node_addresses`. That last one takes a `NetworkInterfacer`, which
  you can subclass to substitute the host's interfaces. It raises
  `LookupError` when no address matches.
- `proxyrules.port`: `LocalPort.create` validates the protocol (`PortProtocol`),
  family (`PortFamily`) and IP and raises `ValueError` on a mismatch.
  `open_local_port` and `ListenPortOpener.open_local_port` bind the port and
  return the socket that holds it. For TCP they also listen on it.
- `proxyrules.traffic`: `LocalTrafficDetector`, with `NoOpLocalDetector` and
  `DetectLocalByCIDR(cidr, ipv6)`. The detectors append `-s <cidr>` or
  `! -s <cidr>` and a jump to rule arguments.
- `proxyrules.endpoints`: `EndpointChangeTracker`, `EndpointsCache`,
  `EndpointsMap`, `UpdateEndpointMapResult` and
  `get_last_change_trigger_time`.
- `proxyrules.service`: `ServiceChangeTracker`, `ServicesSnapshot`,
  `BaseServiceInfo`, `ServiceInfo`, `SessionAffinity`,
  `UpdateServiceMapResult`, `new_service_info`, `get_session_affinity`,
  `get_load_balancer_ips`, `get_load_balancer_source_ranges` and
  `is_service_ip_set`.

## Example

```python
from proxyrules.endpoints import EndpointChangeTracker, EndpointsMap
from proxyrules.ipset import IPSet
from proxyrules.model import Endpoint, PortMapping, Protocol, Service, ServiceIPs
from proxyrules.netutil import IPFamily
from proxyrules.service import ServiceChangeTracker, ServicesSnapshot, new_service_info

service = Service(
    namespace="default",
    name="web",
    type="ClusterIP",
    ips=ServiceIPs(cluster_ips=IPSet.of("10.0.0.10")),
    ports=[PortMapping(name="http", protocol=Protocol.TCP, port=80, target_port=8080)],
)

services = ServiceChangeTracker(new_service_info, IPFamily.IPV4)
services.update(service)

snapshot = ServicesSnapshot()
snapshot.update(services)
# Each ServiceInfo in the snapshot carries its service_port_chain_name etc.

endpoint = Endpoint(local=True)
endpoint.add_address("10.1.0.5")

endpoints = EndpointChangeTracker("node-a", IPFamily.IPV4)
endpoints.endpoint_update("default", "web", "pod-1", endpoint)

endpoints_map = EndpointsMap()
result = endpoints_map.update(endpoints)
# result.hc_endpoints_local_ip_size maps NamespacedName("default", "web") to 1
```

You delete a service with `ServiceChangeTracker.delete(namespace, name)`. You
delete an endpoint by passing `None` as the endpoint to `endpoint_update`. Both
changes take effect on the next `update` of the snapshot or map.

## What it does not do

This package is a library of building blocks. It does not assemble a full
`iptables-restore` ruleset, and it never runs iptables or changes the host's
firewall. It has no command-line program and no long-running sync loop. It
does not connect to a cluster to receive services and endpoints. The caller
feeds those in and decides what to do with the chain names, rule arguments and
snapshots it gets back.