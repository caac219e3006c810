import pytest

from proxyrules.chains import (
    port_proto_hash,
    service_firewall_chain_name,
    service_lb_chain_name,
    service_port_chain_name,
    service_port_endpoint_chain_name,
)

BASE32_ALPHABET = set("ABCDEFGHIJKLMNOPQRSTUVWXYZ234567")


def test_hash_is_sixteen_base32_characters():
    value = port_proto_hash("ns/svc:http", "tcp")
    assert len(value) == 16
    assert set(value) <= BASE32_ALPHABET


def test_hash_covers_the_joined_name_and_protocol():
    joined = port_proto_hash("ns/svc:http", "tcp")
    split_elsewhere = port_proto_hash("ns/svc:htt", "ptcp")
    assert joined == split_elsewhere
    assert len(joined) == 16
    assert joined != port_proto_hash("ns/svc:https", "tcp")


def test_hash_depends_on_protocol():
    assert port_proto_hash("ns/svc:http", "tcp") != port_proto_hash("ns/svc:http", "udp")


@pytest.mark.parametrize(
    "func, prefix",
    [
        (service_port_chain_name, "KUBE-SVC-"),
        (service_firewall_chain_name, "KUBE-FW-"),
        (service_lb_chain_name, "KUBE-XLB-"),
    ],
)
def test_service_chain_names_share_hash(func, prefix):
    name = func("ns/svc:http", "tcp")
    assert name == prefix + port_proto_hash("ns/svc:http", "tcp")
    assert len(name) <= 28


def test_endpoint_chain_name_depends_on_endpoint():
    first = service_port_endpoint_chain_name("ns/svc:http", "tcp", "10.0.0.1")
    second = service_port_endpoint_chain_name("ns/svc:http", "tcp", "10.0.0.2")
    assert first.startswith("KUBE-SEP-")
    assert second.startswith("KUBE-SEP-")
    assert first != second
    assert len(first) == len("KUBE-SEP-") + 16
    assert set(first[len("KUBE-SEP-"):]) <= BASE32_ALPHABET


def test_endpoint_chain_differs_from_service_hash():
    sep = service_port_endpoint_chain_name("ns/svc:http", "tcp", "10.0.0.1")
    assert sep[len("KUBE-SEP-"):] != port_proto_hash("ns/svc:http", "tcp")