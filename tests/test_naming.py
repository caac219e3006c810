from proxyrules.model import Protocol
from proxyrules.naming import (
    NamespacedName,
    ServiceEndpoint,
    ServicePortName,
    format_port_name,
)


def test_format_port_name_empty():
    assert format_port_name("") == ""


def test_format_port_name_named():
    assert format_port_name("http") == ":http"


def test_namespaced_name_string():
    assert str(NamespacedName(namespace="default", name="web")) == "default/web"


def test_service_port_name_with_port():
    spn = ServicePortName(NamespacedName("default", "web"), "http", Protocol.TCP)
    assert str(spn) == "default/web:http"


def test_service_port_name_without_port():
    spn = ServicePortName(NamespacedName("default", "web"), "", Protocol.TCP)
    assert str(spn) == "default/web"


def test_service_port_names_usable_as_keys():
    a = ServicePortName(NamespacedName("ns", "a"), "http", Protocol.TCP)
    b = ServicePortName(NamespacedName("ns", "a"), "http", Protocol.TCP)
    c = ServicePortName(NamespacedName("ns", "a"), "http", Protocol.UDP)
    table = {a: 1, c: 2}
    assert table[b] == 1
    assert len(table) == 2


def test_service_endpoint_equality():
    spn = ServicePortName(NamespacedName("ns", "a"), "dns", Protocol.UDP)
    first = ServiceEndpoint("10.0.0.1:53", spn)
    second = ServiceEndpoint("10.0.0.1:53", spn)
    assert first == second
    assert first.service_port_name.protocol is Protocol.UDP