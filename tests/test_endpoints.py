from datetime import datetime, timedelta, timezone

import pytest

from proxyrules.endpoints import (
    LAST_CHANGE_TRIGGER_TIME_ANNOTATION,
    EndpointChangeTracker,
    EndpointsCache,
    EndpointsMap,
    get_last_change_trigger_time,
)
from proxyrules.ipset import IPSet
from proxyrules.model import Endpoint
from proxyrules.naming import NamespacedName
from proxyrules.netutil import IPFamily

SVC = NamespacedName(namespace="ns", name="web")


def make_endpoint(*ips, local=False):
    return Endpoint(ips=IPSet.of(*ips), local=local)


@pytest.fixture
def tracker():
    return EndpointChangeTracker("node-a", IPFamily.IPV4)


def test_update_applies_pending_endpoints(tracker):
    ep = make_endpoint("10.0.0.1")
    tracker.endpoint_update("ns", "web", "ep1", ep)
    em = EndpointsMap()
    em.update(tracker)
    assert em[SVC] == {"ep1": ep}


def test_update_clears_tracker(tracker):
    tracker.endpoint_update("ns", "web", "ep1", make_endpoint("10.0.0.1"))
    EndpointsMap().update(tracker)
    assert len(tracker.endpoints_cache.tracker_by_service_map) == 0


def test_delete_removes_endpoint_and_empty_service(tracker):
    em = EndpointsMap()
    tracker.endpoint_update("ns", "web", "ep1", make_endpoint("10.0.0.1"))
    tracker.endpoint_update("ns", "web", "ep2", make_endpoint("10.0.0.2"))
    em.update(tracker)
    tracker.endpoint_update("ns", "web", "ep1", None)
    em.update(tracker)
    assert set(em[SVC]) == {"ep2"}
    tracker.endpoint_update("ns", "web", "ep2", None)
    em.update(tracker)
    assert SVC not in em


def test_delete_of_unknown_service_is_ignored(tracker):
    em = EndpointsMap()
    tracker.endpoint_update("ns", "gone", "ep1", None)
    em.update(tracker)
    assert dict(em) == {}


def test_local_ip_sizes_count_unique_local_ips(tracker):
    tracker.endpoint_update("ns", "web", "a", make_endpoint("10.0.0.1", "fd00::1", local=True))
    tracker.endpoint_update("ns", "web", "b", make_endpoint("10.0.0.1", local=True))
    tracker.endpoint_update("ns", "web", "c", make_endpoint("10.0.0.9"))
    em = EndpointsMap()
    result = em.update(tracker)
    assert result.hc_endpoints_local_ip_size == {SVC: 2}
    assert em.local_ready_endpoint_ips() == {SVC: {"10.0.0.1", "fd00::1"}}


def test_update_result_has_empty_stale_lists(tracker):
    result = EndpointsMap().update(tracker)
    assert result.stale_endpoints == []
    assert result.stale_service_names == []


def test_merge_overwrites_existing_entry():
    em = EndpointsMap()
    first = make_endpoint("10.0.0.1")
    second = make_endpoint("10.0.0.2")
    em.merge({SVC: {"ep": first}})
    em.merge({SVC: {"ep": second}})
    assert em[SVC]["ep"] is second


def test_checkout_trigger_times_merges_and_resets(tracker):
    t1 = datetime(2021, 1, 1, tzinfo=timezone.utc)
    t2 = t1 + timedelta(seconds=1)
    tracker.last_change_trigger_times = {SVC: [t2]}
    into = {SVC: [t1]}
    tracker.checkout_trigger_times(into)
    assert into == {SVC: [t1, t2]}
    assert tracker.last_change_trigger_times == {}


def test_update_returns_trigger_times(tracker):
    t1 = datetime(2021, 1, 1, tzinfo=timezone.utc)
    tracker.last_change_trigger_times = {SVC: [t1]}
    result = EndpointsMap().update(tracker)
    assert result.last_change_trigger_times == {SVC: [t1]}


def test_update_pending_returns_true_and_records():
    cache = EndpointsCache("node-a", IPFamily.IPV4)
    ep = make_endpoint("10.0.0.1")
    assert cache.update_pending(SVC, "k", ep) is True
    assert cache.tracker_by_service_map[SVC]["k"] is ep


def test_is_local():
    cache = EndpointsCache("node-a", IPFamily.IPV4)
    assert cache.is_local("node-a") is True
    assert cache.is_local("node-b") is False
    assert EndpointsCache("", IPFamily.IPV4).is_local("") is False


def test_trigger_time_missing_annotation():
    assert get_last_change_trigger_time({}) is None


def test_trigger_time_invalid_annotation():
    assert get_last_change_trigger_time(
        {LAST_CHANGE_TRIGGER_TIME_ANNOTATION: "yesterday"}
    ) is None


def test_trigger_time_parses_nanoseconds_utc():
    value = get_last_change_trigger_time(
        {LAST_CHANGE_TRIGGER_TIME_ANNOTATION: "2021-03-04T05:06:07.123456789Z"}
    )
    assert value == datetime(2021, 3, 4, 5, 6, 7, 123456, tzinfo=timezone.utc)


def test_trigger_time_parses_offset():
    value = get_last_change_trigger_time(
        {LAST_CHANGE_TRIGGER_TIME_ANNOTATION: "2021-03-04T07:06:07+02:00"}
    )
    assert value == datetime(2021, 3, 4, 5, 6, 7, tzinfo=timezone.utc)