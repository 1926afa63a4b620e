import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from conftest import FakeProbe
from netsweep.host_discovery import (HostDiscoveryStage, InvalidSubnetError, check_host_online,
                                     parse_subnet_prefix)
from netsweep.result_store import ResultStore
from netsweep.service_scan import ServiceScanStage


@pytest.mark.parametrize("text,expected", [
    ("192.168.1", "192.168.1"),
    ("192.168.1.0", "192.168.1"),
    (" 10.0.0.0/24 ", "10.0.0"),
    ("010.000.001", "10.0.1"),
])
def test_parse_subnet_prefix_accepts(text, expected):
    assert parse_subnet_prefix(text) == expected


@pytest.mark.parametrize("text", ["", "192.168", "192.168.1.5", "a.b.c", "300.1.1", "1.2.3.4.5"])
def test_parse_subnet_prefix_rejects(text):
    with pytest.raises(InvalidSubnetError):
        parse_subnet_prefix(text)


def test_check_host_online_reports_first_answer():
    probe = FakeProbe({"10.0.0.5": {443}})
    with ThreadPoolExecutor(max_workers=6) as pool:
        online, ping = check_host_online("10.0.0.5", probe, (80, 443, 22), 0.5, pool)
        offline, no_ping = check_host_online("10.0.0.6", probe, (80, 443, 22), 0.5, pool)
    assert online is True and ping >= 0
    assert offline is False and no_ping is None
    assert sorted(probe.ports_probed("10.0.0.5")) == [22, 80, 443]


def _stages(probe, settings, store=None):
    store = store or ResultStore(subnet="10.0.0")
    cancel = threading.Event()
    service = ServiceScanStage(store, settings, probe=probe, resolver=lambda a: None,
                               banner_grabber=lambda *a: None, cancel_event=cancel)
    discovery = HostDiscoveryStage(store, service, settings, probe=probe, cancel_event=cancel)
    return store, service, discovery, cancel


def test_sweep_classifies_every_suffix(fast_settings):
    probe = FakeProbe({"10.0.0.5": {22, 80}})
    store, service, discovery, _ = _stages(probe, fast_settings)
    store.begin()
    assert discovery.sweep("10.0.0") == 254
    service.shutdown()

    hosts = store.hosts
    assert [h.address for h in hosts] == [f"10.0.0.{i}" for i in range(1, 255)]
    online = [h for h in hosts if h.is_online]
    assert [h.address for h in online] == ["10.0.0.5"]
    assert online[0].open_ports == (22, 80)
    assert online[0].ping_time_ms is not None and online[0].ping_time_ms >= 0
    for host in hosts:
        if not host.is_online:
            assert host.open_ports == ()
            assert host.hostname is None and host.web_banner is None
    assert store.progress == 1.0


def test_sweep_respects_host_concurrency(fast_settings):
    probe = FakeProbe(delay=0.01)
    store, service, discovery, _ = _stages(probe, fast_settings)
    store.begin()
    discovery.sweep("10.0.0")
    service.shutdown()
    assert 1 <= discovery.gauge.peak <= fast_settings.host_concurrency


def test_cancelled_sweep_schedules_nothing(fast_settings):
    probe = FakeProbe()
    store, service, discovery, cancel = _stages(probe, fast_settings)
    store.begin()
    cancel.set()
    assert discovery.sweep("10.0.0") == 0
    service.shutdown()
    assert store.classified_count == 0
