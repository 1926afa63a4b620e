import time

from conftest import FakeProbe, wait_until
from netsweep.events import EventLog
from netsweep.lan_scanner import LanScanner
from netsweep.models import Severity


def _scanner(probe, settings, events=None):
    return LanScanner(settings=settings, event_log=events or EventLog(), probe=probe,
                      resolver=lambda a: None, banner_grabber=lambda *a: None)


def test_single_responder_subnet(fast_settings):
    events = EventLog()
    scanner = _scanner(FakeProbe({"10.0.0.5": {22, 80}}), fast_settings, events)
    assert scanner.start_lan_scan("10.0.0.0") is True
    assert scanner.wait(timeout=30)

    snapshot = scanner.snapshot()
    assert snapshot.is_scanning is False
    assert snapshot.progress == 1.0
    assert snapshot.subnet == "10.0.0"
    assert len(snapshot.hosts) == 254
    assert len({h.address for h in snapshot.hosts}) == 254
    online = snapshot.online_hosts
    assert len(online) == 1
    assert online[0].address == "10.0.0.5"
    assert online[0].open_ports == (22, 80)
    messages = [e.message for e in events.entries()]
    assert messages[0] == "Scanning 10.0.0.1-254"
    assert messages.count("Scan Complete.") == 1


def test_concurrency_bounds_hold(fast_settings):
    live = {f"10.0.0.{i}": {80, 443} for i in range(1, 255, 10)}
    probe = FakeProbe(live, delay=0.01)
    scanner = _scanner(probe, fast_settings)
    scanner.start_lan_scan("10.0.0.0")
    assert scanner.wait(timeout=60)

    assert 1 <= scanner.discovery_stage.gauge.peak <= 8
    assert 1 <= scanner.service_stage.gauge.peak <= 4
    assert len(scanner.snapshot().online_hosts) == len(live)


def test_stop_mid_sweep_keeps_partial_results(fast_settings):
    events = EventLog()
    scanner = _scanner(FakeProbe({"10.0.0.3": {22}}, delay=0.05), fast_settings, events)
    scanner.start_lan_scan("10.0.0")
    assert wait_until(lambda: scanner.store.classified_count >= 10)

    assert scanner.stop_lan_scan() is True
    assert scanner.is_scanning is False
    before = {h.address: h for h in scanner.hosts}
    assert scanner.wait(timeout=10)

    snapshot = scanner.snapshot()
    assert snapshot.progress < 1.0
    assert len(snapshot.hosts) < 254
    after = {h.address: h for h in snapshot.hosts}
    for address, host in before.items():
        assert after[address].is_online == host.is_online
    messages = [e.message for e in events.entries()]
    assert "Scan Complete." not in messages
    assert "LAN scan stopped." in messages


def test_invalid_subnet_is_rejected(fast_settings):
    events = EventLog()
    scanner = _scanner(FakeProbe(), fast_settings, events)
    assert scanner.start_lan_scan("192.168") is False
    assert scanner.is_scanning is False
    entries = events.entries()
    assert len(entries) == 1
    assert entries[0].severity is Severity.ERROR


def test_redundant_control_calls_are_noops(fast_settings):
    scanner = _scanner(FakeProbe(delay=0.02), fast_settings)
    assert scanner.stop_lan_scan() is False
    assert scanner.start_lan_scan("10.0.0.0") is True
    assert scanner.start_lan_scan("10.0.1.0") is False
    assert scanner.snapshot().subnet == "10.0.0"
    assert scanner.stop_lan_scan() is True
    assert scanner.stop_lan_scan() is False
    scanner.wait(timeout=10)


def test_new_run_starts_from_empty_store(fast_settings):
    scanner = _scanner(FakeProbe({"10.0.0.5": {22}}), fast_settings)
    scanner.start_lan_scan("10.0.0.0")
    assert scanner.wait(timeout=30)
    first_store = scanner.store

    scanner.start_lan_scan("10.0.0.0")
    assert scanner.store is not first_store
    assert scanner.wait(timeout=30)
    assert len(scanner.hosts) == 254


def test_observers_follow_new_sessions(fast_settings):
    scanner = _scanner(FakeProbe(), fast_settings)
    progress = []
    scanner.subscribe(lambda snap: progress.append(snap.progress))
    scanner.start_lan_scan("10.0.0.0")
    assert scanner.wait(timeout=30)
    assert progress[-1] == 1.0
    assert all(a <= b for a, b in zip(progress, progress[1:]))


def test_restart_after_stop_shares_concurrency_limits(fast_settings):
    live = {f"10.0.0.{i}": {22} for i in range(1, 255, 6)}

    def slow_resolver(address):
        time.sleep(0.3)
        return None

    scanner = LanScanner(settings=fast_settings, event_log=EventLog(),
                         probe=FakeProbe(live, delay=0.01),
                         resolver=slow_resolver, banner_grabber=lambda *a: None)
    scanner.start_lan_scan("10.0.0.0")
    assert wait_until(lambda: scanner.service_gauge.current >= 4, timeout=10)

    assert scanner.stop_lan_scan() is True
    assert scanner.start_lan_scan("10.0.0.0") is True
    assert wait_until(lambda: scanner.store.classified_count >= 20, timeout=10)
    assert scanner.wait(timeout=60)

    assert scanner.service_gauge.peak <= 4
    assert scanner.host_gauge.peak <= 8
    assert len(scanner.snapshot().online_hosts) == len(live)
    scanner.close()
