import logging

from netsweep.config import BANNER_PORTS, DISCOVERY_PORTS, SERVICE_PORTS, ScanSettings
from netsweep.events import EventLog
from netsweep.models import LogEntry, Severity


def test_defaults_bound_concurrency():
    settings = ScanSettings()
    assert settings.host_concurrency == 8
    assert settings.service_concurrency == 4
    assert settings.port_scan_concurrency == 100
    assert settings.discovery_timeout == 0.5
    assert settings.service_timeout == 0.5
    assert settings.port_scan_timeout == 3.0
    assert settings.port_scan_delay == 0.005
    assert DISCOVERY_PORTS == (80, 443, 22, 53, 445, 139)
    assert SERVICE_PORTS == (21, 22, 23, 80, 443, 3389, 5900, 8080, 8291)
    assert BANNER_PORTS == (80, 443, 8080)


def test_env_overrides_and_bad_values(caplog):
    env = {
        "NETSWEEP_HOST_CONCURRENCY": "16",
        "NETSWEEP_PORT_SCAN_TIMEOUT": "1.5",
        "NETSWEEP_PORT_SCAN_DELAY": "0",
        "NETSWEEP_SERVICE_CONCURRENCY": "lots",
        "NETSWEEP_PORT_SCAN_CONCURRENCY": "-3",
    }
    with caplog.at_level(logging.WARNING):
        settings = ScanSettings.from_env(env)
    assert settings.host_concurrency == 16
    assert settings.port_scan_timeout == 1.5
    assert settings.port_scan_delay == 0.0
    assert settings.service_concurrency == 4
    assert settings.port_scan_concurrency == 100
    assert "NETSWEEP_SERVICE_CONCURRENCY" in caplog.text


def test_subscribers_receive_events_until_unsubscribed():
    events = EventLog()
    seen = []
    unsubscribe = events.subscribe(seen.append)
    events.info("one")
    unsubscribe()
    events.error("two")
    assert [e.message for e in seen] == ["one"]
    assert [e.severity for e in events.entries()] == [Severity.INFO, Severity.ERROR]


def test_entries_since_keeps_absolute_indexes():
    events = EventLog(max_entries=3)
    for i in range(5):
        events.info(f"msg {i}")
    assert len(events) == 5
    assert [e.message for e in events.entries()] == ["msg 2", "msg 3", "msg 4"]
    assert [e.message for e in events.entries(4)] == ["msg 4"]
    assert events.entries(5) == []


def test_failing_subscriber_does_not_break_emit():
    events = EventLog()

    def broken(entry):
        raise RuntimeError("boom")

    events.subscribe(broken)
    entry = events.success("still delivered", port=22)
    assert entry.details == {"port": 22}
    assert len(events) == 1


def test_events_are_mirrored_to_logging(caplog):
    events = EventLog()
    with caplog.at_level(logging.INFO, logger="netsweep.events"):
        events.error("Invalid port range.")
    assert any(r.levelno == logging.ERROR and r.message == "Invalid port range."
               for r in caplog.records)


def test_log_entry_serialises():
    entry = LogEntry("Port 22 (SSH) is Open (TCP)", Severity.SUCCESS, details={"port": 22})
    data = entry.to_dict()
    assert data["severity"] == "success"
    assert data["details"] == {"port": 22}
    assert "timestamp" in data
