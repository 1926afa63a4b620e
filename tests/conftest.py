import socket
import threading
import time

import pytest

from netsweep.config import ScanSettings
from netsweep.models import ScanProtocol
from netsweep.threading_module import ConcurrencyGauge


class FakeProbe:
    """Stands in for SocketProbe: answers from a table of open ports."""

    def __init__(self, open_ports=None, delay=0.0):
        self.open_ports = {host: set(ports) for host, ports in (open_ports or {}).items()}
        self.delay = delay
        self.gauge = ConcurrencyGauge("fake-probe")
        self.calls = []
        self._lock = threading.Lock()

    def __call__(self, host, port, protocol=ScanProtocol.TCP, timeout=1.0):
        with self.gauge:
            if self.delay:
                time.sleep(self.delay)
            with self._lock:
                self.calls.append((host, port))
            return port in self.open_ports.get(host, ())

    def ports_probed(self, host):
        with self._lock:
            return [p for h, p in self.calls if h == host]


@pytest.fixture
def fast_settings():
    return ScanSettings(discovery_timeout=0.2, service_timeout=0.2, banner_timeout=0.5,
                        port_scan_delay=0.0, port_scan_timeout=0.5)


@pytest.fixture
def tcp_listener():
    """A listening TCP socket on 127.0.0.1; yields its port."""
    server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    server.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    server.bind(("127.0.0.1", 0))
    server.listen(16)
    yield server.getsockname()[1]
    server.close()


@pytest.fixture
def closed_port():
    """A port on 127.0.0.1 that nothing listens on."""
    s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    s.bind(("127.0.0.1", 0))
    port = s.getsockname()[1]
    s.close()
    return port


def wait_until(predicate, timeout=5.0, interval=0.01):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def stalled_port():
    """
    A loopback port whose accept queue is full, so new handshakes stall
    until the client gives up.
    """
    server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    server.bind(("127.0.0.1", 0))
    server.listen(0)
    port = server.getsockname()[1]
    fillers = []
    for _ in range(4):
        client = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        client.setblocking(False)
        client.connect_ex(("127.0.0.1", port))
        fillers.append(client)
    time.sleep(0.1)
    yield port
    for client in fillers:
        client.close()
    server.close()
