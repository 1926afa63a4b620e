"""
Service Scan Stage - second pass over hosts found online

For each host: reverse DNS, a sequential walk over the curated service ports
and an HTTP HEAD request against open web ports to read the Server header.
At most a handful of hosts are worked on at once; inside a host the ports
are probed one after another.
"""

import logging
import socket
import ssl
import threading
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Callable, List, Optional

from netsweep.config import ScanSettings
from netsweep.models import ScanProtocol
from netsweep.result_store import ResultStore
from netsweep.socket_probe import SocketProbe
from netsweep.threading_module import ConcurrencyGauge

logger = logging.getLogger(__name__)


def resolve_hostname(address: str) -> Optional[str]:
    """
    Reverse-resolve an address. Returns None when the lookup fails or just
    echoes the address back.
    """
    try:
        name, _ = socket.getnameinfo((address, 0), 0)
    except (socket.gaierror, socket.herror, OSError) as e:
        logger.debug(f"Reverse lookup failed for {address} - {e}")
        return None
    if not name or name == address:
        return None
    return name


def parse_server_header(response: str) -> Optional[str]:
    """Value of the first Server header in a raw HTTP response, if any."""
    for line in response.split("\r\n")[1:]:
        if not line:
            break
        key, sep, value = line.partition(":")
        if sep and key.strip().lower() == "server":
            return value.strip() or None
    return None


def grab_web_banner(host: str, port: int, timeout: float = 2.0) -> Optional[str]:
    """
    Send a HEAD request and return the Server header value.

    Port 443 is spoken to over TLS without certificate checks; anything
    else gets plain HTTP.

    Args:
        host: The IP address to connect to
        port: An open web port
        timeout: Connect and read timeout in seconds

    Returns:
        Optional[str]: The Server header value, None if unavailable
    """
    try:
        with socket.create_connection((host, port), timeout=timeout) as raw:
            sock = raw
            if port == 443:
                context = ssl.create_default_context()
                context.check_hostname = False
                context.verify_mode = ssl.CERT_NONE
                sock = context.wrap_socket(raw, server_hostname=host)
            try:
                sock.settimeout(timeout)
                sock.sendall(f"HEAD / HTTP/1.0\r\nHost: {host}\r\nUser-Agent: netsweep\r\n\r\n".encode())
                response = b""
                while b"\r\n\r\n" not in response and len(response) < 8192:
                    chunk = sock.recv(1024)
                    if not chunk:
                        break
                    response += chunk
            finally:
                if sock is not raw:
                    sock.close()
    except (OSError, ssl.SSLError) as e:
        logger.debug(f"Banner grab failed for {host}:{port} - {e}")
        return None

    text = response.decode("utf-8", errors="ignore")
    if not text.startswith("HTTP/"):
        return None
    return parse_server_header(text)


class ServiceScanStage:
    """Per-host service enumeration running on its own small pool."""

    def __init__(self, store: ResultStore, settings: Optional[ScanSettings] = None,
                 probe: Optional[Callable[..., bool]] = None,
                 resolver: Callable[[str], Optional[str]] = resolve_hostname,
                 banner_grabber: Callable[..., Optional[str]] = grab_web_banner,
                 cancel_event: Optional[threading.Event] = None,
                 executor: Optional[ThreadPoolExecutor] = None,
                 gauge: Optional[ConcurrencyGauge] = None):
        """
        Args:
            executor: Pool shared with other sweeps; when omitted the stage
                creates and owns one of service_concurrency workers
            gauge: Shared concurrency gauge, a private one when omitted
        """
        self.store = store
        self.settings = settings or ScanSettings()
        self.probe = probe or SocketProbe().probe
        self.resolver = resolver
        self.banner_grabber = banner_grabber
        self.cancel_event = cancel_event or threading.Event()
        self.gauge = gauge or ConcurrencyGauge("service-scan")
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=self.settings.service_concurrency, thread_name_prefix="service-scan")
        self._futures = []
        self._lock = threading.Lock()

    def enqueue(self, address: str) -> bool:
        """Queue a host without blocking the caller. False once cancelled."""
        if self.cancel_event.is_set():
            return False
        future = self._executor.submit(self._run_job, address)
        with self._lock:
            self._futures.append(future)
        return True

    def _run_job(self, address: str):
        # Jobs still queued when the scan is stopped are dropped
        if self.cancel_event.is_set():
            return
        with self.gauge:
            try:
                self.scan_host(address)
            except Exception as e:
                logger.error(f"Service scan of {address} failed: {e}")

    def scan_host(self, address: str) -> List[int]:
        """
        Enumerate services of one host, writing through the store.

        Returns:
            List[int]: Open ports found by this run
        """
        hostname = self.resolver(address)
        if hostname and hostname != address:
            self.store.set_hostname(address, hostname)

        found = []
        for port in self.settings.service_ports:
            if not self.probe(address, port, ScanProtocol.TCP, self.settings.service_timeout):
                continue
            found.append(port)
            self.store.merge_open_port(address, port)

            if port in self.settings.banner_ports and not self.store.has_web_banner(address):
                banner = self.banner_grabber(address, port, self.settings.banner_timeout)
                if banner:
                    self.store.set_web_banner(address, banner)
        return found

    def drain(self, timeout: Optional[float] = None) -> bool:
        """Wait for every queued job. Returns False on timeout."""
        with self._lock:
            pending = list(self._futures)
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    def shutdown(self):
        # A shared pool outlives the stage
        if self._owns_executor:
            self._executor.shutdown(wait=False)
