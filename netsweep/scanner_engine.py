"""
Scanner Engine Module - Port range scanning against a single target

This module scans one host across a contiguous port range over TCP or UDP.
It is independent of the LAN sweep: it has its own concurrency cap, its own
state and its own stop flag.
"""

# Step 1: Import necessary modules
import logging         # For logging scan progress and errors
import socket          # For resolving the target once before scanning
import threading       # For the background dispatch thread
import time            # For the inter-dispatch delay
from typing import Callable, Optional

from netsweep.config import ScanSettings
from netsweep.events import EventLog
from netsweep.models import ScanProtocol
from netsweep.result_store import Observer, PortScanState
from netsweep.socket_probe import SocketProbe
from netsweep.threading_module import BoundedExecutor, ConcurrencyGauge

# Step 2: Configure logging
logger = logging.getLogger(__name__)

# Step 3: Define common service to port mappings dictionary
# Used to annotate open ports; unknown ports get a blank name
SERVICE_MAP = {
    # File transfer / terminals
    20: "FTP Data", 21: "FTP Control", 22: "SSH", 23: "Telnet", 69: "TFTP",
    # Mail
    25: "SMTP", 110: "POP3", 143: "IMAP", 465: "SMTPS", 587: "SMTP Submission",
    993: "IMAPS", 995: "POP3S",
    # Web and infrastructure
    53: "DNS", 67: "DHCP Server", 68: "DHCP Client", 80: "HTTP", 443: "HTTPS",
    8080: "HTTP Alt", 8443: "HTTPS Alt",
    # Databases and caches
    1433: "SQL Server", 3306: "MySQL", 5432: "PostgreSQL", 6379: "Redis",
    11211: "Memcached", 27017: "MongoDB", 9200: "Elasticsearch",
    # Remote access / VPN
    1194: "OpenVPN", 1723: "PPTP", 3389: "RDP", 5900: "VNC", 8291: "Winbox",
    # Directory / messaging
    389: "LDAP", 636: "LDAPS", 1883: "MQTT", 5222: "XMPP",
    # Development servers and games
    3000: "React/Node", 3001: "React/Node Alt", 4000: "Elixir/Phoenix",
    5000: "Flask/ASP", 8000: "Django/Common", 25565: "Minecraft", 32400: "Plex",
}

MIN_PORT = 1
MAX_PORT = 65535


def fetch_service_info(port: int) -> str:
    """
    Well-known service name for a port number.

    Args:
        port: The port number

    Returns:
        str: The service name, or an empty string when unknown
    """
    return SERVICE_MAP.get(port, "")


def validate_port_range(start_port: int, end_port: int):
    """
    Check a scan range before any work starts.

    Raises:
        ValueError: If a bound is outside 1-65535 or start is after end
    """
    for port in (start_port, end_port):
        # bool is an int subclass; True would pass as port 1
        if isinstance(port, bool) or not isinstance(port, int) or port < MIN_PORT or port > MAX_PORT:
            raise ValueError(f"Ports must be between {MIN_PORT} and {MAX_PORT}: {port}")
    if start_port > end_port:
        raise ValueError("Invalid port range.")


def describe_open_port(port: int, protocol: ScanProtocol) -> str:
    service = fetch_service_info(port)
    label = f"Port {port} ({service}) is Open" if service else f"Port {port} is Open"
    return f"{label} ({protocol.value.upper()})"


class PortRangeScanner:
    """
    Core scanning engine for a single target.
    Probes are dispatched from a background thread onto a capped pool.
    """

    def __init__(self, settings: Optional[ScanSettings] = None,
                 event_log: Optional[EventLog] = None,
                 probe: Optional[Callable[..., bool]] = None,
                 resolver: Callable[[str], str] = socket.gethostbyname):
        """
        Step 4: Initialize the scanner with its settings and collaborators.

        Args:
            settings: Concurrency, delay and timeout values
            event_log: Where progress and discovery events are published
            probe: probe(host, port, protocol, timeout) -> bool
            resolver: Resolves the target name to an address once per job
        """
        self.settings = settings or ScanSettings()
        self.events = event_log or EventLog()
        self.probe = probe or SocketProbe().probe
        self.resolver = resolver
        self.gauge = ConcurrencyGauge("port-scan")
        self._lock = threading.Lock()
        self._state = PortScanState(total_ports=1)
        self._cancel_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._observers = []
        self.target: Optional[str] = None
        self.protocol = ScanProtocol.TCP

    @property
    def state(self) -> PortScanState:
        with self._lock:
            return self._state

    @property
    def is_scanning(self) -> bool:
        return self.state.is_scanning

    @property
    def progress(self) -> float:
        return self.state.progress

    @property
    def open_ports(self):
        return self.state.open_ports

    def subscribe(self, observer: Observer):
        with self._lock:
            self._observers.append(observer)
            self._state.subscribe(observer)

    def start_port_scan(self, target: str, start_port: int, end_port: int,
                        protocol=ScanProtocol.TCP) -> bool:
        """
        Step 5: Validate the request and launch the scan in the background.

        Args:
            target: Hostname or IP address to scan
            start_port: First port of the range
            end_port: Last port of the range (inclusive)
            protocol: "tcp" or "udp"

        Returns:
            bool: True if a scan was launched
        """
        with self._lock:
            if self._state.is_scanning:
                return False

            # Step 5.1: Reject bad input before anything starts
            target = (target or "").strip()
            try:
                if not target:
                    raise ValueError("Target cannot be empty.")
                protocol = ScanProtocol.parse(protocol)
                validate_port_range(start_port, end_port)
            except ValueError as e:
                self.events.error(str(e))
                return False

            # Step 5.2: Fresh state and stop flag for this job
            state = PortScanState(total_ports=end_port - start_port + 1)
            for observer in self._observers:
                state.subscribe(observer)
            cancel_event = threading.Event()
            state.begin()
            thread = threading.Thread(target=self._run, name=f"port-scan-{target}",
                                      args=(target, start_port, end_port, protocol, state, cancel_event),
                                      daemon=True)
            self._state = state
            self._cancel_event = cancel_event
            self._thread = thread
            self.target = target
            self.protocol = protocol

        self.events.info(f"Starting {protocol.value.upper()} port scan on {target} ({start_port}-{end_port})")
        thread.start()
        return True

    def _run(self, target: str, start_port: int, end_port: int, protocol: ScanProtocol,
             state: PortScanState, cancel_event: threading.Event):
        """Step 6: Dispatch loop executed on the background thread."""
        # Step 6.1: Resolve the target once
        try:
            address = self.resolver(target)
        except (socket.gaierror, socket.herror, OSError) as e:
            self.events.error(f"Failed to resolve {target}: {e}")
            state.stop()
            return
        if address != target:
            self.events.debug(f"Resolved {target} to {address}")

        # Step 6.2: Feed the capped pool one port at a time
        pool = BoundedExecutor(self.settings.port_scan_concurrency, name="port-scan",
                               stop_event=cancel_event)
        try:
            for port in range(start_port, end_port + 1):
                if cancel_event.is_set():
                    break
                if self.settings.port_scan_delay > 0:
                    time.sleep(self.settings.port_scan_delay)
                if pool.submit(self._probe_port, address, port, protocol, state) is None:
                    break
            pool.wait_all()
        finally:
            pool.shutdown()

        # Step 6.3: Only a natural end reports completion
        if cancel_event.is_set():
            return
        if state.finish():
            self.events.info("Port scan completed.", target=target,
                             open_ports=list(state.open_ports))

    def _probe_port(self, address: str, port: int, protocol: ScanProtocol, state: PortScanState):
        """Step 7: Probe one port and record the outcome."""
        with self.gauge:
            is_open = self.probe(address, port, protocol, self.settings.port_scan_timeout)
        if state.mark_probed(port, is_open):
            self.events.success(describe_open_port(port, protocol), port=port,
                                protocol=protocol.value, service=fetch_service_info(port))
        return is_open

    def stop_port_scan(self) -> bool:
        """Stop scheduling probes; progress is left where it is. No-op when idle."""
        with self._lock:
            state = self._state
            cancel_event = self._cancel_event
        if not state.stop():
            return False
        cancel_event.set()
        self.events.info("Port scan stopping...")
        return True

    def wait(self, timeout: Optional[float] = None) -> bool:
        with self._lock:
            thread = self._thread
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()
