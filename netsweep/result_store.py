"""
Result Store - the single writer for scan state

Every mutation of host records, progress and the running flag goes through
one lock owned by the store. Readers only ever see immutable snapshots, and
observers receive snapshots in version order.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Set

from netsweep.models import ScanSnapshot, ScannedHost, ip_sort_key

logger = logging.getLogger(__name__)

Observer = Callable[[ScanSnapshot], None]


class ScanState:
    """Running flag and progress of one scan, guarded by a lock."""

    def __init__(self):
        self._lock = threading.RLock()
        self._publish_lock = threading.Lock()
        self._is_scanning = False
        self._progress = 0.0
        self._version = 0
        self._published_version = -1
        self._observers: List[Observer] = []

    @property
    def is_scanning(self) -> bool:
        with self._lock:
            return self._is_scanning

    @property
    def progress(self) -> float:
        with self._lock:
            return self._progress

    def begin(self):
        with self._lock:
            self._is_scanning = True
            self._progress = 0.0
            snapshot = self._bump()
        self._publish(snapshot)

    def set_progress(self, value: float) -> bool:
        """
        Raise progress to value. Ignored when not scanning or when value
        would move progress backwards.
        """
        value = min(max(float(value), 0.0), 1.0)
        with self._lock:
            if not self._is_scanning or value <= self._progress:
                return False
            self._progress = value
            snapshot = self._bump()
        self._publish(snapshot)
        return True

    def stop(self) -> bool:
        """Clear the running flag without touching progress. False if already idle."""
        with self._lock:
            if not self._is_scanning:
                return False
            self._is_scanning = False
            snapshot = self._bump()
        self._publish(snapshot)
        return True

    def finish(self) -> bool:
        """
        Natural completion: clear the running flag and force progress to 1.0.

        Returns False (and changes nothing) if the scan was already stopped.
        """
        with self._lock:
            if not self._is_scanning:
                return False
            self._is_scanning = False
            self._progress = 1.0
            snapshot = self._bump()
        self._publish(snapshot)
        return True

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        with self._lock:
            self._observers.append(observer)

        def unsubscribe():
            with self._lock:
                if observer in self._observers:
                    self._observers.remove(observer)
        return unsubscribe

    def snapshot(self) -> ScanSnapshot:
        with self._lock:
            return self._snapshot_locked()

    def _snapshot_locked(self) -> ScanSnapshot:
        return ScanSnapshot(is_scanning=self._is_scanning, progress=self._progress,
                            version=self._version)

    def _bump(self) -> ScanSnapshot:
        # Caller holds self._lock
        self._version += 1
        return self._snapshot_locked()

    def _publish(self, snapshot: ScanSnapshot):
        with self._publish_lock:
            if snapshot.version <= self._published_version:
                return
            self._published_version = snapshot.version
            with self._lock:
                observers = list(self._observers)
            for observer in observers:
                try:
                    observer(snapshot)
                except Exception as e:
                    logger.error(f"Scan observer failed: {e}")


class PortScanState(ScanState):
    """Running flag, progress and open ports of one port range job."""

    def __init__(self, total_ports: int):
        super().__init__()
        self.total_ports = max(total_ports, 1)
        self._completed = 0
        self._open_ports: Set[int] = set()

    def mark_probed(self, port: int, is_open: bool) -> bool:
        """
        Count one finished probe. Progress moves only while the job is
        running; open ports are kept either way.

        Returns:
            bool: True if the port was newly recorded as open
        """
        with self._lock:
            self._completed += 1
            added = is_open and port not in self._open_ports
            if added:
                self._open_ports.add(port)
            if self._is_scanning:
                self._progress = max(self._progress, min(self._completed / self.total_ports, 1.0))
            snapshot = self._bump()
        self._publish(snapshot)
        return added

    @property
    def completed(self) -> int:
        with self._lock:
            return self._completed

    @property
    def open_ports(self):
        with self._lock:
            return tuple(sorted(self._open_ports))


@dataclass
class _HostRecord:
    address: str
    is_online: bool
    open_ports: Set[int] = field(default_factory=set)
    ping_time_ms: Optional[float] = None
    hostname: Optional[str] = None
    web_banner: Optional[str] = None

    def freeze(self) -> ScannedHost:
        return ScannedHost(
            address=self.address,
            is_online=self.is_online,
            open_ports=tuple(sorted(self.open_ports)),
            ping_time_ms=self.ping_time_ms,
            hostname=self.hostname,
            web_banner=self.web_banner,
        )


class ResultStore(ScanState):
    """
    Host records of one LAN sweep session.

    A new store is created for every run; workers of an older run keep
    writing to their own store and never touch the current one.
    Progress is derived from the number of classified hosts.
    """

    def __init__(self, subnet: Optional[str] = None, expected_hosts: int = 254):
        super().__init__()
        self.subnet = subnet
        self.expected_hosts = expected_hosts
        self._hosts: Dict[str, _HostRecord] = {}

    def record_host(self, address: str, is_online: bool,
                    ping_time_ms: Optional[float] = None) -> ScannedHost:
        """
        Store the online/offline classification of an address.

        Re-classifying an online host keeps what the service scan found;
        an offline host is stored without ports, hostname or banner. A host
        seen online stays online for the rest of the session, so a later
        offline classification of it is ignored.
        """
        with self._lock:
            record = self._hosts.get(address)
            if not is_online and record is not None and record.is_online:
                logger.debug(f"Ignoring offline result for {address}, already online")
                return record.freeze()
            if is_online:
                ping = max(float(ping_time_ms), 0.0) if ping_time_ms is not None else 0.0
                if record is None or not record.is_online:
                    record = _HostRecord(address=address, is_online=True)
                    self._hosts[address] = record
                record.ping_time_ms = ping
            else:
                record = _HostRecord(address=address, is_online=False)
                self._hosts[address] = record

            if self._is_scanning and self.expected_hosts:
                progress = min(len(self._hosts) / self.expected_hosts, 1.0)
                if progress > self._progress:
                    self._progress = progress
            frozen = record.freeze()
            snapshot = self._bump()
        self._publish(snapshot)
        return frozen

    def merge_open_port(self, address: str, port: int) -> bool:
        """Add port to an online host's open ports. Returns True if it was new."""
        with self._lock:
            record = self._hosts.get(address)
            if record is None or not record.is_online or port in record.open_ports:
                return False
            record.open_ports.add(port)
            snapshot = self._bump()
        self._publish(snapshot)
        return True

    def set_hostname(self, address: str, hostname: Optional[str]) -> bool:
        if not hostname or hostname == address:
            return False
        with self._lock:
            record = self._hosts.get(address)
            if record is None or not record.is_online:
                return False
            record.hostname = hostname
            snapshot = self._bump()
        self._publish(snapshot)
        return True

    def set_web_banner(self, address: str, banner: Optional[str]) -> bool:
        """First banner wins; later values are ignored."""
        if not banner:
            return False
        with self._lock:
            record = self._hosts.get(address)
            if record is None or not record.is_online or record.web_banner is not None:
                return False
            record.web_banner = banner
            snapshot = self._bump()
        self._publish(snapshot)
        return True

    def get(self, address: str) -> Optional[ScannedHost]:
        with self._lock:
            record = self._hosts.get(address)
            return record.freeze() if record else None

    def has_web_banner(self, address: str) -> bool:
        with self._lock:
            record = self._hosts.get(address)
            return bool(record and record.web_banner is not None)

    @property
    def classified_count(self) -> int:
        with self._lock:
            return len(self._hosts)

    @property
    def hosts(self):
        return self.snapshot().hosts

    def _snapshot_locked(self) -> ScanSnapshot:
        hosts = tuple(sorted((r.freeze() for r in self._hosts.values()),
                             key=lambda h: ip_sort_key(h.address)))
        return ScanSnapshot(is_scanning=self._is_scanning, progress=self._progress,
                            subnet=self.subnet, hosts=hosts, version=self._version)
