"""
LAN Scanner - owns one sweep session at a time

start_lan_scan() validates the prefix, creates a fresh ResultStore and runs
discovery plus service scanning on a background thread. stop_lan_scan()
flips the running flag and stops new work from being scheduled; work that is
already in flight finishes against the old session's store.

The host slots and the service pool belong to the scanner, not to a run, so
a run started right after a stop shares the same limits with whatever the
stopped run still has in flight.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional

from netsweep.config import ScanSettings
from netsweep.events import EventLog
from netsweep.host_discovery import HostDiscoveryStage, InvalidSubnetError, parse_subnet_prefix
from netsweep.models import ScanSnapshot
from netsweep.result_store import Observer, ResultStore
from netsweep.service_scan import ServiceScanStage, grab_web_banner, resolve_hostname
from netsweep.threading_module import ConcurrencyGauge

logger = logging.getLogger(__name__)


class LanScanner:
    """Entry point for subnet sweeps."""

    def __init__(self, settings: Optional[ScanSettings] = None,
                 event_log: Optional[EventLog] = None,
                 probe: Optional[Callable[..., bool]] = None,
                 resolver: Callable[[str], Optional[str]] = resolve_hostname,
                 banner_grabber: Callable[..., Optional[str]] = grab_web_banner):
        self.settings = settings or ScanSettings()
        self.events = event_log or EventLog()
        self.probe = probe
        self.resolver = resolver
        self.banner_grabber = banner_grabber
        self._lock = threading.Lock()
        self._store = ResultStore()
        self._cancel_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._observers: List[Observer] = []
        self._host_slots = threading.BoundedSemaphore(self.settings.host_concurrency)
        self._service_pool = ThreadPoolExecutor(max_workers=self.settings.service_concurrency,
                                                thread_name_prefix="service-scan")
        self.host_gauge = ConcurrencyGauge("host-discovery")
        self.service_gauge = ConcurrencyGauge("service-scan")
        # Stages of the most recent run, kept for inspection
        self.discovery_stage: Optional[HostDiscoveryStage] = None
        self.service_stage: Optional[ServiceScanStage] = None

    @property
    def store(self) -> ResultStore:
        with self._lock:
            return self._store

    @property
    def is_scanning(self) -> bool:
        return self.store.is_scanning

    @property
    def progress(self) -> float:
        return self.store.progress

    @property
    def hosts(self):
        return self.store.hosts

    def snapshot(self) -> ScanSnapshot:
        return self.store.snapshot()

    def subscribe(self, observer: Observer):
        """Observe the current session and every later one."""
        with self._lock:
            self._observers.append(observer)
            self._store.subscribe(observer)

    def start_lan_scan(self, subnet: str) -> bool:
        """
        Start sweeping subnet in the background.

        Args:
            subnet: "192.168.1", "192.168.1.0" or "192.168.1.0/24"

        Returns:
            bool: True if a new scan was launched
        """
        with self._lock:
            if self._store.is_scanning:
                return False
            try:
                prefix = parse_subnet_prefix(subnet)
            except InvalidSubnetError as e:
                self.events.error(str(e))
                return False

            store = ResultStore(subnet=prefix)
            for observer in self._observers:
                store.subscribe(observer)
            cancel_event = threading.Event()
            service_stage = ServiceScanStage(store, self.settings, probe=self.probe,
                                             resolver=self.resolver,
                                             banner_grabber=self.banner_grabber,
                                             cancel_event=cancel_event,
                                             executor=self._service_pool,
                                             gauge=self.service_gauge)
            discovery_stage = HostDiscoveryStage(store, service_stage, self.settings,
                                                 probe=self.probe, cancel_event=cancel_event,
                                                 host_slots=self._host_slots,
                                                 gauge=self.host_gauge)
            store.begin()
            thread = threading.Thread(target=self._run, name=f"lan-scan-{prefix}",
                                      args=(prefix, store, discovery_stage, service_stage, cancel_event),
                                      daemon=True)
            self._store = store
            self._cancel_event = cancel_event
            self._thread = thread
            self.discovery_stage = discovery_stage
            self.service_stage = service_stage

        self.events.info(f"Scanning {prefix}.1-254")
        thread.start()
        return True

    def _run(self, prefix: str, store: ResultStore, discovery_stage: HostDiscoveryStage,
             service_stage: ServiceScanStage, cancel_event: threading.Event):
        try:
            discovery_stage.sweep(prefix)
        except Exception as e:
            logger.error(f"LAN scan of {prefix} failed: {e}")
            self.events.error(f"LAN scan failed: {e}")
            store.stop()
            return
        finally:
            service_stage.shutdown()

        if cancel_event.is_set():
            return
        if store.finish():
            online = len(store.snapshot().online_hosts)
            self.events.success("Scan Complete.", subnet=prefix, online_hosts=online)

    def stop_lan_scan(self) -> bool:
        """Stop scheduling new hosts. No-op when nothing is running."""
        with self._lock:
            store = self._store
            cancel_event = self._cancel_event
        if not store.stop():
            return False
        cancel_event.set()
        self.events.info("LAN scan stopped.")
        return True

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Join the background thread of the latest run. False if still running."""
        with self._lock:
            thread = self._thread
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    def close(self):
        """Stop any running sweep and release the service pool."""
        self.stop_lan_scan()
        self._service_pool.shutdown(wait=False)
