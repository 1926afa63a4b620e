"""
Host Discovery Stage - liveness sweep over a /24 prefix

A host counts as online as soon as any discovery port accepts a TCP
connection. The time until that first answer stands in for a ping time.
"""

import logging
import threading
import time
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from typing import Callable, Optional, Tuple

from netsweep.config import ScanSettings
from netsweep.models import ScanProtocol
from netsweep.result_store import ResultStore
from netsweep.service_scan import ServiceScanStage
from netsweep.socket_probe import SocketProbe
from netsweep.threading_module import BoundedExecutor, ConcurrencyGauge

logger = logging.getLogger(__name__)

HOST_SUFFIXES = range(1, 255)


class InvalidSubnetError(ValueError):
    pass


def parse_subnet_prefix(subnet: str) -> str:
    """
    Normalise user input to the first three octets of a /24.

    Accepts "192.168.1", "192.168.1.0" and "192.168.1.0/24".

    Raises:
        InvalidSubnetError: If the input is not three dot-separated octets
    """
    text = (subnet or "").strip()
    if text.endswith("/24"):
        text = text[:-3]
    parts = text.split(".")
    if len(parts) == 4 and parts[3] == "0":
        parts = parts[:3]
    if len(parts) != 3:
        raise InvalidSubnetError(f"Invalid subnet '{subnet}'. Use '192.168.1.0'")
    for part in parts:
        if not part.isdigit() or int(part) > 255:
            raise InvalidSubnetError(f"Invalid subnet '{subnet}'. Use '192.168.1.0'")
    return ".".join(str(int(p)) for p in parts)


def check_host_online(address: str, probe: Callable[..., bool], ports: Tuple[int, ...],
                      timeout: float, executor: ThreadPoolExecutor) -> Tuple[bool, Optional[float]]:
    """
    Probe all discovery ports of address in parallel.

    Args:
        address: Host to check
        probe: probe(host, port, protocol, timeout) -> bool
        ports: Discovery ports
        timeout: Per-probe timeout
        executor: Pool the individual probes run on

    Returns:
        Tuple[bool, Optional[float]]: (online, ms until the first open port)
    """
    start = time.monotonic()
    pending = {executor.submit(probe, address, port, ScanProtocol.TCP, timeout) for port in ports}
    ping_time_ms = None
    while pending:
        done, pending = wait(pending, return_when=FIRST_COMPLETED)
        for future in done:
            try:
                is_open = future.result()
            except Exception as e:
                logger.debug(f"Discovery probe on {address} raised {e}")
                is_open = False
            if is_open and ping_time_ms is None:
                ping_time_ms = (time.monotonic() - start) * 1000
    return ping_time_ms is not None, ping_time_ms


class HostDiscoveryStage:
    """
    Sweeps prefix.1 through prefix.254 with bounded host concurrency and
    hands every online host to the service stage.
    """

    def __init__(self, store: ResultStore, service_stage: ServiceScanStage,
                 settings: Optional[ScanSettings] = None,
                 probe: Optional[Callable[..., bool]] = None,
                 cancel_event: Optional[threading.Event] = None,
                 host_slots: Optional[threading.Semaphore] = None,
                 gauge: Optional[ConcurrencyGauge] = None):
        self.store = store
        self.service_stage = service_stage
        self.settings = settings or ScanSettings()
        self.probe = probe or SocketProbe().probe
        self.cancel_event = cancel_event or threading.Event()
        # Sweeps that share host_slots never check more than its size of hosts together
        self.host_slots = host_slots
        self.gauge = gauge or ConcurrencyGauge("host-discovery")

    def sweep(self, prefix: str) -> int:
        """
        Classify every address of the prefix, then wait for service scans.

        Returns:
            int: Number of hosts scheduled before the sweep ended or was stopped
        """
        host_pool = BoundedExecutor(self.settings.host_concurrency, name="host-discovery",
                                    stop_event=self.cancel_event, slots=self.host_slots)
        probe_pool = ThreadPoolExecutor(
            max_workers=self.settings.host_concurrency * max(len(self.settings.discovery_ports), 1),
            thread_name_prefix="discovery-probe",
        )
        scheduled = 0
        try:
            for suffix in HOST_SUFFIXES:
                if self.cancel_event.is_set():
                    break
                # Blocks while all host slots are busy; None once stopped
                if host_pool.submit(self._check_host, f"{prefix}.{suffix}", probe_pool) is None:
                    break
                scheduled += 1
            host_pool.wait_all()
        finally:
            host_pool.shutdown()
            probe_pool.shutdown(wait=True)

        self.service_stage.drain()
        logger.info(f"Sweep of {prefix}.0/24 scheduled {scheduled} hosts")
        return scheduled

    def _check_host(self, address: str, probe_pool: ThreadPoolExecutor):
        with self.gauge:
            is_online, ping_time_ms = check_host_online(
                address, self.probe, self.settings.discovery_ports,
                self.settings.discovery_timeout, probe_pool)
            self.store.record_host(address, is_online, ping_time_ms)
            if is_online:
                logger.debug(f"{address} is online ({ping_time_ms:.1f} ms)")
                self.service_stage.enqueue(address)
