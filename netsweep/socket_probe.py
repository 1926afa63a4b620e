"""
Socket Probe - timeout-bounded TCP/UDP connect attempts

A probe resolves exactly once to open or closed. The connect runs on a
non-blocking socket and a selector wait races the deadline, so a black-holed
address costs at most the timeout plus one poll interval.

UDP results are an approximation: a datagram socket is "ready" as soon as it
is connected locally. No reply from the remote side is required, so UDP
results say little about the remote service.
"""

import errno
import logging
import selectors
import socket
import threading
import time
from enum import Enum
from typing import Optional

from netsweep.models import ScanProtocol

logger = logging.getLogger(__name__)

# connect_ex() codes meaning "handshake still in flight"
_IN_PROGRESS = {0, errno.EINPROGRESS, errno.EWOULDBLOCK, errno.EALREADY, 10035}


class ProbeState(Enum):
    INIT = "init"
    CONNECTING = "connecting"
    READY = "ready"
    FAILED = "failed"
    TIMEDOUT = "timedout"
    CANCELLED = "cancelled"


TERMINAL_STATES = frozenset({ProbeState.READY, ProbeState.FAILED,
                             ProbeState.TIMEDOUT, ProbeState.CANCELLED})


class ProbeAttempt:
    """
    One connect attempt with a single-fire outcome.

    Whichever of success, failure, timeout or cancel() gets to the lock first
    decides the result; every later transition is ignored.
    """

    def __init__(self, host: str, port: int, protocol: ScanProtocol = ScanProtocol.TCP,
                 timeout: float = 1.0, poll_interval: float = 0.05):
        self.host = host
        self.port = port
        self.protocol = ScanProtocol.parse(protocol)
        self.timeout = timeout
        self.poll_interval = poll_interval
        self._lock = threading.Lock()
        self._state = ProbeState.INIT
        self._finished = threading.Event()

    @property
    def state(self) -> ProbeState:
        with self._lock:
            return self._state

    @property
    def is_open(self) -> bool:
        return self.state is ProbeState.READY

    @property
    def done(self) -> bool:
        return self._finished.is_set()

    def _begin(self) -> bool:
        with self._lock:
            if self._state is not ProbeState.INIT:
                return False
            self._state = ProbeState.CONNECTING
            return True

    def _resolve(self, state: ProbeState) -> bool:
        """Move to a terminal state. Returns False if another outcome already won."""
        with self._lock:
            if self._state in TERMINAL_STATES:
                return False
            self._state = state
        self._finished.set()
        return True

    def cancel(self) -> bool:
        """Cancel from any thread; the running attempt notices within one poll interval."""
        return self._resolve(ProbeState.CANCELLED)

    def wait(self, timeout: Optional[float] = None) -> bool:
        self._finished.wait(timeout)
        return self.is_open

    def run(self) -> bool:
        """
        Execute the attempt in the calling thread.

        Returns:
            bool: True if the port answered before the deadline
        """
        if not self._begin():
            return self.is_open

        deadline = time.monotonic() + self.timeout
        sock_type = socket.SOCK_STREAM if self.protocol is ScanProtocol.TCP else socket.SOCK_DGRAM
        try:
            sock = socket.socket(socket.AF_INET, sock_type)
        except OSError as e:
            logger.debug(f"Could not create socket for {self.host}:{self.port} - {e}")
            self._resolve(ProbeState.FAILED)
            return False

        try:
            sock.setblocking(False)
            try:
                code = sock.connect_ex((self.host, self.port))
            except OSError as e:
                # Name resolution errors and the like
                logger.debug(f"Connect to {self.host}:{self.port} failed - {e}")
                self._resolve(ProbeState.FAILED)
                return False

            if code not in _IN_PROGRESS:
                self._resolve(ProbeState.FAILED)
                return False

            with selectors.DefaultSelector() as selector:
                selector.register(sock, selectors.EVENT_WRITE)
                while not self._finished.is_set():
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        self._resolve(ProbeState.TIMEDOUT)
                        break
                    if not selector.select(min(remaining, self.poll_interval)):
                        continue
                    if self.protocol is ScanProtocol.TCP:
                        err = sock.getsockopt(socket.SOL_SOCKET, socket.SO_ERROR)
                        self._resolve(ProbeState.READY if err == 0 else ProbeState.FAILED)
                    else:
                        self._resolve(ProbeState.READY)
                    break
        finally:
            sock.close()

        return self.is_open


class SocketProbe:
    """Factory and runner for ProbeAttempts, callable as probe(host, port, protocol, timeout)."""

    def __init__(self, poll_interval: float = 0.05):
        self.poll_interval = poll_interval

    def attempt(self, host: str, port: int, protocol=ScanProtocol.TCP,
                timeout: float = 1.0) -> ProbeAttempt:
        return ProbeAttempt(host, port, protocol, timeout, self.poll_interval)

    def probe(self, host: str, port: int, protocol=ScanProtocol.TCP,
              timeout: float = 1.0) -> bool:
        return self.attempt(host, port, protocol, timeout).run()

    __call__ = probe
