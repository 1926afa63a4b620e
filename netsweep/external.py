"""
External tool runner - streams the output of ping, dig, whois and host

Output is handed back line by line as text; nothing here parses protocol
results. Tools are located on PATH.
"""

import logging
import shutil
import subprocess
import threading
from typing import Iterator, List, Optional, Sequence, Tuple

from netsweep.models import Severity

logger = logging.getLogger(__name__)

DNS_RECORD_TYPES = ("A", "AAAA", "CNAME", "MX", "NS", "TXT", "SOA", "PTR")


class CommandError(RuntimeError):
    pass


class CommandRunner:
    """
    Runs one external command at a time and yields its combined
    stdout/stderr as text lines.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._process: Optional[subprocess.Popen] = None

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._process is not None and self._process.poll() is None

    def run(self, command_path: str, args: Sequence[str]) -> Iterator[str]:
        """
        Start command_path with args and stream its output.

        Raises:
            CommandError: If the executable cannot be found or started
        """
        executable = shutil.which(command_path) or command_path
        try:
            process = subprocess.Popen(
                [executable, *args],
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                errors="replace",
            )
        except OSError as e:
            raise CommandError(f"Failed to start {command_path}: {e}") from e

        with self._lock:
            self._process = process
        logger.debug(f"Started {executable} {' '.join(args)}")
        try:
            for line in process.stdout:
                yield line.rstrip("\n")
        finally:
            process.stdout.close()
            process.wait()
            with self._lock:
                if self._process is process:
                    self._process = None

    def stop(self) -> bool:
        """Terminate the running command. No-op when idle."""
        with self._lock:
            process = self._process
        if process is None or process.poll() is not None:
            return False
        process.terminate()
        return True


def ping_command(host: str, interval: float = 1.0, count: Optional[int] = None) -> Tuple[str, List[str]]:
    if not host.strip():
        raise ValueError("Hostname cannot be empty.")
    args = ["-i", f"{interval:.1f}"]
    if count is not None:
        args += ["-c", str(count)]
    return "ping", args + [host.strip()]


def dig_command(domain: str, record_type: str = "A", server: str = "",
                short: bool = False) -> Tuple[str, List[str]]:
    record_type = record_type.upper()
    if record_type not in DNS_RECORD_TYPES:
        raise ValueError(f"Unsupported record type: {record_type}")
    if not domain.strip():
        raise ValueError("Domain cannot be empty.")
    args = []
    if server.strip():
        args.append(f"@{server.strip()}")
    args += [domain.strip(), record_type]
    if short:
        args.append("+short")
    return "dig", args


def whois_command(domain: str) -> Tuple[str, List[str]]:
    if not domain.strip():
        raise ValueError("Domain cannot be empty.")
    return "whois", [domain.strip()]


def host_command(domain: str) -> Tuple[str, List[str]]:
    if not domain.strip():
        raise ValueError("Domain cannot be empty.")
    return "host", [domain.strip()]


def classify_ping_line(line: str) -> Severity:
    if "timeout" in line or "error" in line or "Unknown" in line:
        return Severity.ERROR
    return Severity.SUCCESS
