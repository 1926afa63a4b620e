"""
Data models shared by the LAN sweep and the port range scanner.
"""

import ipaddress
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class ScanProtocol(str, Enum):
    """Transport used by a probe."""
    TCP = "tcp"
    UDP = "udp"

    @classmethod
    def parse(cls, value) -> "ScanProtocol":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unsupported protocol: {value}")


class Severity(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    ERROR = "error"
    DEBUG = "debug"


@dataclass(frozen=True)
class LogEntry:
    """A structured event published to subscribers of an EventLog."""
    message: str
    severity: Severity = Severity.INFO
    timestamp: datetime = field(default_factory=datetime.now)
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "severity": self.severity.value,
            "timestamp": self.timestamp.isoformat(),
            "details": dict(self.details),
        }


def ip_sort_key(address: str) -> int:
    """Numeric ordering key for dotted-quad addresses."""
    return int(ipaddress.IPv4Address(address))


@dataclass(frozen=True)
class ScannedHost:
    """
    Immutable view of one address in a LAN sweep.

    Offline hosts never carry open ports, a hostname or a web banner.
    """
    address: str
    is_online: bool
    open_ports: Tuple[int, ...] = ()
    ping_time_ms: Optional[float] = None
    hostname: Optional[str] = None
    web_banner: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "is_online": self.is_online,
            "open_ports": list(self.open_ports),
            "ping_time_ms": self.ping_time_ms,
            "hostname": self.hostname,
            "web_banner": self.web_banner,
        }


@dataclass(frozen=True)
class ScanSnapshot:
    """Consistent point-in-time copy of a scan's observable state."""
    is_scanning: bool
    progress: float
    subnet: Optional[str] = None
    hosts: Tuple[ScannedHost, ...] = ()
    version: int = 0

    @property
    def online_hosts(self) -> Tuple[ScannedHost, ...]:
        return tuple(h for h in self.hosts if h.is_online)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_scanning": self.is_scanning,
            "progress": self.progress,
            "subnet": self.subnet,
            "hosts": [h.to_dict() for h in self.hosts],
        }
