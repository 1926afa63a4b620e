"""
Configuration - scan tuning knobs with environment overrides

Defaults bound the number of simultaneously open sockets. Values can be
overridden with NETSWEEP_* environment variables, typically from a .env file
loaded by the entry points.
"""

import logging
import os
from dataclasses import dataclass, fields, replace
from typing import Mapping, Optional, Tuple

logger = logging.getLogger(__name__)

# Ports tried in parallel to decide whether a host is alive.
# 445/139 catch Windows/SMB, 53 routers, 22/80/443 Linux and web boxes.
DISCOVERY_PORTS = (80, 443, 22, 53, 445, 139)

# Curated per-host service table: FTP, SSH, Telnet, HTTP, HTTPS, RDP, VNC,
# HTTP-alt and MikroTik Winbox.
SERVICE_PORTS = (21, 22, 23, 80, 443, 3389, 5900, 8080, 8291)

# Open ports that get an HTTP HEAD request for the Server header
BANNER_PORTS = (80, 443, 8080)

ENV_PREFIX = "NETSWEEP_"


@dataclass(frozen=True)
class ScanSettings:
    host_concurrency: int = 8
    service_concurrency: int = 4
    discovery_ports: Tuple[int, ...] = DISCOVERY_PORTS
    discovery_timeout: float = 0.5
    service_ports: Tuple[int, ...] = SERVICE_PORTS
    service_timeout: float = 0.5
    banner_ports: Tuple[int, ...] = BANNER_PORTS
    banner_timeout: float = 2.0
    port_scan_concurrency: int = 100
    port_scan_delay: float = 0.005
    port_scan_timeout: float = 3.0

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ScanSettings":
        """
        Build settings from NETSWEEP_<FIELD> variables.

        Only scalar fields are read; unparsable values are logged and the
        default is kept.

        Args:
            environ: Mapping to read from, os.environ when omitted

        Returns:
            ScanSettings: Settings with any overrides applied
        """
        environ = os.environ if environ is None else environ
        overrides = {}
        for f in fields(cls):
            if f.type not in (int, float, "int", "float"):
                continue
            key = ENV_PREFIX + f.name.upper()
            raw = environ.get(key)
            if raw is None or raw.strip() == "":
                continue
            caster = int if f.type in (int, "int") else float
            try:
                value = caster(raw)
            except ValueError:
                logger.warning(f"Ignoring invalid value for {key}: {raw!r}")
                continue
            if value < 0 or (value == 0 and f.name != "port_scan_delay"):
                logger.warning(f"Ignoring out of range value for {key}: {raw!r}")
                continue
            overrides[f.name] = value
        return replace(cls(), **overrides)
