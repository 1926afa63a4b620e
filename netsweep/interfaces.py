"""
Interface enumeration used to suggest a default subnet to sweep.
"""

import ipaddress
import logging
import socket
from dataclasses import dataclass
from typing import List

import psutil

logger = logging.getLogger(__name__)

DEFAULT_SUBNET = "192.168.1.0"


@dataclass(frozen=True)
class NetworkInterfaceInfo:
    name: str
    ip: str
    netmask: str

    @property
    def subnet(self) -> str:
        """Network address of the interface, e.g. 192.168.1.0"""
        try:
            network = ipaddress.IPv4Network(f"{self.ip}/{self.netmask}", strict=False)
        except ValueError:
            return self.ip
        return str(network.network_address)

    def to_dict(self):
        return {"name": self.name, "ip": self.ip, "netmask": self.netmask, "subnet": self.subnet}


def list_interfaces() -> List[NetworkInterfaceInfo]:
    """Active, non-loopback IPv4 interfaces."""
    try:
        addresses = psutil.net_if_addrs()
        stats = psutil.net_if_stats()
    except (OSError, RuntimeError) as e:
        logger.warning(f"Could not enumerate network interfaces: {e}")
        return []

    interfaces = []
    for name, addrs in addresses.items():
        stat = stats.get(name)
        if stat is not None and not stat.isup:
            continue
        for addr in addrs:
            if addr.family != socket.AF_INET or not addr.address:
                continue
            if addr.address.startswith("127."):
                continue
            interfaces.append(NetworkInterfaceInfo(name=name, ip=addr.address,
                                                   netmask=addr.netmask or "255.255.255.0"))
    return interfaces


def suggest_subnet(default: str = DEFAULT_SUBNET) -> str:
    interfaces = list_interfaces()
    if interfaces:
        return interfaces[0].subnet
    return default
