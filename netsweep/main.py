#!/usr/bin/env python3
"""
netsweep - Main Entry Point
A terminal front end for the LAN sweep, the port range scanner and the
external network tools.
"""

import argparse
import logging
import sys
import time
from typing import List, Optional

import colorama
from colorama import Fore
from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.table import Table

from netsweep.config import ScanSettings
from netsweep.events import EventLog
from netsweep.external import CommandError, CommandRunner, classify_ping_line, dig_command, host_command, ping_command, whois_command
from netsweep.interfaces import list_interfaces, suggest_subnet
from netsweep.lan_scanner import LanScanner
from netsweep.models import LogEntry, ScannedHost, Severity
from netsweep.scanner_engine import PortRangeScanner, fetch_service_info

logger = logging.getLogger(__name__)

VERSION = "1.0.0"
BANNER = f"""
{Fore.BLUE}=====================================
{Fore.WHITE}netsweep v{VERSION}
{Fore.CYAN}LAN discovery and port scanning
{Fore.BLUE}=====================================
"""

SEVERITY_COLORS = {
    Severity.INFO: Fore.CYAN,
    Severity.SUCCESS: Fore.GREEN,
    Severity.ERROR: Fore.RED,
    Severity.DEBUG: Fore.WHITE,
}


def print_event(entry: LogEntry):
    color = SEVERITY_COLORS.get(entry.severity, "")
    print(f"{color}[{entry.severity.value.upper()}] {entry.message}")


def hosts_table(hosts: List[ScannedHost], title: str) -> Table:
    table = Table(title=title)
    table.add_column("Address", style="cyan")
    table.add_column("Ping (ms)", style="green")
    table.add_column("Hostname", style="yellow")
    table.add_column("Open Ports", style="magenta")
    table.add_column("Web Server", style="blue")
    for host in hosts:
        table.add_row(
            host.address,
            f"{host.ping_time_ms:.1f}" if host.ping_time_ms is not None else "",
            host.hostname or "",
            ", ".join(str(p) for p in host.open_ports),
            host.web_banner or "",
        )
    return table


def run_with_progress(console: Console, description: str, scanner) -> bool:
    """
    Show a progress bar until scanner stops. Ctrl+C stops the scan.

    Returns:
        bool: False if the user interrupted the scan
    """
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task(description, total=1.0)
        try:
            while not scanner.wait(timeout=0.2):
                progress.update(task, completed=scanner.progress)
        except KeyboardInterrupt:
            stop = getattr(scanner, "stop_lan_scan", None) or scanner.stop_port_scan
            stop()
            scanner.wait(timeout=5.0)
            return False
        progress.update(task, completed=scanner.progress)
    return True


def cmd_lan(args, settings: ScanSettings, events: EventLog, console: Console) -> int:
    subnet = args.subnet or suggest_subnet()
    scanner = LanScanner(settings=settings, event_log=events)
    if not scanner.start_lan_scan(subnet):
        return 1

    finished = run_with_progress(console, f"[cyan]Sweeping {subnet}...", scanner)
    snapshot = scanner.snapshot()
    online = list(snapshot.online_hosts)
    if online:
        console.print(Panel(hosts_table(online, f"Live hosts on {snapshot.subnet}.0/24")))
    else:
        print(f"{Fore.YELLOW}[WARNING] No live hosts found on {snapshot.subnet}.0/24")
    if not finished:
        print(f"\n{Fore.RED}[INFO] Scan interrupted by user")
    return 0


def cmd_ports(args, settings: ScanSettings, events: EventLog, console: Console) -> int:
    scanner = PortRangeScanner(settings=settings, event_log=events)
    protocol = "udp" if args.udp else "tcp"
    if not scanner.start_port_scan(args.target, args.start, args.end, protocol):
        return 1

    started = time.monotonic()
    finished = run_with_progress(console, f"[cyan]Scanning {args.target}...", scanner)
    open_ports = scanner.open_ports
    table = Table(title=f"Scan Results for {args.target}")
    table.add_column("Port", style="cyan")
    table.add_column("Protocol", style="green")
    table.add_column("Service", style="yellow")
    for port in open_ports:
        table.add_row(str(port), protocol.upper(), fetch_service_info(port))
    console.print(Panel(table))
    console.print(f"[bold]Duration:[/] {time.monotonic() - started:.2f} seconds, "
                  f"[bold]open ports:[/] {len(open_ports)}")
    if not finished:
        print(f"\n{Fore.RED}[INFO] Scan interrupted by user")
    return 0


def cmd_interfaces(args, settings: ScanSettings, events: EventLog, console: Console) -> int:
    table = Table(title="Network Interfaces")
    table.add_column("Name", style="cyan")
    table.add_column("Address", style="green")
    table.add_column("Netmask", style="yellow")
    table.add_column("Subnet", style="magenta")
    for iface in list_interfaces():
        table.add_row(iface.name, iface.ip, iface.netmask, iface.subnet)
    console.print(table)
    return 0


TOOL_BUILDERS = {
    "ping": lambda target: ping_command(target, count=4),
    "dig": dig_command,
    "whois": whois_command,
    "host": host_command,
}


def cmd_tool(args, settings: ScanSettings, events: EventLog, console: Console) -> int:
    try:
        command, tool_args = TOOL_BUILDERS[args.tool](args.target)
    except ValueError as e:
        events.error(str(e))
        return 1

    runner = CommandRunner()
    try:
        for line in runner.run(command, tool_args):
            if args.tool == "ping":
                color = SEVERITY_COLORS[classify_ping_line(line)]
                print(f"{color}{line}")
            else:
                print(line)
    except CommandError as e:
        events.error(str(e))
        return 1
    except KeyboardInterrupt:
        runner.stop()
    return 0


def setup_args(argv: Optional[List[str]] = None):
    """
    Setup and parse command line arguments.

    Returns:
        Namespace: The parsed command line arguments
    """
    parser = argparse.ArgumentParser(
        description="netsweep - LAN discovery and port scanning",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose output")
    parser.add_argument("--version", action="version", version=f"netsweep v{VERSION}")
    sub = parser.add_subparsers(dest="command", required=True)

    lan = sub.add_parser("lan", help="Sweep a /24 for live hosts and services")
    lan.add_argument("subnet", nargs="?", help="Subnet such as 192.168.1.0 (default: first interface)")
    lan.set_defaults(handler=cmd_lan)

    ports = sub.add_parser("ports", help="Scan a port range on one target")
    ports.add_argument("target", help="Target host (IP address or hostname)")
    ports.add_argument("start", type=int, help="First port")
    ports.add_argument("end", type=int, help="Last port")
    ports.add_argument("--udp", action="store_true", help="Probe UDP instead of TCP")
    ports.set_defaults(handler=cmd_ports)

    ifaces = sub.add_parser("interfaces", help="List active IPv4 interfaces")
    ifaces.set_defaults(handler=cmd_interfaces)

    tool = sub.add_parser("tool", help="Run an external network tool")
    tool.add_argument("tool", choices=sorted(TOOL_BUILDERS))
    tool.add_argument("target", help="Host or domain")
    tool.set_defaults(handler=cmd_tool)

    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point of the application."""
    load_dotenv()
    colorama.init(autoreset=True)
    args = setup_args(argv)

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler()],
    )

    settings = ScanSettings.from_env()
    events = EventLog()
    events.subscribe(print_event)
    console = Console()

    print(BANNER)
    return args.handler(args, settings, events, console)


if __name__ == "__main__":
    sys.exit(main())
