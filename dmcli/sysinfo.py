"""System snapshot: host, memory, disks, interfaces and LAN neighbours."""

import logging
import platform
import re
import shutil
import socket
import subprocess
from datetime import datetime

import click
import psutil

from dmcli import ui
from dmcli.util import format_size

logger = logging.getLogger(__name__)

MAX_NEIGHBOURS = 25

_ARP_UNIX = re.compile(r"\((?P<ip>[\d.]+)\) at (?P<mac>[0-9a-fA-F:]+)")
_ARP_WINDOWS = re.compile(
    r"^\s*(?P<ip>\d+\.\d+\.\d+\.\d+)\s+(?P<mac>[0-9a-fA-F]{2}(?:-[0-9a-fA-F]{2}){5})\s+(?P<type>\w+)"
)


class Disk:
    def __init__(self, mountpoint, used, total, percent):
        self.mountpoint = mountpoint
        self.used = used
        self.total = total
        self.percent = percent


class Interface:
    def __init__(self, name, up, mac="", addresses=None):
        self.name = name
        self.up = up
        self.mac = mac
        self.addresses = list(addresses or [])


class Neighbour:
    def __init__(self, ip, mac, kind=""):
        self.ip = ip
        self.mac = mac
        self.kind = kind

    def __eq__(self, other):
        if not isinstance(other, Neighbour):
            return NotImplemented
        return (self.ip, self.mac, self.kind) == (other.ip, other.mac, other.kind)

    def __repr__(self):
        return f"Neighbour({self.ip!r}, {self.mac!r}, {self.kind!r})"


class Snapshot:
    def __init__(self):
        self.generated_at = datetime.now().astimezone()
        self.hostname = ""
        self.os = ""
        self.arch = ""
        self.cpu_count = 0
        self.boot_time = None
        self.memory_total = 0
        self.memory_used = 0
        self.disks = []
        self.interfaces = []
        self.neighbours = []
        self.warnings = []


def parse_arp(output: str) -> list[Neighbour]:
    """Parse ``arp -a`` output from Windows or BSD/Linux."""
    out = []
    for line in output.splitlines():
        m = _ARP_WINDOWS.match(line)
        if m:
            out.append(Neighbour(m.group("ip"), m.group("mac").lower().replace("-", ":"),
                                 m.group("type").lower()))
            continue
        m = _ARP_UNIX.search(line)
        if m:
            out.append(Neighbour(m.group("ip"), m.group("mac").lower(), "dynamic"))
    return out


def _arp_neighbours() -> list[Neighbour]:
    if shutil.which("arp") is None:
        raise OSError("arp not available")
    result = subprocess.run(["arp", "-a"], capture_output=True, text=True, timeout=10)
    return parse_arp(result.stdout)


def _interfaces() -> list[Interface]:
    stats = psutil.net_if_stats()
    out = []
    for name, addrs in sorted(psutil.net_if_addrs().items()):
        mac = ""
        addresses = []
        for a in addrs:
            if a.family == psutil.AF_LINK:
                mac = a.address
            elif a.family in (socket.AF_INET, socket.AF_INET6):
                addresses.append(a.address)
        up = bool(stats[name].isup) if name in stats else False
        out.append(Interface(name, up, mac, addresses))
    return out


def _disks() -> list[Disk]:
    out = []
    for part in psutil.disk_partitions(all=False):
        try:
            usage = psutil.disk_usage(part.mountpoint)
        except (OSError, psutil.Error) as e:
            logger.debug("skipping %s: %s", part.mountpoint, e)
            continue
        out.append(Disk(part.mountpoint, usage.used, usage.total, usage.percent))
    return out


def collect() -> Snapshot:
    """Gather what can be read; each section that fails adds a warning."""
    s = Snapshot()
    s.hostname = socket.gethostname()
    s.os = platform.system().lower()
    s.arch = platform.machine().lower()
    s.cpu_count = psutil.cpu_count(logical=True) or 0

    try:
        s.boot_time = datetime.fromtimestamp(psutil.boot_time()).astimezone()
    except (OSError, RuntimeError, psutil.Error) as e:
        s.warnings.append(f"boot time: {e}")

    try:
        mem = psutil.virtual_memory()
        s.memory_total = mem.total
        s.memory_used = mem.total - mem.available
    except (OSError, RuntimeError, psutil.Error) as e:
        s.warnings.append(f"memory: {e}")

    try:
        s.disks = _disks()
    except (OSError, RuntimeError, psutil.Error) as e:
        s.warnings.append(f"disks: {e}")

    try:
        s.interfaces = _interfaces()
    except (OSError, RuntimeError, psutil.Error) as e:
        s.warnings.append(f"interfaces: {e}")

    try:
        s.neighbours = _arp_neighbours()
    except (OSError, subprocess.SubprocessError) as e:
        s.warnings.append(f"arp: {e}")

    return s


def _dash(v) -> str:
    v = str(v or "").strip()
    return v or "-"


def render(s: Snapshot):
    ui.section("System Snapshot")
    ui.kv("Generated", s.generated_at.isoformat(timespec="seconds"))
    ui.kv("Host", _dash(s.hostname))
    ui.kv("OS", f"{s.os}/{s.arch}")
    ui.kv("CPU", str(s.cpu_count))
    if s.boot_time is not None:
        uptime = datetime.now().astimezone() - s.boot_time
        minutes = int(uptime.total_seconds() // 60)
        ui.kv("Boot time", s.boot_time.isoformat(timespec="seconds"))
        ui.kv("Uptime", f"{minutes // 60}h{minutes % 60:02d}m")
    if s.memory_total:
        ui.kv("Memory", f"{format_size(s.memory_used, True)} used / "
                        f"{format_size(s.memory_total, True)} total")

    ui.section("Disks")
    if not s.disks:
        click.echo(ui.muted("- none"))
    else:
        click.echo(f"{'Mount':<20} {'Used':<13} {'Total':<13} {'Use%':<6}")
        for d in s.disks:
            click.echo(f"{d.mountpoint:<20} {format_size(d.used, True):<13} "
                       f"{format_size(d.total, True):<13} {d.percent:5.1f}%")

    ui.section("Interfaces")
    if not s.interfaces:
        click.echo(ui.muted("- none"))
    else:
        click.echo(f"{'Name':<30} {'State':<6} {'MAC':<17} Addresses")
        for inf in s.interfaces:
            state = "up" if inf.up else "down"
            addrs = ", ".join(inf.addresses) or "-"
            click.echo(f"{inf.name:<30} {state:<6} {_dash(inf.mac):<17} {addrs}")

    ui.section("LAN Neighbors (ARP)")
    if not s.neighbours:
        click.echo(ui.muted("- none"))
    else:
        click.echo(f"{'IP':<16} {'MAC':<17} Type")
        for n in s.neighbours[:MAX_NEIGHBOURS]:
            click.echo(f"{n.ip:<16} {n.mac:<17} {n.kind}")
        if len(s.neighbours) > MAX_NEIGHBOURS:
            click.echo(ui.muted(f"... and {len(s.neighbours) - MAX_NEIGHBOURS} more"))

    if s.warnings:
        ui.section("Warnings")
        for w in s.warnings:
            click.echo(f"- {ui.warn(w)}")
