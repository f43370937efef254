# hostpulse/internal/providers/local.py

"""
Metrics provider for the machine hostpulse itself runs on.
Collects CPU, Memory, Disk, and Network metrics with psutil.
"""

import asyncio
import os
from typing import Callable

import psutil

from hostpulse.internal.providers.base import MetricsProvider
from hostpulse.internal.utils.timeutil import utc_now
from hostpulse.models.metrics import (
    CpuStats,
    DiskStats,
    InterfaceStats,
    MemoryStats,
    NetworkStats,
    ProcessInfo,
    Sample,
)

PROCESS_ATTRS = [
    "pid", "username", "cpu_percent", "memory_percent",
    "memory_info", "name", "cmdline", "status",
]


def _default_disk_path() -> str:
    return os.path.abspath(os.sep)


class LocalHostProvider(MetricsProvider):

    def __init__(self, disk_path: str | None = None, clock: Callable = utc_now):
        """
        Args:
            disk_path: Mount point whose usage is reported (default: filesystem root)
            clock: Returns the timestamp stamped on each sample
        """
        self.disk_path = disk_path or _default_disk_path()
        self.clock = clock
        # Warmup: the first non-blocking cpu_percent() call always reports 0.0
        psutil.cpu_percent(interval=None)
        psutil.cpu_percent(interval=None, percpu=True)

    def collect_cpu_metrics(self) -> CpuStats:
        usage = float(psutil.cpu_percent(interval=None))
        per_core = psutil.cpu_percent(interval=None, percpu=True)
        load1, load5, load15 = psutil.getloadavg()
        return CpuStats(
            usage_percent=min(100.0, max(0.0, usage)),
            per_core=[min(100.0, max(0.0, float(c))) for c in per_core],
            load_average=(float(load1), float(load5), float(load15)),
        )

    def collect_memory_metrics(self) -> MemoryStats:
        mem = psutil.virtual_memory()
        swap = psutil.swap_memory()
        total = int(mem.total)
        return MemoryStats(
            total_bytes=total,
            used_bytes=min(int(mem.used), total),
            available_bytes=int(mem.available),
            # 'cached' is only reported on Linux/BSD
            cached_bytes=int(getattr(mem, "cached", 0)),
            swap_total_bytes=int(swap.total),
            swap_used_bytes=min(int(swap.used), int(swap.total)),
        )

    def collect_disk_metrics(self) -> DiskStats:
        disk = psutil.disk_usage(self.disk_path)
        total = int(disk.total)
        return DiskStats(
            total_bytes=total,
            used_bytes=min(int(disk.used), total),
            available_bytes=int(disk.free),
            usage_percent=min(100.0, max(0.0, float(disk.percent))),
        )

    def collect_network_metrics(self) -> NetworkStats:
        counters = psutil.net_io_counters(pernic=True) or {}
        return NetworkStats(
            interfaces=[
                InterfaceStats(
                    name=name,
                    rx_bytes=int(nic.bytes_recv),
                    tx_bytes=int(nic.bytes_sent),
                    rx_packets=int(nic.packets_recv),
                    tx_packets=int(nic.packets_sent),
                )
                for name, nic in sorted(counters.items())
            ]
        )

    def collect_sample(self, target: str) -> Sample:
        """Blocking collection of a full sample."""
        return Sample(
            target=target,
            timestamp=self.clock(),
            cpu=self.collect_cpu_metrics(),
            memory=self.collect_memory_metrics(),
            disk=self.collect_disk_metrics(),
            network=self.collect_network_metrics(),
        )

    def collect_processes(self) -> list[ProcessInfo]:
        """
        Lists running processes, highest CPU first. Attributes the current
        user may not read come back empty instead of failing the listing.
        """
        processes = []
        for proc in psutil.process_iter(PROCESS_ATTRS):
            info = proc.info
            mem = info.get("memory_info")
            processes.append(ProcessInfo(
                pid=info["pid"],
                user=info.get("username") or "",
                cpu_percent=float(info.get("cpu_percent") or 0.0),
                mem_percent=float(info.get("memory_percent") or 0.0),
                vsz_bytes=int(mem.vms) if mem else 0,
                rss_bytes=int(mem.rss) if mem else 0,
                command=" ".join(info.get("cmdline") or []) or info.get("name") or "",
                state=info.get("status") or "",
            ))
        processes.sort(key=lambda p: p.cpu_percent, reverse=True)
        return processes

    async def sample(self, target: str) -> Sample:
        return await asyncio.to_thread(self.collect_sample, target)

    async def processes(self, target: str) -> list[ProcessInfo]:
        return await asyncio.to_thread(self.collect_processes)
