# hostpulse/models/metrics.py

"""Models for collected samples, stored rows and history responses"""
from datetime import datetime
from typing import Annotated, Literal

from pydantic import BaseModel, Field, model_validator


class CpuStats(BaseModel):
    usage_percent: float = Field(ge=0, le=100)
    per_core: list[Annotated[float, Field(ge=0, le=100)]] = Field(default_factory=list)
    load_average: tuple[float, float, float] = (0.0, 0.0, 0.0)


class MemoryStats(BaseModel):
    total_bytes: int = Field(ge=0)
    used_bytes: int = Field(ge=0)
    available_bytes: int = Field(ge=0)
    cached_bytes: int = Field(default=0, ge=0)
    swap_total_bytes: int = Field(default=0, ge=0)
    swap_used_bytes: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def _used_within_total(self):
        if self.total_bytes > 0 and self.used_bytes > self.total_bytes:
            raise ValueError(
                f"memory used_bytes ({self.used_bytes}) exceeds total_bytes ({self.total_bytes})"
            )
        return self

    @property
    def used_percent(self) -> float | None:
        """Used/total as a percentage; None when total is unknown (0)."""
        if self.total_bytes == 0:
            return None
        return self.used_bytes / self.total_bytes * 100.0


class DiskStats(BaseModel):
    total_bytes: int = Field(ge=0)
    used_bytes: int = Field(ge=0)
    available_bytes: int = Field(ge=0)
    usage_percent: float = Field(ge=0, le=100)

    @model_validator(mode="after")
    def _used_within_total(self):
        if self.total_bytes > 0 and self.used_bytes > self.total_bytes:
            raise ValueError(
                f"disk used_bytes ({self.used_bytes}) exceeds total_bytes ({self.total_bytes})"
            )
        return self


class InterfaceStats(BaseModel):
    name: str
    rx_bytes: int = Field(ge=0)
    tx_bytes: int = Field(ge=0)
    rx_packets: int = Field(default=0, ge=0)
    tx_packets: int = Field(default=0, ge=0)


class NetworkStats(BaseModel):
    interfaces: list[InterfaceStats] = Field(default_factory=list)

    @property
    def rx_bytes(self) -> int:
        return sum(i.rx_bytes for i in self.interfaces)

    @property
    def tx_bytes(self) -> int:
        return sum(i.tx_bytes for i in self.interfaces)


class Sample(BaseModel):
    """
    One resource-utilization snapshot for one target, produced once per
    collection tick.
    """
    target: str
    timestamp: datetime
    cpu: CpuStats
    memory: MemoryStats
    disk: DiskStats
    network: NetworkStats = Field(default_factory=NetworkStats)


class ProcessInfo(BaseModel):
    """One running process, as listed for a target on demand (never stored)."""
    pid: int = Field(ge=0)
    user: str = ""
    cpu_percent: float = Field(default=0.0, ge=0)
    mem_percent: float = Field(default=0.0, ge=0)
    vsz_bytes: int = Field(default=0, ge=0)
    rss_bytes: int = Field(default=0, ge=0)
    command: str = ""
    state: str = ""


class RawRow(BaseModel):
    """Flattened, stored projection of a Sample (raw tier)."""
    target: str
    timestamp: datetime
    cpu_pct: float
    load1: float
    load5: float
    load15: float
    mem_total: int
    mem_used: int
    mem_avail: int
    mem_cached: int
    swap_total: int
    swap_used: int
    disk_total: int
    disk_used: int
    disk_avail: int
    disk_pct: float
    net_rx: int
    net_tx: int

    @classmethod
    def from_sample(cls, sample: Sample) -> "RawRow":
        load1, load5, load15 = sample.cpu.load_average
        return cls(
            target=sample.target,
            timestamp=sample.timestamp,
            cpu_pct=sample.cpu.usage_percent,
            load1=load1,
            load5=load5,
            load15=load15,
            mem_total=sample.memory.total_bytes,
            mem_used=sample.memory.used_bytes,
            mem_avail=sample.memory.available_bytes,
            mem_cached=sample.memory.cached_bytes,
            swap_total=sample.memory.swap_total_bytes,
            swap_used=sample.memory.swap_used_bytes,
            disk_total=sample.disk.total_bytes,
            disk_used=sample.disk.used_bytes,
            disk_avail=sample.disk.available_bytes,
            disk_pct=sample.disk.usage_percent,
            net_rx=sample.network.rx_bytes,
            net_tx=sample.network.tx_bytes,
        )


class AggregatedBucket(BaseModel):
    """Min/avg/max over one 1-minute window for one target (aggregated tier)."""
    period_start: datetime
    period_end: datetime
    sample_count: int
    cpu_min: float
    cpu_avg: float
    cpu_max: float
    mem_used_min: int
    mem_used_avg: int
    mem_used_max: int
    mem_total: int
    disk_min: float
    disk_avg: float
    disk_max: float
    net_rx_total: int
    net_tx_total: int
    # Largest single-sample counter seen in the window
    net_rx_peak: int
    net_tx_peak: int


Granularity = Literal["raw", "1m"]


class HistoryPoint(BaseModel):
    timestamp: datetime
    cpu_avg: float
    cpu_min: float | None = None
    cpu_max: float | None = None
    mem_used_bytes: int
    mem_total_bytes: int
    disk_usage_percent: float
    net_rx_rate: int
    net_tx_rate: int


class HistoryResponse(BaseModel):
    target: str
    granularity: Granularity
    points: list[HistoryPoint]
