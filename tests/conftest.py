"""Shared fixtures: a throwaway SQLite store, fake providers and a settable clock."""

from datetime import UTC, datetime, timedelta

import pytest
import pytest_asyncio

from hostpulse.internal.analysis.notifier import AlertNotifier
from hostpulse.internal.analysis.thresholds import ThresholdStore
from hostpulse.internal.errors import DiscoveryError, TransientCollectionError
from hostpulse.internal.providers.base import MetricsProvider, TargetDiscovery
from hostpulse.internal.storage.sqlite import (
    SqliteAlertLedger,
    SqliteDatabase,
    SqliteMetricsRepository,
)
from hostpulse.models.metrics import (
    CpuStats,
    DiskStats,
    InterfaceStats,
    MemoryStats,
    NetworkStats,
    ProcessInfo,
    Sample,
)
from hostpulse.models.targets import TargetInfo, TargetState

T0 = datetime(2024, 1, 1, 10, 0, 0, tzinfo=UTC)


def make_sample(
    target: str = "ubuntu",
    timestamp: datetime = T0,
    cpu: float = 10.0,
    mem_used: int = 2_000,
    mem_total: int = 10_000,
    disk: float = 20.0,
    rx: int = 0,
    tx: int = 0,
    disk_total: int = 1_000_000,
    disk_used: int | None = None,
) -> Sample:
    if disk_used is None:
        disk_used = int(disk_total * disk / 100)
    return Sample(
        target=target,
        timestamp=timestamp,
        cpu=CpuStats(usage_percent=cpu, load_average=(0.5, 0.4, 0.3)),
        memory=MemoryStats(
            total_bytes=mem_total,
            used_bytes=mem_used,
            available_bytes=max(0, mem_total - mem_used),
        ),
        disk=DiskStats(
            total_bytes=disk_total,
            used_bytes=disk_used,
            available_bytes=max(0, disk_total - disk_used),
            usage_percent=disk,
        ),
        network=NetworkStats(interfaces=[InterfaceStats(name="eth0", rx_bytes=rx, tx_bytes=tx)]),
    )


class FakeClock:

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class FakeProvider(MetricsProvider):
    """Returns queued samples per target; a target mapped to an exception raises it."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.cpu: dict[str, float] = {}
        self.mem: dict[str, tuple[int, int]] = {}
        self.failing: set[str] = set()
        self.procs: dict[str, list[ProcessInfo]] = {}
        self.calls: list[str] = []

    async def sample(self, target: str) -> Sample:
        self.calls.append(target)
        if target in self.failing:
            raise TransientCollectionError(target, "connection refused")
        used, total = self.mem.get(target, (2_000, 10_000))
        return make_sample(
            target=target,
            timestamp=self.clock(),
            cpu=self.cpu.get(target, 10.0),
            mem_used=used,
            mem_total=total,
        )

    async def processes(self, target: str) -> list[ProcessInfo]:
        if target in self.failing:
            raise TransientCollectionError(target, "connection refused")
        return self.procs.get(target, [])


class FakeDiscovery(TargetDiscovery):

    def __init__(self, targets: list[str]):
        self.targets = {t: TargetState.RUNNING for t in targets}
        self.fail = False
        self.calls = 0

    async def list_targets(self) -> list[TargetInfo]:
        self.calls += 1
        if self.fail:
            raise DiscoveryError("discovery backend unavailable")
        return [TargetInfo(id=t, state=s) for t, s in self.targets.items()]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def notifier() -> AlertNotifier:
    return AlertNotifier()


@pytest.fixture
def thresholds() -> ThresholdStore:
    return ThresholdStore()


@pytest.fixture
def sqlite_db(tmp_path):
    db = SqliteDatabase(tmp_path / "hostpulse-test.db")
    yield db
    db.close()


@pytest_asyncio.fixture
async def repository(sqlite_db) -> SqliteMetricsRepository:
    return SqliteMetricsRepository(sqlite_db)


@pytest_asyncio.fixture
async def ledger(sqlite_db) -> SqliteAlertLedger:
    return SqliteAlertLedger(sqlite_db)
