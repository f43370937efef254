# hostpulse/internal/providers/base.py

"""
Capabilities the collector consumes: one sample for one target, and the
current list of targets with their live state.
"""

from abc import ABC, abstractmethod

from hostpulse.internal.errors import TransientCollectionError, UnknownTargetError
from hostpulse.models.metrics import ProcessInfo, Sample
from hostpulse.models.targets import TargetInfo


class MetricsProvider(ABC):

    @abstractmethod
    async def sample(self, target: str) -> Sample:
        """Produce one sample for `target` or raise."""

    async def processes(self, target: str) -> list[ProcessInfo]:
        """Running processes on `target`, busiest first."""
        raise TransientCollectionError(target, "process listing not supported")


class TargetDiscovery(ABC):

    @abstractmethod
    async def list_targets(self) -> list[TargetInfo]:
        """Current targets with their live state. Raises DiscoveryError."""


class ProviderRegistry(MetricsProvider):
    """
    Routes each target to the provider registered for it, so the collector
    can treat local and remote hosts the same way.
    """

    def __init__(self, providers: dict[str, MetricsProvider] | None = None):
        self._providers: dict[str, MetricsProvider] = dict(providers or {})

    def register(self, target: str, provider: MetricsProvider):
        self._providers[target] = provider

    def targets(self) -> list[str]:
        return list(self._providers)

    def get(self, target: str) -> MetricsProvider | None:
        return self._providers.get(target)

    def _provider_for(self, target: str) -> MetricsProvider:
        provider = self._providers.get(target)
        if provider is None:
            raise UnknownTargetError(target)
        return provider

    async def sample(self, target: str) -> Sample:
        return await self._provider_for(target).sample(target)

    async def processes(self, target: str) -> list[ProcessInfo]:
        return await self._provider_for(target).processes(target)
