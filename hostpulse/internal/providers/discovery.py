# hostpulse/internal/providers/discovery.py

import asyncio
import logging

from hostpulse.internal.config.config import TargetSettings
from hostpulse.internal.errors import DiscoveryError
from hostpulse.internal.providers.base import ProviderRegistry, TargetDiscovery
from hostpulse.internal.providers.http_agent import HttpAgentProvider
from hostpulse.internal.providers.local import LocalHostProvider
from hostpulse.models.targets import TargetInfo, TargetState

logger = logging.getLogger(__name__)


class ConfiguredTargetDiscovery(TargetDiscovery):
    """
    Targets come from configuration. Local targets are always running;
    HTTP targets are running only while their /health endpoint answers.
    """

    def __init__(self, registry: ProviderRegistry):
        self.registry = registry

    async def _state_of(self, target: str) -> TargetState:
        provider = self.registry.get(target)
        if isinstance(provider, HttpAgentProvider):
            return TargetState.RUNNING if await provider.probe() else TargetState.UNREACHABLE
        return TargetState.RUNNING

    async def list_targets(self) -> list[TargetInfo]:
        targets = self.registry.targets()
        try:
            states = await asyncio.gather(*(self._state_of(t) for t in targets))
        except Exception as e:
            raise DiscoveryError(f"Target discovery failed: {e}") from e
        return [TargetInfo(id=t, state=s) for t, s in zip(targets, states)]


def build_providers(targets: list[TargetSettings]) -> ProviderRegistry:
    """One provider per configured target; local targets share one psutil provider."""
    registry = ProviderRegistry()
    local = None
    for target in targets:
        if target.kind == "http":
            registry.register(target.id, HttpAgentProvider(target.url, timeout=target.timeout_seconds))
        else:
            if local is None:
                local = LocalHostProvider()
            registry.register(target.id, local)
    logger.info(f"Configured {len(targets)} target(s): {', '.join(registry.targets())}")
    return registry
