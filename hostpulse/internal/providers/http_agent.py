# hostpulse/internal/providers/http_agent.py

"""
Metrics provider for a remote host running its own hostpulse instance.
Samples and process lists are pulled from the remote's /api/sample and
/api/processes endpoints.
"""

import asyncio
import logging

import requests
from pydantic import TypeAdapter, ValidationError

from hostpulse.internal.errors import TransientCollectionError
from hostpulse.internal.providers.base import MetricsProvider
from hostpulse.models.metrics import ProcessInfo, Sample

logger = logging.getLogger(__name__)

_process_list = TypeAdapter(list[ProcessInfo])


class HttpAgentProvider(MetricsProvider):

    def __init__(self, base_url: str, timeout: float = 5.0, session: requests.Session | None = None):
        self.base_url = base_url.rstrip("/")
        self.sample_url = f"{self.base_url}/api/sample"
        self.processes_url = f"{self.base_url}/api/processes"
        self.health_url = f"{self.base_url}/health"
        self.timeout = timeout
        self.session = session or requests.Session()

    def _get_json(self, target: str, url: str):
        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except requests.exceptions.RequestException as e:
            raise TransientCollectionError(target, f"request to {url} failed: {e}") from e
        except ValueError as e:
            raise TransientCollectionError(target, f"invalid JSON from {url}") from e

    def fetch_sample(self, target: str) -> Sample:
        payload = self._get_json(target, self.sample_url)

        try:
            sample = Sample.model_validate(payload)
        except ValidationError as e:
            raise TransientCollectionError(target, f"malformed sample: {e}") from e

        # The remote names itself; store it under the id we know it by
        return sample.model_copy(update={"target": target})

    def fetch_processes(self, target: str) -> list[ProcessInfo]:
        payload = self._get_json(target, self.processes_url)
        try:
            return _process_list.validate_python(payload)
        except ValidationError as e:
            raise TransientCollectionError(target, f"malformed process list: {e}") from e

    def check_health(self) -> bool:
        try:
            response = self.session.get(self.health_url, timeout=self.timeout)
            return response.status_code == 200
        except requests.exceptions.RequestException as e:
            logger.debug(f"Health probe to {self.health_url} failed: {e}")
            return False

    async def sample(self, target: str) -> Sample:
        return await asyncio.to_thread(self.fetch_sample, target)

    async def processes(self, target: str) -> list[ProcessInfo]:
        return await asyncio.to_thread(self.fetch_processes, target)

    async def probe(self) -> bool:
        return await asyncio.to_thread(self.check_health)
