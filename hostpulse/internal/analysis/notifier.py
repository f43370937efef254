# hostpulse/internal/analysis/notifier.py

"""
In-process fan-out of fired alerts and live samples.
Every subscriber gets its own bounded queue; a slow subscriber loses its
oldest events instead of blocking the collector.
"""

import asyncio
import logging
from typing import Any

from hostpulse.models.alerts import AlertEvent
from hostpulse.models.metrics import Sample

logger = logging.getLogger(__name__)

EVENT_ALERT_TRIGGERED = "alert-triggered"
EVENT_SYSTEM_METRICS = "system-metrics"


class AlertNotifier:

    def __init__(self, max_queue_size: int = 256):
        self.max_queue_size = max_queue_size
        self._subscribers: set[asyncio.Queue] = set()

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.max_queue_size)
        self._subscribers.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue):
        self._subscribers.discard(queue)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def _publish(self, message: dict[str, Any]):
        for queue in list(self._subscribers):
            if queue.full():
                try:
                    queue.get_nowait()
                except asyncio.QueueEmpty:
                    pass
                logger.debug("Subscriber queue full, dropped oldest event")
            queue.put_nowait(message)

    def publish_alert(self, event: AlertEvent):
        logger.info(f"[ALERT] {event.message}")
        self._publish({"type": EVENT_ALERT_TRIGGERED, "payload": event.model_dump(mode="json")})

    def publish_sample(self, sample: Sample):
        self._publish({"type": EVENT_SYSTEM_METRICS, "payload": sample.model_dump(mode="json")})
