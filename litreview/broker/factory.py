from __future__ import annotations

from litreview.broker.interface import QueueBroker
from litreview.broker.memory import InMemoryBroker
from litreview.broker.postgres import PostgresBroker
from litreview.config import Settings

_memory_broker: InMemoryBroker | None = None


def get_queue_broker(settings: Settings) -> QueueBroker:
  """Factory to get the configured queue broker."""
  global _memory_broker
  if settings.broker_provider == "memory":
    # One shared instance so the API and in-process workers see the same queues.
    if _memory_broker is None:
      _memory_broker = InMemoryBroker()
    return _memory_broker
  return PostgresBroker()
