"""Worker process: consume the job queues until signalled to stop.

Usage: ``python -m litreview.worker [--queue NAME ...] [--concurrency N]``
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import socket
from dataclasses import dataclass

from litreview.ai.providers import get_model
from litreview.broker.factory import get_queue_broker
from litreview.broker.interface import QUEUE_POLICIES, QueueBroker, get_queue_policy
from litreview.config import Settings, get_settings
from litreview.core.database import dispose_engine
from litreview.core.logging import initialize_logging
from litreview.jobs.dispatch import JobDispatcher
from litreview.jobs.stages import StageDependencies, build_stage_registry
from litreview.jobs.worker import JobWorker, QueueConsumer
from litreview.notifications.email_sender import build_email_sender
from litreview.services.credits import CreditGate
from litreview.storage.postgres_credits_repo import PostgresCreditsRepository
from litreview.storage.postgres_jobs_repo import PostgresJobsRepository
from litreview.storage.postgres_research_repo import PostgresResearchRepository

logger = logging.getLogger("litreview.worker")


@dataclass(frozen=True)
class WorkerRuntime:
  worker_id: str
  broker: QueueBroker
  worker: JobWorker


def build_worker_runtime(settings: Settings, *, worker_id: str | None = None) -> WorkerRuntime:
  """Wire repositories, broker, credit gate and stage handlers."""
  broker = get_queue_broker(settings)
  jobs_repo = PostgresJobsRepository()
  research = PostgresResearchRepository()
  credits = CreditGate(PostgresCreditsRepository(), default_multiplier=settings.default_credit_multiplier)
  dispatcher = JobDispatcher(jobs_repo, broker, timeout_seconds=settings.dispatch_timeout_seconds)
  deps = StageDependencies(research=research, credits=credits, dispatcher=dispatcher, model_factory=lambda: get_model(settings), email_sender=build_email_sender(settings), frontend_url=settings.frontend_url)
  worker = JobWorker(jobs_repo=jobs_repo, broker=broker, registry=build_stage_registry(deps))
  return WorkerRuntime(worker_id=worker_id or f"{socket.gethostname()}-{id(broker):x}", broker=broker, worker=worker)


async def run_consumers(runtime: WorkerRuntime, settings: Settings, *, stop_event: asyncio.Event, queues: list[str] | None = None, concurrency: int | None = None) -> None:
  """Run one consumer loop per queue until ``stop_event`` is set."""
  names = queues or list(QUEUE_POLICIES)
  consumers = [
    QueueConsumer(
      runtime.worker,
      runtime.broker,
      get_queue_policy(name),
      worker_id=runtime.worker_id,
      concurrency=concurrency or settings.worker_concurrency,
      poll_interval_seconds=settings.worker_poll_interval_seconds,
      lease_seconds=settings.worker_lease_seconds,
    )
    for name in names
  ]
  logger.info("Starting consumers worker_id=%s queues=%s", runtime.worker_id, ",".join(names))
  await asyncio.gather(*(consumer.run(stop_event) for consumer in consumers))


async def _serve(settings: Settings, queues: list[str] | None, concurrency: int | None) -> None:
  stop_event = asyncio.Event()
  loop = asyncio.get_running_loop()
  for signum in (signal.SIGINT, signal.SIGTERM):
    loop.add_signal_handler(signum, stop_event.set)

  runtime = build_worker_runtime(settings)
  try:
    await run_consumers(runtime, settings, stop_event=stop_event, queues=queues, concurrency=concurrency)
  finally:
    await runtime.broker.close()
    await dispose_engine()
    logger.info("Worker stopped worker_id=%s", runtime.worker_id)


def main() -> None:
  parser = argparse.ArgumentParser(description="Consume literature review job queues.")
  parser.add_argument("--queue", action="append", choices=sorted(QUEUE_POLICIES), help="Queue to consume; repeat for several (default: all).")
  parser.add_argument("--concurrency", type=int, default=None, help="Concurrent tasks per queue (default: LITREVIEW_WORKER_CONCURRENCY).")
  args = parser.parse_args()

  settings = get_settings()
  initialize_logging(settings, process_name="worker")
  if settings.broker_provider == "memory":
    logger.warning("Memory broker selected; a standalone worker only sees tasks enqueued by itself")
  asyncio.run(_serve(settings, args.queue, args.concurrency))


if __name__ == "__main__":
  main()
