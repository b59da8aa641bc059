import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from urllib.parse import urlparse

from fastapi import FastAPI

from litreview.core.database import dispose_engine
from litreview.core.logging import initialize_logging


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Configure logging and, for the in-memory broker, run workers in-process."""
  from litreview.config import get_settings

  settings = get_settings()
  logger = logging.getLogger("litreview.core.lifespan")

  initialize_logging(settings, process_name="api")
  logger.info("Startup environment=%s broker=%s database=%s", settings.environment, settings.broker_provider, _redact_dsn(settings.pg_dsn))

  stop_event = asyncio.Event()
  embedded: asyncio.Task[None] | None = None
  # The memory broker lives in this process, so its consumers must too.
  if settings.broker_provider == "memory" and settings.pg_dsn:
    from litreview.worker import build_worker_runtime, run_consumers

    runtime = build_worker_runtime(settings, worker_id="api-embedded")
    embedded = asyncio.create_task(run_consumers(runtime, settings, stop_event=stop_event))
    logger.info("Started embedded workers for the in-memory broker")

  try:
    yield
  finally:
    stop_event.set()
    if embedded is not None:
      with contextlib.suppress(asyncio.CancelledError):
        await embedded
    await dispose_engine()
    logger.info("Shutdown complete")


def _redact_dsn(raw: str | None) -> str:
  """Redact credentials from a DSN while keeping host/db visible."""
  if not raw:
    return "<unset>"

  parsed = urlparse(raw)
  if not parsed.scheme:
    return "<invalid>"

  user = parsed.username or ""
  host = parsed.hostname or ""
  port = f":{parsed.port}" if parsed.port else ""
  netloc = f"{user}@{host}{port}" if user else f"{host}{port}"
  database = parsed.path.lstrip("/")
  path = f"/{database}" if database else ""
  return f"{parsed.scheme}://{netloc}{path}"
