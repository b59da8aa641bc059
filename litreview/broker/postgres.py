"""Durable broker backed by the ``broker_tasks`` table.

Claims use ``FOR UPDATE SKIP LOCKED`` so concurrent workers never lease the
same row, and a lease deadline lets a crashed worker's task be picked up
again. Completed tasks are deleted; failed tasks stay until storage is reset.
"""

from __future__ import annotations

import datetime
import logging

import msgspec
from sqlalchemy import and_, delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from litreview.broker.interface import BrokerTask, QueueBroker, TaskState, get_queue_policy
from litreview.core.database import require_session_factory
from litreview.jobs.models import TaskPayload, decode_payload
from litreview.schema.broker import BrokerTaskRow
from litreview.utils.ids import generate_task_ref

logger = logging.getLogger(__name__)


def _utc_now() -> datetime.datetime:
  return datetime.datetime.now(datetime.UTC)


class PostgresBroker(QueueBroker):
  """Queue storage in Postgres with lease-based delivery."""

  def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
    self._session_factory = session_factory or require_session_factory()

  async def enqueue(self, queue: str, task_type: str, payload: TaskPayload) -> str:
    policy = get_queue_policy(queue)
    ref = generate_task_ref()
    async with self._session_factory() as session, session.begin():
      session.add(BrokerTaskRow(ref=ref, queue=queue, task_type=task_type, payload=msgspec.to_builtins(payload), state=TaskState.WAITING.value, attempts_made=0, max_attempts=policy.max_attempts, available_at=_utc_now()))
    logger.debug("Enqueued task ref=%s queue=%s type=%s", ref, queue, task_type)
    return ref

  async def lookup(self, queue: str, task_ref: str | None) -> BrokerTask | None:
    if not task_ref:
      return None
    async with self._session_factory() as session:
      row = await session.get(BrokerTaskRow, task_ref)
      if row is None or row.queue != queue:
        return None
      return self._row_to_task(row)

  async def retry(self, task: BrokerTask) -> bool:
    async with self._session_factory() as session, session.begin():
      row = await self._locked_row(session, task.ref)
      if row is None:
        return False
      row.state = TaskState.WAITING.value
      row.attempts_made = 0
      row.available_at = _utc_now()
      row.locked_by = None
      row.locked_until = None
      row.last_error = None
      return True

  async def claim(self, queue: str, worker_id: str, lease_seconds: float) -> BrokerTask | None:
    now = _utc_now()
    waiting = and_(BrokerTaskRow.state == TaskState.WAITING.value, BrokerTaskRow.available_at <= now)
    stalled = and_(BrokerTaskRow.state == TaskState.ACTIVE.value, BrokerTaskRow.locked_until <= now)
    stmt = select(BrokerTaskRow).where(BrokerTaskRow.queue == queue, or_(waiting, stalled)).order_by(BrokerTaskRow.available_at, BrokerTaskRow.created_at).limit(1).with_for_update(skip_locked=True)
    async with self._session_factory() as session, session.begin():
      row = (await session.execute(stmt)).scalar_one_or_none()
      if row is None:
        return None
      if row.state == TaskState.ACTIVE.value:
        logger.warning("Recovering stalled task ref=%s queue=%s previous_worker=%s", row.ref, queue, row.locked_by)
      row.state = TaskState.ACTIVE.value
      row.locked_by = worker_id
      row.locked_until = now + datetime.timedelta(seconds=lease_seconds)
      return self._row_to_task(row)

  async def complete(self, task: BrokerTask) -> None:
    async with self._session_factory() as session, session.begin():
      await session.execute(delete(BrokerTaskRow).where(BrokerTaskRow.ref == task.ref))

  async def fail(self, task: BrokerTask, error: str, *, retryable: bool) -> bool:
    policy = get_queue_policy(task.queue)
    async with self._session_factory() as session, session.begin():
      row = await self._locked_row(session, task.ref)
      if row is None:
        return False
      row.attempts_made += 1
      row.last_error = error
      row.locked_by = None
      row.locked_until = None
      if retryable and row.attempts_made < row.max_attempts:
        row.state = TaskState.WAITING.value
        row.available_at = _utc_now() + datetime.timedelta(seconds=policy.backoff_delay(row.attempts_made))
        return True
      row.state = TaskState.FAILED.value
      return False

  async def close(self) -> None:
    return None

  async def _locked_row(self, session: AsyncSession, ref: str) -> BrokerTaskRow | None:
    stmt = select(BrokerTaskRow).where(BrokerTaskRow.ref == ref).with_for_update()
    return (await session.execute(stmt)).scalar_one_or_none()

  def _row_to_task(self, row: BrokerTaskRow) -> BrokerTask:
    return BrokerTask(
      ref=row.ref,
      queue=row.queue,
      task_type=row.task_type,
      payload=decode_payload(row.payload),
      state=TaskState(row.state),
      attempts_made=row.attempts_made,
      max_attempts=row.max_attempts,
      last_error=row.last_error,
    )
