"""Postgres-backed repository for background jobs using SQLAlchemy."""

from __future__ import annotations

from collections.abc import Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from litreview.core.database import require_session_factory
from litreview.jobs.models import FAILED_STATUSES, JobRecord, JobStatus, JobType
from litreview.jobs.state import assert_dispatch_failure, assert_reclassification, assert_transition
from litreview.schema.jobs import BackgroundJob
from litreview.storage.jobs_repo import JobsRepository
from litreview.utils.ids import utc_timestamp


class PostgresJobsRepository(JobsRepository):
  """Persist job records to Postgres with row locks around status writes."""

  def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
    self._session_factory = session_factory or require_session_factory()

  async def create_job(self, record: JobRecord) -> None:
    async with self._session_factory() as session:
      session.add(
        BackgroundJob(
          id=record.id,
          user_id=record.user_id,
          project_id=record.project_id,
          paper_id=record.paper_id,
          job_type=record.job_type.value,
          status=record.status.value,
          failure_reason=record.failure_reason,
          external_task_ref=record.external_task_ref,
          created_at=record.created_at,
          updated_at=record.updated_at,
        )
      )
      await session.commit()

  async def get_job(self, job_id: str) -> JobRecord | None:
    async with self._session_factory() as session:
      row = await session.get(BackgroundJob, job_id)
      return self._model_to_record(row) if row is not None else None

  async def list_jobs(self, user_id: str, *, statuses: Sequence[JobStatus] | None = None, limit: int = 20, offset: int = 0) -> tuple[list[JobRecord], int]:
    filters = [BackgroundJob.user_id == user_id]
    if statuses:
      filters.append(BackgroundJob.status.in_([JobStatus(value).value for value in statuses]))

    async with self._session_factory() as session:
      total = await session.scalar(select(func.count()).select_from(BackgroundJob).where(*filters))
      stmt = select(BackgroundJob).where(*filters).order_by(BackgroundJob.created_at.desc(), BackgroundJob.id.desc()).limit(limit).offset(offset)
      rows = (await session.execute(stmt)).scalars().all()
      return [self._model_to_record(row) for row in rows], int(total or 0)

  async def list_failed_jobs(self, user_id: str) -> list[JobRecord]:
    async with self._session_factory() as session:
      stmt = select(BackgroundJob).where(BackgroundJob.user_id == user_id, BackgroundJob.status.in_([status.value for status in FAILED_STATUSES])).order_by(BackgroundJob.created_at.asc())
      rows = (await session.execute(stmt)).scalars().all()
      return [self._model_to_record(row) for row in rows]

  async def claim_job(self, job_id: str, task_ref: str) -> JobRecord | None:
    async with self._session_factory() as session, session.begin():
      row = await self._locked_row(session, job_id)
      if row is None:
        return None
      status = JobStatus(row.status)
      # Redelivery of the same task after a lost lease keeps ownership.
      if status == JobStatus.PROCESSING and row.external_task_ref == task_ref:
        row.updated_at = utc_timestamp()
        return self._model_to_record(row)
      if status != JobStatus.PENDING:
        return None
      row.status = JobStatus.PROCESSING.value
      row.external_task_ref = task_ref
      row.updated_at = utc_timestamp()
      return self._model_to_record(row)

  async def transition(self, job_id: str, target: JobStatus, *, failure_reason: str | None = None, clear_reason: bool = False) -> JobRecord | None:
    async with self._session_factory() as session, session.begin():
      row = await self._locked_row(session, job_id)
      if row is None:
        return None
      assert_transition(JobStatus(row.status), target)
      row.status = target.value
      if clear_reason:
        row.failure_reason = None
      elif failure_reason is not None:
        row.failure_reason = failure_reason
      row.updated_at = utc_timestamp()
      return self._model_to_record(row)

  async def record_dispatch_failure(self, job_id: str, reason: str) -> JobRecord | None:
    async with self._session_factory() as session, session.begin():
      row = await self._locked_row(session, job_id)
      if row is None:
        return None
      assert_dispatch_failure(JobStatus(row.status))
      row.status = JobStatus.FAILED.value
      row.failure_reason = reason
      row.updated_at = utc_timestamp()
      return self._model_to_record(row)

  async def reclassify_failure(self, job_id: str, status: JobStatus, reason: str) -> JobRecord | None:
    async with self._session_factory() as session, session.begin():
      row = await self._locked_row(session, job_id)
      if row is None:
        return None
      assert_reclassification(JobStatus(row.status), status)
      row.status = status.value
      row.failure_reason = reason
      row.updated_at = utc_timestamp()
      return self._model_to_record(row)

  async def set_task_ref(self, job_id: str, task_ref: str) -> JobRecord | None:
    async with self._session_factory() as session, session.begin():
      row = await self._locked_row(session, job_id)
      if row is None:
        return None
      row.external_task_ref = task_ref
      row.updated_at = utc_timestamp()
      return self._model_to_record(row)

  async def _locked_row(self, session: AsyncSession, job_id: str) -> BackgroundJob | None:
    stmt = select(BackgroundJob).where(BackgroundJob.id == job_id).with_for_update()
    return (await session.execute(stmt)).scalar_one_or_none()

  def _model_to_record(self, row: BackgroundJob) -> JobRecord:
    return JobRecord(
      id=row.id,
      user_id=row.user_id,
      project_id=row.project_id,
      paper_id=row.paper_id,
      job_type=JobType(row.job_type),
      status=JobStatus(row.status),
      failure_reason=row.failure_reason,
      external_task_ref=row.external_task_ref,
      created_at=row.created_at,
      updated_at=row.updated_at,
    )
