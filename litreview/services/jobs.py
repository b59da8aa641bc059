"""Job listing and pipeline kick-off used by the HTTP routes."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from litreview.jobs.dispatch import JobDispatcher
from litreview.jobs.errors import DispatchFailure, JobValidationError, NotFound, NotOwned
from litreview.jobs.models import JobRecord, JobStatus, JobType
from litreview.jobs.payloads import intent_stage_data, scoring_stage_data
from litreview.storage.jobs_repo import JobsRepository
from litreview.storage.research_repo import ProjectRecord, ResearchRepository

logger = logging.getLogger(__name__)

_JOB_NOT_FOUND_MSG = "Job not found"
_PROJECT_NOT_FOUND_MSG = "Project not found"
DEFAULT_PAGE_LIMIT = 20
MAX_PAGE_LIMIT = 100


@dataclass(frozen=True)
class JobPage:
  jobs: list[JobRecord]
  total: int
  limit: int
  offset: int

  @property
  def has_more(self) -> bool:
    return self.offset + len(self.jobs) < self.total


@dataclass(frozen=True)
class ScoringDispatch:
  """Result of queueing scoring for a project's unprocessed papers."""

  jobs: list[JobRecord]
  dispatch_failures: int


def parse_status_filter(raw: str | None) -> list[JobStatus] | None:
  """Parse a comma-separated status list; empty means no filter."""
  if raw is None or not raw.strip():
    return None
  statuses: list[JobStatus] = []
  for part in raw.split(","):
    value = part.strip().upper()
    if not value:
      continue
    try:
      statuses.append(JobStatus(value))
    except ValueError as exc:
      raise JobValidationError(f"Unknown job status: {part.strip()}") from exc
  return statuses or None


async def list_jobs(jobs_repo: JobsRepository, user_id: str, *, status_filter: str | None = None, limit: int = DEFAULT_PAGE_LIMIT, offset: int = 0) -> JobPage:
  """Return one page of the caller's jobs, newest first."""
  if limit < 1 or limit > MAX_PAGE_LIMIT:
    raise JobValidationError(f"limit must be between 1 and {MAX_PAGE_LIMIT}")
  if offset < 0:
    raise JobValidationError("offset must not be negative")
  statuses = parse_status_filter(status_filter)
  jobs, total = await jobs_repo.list_jobs(user_id, statuses=statuses, limit=limit, offset=offset)
  return JobPage(jobs=jobs, total=total, limit=limit, offset=offset)


async def get_job_status(jobs_repo: JobsRepository, job_id: str, user_id: str) -> JobRecord:
  job = await jobs_repo.get_job(job_id)
  if job is None:
    raise NotFound(_JOB_NOT_FOUND_MSG)
  if job.user_id != user_id:
    raise NotOwned("Not authorized to view this job")
  return job


async def _owned_project(research: ResearchRepository, project_id: str, user_id: str) -> ProjectRecord:
  project = await research.get_project(project_id)
  if project is None:
    raise NotFound(_PROJECT_NOT_FOUND_MSG)
  if project.user_id != user_id:
    raise NotOwned("Not authorized to access this project")
  return project


async def start_project_init(research: ResearchRepository, dispatcher: JobDispatcher, *, project_id: str, user_id: str) -> JobRecord:
  """Queue the intent stage, which chains into query generation."""
  project = await _owned_project(research, project_id, user_id)
  if not project.abstract.strip():
    raise JobValidationError("Project has no research idea to analyse")
  return await dispatcher.create_job(JobType.INIT_INTENT, user_id=user_id, project_id=project.id, stage_data=intent_stage_data(project))


async def start_paper_scoring(research: ResearchRepository, dispatcher: JobDispatcher, *, project_id: str, user_id: str) -> ScoringDispatch:
  """Queue one scoring job per unprocessed paper of the project.

  A dispatch failure marks only that paper's job FAILED; the rest are still
  queued and the failed one can be resumed later.
  """
  project = await _owned_project(research, project_id, user_id)
  papers = await research.list_unprocessed_papers(project.id)

  created: list[JobRecord] = []
  failures = 0
  for paper in papers:
    try:
      created.append(await dispatcher.create_job(JobType.PAPER_SCORING, user_id=user_id, project_id=project.id, paper_id=paper.id, stage_data=scoring_stage_data(project, paper)))
    except DispatchFailure as exc:
      failures += 1
      logger.warning("Scoring dispatch failed project_id=%s paper_id=%s error=%s", project.id, paper.id, exc)

  logger.info("Queued scoring project_id=%s papers=%s dispatch_failures=%s", project.id, len(created), failures)
  return ScoringDispatch(jobs=created, dispatch_failures=failures)
