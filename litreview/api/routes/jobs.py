import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query

from litreview.api.deps import get_current_user_id, get_jobs_repo, get_resume_coordinator
from litreview.api.models import JobListResponse, JobResponse, Pagination, ResumeAllResponse, ResumeJobResponse
from litreview.services import jobs as job_service
from litreview.services.resume import ResumeCoordinator
from litreview.storage.jobs_repo import JobsRepository

router = APIRouter()
logger = logging.getLogger("litreview.api.routes.jobs")


@router.get("", response_model=JobListResponse)
async def list_jobs(
  user_id: Annotated[str, Depends(get_current_user_id)],
  jobs_repo: Annotated[JobsRepository, Depends(get_jobs_repo)],
  status: Annotated[str | None, Query(description="Comma-separated job statuses to include.")] = None,
  limit: Annotated[int, Query(ge=1, le=job_service.MAX_PAGE_LIMIT)] = job_service.DEFAULT_PAGE_LIMIT,
  offset: Annotated[int, Query(ge=0)] = 0,
) -> JobListResponse:
  """List the caller's jobs, newest first."""
  page = await job_service.list_jobs(jobs_repo, user_id, status_filter=status, limit=limit, offset=offset)
  return JobListResponse(jobs=[JobResponse.from_record(job) for job in page.jobs], pagination=Pagination(total=page.total, limit=page.limit, offset=page.offset, has_more=page.has_more))


@router.post("/resume-all", response_model=ResumeAllResponse)
async def resume_all_jobs(user_id: Annotated[str, Depends(get_current_user_id)], coordinator: Annotated[ResumeCoordinator, Depends(get_resume_coordinator)]) -> ResumeAllResponse:
  """Resume every failed job of the caller."""
  result = await coordinator.resume_all(user_id)
  return ResumeAllResponse(resumed_count=result.resumed_count, total_failed_found=result.total_failed_found)


@router.get("/{job_id}", response_model=JobResponse)
async def get_job_status(job_id: str, user_id: Annotated[str, Depends(get_current_user_id)], jobs_repo: Annotated[JobsRepository, Depends(get_jobs_repo)]) -> JobResponse:
  """Fetch the status of one of the caller's jobs."""
  record = await job_service.get_job_status(jobs_repo, job_id, user_id)
  return JobResponse.from_record(record)


@router.post("/{job_id}/resume", response_model=ResumeJobResponse)
async def resume_job(job_id: str, user_id: Annotated[str, Depends(get_current_user_id)], coordinator: Annotated[ResumeCoordinator, Depends(get_resume_coordinator)]) -> ResumeJobResponse:
  """Re-enter a failed job into its queue."""
  record = await coordinator.resume_one(job_id, user_id)
  return ResumeJobResponse(message="Job resumed", job=JobResponse.from_record(record))
