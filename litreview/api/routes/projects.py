from typing import Annotated

from fastapi import APIRouter, Depends, status

from litreview.api.deps import get_current_user_id, get_dispatcher, get_research_repo
from litreview.api.models import JobResponse, ScoringStartedResponse
from litreview.jobs.dispatch import JobDispatcher
from litreview.services import jobs as job_service
from litreview.storage.research_repo import ResearchRepository

router = APIRouter()


@router.post("/{project_id}/init", response_model=JobResponse, status_code=status.HTTP_202_ACCEPTED)
async def start_project_init(
  project_id: str,
  user_id: Annotated[str, Depends(get_current_user_id)],
  research: Annotated[ResearchRepository, Depends(get_research_repo)],
  dispatcher: Annotated[JobDispatcher, Depends(get_dispatcher)],
) -> JobResponse:
  """Queue intent decomposition and query generation for a project."""
  record = await job_service.start_project_init(research, dispatcher, project_id=project_id, user_id=user_id)
  return JobResponse.from_record(record)


@router.post("/{project_id}/papers/score", response_model=ScoringStartedResponse, status_code=status.HTTP_202_ACCEPTED)
async def start_paper_scoring(
  project_id: str,
  user_id: Annotated[str, Depends(get_current_user_id)],
  research: Annotated[ResearchRepository, Depends(get_research_repo)],
  dispatcher: Annotated[JobDispatcher, Depends(get_dispatcher)],
) -> ScoringStartedResponse:
  """Queue one scoring job per unprocessed candidate paper."""
  result = await job_service.start_paper_scoring(research, dispatcher, project_id=project_id, user_id=user_id)
  return ScoringStartedResponse(jobs=[JobResponse.from_record(job) for job in result.jobs], queued_count=len(result.jobs), dispatch_failures=result.dispatch_failures)
