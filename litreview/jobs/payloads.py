"""Stage input builders shared by job creation, chaining and reconstruction.

Building a payload from durable project/paper state in one place keeps a
reconstructed task identical in shape to the task originally enqueued.
"""

from __future__ import annotations

from typing import Any

from litreview.jobs.errors import JobDataLost
from litreview.jobs.models import JobRecord, JobType, NotificationType, TaskPayload
from litreview.storage.research_repo import PaperRecord, ProjectRecord, ResearchRepository

INTENT_FIELDS = ("abstract", "problem", "methodologies", "applicationDomains", "constraints", "contributionTypes", "keywords_seed")

RECONSTRUCTABLE_JOB_TYPES = frozenset({JobType.INIT_INTENT, JobType.INIT_QUERY, JobType.PAPER_SCORING})


def intent_stage_data(project: ProjectRecord) -> dict[str, Any]:
  return {"abstract": project.abstract}


def query_stage_data(intent: dict[str, Any]) -> dict[str, Any]:
  """Forward the intent decomposition fields to the query stage."""
  return {field: intent[field] for field in INTENT_FIELDS}


def scoring_stage_data(project: ProjectRecord, paper: PaperRecord) -> dict[str, Any]:
  return {"userAbstract": project.abstract, "candidateAbstract": paper.abstract, "title": paper.title}


def notification_stage_data(project_id: str, notification_type: NotificationType) -> dict[str, Any]:
  """Notification payloads carry the project id so consumers can dedupe."""
  return {"type": notification_type.value, "projectId": project_id}


def build_task_payload(job: JobRecord, stage_data: dict[str, Any]) -> TaskPayload:
  return TaskPayload(background_job_id=job.id, user_id=job.user_id, project_id=job.project_id, paper_id=job.paper_id, stage_data=dict(stage_data))


async def reconstruct_stage_data(job: JobRecord, research: ResearchRepository) -> dict[str, Any]:
  """Rebuild a lost task's stage input from the job's durable fields.

  Raises ``JobDataLost`` for job types whose input is not stored durably and
  when the state the input is derived from is gone.
  """
  if job.job_type not in RECONSTRUCTABLE_JOB_TYPES:
    raise JobDataLost(f"Task data for {job.job_type.value} jobs is not stored durably and cannot be reconstructed.")
  if not job.project_id:
    raise JobDataLost("Job has no project reference to rebuild its input from.")

  project = await research.get_project(job.project_id)
  if project is None:
    raise JobDataLost("Project for this job no longer exists.")

  if job.job_type == JobType.INIT_INTENT:
    return intent_stage_data(project)

  if job.job_type == JobType.INIT_QUERY:
    if project.intent is None:
      raise JobDataLost("Intent output for this project is missing; query stage input cannot be rebuilt.")
    return query_stage_data(project.intent)

  if not job.paper_id:
    raise JobDataLost("Paper scoring job has no paper reference.")
  paper = await research.get_paper(job.paper_id)
  if paper is None:
    raise JobDataLost("Paper for this job no longer exists.")
  return scoring_stage_data(project, paper)
