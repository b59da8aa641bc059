"""Stage handlers executed by the workers.

Each handler returns a ``StageOutcome`` instead of raising, so the worker can
write the job status unconditionally once the stage has run. Steps follow a
fixed order: orphan check, credit pre-flight, model call, persistence, usage
charge, chaining.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

from starlette.concurrency import run_in_threadpool

from litreview.ai.providers.base import AIModel
from litreview.ai.stages.common import StageResult
from litreview.ai.stages.intent import run_intent_stage
from litreview.ai.stages.queries import run_queries_stage
from litreview.ai.stages.scoring import run_scoring_stage
from litreview.jobs.dispatch import JobDispatcher
from litreview.jobs.errors import ORPHAN_REASON, InsufficientCredits, JobError, JobValidationError, OrphanedParent, StageExecutionError
from litreview.jobs.models import JobRecord, JobStatus, JobType, NotificationType, TaskPayload
from litreview.jobs.payloads import notification_stage_data, query_stage_data
from litreview.notifications.contracts import EmailNotification, EmailSender
from litreview.notifications.templates import render_notification
from litreview.services.credits import INSUFFICIENT_CREDITS_MESSAGE, CreditGate, StageUsage
from litreview.storage.research_repo import STAGE_FAILED_INSUFFICIENT_CREDITS, ProjectRecord, ResearchRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StageOutcome:
  """Terminal result of one stage run and how the broker should treat it."""

  status: JobStatus
  reason: str | None = None
  code: str | None = None
  retryable: bool = False

  @classmethod
  def completed(cls) -> StageOutcome:
    return cls(status=JobStatus.COMPLETED)

  @classmethod
  def from_error(cls, error: JobError) -> StageOutcome:
    status = JobStatus.FAILED_NO_CREDITS if isinstance(error, InsufficientCredits) else JobStatus.FAILED
    return cls(status=status, reason=error.message, code=error.code, retryable=error.retryable)

  @property
  def succeeded(self) -> bool:
    return self.status == JobStatus.COMPLETED


@dataclass
class StageDependencies:
  """Collaborators injected into every stage handler."""

  research: ResearchRepository
  credits: CreditGate
  dispatcher: JobDispatcher
  model_factory: Callable[[], AIModel]
  email_sender: EmailSender
  frontend_url: str | None = None
  _model: AIModel | None = field(default=None, init=False, repr=False)

  @property
  def model(self) -> AIModel:
    # Built on first use so email-only workers need no model credentials.
    if self._model is None:
      self._model = self.model_factory()
    return self._model


class StageHandler(Protocol):
  """Processor contract for one job type."""

  async def run(self, job: JobRecord, payload: TaskPayload) -> StageOutcome:
    """Run the stage and report its outcome."""


class StageRegistry:
  """Registry mapping job types to stage handlers."""

  def __init__(self, handlers: dict[JobType, StageHandler]) -> None:
    self._handlers = handlers

  def resolve(self, job_type: JobType) -> StageHandler:
    """Resolve the handler for a job type."""
    handler = self._handlers.get(JobType(job_type))
    if handler is None:
      raise ValueError(f"Unsupported job type: {job_type}")
    return handler


class LlmStageHandler:
  """Template for stages that call the model and charge credits."""

  stage_name = ""

  def __init__(self, deps: StageDependencies) -> None:
    self._deps = deps

  async def run(self, job: JobRecord, payload: TaskPayload) -> StageOutcome:
    project = await self._load_project(job)
    if project is None:
      logger.warning("Job %s references missing project %s", job.id, job.project_id)
      return StageOutcome.from_error(OrphanedParent(ORPHAN_REASON))

    # Pre-flight: no model call without a positive balance.
    if not await self._deps.credits.has_credits(job.user_id):
      await self.on_insufficient_credits(job)
      return StageOutcome.from_error(InsufficientCredits(INSUFFICIENT_CREDITS_MESSAGE))

    try:
      result = await self.execute(payload.stage_data)
    except JobError as exc:
      return StageOutcome.from_error(exc)

    persisted = await self._guarded("persist output", job, self.persist(job, result))
    if persisted is not None:
      return persisted

    # Post-flight: charge only once the output is durable.
    charged = await self._guarded("record usage", job, self._charge(job, result))
    if charged is not None:
      return charged

    await self.chain(job, project, result)
    return StageOutcome.completed()

  async def execute(self, stage_data: dict[str, Any]) -> StageResult:
    raise NotImplementedError

  async def persist(self, job: JobRecord, result: StageResult) -> None:
    raise NotImplementedError

  async def chain(self, job: JobRecord, project: ProjectRecord, result: StageResult) -> None:
    return None

  async def on_insufficient_credits(self, job: JobRecord) -> None:
    return None

  async def _load_project(self, job: JobRecord) -> ProjectRecord | None:
    if not job.project_id:
      return None
    return await self._deps.research.get_project(job.project_id)

  async def _charge(self, job: JobRecord, result: StageResult) -> None:
    usage = StageUsage(
      user_id=job.user_id,
      stage=self.stage_name,
      provider=result.provider,
      model_name=result.model_name,
      input_tokens=result.input_tokens,
      output_tokens=result.output_tokens,
      project_id=job.project_id,
      paper_id=job.paper_id,
      duration_ms=result.duration_ms,
      request_id=result.request_id,
    )
    await self._deps.credits.record_usage(usage)

  async def _guarded(self, step: str, job: JobRecord, action: Awaitable[None]) -> StageOutcome | None:
    """Run a persistence step, turning an unexpected failure into a retryable outcome.

    Job errors keep their own classification, so a target deleted mid-stage
    fails the job permanently before any charge.
    """
    try:
      await action
    except JobError as exc:
      logger.warning("Stage %s could not %s job_id=%s code=%s reason=%s", self.stage_name, step, job.id, exc.code, exc.message)
      return StageOutcome.from_error(exc)
    except Exception as exc:  # noqa: BLE001
      logger.error("Stage %s failed to %s job_id=%s error=%s", self.stage_name, step, job.id, exc, exc_info=True)
      return StageOutcome.from_error(StageExecutionError(f"{self.stage_name} stage failed to {step}: {exc}"))
    return None

  async def _dispatch_child(self, job_type: JobType, job: JobRecord, stage_data: dict[str, Any], *, paper_id: str | None = None) -> None:
    """Create and enqueue a follow-up job; a dispatch failure only fails the child."""
    try:
      child = await self._deps.dispatcher.create_job(job_type, user_id=job.user_id, project_id=job.project_id, paper_id=paper_id, stage_data=stage_data)
      logger.info("Chained job parent_id=%s child_id=%s type=%s", job.id, child.id, job_type.value)
    except JobError as exc:
      logger.error("Could not dispatch %s after job_id=%s: %s", job_type.value, job.id, exc.message)


class IntentStageHandler(LlmStageHandler):
  stage_name = "intent"

  async def execute(self, stage_data: dict[str, Any]) -> StageResult:
    return await run_intent_stage(self._deps.model, stage_data)

  async def persist(self, job: JobRecord, result: StageResult) -> None:
    await self._deps.research.save_intent(str(job.project_id), result.output)

  async def chain(self, job: JobRecord, project: ProjectRecord, result: StageResult) -> None:
    await self._dispatch_child(JobType.INIT_QUERY, job, query_stage_data(result.output))

  async def on_insufficient_credits(self, job: JobRecord) -> None:
    await self._deps.research.set_stage_status(str(job.project_id), intent_status=STAGE_FAILED_INSUFFICIENT_CREDITS)


class QueryStageHandler(LlmStageHandler):
  stage_name = "queries"

  async def execute(self, stage_data: dict[str, Any]) -> StageResult:
    return await run_queries_stage(self._deps.model, stage_data)

  async def persist(self, job: JobRecord, result: StageResult) -> None:
    await self._deps.research.save_queries(str(job.project_id), result.output)

  async def chain(self, job: JobRecord, project: ProjectRecord, result: StageResult) -> None:
    await self._dispatch_child(JobType.SEND_EMAIL, job, notification_stage_data(project.id, NotificationType.PROJECT_INIT_COMPLETE))

  async def on_insufficient_credits(self, job: JobRecord) -> None:
    await self._deps.research.set_stage_status(str(job.project_id), query_status=STAGE_FAILED_INSUFFICIENT_CREDITS)


class PaperScoringStageHandler(LlmStageHandler):
  stage_name = "score"

  async def execute(self, stage_data: dict[str, Any]) -> StageResult:
    return await run_scoring_stage(self._deps.model, stage_data)

  async def persist(self, job: JobRecord, result: StageResult) -> None:
    if not job.paper_id:
      raise ValueError("paper scoring job has no paper id")
    await self._deps.research.save_paper_score(job.paper_id, result.output, model_name=result.model_name)

  async def chain(self, job: JobRecord, project: ProjectRecord, result: StageResult) -> None:
    # Re-count on every completion; concurrent finishers may both see zero.
    remaining = await self._deps.research.count_unprocessed_papers(project.id)
    if remaining == 0:
      logger.info("Scoring complete for project_id=%s; queueing notification", project.id)
      await self._dispatch_child(JobType.SEND_EMAIL, job, notification_stage_data(project.id, NotificationType.PROJECT_SCORING_COMPLETE))


class NotificationHandler:
  """Send a completion email; no model call and no credit gate."""

  def __init__(self, deps: StageDependencies) -> None:
    self._deps = deps

  async def run(self, job: JobRecord, payload: TaskPayload) -> StageOutcome:
    try:
      notification_type = NotificationType(payload.stage_data.get("type"))
    except ValueError:
      return StageOutcome.from_error(JobValidationError(f"Unknown notification type: {payload.stage_data.get('type')}"))

    project_id = payload.project_id or payload.stage_data.get("projectId") or job.project_id
    project = await self._deps.research.get_project(str(project_id)) if project_id else None
    if project is None:
      return StageOutcome.from_error(OrphanedParent(ORPHAN_REASON))
    user = await self._deps.research.get_user(job.user_id)
    if user is None:
      return StageOutcome.from_error(JobValidationError("Recipient user no longer exists."))

    paper_count = 0
    if notification_type == NotificationType.PROJECT_SCORING_COMPLETE:
      paper_count = await self._deps.research.count_papers(project.id)
    rendered = render_notification(notification_type, first_name=user.first_name, project_name=project.name, paper_count=paper_count, frontend_url=self._deps.frontend_url)
    email = EmailNotification(to_address=user.email, to_name=user.first_name, subject=rendered.subject, text=rendered.text)

    try:
      # The sender blocks on HTTP; keep it off the event loop.
      await run_in_threadpool(self._deps.email_sender.send, email)
    except Exception as exc:  # noqa: BLE001
      logger.warning("Email delivery failed job_id=%s type=%s error=%s", job.id, notification_type.value, exc)
      return StageOutcome.from_error(StageExecutionError(f"Email delivery failed: {exc}"))

    logger.info("Sent %s email job_id=%s project_id=%s", notification_type.value, job.id, project.id)
    return StageOutcome.completed()


def build_stage_registry(deps: StageDependencies) -> StageRegistry:
  """Wire the default handler for every job type."""
  return StageRegistry(
    {
      JobType.INIT_INTENT: IntentStageHandler(deps),
      JobType.INIT_QUERY: QueryStageHandler(deps),
      JobType.PAPER_SCORING: PaperScoringStageHandler(deps),
      JobType.SEND_EMAIL: NotificationHandler(deps),
    }
  )
