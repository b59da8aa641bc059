"""In-memory doubles for the repositories and the model provider."""

from __future__ import annotations

import asyncio
import datetime
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field, replace
from typing import Any

from litreview.ai.providers.base import AIModel, StructuredModelResponse
from litreview.jobs.errors import ORPHAN_REASON, NotFound, OrphanedParent
from litreview.jobs.models import FAILED_STATUSES, JobRecord, JobStatus, JobType
from litreview.jobs.state import assert_dispatch_failure, assert_reclassification, assert_transition
from litreview.notifications.contracts import EmailNotification
from litreview.services.llm_pricing import PricingTable
from litreview.storage.credits_repo import CreditTransaction, MultiplierRecord, RechargeResult, UsageCharge, UsageEntry, UsageTotals
from litreview.storage.research_repo import STAGE_EVALUATED, PaperRecord, ProjectRecord, UserRecord
from litreview.utils.ids import utc_timestamp

USER_ID = "user-1"
OTHER_USER_ID = "user-2"
PROJECT_ID = "proj-1"


class InMemoryJobsRepo:
  """Jobs repository enforcing the same status guards as the Postgres one."""

  def __init__(self) -> None:
    self._jobs: dict[str, JobRecord] = {}
    self.writes: list[tuple[str, str, JobStatus | None]] = []

  def seed(self, record: JobRecord) -> JobRecord:
    self._jobs[record.id] = record
    return record

  def all(self) -> list[JobRecord]:
    return list(self._jobs.values())

  async def create_job(self, record: JobRecord) -> None:
    self._jobs[record.id] = record
    self.writes.append(("create", record.id, record.status))

  async def get_job(self, job_id: str) -> JobRecord | None:
    return self._jobs.get(job_id)

  async def list_jobs(self, user_id: str, *, statuses: Sequence[JobStatus] | None = None, limit: int = 20, offset: int = 0) -> tuple[list[JobRecord], int]:
    matches = [job for job in self._jobs.values() if job.user_id == user_id and (not statuses or job.status in statuses)]
    matches.sort(key=lambda job: (job.created_at, job.id), reverse=True)
    return matches[offset : offset + limit], len(matches)

  async def list_failed_jobs(self, user_id: str) -> list[JobRecord]:
    return [job for job in self._jobs.values() if job.user_id == user_id and job.status in FAILED_STATUSES]

  async def claim_job(self, job_id: str, task_ref: str) -> JobRecord | None:
    job = self._jobs.get(job_id)
    if job is None:
      return None
    if job.status == JobStatus.PROCESSING and job.external_task_ref == task_ref:
      return job
    if job.status != JobStatus.PENDING:
      return None
    return self._write("claim", job, status=JobStatus.PROCESSING, external_task_ref=task_ref)

  async def transition(self, job_id: str, target: JobStatus, *, failure_reason: str | None = None, clear_reason: bool = False) -> JobRecord | None:
    job = self._jobs.get(job_id)
    if job is None:
      return None
    assert_transition(job.status, target)
    reason = None if clear_reason else (failure_reason if failure_reason is not None else job.failure_reason)
    return self._write("transition", job, status=target, failure_reason=reason)

  async def record_dispatch_failure(self, job_id: str, reason: str) -> JobRecord | None:
    job = self._jobs.get(job_id)
    if job is None:
      return None
    assert_dispatch_failure(job.status)
    return self._write("dispatch_failure", job, status=JobStatus.FAILED, failure_reason=reason)

  async def reclassify_failure(self, job_id: str, status: JobStatus, reason: str) -> JobRecord | None:
    job = self._jobs.get(job_id)
    if job is None:
      return None
    assert_reclassification(job.status, status)
    return self._write("reclassify", job, status=status, failure_reason=reason)

  async def set_task_ref(self, job_id: str, task_ref: str) -> JobRecord | None:
    job = self._jobs.get(job_id)
    if job is None:
      return None
    return self._write("task_ref", job, external_task_ref=task_ref)

  def _write(self, kind: str, job: JobRecord, **changes: Any) -> JobRecord:
    updated = replace(job, updated_at=utc_timestamp(), **changes)
    self._jobs[job.id] = updated
    self.writes.append((kind, job.id, changes.get("status")))
    return updated


class InMemoryResearchRepo:
  def __init__(self) -> None:
    self.users: dict[str, UserRecord] = {}
    self.projects: dict[str, ProjectRecord] = {}
    self.papers: dict[str, PaperRecord] = {}
    self.scores: dict[str, dict[str, Any]] = {}
    self.score_models: dict[str, str | None] = {}
    self.fail_on_save = False

  def add_user(self, user_id: str, *, email: str | None = None, first_name: str | None = "Ada") -> UserRecord:
    user = UserRecord(id=user_id, email=email or f"{user_id}@example.com", first_name=first_name, credits_balance=0.0)
    self.users[user_id] = user
    return user

  def add_project(self, project_id: str, user_id: str, *, abstract: str = "Low-power keyword spotting on microcontrollers.", name: str = "KWS", intent: dict[str, Any] | None = None) -> ProjectRecord:
    project = ProjectRecord(id=project_id, user_id=user_id, name=name, abstract=abstract, intent=intent)
    self.projects[project_id] = project
    return project

  def add_paper(self, paper_id: str, project_id: str, *, title: str = "A paper", abstract: str = "We study things.") -> PaperRecord:
    paper = PaperRecord(id=paper_id, project_id=project_id, title=title, abstract=abstract)
    self.papers[paper_id] = paper
    return paper

  def delete_project(self, project_id: str) -> None:
    self.projects.pop(project_id, None)
    for paper_id in [paper.id for paper in self.papers.values() if paper.project_id == project_id]:
      self.papers.pop(paper_id)

  async def get_user(self, user_id: str) -> UserRecord | None:
    return self.users.get(user_id)

  async def get_project(self, project_id: str) -> ProjectRecord | None:
    return self.projects.get(project_id)

  async def get_paper(self, paper_id: str) -> PaperRecord | None:
    return self.papers.get(paper_id)

  async def list_unprocessed_papers(self, project_id: str) -> list[PaperRecord]:
    return [paper for paper in self.papers.values() if paper.project_id == project_id and not paper.is_processed]

  async def count_unprocessed_papers(self, project_id: str) -> int:
    return len(await self.list_unprocessed_papers(project_id))

  async def count_papers(self, project_id: str) -> int:
    return len([paper for paper in self.papers.values() if paper.project_id == project_id])

  async def save_intent(self, project_id: str, intent: dict[str, Any]) -> None:
    self._maybe_fail()
    project = self._require_project(project_id)
    self.projects[project_id] = replace(project, intent=dict(intent), intent_status=STAGE_EVALUATED)

  async def save_queries(self, project_id: str, queries: dict[str, Any]) -> None:
    self._maybe_fail()
    project = self._require_project(project_id)
    self.projects[project_id] = replace(project, queries=dict(queries), query_status=STAGE_EVALUATED)

  async def save_paper_score(self, paper_id: str, score: dict[str, Any], *, model_name: str | None) -> None:
    self._maybe_fail()
    paper = self.papers.get(paper_id)
    if paper is None:
      raise NotFound(f"Paper {paper_id} no longer exists.")
    self.scores[paper_id] = dict(score)
    self.score_models[paper_id] = model_name
    self.papers[paper_id] = replace(paper, is_processed=True)

  async def set_stage_status(self, project_id: str, *, intent_status: str | None = None, query_status: str | None = None) -> None:
    project = self.projects.get(project_id)
    if project is None:
      return
    changes: dict[str, str] = {}
    if intent_status is not None:
      changes["intent_status"] = intent_status
    if query_status is not None:
      changes["query_status"] = query_status
    self.projects[project_id] = replace(project, **changes)

  def _require_project(self, project_id: str) -> ProjectRecord:
    project = self.projects.get(project_id)
    if project is None:
      raise OrphanedParent(ORPHAN_REASON)
    return project

  def _maybe_fail(self) -> None:
    if self.fail_on_save:
      raise RuntimeError("database unavailable")


@dataclass
class InMemoryCreditsRepo:
  """Credits repository whose charge either fully applies or not at all."""

  balances: dict[str, float] = field(default_factory=dict)
  pricing: PricingTable = field(default_factory=lambda: {"openai": {"gpt-4o-mini": (0.15, 0.60)}})
  multiplier: float | None = None
  usage_log: list[tuple[UsageEntry, float, float]] = field(default_factory=list)
  transactions: list[tuple[str, CreditTransaction]] = field(default_factory=list)
  multipliers: list[MultiplierRecord] = field(default_factory=list)

  async def get_balance(self, user_id: str) -> float | None:
    return self.balances.get(user_id)

  async def load_pricing(self) -> PricingTable:
    return self.pricing

  async def charge_usage(self, entry: UsageEntry, *, default_multiplier: float) -> UsageCharge:
    if entry.user_id not in self.balances:
      raise LookupError(f"User {entry.user_id} not found; usage not recorded.")
    multiplier = self.multiplier if self.multiplier is not None else default_multiplier
    credits = entry.cost_usd * multiplier
    self.balances[entry.user_id] -= credits
    self.usage_log.append((entry, multiplier, credits))
    return UsageCharge(cost_usd=entry.cost_usd, multiplier=multiplier, credits_charged=credits, balance_after=self.balances[entry.user_id])

  async def recharge(self, user_id: str, amount: float, *, admin_id: str | None, reason: str | None) -> RechargeResult:
    if user_id not in self.balances:
      raise LookupError(f"User {user_id} not found.")
    before = self.balances[user_id]
    self.balances[user_id] = before + amount
    tx = CreditTransaction(id=len(self.transactions) + 1, transaction_type="ADMIN_RECHARGE", amount=amount, balance_before=before, balance_after=self.balances[user_id], reason=reason, created_at=_now())
    self.transactions.append((user_id, tx))
    return RechargeResult(user_id=user_id, amount=amount, balance_before=before, balance_after=self.balances[user_id])

  async def usage_totals(self, user_id: str, *, project_id: str | None = None) -> list[UsageTotals]:
    grouped: dict[tuple[str, str], list[tuple[UsageEntry, float]]] = {}
    for entry, _, credits in self.usage_log:
      if entry.user_id != user_id or (project_id is not None and entry.project_id != project_id):
        continue
      grouped.setdefault((entry.stage, entry.model_name), []).append((entry, credits))
    return [
      UsageTotals(
        stage=stage,
        model_name=model_name,
        calls=len(rows),
        input_tokens=sum(entry.input_tokens for entry, _ in rows),
        output_tokens=sum(entry.output_tokens for entry, _ in rows),
        cost_usd=sum(entry.cost_usd for entry, _ in rows),
        credits_charged=sum(credits for _, credits in rows),
      )
      for (stage, model_name), rows in sorted(grouped.items())
    ]

  async def list_transactions(self, user_id: str, *, limit: int, offset: int) -> tuple[list[CreditTransaction], int]:
    mine = [tx for owner, tx in reversed(self.transactions) if owner == user_id]
    return mine[offset : offset + limit], len(mine)

  async def add_multiplier(self, multiplier: float, *, description: str | None) -> MultiplierRecord:
    self.multipliers = [replace(record, is_active=False) for record in self.multipliers]
    record = MultiplierRecord(id=len(self.multipliers) + 1, multiplier=multiplier, is_active=True, description=description, created_at=_now())
    self.multipliers.append(record)
    self.multiplier = multiplier
    return record

  async def list_multipliers(self, *, limit: int) -> list[MultiplierRecord]:
    return list(reversed(self.multipliers))[:limit]


def _now() -> datetime.datetime:
  return datetime.datetime.now(datetime.UTC)


INTENT_RESPONSE = {
  "abstract": "ignored by the stage",
  "problem": "Keyword spotting under a tight energy budget",
  "methodologies": ["depthwise separable CNN", "quantization"],
  "applicationDomains": ["wearables"],
  "constraints": ["low-power", "real-time"],
  "contributionTypes": ["method"],
  "keywords_seed": ["keyword spotting", "tinyML", "microcontroller"],
}

QUERIES_RESPONSE = {
  "abstract": "ignored by the stage",
  "booleanQuery": '("keyword spotting" OR KWS) AND (microcontroller OR tinyML)',
  "expandedKeywords": ["wake word detection", "edge inference"],
  "engineQueries": {"arxiv": "all:keyword AND all:spotting", "semanticScholar": "keyword spotting microcontroller"},
}

SCORING_RESPONSE = {
  "semantic_similarity": 0.72,
  "problem_overlap": "high",
  "method_overlap": "medium",
  "domain_overlap": "high",
  "constraint_overlap": "low",
  "c1_score": 7,
  "c1_justification": "Close problem framing.",
  "c1_strengths": ["same hardware class"],
  "c1_weaknesses": ["no quantization"],
  "c2_score": 8,
  "c2_justification": "Useful baseline.",
  "c2_contribution_type": "methodology",
  "c2_relevance_areas": ["model compression"],
  "research_gaps": ["energy reporting"],
  "user_novelty": "Joint quantization and pruning.",
}


class FakeModel(AIModel):
  """Model double that answers by recognising the requested schema."""

  provider_name = "openai"

  def __init__(self, name: str = "gpt-4o-mini", *, usage: dict[str, int] | None = None, served_model: str | None = None) -> None:
    self.name = name
    # What the provider reports back, e.g. a dated snapshot of ``name``.
    self.served_model = served_model
    self.usage = usage if usage is not None else {"prompt_tokens": 1000, "completion_tokens": 500}
    self.calls: list[str] = []
    self.error: Exception | None = None
    self.override: dict[str, Any] | None = None
    self.before_call: Callable[[], None] | None = None
    self.delay: float = 0.0

  async def generate_structured(self, system_prompt: str, user_prompt: str, schema: dict[str, Any]) -> StructuredModelResponse:
    title = str(schema.get("title", ""))
    self.calls.append(title)
    if self.before_call is not None:
      self.before_call()
    if self.delay:
      await asyncio.sleep(self.delay)
    if self.error is not None:
      raise self.error
    if self.override is not None:
      content = self.override
    elif title == "IntentOutput":
      content = INTENT_RESPONSE
    elif title == "QueriesOutput":
      content = QUERIES_RESPONSE
    else:
      content = SCORING_RESPONSE
    return StructuredModelResponse(content=dict(content), model=self.served_model or self.name, usage=dict(self.usage), request_id="req-model", duration_ms=12)


class RecordingEmailSender:
  def __init__(self) -> None:
    self.sent: list[EmailNotification] = []
    self.error: Exception | None = None

  def send(self, notification: EmailNotification) -> dict[str, str | None]:
    if self.error is not None:
      raise self.error
    self.sent.append(notification)
    return {"provider": "test", "message_id": f"msg-{len(self.sent)}", "request_id": None}


def make_job(job_id: str, *, user_id: str = "user-1", job_type: JobType = JobType.INIT_INTENT, status: JobStatus = JobStatus.FAILED, project_id: str | None = "proj-1", paper_id: str | None = None, failure_reason: str | None = "boom", task_ref: str | None = None, created_at: str = "2026-01-01T00:00:00Z") -> JobRecord:
  return JobRecord(
    id=job_id,
    user_id=user_id,
    job_type=job_type,
    status=status,
    created_at=created_at,
    updated_at=created_at,
    project_id=project_id,
    paper_id=paper_id,
    failure_reason=failure_reason,
    external_task_ref=task_ref,
  )


class ManualClock:
  """Monotonic clock the tests advance explicitly."""

  def __init__(self, start: float = 1000.0) -> None:
    self.now = start

  def __call__(self) -> float:
    return self.now

  def advance(self, seconds: float) -> None:
    self.now += seconds
