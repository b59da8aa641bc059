from __future__ import annotations

import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from litreview.jobs.models import JobRecord, JobStatus, JobType


class ApiModel(BaseModel):
  """Base for payloads exchanged with the frontend in camelCase."""

  model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class JobResponse(ApiModel):
  """Public view of a background job."""

  id: str
  job_type: JobType
  status: JobStatus
  project_id: str | None = None
  paper_id: str | None = None
  failure_reason: str | None = None
  created_at: str
  updated_at: str

  @classmethod
  def from_record(cls, record: JobRecord) -> JobResponse:
    return cls(
      id=record.id,
      job_type=record.job_type,
      status=record.status,
      project_id=record.project_id,
      paper_id=record.paper_id,
      failure_reason=record.failure_reason,
      created_at=record.created_at,
      updated_at=record.updated_at,
    )


class Pagination(ApiModel):
  total: int
  limit: int
  offset: int
  has_more: bool


class JobListResponse(ApiModel):
  jobs: list[JobResponse]
  pagination: Pagination


class ResumeJobResponse(ApiModel):
  message: str
  job: JobResponse


class ResumeAllResponse(ApiModel):
  resumed_count: int
  total_failed_found: int


class ScoringStartedResponse(ApiModel):
  """Jobs created for a scoring run; failed dispatches are resumable."""

  jobs: list[JobResponse]
  queued_count: int
  dispatch_failures: int


class CreditBalanceResponse(ApiModel):
  user_id: str
  balance: float


class RechargeRequest(ApiModel):
  amount: float = Field(gt=0, description="Credits to add to the user's balance.")
  reason: str | None = Field(default=None, max_length=500)
  model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class RechargeResponse(ApiModel):
  user_id: str
  amount: float
  balance_before: float
  balance_after: float


class UsageBreakdown(ApiModel):
  stage: str
  model_name: str
  calls: int
  input_tokens: int
  output_tokens: int
  cost_usd: float
  credits_charged: float


class UsageSummaryResponse(ApiModel):
  """Ledger totals for the caller, optionally narrowed to one project."""

  project_id: str | None = None
  total_calls: int
  total_input_tokens: int
  total_output_tokens: int
  total_cost_usd: float
  total_credits_charged: float
  breakdown: list[UsageBreakdown]


class CreditTransactionResponse(ApiModel):
  id: int
  transaction_type: str
  amount: float
  balance_before: float
  balance_after: float
  reason: str | None = None
  created_at: datetime.datetime


class CreditTransactionListResponse(ApiModel):
  transactions: list[CreditTransactionResponse]
  pagination: Pagination


class MultiplierRequest(ApiModel):
  multiplier: float = Field(gt=0, description="Credits charged per USD of model cost.")
  description: str | None = Field(default=None, max_length=500)
  model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class MultiplierResponse(ApiModel):
  id: int
  multiplier: float
  is_active: bool
  description: str | None = None
  created_at: datetime.datetime
