from typing import Annotated

from fastapi import APIRouter, Depends, Query

from litreview.api.deps import get_credit_gate, get_current_user_id
from litreview.api.models import CreditBalanceResponse, CreditTransactionListResponse, CreditTransactionResponse, Pagination, UsageBreakdown, UsageSummaryResponse
from litreview.services import jobs as job_service
from litreview.services.credits import CreditGate

router = APIRouter()


@router.get("/balance", response_model=CreditBalanceResponse)
async def get_balance(user_id: Annotated[str, Depends(get_current_user_id)], credits: Annotated[CreditGate, Depends(get_credit_gate)]) -> CreditBalanceResponse:
  """Return the caller's remaining AI credits."""
  return CreditBalanceResponse(user_id=user_id, balance=await credits.balance(user_id))


@router.get("/usage", response_model=UsageSummaryResponse)
async def get_usage(
  user_id: Annotated[str, Depends(get_current_user_id)],
  credits: Annotated[CreditGate, Depends(get_credit_gate)],
  project_id: Annotated[str | None, Query(alias="projectId")] = None,
) -> UsageSummaryResponse:
  """Summarise the caller's metered LLM usage by stage and model."""
  totals = await credits.usage_totals(user_id, project_id=project_id)
  breakdown = [
    UsageBreakdown(stage=row.stage, model_name=row.model_name, calls=row.calls, input_tokens=row.input_tokens, output_tokens=row.output_tokens, cost_usd=row.cost_usd, credits_charged=row.credits_charged)
    for row in totals
  ]
  return UsageSummaryResponse(
    project_id=project_id,
    total_calls=sum(row.calls for row in totals),
    total_input_tokens=sum(row.input_tokens for row in totals),
    total_output_tokens=sum(row.output_tokens for row in totals),
    total_cost_usd=round(sum(row.cost_usd for row in totals), 6),
    total_credits_charged=round(sum(row.credits_charged for row in totals), 6),
    breakdown=breakdown,
  )


@router.get("/transactions", response_model=CreditTransactionListResponse)
async def list_transactions(
  user_id: Annotated[str, Depends(get_current_user_id)],
  credits: Annotated[CreditGate, Depends(get_credit_gate)],
  limit: Annotated[int, Query(ge=1, le=job_service.MAX_PAGE_LIMIT)] = job_service.DEFAULT_PAGE_LIMIT,
  offset: Annotated[int, Query(ge=0)] = 0,
) -> CreditTransactionListResponse:
  """List recharges and other balance adjustments on the caller's wallet."""
  transactions, total = await credits.transactions(user_id, limit=limit, offset=offset)
  items = [
    CreditTransactionResponse(id=tx.id, transaction_type=tx.transaction_type, amount=tx.amount, balance_before=tx.balance_before, balance_after=tx.balance_after, reason=tx.reason, created_at=tx.created_at)
    for tx in transactions
  ]
  return CreditTransactionListResponse(transactions=items, pagination=Pagination(total=total, limit=limit, offset=offset, has_more=offset + len(items) < total))
