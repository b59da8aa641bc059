import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from litreview.api.deps import get_credit_gate, require_admin
from litreview.api.models import MultiplierRequest, MultiplierResponse, RechargeRequest, RechargeResponse
from litreview.services.credits import CreditGate

router = APIRouter()
logger = logging.getLogger("litreview.api.routes.admin")


@router.post("/credits/{user_id}/recharge", response_model=RechargeResponse)
async def recharge_credits(user_id: str, payload: RechargeRequest, admin_id: Annotated[str, Depends(require_admin)], credits: Annotated[CreditGate, Depends(get_credit_gate)]) -> RechargeResponse:
  """Add credits to a user's balance and record the transaction."""
  try:
    result = await credits.recharge(user_id, payload.amount, admin_id=admin_id, reason=payload.reason)
  except LookupError as exc:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found") from exc
  logger.info("Admin recharge admin_id=%s user_id=%s amount=%.4f", admin_id, user_id, payload.amount)
  return RechargeResponse(user_id=result.user_id, amount=result.amount, balance_before=result.balance_before, balance_after=result.balance_after)


@router.post("/credits/multiplier", response_model=MultiplierResponse, status_code=status.HTTP_201_CREATED)
async def set_credit_multiplier(payload: MultiplierRequest, admin_id: Annotated[str, Depends(require_admin)], credits: Annotated[CreditGate, Depends(get_credit_gate)]) -> MultiplierResponse:
  """Activate a new currency-to-credit multiplier; the previous one is kept as history."""
  record = await credits.set_multiplier(payload.multiplier, admin_id=admin_id, description=payload.description)
  return MultiplierResponse(id=record.id, multiplier=record.multiplier, is_active=record.is_active, description=record.description, created_at=record.created_at)


@router.get("/credits/multiplier/history", response_model=list[MultiplierResponse])
async def get_multiplier_history(
  admin_id: Annotated[str, Depends(require_admin)],
  credits: Annotated[CreditGate, Depends(get_credit_gate)],
  limit: Annotated[int, Query(ge=1, le=200)] = 50,
) -> list[MultiplierResponse]:
  records = await credits.multiplier_history(limit=limit)
  return [MultiplierResponse(id=record.id, multiplier=record.multiplier, is_active=record.is_active, description=record.description, created_at=record.created_at) for record in records]
