"""Credit gate: pre-flight balance check and post-flight usage charge.

The post-flight charge is the only code path that lowers a balance. It prices
the call, then hands a single ``UsageEntry`` to the repository which writes the
ledger row and the decrement in one transaction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from litreview.services.llm_pricing import calculate_cost
from litreview.storage.credits_repo import CreditsRepository, CreditTransaction, MultiplierRecord, RechargeResult, UsageCharge, UsageEntry, UsageTotals

logger = logging.getLogger(__name__)

INSUFFICIENT_CREDITS_MESSAGE = "Insufficient credits: balance is exhausted; recharge to continue."


@dataclass(frozen=True)
class StageUsage:
  """Token usage reported by one stage's LLM call."""

  user_id: str
  stage: str
  provider: str
  model_name: str
  input_tokens: int
  output_tokens: int
  project_id: str | None = None
  paper_id: str | None = None
  duration_ms: int | None = None
  request_id: str | None = None


class CreditGate:
  """Meter LLM usage against a user's prepaid balance."""

  def __init__(self, repo: CreditsRepository, *, default_multiplier: float) -> None:
    self._repo = repo
    self._default_multiplier = default_multiplier

  async def balance(self, user_id: str) -> float:
    """Return the current balance; unknown users have none."""
    value = await self._repo.get_balance(user_id)
    return float(value) if value is not None else 0.0

  async def has_credits(self, user_id: str) -> bool:
    """Pre-flight check; a balance at or below zero blocks new model calls."""
    balance = await self.balance(user_id)
    if balance <= 0:
      logger.info("Credit pre-flight rejected user_id=%s balance=%.4f", user_id, balance)
      return False
    return True

  async def record_usage(self, usage: StageUsage) -> UsageCharge:
    """Price the call, then log it and deduct credits atomically."""
    pricing = await self._repo.load_pricing()
    cost = calculate_cost(pricing, provider=usage.provider, model=usage.model_name, input_tokens=usage.input_tokens, output_tokens=usage.output_tokens)
    entry = UsageEntry(
      user_id=usage.user_id,
      stage=usage.stage,
      provider=usage.provider,
      model_name=usage.model_name,
      input_tokens=usage.input_tokens,
      output_tokens=usage.output_tokens,
      cost_usd=cost,
      project_id=usage.project_id,
      paper_id=usage.paper_id,
      duration_ms=usage.duration_ms,
      request_id=usage.request_id,
    )
    charge = await self._repo.charge_usage(entry, default_multiplier=self._default_multiplier)
    logger.info("Charged user_id=%s stage=%s model=%s cost_usd=%.6f credits=%.6f balance_after=%.4f", usage.user_id, usage.stage, usage.model_name, charge.cost_usd, charge.credits_charged, charge.balance_after)
    return charge

  async def recharge(self, user_id: str, amount: float, *, admin_id: str | None = None, reason: str | None = None) -> RechargeResult:
    """Add credits to a user's balance."""
    if amount <= 0:
      raise ValueError("Recharge amount must be positive.")
    result = await self._repo.recharge(user_id, amount, admin_id=admin_id, reason=reason)
    logger.info("Recharged user_id=%s amount=%.4f balance_after=%.4f", user_id, amount, result.balance_after)
    return result

  async def usage_totals(self, user_id: str, *, project_id: str | None = None) -> list[UsageTotals]:
    """Summarise what the user has been charged, per stage and model."""
    return await self._repo.usage_totals(user_id, project_id=project_id)

  async def transactions(self, user_id: str, *, limit: int = 20, offset: int = 0) -> tuple[list[CreditTransaction], int]:
    return await self._repo.list_transactions(user_id, limit=limit, offset=offset)

  async def set_multiplier(self, multiplier: float, *, admin_id: str | None = None, description: str | None = None) -> MultiplierRecord:
    """Make ``multiplier`` the active currency-to-credit rate for future charges.

    Past ledger rows keep the multiplier they were charged with.
    """
    if multiplier <= 0:
      raise ValueError("Multiplier must be positive.")
    record = await self._repo.add_multiplier(multiplier, description=description or f"1 USD = {multiplier:g} credits")
    logger.info("Credit multiplier set multiplier=%.4f admin_id=%s", multiplier, admin_id)
    return record

  async def multiplier_history(self, *, limit: int = 50) -> list[MultiplierRecord]:
    return await self._repo.list_multipliers(limit=limit)
