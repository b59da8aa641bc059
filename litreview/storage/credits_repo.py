"""Storage interfaces for credit balances, pricing and the usage ledger."""

from __future__ import annotations

import datetime
from dataclasses import dataclass
from typing import Protocol

from litreview.services.llm_pricing import PricingTable


@dataclass(frozen=True)
class UsageEntry:
  """One priced LLM call, ready to be written to the usage ledger."""

  user_id: str
  stage: str
  provider: str
  model_name: str
  input_tokens: int
  output_tokens: int
  cost_usd: float
  project_id: str | None = None
  paper_id: str | None = None
  duration_ms: int | None = None
  request_id: str | None = None


@dataclass(frozen=True)
class UsageCharge:
  """Outcome of the ledger-and-deduct transaction."""

  cost_usd: float
  multiplier: float
  credits_charged: float
  balance_after: float


@dataclass(frozen=True)
class RechargeResult:
  user_id: str
  amount: float
  balance_before: float
  balance_after: float


@dataclass(frozen=True)
class UsageTotals:
  """Aggregated ledger rows for one stage and model."""

  stage: str
  model_name: str
  calls: int
  input_tokens: int
  output_tokens: int
  cost_usd: float
  credits_charged: float


@dataclass(frozen=True)
class CreditTransaction:
  """One manual balance adjustment as shown to its owner."""

  id: int
  transaction_type: str
  amount: float
  balance_before: float
  balance_after: float
  reason: str | None
  created_at: datetime.datetime


@dataclass(frozen=True)
class MultiplierRecord:
  id: int
  multiplier: float
  is_active: bool
  description: str | None
  created_at: datetime.datetime


class CreditsRepository(Protocol):
  """Persistence contract for the credit gate."""

  async def get_balance(self, user_id: str) -> float | None:
    """Return the user's balance, or None for an unknown user."""

  async def load_pricing(self) -> PricingTable:
    """Return active model pricing."""

  async def charge_usage(self, entry: UsageEntry, *, default_multiplier: float) -> UsageCharge:
    """Insert the ledger entry and decrement the balance in one transaction.

    The multiplier is read inside that transaction. Raises ``LookupError``
    when the user does not exist, in which case nothing is written.
    """

  async def recharge(self, user_id: str, amount: float, *, admin_id: str | None, reason: str | None) -> RechargeResult:
    """Add credits and append a recharge transaction row atomically."""

  async def usage_totals(self, user_id: str, *, project_id: str | None = None) -> list[UsageTotals]:
    """Sum the user's ledger rows per stage and model, optionally for one project."""

  async def list_transactions(self, user_id: str, *, limit: int, offset: int) -> tuple[list[CreditTransaction], int]:
    """Return a page of the user's balance adjustments, newest first, and the total count."""

  async def add_multiplier(self, multiplier: float, *, description: str | None) -> MultiplierRecord:
    """Deactivate the current multiplier and insert ``multiplier`` as the active one."""

  async def list_multipliers(self, *, limit: int) -> list[MultiplierRecord]:
    """Return multiplier history, newest first."""
