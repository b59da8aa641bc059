"""Load LLM pricing configuration and price token usage."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from litreview.schema.llm_pricing import LlmModelPricing

PricingTable = dict[str, dict[str, tuple[float, float]]]

logger = logging.getLogger(__name__)


def _normalize_provider(value: Any) -> str:
  """Normalize provider identifiers for pricing lookups."""
  return str(value or "").strip().lower()


def _normalize_model(value: Any) -> str:
  """Normalize model identifiers for pricing lookups."""
  return str(value or "").strip()


async def load_pricing_table(session: AsyncSession) -> PricingTable:
  """Load active model pricing into a provider->model mapping."""
  pricing_table: PricingTable = {}
  # Only load active rows to avoid stale or disabled pricing entries.
  stmt = select(LlmModelPricing.provider, LlmModelPricing.model, LlmModelPricing.input_per_1m, LlmModelPricing.output_per_1m).where(LlmModelPricing.is_active.is_(True))
  result = await session.execute(stmt)
  for provider, model, input_rate, output_rate in result.all():
    normalized_provider = _normalize_provider(provider)
    normalized_model = _normalize_model(model)
    if normalized_provider == "" or normalized_model == "":
      continue

    provider_rates = pricing_table.setdefault(normalized_provider, {})
    provider_rates[normalized_model] = (float(input_rate or 0.0), float(output_rate or 0.0))

  return pricing_table


def calculate_cost(pricing_table: PricingTable, *, provider: str, model: str, input_tokens: int, output_tokens: int) -> float:
  """Return the base-currency cost of one call, rounded to six decimals."""
  provider_rates = pricing_table.get(_normalize_provider(provider), {})
  rates = provider_rates.get(_normalize_model(model))
  if rates is None:
    # Unknown models are logged but not charged.
    logger.warning("No active pricing for provider=%s model=%s; charging zero.", provider, model)
    return 0.0

  price_in, price_out = rates
  cost = (max(int(input_tokens), 0) / 1_000_000) * price_in
  cost += (max(int(output_tokens), 0) / 1_000_000) * price_out
  return round(cost, 6)
