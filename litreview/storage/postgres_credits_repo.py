"""Postgres-backed credit balances and usage ledger."""

from __future__ import annotations

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from litreview.core.database import require_session_factory
from litreview.schema.credits import CreditsMultiplierHistory, LlmUsageLog, UserCreditsTransaction
from litreview.schema.research import User
from litreview.services.llm_pricing import PricingTable, load_pricing_table
from litreview.storage.credits_repo import CreditsRepository, CreditTransaction, MultiplierRecord, RechargeResult, UsageCharge, UsageEntry, UsageTotals


async def _active_multiplier(session: AsyncSession, default: float) -> float:
  stmt = select(CreditsMultiplierHistory.multiplier).where(CreditsMultiplierHistory.is_active.is_(True)).order_by(CreditsMultiplierHistory.created_at.desc(), CreditsMultiplierHistory.id.desc()).limit(1)
  value = await session.scalar(stmt)
  return float(value) if value is not None else float(default)


class PostgresCreditsRepository(CreditsRepository):
  """Single transactional path for every balance mutation."""

  def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
    self._session_factory = session_factory or require_session_factory()

  async def get_balance(self, user_id: str) -> float | None:
    async with self._session_factory() as session:
      value = await session.scalar(select(User.ai_credits_balance).where(User.id == user_id))
      return float(value) if value is not None else None

  async def load_pricing(self) -> PricingTable:
    async with self._session_factory() as session:
      return await load_pricing_table(session)

  async def charge_usage(self, entry: UsageEntry, *, default_multiplier: float) -> UsageCharge:
    async with self._session_factory() as session, session.begin():
      # Read the multiplier fresh so admin changes apply to the next charge.
      multiplier = await _active_multiplier(session, default_multiplier)
      credits = round(entry.cost_usd * multiplier, 6)
      session.add(
        LlmUsageLog(
          user_id=entry.user_id,
          project_id=entry.project_id,
          paper_id=entry.paper_id,
          stage=entry.stage,
          provider=entry.provider,
          model_name=entry.model_name,
          input_tokens=entry.input_tokens,
          output_tokens=entry.output_tokens,
          cost_usd=entry.cost_usd,
          multiplier=multiplier,
          credits_charged=credits,
          duration_ms=entry.duration_ms,
          request_id=entry.request_id,
        )
      )
      await session.flush()
      # Decrement in SQL so concurrent charges never overwrite each other.
      stmt = update(User).where(User.id == entry.user_id).values(ai_credits_balance=User.ai_credits_balance - credits).returning(User.ai_credits_balance)
      balance_after = (await session.execute(stmt)).scalar_one_or_none()
      if balance_after is None:
        raise LookupError(f"User {entry.user_id} not found; usage not recorded.")
      return UsageCharge(cost_usd=entry.cost_usd, multiplier=multiplier, credits_charged=credits, balance_after=float(balance_after))

  async def recharge(self, user_id: str, amount: float, *, admin_id: str | None, reason: str | None) -> RechargeResult:
    async with self._session_factory() as session, session.begin():
      stmt = select(User).where(User.id == user_id).with_for_update()
      user = (await session.execute(stmt)).scalar_one_or_none()
      if user is None:
        raise LookupError(f"User {user_id} not found.")
      balance_before = float(user.ai_credits_balance or 0.0)
      balance_after = round(balance_before + amount, 6)
      user.ai_credits_balance = balance_after
      session.add(UserCreditsTransaction(user_id=user_id, transaction_type="ADMIN_RECHARGE", amount=amount, balance_before=balance_before, balance_after=balance_after, admin_id=admin_id, reason=reason))
      return RechargeResult(user_id=user_id, amount=amount, balance_before=balance_before, balance_after=balance_after)

  async def usage_totals(self, user_id: str, *, project_id: str | None = None) -> list[UsageTotals]:
    stmt = (
      select(
        LlmUsageLog.stage,
        LlmUsageLog.model_name,
        func.count(LlmUsageLog.id),
        func.coalesce(func.sum(LlmUsageLog.input_tokens), 0),
        func.coalesce(func.sum(LlmUsageLog.output_tokens), 0),
        func.coalesce(func.sum(LlmUsageLog.cost_usd), 0.0),
        func.coalesce(func.sum(LlmUsageLog.credits_charged), 0.0),
      )
      .where(LlmUsageLog.user_id == user_id)
      .group_by(LlmUsageLog.stage, LlmUsageLog.model_name)
      .order_by(LlmUsageLog.stage, LlmUsageLog.model_name)
    )
    if project_id is not None:
      stmt = stmt.where(LlmUsageLog.project_id == project_id)
    async with self._session_factory() as session:
      rows = (await session.execute(stmt)).all()
    return [
      UsageTotals(stage=stage, model_name=model_name, calls=int(calls), input_tokens=int(input_tokens), output_tokens=int(output_tokens), cost_usd=float(cost_usd), credits_charged=float(credits_charged))
      for stage, model_name, calls, input_tokens, output_tokens, cost_usd, credits_charged in rows
    ]

  async def list_transactions(self, user_id: str, *, limit: int, offset: int) -> tuple[list[CreditTransaction], int]:
    async with self._session_factory() as session:
      total = await session.scalar(select(func.count()).select_from(UserCreditsTransaction).where(UserCreditsTransaction.user_id == user_id))
      stmt = select(UserCreditsTransaction).where(UserCreditsTransaction.user_id == user_id).order_by(UserCreditsTransaction.created_at.desc(), UserCreditsTransaction.id.desc()).limit(limit).offset(offset)
      rows = (await session.execute(stmt)).scalars().all()
    transactions = [
      CreditTransaction(id=row.id, transaction_type=row.transaction_type, amount=float(row.amount), balance_before=float(row.balance_before), balance_after=float(row.balance_after), reason=row.reason, created_at=row.created_at)
      for row in rows
    ]
    return transactions, int(total or 0)

  async def add_multiplier(self, multiplier: float, *, description: str | None) -> MultiplierRecord:
    async with self._session_factory() as session, session.begin():
      await session.execute(update(CreditsMultiplierHistory).where(CreditsMultiplierHistory.is_active.is_(True)).values(is_active=False))
      row = CreditsMultiplierHistory(multiplier=multiplier, is_active=True, description=description)
      session.add(row)
      await session.flush()
      await session.refresh(row)
      return self._multiplier_to_record(row)

  async def list_multipliers(self, *, limit: int) -> list[MultiplierRecord]:
    async with self._session_factory() as session:
      stmt = select(CreditsMultiplierHistory).order_by(CreditsMultiplierHistory.created_at.desc(), CreditsMultiplierHistory.id.desc()).limit(limit)
      rows = (await session.execute(stmt)).scalars().all()
      return [self._multiplier_to_record(row) for row in rows]

  def _multiplier_to_record(self, row: CreditsMultiplierHistory) -> MultiplierRecord:
    return MultiplierRecord(id=row.id, multiplier=float(row.multiplier), is_active=bool(row.is_active), description=row.description, created_at=row.created_at)
