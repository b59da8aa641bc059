"""SQLAlchemy models for credit metering."""

from __future__ import annotations

import datetime

from sqlalchemy import Boolean, DateTime, Float, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from litreview.core.database import Base


class LlmUsageLog(Base):
  """Append-only usage ledger; written in the same transaction as the balance decrement."""

  __tablename__ = "llm_usage_logs"

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  project_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
  paper_id: Mapped[str | None] = mapped_column(String, nullable=True)
  stage: Mapped[str] = mapped_column(String, nullable=False)
  provider: Mapped[str] = mapped_column(String, nullable=False)
  model_name: Mapped[str] = mapped_column(String, nullable=False)
  input_tokens: Mapped[int] = mapped_column(Integer, nullable=False)
  output_tokens: Mapped[int] = mapped_column(Integer, nullable=False)
  cost_usd: Mapped[float] = mapped_column(Float, nullable=False)
  multiplier: Mapped[float] = mapped_column(Float, nullable=False)
  credits_charged: Mapped[float] = mapped_column(Float, nullable=False)
  duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
  request_id: Mapped[str | None] = mapped_column(String, nullable=True)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class CreditsMultiplierHistory(Base):
  """History of the currency-to-credit multiplier; the newest active row applies."""

  __tablename__ = "credits_multiplier_history"

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  multiplier: Mapped[float] = mapped_column(Float, nullable=False)
  is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="true")
  description: Mapped[str | None] = mapped_column(Text, nullable=True)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now(), index=True)


class UserCreditsTransaction(Base):
  """Ledger of manual balance adjustments."""

  __tablename__ = "user_credits_transactions"

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  transaction_type: Mapped[str] = mapped_column(String, nullable=False)
  amount: Mapped[float] = mapped_column(Float, nullable=False)
  balance_before: Mapped[float] = mapped_column(Float, nullable=False)
  balance_after: Mapped[float] = mapped_column(Float, nullable=False)
  admin_id: Mapped[str | None] = mapped_column(String, nullable=True)
  reason: Mapped[str | None] = mapped_column(Text, nullable=True)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
