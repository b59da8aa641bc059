from __future__ import annotations

import datetime

from sqlalchemy import DateTime, Index, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from litreview.core.database import Base


class BrokerTaskRow(Base):
  """Durable queue entry used by the Postgres broker."""

  __tablename__ = "broker_tasks"
  __table_args__ = (Index("ix_broker_tasks_claim", "queue", "state", "available_at"),)

  ref: Mapped[str] = mapped_column(String, primary_key=True)
  queue: Mapped[str] = mapped_column(String, nullable=False)
  task_type: Mapped[str] = mapped_column(String, nullable=False)
  payload: Mapped[dict] = mapped_column(JSONB, nullable=False)
  state: Mapped[str] = mapped_column(String, nullable=False)
  attempts_made: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
  max_attempts: Mapped[int] = mapped_column(Integer, nullable=False)
  available_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
  locked_by: Mapped[str | None] = mapped_column(String, nullable=True)
  locked_until: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
  updated_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())
