from __future__ import annotations

from sqlalchemy import Index, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from litreview.core.database import Base

_UTC_NOW_ISO = text("""to_char((now() AT TIME ZONE 'UTC'), 'YYYY-MM-DD"T"HH24:MI:SS"Z"')""")


class BackgroundJob(Base):
  __tablename__ = "background_jobs"
  __table_args__ = (Index("ix_background_jobs_user_status", "user_id", "status"),)

  id: Mapped[str] = mapped_column(String, primary_key=True)
  user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  # No foreign key: a deleted project leaves its jobs behind as orphans.
  project_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
  paper_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
  job_type: Mapped[str] = mapped_column(String, nullable=False, index=True)
  status: Mapped[str] = mapped_column(String, nullable=False, index=True)
  failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
  external_task_ref: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
  created_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_UTC_NOW_ISO)
  updated_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_UTC_NOW_ISO)
