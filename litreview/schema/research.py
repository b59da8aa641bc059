"""SQLAlchemy models for users, projects and candidate papers.

These tables are owned by the CRUD side of the product; the job engine reads
them for stage inputs and writes stage outputs back.
"""

from __future__ import annotations

import datetime

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from litreview.core.database import Base


class User(Base):
  __tablename__ = "users"

  id: Mapped[str] = mapped_column(String, primary_key=True)
  email: Mapped[str] = mapped_column(String, nullable=False, unique=True)
  first_name: Mapped[str | None] = mapped_column(String, nullable=True)
  ai_credits_balance: Mapped[float] = mapped_column(Float, nullable=False, server_default="0")
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class UserProject(Base):
  __tablename__ = "user_projects"

  id: Mapped[str] = mapped_column(String, primary_key=True)
  user_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
  project_name: Mapped[str] = mapped_column(String, nullable=False)
  user_idea: Mapped[str] = mapped_column(Text, nullable=False)
  # Intent decomposition output.
  intent_processed_status: Mapped[str] = mapped_column(String, nullable=False, server_default="PENDING")
  problem_statement: Mapped[str | None] = mapped_column(Text, nullable=True)
  methodologies: Mapped[list | None] = mapped_column(JSONB, nullable=True)
  application_domains: Mapped[list | None] = mapped_column(JSONB, nullable=True)
  constraints: Mapped[list | None] = mapped_column(JSONB, nullable=True)
  contribution_types: Mapped[list | None] = mapped_column(JSONB, nullable=True)
  keywords_seed: Mapped[list | None] = mapped_column(JSONB, nullable=True)
  # Query generation output.
  search_query_processed_status: Mapped[str] = mapped_column(String, nullable=False, server_default="PENDING")
  boolean_query: Mapped[str | None] = mapped_column(Text, nullable=True)
  expanded_keywords: Mapped[list | None] = mapped_column(JSONB, nullable=True)
  search_queries: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
  updated_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())


class CandidatePaper(Base):
  __tablename__ = "candidate_papers"

  id: Mapped[str] = mapped_column(String, primary_key=True)
  project_id: Mapped[str] = mapped_column(ForeignKey("user_projects.id", ondelete="CASCADE"), nullable=False, index=True)
  title: Mapped[str] = mapped_column(Text, nullable=False)
  abstract: Mapped[str] = mapped_column(Text, nullable=False)
  is_processed_by_llm: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="false", index=True)
  semantic_similarity: Mapped[float | None] = mapped_column(Float, nullable=True)
  c1_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
  c2_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
  c2_contribution_type: Mapped[str | None] = mapped_column(String, nullable=True)
  scoring_json: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
  model_used: Mapped[str | None] = mapped_column(String, nullable=True)
  processed_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
