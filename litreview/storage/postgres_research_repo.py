"""Postgres-backed access to users, projects and candidate papers."""

from __future__ import annotations

import datetime
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from litreview.core.database import require_session_factory
from litreview.jobs.errors import ORPHAN_REASON, NotFound, OrphanedParent
from litreview.schema.research import CandidatePaper, User, UserProject
from litreview.storage.research_repo import STAGE_EVALUATED, PaperRecord, ProjectRecord, ResearchRepository, UserRecord


class PostgresResearchRepository(ResearchRepository):
  """Read stage inputs from and write stage outputs to the product tables."""

  def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
    self._session_factory = session_factory or require_session_factory()

  async def get_user(self, user_id: str) -> UserRecord | None:
    async with self._session_factory() as session:
      row = await session.get(User, user_id)
      if row is None:
        return None
      return UserRecord(id=row.id, email=row.email, first_name=row.first_name, credits_balance=float(row.ai_credits_balance or 0.0))

  async def get_project(self, project_id: str) -> ProjectRecord | None:
    async with self._session_factory() as session:
      row = await session.get(UserProject, project_id)
      return self._project_to_record(row) if row is not None else None

  async def get_paper(self, paper_id: str) -> PaperRecord | None:
    async with self._session_factory() as session:
      row = await session.get(CandidatePaper, paper_id)
      return self._paper_to_record(row) if row is not None else None

  async def list_unprocessed_papers(self, project_id: str) -> list[PaperRecord]:
    async with self._session_factory() as session:
      stmt = select(CandidatePaper).where(CandidatePaper.project_id == project_id, CandidatePaper.is_processed_by_llm.is_(False)).order_by(CandidatePaper.id)
      rows = (await session.execute(stmt)).scalars().all()
      return [self._paper_to_record(row) for row in rows]

  async def count_unprocessed_papers(self, project_id: str) -> int:
    async with self._session_factory() as session:
      stmt = select(func.count()).select_from(CandidatePaper).where(CandidatePaper.project_id == project_id, CandidatePaper.is_processed_by_llm.is_(False))
      return int(await session.scalar(stmt) or 0)

  async def count_papers(self, project_id: str) -> int:
    async with self._session_factory() as session:
      stmt = select(func.count()).select_from(CandidatePaper).where(CandidatePaper.project_id == project_id)
      return int(await session.scalar(stmt) or 0)

  async def save_intent(self, project_id: str, intent: dict[str, Any]) -> None:
    values = {
      "user_idea": intent["abstract"],
      "problem_statement": intent["problem"],
      "methodologies": intent["methodologies"],
      "application_domains": intent["applicationDomains"],
      "constraints": intent["constraints"],
      "contribution_types": intent["contributionTypes"],
      "keywords_seed": intent["keywords_seed"],
      "intent_processed_status": STAGE_EVALUATED,
    }
    await self._save_project_output(project_id, values)

  async def save_queries(self, project_id: str, queries: dict[str, Any]) -> None:
    values = {"boolean_query": queries["booleanQuery"], "expanded_keywords": queries["expandedKeywords"], "search_queries": queries["engineQueries"], "search_query_processed_status": STAGE_EVALUATED}
    await self._save_project_output(project_id, values)

  async def save_paper_score(self, paper_id: str, score: dict[str, Any], *, model_name: str | None) -> None:
    async with self._session_factory() as session, session.begin():
      stmt = (
        update(CandidatePaper)
        .where(CandidatePaper.id == paper_id)
        .values(
          is_processed_by_llm=True,
          semantic_similarity=score.get("semantic_similarity"),
          c1_score=score.get("c1_score"),
          c2_score=score.get("c2_score"),
          c2_contribution_type=score.get("c2_contribution_type"),
          scoring_json=score,
          model_used=model_name,
          processed_at=datetime.datetime.now(datetime.UTC),
        )
      )
      result = await session.execute(stmt)
      if result.rowcount == 0:
        raise NotFound(f"Paper {paper_id} no longer exists.")

  async def set_stage_status(self, project_id: str, *, intent_status: str | None = None, query_status: str | None = None) -> None:
    values: dict[str, Any] = {}
    if intent_status is not None:
      values["intent_processed_status"] = intent_status
    if query_status is not None:
      values["search_query_processed_status"] = query_status
    if values:
      await self._update_project(project_id, values)

  async def _save_project_output(self, project_id: str, values: dict[str, Any]) -> None:
    # A zero-row update means the project was deleted while the stage ran.
    if await self._update_project(project_id, values) == 0:
      raise OrphanedParent(ORPHAN_REASON)

  async def _update_project(self, project_id: str, values: dict[str, Any]) -> int:
    async with self._session_factory() as session, session.begin():
      result = await session.execute(update(UserProject).where(UserProject.id == project_id).values(**values))
      return result.rowcount

  def _project_to_record(self, row: UserProject) -> ProjectRecord:
    intent = None
    if row.problem_statement is not None:
      intent = {
        "abstract": row.user_idea,
        "problem": row.problem_statement,
        "methodologies": list(row.methodologies or []),
        "applicationDomains": list(row.application_domains or []),
        "constraints": list(row.constraints or []),
        "contributionTypes": list(row.contribution_types or []),
        "keywords_seed": list(row.keywords_seed or []),
      }
    queries = None
    if row.boolean_query is not None:
      queries = {"abstract": row.user_idea, "booleanQuery": row.boolean_query, "expandedKeywords": list(row.expanded_keywords or []), "engineQueries": dict(row.search_queries or {})}
    return ProjectRecord(
      id=row.id,
      user_id=row.user_id,
      name=row.project_name,
      abstract=row.user_idea,
      intent_status=row.intent_processed_status,
      query_status=row.search_query_processed_status,
      intent=intent,
      queries=queries,
    )

  def _paper_to_record(self, row: CandidatePaper) -> PaperRecord:
    return PaperRecord(id=row.id, project_id=row.project_id, title=row.title, abstract=row.abstract, is_processed=bool(row.is_processed_by_llm))
