"""Storage interfaces for the users, projects and papers the stages read and write."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

STAGE_EVALUATED = "EVALUATED"
STAGE_FAILED_INSUFFICIENT_CREDITS = "FAILED_INSUFFICIENT_CREDITS"


@dataclass(frozen=True)
class UserRecord:
  id: str
  email: str
  first_name: str | None
  credits_balance: float


@dataclass(frozen=True)
class ProjectRecord:
  """Project row including any persisted stage outputs."""

  id: str
  user_id: str
  name: str
  abstract: str
  intent_status: str = "PENDING"
  query_status: str = "PENDING"
  intent: dict[str, Any] | None = None
  queries: dict[str, Any] | None = None


@dataclass(frozen=True)
class PaperRecord:
  id: str
  project_id: str
  title: str
  abstract: str
  is_processed: bool = False


class ResearchRepository(Protocol):
  """Read/write contract for project and paper state used by the job engine."""

  async def get_user(self, user_id: str) -> UserRecord | None:
    """Fetch a user by identifier."""

  async def get_project(self, project_id: str) -> ProjectRecord | None:
    """Fetch a project by identifier."""

  async def get_paper(self, paper_id: str) -> PaperRecord | None:
    """Fetch a candidate paper by identifier."""

  async def list_unprocessed_papers(self, project_id: str) -> list[PaperRecord]:
    """Return papers of a project that have not been scored yet."""

  async def count_unprocessed_papers(self, project_id: str) -> int:
    """Count papers of a project that have not been scored yet."""

  async def count_papers(self, project_id: str) -> int:
    """Count all papers of a project."""

  async def save_intent(self, project_id: str, intent: dict[str, Any]) -> None:
    """Persist the intent decomposition output and mark the stage evaluated.

    Raises ``OrphanedParent`` when the project no longer exists.
    """

  async def save_queries(self, project_id: str, queries: dict[str, Any]) -> None:
    """Persist the generated search queries; raises ``OrphanedParent`` for a deleted project."""

  async def save_paper_score(self, paper_id: str, score: dict[str, Any], *, model_name: str | None) -> None:
    """Persist a paper's scoring output and mark it processed; raises ``NotFound`` for a deleted paper."""

  async def set_stage_status(self, project_id: str, *, intent_status: str | None = None, query_status: str | None = None) -> None:
    """Update the per-stage processing status shown on the project."""
