"""Paper-to-idea scoring stage."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

from litreview.ai.providers.base import AIModel
from litreview.ai.stages.common import StageResult, require_fields, run_structured_stage

STAGE_NAME = "score"

SYSTEM_PROMPT = """You are a senior reviewer comparing a candidate paper against a user's research idea.
Rate semantic similarity (0-1) and the overlap of problem, method, domain and constraints.
Criterion 1 (0-10): how directly the candidate competes with or anticipates the user's idea, with strengths and weaknesses.
Criterion 2 (0-10): how useful the candidate is as supporting literature, its contribution type and relevance areas.
Finally list research gaps the user could address and state what remains novel in the user's idea."""

Overlap = Literal["none", "low", "medium", "high"]
ContributionType = Literal["methodology", "problem_context", "domain_knowledge", "constraint_analysis", "related_application", "theoretical_foundation"]


class ScoringOutput(BaseModel):
  """Structured comparison between the user's abstract and a candidate paper."""

  semantic_similarity: float = Field(ge=0, le=1)
  problem_overlap: Overlap
  method_overlap: Overlap
  domain_overlap: Overlap
  constraint_overlap: Overlap
  c1_score: int = Field(ge=0, le=10)
  c1_justification: str
  c1_strengths: list[str]
  c1_weaknesses: list[str]
  c2_score: int = Field(ge=0, le=10)
  c2_justification: str
  c2_contribution_type: ContributionType
  c2_relevance_areas: list[str]
  research_gaps: list[str]
  user_novelty: str


async def run_scoring_stage(model: AIModel, stage_data: dict[str, Any]) -> StageResult:
  require_fields(STAGE_NAME, stage_data, ("userAbstract", "candidateAbstract"))
  title = stage_data.get("title") or "Untitled"
  user_prompt = f"User research idea:\n\n{stage_data['userAbstract']}\n\nCandidate paper: {title}\n\n{stage_data['candidateAbstract']}"
  return await run_structured_stage(model, stage=STAGE_NAME, system_prompt=SYSTEM_PROMPT, user_prompt=user_prompt, output_model=ScoringOutput)
