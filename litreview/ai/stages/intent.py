"""Intent decomposition stage."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from litreview.ai.providers.base import AIModel
from litreview.ai.stages.common import StageResult, require_fields, run_structured_stage

STAGE_NAME = "intent"

SYSTEM_PROMPT = """You are an expert research analyst specializing in academic literature review and research methodology.
Analyze the research abstract and extract the research intent:
the core problem, the methodologies or algorithmic approaches, the application domains,
key constraints (for example low-power, real-time, scalability), the contribution types
(method, system, dataset, theory or hybrid) and 4-8 seed keywords useful for literature search.
Be precise and technical."""


class IntentOutput(BaseModel):
  """Structured research intent extracted from an abstract."""

  model_config = ConfigDict(populate_by_name=True)

  abstract: str = Field(min_length=1)
  problem: str = Field(min_length=1)
  methodologies: list[str]
  application_domains: list[str] = Field(alias="applicationDomains")
  constraints: list[str]
  contribution_types: list[str] = Field(alias="contributionTypes")
  keywords_seed: list[str] = Field(min_length=1)


async def run_intent_stage(model: AIModel, stage_data: dict[str, Any]) -> StageResult:
  require_fields(STAGE_NAME, stage_data, ("abstract",))
  abstract = str(stage_data["abstract"])
  user_prompt = f"Research abstract:\n\n{abstract}"
  # The abstract is echoed from the input, not trusted from the model.
  return await run_structured_stage(model, stage=STAGE_NAME, system_prompt=SYSTEM_PROMPT, user_prompt=user_prompt, output_model=IntentOutput, overrides={"abstract": abstract})
