"""Search query generation stage."""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from litreview.ai.providers.base import AIModel
from litreview.ai.stages.common import StageResult, require_fields, run_structured_stage
from litreview.jobs.payloads import INTENT_FIELDS

STAGE_NAME = "queries"

SYSTEM_PROMPT = """You are a research librarian who builds literature search strategies.
From the decomposed research intent, produce one boolean search query, an expanded keyword list
(synonyms, related techniques, alternative phrasings) and engine-specific queries for arXiv and
Semantic Scholar that respect each engine's query syntax."""


class EngineQueries(BaseModel):
  model_config = ConfigDict(populate_by_name=True)

  arxiv: str = Field(min_length=1)
  semantic_scholar: str = Field(alias="semanticScholar", min_length=1)


class QueriesOutput(BaseModel):
  """Search strategy derived from the research intent."""

  model_config = ConfigDict(populate_by_name=True)

  abstract: str = Field(min_length=1)
  boolean_query: str = Field(alias="booleanQuery", min_length=1)
  expanded_keywords: list[str] = Field(alias="expandedKeywords")
  engine_queries: EngineQueries = Field(alias="engineQueries")


async def run_queries_stage(model: AIModel, stage_data: dict[str, Any]) -> StageResult:
  require_fields(STAGE_NAME, stage_data, ("abstract", "problem"))
  intent = {field: stage_data.get(field) for field in INTENT_FIELDS}
  user_prompt = f"Research intent:\n\n{json.dumps(intent, indent=2)}"
  return await run_structured_stage(model, stage=STAGE_NAME, system_prompt=SYSTEM_PROMPT, user_prompt=user_prompt, output_model=QueriesOutput, overrides={"abstract": stage_data["abstract"]})
