"""Base interfaces for AI providers and models."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any


@dataclass
class StructuredModelResponse:
  """Structured model response with the usage needed for metering."""

  content: dict[str, Any]
  model: str
  usage: dict[str, int] | None = None
  request_id: str | None = None
  duration_ms: int | None = None


class AIModel(ABC):
  """Abstract base class for AI models."""

  name: str
  provider_name: str

  @abstractmethod
  async def generate_structured(self, system_prompt: str, user_prompt: str, schema: dict[str, Any]) -> StructuredModelResponse:
    """Generate JSON output that should conform to ``schema``."""

  @staticmethod
  def strip_json_fences(text: str) -> str:
    """Remove markdown code fences some models wrap around JSON."""
    stripped = text.strip()
    if stripped.startswith("```"):
      stripped = stripped.split("\n", 1)[1] if "\n" in stripped else ""
      if stripped.rstrip().endswith("```"):
        stripped = stripped.rstrip()[:-3]
    return stripped.strip()


class Provider(ABC):
  """Abstract base class for AI providers."""

  name: str

  @abstractmethod
  def get_model(self, model: str | None = None) -> AIModel:
    """Return the model client for the provider."""
