"""Schema package exports; importing it registers every table on the metadata."""

from .broker import BrokerTaskRow
from .credits import CreditsMultiplierHistory, LlmUsageLog, UserCreditsTransaction
from .jobs import BackgroundJob
from .llm_pricing import LlmModelPricing
from .research import CandidatePaper, User, UserProject

__all__ = ["BackgroundJob", "BrokerTaskRow", "CandidatePaper", "CreditsMultiplierHistory", "LlmModelPricing", "LlmUsageLog", "User", "UserCreditsTransaction", "UserProject"]
