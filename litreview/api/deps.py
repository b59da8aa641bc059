"""Shared FastAPI dependencies for caller identity and service wiring."""

from __future__ import annotations

import logging
import secrets
from typing import Annotated

from fastapi import Depends, Header, HTTPException, status

from litreview.broker.factory import get_queue_broker
from litreview.broker.interface import QueueBroker
from litreview.config import Settings, get_settings
from litreview.jobs.dispatch import JobDispatcher
from litreview.services.credits import CreditGate
from litreview.services.resume import ResumeCoordinator
from litreview.storage.credits_repo import CreditsRepository
from litreview.storage.jobs_repo import JobsRepository
from litreview.storage.postgres_credits_repo import PostgresCreditsRepository
from litreview.storage.postgres_jobs_repo import PostgresJobsRepository
from litreview.storage.postgres_research_repo import PostgresResearchRepository
from litreview.storage.research_repo import ResearchRepository

logger = logging.getLogger(__name__)


async def get_current_user_id(x_user_id: Annotated[str | None, Header()] = None) -> str:
  """Return the user id the gateway verified for this request."""
  if not x_user_id or not x_user_id.strip():
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing authenticated user")
  return x_user_id.strip()


async def require_admin(settings: Annotated[Settings, Depends(get_settings)], x_admin_secret: Annotated[str | None, Header()] = None, x_user_id: Annotated[str | None, Header()] = None) -> str:
  """Guard admin routes with the shared admin secret; returns the acting admin id."""
  if not settings.admin_secret:
    logger.warning("Admin route called but LITREVIEW_ADMIN_SECRET is not configured")
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access is disabled")
  if not x_admin_secret or not secrets.compare_digest(x_admin_secret, settings.admin_secret):
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid admin credentials")
  return (x_user_id or "admin").strip()


def get_jobs_repo() -> JobsRepository:
  return PostgresJobsRepository()


def get_research_repo() -> ResearchRepository:
  return PostgresResearchRepository()


def get_credits_repo() -> CreditsRepository:
  return PostgresCreditsRepository()


def get_broker(settings: Annotated[Settings, Depends(get_settings)]) -> QueueBroker:
  return get_queue_broker(settings)


def get_credit_gate(repo: Annotated[CreditsRepository, Depends(get_credits_repo)], settings: Annotated[Settings, Depends(get_settings)]) -> CreditGate:
  return CreditGate(repo, default_multiplier=settings.default_credit_multiplier)


def get_dispatcher(jobs_repo: Annotated[JobsRepository, Depends(get_jobs_repo)], broker: Annotated[QueueBroker, Depends(get_broker)], settings: Annotated[Settings, Depends(get_settings)]) -> JobDispatcher:
  return JobDispatcher(jobs_repo, broker, timeout_seconds=settings.dispatch_timeout_seconds)


def get_resume_coordinator(
  jobs_repo: Annotated[JobsRepository, Depends(get_jobs_repo)],
  research: Annotated[ResearchRepository, Depends(get_research_repo)],
  credits: Annotated[CreditGate, Depends(get_credit_gate)],
  dispatcher: Annotated[JobDispatcher, Depends(get_dispatcher)],
) -> ResumeCoordinator:
  return ResumeCoordinator(jobs_repo=jobs_repo, research=research, credits=credits, dispatcher=dispatcher)
