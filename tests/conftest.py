"""Shared fixtures: in-memory pipeline wiring and an API client."""

from __future__ import annotations

import os
from dataclasses import dataclass

# Settings are read at import time; fix them before the app is imported.
os.environ["LITREVIEW_BROKER_PROVIDER"] = "memory"
os.environ["LITREVIEW_ADMIN_SECRET"] = "test-admin-secret"
os.environ.pop("LITREVIEW_PG_DSN", None)
os.environ.pop("LITREVIEW_ALLOWED_ORIGINS", None)

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from litreview.api.deps import get_broker, get_credits_repo, get_jobs_repo, get_research_repo  # noqa: E402
from litreview.broker.interface import EMAIL_QUEUE, PAPER_SCORING_QUEUE, PROJECT_INIT_QUEUE  # noqa: E402
from litreview.broker.memory import InMemoryBroker  # noqa: E402
from litreview.config import get_settings  # noqa: E402
from litreview.jobs.dispatch import JobDispatcher  # noqa: E402
from litreview.jobs.stages import StageDependencies, build_stage_registry  # noqa: E402
from litreview.jobs.worker import JobWorker, QueueConsumer  # noqa: E402
from litreview.services.credits import CreditGate  # noqa: E402
from litreview.services.resume import ResumeCoordinator  # noqa: E402
from tests.fakes import OTHER_USER_ID, PROJECT_ID, USER_ID, FakeModel, InMemoryCreditsRepo, InMemoryJobsRepo, InMemoryResearchRepo, ManualClock, RecordingEmailSender  # noqa: E402

get_settings.cache_clear()

from litreview.main import app  # noqa: E402


@pytest.fixture
def anyio_backend():
  return "asyncio"


@dataclass
class Pipeline:
  """Everything a worker or the resume path touches, backed by memory."""

  jobs: InMemoryJobsRepo
  research: InMemoryResearchRepo
  credits_repo: InMemoryCreditsRepo
  broker: InMemoryBroker
  clock: ManualClock
  model: FakeModel
  email: RecordingEmailSender
  dispatcher: JobDispatcher
  credits: CreditGate
  worker: JobWorker
  resume: ResumeCoordinator

  def consumer(self, queue: str) -> QueueConsumer:
    policies = {policy.name: policy for policy in (PROJECT_INIT_QUEUE, PAPER_SCORING_QUEUE, EMAIL_QUEUE)}
    return QueueConsumer(self.worker, self.broker, policies[queue], worker_id="test-worker", lease_seconds=30)

  async def drain(self, *queues: str) -> int:
    """Run every deliverable task on the given queues (all when omitted) until idle."""
    names = queues or (PROJECT_INIT_QUEUE.name, PAPER_SCORING_QUEUE.name, EMAIL_QUEUE.name)
    total = 0
    while True:
      processed = 0
      for name in names:
        processed += await self.consumer(name).drain()
      total += processed
      if processed == 0:
        return total


@pytest.fixture
def pipeline() -> Pipeline:
  jobs = InMemoryJobsRepo()
  research = InMemoryResearchRepo()
  research.add_user(USER_ID)
  research.add_user(OTHER_USER_ID, first_name="Grace")
  research.add_project(PROJECT_ID, USER_ID)
  credits_repo = InMemoryCreditsRepo(balances={USER_ID: 50.0, OTHER_USER_ID: 50.0})
  clock = ManualClock()
  broker = InMemoryBroker(clock=clock)
  model = FakeModel()
  email = RecordingEmailSender()
  dispatcher = JobDispatcher(jobs, broker, timeout_seconds=1.0)
  credits = CreditGate(credits_repo, default_multiplier=100.0)
  deps = StageDependencies(research=research, credits=credits, dispatcher=dispatcher, model_factory=lambda: model, email_sender=email, frontend_url="https://app.example.com")
  worker = JobWorker(jobs_repo=jobs, broker=broker, registry=build_stage_registry(deps))
  resume = ResumeCoordinator(jobs_repo=jobs, research=research, credits=credits, dispatcher=dispatcher)
  return Pipeline(jobs=jobs, research=research, credits_repo=credits_repo, broker=broker, clock=clock, model=model, email=email, dispatcher=dispatcher, credits=credits, worker=worker, resume=resume)


@pytest.fixture
async def async_client(pipeline: Pipeline):
  app.dependency_overrides[get_jobs_repo] = lambda: pipeline.jobs
  app.dependency_overrides[get_research_repo] = lambda: pipeline.research
  app.dependency_overrides[get_credits_repo] = lambda: pipeline.credits_repo
  app.dependency_overrides[get_broker] = lambda: pipeline.broker
  async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test", headers={"X-User-Id": USER_ID}) as client:
    yield client
  app.dependency_overrides.clear()
