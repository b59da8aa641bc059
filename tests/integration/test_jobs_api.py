from __future__ import annotations

import pytest

from litreview.broker.interface import PAPER_SCORING_QUEUE, PROJECT_INIT_QUEUE
from litreview.jobs.models import JobStatus, JobType
from tests.fakes import OTHER_USER_ID, PROJECT_ID, USER_ID, make_job

ADMIN_HEADERS = {"X-Admin-Secret": "test-admin-secret", "X-User-Id": "admin-1"}


@pytest.mark.anyio
async def test_health_echoes_request_id(async_client) -> None:
  response = await async_client.get("/health", headers={"x-request-id": "req-123"})
  assert response.status_code == 200
  assert response.json()["status"] == "ok"
  assert response.headers["x-request-id"] == "req-123"


@pytest.mark.anyio
async def test_requests_without_user_are_rejected(async_client) -> None:
  response = await async_client.get("/v1/jobs", headers={"X-User-Id": ""})
  assert response.status_code == 401
  assert response.json()["detail"] == "Missing authenticated user"


@pytest.mark.anyio
async def test_list_jobs_paginates_newest_first(async_client, pipeline) -> None:
  for index in range(5):
    pipeline.jobs.seed(make_job(f"job-{index}", status=JobStatus.COMPLETED, failure_reason=None, created_at=f"2026-01-0{index + 1}T00:00:00Z"))
  pipeline.jobs.seed(make_job("other", user_id=OTHER_USER_ID))

  response = await async_client.get("/v1/jobs", params={"limit": 2, "offset": 1})

  assert response.status_code == 200
  body = response.json()
  assert [job["id"] for job in body["jobs"]] == ["job-3", "job-2"]
  assert body["pagination"] == {"total": 5, "limit": 2, "offset": 1, "hasMore": True}
  assert body["jobs"][0]["jobType"] == "INIT_INTENT"


@pytest.mark.anyio
async def test_list_jobs_filters_by_status(async_client, pipeline) -> None:
  pipeline.jobs.seed(make_job("failed"))
  pipeline.jobs.seed(make_job("no-credits", status=JobStatus.FAILED_NO_CREDITS))
  pipeline.jobs.seed(make_job("done", status=JobStatus.COMPLETED, failure_reason=None))

  response = await async_client.get("/v1/jobs", params={"status": "failed,failed_no_credits"})

  assert response.status_code == 200
  assert {job["id"] for job in response.json()["jobs"]} == {"failed", "no-credits"}


@pytest.mark.anyio
async def test_unknown_status_filter_is_a_validation_error(async_client) -> None:
  response = await async_client.get("/v1/jobs", params={"status": "EXPLODED"}, headers={"x-request-id": "req-9"})
  assert response.status_code == 422
  assert response.json() == {"detail": "Unknown job status: EXPLODED", "code": "VALIDATION", "requestId": "req-9"}


@pytest.mark.anyio
async def test_page_limit_is_bounded(async_client) -> None:
  response = await async_client.get("/v1/jobs", params={"limit": 500})
  assert response.status_code == 422
  body = response.json()
  assert body["code"] == "VALIDATION"
  assert all("input" not in error for error in body["detail"])


@pytest.mark.anyio
async def test_get_job_enforces_ownership(async_client, pipeline) -> None:
  pipeline.jobs.seed(make_job("mine"))
  pipeline.jobs.seed(make_job("theirs", user_id=OTHER_USER_ID))

  mine = await async_client.get("/v1/jobs/mine")
  assert mine.status_code == 200
  assert mine.json()["failureReason"] == "boom"
  assert (await async_client.get("/v1/jobs/theirs")).status_code == 403
  missing = await async_client.get("/v1/jobs/nope")
  assert missing.status_code == 404
  assert missing.json()["code"] == "NOT_FOUND"


@pytest.mark.anyio
async def test_resume_after_recharge_completes(async_client, pipeline) -> None:
  pipeline.credits_repo.balances[USER_ID] = 0.0
  created = await async_client.post(f"/v1/projects/{PROJECT_ID}/init")
  assert created.status_code == 202
  job_id = created.json()["id"]
  await pipeline.drain()
  failed = (await async_client.get(f"/v1/jobs/{job_id}")).json()
  assert failed["status"] == "FAILED_NO_CREDITS"

  recharge = await async_client.post(f"/admin/credits/{USER_ID}/recharge", json={"amount": 100, "reason": "top-up"}, headers=ADMIN_HEADERS)
  assert recharge.status_code == 200
  assert recharge.json()["balanceAfter"] == 100.0

  resumed = await async_client.post(f"/v1/jobs/{job_id}/resume")
  assert resumed.status_code == 200
  assert resumed.json()["message"] == "Job resumed"
  assert resumed.json()["job"]["status"] == "PENDING"

  await pipeline.drain()
  assert (await async_client.get(f"/v1/jobs/{job_id}")).json()["status"] == "COMPLETED"


@pytest.mark.anyio
async def test_resume_orphan_returns_not_found_twice(async_client, pipeline) -> None:
  pipeline.jobs.seed(make_job("job-1"))
  pipeline.research.delete_project(PROJECT_ID)

  first = await async_client.post("/v1/jobs/job-1/resume")
  second = await async_client.post("/v1/jobs/job-1/resume")

  assert first.status_code == second.status_code == 404
  assert first.json()["detail"] == "Project no longer exists"
  assert second.json()["code"] == "ORPHANED_PARENT"
  stored = await pipeline.jobs.get_job("job-1")
  assert stored.status == JobStatus.FAILED
  assert "no longer exists" in stored.failure_reason


@pytest.mark.anyio
async def test_resume_lost_tasks(async_client, pipeline) -> None:
  pipeline.research.add_paper("paper-1", PROJECT_ID)
  pipeline.jobs.seed(make_job("score", job_type=JobType.PAPER_SCORING, paper_id="paper-1", task_ref="expired-ref"))
  pipeline.jobs.seed(make_job("email", job_type=JobType.SEND_EMAIL, task_ref="expired-ref"))

  scored = await async_client.post("/v1/jobs/score/resume")
  assert scored.status_code == 200
  rebuilt = await pipeline.jobs.get_job("score")
  assert rebuilt.external_task_ref != "expired-ref"
  assert await pipeline.broker.lookup(PAPER_SCORING_QUEUE.name, rebuilt.external_task_ref) is not None

  gone = await async_client.post("/v1/jobs/email/resume")
  assert gone.status_code == 410
  assert gone.json()["code"] == "JOB_DATA_LOST"
  assert (await pipeline.jobs.get_job("email")).status == JobStatus.FAILED


@pytest.mark.anyio
async def test_resume_rejects_non_failed_and_foreign_jobs(async_client, pipeline) -> None:
  pipeline.jobs.seed(make_job("done", status=JobStatus.COMPLETED, failure_reason=None))
  pipeline.jobs.seed(make_job("theirs", user_id=OTHER_USER_ID))

  done = await async_client.post("/v1/jobs/done/resume")
  assert done.status_code == 400
  assert done.json()["code"] == "INVALID_STATE"
  assert (await async_client.post("/v1/jobs/theirs/resume")).status_code == 403


@pytest.mark.anyio
async def test_resume_all_reports_counts(async_client, pipeline) -> None:
  pipeline.jobs.seed(make_job("job-1", task_ref="expired-ref"))
  pipeline.jobs.seed(make_job("job-2", job_type=JobType.SEND_EMAIL))

  response = await async_client.post("/v1/jobs/resume-all")

  assert response.status_code == 200
  assert response.json() == {"resumedCount": 1, "totalFailedFound": 2}


@pytest.mark.anyio
async def test_resume_all_without_credits_is_payment_required(async_client, pipeline) -> None:
  pipeline.credits_repo.balances[USER_ID] = 0.0
  response = await async_client.post("/v1/jobs/resume-all")
  assert response.status_code == 402
  assert response.json()["code"] == "INSUFFICIENT_CREDITS"


@pytest.mark.anyio
async def test_project_init_queues_intent_job(async_client, pipeline) -> None:
  response = await async_client.post(f"/v1/projects/{PROJECT_ID}/init")

  assert response.status_code == 202
  body = response.json()
  assert body["jobType"] == "INIT_INTENT"
  assert body["status"] == "PENDING"
  stored = await pipeline.jobs.get_job(body["id"])
  assert await pipeline.broker.lookup(PROJECT_INIT_QUEUE.name, stored.external_task_ref) is not None


@pytest.mark.anyio
async def test_project_routes_check_ownership(async_client, pipeline) -> None:
  pipeline.research.add_project("proj-2", OTHER_USER_ID)
  assert (await async_client.post("/v1/projects/proj-2/init")).status_code == 403
  assert (await async_client.post("/v1/projects/missing/papers/score")).status_code == 404


@pytest.mark.anyio
async def test_project_without_abstract_is_rejected(async_client, pipeline) -> None:
  pipeline.research.add_project("blank", USER_ID, abstract="  ")
  response = await async_client.post("/v1/projects/blank/init")
  assert response.status_code == 422
  assert pipeline.jobs.all() == []


@pytest.mark.anyio
async def test_paper_scoring_queues_one_job_per_unprocessed_paper(async_client, pipeline) -> None:
  pipeline.research.add_paper("paper-1", PROJECT_ID)
  pipeline.research.add_paper("paper-2", PROJECT_ID)

  response = await async_client.post(f"/v1/projects/{PROJECT_ID}/papers/score")

  assert response.status_code == 202
  body = response.json()
  assert body["queuedCount"] == 2
  assert body["dispatchFailures"] == 0
  assert {job["paperId"] for job in body["jobs"]} == {"paper-1", "paper-2"}


@pytest.mark.anyio
async def test_credit_balance_for_caller(async_client, pipeline) -> None:
  pipeline.credits_repo.balances[USER_ID] = 12.5
  response = await async_client.get("/v1/credits/balance")
  assert response.status_code == 200
  assert response.json() == {"userId": USER_ID, "balance": 12.5}


@pytest.mark.anyio
async def test_recharge_requires_admin_secret(async_client) -> None:
  missing = await async_client.post(f"/admin/credits/{USER_ID}/recharge", json={"amount": 5})
  wrong = await async_client.post(f"/admin/credits/{USER_ID}/recharge", json={"amount": 5}, headers={"X-Admin-Secret": "guess"})
  assert missing.status_code == wrong.status_code == 403


@pytest.mark.anyio
async def test_recharge_validates_amount_and_user(async_client) -> None:
  negative = await async_client.post(f"/admin/credits/{USER_ID}/recharge", json={"amount": -5}, headers=ADMIN_HEADERS)
  assert negative.status_code == 422
  unknown = await async_client.post("/admin/credits/ghost/recharge", json={"amount": 5}, headers=ADMIN_HEADERS)
  assert unknown.status_code == 404
  assert unknown.json()["detail"] == "User not found"


@pytest.mark.anyio
async def test_usage_summary_totals_by_stage_and_model(async_client, pipeline) -> None:
  await async_client.post(f"/v1/projects/{PROJECT_ID}/init")
  await pipeline.drain()

  response = await async_client.get("/v1/credits/usage")

  assert response.status_code == 200
  body = response.json()
  assert body["totalCalls"] == 2
  assert (body["totalInputTokens"], body["totalOutputTokens"]) == (2000, 1000)
  assert body["totalCreditsCharged"] == pytest.approx(0.09)
  assert [(row["stage"], row["modelName"], row["calls"]) for row in body["breakdown"]] == [("intent", "gpt-4o-mini", 1), ("queries", "gpt-4o-mini", 1)]


@pytest.mark.anyio
async def test_usage_summary_per_project_and_per_user(async_client, pipeline) -> None:
  await async_client.post(f"/v1/projects/{PROJECT_ID}/init")
  await pipeline.drain()

  mine = await async_client.get("/v1/credits/usage", params={"projectId": PROJECT_ID})
  elsewhere = await async_client.get("/v1/credits/usage", params={"projectId": "proj-2"})
  theirs = await async_client.get("/v1/credits/usage", headers={"X-User-Id": OTHER_USER_ID})

  assert mine.json()["projectId"] == PROJECT_ID
  assert mine.json()["totalCalls"] == 2
  assert elsewhere.json()["totalCalls"] == 0
  assert elsewhere.json()["breakdown"] == []
  assert theirs.json()["totalCreditsCharged"] == 0


@pytest.mark.anyio
async def test_transaction_history_lists_callers_recharges_newest_first(async_client) -> None:
  await async_client.post(f"/admin/credits/{USER_ID}/recharge", json={"amount": 5, "reason": "trial"}, headers=ADMIN_HEADERS)
  await async_client.post(f"/admin/credits/{USER_ID}/recharge", json={"amount": 20, "reason": "top-up"}, headers=ADMIN_HEADERS)
  await async_client.post(f"/admin/credits/{OTHER_USER_ID}/recharge", json={"amount": 7}, headers=ADMIN_HEADERS)

  response = await async_client.get("/v1/credits/transactions", params={"limit": 1})

  assert response.status_code == 200
  body = response.json()
  assert body["pagination"] == {"total": 2, "limit": 1, "offset": 0, "hasMore": True}
  (latest,) = body["transactions"]
  assert (latest["transactionType"], latest["amount"], latest["reason"]) == ("ADMIN_RECHARGE", 20.0, "top-up")
  assert (latest["balanceBefore"], latest["balanceAfter"]) == (55.0, 75.0)


@pytest.mark.anyio
async def test_admin_multiplier_change_applies_to_new_charges(async_client, pipeline) -> None:
  created = await async_client.post("/admin/credits/multiplier", json={"multiplier": 200, "description": "promo"}, headers=ADMIN_HEADERS)
  assert created.status_code == 201
  assert created.json()["isActive"] is True
  await async_client.post("/admin/credits/multiplier", json={"multiplier": 250}, headers=ADMIN_HEADERS)

  await async_client.post(f"/v1/projects/{PROJECT_ID}/init")
  await pipeline.drain()

  assert {multiplier for _, multiplier, _ in pipeline.credits_repo.usage_log} == {250.0}
  history = (await async_client.get("/admin/credits/multiplier/history", headers=ADMIN_HEADERS)).json()
  assert [(row["multiplier"], row["isActive"]) for row in history] == [(250.0, True), (200.0, False)]
  assert history[0]["description"] == "1 USD = 250 credits"


@pytest.mark.anyio
async def test_multiplier_route_requires_admin_and_positive_value(async_client) -> None:
  assert (await async_client.post("/admin/credits/multiplier", json={"multiplier": 200})).status_code == 403
  invalid = await async_client.post("/admin/credits/multiplier", json={"multiplier": 0}, headers=ADMIN_HEADERS)
  assert invalid.status_code == 422
