"""API tests for the pipeline review endpoints."""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import jwt
import pytest
from fastapi import status

from legal_intel.api.v1.endpoints.pipeline import get_pipeline_review_service
from legal_intel.core.auth import get_current_user
from legal_intel.core.config import settings
from legal_intel.core.exceptions import NotFoundError
from legal_intel.main import app
from legal_intel.pipeline.risk_score import RiskFactor, RiskResult
from legal_intel.schemas.auth import CurrentUser
from legal_intel.services.pipeline_review_service import PipelineReviewService

USER = CurrentUser(id=uuid4(), tenant_id=uuid4(), email="associate@firm.test", role="user")


@pytest.fixture
def mock_service():
    service = AsyncMock(spec=PipelineReviewService)
    app.dependency_overrides[get_pipeline_review_service] = lambda: service
    return service


@pytest.fixture
def authenticated():
    app.dependency_overrides[get_current_user] = lambda: USER
    return USER


def _run(**overrides):
    values = {
        "id": uuid4(),
        "document_id": uuid4(),
        "matter_id": uuid4(),
        "status": "completed",
        "current_stage": "actions",
        "stage_statuses": {"intake": "completed"},
        "findings_count": 1,
        "actions_count": 1,
        "total_tokens_used": 120,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def _finding(run_id, **overrides):
    values = {
        "id": uuid4(),
        "pipeline_run_id": run_id,
        "category_key": "dates",
        "field_key": "incident_date",
        "label": "Incident Date",
        "value": "2024-03-01",
        "confidence": 0.92,
        "impact": "critical",
        "status": "pending",
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def _action(run_id, **overrides):
    values = {
        "id": uuid4(),
        "pipeline_run_id": run_id,
        "action_type": "create_task",
        "title": "Call adjuster",
        "priority": 1,
        "status": "pending",
        "execution_status": "not_executed",
        "is_deterministic": True,
        "action_payload": {"title": "Call adjuster"},
    }
    values.update(overrides)
    return SimpleNamespace(**values)


class TestAuthentication:

    def test_missing_token_is_unauthorized(self, test_client, mock_service):
        response = test_client.get(f"/api/v1/pipeline/{uuid4()}")

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        mock_service.get_run.assert_not_awaited()

    def test_valid_token_scopes_to_tenant(self, test_client, mock_service):
        tenant_id = uuid4()
        token = jwt.encode(
            {
                "sub": str(uuid4()),
                "tenant_id": str(tenant_id),
                "aud": settings.auth.jwt_audience,
                "exp": datetime.now(timezone.utc) + timedelta(minutes=5),
            },
            settings.auth.jwt_secret,
            algorithm=settings.auth.jwt_algorithm,
        )
        mock_service.get_run.side_effect = NotFoundError("Pipeline run not found")

        response = test_client.get(
            f"/api/v1/pipeline/{uuid4()}", headers={"Authorization": f"Bearer {token}"}
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert mock_service.get_run.await_args.args[0] == tenant_id

    def test_token_without_tenant_is_rejected(self, test_client, mock_service):
        token = jwt.encode(
            {
                "sub": str(uuid4()),
                "aud": settings.auth.jwt_audience,
                "exp": datetime.now(timezone.utc) + timedelta(minutes=5),
            },
            settings.auth.jwt_secret,
            algorithm=settings.auth.jwt_algorithm,
        )

        response = test_client.get(
            f"/api/v1/pipeline/{uuid4()}", headers={"Authorization": f"Bearer {token}"}
        )

        assert response.status_code == status.HTTP_401_UNAUTHORIZED


class TestGetRun:

    def test_returns_run_findings_and_actions_in_camel_case(self, test_client, mock_service, authenticated):
        run = _run()
        mock_service.get_run.return_value = {
            "run": run,
            "findings": [_finding(run.id)],
            "actions": [_action(run.id)],
        }

        response = test_client.get(f"/api/v1/pipeline/{run.id}")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()["data"]
        assert data["run"]["totalTokensUsed"] == 120
        assert data["findings"][0]["fieldKey"] == "incident_date"
        assert data["actions"][0]["executionStatus"] == "not_executed"
        mock_service.get_run.assert_awaited_once_with(authenticated.tenant_id, run.id)

    def test_other_tenants_run_is_not_found(self, test_client, mock_service, authenticated):
        mock_service.get_run.side_effect = NotFoundError("Pipeline run not found")

        response = test_client.get(f"/api/v1/pipeline/{uuid4()}")

        assert response.status_code == status.HTTP_404_NOT_FOUND
        detail = response.json()["detail"]
        assert detail["title"] == "Pipeline Run Not Found"
        assert detail["detail"] == "Pipeline run not found"


class TestResolveFinding:

    def test_revision_without_corrected_value_is_rejected(self, test_client, mock_service, authenticated):
        response = test_client.patch(
            f"/api/v1/pipeline/findings/{uuid4()}",
            json={"status": "revised", "correctionScope": "this_matter"},
        )

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        assert "correctedValue" in response.json()["detail"]["detail"]
        mock_service.resolve_finding.assert_not_awaited()

    def test_unknown_status_is_rejected(self, test_client, mock_service, authenticated):
        response = test_client.patch(f"/api/v1/pipeline/findings/{uuid4()}", json={"status": "maybe"})

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    def test_revision(self, test_client, mock_service, authenticated):
        finding_id = uuid4()
        mock_service.resolve_finding.return_value = _finding(
            uuid4(), id=finding_id, status="revised", corrected_value="2024-03-02"
        )

        response = test_client.patch(
            f"/api/v1/pipeline/findings/{finding_id}",
            json={"status": "revised", "correctedValue": "2024-03-02", "correctionScope": "firm_wide"},
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["data"]["finding"]["correctedValue"] == "2024-03-02"
        mock_service.resolve_finding.assert_awaited_once_with(
            authenticated.tenant_id,
            authenticated.id,
            finding_id,
            "revised",
            corrected_value="2024-03-02",
            correction_scope="firm_wide",
        )


class TestResolveAction:

    def test_accepting_reports_execution(self, test_client, mock_service, authenticated):
        action = _action(uuid4(), status="accepted", execution_status="executed")
        mock_service.resolve_action.return_value = {"action": action, "executed": True, "error": None}

        response = test_client.patch(f"/api/v1/pipeline/actions/{action.id}", json={"status": "accepted"})

        assert response.status_code == status.HTTP_200_OK
        data = response.json()["data"]
        assert data["executed"] is True
        assert data["action"]["executionStatus"] == "executed"

    def test_pending_is_not_a_resolution(self, test_client, mock_service, authenticated):
        response = test_client.patch(f"/api/v1/pipeline/actions/{uuid4()}", json={"status": "pending"})

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


class TestRunsAndRisk:

    def test_create_run_is_accepted(self, test_client, mock_service, authenticated):
        run = _run(status="queued", current_stage=None, stage_statuses={})
        mock_service.create_run.return_value = run

        response = test_client.post("/api/v1/pipeline/runs", json={"documentId": str(run.document_id)})

        assert response.status_code == status.HTTP_202_ACCEPTED
        assert response.json()["data"]["run"]["status"] == "queued"

    def test_recalculate_risk(self, test_client, mock_service, authenticated):
        matter_id = uuid4()
        mock_service.recalculate_risk.return_value = RiskResult(
            score=17,
            factors=[RiskFactor(key="critical_findings", label="Critical findings", contribution=15.0, detail="1 critical finding")],
        )

        response = test_client.post(f"/api/v1/pipeline/matters/{matter_id}/risk/recalculate")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()["data"]
        assert data["matterId"] == str(matter_id)
        assert data["score"] == 17
        assert data["factors"][0]["key"] == "critical_findings"


def test_health_reports_database_status(test_client):
    with patch(
        "legal_intel.api.v1.endpoints.health.db_client.health_check",
        new=AsyncMock(return_value={"status": "unhealthy", "error": "refused"}),
    ):
        response = test_client.get("/health/")

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["status"] == "degraded"
    assert response.json()["database"] == "unhealthy"
