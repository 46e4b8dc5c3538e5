"""Pipeline review endpoints: run detail, finding and action resolution."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request, status

from legal_intel.core.auth import get_current_user
from legal_intel.core.database import async_session_maker
from legal_intel.core.exceptions import AppError, NotFoundError, ValidationError
from legal_intel.core.unit_of_work import unit_of_work_factory
from legal_intel.schemas.auth import CurrentUser
from legal_intel.schemas.common import ApiResponse
from legal_intel.schemas.pipeline import (
    CreateRunRequest,
    PipelineActionResponse,
    PipelineFindingResponse,
    PipelineRunDetailResponse,
    PipelineRunResponse,
    ResolveActionRequest,
    ResolveActionResponse,
    ResolveFindingRequest,
    RiskFactorResponse,
    RiskScoreResponse,
)
from legal_intel.services.pipeline_review_service import PipelineReviewService
from legal_intel.temporal.client import PipelineJobEnqueuer
from legal_intel.utils.logging import get_logger
from legal_intel.utils.responses import create_api_response, create_error_detail

LOGGER = get_logger(__name__)

router = APIRouter()


async def get_pipeline_review_service() -> PipelineReviewService:
    return PipelineReviewService(
        uow_factory=unit_of_work_factory(async_session_maker),
        enqueuer=PipelineJobEnqueuer(),
    )


def _http_error(e: AppError, request: Request, title: str) -> HTTPException:
    if isinstance(e, NotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(e, ValidationError):
        code = status.HTTP_422_UNPROCESSABLE_ENTITY
    else:
        LOGGER.error(f"{title}: {e.message}", exc_info=True)
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    detail = create_error_detail(title=title, status=code, detail=e.message, request=request)
    return HTTPException(status_code=code, detail=detail.model_dump(mode="json"))


@router.post(
    "/runs",
    response_model=ApiResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Queue a pipeline run for a document",
    operation_id="create_pipeline_run",
)
async def create_run(
    body: CreateRunRequest,
    request: Request,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    service: Annotated[PipelineReviewService, Depends(get_pipeline_review_service)],
):
    try:
        run = await service.create_run(
            current_user.tenant_id, current_user.id, body.document_id, body.options
        )
    except AppError as e:
        raise _http_error(e, request, "Pipeline Run Not Queued") from e

    return create_api_response(
        data={"run": PipelineRunResponse.model_validate(run).model_dump(mode="json", by_alias=True)},
        message="Pipeline run queued",
        request=request,
    )


@router.get(
    "/{run_id}",
    response_model=ApiResponse,
    summary="Get a pipeline run with its findings and actions",
    operation_id="get_pipeline_run",
)
async def get_run(
    run_id: UUID,
    request: Request,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    service: Annotated[PipelineReviewService, Depends(get_pipeline_review_service)],
):
    try:
        result = await service.get_run(current_user.tenant_id, run_id)
    except AppError as e:
        raise _http_error(e, request, "Pipeline Run Not Found") from e

    detail = PipelineRunDetailResponse(
        run=PipelineRunResponse.model_validate(result["run"]),
        findings=[PipelineFindingResponse.model_validate(f) for f in result["findings"]],
        actions=[PipelineActionResponse.model_validate(a) for a in result["actions"]],
    )
    return create_api_response(
        data=detail.model_dump(mode="json", by_alias=True),
        message="Pipeline run retrieved successfully",
        request=request,
    )


@router.patch(
    "/findings/{finding_id}",
    response_model=ApiResponse,
    summary="Accept, reject or revise a finding",
    operation_id="resolve_pipeline_finding",
)
async def resolve_finding(
    finding_id: UUID,
    body: ResolveFindingRequest,
    request: Request,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    service: Annotated[PipelineReviewService, Depends(get_pipeline_review_service)],
):
    try:
        finding = await service.resolve_finding(
            current_user.tenant_id,
            current_user.id,
            finding_id,
            body.status,
            corrected_value=body.corrected_value,
            correction_scope=body.correction_scope.value if body.correction_scope else None,
        )
    except AppError as e:
        raise _http_error(e, request, "Finding Not Resolved") from e

    return create_api_response(
        data={"finding": PipelineFindingResponse.model_validate(finding).model_dump(mode="json", by_alias=True)},
        message=f"Finding {body.status}",
        request=request,
    )


@router.patch(
    "/actions/{action_id}",
    response_model=ApiResponse,
    summary="Accept or dismiss a proposed action",
    operation_id="resolve_pipeline_action",
)
async def resolve_action(
    action_id: UUID,
    body: ResolveActionRequest,
    request: Request,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    service: Annotated[PipelineReviewService, Depends(get_pipeline_review_service)],
):
    """Accepting an action executes its side effect at most once."""
    try:
        result = await service.resolve_action(
            current_user.tenant_id, current_user.id, action_id, body.status
        )
    except AppError as e:
        raise _http_error(e, request, "Action Not Resolved") from e

    response = ResolveActionResponse(
        action=PipelineActionResponse.model_validate(result["action"]),
        executed=result["executed"],
        error=result["error"],
    )
    return create_api_response(
        data=response.model_dump(mode="json", by_alias=True),
        message=f"Action {body.status}",
        request=request,
    )


@router.post(
    "/matters/{matter_id}/risk/recalculate",
    response_model=ApiResponse,
    summary="Recompute a matter's risk score",
    operation_id="recalculate_matter_risk",
)
async def recalculate_risk(
    matter_id: UUID,
    request: Request,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    service: Annotated[PipelineReviewService, Depends(get_pipeline_review_service)],
):
    try:
        result = await service.recalculate_risk(current_user.tenant_id, matter_id)
    except AppError as e:
        raise _http_error(e, request, "Risk Not Recalculated") from e

    response = RiskScoreResponse(
        matter_id=matter_id,
        score=result.score,
        factors=[RiskFactorResponse(**factor.to_dict()) for factor in result.factors],
    )
    return create_api_response(
        data=response.model_dump(mode="json", by_alias=True),
        message="Risk score recalculated",
        request=request,
    )
