"""Review API routes."""

from fastapi import APIRouter

from deep_reviewer.core.exceptions import ValidationError
from deep_reviewer.core.logging import get_logger
from deep_reviewer.core.pr_parser import parse_pr_reference
from deep_reviewer.core.schemas.responses import ApiResponse
from deep_reviewer.services.reviewer.registry import ToolRegistry
from deep_reviewer.services.reviewer.schemas import ReviewRequest, ReviewResponse, ToolInfo
from deep_reviewer.services.reviewer.service import review_repository

logger = get_logger("reviewer.routes")

router = APIRouter()


@router.get("/tools", response_model=ApiResponse[list[ToolInfo]])
async def list_tools() -> ApiResponse[list[ToolInfo]]:
    """Tool catalog advertised to the model."""
    return ApiResponse(data=[ToolInfo.from_descriptor(d) for d in ToolRegistry().list()])


@router.post("/reviews", response_model=ReviewResponse)
async def create_review(request: ReviewRequest) -> ReviewResponse:
    """Review a local checkout and optionally post the result to its PR."""
    pr_ref = None
    if request.pr:
        pr_ref = parse_pr_reference(request.pr)
        if pr_ref is None:
            raise ValidationError(f"Could not parse PR reference: {request.pr}", {"field": "pr"})

    logger.info(f"Review requested: {request.repo_path} {request.base}..{request.head}")
    outcome = await review_repository(
        request.repo_path,
        request.base,
        request.head,
        pr_ref=pr_ref,
        post=request.post,
    )
    result = outcome.result
    return ReviewResponse(
        status=result.status,
        abort_reason=result.abort_reason,
        retryable=result.retryable,
        pr=outcome.pr,
        files_reviewed=len(outcome.context.changed_files),
        tool_calls=result.tool_call_count,
        tokens_estimate=result.tokens_consumed_estimate,
        issues=len(result.review.issues),
        posted=outcome.posted,
        report=outcome.report,
    )
