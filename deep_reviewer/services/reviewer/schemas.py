"""Pydantic schemas for reviewer service."""

from typing import Literal, Optional

from pydantic import BaseModel, Field

from deep_reviewer.schemas.review import ReviewContext, StructuredReview, ToolDescriptor, ToolParameter
from deep_reviewer.services.reviewer.state import AbortReason


class ConversationTurn(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str


class ReviewRunResult(BaseModel):
    """Outcome of one orchestration run, complete or aborted."""

    status: Literal["completed", "aborted"]
    abort_reason: Optional[AbortReason] = None
    abort_detail: Optional[str] = None
    retryable: bool = False
    review: StructuredReview
    conversation: list[ConversationTurn] = Field(default_factory=list)
    tool_call_count: int = 0
    tokens_consumed_estimate: int = 0
    tool_usage: dict[str, int] = Field(default_factory=dict)

    @property
    def partial(self) -> bool:
        return self.status == "aborted"


class ReviewRequest(BaseModel):
    """Request body for POST /api/reviews."""

    repo_path: str = Field(..., description="Path to a local git checkout")
    base: str = Field(..., description="Base revision of the range")
    head: str = Field("HEAD", description="Head revision of the range")
    pr: Optional[str] = Field(None, description="PR reference (URL, owner/repo#123 or #123)")
    post: bool = Field(False, description="Post the review to the pull request")


class ReviewResponse(BaseModel):
    """Summary of a review run."""

    success: bool = True
    status: Literal["completed", "aborted"]
    abort_reason: Optional[AbortReason] = None
    retryable: bool = False
    pr: Optional[str] = None
    files_reviewed: int
    tool_calls: int
    tokens_estimate: int
    issues: int
    posted: bool = False
    report: str


class ReviewOutcome(BaseModel):
    """A finished review: run result, rendered report and the reviewed context."""

    result: ReviewRunResult
    report: str
    context: ReviewContext
    pr: Optional[str] = None
    posted: bool = False
    inline_comments: int = 0
    duration_seconds: float = 0.0


class ToolInfo(BaseModel):
    """Public view of a registered tool."""

    name: str
    description: str
    parameters: dict[str, ToolParameter] = Field(default_factory=dict)
    custom: bool = False

    @classmethod
    def from_descriptor(cls, descriptor: ToolDescriptor) -> "ToolInfo":
        return cls(
            name=descriptor.name,
            description=descriptor.description,
            parameters=dict(descriptor.parameters),
            custom=descriptor.is_custom,
        )
