"""Conversation state for the review orchestrator."""

from enum import Enum
from typing import Annotated, Optional, TypedDict

from langgraph.graph.message import add_messages

from deep_reviewer.schemas.review import (
    StructuredReview,
    ToolInvocationRequest,
    ToolInvocationResult,
)


class ReviewPhase(str, Enum):
    GATHERING = "gathering"
    AWAITING_MODEL = "awaiting_model"
    EXECUTING_TOOLS = "executing_tools"
    FINALIZING = "finalizing"
    COMPLETED = "completed"
    ABORTED = "aborted"


class AbortReason(str, Enum):
    BUDGET_EXCEEDED = "BudgetExceeded"
    STALLED_CONVERSATION = "StalledConversation"
    MODEL_TIMEOUT = "ModelTimeout"
    DEADLINE_EXCEEDED = "DeadlineExceeded"
    MODEL_ERROR = "ModelError"


class ConversationState(TypedDict):
    """State carried between graph nodes for one review run."""

    # Conversation
    messages: Annotated[list, add_messages]

    # Counters (never decrease)
    tool_call_count: int
    tokens_consumed_estimate: int
    timeout_count: int
    stall_count: int
    tool_usage: dict[str, int]

    # Reset whenever the model makes progress
    consecutive_stalls: int

    # Current turn
    pending_calls: list[ToolInvocationRequest]
    tool_results: list[ToolInvocationResult]

    # Outcome
    phase: ReviewPhase
    abort_reason: Optional[AbortReason]
    abort_detail: Optional[str]
    retryable: bool
    final_text: Optional[str]
    review: Optional[StructuredReview]

    # time.monotonic() value after which no model call starts
    deadline: float
