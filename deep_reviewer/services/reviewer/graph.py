"""LangGraph orchestrator for a tool-calling review conversation.

One run is a single conversation: the model reads the chunk outline, pulls
diffs and analysis through tools, and ends with the final review marker.

    gather -> await_model -> execute_tools -> await_model -> ... -> finalize
                  |                                                  (END)
                  +-> abort (ceilings, deadline, model failure, stall) (END)

Ceilings are checked before each model call, never in the middle of a tool
batch, so a batch that crosses a ceiling still completes.
"""

import asyncio
import time
from typing import Callable, Literal, Optional

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langgraph.graph import END, StateGraph
from pydantic import BaseModel

from deep_reviewer.config import Settings
from deep_reviewer.core.exceptions import ErrorKind
from deep_reviewer.core.logging import get_logger
from deep_reviewer.core.prompts import render_system_prompt, render_user_prompt
from deep_reviewer.core.tokens import estimate_tokens
from deep_reviewer.schemas.review import ReviewContext
from deep_reviewer.services.reviewer.chunking import render_chunk_outline
from deep_reviewer.services.reviewer.dispatcher import ToolDispatcher
from deep_reviewer.services.reviewer.registry import ToolRegistry
from deep_reviewer.services.reviewer.review_parser import build_partial_review, parse_final_review
from deep_reviewer.services.reviewer.schemas import ConversationTurn, ReviewRunResult
from deep_reviewer.services.reviewer.state import AbortReason, ConversationState, ReviewPhase
from deep_reviewer.services.reviewer.tool_calls import (
    FINAL_REVIEW_MARKER,
    extract_final_text,
    format_tool_results,
    has_final_marker,
    parse_tool_calls,
)

logger = get_logger("reviewer.graph")

STALL_NUDGE = (
    "Your last reply contained neither a tool call nor the final review. "
    "Call a tool with a ```json block, or write the final review on a new line "
    f"starting with {FINAL_REVIEW_MARKER}."
)

_ROLES = {"system": "system", "human": "user", "ai": "assistant"}


class ReviewLimits(BaseModel):
    """Per-run ceilings for the orchestration loop."""

    max_tool_calls: int = 60
    max_tokens_per_run: int = 180_000
    max_tool_timeouts: int = 5
    max_parallel_tools: int = 4
    max_consecutive_stalls: int = 2
    model_timeout_seconds: float = 180.0
    run_deadline_seconds: float = 1200.0
    review_language: str = "en"

    @classmethod
    def from_settings(cls, settings: Settings) -> "ReviewLimits":
        return cls(
            max_tool_calls=settings.max_tool_calls,
            max_tokens_per_run=settings.max_tokens_per_run,
            max_tool_timeouts=settings.max_tool_timeouts,
            max_parallel_tools=settings.max_parallel_tools,
            model_timeout_seconds=settings.model_timeout_seconds,
            run_deadline_seconds=settings.run_deadline_seconds,
            review_language=settings.review_language,
        )


def message_text(message: BaseMessage) -> str:
    content = message.content
    if isinstance(content, str):
        return content
    parts = []
    for part in content:
        if isinstance(part, str):
            parts.append(part)
        elif isinstance(part, dict) and part.get("type") == "text":
            parts.append(part.get("text", ""))
    return "".join(parts)


def _aborted(reason: AbortReason, detail: str, retryable: bool = False) -> dict:
    return {
        "phase": ReviewPhase.ABORTED,
        "abort_reason": reason,
        "abort_detail": detail,
        "retryable": retryable,
    }


class ReviewOrchestrator:
    """Drives one review conversation between a chat model and the tools."""

    def __init__(
        self,
        model: BaseChatModel,
        dispatcher: ToolDispatcher,
        registry: ToolRegistry,
        limits: Optional[ReviewLimits] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.model = model
        self.dispatcher = dispatcher
        self.registry = registry
        self.limits = limits or ReviewLimits()
        self.clock = clock

    def check_ceilings(self, state: ConversationState) -> Optional[dict]:
        """Abort update if a ceiling has been crossed, else None."""
        limits = self.limits
        if state["tool_call_count"] > limits.max_tool_calls:
            return _aborted(
                AbortReason.BUDGET_EXCEEDED,
                f"{state['tool_call_count']} tool calls exceed the limit of {limits.max_tool_calls}",
            )
        if state["tokens_consumed_estimate"] > limits.max_tokens_per_run:
            return _aborted(
                AbortReason.BUDGET_EXCEEDED,
                f"~{state['tokens_consumed_estimate']} tokens exceed the limit of {limits.max_tokens_per_run}",
            )
        if state["timeout_count"] > limits.max_tool_timeouts:
            return _aborted(
                AbortReason.BUDGET_EXCEEDED,
                f"{state['timeout_count']} tool timeouts exceed the limit of {limits.max_tool_timeouts}",
            )
        if self.clock() >= state["deadline"]:
            return _aborted(
                AbortReason.DEADLINE_EXCEEDED,
                f"run deadline of {limits.run_deadline_seconds:g}s passed",
            )
        return None

    def build_graph(self, context: ReviewContext, skipped_files: int = 0):
        """Compile the review graph for one context."""
        limits = self.limits

        def gather(state: ConversationState) -> dict:
            system = render_system_prompt(
                self.registry.list(), FINAL_REVIEW_MARKER, limits.review_language
            )
            user = render_user_prompt(
                context,
                render_chunk_outline(context.chunks),
                FINAL_REVIEW_MARKER,
                skipped_files=skipped_files,
            )
            logger.info(
                f"Starting review of {len(context.changed_files)} files in {len(context.chunks)} chunks"
            )
            return {
                "messages": [SystemMessage(content=system), HumanMessage(content=user)],
                "tokens_consumed_estimate": state["tokens_consumed_estimate"]
                + estimate_tokens(system)
                + estimate_tokens(user),
                "phase": ReviewPhase.AWAITING_MODEL,
            }

        async def await_model(state: ConversationState) -> dict:
            aborted = self.check_ceilings(state)
            if aborted:
                return aborted

            timeout = min(limits.model_timeout_seconds, state["deadline"] - self.clock())
            try:
                response = await asyncio.wait_for(self.model.ainvoke(state["messages"]), timeout=timeout)
            except asyncio.TimeoutError:
                logger.warning(f"Model did not answer within {timeout:.1f}s")
                return _aborted(
                    AbortReason.MODEL_TIMEOUT, f"no model response within {timeout:.1f}s", retryable=True
                )
            except Exception as e:
                logger.error(f"Model call failed: {e}")
                return _aborted(AbortReason.MODEL_ERROR, str(e) or type(e).__name__, retryable=True)

            text = message_text(response)
            tokens = state["tokens_consumed_estimate"] + estimate_tokens(text)
            reply = AIMessage(content=text)

            calls = parse_tool_calls(text)
            if calls:
                logger.info(f"Model requested tools: {[c.name for c in calls]}")
                return {
                    "messages": [reply],
                    "tokens_consumed_estimate": tokens,
                    "pending_calls": calls,
                    "consecutive_stalls": 0,
                    "phase": ReviewPhase.EXECUTING_TOOLS,
                }

            if has_final_marker(text):
                logger.info("Model produced the final review")
                return {
                    "messages": [reply],
                    "tokens_consumed_estimate": tokens,
                    "final_text": extract_final_text(text),
                    "consecutive_stalls": 0,
                    "phase": ReviewPhase.FINALIZING,
                }

            stalls = state["consecutive_stalls"] + 1
            update = {
                "messages": [reply],
                "tokens_consumed_estimate": tokens,
                "stall_count": state["stall_count"] + 1,
                "consecutive_stalls": stalls,
            }
            if stalls >= limits.max_consecutive_stalls:
                logger.warning(f"Conversation stalled {stalls} times in a row")
                update.update(
                    _aborted(
                        AbortReason.STALLED_CONVERSATION,
                        f"{stalls} consecutive replies without a tool call or final review",
                    )
                )
                return update

            logger.info("Model reply had no tool call and no final marker, nudging")
            update["messages"] = [reply, HumanMessage(content=STALL_NUDGE)]
            update["tokens_consumed_estimate"] = tokens + estimate_tokens(STALL_NUDGE)
            update["phase"] = ReviewPhase.AWAITING_MODEL
            return update

        async def execute_tools(state: ConversationState) -> dict:
            calls = state["pending_calls"]
            results = await self.dispatcher.execute_batch(calls, context, limits.max_parallel_tools)

            usage = dict(state["tool_usage"])
            for call in calls:
                usage[call.name] = usage.get(call.name, 0) + 1
            timeouts = sum(1 for r in results if r.error_kind == ErrorKind.TIMEOUT)
            failures = sum(1 for r in results if not r.ok)
            if failures:
                logger.info(f"{failures}/{len(results)} tool calls failed")

            feedback = format_tool_results(results)
            return {
                "messages": [HumanMessage(content=feedback)],
                "tool_call_count": state["tool_call_count"] + len(calls),
                "tokens_consumed_estimate": state["tokens_consumed_estimate"] + estimate_tokens(feedback),
                "timeout_count": state["timeout_count"] + timeouts,
                "tool_usage": usage,
                "pending_calls": [],
                "tool_results": results,
                "phase": ReviewPhase.AWAITING_MODEL,
            }

        def finalize(state: ConversationState) -> dict:
            review = parse_final_review(state["final_text"] or "")
            logger.info(
                f"Review completed: {state['tool_call_count']} tool calls, "
                f"~{state['tokens_consumed_estimate']} tokens, {len(review.issues)} issues"
            )
            return {"review": review, "phase": ReviewPhase.COMPLETED}

        def abort(state: ConversationState) -> dict:
            reason = state["abort_reason"]
            logger.warning(f"Review aborted ({reason.value}): {state['abort_detail']}")
            model_texts = [
                message_text(m) for m in state["messages"] if isinstance(m, AIMessage)
            ]
            review = build_partial_review(model_texts, reason.value, state["tool_call_count"])
            return {"review": review}

        def route_after_model(
            state: ConversationState,
        ) -> Literal["execute_tools", "finalize", "await_model", "abort"]:
            phase = state["phase"]
            if phase == ReviewPhase.ABORTED:
                return "abort"
            if phase == ReviewPhase.EXECUTING_TOOLS:
                return "execute_tools"
            if phase == ReviewPhase.FINALIZING:
                return "finalize"
            return "await_model"

        graph = StateGraph(ConversationState)

        graph.add_node("gather", gather)
        graph.add_node("await_model", await_model)
        graph.add_node("execute_tools", execute_tools)
        graph.add_node("finalize", finalize)
        graph.add_node("abort", abort)

        graph.set_entry_point("gather")
        graph.add_edge("gather", "await_model")
        graph.add_conditional_edges(
            "await_model",
            route_after_model,
            {
                "execute_tools": "execute_tools",
                "finalize": "finalize",
                "await_model": "await_model",
                "abort": "abort",
            },
        )
        graph.add_edge("execute_tools", "await_model")
        graph.add_edge("finalize", END)
        graph.add_edge("abort", END)

        return graph.compile()

    def initial_state(self) -> ConversationState:
        return {
            "messages": [],
            "tool_call_count": 0,
            "tokens_consumed_estimate": 0,
            "timeout_count": 0,
            "stall_count": 0,
            "tool_usage": {},
            "consecutive_stalls": 0,
            "pending_calls": [],
            "tool_results": [],
            "phase": ReviewPhase.GATHERING,
            "abort_reason": None,
            "abort_detail": None,
            "retryable": False,
            "final_text": None,
            "review": None,
            "deadline": self.clock() + self.limits.run_deadline_seconds,
        }

    async def run(self, context: ReviewContext, skipped_files: int = 0) -> ReviewRunResult:
        """Run one review conversation to completion or abort."""
        graph = self.build_graph(context, skipped_files)
        # At most max_tool_calls + 1 batches, each followed by at most one nudge
        recursion_limit = 3 * (self.limits.max_tool_calls + 2) + 10
        final = await graph.ainvoke(self.initial_state(), config={"recursion_limit": recursion_limit})

        aborted = final["phase"] == ReviewPhase.ABORTED
        return ReviewRunResult(
            status="aborted" if aborted else "completed",
            abort_reason=final["abort_reason"],
            abort_detail=final["abort_detail"],
            retryable=final["retryable"],
            review=final["review"],
            conversation=[
                ConversationTurn(role=_ROLES.get(m.type, "user"), content=message_text(m))
                for m in final["messages"]
            ],
            tool_call_count=final["tool_call_count"],
            tokens_consumed_estimate=final["tokens_consumed_estimate"],
            tool_usage=final["tool_usage"],
        )
