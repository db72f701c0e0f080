"""Agent orchestrator - the bounded tool-calling loop.

State machine for one run:

    AWAITING_MODEL -> EXECUTING_TOOLS -> AWAITING_MODEL -> ... -> terminal

Terminal states are SUCCEEDED (model answered without tool calls) and
MAX_ITERATIONS (ceiling reached). A model or unexpected error ends the run
with a failed result instead. The transcript is append-only and each
transition produces a new state.

Each model round counts as one iteration. All tool calls from one round run
concurrently and all of them finish before the next model call. Unknown
tools, bad arguments and backend failures come back to the model as tool
results; they never end the run.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import TYPE_CHECKING, Any

import structlog

from augur.actions.catalog import list_tools
from augur.actions.models import ActionResult, decode_action
from augur.agent.prompts import agent_system_prompt
from augur.errors import AugurError, ErrorCode, ModelInvocationError
from augur.llm import Message, ToolCall, ToolSpec

if TYPE_CHECKING:
    from collections.abc import Iterable

    from augur.actions.gateway import ActionGateway
    from augur.actions.models import ActionCategory
    from augur.llm import ChatModel

log = structlog.get_logger()

MAX_ITERATIONS_MESSAGE = "Maximum iterations reached. The request may be too complex."


class RunStatus(StrEnum):
    AWAITING_MODEL = "awaiting_model"
    EXECUTING_TOOLS = "executing_tools"
    SUCCEEDED = "succeeded"
    MAX_ITERATIONS = "max_iterations"


TERMINAL_STATUSES = frozenset({RunStatus.SUCCEEDED, RunStatus.MAX_ITERATIONS})


@dataclass(frozen=True)
class AgentRunState:
    """Everything one run knows. Lives only for the duration of ``run``."""

    transcript: tuple[Message, ...]
    iteration: int = 0
    tools_used: tuple[str, ...] = ()
    status: RunStatus = RunStatus.AWAITING_MODEL
    pending_calls: tuple[ToolCall, ...] = ()
    answer: str = ""

    @property
    def terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def append(self, *messages: Message) -> AgentRunState:
        return replace(self, transcript=self.transcript + messages)


@dataclass
class AgentResult:
    success: bool
    response: str
    tools_used: list[str] = field(default_factory=list)
    iterations: int = 0
    error_code: ErrorCode | None = None
    error: str | None = None


@dataclass(frozen=True)
class ToolOutcome:
    call: ToolCall
    result: ActionResult

    def to_message(self) -> Message:
        payload: dict[str, Any] = {"success": self.result.success}
        if self.result.success:
            payload["data"] = self.result.data
        else:
            payload["error"] = self.result.error
        return Message.tool(self.call.id, json.dumps(payload, default=str))


class AgentOrchestrator:
    """Runs the model against the action gateway until it answers or hits the ceiling."""

    def __init__(
        self, model: ChatModel, gateway: ActionGateway, *, max_iterations: int = 5
    ) -> None:
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        self._model = model
        self._gateway = gateway
        self.max_iterations = max_iterations

    async def run(
        self,
        query: str,
        *,
        organization_id: str,
        user_id: str,
        organization_name: str | None = None,
        user_name: str | None = None,
        history: Iterable[Message] = (),
        categories: Iterable[ActionCategory | str] | None = None,
        max_iterations: int | None = None,
    ) -> AgentResult:
        """Run the loop for one user message. Never raises."""
        ceiling = max_iterations or self.max_iterations
        state = AgentRunState(transcript=())

        try:
            tools = list_tools(categories)
            specs = [t.to_spec() for t in tools]
            bound = frozenset(t.name for t in tools)

            system = agent_system_prompt(
                organization_id=organization_id,
                user_id=user_id,
                tools=tools,
                organization_name=organization_name,
                user_name=user_name,
            )
            state = AgentRunState(
                transcript=(Message.system(system), *history, Message.user(query))
            )

            while not state.terminal:
                if state.status is RunStatus.AWAITING_MODEL:
                    state = await self._await_model(state, specs, ceiling)
                else:
                    state = await self._execute_tools(state, bound)

        except ModelInvocationError as e:
            log.error(  # noqa: TRY400
                "Agent model call failed", iteration=state.iteration, error=e.message
            )
            return self._failure(state, e.message, ErrorCode.MODEL_INVOCATION_FAILED)
        except AugurError as e:
            log.error(  # noqa: TRY400
                "Agent run failed", iteration=state.iteration, error=e.message
            )
            return self._failure(state, e.message, e.code)
        except Exception as e:
            log.exception("Agent run crashed", iteration=state.iteration)
            return self._failure(state, str(e) or type(e).__name__, ErrorCode.INTERNAL_ERROR)

        if state.status is RunStatus.MAX_ITERATIONS:
            log.warning(
                "Agent hit iteration ceiling",
                iterations=state.iteration,
                tools_used=list(state.tools_used),
            )
            return AgentResult(
                success=False,
                response=MAX_ITERATIONS_MESSAGE,
                tools_used=list(state.tools_used),
                iterations=state.iteration,
                error_code=ErrorCode.MAX_ITERATIONS_REACHED,
                error=ErrorCode.MAX_ITERATIONS_REACHED.value,
            )

        log.info(
            "Agent run complete",
            iterations=state.iteration,
            tools_used=list(state.tools_used),
        )
        return AgentResult(
            success=True,
            response=state.answer,
            tools_used=list(state.tools_used),
            iterations=state.iteration,
        )

    async def _await_model(
        self, state: AgentRunState, specs: list[ToolSpec], ceiling: int
    ) -> AgentRunState:
        if state.iteration >= ceiling:
            return replace(state, status=RunStatus.MAX_ITERATIONS)

        state = replace(state, iteration=state.iteration + 1)
        log.debug("Agent iteration", iteration=state.iteration, max_iterations=ceiling)

        response = await self._model.invoke(list(state.transcript), specs)
        state = state.append(Message.assistant(response.text, response.tool_calls))

        if not response.tool_calls:
            return replace(state, status=RunStatus.SUCCEEDED, answer=response.text)
        return replace(state, status=RunStatus.EXECUTING_TOOLS, pending_calls=response.tool_calls)

    async def _execute_tools(self, state: AgentRunState, bound: frozenset[str]) -> AgentRunState:
        calls = state.pending_calls
        # Join barrier: every call of this round settles before the model sees results
        outcomes = await asyncio.gather(*(self._run_tool(call, bound) for call in calls))
        state = state.append(*(outcome.to_message() for outcome in outcomes))
        return replace(
            state,
            status=RunStatus.AWAITING_MODEL,
            pending_calls=(),
            tools_used=state.tools_used + tuple(call.name for call in calls),
        )

    async def _run_tool(self, call: ToolCall, bound: frozenset[str]) -> ToolOutcome:
        if call.name not in bound:
            log.warning("Model requested unknown tool", tool=call.name)
            return ToolOutcome(call, ActionResult.fail(f'Tool "{call.name}" not found'))

        if call.parse_error:
            log.warning("Unparseable tool arguments", tool=call.name, error=call.parse_error)
            return ToolOutcome(
                call, ActionResult.fail(f"Invalid arguments for {call.name}: {call.parse_error}")
            )

        try:
            action = decode_action(call.name, call.arguments)
        except AugurError as e:
            log.warning("Rejected tool arguments", tool=call.name, error=e.message)
            return ToolOutcome(call, ActionResult.fail(e.message))

        result = await self._gateway.execute(action)
        log.debug("Tool executed", tool=call.name, success=result.success)
        return ToolOutcome(call, result)

    @staticmethod
    def _failure(state: AgentRunState, message: str, code: ErrorCode) -> AgentResult:
        return AgentResult(
            success=False,
            response=f"An error occurred: {message}",
            tools_used=list(state.tools_used),
            iterations=state.iteration,
            error_code=code,
            error=message,
        )
