"""
Core agent implementation - the ReAct (reasoning + acting) loop.

Each turn repeatedly:
1. Checks the cancellation signal
2. Calls the LLM with the conversation so far and the tool catalog
3. Executes any requested tools, one at a time, in request order
4. Feeds the results back into the conversation

until the LLM answers without requesting tools. When the iteration cap is
reached, one extra LLM call asks for a summary of what was gathered.

Every intermediate step is reported through ``on_step`` as it happens.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Sequence

import structlog

from ..config import LLMConfig
from ..errors import IterationLimitReached, RunCancelledError
from ..llm import BaseLLM, LLMMessage, ToolCall, ToolDefinition, WalletContext, create_llm
from ..mcp.types import McpCallResult, McpTool
from .steps import AgentRunResult, StepCallback, StepTrace, StepType

logger = structlog.get_logger()

ToolExecutor = Callable[[str, dict[str, Any]], Awaitable[McpCallResult]]
LLMFactory = Callable[[LLMConfig], BaseLLM]

SUMMARY_REQUEST = "Please summarize the information gathered so far and provide a final answer."
SUMMARY_EMPTY = "I ran out of iterations. Here's what I found so far."
LIMIT_APOLOGY = "I reached the maximum number of reasoning steps. Please try again with a simpler query."
CANCELLED_ANSWER = "The request was cancelled before an answer was ready."
EMPTY_ANSWER = "I don't have an answer for that."


@dataclass
class ConversationContext:
    """Running conversation for one turn."""

    messages: list[LLMMessage] = field(default_factory=list)

    def add_user_message(self, content: str) -> None:
        """Add a user message."""
        self.messages.append(LLMMessage(role="user", content=content))

    def add_assistant_message(
        self, content: str, tool_calls: list[ToolCall] | None = None
    ) -> None:
        """Add an assistant message."""
        self.messages.append(LLMMessage(
            role="assistant",
            content=content,
            tool_calls=tool_calls,
        ))

    def add_tool_result(self, tool_call_id: str, result: str, tool_name: str = "") -> None:
        """Add a tool result."""
        self.messages.append(LLMMessage(
            role="tool",
            content=result,
            tool_call_id=tool_call_id,
            name=tool_name,
        ))

    @property
    def message_count(self) -> int:
        """Get the number of messages."""
        return len(self.messages)


@dataclass
class _ToolOutcome:
    call: ToolCall
    result: McpCallResult
    error: str | None = None

    def as_message_content(self) -> str:
        if self.error is not None:
            return f"Error: {self.error}"
        return self.result.text


class Agent:
    """Runs reasoning turns against a tool catalog.

    ``call_tool`` is the host's tool executor, normally
    ``McpSession.call_tool``. The provider is resolved per turn from the
    ``LLMConfig`` passed to ``run``, so switching providers between turns
    needs no new agent.
    """

    def __init__(
        self,
        call_tool: ToolExecutor,
        *,
        max_iterations: int = 10,
        llm_factory: LLMFactory = create_llm,
    ):
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        self.call_tool = call_tool
        self.max_iterations = max_iterations
        self.llm_factory = llm_factory

    async def run(
        self,
        user_message: str,
        history: Sequence[LLMMessage],
        tools: Sequence[McpTool | ToolDefinition],
        llm_config: LLMConfig,
        *,
        on_step: StepCallback | None = None,
        cancel_event: asyncio.Event | None = None,
        wallet: WalletContext | None = None,
    ) -> AgentRunResult:
        """Run one turn for ``user_message``. ``history`` is not modified."""
        started = time.monotonic()
        trace = StepTrace(on_step)
        llm = self.llm_factory(llm_config)
        definitions = [t.to_definition() if isinstance(t, McpTool) else t for t in tools]

        context = ConversationContext(messages=list(history))
        context.add_user_message(user_message)

        logger.info(
            "Agent run started",
            provider=llm_config.provider,
            model=llm_config.model,
            tool_count=len(definitions),
            max_iterations=self.max_iterations,
        )

        iteration = 0
        while iteration < self.max_iterations:
            if cancel_event is not None and cancel_event.is_set():
                trace.record(StepType.ERROR, iteration, content=str(RunCancelledError()))
                logger.info("Agent run cancelled", iteration=iteration)
                return self._finish(CANCELLED_ANSWER, trace, iteration, started)

            thinking = trace.open(
                StepType.THINKING,
                iteration,
                content="Analyzing your request..." if iteration == 0 else "Processing tool results...",
            )

            try:
                response = await llm.call(context.messages, definitions, wallet=wallet)
            except Exception as e:
                logger.error("LLM call failed", iteration=iteration, error=str(e))
                trace.record(StepType.ERROR, iteration, content=f"LLM call failed: {e}")
                trace.close(thinking)
                return self._finish(
                    f"Sorry, I encountered an error: {e}", trace, iteration + 1, started
                )

            if response.content:
                label = response.content
            elif response.tool_calls:
                label = "Deciding which tools to use..."
            else:
                label = "Done thinking."
            trace.close(thinking, content=label)

            if not response.tool_calls:
                answer = response.content or EMPTY_ANSWER
                trace.record(StepType.ANSWER, iteration, content=answer)
                return self._finish(answer, trace, iteration + 1, started)

            if response.content:
                context.add_assistant_message(response.content)

            outcomes = []
            for tool_call in response.tool_calls:
                call_step = trace.open(
                    StepType.TOOL_CALL,
                    iteration,
                    tool_call=tool_call,
                    tool_name=tool_call.name,
                )
                outcome = await self._execute_tool(tool_call)
                trace.close(call_step)
                trace.record(
                    StepType.TOOL_RESULT,
                    iteration,
                    tool_name=tool_call.name,
                    tool_result=outcome.result,
                    started_at=call_step.completed_at,
                )
                outcomes.append(outcome)

            context.add_assistant_message("", list(response.tool_calls))
            for outcome in outcomes:
                context.add_tool_result(
                    outcome.call.id,
                    outcome.as_message_content(),
                    outcome.call.name,
                )

            iteration += 1

        return await self._summarize(llm, context, definitions, trace, iteration, started, wallet)

    async def _execute_tool(self, tool_call: ToolCall) -> _ToolOutcome:
        logger.info("Executing tool", tool=tool_call.name, arguments=tool_call.arguments)
        try:
            result = await self.call_tool(tool_call.name, tool_call.arguments)
        except Exception as e:
            message = str(e) or repr(e)
            logger.error("Tool execution error", tool=tool_call.name, error=message)
            return _ToolOutcome(tool_call, McpCallResult.error(message), error=message)

        logger.info("Tool executed", tool=tool_call.name, is_error=result.is_error)
        return _ToolOutcome(tool_call, result)

    async def _summarize(
        self,
        llm: BaseLLM,
        context: ConversationContext,
        definitions: list[ToolDefinition],
        trace: StepTrace,
        iteration: int,
        started: float,
        wallet: WalletContext | None,
    ) -> AgentRunResult:
        limit = IterationLimitReached(self.max_iterations)
        logger.warning("Agent iteration limit reached", max_iterations=self.max_iterations)
        trace.record(StepType.ERROR, iteration, content=str(limit))

        context.add_user_message(SUMMARY_REQUEST)
        try:
            # Any tool calls in this reply are ignored.
            final = await llm.call(context.messages, definitions, wallet=wallet, tool_choice="none")
            answer = final.content or SUMMARY_EMPTY
        except Exception as e:
            logger.error("Summary call failed", error=str(e))
            answer = LIMIT_APOLOGY

        return self._finish(answer, trace, iteration, started)

    def _finish(
        self, answer: str, trace: StepTrace, iterations: int, started: float
    ) -> AgentRunResult:
        duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            "Agent run finished",
            iterations=iterations,
            steps=len(trace.steps),
            duration_ms=duration_ms,
        )
        return AgentRunResult(
            answer=answer,
            steps=tuple(trace.steps),
            iterations=iterations,
            duration_ms=duration_ms,
        )
