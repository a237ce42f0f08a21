"""
Reasoning trace: the steps an agent run emits while it works.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable
from uuid import uuid4

from ..llm.base import ToolCall
from ..mcp.types import McpCallResult


class StepType(str, Enum):
    """Kinds of observable agent steps."""
    THINKING = "thinking"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    ANSWER = "answer"
    ERROR = "error"


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class AgentStep:
    """One event in the reasoning trace.

    Open steps (thinking, tool_call) are completed in place later and
    re-emitted under the same id.
    """

    type: StepType
    iteration: int
    id: str = field(default_factory=lambda: f"step_{uuid4().hex[:16]}")
    content: str | None = None
    tool_call: ToolCall | None = None
    tool_result: McpCallResult | None = None
    tool_name: str | None = None
    started_at: datetime = field(default_factory=_now)
    completed_at: datetime | None = None

    @property
    def is_open(self) -> bool:
        return self.completed_at is None

    @property
    def is_error(self) -> bool:
        """True for error steps and error-flagged tool results."""
        if self.type == StepType.ERROR:
            return True
        return self.tool_result is not None and self.tool_result.is_error

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "iteration": self.iteration,
            "content": self.content,
            "tool_call": (
                {"id": self.tool_call.id, "name": self.tool_call.name, "arguments": self.tool_call.arguments}
                if self.tool_call else None
            ),
            "tool_result": self.tool_result.model_dump(by_alias=True) if self.tool_result else None,
            "tool_name": self.tool_name,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


@dataclass(frozen=True)
class AgentRunResult:
    """Outcome of one agent turn."""

    answer: str
    steps: tuple[AgentStep, ...]
    iterations: int
    duration_ms: int

    @property
    def step_types(self) -> list[str]:
        return [step.type.value for step in self.steps]


StepCallback = Callable[[AgentStep], None]


class StepTrace:
    """Append-only list of steps that notifies a subscriber on every change."""

    def __init__(self, on_step: StepCallback | None = None):
        self.steps: list[AgentStep] = []
        self._on_step = on_step

    def _emit(self, step: AgentStep) -> None:
        if self._on_step is not None:
            self._on_step(step)

    def open(self, step_type: StepType, iteration: int, **fields: Any) -> AgentStep:
        """Append a step that will be completed later."""
        step = AgentStep(type=step_type, iteration=iteration, **fields)
        self.steps.append(step)
        self._emit(step)
        return step

    def close(self, step: AgentStep, **updates: Any) -> AgentStep:
        """Complete an open step in place and re-emit it."""
        for name, value in updates.items():
            setattr(step, name, value)
        step.completed_at = _now()
        self._emit(step)
        return step

    def record(self, step_type: StepType, iteration: int, **fields: Any) -> AgentStep:
        """Append a step that is already complete."""
        step = AgentStep(type=step_type, iteration=iteration, **fields)
        step.completed_at = _now()
        self.steps.append(step)
        self._emit(step)
        return step
