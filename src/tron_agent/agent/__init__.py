"""
Agent module - the brain of the system.

Includes:
- Agent: ReAct loop alternating LLM calls and tool invocations
- ConversationContext: In-memory conversation state for one turn
- AgentStep / StepTrace: Live reasoning trace
"""

from .core import Agent, ConversationContext, ToolExecutor
from .steps import AgentRunResult, AgentStep, StepTrace, StepType

__all__ = [
    "Agent",
    "AgentRunResult",
    "AgentStep",
    "ConversationContext",
    "StepTrace",
    "StepType",
    "ToolExecutor",
]
