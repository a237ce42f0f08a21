"""
Smoke checks for the TRON tool server.

Calls each known tool with fixed arguments and classifies the outcome.
"""

import json
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any

import structlog

from .mcp.session import McpSession

logger = structlog.get_logger()

USDT_CONTRACT = "TR7NHqjeKQxGTCi8q8ZY4pL8otSzgjLj6t"
TEST_ADDRESS = "TDqSquXBgUCLYvYC4XZgrprLK589dkhSCf"


class SmokeStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    SKIPPED = "skipped"
    KNOWN_FAILURE = "known-failure"


@dataclass(frozen=True)
class SmokeCase:
    tool: str
    description: str
    arguments: dict[str, Any]
    expected_to_fail: bool = False
    failure_reason: str = ""


@dataclass
class SmokeOutcome:
    tool: str
    status: SmokeStatus
    elapsed_ms: int = 0
    error: str | None = None
    preview: str | None = None


GRAPH_DEPTH_ISSUE = "Graph backend rejects variable-depth queries"

SMOKE_CASES: list[SmokeCase] = [
    SmokeCase("get_account_info", "Get account info for USDT contract", {"address": USDT_CONTRACT}),
    SmokeCase(
        "get_transaction_status",
        "Check transaction status",
        {"tx_hash": "8c458265e890ce3259423ff6bb50b182136ee6a99b848ec5935a27fae2039b71"},
    ),
    SmokeCase("get_network_parameters", "Fetch TRON network parameters", {}),
    SmokeCase("check_address_security", "Security check for test address", {"address": TEST_ADDRESS}),
    SmokeCase(
        "build_unsigned_transfer",
        "Build unsigned TRX transfer",
        {
            "from_address": TEST_ADDRESS,
            "to_address": USDT_CONTRACT,
            "amount": "1",
            "token_type": "TRX",
        },
    ),
    SmokeCase(
        "analyze_address_graph",
        "Analyze transaction graph (2 hops)",
        {"address": USDT_CONTRACT, "depth": 2},
        expected_to_fail=True,
        failure_reason=GRAPH_DEPTH_ISSUE,
    ),
    SmokeCase("get_address_risk_score", "Risk assessment for test address", {"address": TEST_ADDRESS}),
    SmokeCase(
        "get_address_flow_analysis",
        "Fund flow analysis",
        {"address": USDT_CONTRACT, "depth": 2},
        expected_to_fail=True,
        failure_reason=GRAPH_DEPTH_ISSUE,
    ),
    SmokeCase("get_contract_callers", "Top contract callers", {"address": USDT_CONTRACT, "limit": 10}),
    SmokeCase("get_contract_methods", "Contract method statistics", {"address": USDT_CONTRACT}),
    SmokeCase("get_address_contracts", "Contract interactions for address", {"address": TEST_ADDRESS}),
]


def truncate(text: str, max_len: int = 100) -> str:
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."


def _preview(text: str) -> str:
    try:
        return json.dumps(json.loads(text), indent=2)
    except ValueError:
        return text


async def run_case(session: McpSession, case: SmokeCase) -> SmokeOutcome:
    """Run one smoke case against a connected session."""
    started = time.monotonic()
    try:
        result = await session.call_tool(case.tool, case.arguments)
    except Exception as e:
        elapsed = int((time.monotonic() - started) * 1000)
        outcome = SmokeOutcome(case.tool, SmokeStatus.ERROR, elapsed, error=str(e))
    else:
        elapsed = int((time.monotonic() - started) * 1000)
        if result.is_error:
            outcome = SmokeOutcome(case.tool, SmokeStatus.ERROR, elapsed, error=result.text)
        else:
            preview = "\n".join(
                _preview(item.text) if item.type == "text" else f"[{item.type}]"
                for item in result.content
            )
            outcome = SmokeOutcome(case.tool, SmokeStatus.SUCCESS, elapsed, preview=truncate(preview, 200))

    if outcome.status == SmokeStatus.ERROR and case.expected_to_fail:
        outcome.status = SmokeStatus.KNOWN_FAILURE
    return outcome


async def run_smoke(
    session: McpSession, cases: list[SmokeCase] | None = None
) -> list[SmokeOutcome]:
    """Run smoke cases sequentially; cases for tools the server lacks are skipped."""
    available = {tool.name for tool in session.tools}
    outcomes = []

    for case in cases if cases is not None else SMOKE_CASES:
        if case.tool not in available:
            outcomes.append(SmokeOutcome(case.tool, SmokeStatus.SKIPPED))
            continue
        outcome = await run_case(session, case)
        logger.info("Smoke case finished", tool=case.tool, status=outcome.status.value)
        outcomes.append(outcome)

    return outcomes
