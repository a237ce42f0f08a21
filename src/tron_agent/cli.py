"""
Command-line interface for TRON Agent.
"""

import argparse
import asyncio
import json
import logging
import sys

import structlog

from .agent import Agent, AgentStep, StepType
from .config import ALL_PROVIDERS, Settings, get_settings
from .errors import SessionConnectionError, TronAgentError
from .llm import LLMMessage, WalletContext
from .mcp import McpSession
from .smoke import SmokeStatus, run_smoke, truncate

logger = structlog.get_logger()


def configure_logging(level: str = "INFO") -> None:
    """Route structlog through stdlib logging on stderr."""
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, level.upper(), logging.INFO),
    )
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def main() -> None:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        prog="tron-agent",
        description="TRON Agent - ask questions about the TRON blockchain",
    )
    parser.add_argument("--server", help="MCP server URL (overrides MCP_SERVER_URL)")
    parser.add_argument("--log-level", help="Log level (overrides LOG_LEVEL)")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("tools", help="List the tools offered by the MCP server")

    call_parser = subparsers.add_parser("call", help="Invoke a single tool")
    call_parser.add_argument("name", help="Tool name")
    call_parser.add_argument("--args", default="{}", help="Tool arguments as a JSON object")

    ask_parser = subparsers.add_parser("ask", help="Ask one question")
    ask_parser.add_argument("question", help="The question to ask")
    _add_turn_arguments(ask_parser)

    chat_parser = subparsers.add_parser("chat", help="Interactive conversation")
    _add_turn_arguments(chat_parser)

    subparsers.add_parser("smoke", help="Call every known tool with sample arguments")

    config_parser = subparsers.add_parser("config", help="Show configuration")
    config_parser.add_argument("--check", action="store_true", help="Check configuration validity")

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    settings = get_settings()
    configure_logging(args.log_level or settings.log_level)
    server_url = args.server or settings.mcp_server_url

    try:
        if args.command == "tools":
            asyncio.run(list_tools(settings, server_url))
        elif args.command == "call":
            asyncio.run(call_tool(settings, server_url, args.name, args.args))
        elif args.command == "ask":
            asyncio.run(ask(settings, server_url, args.question, args.provider, _wallet(args)))
        elif args.command == "chat":
            asyncio.run(chat(settings, server_url, args.provider, _wallet(args)))
        elif args.command == "smoke":
            asyncio.run(smoke(settings, server_url))
        elif args.command == "config":
            show_config(settings, args.check)
        else:
            parser.print_help()
    except SessionConnectionError as e:
        print(f"❌ Cannot reach the MCP server at {server_url}: {e}", file=sys.stderr)
        sys.exit(2)
    except TronAgentError as e:
        print(f"❌ {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        sys.exit(130)


def _add_turn_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--provider", choices=ALL_PROVIDERS, help="LLM provider for this run")
    parser.add_argument("--wallet", help="Connected wallet address")
    parser.add_argument("--network", default="mainnet", help="Network of the connected wallet")


def _wallet(args: argparse.Namespace) -> WalletContext | None:
    if not args.wallet:
        return None
    return WalletContext(address=args.wallet, network=args.network)


def _session(settings: Settings, server_url: str) -> McpSession:
    return McpSession(server_url, request_timeout=settings.mcp_request_timeout)


async def list_tools(settings: Settings, server_url: str) -> None:
    """Connect and print the tool catalog."""
    async with _session(settings, server_url) as session:
        print(f"\n🔧 {len(session.tools)} tools at {server_url}\n")
        for tool in session.tools:
            required = tool.input_schema.get("required", [])
            print(f"  {tool.name}")
            if tool.description:
                print(f"      {truncate(tool.description.strip(), 90)}")
            if required:
                print(f"      required: {', '.join(required)}")


async def call_tool(settings: Settings, server_url: str, name: str, raw_args: str) -> None:
    """Invoke one tool and print its result."""
    try:
        arguments = json.loads(raw_args)
    except json.JSONDecodeError as e:
        raise TronAgentError(f"--args is not valid JSON: {e}") from e
    if not isinstance(arguments, dict):
        raise TronAgentError("--args must be a JSON object")

    async with _session(settings, server_url) as session:
        result = await session.call_tool(name, arguments)

    marker = "❌" if result.is_error else "✅"
    print(f"{marker} {name}")
    print(result.text)


def print_step(step: AgentStep) -> None:
    """Render a step; open steps print once, completions of them are skipped."""
    if step.type in (StepType.THINKING, StepType.TOOL_CALL) and not step.is_open:
        return

    if step.type == StepType.THINKING:
        print(f"  💭 {step.content}")
    elif step.type == StepType.TOOL_CALL and step.tool_call is not None:
        print(f"  🔧 {step.tool_call.name}({json.dumps(step.tool_call.arguments)})")
    elif step.type == StepType.TOOL_RESULT and step.tool_result is not None:
        marker = "⚠️ " if step.tool_result.is_error else "📄"
        print(f"  {marker} {truncate(step.tool_result.text.replace(chr(10), ' '), 120)}")
    elif step.type == StepType.ERROR:
        print(f"  ❌ {step.content}")


async def ask(
    settings: Settings,
    server_url: str,
    question: str,
    provider: str | None,
    wallet: WalletContext | None,
) -> None:
    """Run one agent turn."""
    llm_config = settings.get_llm_config(provider)

    async with _session(settings, server_url) as session:
        agent = Agent(session.call_tool, max_iterations=settings.max_iterations)
        result = await agent.run(
            question,
            [],
            session.tools,
            llm_config,
            on_step=print_step,
            wallet=wallet,
        )

    print(f"\n{result.answer}\n")
    print(f"({result.iterations} iterations, {result.duration_ms / 1000:.1f}s, {llm_config.label})")


async def chat(
    settings: Settings,
    server_url: str,
    provider: str | None,
    wallet: WalletContext | None,
) -> None:
    """Interactive conversation; history is kept across turns."""
    llm_config = settings.get_llm_config(provider)
    history: list[LLMMessage] = []

    async with _session(settings, server_url) as session:
        agent = Agent(session.call_tool, max_iterations=settings.max_iterations)
        print(f"{settings.app_name}: connected to {server_url} with {len(session.tools)} tools.")
        print(f"Provider: {llm_config.label}. Commands: /provider NAME, /tools, /reset, /quit\n")

        while True:
            try:
                line = (await asyncio.to_thread(input, "you> ")).strip()
            except EOFError:
                break

            if not line:
                continue
            if line in ("/quit", "/exit"):
                break
            if line == "/reset":
                history.clear()
                print("History cleared.")
                continue
            if line == "/tools":
                await session.list_tools()
                print(", ".join(tool.name for tool in session.tools))
                continue
            if line.startswith("/provider"):
                _, _, name = line.partition(" ")
                if name.strip() not in ALL_PROVIDERS:
                    print(f"Choose one of: {', '.join(ALL_PROVIDERS)}")
                    continue
                llm_config = settings.get_llm_config(name.strip())
                print(f"Provider: {llm_config.label}")
                continue

            result = await agent.run(
                line,
                history,
                session.tools,
                llm_config,
                on_step=print_step,
                wallet=wallet,
            )
            print(f"\nagent> {result.answer}\n")
            history.append(LLMMessage(role="user", content=line))
            history.append(LLMMessage(role="assistant", content=result.answer))


async def smoke(settings: Settings, server_url: str) -> None:
    """Run the tool smoke suite and print a summary."""
    async with _session(settings, server_url) as session:
        print(f"\n📡 Server: {server_url} ({len(session.tools)} tools)\n")
        outcomes = await run_smoke(session)

    print("─" * 60)
    for outcome in outcomes:
        elapsed = f"{outcome.elapsed_ms}ms"
        if outcome.status == SmokeStatus.SUCCESS:
            print(f"✅ {outcome.tool:<30} {elapsed:>8}")
        elif outcome.status == SmokeStatus.KNOWN_FAILURE:
            print(f"⚠️  {outcome.tool:<30} {elapsed:>8} (known issue)")
        elif outcome.status == SmokeStatus.SKIPPED:
            print(f"⚠️  {outcome.tool:<30} SKIPPED (not available)")
        else:
            print(f"❌ {outcome.tool:<30} {elapsed:>8}")
            print(f"   └─ Error: {truncate(outcome.error or 'Unknown error', 80)}")
    print("─" * 60)

    counts = {status: sum(1 for o in outcomes if o.status == status) for status in SmokeStatus}
    print(
        f"\n{counts[SmokeStatus.SUCCESS]} passed, {counts[SmokeStatus.ERROR]} failed, "
        f"{counts[SmokeStatus.KNOWN_FAILURE]} known failures, {counts[SmokeStatus.SKIPPED]} skipped"
    )
    if counts[SmokeStatus.ERROR]:
        sys.exit(1)


def show_config(settings: Settings, check: bool) -> None:
    """Show current configuration."""

    def mask(value: str) -> str:
        if not value:
            return "(not set)"
        return value[:4] + "..." + value[-4:] if len(value) > 10 else "****"

    print(f"\n=== {settings.app_name} Configuration ===\n")

    print("MCP Server:")
    print(f"  URL: {settings.mcp_server_url}")
    print(f"  Request Timeout: {settings.mcp_request_timeout or '(none)'}")

    print("\nLLM Providers:")
    print(f"  Active: {settings.llm_provider}")
    for provider in ALL_PROVIDERS:
        config = settings.get_llm_config(provider)
        key = mask(config.api_key) if config.requires_key else "(not required)"
        print(f"  {config.label:<28} model={config.model:<28} key={key}")

    print("\nAgent:")
    print(f"  Max Iterations: {settings.max_iterations}")
    print(f"  Max Tokens: {settings.max_tokens}")
    print(f"  Temperature: {settings.temperature}")

    if check:
        print("\n=== Configuration Check ===\n")
        errors = []

        active = settings.get_llm_config()
        if active.requires_key and not active.api_key:
            errors.append(f"{active.provider.upper()}_API_KEY is required for the active provider")

        if not settings.mcp_server_url.startswith(("http://", "https://")):
            errors.append("MCP_SERVER_URL must be an http(s) URL")

        if errors:
            print("❌ Errors:")
            for e in errors:
                print(f"   - {e}")
            print("\n❌ Configuration has errors - fix them before starting")
        else:
            print("✅ Configuration looks good!")


if __name__ == "__main__":
    main()
