"""
peak_server/cli.py

Interactive terminal client for the search orchestrator, using Rich.

Runs queries in-process through the same provider chains as the HTTP API.
Media answers are shown as their URL (data URIs are summarised).
"""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import Any

import httpx
from dotenv import load_dotenv
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table
from rich.theme import Theme

from .config import LOG_FORMAT, PeakSettings
from .credits import CreditReporter
from .errors import public_error
from .intent_classifier import Mode
from .memory import RollingMemory
from .orchestrator import EventCallback, SearchOrchestrator
from .payloads import ProviderResult, decode_media
from .store import build_store

logger = logging.getLogger("peak-server.cli")

custom_theme = Theme(
    {
        "info": "cyan",
        "warning": "yellow",
        "error": "bold red",
        "success": "bold green",
        "event": "dim",
    }
)
console = Console(theme=custom_theme)

HELP_TEXT = """
**Available Commands:**

- `/help` - Show this help message
- `/mode <name>` - Switch the default mode (chat, flash, think, code, pro, analyze, image, video)
- `/credits` - Show remaining provider credits
- `/clear` - Clear conversation history
- `/quit` or `/exit` - Exit

Queries starting with `/image`, `/draw`, `/code`, `/video` or `/animate`
override the current mode for that query.
"""


def render_answer(detailed: str) -> Panel:
    """Build the panel for one answer; media payloads show their location."""
    decoded = decode_media(detailed)
    if decoded is None:
        return Panel(Markdown(detailed), title="[bold green]Peak AI[/bold green]", border_style="green")
    kind, location = decoded
    if location.startswith("data:"):
        header = location.split(",", 1)[0]
        location = f"{header},... ({len(location)} chars)"
    return Panel(location, title=f"[bold magenta]{kind.name.title()}[/bold magenta]", border_style="magenta")


def render_credits(report: dict[str, Any]) -> Table:
    table = Table(title="Credits")
    table.add_column("Provider")
    table.add_column("Total", justify="right")
    table.add_column("Used", justify="right")
    table.add_column("Remaining", justify="right")
    orouter = report["openrouter"]
    kling = report["kling"]
    table.add_row(
        "OpenRouter",
        str(orouter["total_credits"]),
        str(orouter["total_usage"]),
        str(orouter["remaining"]),
    )
    table.add_row("Kling (today)", str(kling["total"]), str(kling["used"]), str(kling["remaining"]))
    return table


async def run_turn(
    orchestrator: SearchOrchestrator,
    memory: RollingMemory,
    user_input: str,
    mode: str,
    on_event: EventCallback | None = None,
) -> ProviderResult:
    """Answer one REPL query and record the exchange.

    The history sent to the orchestrator ends with the current query.  Both
    turns are committed to *memory* only once an answer comes back, so a
    failed query leaves the history untouched.
    """
    messages = [*memory.get_context(), {"role": "user", "content": user_input}]
    result = await orchestrator.run(user_input, mode, messages, on_event=on_event)
    memory.add_message("user", user_input)
    memory.add_message("assistant", result.detailed_answer)
    return result


async def _session(settings: PeakSettings) -> None:
    memory = RollingMemory(max_messages=20)
    mode = Mode.CHAT.value

    async with httpx.AsyncClient() as client:
        store = build_store(settings, client)
        orchestrator = SearchOrchestrator(settings, client, store)
        reporter = CreditReporter(settings, client, store)

        def _on_event(event: dict[str, Any]) -> None:
            console.print(event["content"], style="event")

        while True:
            user_input = (await asyncio.to_thread(Prompt.ask, f"[bold blue]You[/bold blue] ({mode})")).strip()
            if not user_input:
                continue
            command = user_input.lower()

            if command in ("/quit", "/exit"):
                console.print("Goodbye.", style="success")
                return
            if command == "/help":
                console.print(Panel(Markdown(HELP_TEXT), title="Help", border_style="cyan"))
                continue
            if command == "/clear":
                memory.clear()
                console.print("Conversation history cleared.", style="success")
                continue
            if command == "/credits":
                console.print(render_credits(await reporter.report()))
                continue
            if command.startswith("/mode"):
                requested = command.removeprefix("/mode").strip()
                if requested in {m.value for m in Mode}:
                    mode = requested
                    console.print(f"Mode set to {mode}.", style="success")
                else:
                    console.print(f"Unknown mode: {requested!r}", style="warning")
                continue

            try:
                with console.status("[bold green]Thinking...", spinner="dots"):
                    result = await run_turn(orchestrator, memory, user_input, mode, _on_event)
            except Exception as exc:
                logger.error("Orchestration error: %s", exc, exc_info=True)
                _, message = public_error(exc)
                console.print(f"Error: {message}", style="error")
                continue

            console.print(render_answer(result.detailed_answer))


def main() -> None:
    """Entry point for the ``peak-search`` console script."""
    load_dotenv()
    settings = PeakSettings()
    logging.basicConfig(level=settings.log_level.upper(), format=LOG_FORMAT)

    console.print(
        Panel(
            "[bold cyan]Peak AI Search[/bold cyan]\n"
            "[dim]Type /help for commands, /quit to exit[/dim]",
            border_style="cyan",
        )
    )
    try:
        asyncio.run(_session(settings))
    except KeyboardInterrupt:
        console.print("\nInterrupted. Goodbye!", style="warning")
        sys.exit(0)


if __name__ == "__main__":
    main()
