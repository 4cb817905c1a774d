"""
Console adapters for running the orchestrator outside a browser.

StaticContextCollector answers every collect() with a fixed context;
ConsoleSurface renders hints as rich panels.
"""

from typing import Any

from rich.console import Console
from rich.panel import Panel

from leetmentor.hints.models import HintDisplay, ProblemContext

CLI_SESSION = "cli"


class StaticContextCollector:
    """Context collector backed by values given on the command line."""

    def __init__(self, context: ProblemContext, session_id: str = CLI_SESSION):
        self.context = context
        self.session_id = session_id

    async def collect(self, session_id: str) -> ProblemContext | None:
        if session_id != self.session_id:
            return None
        return self.context

    async def reinject(self, session_id: str) -> None:
        return None

    async def active_session(self) -> str | None:
        return self.session_id


class ConsoleSurface:
    """Presentation surface that prints to the terminal."""

    def __init__(self, console: Console | None = None):
        self.console = console or Console()
        self.shown: list[dict[str, Any]] = []

    async def show_hint(self, session_id: str, display: HintDisplay) -> None:
        self.shown.append(display.to_dict())
        if display.ask_for_code:
            self.console.print(
                Panel(
                    display.hint_text,
                    title="[bold yellow]Hint limit reached[/bold yellow]",
                    border_style="yellow",
                )
            )
            return
        self.console.print(
            Panel(
                display.hint_text,
                title=f"[bold cyan]Hint {display.level}[/bold cyan]",
                border_style="cyan",
            )
        )

    async def hide_hint(self, session_id: str) -> None:
        return None
