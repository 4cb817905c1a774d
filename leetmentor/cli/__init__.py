"""
LeetMentor CLI components.

- typer_commands.py: CLI entry points (settings, reset, ping, hint, ...)
- console.py: console collector and presentation adapters
"""

from leetmentor.cli.console import ConsoleSurface, StaticContextCollector
from leetmentor.cli.typer_commands import app, run

__all__ = [
    "app",
    "run",
    "ConsoleSurface",
    "StaticContextCollector",
]
