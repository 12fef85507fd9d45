"""
Shared utilities for CLI commands.
"""
from rich.console import Console

console = Console()
err_console = Console(stderr=True)


def print_success(message: str) -> None:
    console.print(f"[green]✓ {message}[/green]")


def print_error(message: str) -> None:
    err_console.print(f"[red]✗ {message}[/red]")


def print_info(message: str) -> None:
    console.print(f"[blue]ℹ {message}[/blue]")
