"""Entry point for healthgate."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

import uvicorn
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from healthgate.config import settings
from healthgate.health.engine import AggregateState, Status

console = Console()
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)


def run_server() -> None:
    """Start the FastAPI server."""
    console.print(Panel(f"Serving health at {settings.health_path}", style="bold green"))
    uvicorn.run(
        "healthgate.api.server:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=False,
    )


def render_state(state: AggregateState) -> Table:
    colour = "green" if state.status is Status.UP else "red"
    table = Table(title=f"Health: [bold {colour}]{state.status.value}[/bold {colour}]")
    table.add_column("Check")
    table.add_column("Status")
    table.add_column("Duration", justify="right")
    table.add_column("Error")
    for r in state.results.values():
        style = "green" if r.outcome.ok else "red"
        table.add_row(
            r.name, f"[{style}]{r.status.value}[/{style}]", f"{r.duration_ms:.1f}ms", r.outcome.reason,
        )
    return table


def run_check() -> int:
    """Evaluate every configured probe once and print the result."""
    from healthgate.api.server import app

    async def _once() -> AggregateState:
        async with app.router.lifespan_context(app):
            return await app.state.checker.check()

    with console.status("[bold green]Running health checks..."):
        state = asyncio.run(_once())

    console.print(render_state(state))
    return 0 if state.status is Status.UP else 1


def main() -> None:
    parser = argparse.ArgumentParser(description="healthgate — aggregate health endpoint")
    sub = parser.add_subparsers(dest="command")

    # Server mode
    sub.add_parser("serve", help="Start the health endpoint server")

    # One-shot mode
    sub.add_parser("check", help="Run all checks once; exit 1 if DOWN")

    args = parser.parse_args()

    if args.command == "serve":
        run_server()
    elif args.command == "check":
        sys.exit(run_check())
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
