"""
Command Line Interface for Tollgate.
"""
import asyncio
from typing import Optional

import typer
from rich.table import Table

from tollgate.errors import ConfigurationError

from .utils import console, print_error, print_info, print_success

app = typer.Typer(help="Tollgate management commands")


def _settings():
    from tollgate.core.config import load_settings
    try:
        return load_settings()
    except ConfigurationError as e:
        print_error(str(e))
        raise typer.Exit(code=1)


@app.command("serve")
def serve(
    host: Optional[str] = typer.Option(None, help="Bind address (defaults to HOST)"),
    port: Optional[int] = typer.Option(None, help="Port (defaults to PORT)"),
    reload: bool = False,
    workers: int = 1,
) -> None:
    """Run the Tollgate server."""
    import uvicorn

    settings = _settings()
    host = host or settings.HOST
    port = port or settings.PORT
    print_success(f"Starting Tollgate at http://{host}:{port}")
    uvicorn.run(
        "tollgate:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        workers=workers,
    )


@app.command("init-db")
def init_db() -> None:
    """Create the tables Tollgate owns."""
    from tollgate.db.session import Database

    settings = _settings()

    async def run():
        database = Database(settings.DATABASE_URL, echo_sql=settings.ECHO_SQL)
        try:
            await database.create_tables()
        finally:
            await database.close()

    asyncio.run(run())
    print_success("Database tables created")


@app.command("sweep")
def sweep() -> None:
    """Prune expired blacklist entries and sessions once."""
    from tollgate.container import build_services

    settings = _settings()

    async def run():
        services = build_services(settings)
        try:
            return await services.sweeper.run_once()
        finally:
            await services.close()

    report = asyncio.run(run())
    print_success(
        f"Pruned {report.blacklist_pruned} blacklist entries and "
        f"deleted {report.sessions_deleted} expired sessions"
    )


@app.command("tiers")
def tiers() -> None:
    """Show the effective rate limit tiers."""
    settings = _settings()
    if not settings.RATE_LIMIT_ENABLED:
        print_info("Rate limiting is disabled")

    table = Table(title=f"Rate limit tiers ({settings.RATE_LIMIT_BACKEND})")
    table.add_column("Tier")
    table.add_column("Per minute", justify="right")
    table.add_column("Per hour", justify="right")
    table.add_column("Burst", justify="right")
    for tier, policy in settings.tier_policies().items():
        table.add_row(
            tier.value,
            str(policy.requests_per_minute),
            str(policy.requests_per_hour),
            str(policy.burst_size) if policy.enabled else "disabled",
        )
    console.print(table)


if __name__ == "__main__":
    app()
