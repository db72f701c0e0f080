"""Augur command line - serve the API or talk to the engine in-process."""

import asyncio
import json
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import Annotated

import structlog
import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from augur.actions.catalog import list_tools
from augur.actions.models import ActionCategory
from augur.config import Settings
from augur.engine import EngineContext, QueryRequest, QueryService

log = structlog.get_logger()

ACCENT = "#e135ff"
CYAN = "#80ffea"
YELLOW = "#f1fa8c"
GREEN = "#50fa7b"
RED = "#ff6363"

console = Console()

app = typer.Typer(
    name="augur",
    help="Augur - answers and actions over organizational data",
    add_completion=False,
    no_args_is_help=True,
)


def run_async[**P, R](func: Callable[P, Awaitable[R]]) -> Callable[P, R]:
    """Decorator to run async functions in sync context (for Typer commands)."""

    @wraps(func)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        return asyncio.run(func(*args, **kwargs))

    return wrapper


def print_json(data: object) -> None:
    """Print JSON to stdout without Rich formatting (Rich wraps long lines)."""
    print(json.dumps(data, indent=2, default=str, ensure_ascii=False))


def success(message: str) -> None:
    console.print(f"[{GREEN}]✓[/{GREEN}] {message}")


def error(message: str) -> None:
    console.print(f"[{RED}]✗[/{RED}] {message}")


def create_table(title: str | None = None, *columns: str) -> Table:
    table = Table(title=title, border_style=CYAN)
    for i, column in enumerate(columns):
        table.add_column(column, style=ACCENT if i == 0 else CYAN)
    return table


async def _open_engine() -> EngineContext:
    engine = EngineContext.build(Settings())
    await engine.start()
    return engine


@app.command()
def serve(
    host: str = typer.Option(None, "--host", "-h", help="Host to bind to"),
    port: int = typer.Option(None, "--port", "-p", help="Port to listen on"),
) -> None:
    """Start the HTTP API.

    Examples:
        augur serve                    # Default: settings host/port
        augur serve -h 0.0.0.0 -p 9000
    """
    import uvicorn

    from augur.api import create_app

    settings = Settings()
    host = host or settings.server_host
    port = port or settings.server_port
    log.info("Starting Augur API", host=host, port=port, environment=settings.environment)

    try:
        uvicorn.run(
            create_app(settings),
            host=host,
            port=port,
            log_level="warning",
            access_log=False,
        )
    except KeyboardInterrupt:
        console.print(f"\n[{CYAN}]Shutting down...[/{CYAN}]")


@app.command("init-db")
def init_db() -> None:
    """Create tables (and the pgvector extension) if missing."""

    @run_async
    async def run() -> None:
        engine = await _open_engine()
        await engine.close()
        success("Database initialized")

    run()


@app.command()
def ask(
    query: str = typer.Argument(..., help="Question or action request"),
    org: str = typer.Option(..., "--org", "-o", help="Organization ID"),
    user: str = typer.Option(..., "--user", "-u", help="User ID"),
    session: str = typer.Option(None, "--session", "-s", help="Session ID to continue"),
    json_out: Annotated[bool, typer.Option("--json", "-j", help="JSON output")] = False,
) -> None:
    """Send one message through the engine."""

    @run_async
    async def run() -> None:
        engine = await _open_engine()
        try:
            response = await QueryService(engine).query(
                QueryRequest(organization_id=org, user_id=user, query=query, session_id=session)
            )
        finally:
            await engine.close()

        if json_out:
            print_json(
                {
                    "answer": response.answer,
                    "sessionId": response.session_id,
                    "isOutOfScope": response.is_out_of_scope,
                    "isActionResponse": response.is_action_response,
                    "sources": response.sources,
                    "errorCode": response.error_code,
                }
            )
            return

        subtitle = f"session {response.session_id}"
        if response.action_result:
            tools = ", ".join(response.action_result.tools_used) or "none"
            subtitle += f" · tools: {tools}"
        console.print(Panel(response.answer, subtitle=subtitle, border_style=CYAN))
        for source in response.sources:
            console.print(
                f"  [{YELLOW}]{source['score']:.2f}[/{YELLOW}] "
                f"[{ACCENT}]{source['type']}[/{ACCENT}] {source['title'] or source['id']}"
            )
        if response.error_code:
            error(f"Request failed: {response.error_code}")

    run()


@app.command()
def stats(organization_id: str = typer.Argument(..., help="Organization ID")) -> None:
    """Show indexed document counts for an organization."""

    @run_async
    async def run() -> None:
        engine = await _open_engine()
        try:
            result = await engine.indexing.get_stats(organization_id)
        finally:
            await engine.close()

        table = create_table(f"Indexed content for {organization_id}", "Type", "Count")
        for content_type, count in sorted(result.by_content_type.items()):
            table.add_row(content_type, str(count))
        table.add_row("Total", f"[bold]{result.total_documents}[/bold]")
        console.print(table)
        if result.last_synced_at:
            console.print(f"[dim]Last synced {result.last_synced_at:%Y-%m-%d %H:%M:%S}[/dim]")

    run()


@app.command()
def tools(
    category: Annotated[
        list[ActionCategory] | None,
        typer.Option("--category", "-c", help="Filter by category (repeatable)"),
    ] = None,
) -> None:
    """List the tools available to the agent."""
    table = create_table("Agent tools", "Name", "Category", "Description")
    for tool in list_tools(category):
        table.add_row(tool.name, str(tool.category), tool.description)
    console.print(table)


@app.command("clear-history")
def clear_history(session_id: str = typer.Argument(..., help="Session ID")) -> None:
    """Delete every stored turn of a session."""

    @run_async
    async def run() -> None:
        engine = await _open_engine()
        try:
            removed = await engine.conversations.clear(session_id)
        finally:
            await engine.close()
        success(f"Removed {removed} turns from {session_id}")

    run()


def main() -> None:
    app()


if __name__ == "__main__":
    main()
