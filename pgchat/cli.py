"""
pgchat CLI

Command-line interface for pgchat.

Usage:
    pgchat serve                                   # Local single-user server on port 5005
    pgchat ask "Why is this query slow?" -c URL    # One turn in the terminal
    pgchat check-connection URL                    # Verify a connection string
    pgchat tools                                   # List tools offered by a running server
"""

import asyncio
import logging
import os
import subprocess
import sys
import uuid
from typing import Any

import click
import httpx
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table

from pgchat import __version__
from pgchat.config import clear_settings_cache, get_settings
from pgchat.connectors import VALID_CONNECTION_MESSAGE, check_connection
from pgchat.llm import LLMProviderFactory
from pgchat.models.context import ConnectionContext
from pgchat.models.transcript import Message
from pgchat.pipeline import ChatOrchestrator, TurnError, TurnRequest, TurnResult
from pgchat.tools import initialize_tools

console = Console()
API_BASE_URL = os.getenv("PGCHAT_API_URL", "http://localhost:5005")
DEFAULT_CLI_PORT = 5005


def configure_cli_logging() -> None:
    logging.basicConfig(level=logging.CRITICAL)
    for logger_name in ("pgchat", "httpx", "openai", "asyncio"):
        logging.getLogger(logger_name).setLevel(logging.CRITICAL)


def format_answer(answer: str, result: TurnResult) -> None:
    """Display the answer and the tools the model used."""
    console.print(Panel(Markdown(answer), title="[bold green]Answer[/bold green]"))

    invocations = [
        invocation
        for message in result.messages
        if message.role == "assistant"
        for invocation in message.tool_invocations
    ]
    if not invocations:
        return

    table = Table(title="Tool calls", show_header=True, header_style="bold cyan")
    table.add_column("#")
    table.add_column("Tool")
    table.add_column("Arguments")
    for index, invocation in enumerate(invocations, start=1):
        args = ", ".join(f"{key}={value!r}" for key, value in invocation.args.items())
        table.add_row(str(index), invocation.tool_name, args or "-")
    console.print(table)
    console.print(
        f"[dim]{result.steps} step(s)"
        + (", step budget exhausted" if result.budget_exhausted else "")
        + "[/dim]"
    )


@click.group()
@click.version_option(version=__version__, prog_name="pgchat")
def cli():
    """pgchat - Chat with your PostgreSQL database."""
    pass


@cli.command()
@click.option("--port", "-p", default=DEFAULT_CLI_PORT, show_default=True, type=int)
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--reload", is_flag=True, help="Reload on code changes.")
def serve(port: int, host: str, reload: bool):
    """Run the API in CLI mode (OpenAI key and model sent by the client)."""
    env = {**os.environ, "CLI_MODE": "true"}
    cmd = [
        sys.executable,
        "-m",
        "uvicorn",
        "pgchat.api.main:app",
        "--host",
        host,
        "--port",
        str(port),
    ]
    if reload:
        cmd.append("--reload")

    console.print(f"[cyan]Starting the app on port {port}...[/cyan]")
    process = subprocess.Popen(cmd, env=env)
    console.print(f"[green]Server available at [underline]http://{host}:{port}[/underline][/green]")
    try:
        sys.exit(process.wait())
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopping server...[/yellow]")
        process.terminate()
        try:
            process.wait(timeout=5)
        except subprocess.TimeoutExpired:
            process.kill()


@cli.command()
@click.argument("question")
@click.option(
    "--connection-string",
    "-c",
    envvar="DATABASE_URL",
    required=True,
    help="Target database URL (defaults to $DATABASE_URL).",
)
@click.option("--model", "-m", help="Override the configured model.")
@click.option("--api-key", envvar="OPENAI_API_KEY", help="OpenAI API key.")
def ask(question: str, connection_string: str, model: str | None, api_key: str | None):
    """Ask a single question about the database and exit."""
    configure_cli_logging()

    async def run_turn() -> None:
        clear_settings_cache()
        settings = get_settings()
        initialize_tools(settings.tools.policy_path)

        provider = LLMProviderFactory.create_provider(settings.llm, api_key=api_key, model=model)
        orchestrator = ChatOrchestrator(provider=provider, settings=settings)
        turn = TurnRequest(
            chat_id=str(uuid.uuid4()),
            owner_id=settings.local_user_id,
            messages=[Message(role="user", content=question)],
            connection=ConnectionContext(
                connection_string=connection_string,
                openai_api_key=api_key,
                model=model,
            ),
        )
        result = await orchestrator.prepare(turn)
        chunks: list[str] = []
        with console.status("[cyan]Thinking...[/cyan]", spinner="dots"):
            async for chunk in orchestrator.stream_turn(turn, result):
                chunks.append(chunk)
        format_answer("".join(chunks), result)

    try:
        asyncio.run(run_turn())
    except TurnError as e:
        console.print(f"[red]Error ({e.status_code}): {e.message}[/red]")
        sys.exit(1)
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


@cli.command(name="check-connection")
@click.argument("connection_string")
@click.option("--timeout", default=15, show_default=True, type=int)
def check_connection_command(connection_string: str, timeout: int):
    """Verify that a connection string can reach the database."""
    configure_cli_logging()
    message = asyncio.run(check_connection(connection_string, timeout=timeout))
    if message == VALID_CONNECTION_MESSAGE:
        console.print(f"[green]✓ {message}[/green]")
        return
    console.print(f"[red]✗ {message}[/red]")
    sys.exit(1)


@cli.command(name="tools")
def list_tools():
    """List the tools a running server offers to the model."""
    try:
        response = httpx.get(f"{API_BASE_URL}/api/v1/tools", timeout=15.0)
        response.raise_for_status()
        data: list[dict[str, Any]] = response.json()
    except httpx.HTTPError as exc:
        console.print(f"[red]Failed to list tools: {exc}[/red]")
        sys.exit(1)

    table = Table(title="Tools", show_header=True, header_style="bold cyan")
    table.add_column("Name")
    table.add_column("Enabled")
    table.add_column("Description")
    for tool in data:
        table.add_row(
            tool.get("name", ""),
            "yes" if tool.get("enabled") else "no",
            tool.get("description", ""),
        )
    console.print(table)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
