"""Main CLI application using Typer."""
import asyncio
from datetime import datetime
from pathlib import Path

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from ..config import configure_logging
from ..game import GameSession, TurnResult
from ..llm import AUTO_PRIORITY, BackendSelection
from ..prompts import DetailLevel, ToneStyle
from .providers import get_manager, get_settings

# Load environment variables
load_dotenv()

# Create Typer app
app = typer.Typer(
    name="blompie",
    help="Zork-style text adventure narrated by a self-hosted LLM",
    no_args_is_help=True,
    add_completion=True,
)

# Console for rich output
console = Console()

QUIT_COMMANDS = ("exit", "quit", "q")


@app.callback()
def configure(
    log_level: str = typer.Option(
        None,
        "--log-level",
        "-l",
        help="Logging level (debug, info, warning, error); defaults to BLOMPIE_LOG_LEVEL"
    )
):
    """Configure logging before any command runs."""
    configure_logging(log_level or get_settings(console).log_level)


@app.command()
def status():
    """Probe every backend and show which one would serve the game."""
    async def _status():
        settings = get_settings(console)
        manager = get_manager(settings)
        try:
            if not settings.server_host:
                console.print("[yellow]![/yellow] BLOMPIE_SERVER_HOST is not set")

            availability = await manager.check_backend_availability()

            table = Table(title="AI Backends")
            table.add_column("Backend", style="cyan")
            table.add_column("URL")
            table.add_column("Status")
            table.add_column("Models", justify="right")

            for kind in AUTO_PRIORITY:
                url = settings.endpoint_for(kind).base_url or "-"
                if availability.get(kind):
                    state = "[green]+ available[/green]"
                else:
                    state = "[red]x unavailable[/red]"
                table.add_row(kind.display_name, url, state, str(len(manager.models[kind])))

            console.print(table)

            active = manager.active_kind
            if active is None:
                console.print(f"[red]No backend available (selection: {settings.backend.value})[/red]")
                raise typer.Exit(code=1)
            console.print(f"[green]Active backend:[/green] {active.display_name}")

        except typer.Exit:
            raise
        except Exception as e:
            console.print(f"[red]Error: {e}[/red]")
            raise typer.Exit(code=1)
        finally:
            await manager.close()

    asyncio.run(_status())


@app.command()
def models():
    """List the models installed on the active backend."""
    async def _models():
        settings = get_settings(console)
        manager = get_manager(settings)
        try:
            await manager.check_backend_availability()
            backend = manager.require_backend()
            names = manager.models[backend.kind]

            if not names:
                console.print(f"[yellow]{backend.kind.display_name} reports no models.[/yellow]")
                return

            console.print(f"[bold]Models on {backend.kind.display_name}:[/bold]")
            for name in names:
                marker = "[green]*[/green]" if name == settings.model else " "
                console.print(f" {marker} {name}")

        except Exception as e:
            console.print(f"[red]Error: {e}[/red]")
            raise typer.Exit(code=1)
        finally:
            await manager.close()

    asyncio.run(_models())


def _print_turn(session: GameSession, start: int, result: TurnResult, streamed: bool) -> None:
    """Print transcript lines added since ``start`` followed by the action menu."""
    narrative = result.turn.narrative if result.turn else None
    if streamed:
        console.print()
    for message in session.messages[start:]:
        if streamed and message.text == narrative:
            continue
        style = "red" if not result.ok else None
        console.print(message.text, style=style, markup=False, highlight=False)

    for achievement in result.unlocked:
        console.print(Panel(achievement.description, title=achievement.title, style="magenta"))

    if result.tokens_per_second is not None:
        console.print(f"[dim]{result.tokens_per_second:.1f} tokens/sec[/dim]")

    _print_actions(session)


def _print_actions(session: GameSession) -> None:
    for number, action in enumerate(session.current_actions, start=1):
        console.print(f"  [bold cyan]{number}.[/bold cyan] {escape(action)}")


def _resolve_action(session: GameSession, user_input: str) -> str:
    """Map a menu number to its action; anything else is free text."""
    if user_input.isdigit():
        index = int(user_input) - 1
        if 0 <= index < len(session.current_actions):
            return session.current_actions[index]
    return user_input


@app.command()
def play(
    model: str = typer.Option(
        None,
        "--model",
        "-m",
        help="Model to use (overrides BLOMPIE_MODEL)"
    ),
    backend: BackendSelection = typer.Option(
        None,
        "--backend",
        "-b",
        help="Backend to use (overrides BLOMPIE_BACKEND)"
    ),
    detail: DetailLevel = typer.Option(
        None,
        "--detail",
        "-d",
        help="Description length"
    ),
    tone: ToneStyle = typer.Option(
        None,
        "--tone",
        "-t",
        help="Narration tone"
    ),
    no_stream: bool = typer.Option(
        False,
        "--no-stream",
        help="Wait for complete responses instead of streaming"
    )
):
    """Play an interactive text adventure."""
    async def _play():
        settings = get_settings(
            console,
            model=model,
            backend=backend,
            detail_level=detail,
            tone_style=tone,
            streaming=False if no_stream else None,
        )
        manager = get_manager(settings)
        try:
            await manager.check_backend_availability()
            active = manager.require_backend()
            console.print(f"[dim]Using {active.kind.display_name} with model {settings.model}[/dim]")

            session = GameSession(manager, settings)
            await session.refresh_available_models()

            def on_chunk(chunk: str) -> None:
                console.print(chunk, end="", style="dim", markup=False, highlight=False)

            console.print(
                "[dim]Enter a number or your own action. "
                "Commands: undo, stats, export, quit[/dim]\n"
            )

            start = 0
            result = await session.start_new_game(on_chunk if settings.streaming else None)
            _print_turn(session, start, result, settings.streaming and result.ok)

            while True:
                try:
                    user_input = console.input("\n[bold yellow]>[/bold yellow] ").strip()

                    if not user_input:
                        continue

                    command = user_input.lower()
                    if command in QUIT_COMMANDS:
                        console.print("[dim]Goodbye![/dim]")
                        break

                    if command == "undo":
                        if session.undo_last_action():
                            console.print("[green]Undid last action.[/green]")
                            _print_actions(session)
                        else:
                            console.print("[yellow]Nothing to undo.[/yellow]")
                        continue

                    if command == "stats":
                        table = Table(title="Game Statistics")
                        table.add_column("Metric", style="cyan")
                        table.add_column("Value", style="green")
                        for name, value in session.stats().items():
                            table.add_row(name, value)
                        console.print(table)
                        continue

                    if command == "export":
                        stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
                        path = Path.cwd() / f"blompie_transcript_{stamp}.txt"
                        path.write_text(session.export_transcript(), encoding="utf-8")
                        console.print(f"[green]Transcript saved to {path}[/green]")
                        continue

                    action = _resolve_action(session, user_input)
                    start = len(session.messages)
                    result = await session.perform_action(
                        action, on_chunk if settings.streaming else None
                    )
                    _print_turn(session, start, result, settings.streaming and result.ok)

                except KeyboardInterrupt:
                    console.print("\n[dim]Goodbye![/dim]")
                    break
                except EOFError:
                    console.print("\n[dim]Goodbye![/dim]")
                    break

        except Exception as e:
            console.print(f"[red]Error: {e}[/red]")
            raise typer.Exit(code=1)
        finally:
            await manager.close()

    asyncio.run(_play())


def main():
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
