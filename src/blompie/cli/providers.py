"""Factory functions for CLI.

Centralizes creation of settings, backends and the game session from
environment variables. Hides configuration details from command implementations.
"""

from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape

from ..config import GameSettings, load_settings
from ..llm import AUTO_PRIORITY, BackendManager, create_backend

# Default console for output
_console = Console()


def get_settings(console: Console | None = None, **overrides) -> GameSettings:
    """Load settings from the environment and apply command-line overrides.

    Args:
        console: Optional Rich console for output
        **overrides: Field values that win over the environment (None is ignored)

    Returns:
        Validated game settings

    Raises:
        typer.Exit: If a BLOMPIE_* variable holds an invalid value
    """
    import typer

    con = console or _console
    try:
        settings = load_settings()
    except ValidationError as e:
        con.print(f"[red]Error: invalid configuration[/red]\n{escape(str(e))}")
        raise typer.Exit(code=1)

    update = {key: value for key, value in overrides.items() if value is not None}
    return settings.model_copy(update=update) if update else settings


def get_manager(settings: GameSettings) -> BackendManager:
    """Create a backend manager with one backend per server kind.

    Every kind shares the configured host and uses its own port.
    """
    backends = {
        kind: create_backend(
            kind,
            host=settings.server_host,
            port=settings.port_for(kind),
            model=settings.model,
            request_timeout=settings.request_timeout,
            resource_timeout=settings.resource_timeout,
        )
        for kind in AUTO_PRIORITY
    }
    return BackendManager(backends, settings.backend, settings.probe_timeout)
