"""Command-line entrypoint (Typer-based).

Provides :func:`build_cli` which constructs a Typer app that parses the
bridge options (``--version``, ``--log-level``, ``--log-format``,
``--env-file``) and hands off to the bridge's async lifecycle.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import sys
from typing import TYPE_CHECKING, Annotated, get_args

import typer
from pydantic import ValidationError

from idiamant2mqtt._settings import LoggingSettings

if TYPE_CHECKING:
    from idiamant2mqtt._app import Bridge
    from idiamant2mqtt._settings import Settings

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Exit codes
# ---------------------------------------------------------------------------

EXIT_OK = 0
EXIT_CONFIG_ERROR = 1
EXIT_RUNTIME_ERROR = 3

# ---------------------------------------------------------------------------
# Allowed values (extracted from LoggingSettings Literal types)
# ---------------------------------------------------------------------------

_VALID_LOG_LEVELS: tuple[str, ...] = get_args(
    LoggingSettings.model_fields["level"].annotation,
)
_VALID_LOG_FORMATS: tuple[str, ...] = get_args(
    LoggingSettings.model_fields["format"].annotation,
)


def build_cli(bridge: Bridge) -> typer.Typer:
    """Construct a Typer CLI from a :class:`Bridge` instance.

    The returned Typer app exposes a single default command.  When
    invoked it loads settings, applies CLI overrides, and delegates to
    :meth:`Bridge._run_async`.

    Args:
        bridge: The bridge to wrap.

    Returns:
        A configured :class:`typer.Typer` ready to invoke.
    """
    name = bridge._name
    version = bridge._version
    description = bridge._description

    cli = typer.Typer(help=f"{name} v{version}: {description}")

    # -- main command -------------------------------------------------------

    @cli.callback(invoke_without_command=True)
    def main(
        version_flag: Annotated[
            bool | None,
            typer.Option(
                "--version",
                is_eager=True,
                help="Show version and exit.",
            ),
        ] = None,
        log_level: Annotated[
            str | None,
            typer.Option("--log-level", help="Override log level."),
        ] = None,
        log_format: Annotated[
            str | None,
            typer.Option("--log-format", help="Override log format."),
        ] = None,
        env_file: Annotated[
            str,
            typer.Option("--env-file", help="Path to .env file."),
        ] = ".env",
    ) -> None:
        # -- version ---------------------------------------------------------
        if version_flag:
            typer.echo(f"{name} v{version}")
            raise typer.Exit()

        # -- validate enum-like options -------------------------------------
        if log_level is not None and log_level.upper() not in _VALID_LOG_LEVELS:
            raise typer.BadParameter(
                f"Invalid log level '{log_level}'. "
                f"Choose from: {', '.join(_VALID_LOG_LEVELS)}",
                param_hint="'--log-level'",
            )

        if log_format is not None and log_format.lower() not in _VALID_LOG_FORMATS:
            raise typer.BadParameter(
                f"Invalid log format '{log_format}'. "
                f"Choose from: {', '.join(_VALID_LOG_FORMATS)}",
                param_hint="'--log-format'",
            )

        # -- build settings -------------------------------------------------
        try:
            settings: Settings = bridge._settings_class(
                _env_file=env_file,  # type: ignore[call-arg]
            )
        except ValidationError as exc:
            logger.error("Configuration error: %s", exc)
            raise SystemExit(EXIT_CONFIG_ERROR) from exc

        # -- apply CLI overrides --------------------------------------------
        if log_level is not None:
            settings.logging = settings.logging.model_copy(
                update={"level": log_level.upper()},
            )

        if log_format is not None:
            settings.logging = settings.logging.model_copy(
                update={"format": log_format.lower()},
            )

        # -- run the async lifecycle ----------------------------------------
        try:
            with contextlib.suppress(KeyboardInterrupt):
                asyncio.run(bridge._run_async(settings=settings))
        except SystemExit:
            raise
        except Exception as exc:
            logger.error("Runtime error: %s", exc)
            sys.exit(EXIT_RUNTIME_ERROR)

    return cli


def main() -> None:
    """Console-script entrypoint."""
    from idiamant2mqtt import Bridge, __version__

    Bridge(version=__version__).cli()
