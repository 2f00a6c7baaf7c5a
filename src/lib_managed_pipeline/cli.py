"""CLI adapter for ``lib_managed_pipeline`` built on ``lib_cli_exit_tools``.

Purpose
-------
Expose pipeline generation through a command line interface so repositories can
regenerate their workflow documents without writing Python code.

Contents
--------
* :data:`CLICK_CONTEXT_SETTINGS` – shared Click settings ensuring ``-h`` works.
* :func:`cli` – root command that wires global traceback handling into
  ``lib_cli_exit_tools``.
* :func:`cli_info` – prints distribution metadata for quick diagnostics.
* :func:`cli_generate` – runs :func:`lib_managed_pipeline.core.generate_pipelines`.
* :func:`cli_format_conditions` – applies only the ``if:`` reflow to a file.
* :func:`main` – entry point used by ``console_scripts`` registration.

System Role
-----------
The CLI lives in the outermost layer of the Clean Architecture stack. It
invokes the composition root and never reaches into adapter implementation
details directly. ``lib_cli_exit_tools`` centralises the exit code strategy so
all commands behave consistently across shells and CI.
"""

from __future__ import annotations

import sys
from importlib import metadata
from pathlib import Path
from typing import Final, Optional, Sequence

import lib_cli_exit_tools
import rich_click as click

from .application.formatting import DEFAULT_MIN_LENGTH, format_if_conditions
from .core import DEFAULT_PIPELINE_PATH, generate_pipelines, load_config

CLICK_CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"]}
_TRACEBACK_SUMMARY_LIMIT: Final[int] = 500
_TRACEBACK_VERBOSE_LIMIT: Final[int] = 10_000
_DISTRIBUTION: Final[str] = "lib_managed_pipeline"


def _resolve_version() -> str:
    """Return the installed package version, or ``"0.0.0"`` for source checkouts."""

    try:
        return metadata.version(_DISTRIBUTION)
    except metadata.PackageNotFoundError:
        return "0.0.0"


@click.group(
    help="Managed CI pipeline generator",
    context_settings=CLICK_CONTEXT_SETTINGS,
    invoke_without_command=False,
)
@click.version_option(
    version=_resolve_version(),
    prog_name=_DISTRIBUTION,
    message="lib_managed_pipeline version %(version)s",
)
@click.option(
    "--traceback/--no-traceback",
    is_flag=True,
    default=False,
    help="Show full Python traceback on errors",
)
@click.pass_context
def cli(ctx: click.Context, traceback: bool) -> None:
    """Root command configuring traceback handling for all subcommands.

    Side Effects
        Mutates ``lib_cli_exit_tools.config.traceback`` and
        ``lib_cli_exit_tools.config.traceback_force_color``.
    """

    ctx.ensure_object(dict)
    ctx.obj["traceback"] = traceback
    lib_cli_exit_tools.config.traceback = traceback
    lib_cli_exit_tools.config.traceback_force_color = traceback


@cli.command("info", context_settings=CLICK_CONTEXT_SETTINGS)
def cli_info() -> None:
    """Print basic distribution metadata so users can confirm installation."""

    try:
        meta = metadata.metadata(_DISTRIBUTION)
    except metadata.PackageNotFoundError:
        click.echo(f"{_DISTRIBUTION} (metadata unavailable)")
        return
    click.echo(f"Info for {meta.get('Name', _DISTRIBUTION)}:")
    click.echo(f"  Version         : {meta.get('Version', _resolve_version())}")
    click.echo(f"  Requires-Python : {meta.get('Requires-Python', '>=3.10')}")
    summary = meta.get("Summary")
    if summary:
        click.echo(f"  Summary         : {summary}")


@cli.command("generate", context_settings=CLICK_CONTEXT_SETTINGS)
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path, exists=True, file_okay=True, dir_okay=False, readable=True),
    default=Path(".pipecraftrc"),
    show_default=True,
    help="Pipeline configuration file (TOML, JSON, or YAML)",
)
@click.option(
    "--output",
    "outputs",
    multiple=True,
    type=click.Path(path_type=Path, dir_okay=False),
    help=f"Pipeline document to generate (repeatable, default {DEFAULT_PIPELINE_PATH})",
)
@click.option(
    "--force/--no-force",
    default=False,
    help="Rebuild documents from scratch, folding hand-written jobs into the custom region",
    show_default=True,
)
def cli_generate(config_path: Path, outputs: Sequence[Path], force: bool) -> None:
    """Generate or regenerate pipeline documents.

    Prints ``<status> <path>`` per document and any warnings. Exits with code 1
    when at least one document failed; the others are still written.
    """

    config = load_config(config_path)
    targets = list(outputs) or [Path(DEFAULT_PIPELINE_PATH)]
    results = generate_pipelines(config, targets, force=force)
    for result in results:
        if result.status is None:
            click.echo(f"failed {result.path}: {result.error}", err=True)
            continue
        click.echo(f"{result.status.value} {result.path}")
        for warning in result.warnings:
            click.echo(f"  warning: {warning}", err=True)
    if not all(result.ok for result in results):
        raise SystemExit(1)


@cli.command("format-conditions", context_settings=CLICK_CONTEXT_SETTINGS)
@click.argument(
    "path",
    type=click.Path(path_type=Path, exists=True, file_okay=True, dir_okay=False, readable=True),
)
@click.option(
    "--min-length",
    type=int,
    default=DEFAULT_MIN_LENGTH,
    show_default=True,
    help="Only fold conditions at least this long",
)
def cli_format_conditions(path: Path, min_length: int) -> None:
    """Print *path* with long ``if:`` conditions folded onto several lines."""

    click.echo(format_if_conditions(path.read_text(encoding="utf-8"), min_length=min_length), nl=False)


def main(argv: Optional[Sequence[str]] = None, *, restore_traceback: bool = True) -> int:
    """Execute the CLI with shared exit handling and return the exit code."""

    previous_traceback = getattr(lib_cli_exit_tools.config, "traceback", False)
    previous_force_color = getattr(lib_cli_exit_tools.config, "traceback_force_color", False)
    try:
        try:
            return lib_cli_exit_tools.run_cli(
                cli,
                argv=list(argv) if argv is not None else None,
                prog_name=_DISTRIBUTION,
            )
        except BaseException as exc:  # noqa: BLE001 - funnel through shared printers
            lib_cli_exit_tools.print_exception_message(
                trace_back=lib_cli_exit_tools.config.traceback,
                length_limit=(
                    _TRACEBACK_VERBOSE_LIMIT if lib_cli_exit_tools.config.traceback else _TRACEBACK_SUMMARY_LIMIT
                ),
            )
            return lib_cli_exit_tools.get_system_exit_code(exc)
    finally:
        if restore_traceback:
            lib_cli_exit_tools.config.traceback = previous_traceback
            lib_cli_exit_tools.config.traceback_force_color = previous_force_color


if __name__ == "__main__":  # pragma: no cover - exercised via console entry point
    raise SystemExit(main(sys.argv[1:]))
