"""command line interface for shcov"""

import platform
from typing import List, Optional
from pathlib import Path

import typer

from . import __version__
from .config import (
    DEFAULT_BASH_PATH,
    ENV_BASH_PATH,
    ENV_COMMAND_NAME,
    ENV_OUTPUT,
    ENV_ROOT,
    Options,
    configure_logging,
)
from .report import (
    DEFAULT_RESULTSET,
    ReportHandoff,
    ResultSet,
    ResultSetError,
    combine_results,
    print_summary,
    print_summary_json,
)
from .runner import Runner, bash_version
from .xtrace import ExecutableNotFound, ShcovError

# exit status of a shell asked to run a missing command
EXIT_NOT_FOUND = 127


app = typer.Typer(
    help="line coverage for bash scripts",
    no_args_is_help=True,
    context_settings=dict(help_option_names=["-h", "--help"]),
    pretty_exceptions_short=True,
    pretty_exceptions_show_locals=False,
    add_completion=False,
)

# global state for verbose option
verbose_enabled = False


def fullname(bash_path: str = DEFAULT_BASH_PATH) -> str:
    """program name with versions of everything involved"""
    try:
        major, minor = bash_version(bash_path)
        bash = f"{major}.{minor}"
    except (OSError, ShcovError, ValueError):
        bash = "unknown"
    return f"shcov {__version__} with Bash {bash} and Python {platform.python_version()}"


def _version_callback(value: bool):
    if value:
        typer.echo(fullname())
        raise typer.Exit()


@app.callback()
def main_callback(
    verbose: bool = typer.Option(
        False, "-v", "--verbose", help="enable verbose output for all operations"
    ),
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="show version and exit",
    ),
):
    """global options for shcov"""
    global verbose_enabled
    verbose_enabled = verbose
    configure_logging(verbose)


@app.command(
    context_settings={"allow_extra_args": True, "ignore_unknown_options": True}
)
def run(
    script: Path = typer.Argument(..., help="bash script to trace"),
    args: Optional[List[str]] = typer.Argument(None, help="arguments for the script"),
    skip_uncovered: bool = typer.Option(
        False, "--skip-uncovered", "-s", help="do not report uncovered files"
    ),
    mute: bool = typer.Option(False, "--mute", "-m", help="do not print script output"),
    bash_path: str = typer.Option(
        DEFAULT_BASH_PATH,
        "--bash-path",
        envvar=ENV_BASH_PATH,
        help="path to bash executable",
    ),
    root: Optional[Path] = typer.Option(
        None,
        "--root",
        envvar=ENV_ROOT,
        exists=True,
        file_okay=False,
        help="project root directory (default: current directory)",
    ),
    command_name: Optional[str] = typer.Option(
        None,
        "--command-name",
        envvar=ENV_COMMAND_NAME,
        help="name this run is stored under in the resultset",
    ),
    output: Path = typer.Option(
        DEFAULT_RESULTSET,
        "--output",
        "-o",
        envvar=ENV_OUTPUT,
        help="resultset file to merge coverage into",
    ),
    summary: bool = typer.Option(
        True, "--summary/--no-summary", help="print a coverage summary"
    ),
):
    """trace a bash script and record which lines ran"""
    options = Options(
        skip_uncovered=skip_uncovered,
        mute=mute,
        bash_path=bash_path,
        command=[str(script), *(args or [])],
        command_name=command_name,
        output=output,
    )
    if root is not None:
        options.root_directory = str(root)

    try:
        outcome = Runner(options.full_command(), mute=options.mute).run()
    except ExecutableNotFound as e:
        typer.echo(f"error: {e}", err=True)
        raise typer.Exit(EXIT_NOT_FOUND)

    if outcome.partial:
        typer.echo(
            f"warning: tracing aborted, coverage is partial: {outcome.abort_reason}",
            err=True,
        )

    handoff = ReportHandoff(
        options.root_directory,
        options.resolved_command_name(),
        skip_uncovered=options.skip_uncovered,
    )
    try:
        result = handoff.write(outcome, options.output)
    except ResultSetError as e:
        typer.echo(f"error: {e}", err=True)
        raise typer.Exit(outcome.exit_status or 1)

    if summary:
        print_summary(result, handoff.command_name, root=handoff.root)
    if verbose_enabled:
        typer.echo(f"wrote coverage for {len(result)} files to {options.output}")

    raise typer.Exit(outcome.exit_status)


@app.command()
def stats(
    resultset: Path = typer.Argument(
        DEFAULT_RESULTSET, help="resultset file to summarize"
    ),
    json_output: bool = typer.Option(
        False, "--json", help="output statistics as JSON"
    ),
):
    """display coverage statistics for a resultset"""
    if not resultset.exists():
        typer.echo(f"error: no such resultset: {resultset}", err=True)
        raise typer.Exit(1)

    try:
        result = ResultSet.load(resultset).combined()
    except ResultSetError as e:
        typer.echo(f"error: {e}", err=True)
        raise typer.Exit(1)

    if json_output:
        print_summary_json(result)
    else:
        print_summary(result, str(resultset))


@app.command()
def union(
    files: List[Path] = typer.Argument(..., help="resultset files to combine"),
    output: Path = typer.Option(..., "--output", "-o", help="output file"),
    command_name: str = typer.Option(
        "shcov union", "--command-name", help="name to store the union under"
    ),
):
    """combine resultsets into one (hit counts are added)"""
    results = []
    for path in files:
        try:
            results.append(ResultSet.load(path).combined())
        except ResultSetError as e:
            typer.echo(f"error loading {path}: {e}", err=True)

    if not results:
        typer.echo("no valid resultsets loaded", err=True)
        raise typer.Exit(1)

    merged = ResultSet()
    merged.store(command_name, combine_results(results))
    merged.save(output)

    if verbose_enabled:
        typer.echo(f"union of {len(files)} files:")
        print_summary(merged.result(command_name), command_name)

    typer.echo(
        f"wrote coverage for {len(merged.result(command_name))} files to {output}"
    )
