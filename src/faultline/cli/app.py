"""
Root Typer application for the faultline harness.

Exit codes::

    0  success
    1  DomainError (invalid input, unknown scenario)
    2  WrappedSystemError / ResourceReleaseError / other recoverable failure
    3  Fatal (resource or stack exhaustion)
    4  Cancelled
"""

from __future__ import annotations

import json

import typer
from rich.console import Console
from rich.table import Table

from faultline.core.errors import (
    ConfigError,
    DomainError,
    EvaluationCancelled,
    FaultlineError,
    Severity,
    categorize_error,
    get_suppressed,
    recoverable_vs_fatal,
)
from faultline.core.logging import configure_logging
from faultline.core.result import Result
from faultline.core.settings import get_settings

console = Console()
err_console = Console(stderr=True)

EXIT_OK = 0
EXIT_DOMAIN = 1
EXIT_SYSTEM = 2
EXIT_FATAL = 3
EXIT_CANCELLED = 4

app = typer.Typer(
    name="faultline",
    help="faultline — fault-aware bounded async evaluation and error-taxonomy demos.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


def exit_code_for(error: BaseException | None) -> int:
    """Map a top-level failure to the process exit code."""
    if error is None:
        return EXIT_OK
    if isinstance(error, EvaluationCancelled):
        return EXIT_CANCELLED
    if recoverable_vs_fatal(error) is Severity.FATAL:
        return EXIT_FATAL
    if isinstance(error, DomainError):
        return EXIT_DOMAIN
    return EXIT_SYSTEM


def _version_callback(value: bool) -> None:
    if value:
        from importlib.metadata import PackageNotFoundError, version as pkg_version

        try:
            v = pkg_version("faultline")
        except PackageNotFoundError:
            v = "0.1.0"
        typer.echo(f"faultline {v}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """faultline CLI — evaluate fib(n) on a bounded pool, run error-handling demos."""
    settings = get_settings()
    configure_logging(level=settings.log_level, json_format=settings.log_format == "json")


def _print_failure(error: BaseException) -> None:
    category = categorize_error(error).value
    message = error.message if isinstance(error, FaultlineError) else str(error)
    err_console.print(f"[red]{type(error).__name__}[/red] [dim]({category})[/dim]: {message}")
    if error.__cause__ is not None:
        err_console.print(f"  [dim]caused by[/dim] {error.__cause__!r}")
    for suppressed in get_suppressed(error):
        err_console.print(f"  [yellow]suppressed[/yellow] {suppressed!r}")


@app.command("evaluate")
def evaluate_cmd(
    n: int = typer.Argument(..., help="Fibonacci index"),
    capacity: int | None = typer.Option(None, "--capacity", "-c", help="Worker pool slots"),  # noqa: UP007
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON"),
) -> None:
    """Evaluate fib(N) with every branch scheduled on a bounded worker pool."""
    from faultline.execution.evaluator import evaluate

    try:
        result = evaluate(n, capacity)
    except ConfigError as exc:
        _print_failure(exc)
        raise typer.Exit(code=exit_code_for(exc))

    if as_json:
        typer.echo(json.dumps(result.to_dict(), default=str))
    elif result.is_ok:
        table = Table(title=f"fib({n})")
        table.add_column("value", justify="right")
        table.add_column("tasks", justify="right")
        table.add_column("peak active", justify="right")
        table.add_column("seconds", justify="right")
        table.add_row(
            str(result.value),
            str(result.submitted),
            str(result.peak_active),
            f"{result.duration_seconds:.3f}",
        )
        console.print(table)
    else:
        _print_failure(result.error)  # type: ignore[arg-type]

    code = exit_code_for(result.error)
    if code:
        raise typer.Exit(code=code)


@app.command("demo")
def demo_cmd(
    name: str | None = typer.Argument(None, help="Scenario name"),  # noqa: UP007
    list_only: bool = typer.Option(False, "--list", "-l", help="List scenarios and exit"),
    recover: bool = typer.Option(True, "--recover/--no-recover", help="Enable scoped recovery"),
) -> None:
    """Run one error-taxonomy demo scenario."""
    from faultline.demos.scenarios import list_scenarios, run_scenario

    if list_only or name is None:
        table = Table(title="Scenarios")
        table.add_column("name", style="cyan")
        table.add_column("description")
        for scenario in list_scenarios():
            table.add_row(scenario.name, scenario.description)
        console.print(table)
        return

    outcome: Result = run_scenario(name, recover=recover)
    if not outcome.is_ok():
        error = outcome.unwrap_err()
        _print_failure(error)
        raise typer.Exit(code=exit_code_for(error))
    console.print(f"[green]{name}[/green]: ok ({outcome.value!r})")
