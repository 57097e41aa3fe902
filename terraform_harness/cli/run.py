"""CLI command for running module test cases."""

import json
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from terraform_harness.cases import CaseLoader, run_cases
from terraform_harness.errors import ConfigurationError
from terraform_harness.harness import HarnessConfig, Outcome, RunReport
from terraform_harness.logging import ConsoleLogger, FileLogger, LogLevel, MultiLogger

console = Console()

EXIT_PASSED = 0
EXIT_ASSERTION_FAILED = 1
EXIT_PROVISIONING_FAILED = 2

OUTCOME_STYLES = {
    Outcome.PASSED: "green",
    Outcome.ASSERTION_FAILED: "red",
    Outcome.PROVISIONING_FAILED: "red",
    Outcome.TIMED_OUT: "magenta",
    Outcome.TEARDOWN_FAILED: "yellow",
    Outcome.ERROR: "red",
}


def run_command(
    cases: str = typer.Argument(
        ...,
        help="Path to a .json or .jsonl file of test cases"
    ),
    case_id: Optional[str] = typer.Option(
        None,
        "--case-id", "-i",
        help="Run a specific case by ID"
    ),
    tags: Optional[List[str]] = typer.Option(
        None,
        "--tag",
        help="Filter by tags (can be specified multiple times)"
    ),
    limit: Optional[int] = typer.Option(
        None,
        "--limit", "-l",
        help="Maximum number of cases to run"
    ),
    no_destroy: bool = typer.Option(
        False,
        "--no-destroy",
        help="Don't destroy infrastructure after assertions (for manual inspection)"
    ),
    deadline: Optional[float] = typer.Option(
        None,
        "--deadline",
        help="Seconds allowed for init+apply including retries"
    ),
    destroy_deadline: Optional[float] = typer.Option(
        None,
        "--destroy-deadline",
        help="Seconds allowed for destroy including retries"
    ),
    command_timeout: Optional[float] = typer.Option(
        None,
        "--command-timeout",
        help="Seconds allowed for any single terraform command"
    ),
    no_retry: bool = typer.Option(
        False,
        "--no-retry",
        help="Fail on the first error instead of retrying known transient errors"
    ),
    parallel: Optional[int] = typer.Option(
        None,
        "--parallel", "-p",
        help="Number of cases to run concurrently"
    ),
    terraform_binary: Optional[str] = typer.Option(
        None,
        "--terraform",
        help="Terraform executable (defaults to TERRAFORM_BINARY or 'terraform')"
    ),
    report: Optional[str] = typer.Option(
        None,
        "--report", "-r",
        help="Write a JSON report of all runs to this file"
    ),
    log_file: Optional[str] = typer.Option(
        None,
        "--log-file",
        help="Append JSON-lines events to this file"
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose", "-v",
        help="Show debug events"
    ),
):
    """
    Provision each case's module, assert on its outputs and tear it down.

    Exit code is 0 when every case passed, 1 when only assertions failed and
    2 when provisioning failed, timed out or could not be cleaned up.

    Examples:

        # Run every case in a file
        terraform-harness run cases/root_module.json

        # Keep resources for inspection
        terraform-harness run cases/root_module.json --no-destroy

        # Run four cases at a time with a 30 minute apply budget
        terraform-harness run cases.jsonl --parallel 4 --deadline 1800
    """
    try:
        config = HarnessConfig.from_env()
    except ConfigurationError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=EXIT_PROVISIONING_FAILED)

    if no_destroy:
        config.skip_teardown = True
    if deadline is not None:
        config.apply_timeout = deadline
    if destroy_deadline is not None:
        config.destroy_timeout = destroy_deadline
    if command_timeout is not None:
        config.command_timeout = command_timeout
    if no_retry:
        config.retry = False
    if parallel is not None:
        config.parallel = max(parallel, 1)
    if terraform_binary:
        config.terraform_binary = terraform_binary

    try:
        loader = CaseLoader(cases)
        if case_id:
            case = loader.get_by_id(case_id)
            if case is None:
                typer.echo(f"Error: Case {case_id} not found in {cases}", err=True)
                raise typer.Exit(code=EXIT_PROVISIONING_FAILED)
            selected = [case]
        else:
            selected = loader.filter(tags=tags, limit=limit)
    except FileNotFoundError:
        typer.echo(f"Error: Case file not found: {cases}", err=True)
        raise typer.Exit(code=EXIT_PROVISIONING_FAILED)
    except (ValueError, json.JSONDecodeError) as e:
        typer.echo(f"Error loading cases: {e}", err=True)
        raise typer.Exit(code=EXIT_PROVISIONING_FAILED)

    if not selected:
        typer.echo("No cases found matching the filters", err=True)
        raise typer.Exit(code=EXIT_PROVISIONING_FAILED)

    min_level = LogLevel.DEBUG if verbose else LogLevel.INFO
    logger = ConsoleLogger(min_level=min_level)
    if log_file:
        logger = MultiLogger(logger, FileLogger(log_file, min_level=LogLevel.DEBUG))
    logger.info("cases.loaded", f"Loaded {len(selected)} case(s) from {cases}", {"count": len(selected)})

    try:
        reports = run_cases(selected, config, logger=logger)
    except ConfigurationError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=EXIT_PROVISIONING_FAILED)

    print_summary(reports)

    if report:
        report_path = Path(report)
        report_path.parent.mkdir(parents=True, exist_ok=True)
        report_path.write_text(json.dumps([r.to_dict() for r in reports], indent=2))
        console.print(f"Report written to [cyan]{escape(str(report_path))}[/cyan]")

    raise typer.Exit(code=exit_code(reports))


def exit_code(reports: List[RunReport]) -> int:
    """Map run outcomes to the process exit code."""
    if all(r.passed for r in reports):
        return EXIT_PASSED
    if all(r.outcome in (Outcome.PASSED, Outcome.ASSERTION_FAILED) for r in reports):
        return EXIT_ASSERTION_FAILED
    return EXIT_PROVISIONING_FAILED


def print_summary(reports: List[RunReport]) -> None:
    """Print a results table and the details of every failure."""
    table = Table(title="Module Test Results")
    table.add_column("Case", style="cyan")
    table.add_column("Outcome")
    table.add_column("Attempts", justify="right")
    table.add_column("Resources")

    for r in reports:
        outcome = r.outcome or Outcome.ERROR
        style = OUTCOME_STYLES.get(outcome, "white")
        attempts = str(r.provisioning.attempts) if r.provisioning else "-"
        resources = r.resource_state.value
        if r.requires_manual_inspection:
            resources = f"[bold magenta]{resources} (check manually)[/bold magenta]"
        table.add_row(escape(r.name), f"[{style}]{outcome.value}[/{style}]", attempts, resources)

    console.print(table)

    for r in reports:
        if r.passed:
            continue
        console.print(f"\n[bold]{escape(r.name)}[/bold]")
        if r.assertions is not None:
            for failure in r.assertions.failures:
                console.print(f"  [red]✗[/red] {escape(failure.describe())}")
        if r.error:
            console.print(f"  [red]{escape(r.error)}[/red]")
        if r.requires_manual_inspection:
            console.print(
                "  [magenta]Resource state is unknown; inspect the provider for leaked resources.[/magenta]"
            )

    passed = sum(1 for r in reports if r.passed)
    console.print(f"\nSummary: {passed}/{len(reports)} passed")
