"""List command for showing test cases."""

from typing import List, Optional
import typer
from rich.console import Console

from terraform_harness.cases import CaseLoader

console = Console()


def list_command(
    cases: str = typer.Argument(..., help="Path to a .json or .jsonl file of test cases"),
    tags: Optional[List[str]] = typer.Option(None, "--tag", help="Filter by tags"),
    limit: Optional[int] = typer.Option(None, help="Limit results")
):
    """List cases in a case file."""
    try:
        selected = CaseLoader(cases).filter(tags=tags, limit=limit)
    except FileNotFoundError:
        typer.echo(f"Error: Case file not found: {cases}", err=True)
        raise typer.Exit(code=1)
    except ValueError as e:
        typer.echo(f"Error loading cases: {e}", err=True)
        raise typer.Exit(code=1)

    console.print(f"[bold]Found {len(selected)} cases:[/bold]\n")

    for i, case in enumerate(selected, 1):
        console.print(f"[cyan]{i}. {case.case_id}[/cyan]")
        console.print(f"   Module: {case.terraform_dir}")
        if case.region:
            console.print(f"   Region: [yellow]{case.region}[/yellow]")
        for output_name in case.expected_outputs:
            console.print(f"   Asserts: {output_name}")
        console.print()
