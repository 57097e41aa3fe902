"""Command-line interface for terraform-harness."""

import typer

from terraform_harness.cli.run import run_command
from terraform_harness.cli.list import list_command

app = typer.Typer(help="Terraform Module Harness - apply a module, assert on its outputs, destroy it")

app.command(name="run")(run_command)
app.command(name="list")(list_command)


def main():
    """Main CLI entry point."""
    app()


__all__ = ["app", "main"]
