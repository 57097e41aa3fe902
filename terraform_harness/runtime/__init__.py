"""Runtime execution module for Terraform operations."""

from .terraform import TerraformRuntime, CommandResult

__all__ = [
    'TerraformRuntime',
    'CommandResult',
]
