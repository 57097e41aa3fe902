"""Terraform Module Harness - provision a module, assert on its outputs, tear it down."""

__version__ = "0.1.0"

from . import errors
from . import runtime
from . import harness
from . import cases
from . import validation_tests

__all__ = [
    "errors",
    "runtime",
    "harness",
    "cases",
    "validation_tests",
]
