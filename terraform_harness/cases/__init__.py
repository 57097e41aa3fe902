"""Module test cases: schema, loading and running."""

from .schema import (
    HarnessCase,
    RetryOverrides,
    validate_case,
)
from .loader import CaseLoader
from .runner import (
    build_module_test,
    case_checks,
    case_policy,
    run_cases,
)

__all__ = [
    'HarnessCase',
    'RetryOverrides',
    'validate_case',
    'CaseLoader',
    'build_module_test',
    'case_checks',
    'case_policy',
    'run_cases',
]
