"""Provisioning lifecycle and assertion protocol."""

from .invocation import ModuleInvocation, build_invocation, format_var_value
from .retry import (
    DEFAULT_RETRY_POLICY,
    DEFAULT_RETRYABLE_ERRORS,
    NO_RETRY_POLICY,
    ErrorSignature,
    RetryPolicy,
)
from .results import (
    Outcome,
    OutputValue,
    ProvisioningResult,
    ResourceState,
    RunReport,
    RunState,
)
from .executor import ProvisioningExecutor
from .outputs import OutputExtractor
from .assertions import (
    AssertionReport,
    CheckResult,
    ExpectedPattern,
    PatternResult,
    evaluate,
    expected_patterns,
    match_pattern,
)
from .config import HarnessConfig
from .controller import ModuleTest, run_all

__all__ = [
    'ModuleInvocation',
    'build_invocation',
    'format_var_value',
    'DEFAULT_RETRY_POLICY',
    'DEFAULT_RETRYABLE_ERRORS',
    'NO_RETRY_POLICY',
    'ErrorSignature',
    'RetryPolicy',
    'Outcome',
    'OutputValue',
    'ProvisioningResult',
    'ResourceState',
    'RunReport',
    'RunState',
    'ProvisioningExecutor',
    'OutputExtractor',
    'AssertionReport',
    'CheckResult',
    'ExpectedPattern',
    'PatternResult',
    'evaluate',
    'expected_patterns',
    'match_pattern',
    'HarnessConfig',
    'ModuleTest',
    'run_all',
]
