"""Test case schema definitions and validation."""

import re
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional

VALID_CHECK_TYPES = {'ecr_repository'}


@dataclass
class RetryOverrides:
    """Per-case changes to the default retry policy."""
    max_attempts: Optional[int] = None
    backoff_seconds: Optional[List[float]] = None
    extra_signatures: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RetryOverrides':
        return cls(
            max_attempts=data.get('max_attempts'),
            backoff_seconds=data.get('backoff_seconds'),
            extra_signatures=data.get('extra_signatures', {}),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'max_attempts': self.max_attempts,
            'backoff_seconds': self.backoff_seconds,
            'extra_signatures': self.extra_signatures,
        }


@dataclass
class HarnessCase:
    """Schema for a single module test case."""
    case_id: str
    terraform_dir: str
    vars: Dict[str, Any] = field(default_factory=dict)
    env_vars: Dict[str, str] = field(default_factory=dict)
    region: Optional[str] = None
    expected_outputs: Dict[str, Any] = field(default_factory=dict)
    checks: List[Dict[str, Any]] = field(default_factory=list)
    retry: RetryOverrides = field(default_factory=RetryOverrides)
    deadline_seconds: Optional[float] = None
    skip_teardown: bool = False
    tags: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'HarnessCase':
        """Create case from dictionary."""
        return cls(
            case_id=data['case_id'],
            terraform_dir=data['terraform_dir'],
            vars=data.get('vars', {}),
            env_vars=data.get('env_vars', {}),
            region=data.get('region'),
            expected_outputs=data.get('expected_outputs', {}),
            checks=data.get('checks', []),
            retry=RetryOverrides.from_dict(data.get('retry', {})),
            deadline_seconds=data.get('deadline_seconds'),
            skip_teardown=data.get('skip_teardown', False),
            tags=data.get('tags', []),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert case to dictionary."""
        return {
            'case_id': self.case_id,
            'terraform_dir': self.terraform_dir,
            'vars': self.vars,
            'env_vars': self.env_vars,
            'region': self.region,
            'expected_outputs': self.expected_outputs,
            'checks': self.checks,
            'retry': self.retry.to_dict(),
            'deadline_seconds': self.deadline_seconds,
            'skip_teardown': self.skip_teardown,
            'tags': self.tags,
        }

    def environment(self) -> Dict[str, str]:
        """Environment variables for terraform, with AWS_DEFAULT_REGION from ``region``."""
        env = dict(self.env_vars)
        if self.region and 'AWS_DEFAULT_REGION' not in env:
            env['AWS_DEFAULT_REGION'] = self.region
        return env


def validate_case(case: Dict[str, Any]) -> List[str]:
    """
    Validate a test case against the schema.

    Args:
        case: Dictionary representation of a case

    Returns:
        List of validation errors (empty if valid)
    """
    errors = []

    for required in ('case_id', 'terraform_dir'):
        if required not in case:
            errors.append(f"Missing required field: {required}")
        elif not isinstance(case[required], str) or not case[required]:
            errors.append(f"{required} must be a non-empty string")

    if 'vars' in case and not isinstance(case['vars'], dict):
        errors.append("vars must be a dictionary")

    if 'env_vars' in case:
        if not isinstance(case['env_vars'], dict):
            errors.append("env_vars must be a dictionary")
        else:
            for key, value in case['env_vars'].items():
                if not isinstance(value, str):
                    errors.append(f"env_vars[{key}] must be a string")

    if 'expected_outputs' in case:
        expected = case['expected_outputs']
        if not isinstance(expected, dict):
            errors.append("expected_outputs must be a dictionary")
        else:
            for name, pattern in expected.items():
                patterns = pattern.values() if isinstance(pattern, dict) else [pattern]
                for p in patterns:
                    if not isinstance(p, str):
                        errors.append(f"expected_outputs[{name}] patterns must be strings")
                        continue
                    try:
                        re.compile(p)
                    except re.error as e:
                        errors.append(f"expected_outputs[{name}] is not a valid regular expression: {e}")

    if 'checks' in case:
        if not isinstance(case['checks'], list):
            errors.append("checks must be a list")
        else:
            for check in case['checks']:
                if not isinstance(check, dict) or check.get('type') not in VALID_CHECK_TYPES:
                    errors.append(f"Unknown check: {check!r}")

    if 'retry' in case:
        retry = case['retry']
        if not isinstance(retry, dict):
            errors.append("retry must be a dictionary")
        else:
            max_attempts = retry.get('max_attempts')
            if max_attempts is not None and (not isinstance(max_attempts, int) or max_attempts < 1):
                errors.append("retry.max_attempts must be a positive integer")
            backoff = retry.get('backoff_seconds')
            if backoff is not None and (
                not isinstance(backoff, list)
                or not all(isinstance(b, (int, float)) and b >= 0 for b in backoff)
            ):
                errors.append("retry.backoff_seconds must be a list of non-negative numbers")

    deadline = case.get('deadline_seconds')
    if deadline is not None and (not isinstance(deadline, (int, float)) or deadline <= 0):
        errors.append("deadline_seconds must be a positive number")

    if 'tags' in case and not isinstance(case['tags'], list):
        errors.append("tags must be a list")

    return errors
