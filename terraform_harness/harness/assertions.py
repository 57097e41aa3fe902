"""Matching module outputs against expected patterns."""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from terraform_harness.errors import AssertionFailure, ConfigurationError, OutputTypeError
from terraform_harness.harness.results import OutputValue


@dataclass(frozen=True)
class ExpectedPattern:
    """A regular expression an output (or one key of a map output) must match."""
    output_name: str
    pattern: str
    key: Optional[str] = None

    def __post_init__(self):
        if not self.output_name:
            raise ConfigurationError("ExpectedPattern needs an output name")
        try:
            re.compile(self.pattern)
        except re.error as e:
            raise ConfigurationError(f"Invalid pattern for output '{self.label}': {e}")

    @property
    def label(self) -> str:
        if self.key is None:
            return self.output_name
        return f"{self.output_name}[{self.key!r}]"


@dataclass(frozen=True)
class PatternResult:
    """Outcome of one (output, pattern) pair."""
    expected: ExpectedPattern
    passed: bool
    actual: Optional[str] = field(default=None, repr=False)
    reason: str = ""
    sensitive: bool = False

    REDACTED = "<sensitive>"

    @property
    def shown_actual(self) -> Optional[str]:
        """The actual value as it may appear in reports and logs."""
        if self.sensitive and self.actual is not None:
            return self.REDACTED
        return self.actual

    @property
    def output_name(self) -> str:
        return self.expected.output_name

    @property
    def pattern(self) -> str:
        return self.expected.pattern

    def describe(self) -> str:
        if self.passed:
            return f"{self.expected.label} matches {self.pattern!r}"
        if self.actual is None:
            return f"{self.expected.label}: {self.reason} (expected pattern {self.pattern!r})"
        return f"{self.expected.label}: {self.shown_actual!r} does not match {self.pattern!r}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "output": self.output_name,
            "key": self.expected.key,
            "pattern": self.pattern,
            "actual": self.shown_actual,
            "sensitive": self.sensitive,
            "passed": self.passed,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class CheckResult:
    """Outcome of a custom post-apply check."""
    name: str
    passed: bool
    error: Optional[str] = None

    def describe(self) -> str:
        if self.passed:
            return f"check {self.name} passed"
        return f"check {self.name}: {self.error}"

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "passed": self.passed, "error": self.error}


@dataclass
class AssertionReport:
    """Aggregated pattern and check results for one run."""
    results: List[PatternResult] = field(default_factory=list)
    checks: List[CheckResult] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return all(r.passed for r in self.results) and all(c.passed for c in self.checks)

    @property
    def failures(self) -> List[Union[PatternResult, CheckResult]]:
        return [r for r in self.results if not r.passed] + [c for c in self.checks if not c.passed]

    def raise_for_failures(self) -> None:
        """Raise AssertionFailure listing every failed pair."""
        failures = self.failures
        if failures:
            raise AssertionFailure(failures)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "passed": self.passed,
            "total": len(self.results) + len(self.checks),
            "failed": len(self.failures),
            "results": [r.to_dict() for r in self.results],
            "checks": [c.to_dict() for c in self.checks],
        }


def match_pattern(value: Union[OutputValue, str], pattern: str) -> bool:
    """
    Whether ``pattern`` matches anywhere in the value's string form.

    Matching is case-sensitive and the value is compared as-is; anchors
    apply only when the pattern contains them.
    """
    text = value.as_string() if isinstance(value, OutputValue) else value
    return re.search(pattern, text) is not None


def expected_patterns(expected_outputs: Mapping[str, Any]) -> List[ExpectedPattern]:
    """
    Build patterns from ``{output: pattern}`` or ``{output: {key: pattern}}``.

    The nested form asserts individual entries of map outputs.
    """
    patterns = []
    for output_name, expected in expected_outputs.items():
        if isinstance(expected, Mapping):
            for key, pattern in expected.items():
                patterns.append(ExpectedPattern(output_name, pattern, key=key))
        elif isinstance(expected, str):
            patterns.append(ExpectedPattern(output_name, expected))
        else:
            raise ConfigurationError(
                f"Expected pattern for '{output_name}' must be a string or a mapping of key to pattern"
            )
    return patterns


def evaluate(outputs: Mapping[str, OutputValue], patterns: Iterable[ExpectedPattern]) -> AssertionReport:
    """
    Evaluate every pattern against the extracted outputs.

    Missing outputs and keys are recorded as failed pairs rather than raised
    so the report covers all pairs.
    """
    report = AssertionReport()
    for expected in patterns:
        report.results.append(_evaluate_one(outputs, expected))
    return report


def _evaluate_one(outputs: Mapping[str, OutputValue], expected: ExpectedPattern) -> PatternResult:
    value = outputs.get(expected.output_name)
    if value is None:
        return PatternResult(expected, passed=False, reason="output not found")

    if expected.key is None:
        actual = value.as_string()
    else:
        try:
            entries = value.as_map()
        except OutputTypeError as e:
            return PatternResult(expected, passed=False, reason=str(e))
        if expected.key not in entries:
            return PatternResult(expected, passed=False, reason=f"key {expected.key!r} not found")
        entry = entries[expected.key]
        actual = entry if isinstance(entry, str) else json.dumps(entry, separators=(",", ":"), sort_keys=True)

    if match_pattern(actual, expected.pattern):
        return PatternResult(expected, passed=True, actual=actual, sensitive=value.sensitive)
    return PatternResult(
        expected, passed=False, actual=actual, reason="pattern did not match", sensitive=value.sensitive
    )
