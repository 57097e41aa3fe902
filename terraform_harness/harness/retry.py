"""Retry policy and transient-error classification."""

import re
from dataclasses import dataclass, replace
from typing import Iterable, Mapping, Optional, Tuple


@dataclass(frozen=True)
class ErrorSignature:
    """A pattern recognising one family of transient terraform/provider errors."""
    pattern: str
    description: str = ""

    def matches(self, text: str) -> bool:
        return re.search(self.pattern, text) is not None


# Errors terratest treats as retryable by default, plus provider throttling and
# eventual-consistency races on freshly created identities.
DEFAULT_RETRYABLE_ERRORS: Mapping[str, str] = {
    r".*read: connection reset by peer.*": "Failed to reach remote endpoint.",
    r".*TLS handshake timeout.*": "Transient network error.",
    r".*transport is closing.*": "Failed to reach remote endpoint.",
    r".*unable to verify signature.*": "Failed to retrieve plugin due to transient network error.",
    r".*unable to verify checksum.*": "Failed to retrieve plugin due to transient network error.",
    r".*no provider exists with the given name.*": "Failed to retrieve plugin due to transient network error.",
    r".*registry service is unreachable.*": "Failed to retrieve plugin due to transient network error.",
    r".*Error installing provider.*": "Failed to retrieve plugin due to transient network error.",
    r".*Failed to query available provider packages.*": "Failed to retrieve plugin due to transient network error.",
    r".*timeout while waiting for plugin to start.*": "Failed to retrieve plugin due to transient network error.",
    r".*timed out waiting for server handshake.*": "Failed to retrieve plugin due to transient network error.",
    r"could not query provider registry for": "Failed to retrieve plugin due to transient network error.",
    r".*Provider produced inconsistent result after apply.*": "Provider eventual consistency error.",
    r".*(ThrottlingException|Throttling|RequestLimitExceeded|TooManyRequestsException).*": "Provider API throttling.",
    r".*Rate exceeded.*": "Provider API throttling.",
    r".*cannot be assumed by.*": "IAM role not yet propagated.",
    r".*InvalidParameterValueException: The role defined for the function.*": "IAM role not yet propagated.",
}


@dataclass(frozen=True)
class RetryPolicy:
    """Which failures are retried, how often, and how long to wait in between.

    ``backoff`` lists the wait before each retry; once exhausted its last
    entry repeats.
    """
    signatures: Tuple[ErrorSignature, ...] = ()
    max_attempts: int = 3
    backoff: Tuple[float, ...] = (5.0,)

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if any(delay < 0 for delay in self.backoff):
            raise ValueError("backoff delays must be non-negative")

    @classmethod
    def from_errors(
        cls,
        errors: Mapping[str, str],
        max_attempts: int = 3,
        backoff: Iterable[float] = (5.0,),
    ) -> 'RetryPolicy':
        """Build a policy from a {pattern: description} mapping."""
        return cls(
            signatures=tuple(ErrorSignature(p, d) for p, d in errors.items()),
            max_attempts=max_attempts,
            backoff=tuple(backoff),
        )

    @staticmethod
    def exponential(base: float, factor: float = 2.0, cap: Optional[float] = None, steps: int = 10) -> Tuple[float, ...]:
        """Exponential backoff schedule, suitable for the ``backoff`` field."""
        delays = []
        for i in range(steps):
            delay = base * (factor ** i)
            if cap is not None:
                delay = min(delay, cap)
            delays.append(delay)
        return tuple(delays)

    def classify(self, text: str) -> Optional[ErrorSignature]:
        """Return the first signature matching the failure text, or None if terminal."""
        for signature in self.signatures:
            if signature.matches(text):
                return signature
        return None

    def delay_before(self, attempt: int) -> float:
        """Seconds to wait before ``attempt`` (2 for the first retry)."""
        if not self.backoff:
            return 0.0
        index = min(attempt - 2, len(self.backoff) - 1)
        return self.backoff[max(index, 0)]

    def with_signatures(self, extra: Mapping[str, str]) -> 'RetryPolicy':
        """Return a policy that also retries the given {pattern: description} errors."""
        added = tuple(ErrorSignature(p, d) for p, d in extra.items())
        return replace(self, signatures=self.signatures + added)

    def replace(self, **changes) -> 'RetryPolicy':
        """Return a copy with the given fields changed."""
        if 'backoff' in changes:
            changes['backoff'] = tuple(changes['backoff'])
        return replace(self, **changes)


DEFAULT_RETRY_POLICY = RetryPolicy.from_errors(DEFAULT_RETRYABLE_ERRORS, max_attempts=3, backoff=(5.0,))

NO_RETRY_POLICY = RetryPolicy(signatures=(), max_attempts=1, backoff=())
