"""Exception hierarchy for the harness."""

from typing import List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from terraform_harness.harness.assertions import PatternResult


class HarnessError(Exception):
    """Base class for all harness errors."""


class ConfigurationError(HarnessError):
    """Invalid invocation parameters or missing module definition."""


class ProvisioningError(HarnessError):
    """A terraform command did not complete successfully."""

    def __init__(self, message: str, log: str = "", attempts: int = 0):
        super().__init__(message)
        self.log = log
        self.attempts = attempts


class TransientProvisioningError(ProvisioningError):
    """Failure matching a retryable signature.

    Only surfaced to callers once the retry policy is exhausted.
    """

    def __init__(
        self,
        message: str,
        log: str = "",
        attempts: int = 0,
        signature: Optional[str] = None,
        retries_exhausted: bool = False,
    ):
        super().__init__(message, log=log, attempts=attempts)
        self.signature = signature
        self.retries_exhausted = retries_exhausted


class TerminalProvisioningError(ProvisioningError):
    """Failure that matches no retryable signature."""


class ProvisioningTimeout(ProvisioningError):
    """Deadline exceeded while applying or destroying.

    When ``resource_state_unknown`` is set the command may have created (or
    left behind) real resources and a human has to check.
    """

    def __init__(
        self,
        message: str,
        log: str = "",
        attempts: int = 0,
        operation: str = "apply",
        resource_state_unknown: bool = True,
    ):
        super().__init__(message, log=log, attempts=attempts)
        self.operation = operation
        self.resource_state_unknown = resource_state_unknown


class OutputNotFoundError(HarnessError):
    """Requested output is absent or can no longer be retrieved."""

    def __init__(self, name: str, reason: str = "module does not expose this output"):
        super().__init__(f"Output '{name}' not found: {reason}")
        self.name = name
        self.reason = reason


class OutputTypeError(HarnessError):
    """Output exists but does not have the requested shape."""


class AssertionFailure(HarnessError, AssertionError):
    """One or more outputs did not match their expected pattern."""

    def __init__(self, failures: List["PatternResult"]):
        lines = [f"{len(failures)} output assertion(s) failed:"]
        for failure in failures:
            lines.append(f"  - {failure.describe()}")
        super().__init__("\n".join(lines))
        self.failures = failures
