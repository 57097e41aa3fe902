"""Result dataclasses for harness runs."""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, TYPE_CHECKING

from terraform_harness.errors import (
    OutputTypeError,
    ProvisioningError,
    ProvisioningTimeout,
)

if TYPE_CHECKING:
    from terraform_harness.harness.assertions import AssertionReport


class RunState(str, Enum):
    """Lifecycle state of one module invocation."""
    CREATED = "created"
    PROVISIONING = "provisioning"
    PROVISIONED = "provisioned"
    FAILED = "failed"
    VALIDATING = "validating"
    VALIDATED_PASS = "validated_pass"
    VALIDATED_FAIL = "validated_fail"
    TORN_DOWN = "torn_down"


class Outcome(str, Enum):
    """What the caller needs to do next."""
    PASSED = "passed"
    ASSERTION_FAILED = "assertion_failed"
    PROVISIONING_FAILED = "provisioning_failed"
    TIMED_OUT = "timed_out"
    TEARDOWN_FAILED = "teardown_failed"
    ERROR = "error"


class ResourceState(str, Enum):
    """What is known about the provider-side resources."""
    NONE = "none"
    PROVISIONED = "provisioned"
    UNKNOWN = "unknown"
    DESTROYED = "destroyed"
    RETAINED = "retained"


@dataclass(frozen=True)
class ProvisioningResult:
    """Result of an init+apply (or destroy) sequence."""
    success: bool
    log: str = ""
    error: Optional[ProvisioningError] = None
    attempts: int = 0
    duration_seconds: float = 0.0
    operation: str = "apply"

    @property
    def timed_out(self) -> bool:
        return isinstance(self.error, ProvisioningTimeout)

    @property
    def resource_state_unknown(self) -> bool:
        return self.timed_out and self.error.resource_state_unknown

    def raise_for_status(self) -> None:
        """Raise the carried error if the operation failed."""
        if not self.success and self.error is not None:
            raise self.error

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        d = {
            "operation": self.operation,
            "success": self.success,
            "attempts": self.attempts,
            "duration_seconds": self.duration_seconds,
            "timed_out": self.timed_out,
        }
        if self.error is not None:
            d["error_type"] = type(self.error).__name__
            d["error"] = str(self.error)
            d["log"] = self.log
        return d


@dataclass(frozen=True)
class OutputValue:
    """A named module output as decoded from `terraform output -json`."""
    name: str
    value: Any
    raw: str = ""
    sensitive: bool = False

    def as_string(self) -> str:
        """String form used for pattern matching; strings are returned verbatim."""
        if isinstance(self.value, str):
            return self.value
        return json.dumps(self.value, separators=(",", ":"), sort_keys=True)

    def as_list(self) -> List[Any]:
        if not isinstance(self.value, list):
            raise OutputTypeError(f"Output '{self.name}' is a {type(self.value).__name__}, not a list")
        return list(self.value)

    def as_map(self) -> Dict[str, Any]:
        if not isinstance(self.value, dict):
            raise OutputTypeError(f"Output '{self.name}' is a {type(self.value).__name__}, not a map")
        return dict(self.value)

    def __str__(self) -> str:
        return self.as_string()


@dataclass
class RunReport:
    """Everything a caller needs to know about one harness run."""
    name: str
    state: RunState = RunState.CREATED
    outcome: Optional[Outcome] = None
    resource_state: ResourceState = ResourceState.NONE
    resource_state_unknown: bool = False
    provisioning: Optional[ProvisioningResult] = None
    assertions: Optional["AssertionReport"] = None
    teardown: Optional[ProvisioningResult] = None
    error: Optional[str] = None
    outputs: Dict[str, Any] = field(default_factory=dict)

    @property
    def passed(self) -> bool:
        return self.outcome == Outcome.PASSED

    @property
    def requires_manual_inspection(self) -> bool:
        """True when resources may have leaked and nothing cleaned them up."""
        if self.resource_state == ResourceState.UNKNOWN:
            return True
        return self.resource_state_unknown and self.resource_state != ResourceState.DESTROYED

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "name": self.name,
            "state": self.state.value,
            "outcome": self.outcome.value if self.outcome else None,
            "passed": self.passed,
            "resource_state": self.resource_state.value,
            "resource_state_unknown": self.resource_state_unknown,
            "requires_manual_inspection": self.requires_manual_inspection,
            "provisioning": self.provisioning.to_dict() if self.provisioning else None,
            "assertions": self.assertions.to_dict() if self.assertions else None,
            "teardown": self.teardown.to_dict() if self.teardown else None,
            "outputs": self.outputs,
            "error": self.error,
        }
