"""Provision, validate and tear down one module invocation."""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from terraform_harness.errors import (
    ConfigurationError,
    HarnessError,
    OutputNotFoundError,
)
from terraform_harness.harness.assertions import (
    AssertionReport,
    CheckResult,
    ExpectedPattern,
    evaluate,
)
from terraform_harness.harness.executor import ProvisioningExecutor
from terraform_harness.harness.invocation import ModuleInvocation
from terraform_harness.harness.outputs import OutputExtractor
from terraform_harness.harness.results import (
    Outcome,
    OutputValue,
    ProvisioningResult,
    ResourceState,
    RunReport,
    RunState,
)
from terraform_harness.harness.retry import RetryPolicy
from terraform_harness.logging import Logger, NullLogger

logger = logging.getLogger(__name__)

# A check receives the live ModuleTest and raises AssertionError on failure.
Check = Callable[["ModuleTest"], Any]

_TRANSITIONS = {
    RunState.CREATED: {RunState.PROVISIONING},
    RunState.PROVISIONING: {RunState.PROVISIONED, RunState.FAILED},
    RunState.PROVISIONED: {RunState.VALIDATING, RunState.TORN_DOWN},
    RunState.VALIDATING: {RunState.VALIDATED_PASS, RunState.VALIDATED_FAIL, RunState.TORN_DOWN},
    RunState.VALIDATED_PASS: {RunState.TORN_DOWN},
    RunState.VALIDATED_FAIL: {RunState.TORN_DOWN},
    RunState.FAILED: set(),
    RunState.TORN_DOWN: set(),
}


class ModuleTest:
    """
    Lifecycle of one module invocation: apply, extract, assert, destroy.

    Use it as a context manager to guarantee teardown on every exit path::

        with ModuleTest(invocation, executor) as test:
            url = test.output("repository_url")

    or call ``run()`` to get a RunReport without exceptions for test outcomes.
    Teardown happens at most once, whichever path triggers it, and is skipped
    only when ``skip_teardown`` is set.
    """

    def __init__(
        self,
        invocation: ModuleInvocation,
        executor: Optional[ProvisioningExecutor] = None,
        patterns: Sequence[ExpectedPattern] = (),
        checks: Sequence[Check] = (),
        skip_teardown: bool = False,
        deadline: Optional[float] = None,
        destroy_deadline: Optional[float] = None,
        policy: Optional[RetryPolicy] = None,
        output_timeout: Optional[float] = None,
        logger: Optional[Logger] = None,
    ):
        """
        Initialize module test.

        Args:
            invocation: Module and inputs under test
            executor: Executor running terraform (a default one is created if None)
            patterns: Expected output patterns checked by validate()
            checks: Extra callables run after the patterns (e.g. provider API checks)
            skip_teardown: Leave resources in place for manual inspection
            deadline: Budget in seconds for init+apply including retries
            destroy_deadline: Budget in seconds for destroy including retries
            policy: Retry policy overriding the executor default
            output_timeout: Seconds allowed for each `terraform output` call
            logger: Structured event logger
        """
        self.invocation = invocation
        self.executor = executor or ProvisioningExecutor(logger=logger)
        self.patterns = list(patterns)
        self.checks = list(checks)
        self.skip_teardown = skip_teardown
        self.deadline = deadline
        self.destroy_deadline = destroy_deadline
        self.policy = policy
        self.output_timeout = output_timeout
        self.events = logger or NullLogger()

        self.report = RunReport(name=invocation.display_name)
        self._extractor: Optional[OutputExtractor] = None
        self._apply_attempted = False
        self._teardown_done = False

    @property
    def state(self) -> RunState:
        return self.report.state

    def _transition(self, new_state: RunState) -> None:
        if new_state not in _TRANSITIONS[self.report.state]:
            raise HarnessError(f"Invalid transition {self.report.state.value} -> {new_state.value}")
        self.report.state = new_state

    def provision(self) -> ProvisioningResult:
        """
        Run init+apply once; later calls return the first result.

        Raises:
            ConfigurationError: If the module cannot be found (no apply is attempted)
        """
        if self.report.provisioning is not None:
            return self.report.provisioning

        self._transition(RunState.PROVISIONING)
        try:
            self._apply_attempted = True
            result = self.executor.init_and_apply(self.invocation, deadline=self.deadline, policy=self.policy)
        except ConfigurationError as e:
            self._apply_attempted = False
            self._transition(RunState.FAILED)
            self.report.outcome = Outcome.ERROR
            self.report.error = str(e)
            raise

        self.report.provisioning = result
        if result.success:
            self._transition(RunState.PROVISIONED)
            self.report.resource_state = ResourceState.PROVISIONED
            self._extractor = OutputExtractor(
                self.executor, self.invocation, result, timeout=self.output_timeout,
            )
            return result

        self._transition(RunState.FAILED)
        # A failed or interrupted apply may still have created resources
        self.report.resource_state = ResourceState.UNKNOWN
        self.report.error = str(result.error)
        if result.timed_out:
            self.report.outcome = Outcome.TIMED_OUT
            self.report.resource_state_unknown = result.resource_state_unknown
        else:
            self.report.outcome = Outcome.PROVISIONING_FAILED
        return result

    def output(self, name: str) -> OutputValue:
        """Return a module output; only valid between a successful apply and teardown."""
        return self._require_extractor(name).output(name)

    def output_all(self) -> Dict[str, OutputValue]:
        return self._require_extractor("*").output_all()

    def output_list(self, name: str) -> List[Any]:
        return self._require_extractor(name).output_list(name)

    def output_map(self, name: str) -> Dict[str, Any]:
        return self._require_extractor(name).output_map(name)

    def _require_extractor(self, name: str) -> OutputExtractor:
        if self._extractor is None:
            raise OutputNotFoundError(name, "module has not been provisioned successfully")
        return self._extractor

    def validate(self) -> AssertionReport:
        """
        Evaluate every expected pattern and check against the live outputs.

        Returns the same report on repeated calls.

        Raises:
            OutputNotFoundError: If provisioning did not succeed or resources are gone
        """
        if self.report.assertions is not None:
            return self.report.assertions

        extractor = self._require_extractor("*")
        self._transition(RunState.VALIDATING)

        outputs = extractor.output_all() if self.patterns else {}
        assertion_report = evaluate(outputs, self.patterns)
        for check in self.checks:
            assertion_report.checks.append(self._run_check(check))

        self.report.outputs = {name: value.value for name, value in outputs.items() if not value.sensitive}
        self.report.assertions = assertion_report

        for failure in assertion_report.failures:
            self.events.error(
                "assertion.failed", failure.describe(), {"module": self.invocation.display_name},
            )

        if assertion_report.passed:
            self._transition(RunState.VALIDATED_PASS)
            self.report.outcome = Outcome.PASSED
            self.events.info(
                "assertion.passed",
                f"{len(assertion_report.results) + len(assertion_report.checks)} assertion(s) passed",
                {"module": self.invocation.display_name},
            )
        else:
            self._transition(RunState.VALIDATED_FAIL)
            self.report.outcome = Outcome.ASSERTION_FAILED
        return assertion_report

    def _run_check(self, check: Check) -> CheckResult:
        """Run a single check and capture its result."""
        name = getattr(check, "__name__", None) or type(check).__name__
        try:
            check(self)
            return CheckResult(name=name, passed=True)
        except AssertionError as e:
            return CheckResult(name=name, passed=False, error=str(e) or "assertion failed")
        except HarnessError as e:
            return CheckResult(name=name, passed=False, error=f"{type(e).__name__}: {e}")
        except Exception as e:
            logger.debug("Check %s raised %s", name, type(e).__name__, exc_info=True)
            return CheckResult(name=name, passed=False, error=f"{type(e).__name__}: {e}")

    def teardown(self) -> Optional[ProvisioningResult]:
        """
        Destroy the provisioned resources.

        Runs at most once; later calls return the first result. Returns None
        when nothing was applied or teardown is suppressed.
        """
        if self._teardown_done:
            return self.report.teardown
        if not self._apply_attempted:
            return None
        self._teardown_done = True

        if self.skip_teardown:
            self.report.resource_state = ResourceState.RETAINED
            self.events.warning(
                "teardown.skipped",
                f"Leaving resources of {self.invocation.display_name} in place",
                {"module": self.invocation.display_name},
            )
            return None

        result = self.executor.destroy(self.invocation, deadline=self.destroy_deadline, policy=self.policy)
        self.report.teardown = result
        if self._extractor is not None:
            self._extractor.release()

        if result.success:
            self.report.resource_state = ResourceState.DESTROYED
            if self.report.state != RunState.FAILED:
                self._transition(RunState.TORN_DOWN)
            self.events.info(
                "teardown.completed", "Resources destroyed",
                {"module": self.invocation.display_name, "attempts": result.attempts},
            )
            return result

        self.report.resource_state = ResourceState.UNKNOWN
        if result.timed_out:
            self.report.resource_state_unknown = True
        if self.report.outcome in (None, Outcome.PASSED):
            self.report.outcome = Outcome.TIMED_OUT if result.timed_out else Outcome.TEARDOWN_FAILED
        teardown_error = f"teardown failed: {result.error}"
        self.report.error = f"{self.report.error}; {teardown_error}" if self.report.error else teardown_error
        self.events.error(
            "teardown.failed", teardown_error, {"module": self.invocation.display_name},
        )
        return result

    def run(self) -> RunReport:
        """
        Execute the whole lifecycle and report the outcome.

        Provisioning failures, assertion failures and timeouts are reported in
        the RunReport; teardown runs on every path.
        """
        name = self.invocation.display_name
        self.events.info("test.started", "", {"module": name})
        try:
            result = self.provision()
            if result.success:
                self.validate()
        except HarnessError as e:
            logger.debug("Run of %s stopped: %s", name, e)
            if self.report.outcome in (None, Outcome.PASSED):
                self.report.outcome = Outcome.ERROR
            self.report.error = str(e)
        finally:
            self.teardown()

        self.events.info(
            "test.completed",
            self.report.error or "",
            {"module": name, "outcome": self.report.outcome.value if self.report.outcome else ""},
        )
        return self.report

    def __enter__(self) -> "ModuleTest":
        result = self.provision()
        if not result.success:
            self.teardown()
            result.raise_for_status()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        teardown = self.teardown()
        if exc_type is None and teardown is not None and not teardown.success:
            teardown.raise_for_status()


def run_all(tests: Iterable[ModuleTest], parallel: int = 1) -> List[RunReport]:
    """
    Run independent module tests, optionally in parallel threads.

    Reports are returned in the order the tests were given.
    """
    tests = list(tests)
    if parallel <= 1 or len(tests) <= 1:
        return [test.run() for test in tests]

    with ThreadPoolExecutor(max_workers=parallel) as pool:
        return list(pool.map(lambda test: test.run(), tests))
