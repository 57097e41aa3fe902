"""Retry-wrapped terraform init/apply/destroy."""

import logging
import time
from typing import Callable, List, Optional, Tuple

from terraform_harness.errors import (
    ConfigurationError,
    ProvisioningTimeout,
    TerminalProvisioningError,
    TransientProvisioningError,
)
from terraform_harness.harness.invocation import ModuleInvocation
from terraform_harness.harness.results import ProvisioningResult
from terraform_harness.harness.retry import DEFAULT_RETRY_POLICY, RetryPolicy
from terraform_harness.logging import Logger, NullLogger
from terraform_harness.runtime.terraform import CommandResult, TerraformRuntime

logger = logging.getLogger(__name__)

RuntimeFactory = Callable[[ModuleInvocation], TerraformRuntime]
# A step receives a function returning the timeout for the next command and
# returns the final command result plus whether resources may have been touched.
Step = Callable[[Callable[[], Optional[float]]], Tuple[CommandResult, bool]]


class ProvisioningExecutor:
    """
    Runs terraform for a ModuleInvocation, retrying transient failures.

    The executor holds no per-invocation state; one instance can serve many
    invocations, including from several threads.
    """

    def __init__(
        self,
        policy: RetryPolicy = DEFAULT_RETRY_POLICY,
        runtime_factory: Optional[RuntimeFactory] = None,
        binary: str = "terraform",
        command_timeout: Optional[float] = None,
        logger: Optional[Logger] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize executor.

        Args:
            policy: Default retry policy (overridable per call)
            runtime_factory: Builds the TerraformRuntime for an invocation
            binary: Terraform executable used by the default runtime factory
            command_timeout: Upper bound in seconds for any single terraform command
            logger: Structured event logger
            sleep: Wait function used between retries
            clock: Monotonic clock used for deadlines
        """
        self.policy = policy
        self.runtime_factory = runtime_factory
        self.binary = binary
        self.command_timeout = command_timeout
        self.events = logger or NullLogger()
        self._sleep = sleep
        self._clock = clock

    def runtime_for(self, invocation: ModuleInvocation) -> TerraformRuntime:
        """Build the runtime that executes commands for this invocation."""
        if self.runtime_factory is not None:
            return self.runtime_factory(invocation)
        return TerraformRuntime(
            invocation.terraform_dir,
            env=invocation.process_env(),
            binary=self.binary,
            no_color=invocation.no_color,
        )

    def init_and_apply(
        self,
        invocation: ModuleInvocation,
        deadline: Optional[float] = None,
        policy: Optional[RetryPolicy] = None,
    ) -> ProvisioningResult:
        """
        Run terraform init then apply, retrying failures the policy recognises.

        Args:
            invocation: Module and inputs to apply
            deadline: Total budget in seconds for all attempts (None for no limit)
            policy: Retry policy overriding the executor default

        Returns:
            ProvisioningResult; failures are carried in ``error``, not raised

        Raises:
            ConfigurationError: If the module directory holds no module definition
        """
        runtime = self.runtime_for(invocation)
        self._check_module(invocation, runtime)

        def step(timeout: Callable[[], Optional[float]]) -> Tuple[CommandResult, bool]:
            init_result = runtime.init(backend_config=dict(invocation.backend_config), timeout=timeout())
            self.events.debug(
                "terraform.init", "terraform init",
                {"success": init_result.success, "module": invocation.display_name},
            )
            if not init_result.success:
                return init_result, False

            apply_result = runtime.apply(invocation.var_args(), timeout=timeout())
            self.events.info(
                "terraform.apply", "terraform apply",
                {"success": apply_result.success, "module": invocation.display_name},
            )
            return apply_result, True

        return self._run_with_retries("apply", invocation, step, deadline, policy or self.policy)

    def destroy(
        self,
        invocation: ModuleInvocation,
        deadline: Optional[float] = None,
        policy: Optional[RetryPolicy] = None,
    ) -> ProvisioningResult:
        """
        Run terraform destroy for the invocation, with the same retry rules as apply.

        Args:
            invocation: Module and inputs that were applied
            deadline: Total budget in seconds for all attempts
            policy: Retry policy overriding the executor default
        """
        runtime = self.runtime_for(invocation)

        def step(timeout: Callable[[], Optional[float]]) -> Tuple[CommandResult, bool]:
            destroy_result = runtime.destroy(invocation.var_args(), timeout=timeout())
            self.events.info(
                "terraform.destroy", "terraform destroy",
                {"success": destroy_result.success, "module": invocation.display_name},
            )
            return destroy_result, True

        return self._run_with_retries("destroy", invocation, step, deadline, policy or self.policy)

    def _check_module(self, invocation: ModuleInvocation, runtime: TerraformRuntime) -> None:
        if not runtime.has_module():
            raise ConfigurationError(
                f"No Terraform module found in {invocation.terraform_dir}"
            )

    def _run_with_retries(
        self,
        operation: str,
        invocation: ModuleInvocation,
        step: Step,
        deadline: Optional[float],
        policy: RetryPolicy,
    ) -> ProvisioningResult:
        start = self._clock()
        logs: List[str] = []
        touched = False

        def remaining() -> Optional[float]:
            if deadline is None:
                return None
            return deadline - (self._clock() - start)

        def command_timeout() -> Optional[float]:
            left = remaining()
            if left is None:
                return self.command_timeout
            if self.command_timeout is None:
                return max(left, 0.0)
            return max(min(left, self.command_timeout), 0.0)

        def timeout_result(attempt: int, message: str) -> ProvisioningResult:
            log = "\n".join(logs)
            error = ProvisioningTimeout(
                message,
                log=log,
                attempts=attempt,
                operation=operation,
                resource_state_unknown=touched,
            )
            if touched:
                self.events.error(
                    "timeout.unknown_state",
                    f"{operation} timed out; resource state of {invocation.display_name} is unknown",
                    {"module": invocation.display_name, "attempts": attempt},
                )
            return ProvisioningResult(
                success=False,
                log=log,
                error=error,
                attempts=attempt,
                duration_seconds=self._clock() - start,
                operation=operation,
            )

        attempt = 0
        while attempt < policy.max_attempts:
            left = remaining()
            if left is not None and left <= 0:
                return timeout_result(attempt, f"Deadline of {deadline}s exceeded before {operation} attempt {attempt + 1}")

            attempt += 1
            result, step_touched = step(command_timeout)
            touched = touched or step_touched
            logs.append(result.output)

            if result.success:
                return ProvisioningResult(
                    success=True,
                    log="\n".join(logs),
                    attempts=attempt,
                    duration_seconds=self._clock() - start,
                    operation=operation,
                )

            if result.timed_out:
                return timeout_result(attempt, f"terraform {operation} timed out on attempt {attempt}")

            signature = policy.classify(result.output)
            if signature is None:
                logger.debug("%s failure matched no retryable signature", operation)
                return ProvisioningResult(
                    success=False,
                    log="\n".join(logs),
                    error=TerminalProvisioningError(
                        f"terraform {operation} failed: {_last_error_line(result.output)}",
                        log=result.output,
                        attempts=attempt,
                    ),
                    attempts=attempt,
                    duration_seconds=self._clock() - start,
                    operation=operation,
                )

            if attempt >= policy.max_attempts:
                self.events.error(
                    "retry.exhausted",
                    f"{operation} still failing after {attempt} attempt(s): {signature.description}",
                    {"attempts": attempt, "module": invocation.display_name},
                )
                return ProvisioningResult(
                    success=False,
                    log="\n".join(logs),
                    error=TransientProvisioningError(
                        f"terraform {operation} failed after {attempt} attempt(s): {signature.description}",
                        log=result.output,
                        attempts=attempt,
                        signature=signature.pattern,
                        retries_exhausted=True,
                    ),
                    attempts=attempt,
                    duration_seconds=self._clock() - start,
                    operation=operation,
                )

            delay = policy.delay_before(attempt + 1)
            left = remaining()
            if left is not None and delay >= left:
                return timeout_result(attempt, f"Deadline of {deadline}s exceeded while waiting to retry {operation}")

            self.events.warning(
                "retry.scheduled",
                f"{signature.description} Retrying {operation} in {delay:.1f}s",
                {"attempt": attempt, "delay": delay, "module": invocation.display_name},
            )
            logger.info("Retrying %s of %s after matching %r", operation, invocation.display_name, signature.pattern)
            self._sleep(delay)

        # unreachable: every iteration of the final attempt returns
        return timeout_result(attempt, f"{operation} did not complete")


def _last_error_line(output: str) -> str:
    """Pick the most relevant line of terraform output for an error message."""
    lines = [line.strip() for line in output.splitlines() if line.strip()]
    for line in lines:
        if line.startswith("Error:"):
            return line
    return lines[-1] if lines else "no output"
