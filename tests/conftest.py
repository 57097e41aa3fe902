"""Shared fixtures: a scripted terraform runtime so no test touches real infrastructure."""

import json
from typing import Any, Dict, List, Optional

import pytest

from terraform_harness.harness import ProvisioningExecutor, build_invocation
from terraform_harness.runtime import CommandResult

ROOT_VARS = {
    "name": "jobtest",
    "cluster_name": "ecs-devxp",
    "cron": "* * * * ? *",
    "subnets": [],
}
REPOSITORY_URL = "123456789012.dkr.ecr.us-east-1.amazonaws.com/jobtest"
THROTTLING_ERROR = (
    "Error: creating ECR Repository (jobtest): ThrottlingException: Rate exceeded\n"
    "\tstatus code: 400"
)


def ok(stdout: str = "") -> CommandResult:
    return CommandResult(returncode=0, stdout=stdout, stderr="", duration_seconds=0.1)


def failed(stderr: str) -> CommandResult:
    return CommandResult(returncode=1, stdout="", stderr=stderr, duration_seconds=0.1)


def timed_out() -> CommandResult:
    return CommandResult(
        returncode=-1, stdout="", stderr="Command timed out after 5 seconds",
        duration_seconds=5.0, timed_out=True,
    )


def outputs_json(values: Dict[str, Any], sensitive: Optional[List[str]] = None) -> str:
    sensitive = sensitive or []
    return json.dumps({
        name: {"sensitive": name in sensitive, "type": "string", "value": value}
        for name, value in values.items()
    })


class FakeRuntime:
    """Stands in for TerraformRuntime; each command pops its next scripted result."""

    def __init__(
        self,
        init_results: Optional[List[CommandResult]] = None,
        apply_results: Optional[List[CommandResult]] = None,
        destroy_results: Optional[List[CommandResult]] = None,
        outputs: Optional[Dict[str, Any]] = None,
        output_result: Optional[CommandResult] = None,
        sensitive: Optional[List[str]] = None,
        has_module: bool = True,
    ):
        self.init_results = list(init_results or [ok()])
        self.apply_results = list(apply_results or [ok("Apply complete!")])
        self.destroy_results = list(destroy_results or [ok("Destroy complete!")])
        self.outputs = outputs if outputs is not None else {"repository_url": REPOSITORY_URL}
        self.output_result = output_result
        self.sensitive = sensitive or []
        self._has_module = has_module
        self.calls: List[tuple] = []

    @staticmethod
    def _next(results: List[CommandResult]) -> CommandResult:
        return results.pop(0) if len(results) > 1 else results[0]

    def has_module(self) -> bool:
        return self._has_module

    def init(self, backend_config=None, timeout=None) -> CommandResult:
        self.calls.append(("init", timeout))
        return self._next(self.init_results)

    def apply(self, var_args, timeout=None) -> CommandResult:
        self.calls.append(("apply", tuple(var_args), timeout))
        return self._next(self.apply_results)

    def destroy(self, var_args, timeout=None) -> CommandResult:
        self.calls.append(("destroy", tuple(var_args), timeout))
        return self._next(self.destroy_results)

    def output(self, timeout=None) -> CommandResult:
        self.calls.append(("output", timeout))
        if self.output_result is not None:
            return self.output_result
        return ok(outputs_json(self.outputs, sensitive=self.sensitive))

    def count(self, command: str) -> int:
        return sum(1 for call in self.calls if call[0] == command)


class FakeClock:
    """Monotonic clock advanced explicitly by tests (and by recorded sleeps)."""

    def __init__(self):
        self.now = 0.0
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def fake_runtime() -> FakeRuntime:
    return FakeRuntime()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_executor(clock: FakeClock):
    """Build an executor bound to a given fake runtime."""
    def _make(runtime: FakeRuntime, **kwargs) -> ProvisioningExecutor:
        return ProvisioningExecutor(
            runtime_factory=lambda invocation: runtime,
            sleep=clock.sleep,
            clock=clock,
            **kwargs,
        )
    return _make


@pytest.fixture
def executor(make_executor, fake_runtime: FakeRuntime) -> ProvisioningExecutor:
    return make_executor(fake_runtime)


@pytest.fixture
def invocation():
    return build_invocation(
        "/modules/root",
        vars=ROOT_VARS,
        env_vars={"AWS_DEFAULT_REGION": "us-east-1"},
        name="root-module",
    )
