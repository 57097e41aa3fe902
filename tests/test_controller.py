"""Tests for the module test lifecycle."""

import json
import threading
from pathlib import Path

import pytest

from terraform_harness.errors import (
    ConfigurationError,
    OutputNotFoundError,
    TerminalProvisioningError,
)
from terraform_harness.harness import (
    ExpectedPattern,
    ModuleTest,
    Outcome,
    ResourceState,
    RunState,
    run_all,
)
from terraform_harness.logging import FileLogger, LogLevel

from conftest import REPOSITORY_URL, THROTTLING_ERROR, FakeRuntime, failed, timed_out

URL_PATTERN = r"\d{12}\.dkr\.ecr\.us-east-1\.amazonaws\.com/jobtest"


@pytest.fixture
def make_test(make_executor, invocation):
    def _make(runtime: FakeRuntime, **kwargs) -> ModuleTest:
        kwargs.setdefault("patterns", [ExpectedPattern("repository_url", URL_PATTERN)])
        return ModuleTest(invocation, make_executor(runtime), **kwargs)
    return _make


def test_run_passes_and_destroys_once(make_test) -> None:
    runtime = FakeRuntime()
    test = make_test(runtime)

    report = test.run()
    test.teardown()

    assert report.outcome == Outcome.PASSED
    assert report.state == RunState.TORN_DOWN
    assert report.resource_state == ResourceState.DESTROYED
    assert report.outputs == {"repository_url": REPOSITORY_URL}
    assert runtime.count("destroy") == 1


def test_assertion_failure_still_destroys(make_test) -> None:
    runtime = FakeRuntime(outputs={"repository_url": "jobtest"})

    report = make_test(runtime).run()

    assert report.outcome == Outcome.ASSERTION_FAILED
    assert report.assertions.failures[0].actual == "jobtest"
    assert runtime.count("destroy") == 1
    assert report.resource_state == ResourceState.DESTROYED


def test_provisioning_failure_destroys_partial_resources(make_test) -> None:
    runtime = FakeRuntime(apply_results=[failed("Error: invalid cron expression")])

    report = make_test(runtime).run()

    assert report.outcome == Outcome.PROVISIONING_FAILED
    assert report.state == RunState.FAILED
    assert report.assertions is None
    assert runtime.count("output") == 0
    assert runtime.count("destroy") == 1
    assert report.resource_state == ResourceState.DESTROYED


def test_timeout_skips_validation_and_attempts_teardown(make_test) -> None:
    runtime = FakeRuntime(apply_results=[timed_out()])

    report = make_test(runtime, deadline=5).run()

    assert report.outcome == Outcome.TIMED_OUT
    assert report.resource_state_unknown
    assert runtime.count("output") == 0
    assert runtime.count("destroy") == 1
    assert report.resource_state == ResourceState.DESTROYED
    assert not report.requires_manual_inspection


def test_failed_teardown_marks_resources_unknown(make_test) -> None:
    runtime = FakeRuntime(destroy_results=[failed("Error: DependencyViolation")])

    report = make_test(runtime).run()

    assert report.outcome == Outcome.TEARDOWN_FAILED
    assert report.resource_state == ResourceState.UNKNOWN
    assert report.requires_manual_inspection
    assert "teardown failed" in report.error


def test_teardown_failure_does_not_hide_assertion_failure(make_test) -> None:
    runtime = FakeRuntime(
        outputs={"repository_url": "jobtest"},
        destroy_results=[failed("Error: DependencyViolation")],
    )

    report = make_test(runtime).run()

    assert report.outcome == Outcome.ASSERTION_FAILED
    assert report.resource_state == ResourceState.UNKNOWN


def test_skip_teardown_retains_resources(make_test) -> None:
    runtime = FakeRuntime()

    report = make_test(runtime, skip_teardown=True).run()

    assert report.outcome == Outcome.PASSED
    assert report.resource_state == ResourceState.RETAINED
    assert runtime.count("destroy") == 0


def test_missing_module_is_reported_as_error(make_test) -> None:
    runtime = FakeRuntime(has_module=False)

    report = make_test(runtime).run()

    assert report.outcome == Outcome.ERROR
    assert "No Terraform module" in report.error
    assert runtime.calls == []


def test_provision_raises_configuration_error_directly(make_test) -> None:
    test = make_test(FakeRuntime(has_module=False))

    with pytest.raises(ConfigurationError):
        test.provision()
    assert test.teardown() is None


def test_provision_is_idempotent(make_test) -> None:
    runtime = FakeRuntime()
    test = make_test(runtime)

    first = test.provision()

    assert test.provision() is first
    assert runtime.count("apply") == 1


def test_outputs_unavailable_before_and_after_lifecycle(make_test) -> None:
    test = make_test(FakeRuntime())

    with pytest.raises(OutputNotFoundError):
        test.output("repository_url")

    test.provision()
    assert test.output("repository_url").value == REPOSITORY_URL

    test.teardown()
    with pytest.raises(OutputNotFoundError, match="torn down"):
        test.output("repository_url")


def test_outputs_unavailable_after_failed_apply(make_test) -> None:
    test = make_test(FakeRuntime(apply_results=[failed("Error: boom")]))
    test.provision()

    with pytest.raises(OutputNotFoundError):
        test.output("repository_url")


def test_validate_is_idempotent(make_test) -> None:
    runtime = FakeRuntime()
    test = make_test(runtime)
    test.provision()

    first = test.validate()

    assert test.validate() is first
    assert runtime.count("output") == 1


def test_checks_run_after_patterns(make_test) -> None:
    seen = []

    def repository_exists(test: ModuleTest) -> None:
        seen.append(test.output("repository_url").value)

    def always_fails(test: ModuleTest) -> None:
        raise AssertionError("repository policy missing")

    def reads_missing_output(test: ModuleTest) -> None:
        test.output("cluster_arn")

    report = make_test(FakeRuntime(), checks=[repository_exists, always_fails, reads_missing_output]).run()

    assert seen == [REPOSITORY_URL]
    assert report.outcome == Outcome.ASSERTION_FAILED
    assert [c.passed for c in report.assertions.checks] == [True, False, False]
    assert report.assertions.checks[1].error == "repository policy missing"
    assert "OutputNotFoundError" in report.assertions.checks[2].error


def test_context_manager_destroys_on_success(make_test) -> None:
    runtime = FakeRuntime()

    with make_test(runtime) as test:
        assert test.output("repository_url").value == REPOSITORY_URL
        assert runtime.count("destroy") == 0

    assert runtime.count("destroy") == 1
    assert test.report.resource_state == ResourceState.DESTROYED


def test_context_manager_destroys_when_body_raises(make_test) -> None:
    runtime = FakeRuntime()

    with pytest.raises(RuntimeError):
        with make_test(runtime):
            raise RuntimeError("test body failed")

    assert runtime.count("destroy") == 1


def test_context_manager_destroys_and_raises_on_failed_apply(make_test) -> None:
    runtime = FakeRuntime(apply_results=[failed("Error: invalid cron expression")])

    with pytest.raises(TerminalProvisioningError):
        with make_test(runtime):
            pytest.fail("body must not run")

    assert runtime.count("destroy") == 1


def test_context_manager_raises_teardown_failure(make_test) -> None:
    runtime = FakeRuntime(destroy_results=[failed("Error: DependencyViolation")])

    with pytest.raises(TerminalProvisioningError):
        with make_test(runtime):
            pass


def test_retries_are_reported(make_test) -> None:
    runtime = FakeRuntime(apply_results=[failed(THROTTLING_ERROR), failed(THROTTLING_ERROR), failed(THROTTLING_ERROR)])

    report = make_test(runtime).run()

    assert report.outcome == Outcome.PROVISIONING_FAILED
    assert report.provisioning.attempts == 3
    assert report.to_dict()["provisioning"]["error_type"] == "TransientProvisioningError"


def test_run_all_runs_tests_in_parallel(make_executor) -> None:
    """Independent tests overlap and each destroys its own resources."""
    from terraform_harness.harness import build_invocation

    barrier = threading.Barrier(3, timeout=5)
    runtimes = {}

    class BlockingRuntime(FakeRuntime):
        def apply(self, var_args, timeout=None):
            barrier.wait()
            return super().apply(var_args, timeout)

    def factory(invocation):
        return runtimes[invocation.name]

    tests = []
    for name in ("a", "b", "c"):
        runtimes[name] = BlockingRuntime()
        executor = make_executor(runtimes[name])
        executor.runtime_factory = factory
        tests.append(ModuleTest(build_invocation(f"/modules/{name}", vars={"name": name}, name=name), executor))

    reports = run_all(tests, parallel=3)

    assert [r.name for r in reports] == ["a", "b", "c"]
    assert all(r.passed for r in reports)
    assert all(runtime.count("destroy") == 1 for runtime in runtimes.values())


def test_sensitive_mismatch_is_redacted_in_report_and_events(make_test, tmp_path: Path) -> None:
    events = tmp_path / "events.jsonl"
    runtime = FakeRuntime(outputs={"db_password": "hunter2"}, sensitive=["db_password"])
    test = make_test(
        runtime,
        patterns=[ExpectedPattern("db_password", "^[0-9]+$")],
        logger=FileLogger(str(events), min_level=LogLevel.DEBUG),
    )

    report = test.run()

    assert report.outcome == Outcome.ASSERTION_FAILED
    assert report.outputs == {}
    assert "hunter2" not in json.dumps(report.to_dict(), default=str)
    assert "hunter2" not in events.read_text()
    assert "<sensitive>" in events.read_text()


def test_teardown_before_provision_does_not_suppress_later_destroy(make_test) -> None:
    runtime = FakeRuntime()
    test = make_test(runtime)

    assert test.teardown() is None
    report = test.run()

    assert report.outcome == Outcome.PASSED
    assert runtime.count("destroy") == 1
    assert report.resource_state == ResourceState.DESTROYED


def test_unexpected_check_exception_is_a_failed_check(make_test) -> None:
    def reads_missing_tag(test: ModuleTest) -> None:
        tags = {"env": "test"}
        assert tags["owner"] == "platform"

    runtime = FakeRuntime()

    report = make_test(runtime, checks=[reads_missing_tag]).run()

    assert report.outcome == Outcome.ASSERTION_FAILED
    assert report.assertions.checks[0].error == "KeyError: 'owner'"
    assert runtime.count("destroy") == 1


def test_run_all_keeps_every_report_when_a_check_raises(make_executor) -> None:
    from terraform_harness.harness import build_invocation

    def explodes(test: ModuleTest) -> None:
        raise KeyError("owner")

    tests = []
    for name, checks in (("a", [explodes]), ("b", [])):
        executor = make_executor(FakeRuntime())
        invocation = build_invocation(f"/modules/{name}", vars={"name": name}, name=name)
        tests.append(ModuleTest(invocation, executor, checks=checks))

    reports = run_all(tests, parallel=2)

    assert [r.name for r in reports] == ["a", "b"]
    assert [r.outcome for r in reports] == [Outcome.ASSERTION_FAILED, Outcome.PASSED]
