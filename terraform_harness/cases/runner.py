"""Turning test cases into module tests."""

from typing import List, Optional, Sequence

from terraform_harness.cases.schema import HarnessCase
from terraform_harness.harness.assertions import expected_patterns
from terraform_harness.harness.config import HarnessConfig
from terraform_harness.harness.controller import Check, ModuleTest, run_all
from terraform_harness.harness.executor import ProvisioningExecutor
from terraform_harness.harness.invocation import build_invocation
from terraform_harness.harness.results import RunReport
from terraform_harness.harness.retry import NO_RETRY_POLICY, RetryPolicy
from terraform_harness.logging import Logger, NullLogger
from terraform_harness.validation_tests import EcrRepositoryTest


def case_policy(case: HarnessCase, base: RetryPolicy) -> RetryPolicy:
    """Apply a case's retry overrides to the base policy."""
    policy = base
    if case.retry.extra_signatures:
        policy = policy.with_signatures(case.retry.extra_signatures)
    if case.retry.max_attempts is not None:
        policy = policy.replace(max_attempts=case.retry.max_attempts)
    if case.retry.backoff_seconds is not None:
        policy = policy.replace(backoff=case.retry.backoff_seconds)
    return policy


def case_checks(case: HarnessCase) -> List[Check]:
    """Instantiate the provider checks a case declares."""
    checks: List[Check] = []
    for check in case.checks:
        if check['type'] == 'ecr_repository':
            checks.append(EcrRepositoryTest(
                region=check.get('region') or case.region or 'us-east-1',
                output_name=check.get('output', 'repository_url'),
                repository_name=check.get('repository_name'),
                endpoint_url=check.get('endpoint_url'),
            ))
    return checks


def build_module_test(
    case: HarnessCase,
    config: HarnessConfig,
    executor: ProvisioningExecutor,
    logger: Optional[Logger] = None,
) -> ModuleTest:
    """
    Build the ModuleTest for one case.

    Case settings win over the session config, except that a session-wide
    skip_teardown always suppresses teardown and disabling retries for the
    session overrides any case retry settings.
    """
    invocation = build_invocation(
        case.terraform_dir,
        vars=case.vars,
        env_vars=case.environment(),
        name=case.case_id,
    )
    policy = case_policy(case, executor.policy) if config.retry else NO_RETRY_POLICY
    return ModuleTest(
        invocation,
        executor=executor,
        patterns=expected_patterns(case.expected_outputs),
        checks=case_checks(case),
        skip_teardown=config.skip_teardown or case.skip_teardown,
        deadline=case.deadline_seconds or config.apply_timeout,
        destroy_deadline=config.destroy_timeout,
        policy=policy,
        output_timeout=config.output_timeout,
        logger=logger,
    )


def run_cases(
    cases: Sequence[HarnessCase],
    config: HarnessConfig,
    executor: Optional[ProvisioningExecutor] = None,
    logger: Optional[Logger] = None,
) -> List[RunReport]:
    """
    Run every case and return one report per case, in order.

    Cases run in up to ``config.parallel`` threads; each owns its invocation
    and resources.
    """
    logger = logger or NullLogger()
    executor = executor or ProvisioningExecutor(
        binary=config.terraform_binary,
        command_timeout=config.command_timeout,
        logger=logger,
    )

    logger.info("run.started", f"{len(cases)} case(s)", {"count": len(cases)})
    tests = [build_module_test(case, config, executor, logger=logger) for case in cases]
    reports = run_all(tests, parallel=config.parallel)

    passed = sum(1 for r in reports if r.passed)
    logger.info(
        "run.completed",
        f"{passed}/{len(reports)} passed",
        {"passed": passed, "failed": len(reports) - passed},
    )
    return reports
