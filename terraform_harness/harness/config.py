"""Harness configuration."""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from terraform_harness.errors import ConfigurationError

_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass
class HarnessConfig:
    """Settings shared by every run of a harness session."""
    terraform_binary: str = "terraform"
    apply_timeout: Optional[float] = None
    destroy_timeout: Optional[float] = None
    output_timeout: Optional[float] = 120
    command_timeout: Optional[float] = None
    skip_teardown: bool = False
    retry: bool = True
    parallel: int = 1

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'HarnessConfig':
        """
        Build a configuration from environment variables.

        Reads TERRAFORM_BINARY, TF_HARNESS_APPLY_TIMEOUT, TF_HARNESS_DESTROY_TIMEOUT,
        TF_HARNESS_OUTPUT_TIMEOUT, TF_HARNESS_COMMAND_TIMEOUT, TF_HARNESS_PARALLEL,
        TF_HARNESS_NO_RETRY and TF_HARNESS_SKIP_TEARDOWN.
        Like terratest, any non-empty SKIP_teardown also suppresses teardown.
        """
        env = os.environ if environ is None else environ
        config = cls()

        config.terraform_binary = env.get("TERRAFORM_BINARY", config.terraform_binary)
        config.apply_timeout = _float_env(env, "TF_HARNESS_APPLY_TIMEOUT", config.apply_timeout)
        config.destroy_timeout = _float_env(env, "TF_HARNESS_DESTROY_TIMEOUT", config.destroy_timeout)
        config.output_timeout = _float_env(env, "TF_HARNESS_OUTPUT_TIMEOUT", config.output_timeout)
        config.command_timeout = _float_env(env, "TF_HARNESS_COMMAND_TIMEOUT", config.command_timeout)

        parallel = env.get("TF_HARNESS_PARALLEL")
        if parallel:
            try:
                config.parallel = int(parallel)
            except ValueError:
                raise ConfigurationError(f"TF_HARNESS_PARALLEL must be an integer, got {parallel!r}")
            if config.parallel < 1:
                raise ConfigurationError("TF_HARNESS_PARALLEL must be at least 1")

        config.retry = env.get("TF_HARNESS_NO_RETRY", "").lower() not in _TRUE_VALUES
        config.skip_teardown = (
            env.get("TF_HARNESS_SKIP_TEARDOWN", "").lower() in _TRUE_VALUES
            or bool(env.get("SKIP_teardown"))
        )
        return config


def _float_env(env: Mapping[str, str], name: str, default: Optional[float]) -> Optional[float]:
    value = env.get(name)
    if not value:
        return default
    try:
        seconds = float(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number of seconds, got {value!r}")
    if seconds <= 0:
        raise ConfigurationError(f"{name} must be positive")
    return seconds
