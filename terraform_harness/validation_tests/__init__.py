"""Provider-side checks run against provisioned infrastructure."""

from terraform_harness.validation_tests.base_test import BaseAwsCheck
from terraform_harness.validation_tests.ecr_test import EcrRepositoryTest

__all__ = [
    'BaseAwsCheck',
    'EcrRepositoryTest',
]
