"""Tests for the terraform subprocess wrapper."""

import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest

from terraform_harness.runtime import CommandResult, TerraformRuntime


@pytest.fixture
def completed():
    with patch(
        "subprocess.run",
        return_value=subprocess.CompletedProcess(args=[], returncode=0, stdout="ok", stderr=""),
    ) as run:
        yield run


def test_init_passes_backend_config(completed, tmp_path: Path) -> None:
    runtime = TerraformRuntime(str(tmp_path), env={"AWS_DEFAULT_REGION": "us-east-1"})

    result = runtime.init(backend_config={"key": "state.tfstate", "bucket": "tf-state"}, timeout=30)

    assert result.success
    args, kwargs = completed.call_args
    assert args[0] == [
        "terraform", "init", "-input=false", "-no-color",
        "-backend-config", "bucket=tf-state", "-backend-config", "key=state.tfstate",
    ]
    assert kwargs["cwd"] == tmp_path
    assert kwargs["env"] == {"AWS_DEFAULT_REGION": "us-east-1"}
    assert kwargs["timeout"] == 30


def test_apply_and_destroy_pass_vars(completed, tmp_path: Path) -> None:
    runtime = TerraformRuntime(str(tmp_path), binary="/usr/local/bin/terraform", no_color=False)

    runtime.apply(["-var", "name=jobtest"])
    runtime.destroy(["-var", "name=jobtest"])

    commands = [call[0][0] for call in completed.call_args_list]
    assert commands == [
        ["/usr/local/bin/terraform", "apply", "-auto-approve", "-input=false", "-var", "name=jobtest"],
        ["/usr/local/bin/terraform", "destroy", "-auto-approve", "-input=false", "-var", "name=jobtest"],
    ]


def test_output_requests_json(completed, tmp_path: Path) -> None:
    TerraformRuntime(str(tmp_path)).output()

    assert completed.call_args[0][0] == ["terraform", "output", "-json", "-no-color"]


def test_timeout_is_reported_not_raised(tmp_path: Path) -> None:
    expired = subprocess.TimeoutExpired(cmd=["terraform"], timeout=5, output=b"Creating...")
    with patch("subprocess.run", side_effect=expired):
        result = TerraformRuntime(str(tmp_path)).apply([], timeout=5)

    assert result.timed_out
    assert not result.success
    assert result.stdout == "Creating..."
    assert "timed out after 5 seconds" in result.stderr


def test_missing_binary_is_reported(tmp_path: Path) -> None:
    with patch("subprocess.run", side_effect=FileNotFoundError()):
        result = TerraformRuntime(str(tmp_path), binary="terraform-missing").init()

    assert not result.success
    assert not result.timed_out
    assert result.stderr == "Command not found: terraform-missing"


def test_has_module(tmp_path: Path) -> None:
    runtime = TerraformRuntime(str(tmp_path))
    assert not runtime.has_module()

    (tmp_path / "main.tf.json").write_text("{}")
    assert runtime.has_module()

    assert not TerraformRuntime(str(tmp_path / "missing")).has_module()


def test_output_combines_streams() -> None:
    result = CommandResult(returncode=1, stdout="Plan: 1 to add", stderr="Error: boom", duration_seconds=1.0)

    assert result.output == "Plan: 1 to add\nError: boom"
    assert CommandResult(1, "", "Error: boom", 1.0).output == "Error: boom"
