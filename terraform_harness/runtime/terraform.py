"""Terraform process execution."""

import logging
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandResult:
    """Result of a terraform subprocess."""
    returncode: int
    stdout: str
    stderr: str
    duration_seconds: float
    timed_out: bool = False

    @property
    def success(self) -> bool:
        return self.returncode == 0 and not self.timed_out

    @property
    def output(self) -> str:
        """Combined stdout and stderr (terraform writes errors to both)."""
        if self.stdout and self.stderr:
            return self.stdout + "\n" + self.stderr
        return self.stdout or self.stderr


class TerraformRuntime:
    """Runs terraform lifecycle commands in one module directory."""

    def __init__(
        self,
        working_dir: str,
        env: Optional[Dict[str, str]] = None,
        binary: str = "terraform",
        no_color: bool = True,
    ):
        """
        Initialize Terraform runtime.

        Args:
            working_dir: Directory containing the Terraform module
            env: Full environment for terraform subprocesses (None inherits)
            binary: Terraform executable name or path
            no_color: Whether to pass -no-color to commands that accept it
        """
        self.working_dir = Path(working_dir)
        self.env = env
        self.binary = binary
        self.no_color = no_color

    def init(
        self,
        backend_config: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> CommandResult:
        """
        Run terraform init.

        Args:
            backend_config: Optional backend configuration
            timeout: Seconds before the command is killed

        Returns:
            CommandResult for the init command
        """
        cmd = [self.binary, 'init', '-input=false']
        if self.no_color:
            cmd.append('-no-color')

        if backend_config:
            for key, value in sorted(backend_config.items()):
                cmd.extend(['-backend-config', f'{key}={value}'])

        return self._run_command(cmd, timeout=timeout)

    def apply(self, var_args: List[str], timeout: Optional[float] = None) -> CommandResult:
        """
        Run terraform apply with auto-approve.

        Args:
            var_args: -var / -var-file arguments
            timeout: Seconds before the command is killed
        """
        cmd = [self.binary, 'apply', '-auto-approve', '-input=false']
        if self.no_color:
            cmd.append('-no-color')
        cmd.extend(var_args)

        return self._run_command(cmd, timeout=timeout)

    def destroy(self, var_args: List[str], timeout: Optional[float] = None) -> CommandResult:
        """
        Run terraform destroy with auto-approve.

        Args:
            var_args: -var / -var-file arguments (destroy needs the same inputs as apply)
            timeout: Seconds before the command is killed
        """
        cmd = [self.binary, 'destroy', '-auto-approve', '-input=false']
        if self.no_color:
            cmd.append('-no-color')
        cmd.extend(var_args)

        return self._run_command(cmd, timeout=timeout)

    def output(self, timeout: Optional[float] = None) -> CommandResult:
        """Run terraform output -json for all outputs of the module."""
        cmd = [self.binary, 'output', '-json']
        if self.no_color:
            cmd.append('-no-color')

        return self._run_command(cmd, timeout=timeout)

    def has_module(self) -> bool:
        """Whether the working directory holds a Terraform module definition."""
        if not self.working_dir.is_dir():
            return False
        return any(self.working_dir.glob('*.tf')) or any(self.working_dir.glob('*.tf.json'))

    def _run_command(self, cmd: List[str], timeout: Optional[float] = None) -> CommandResult:
        """
        Run a terraform command.

        Args:
            cmd: Command and arguments
            timeout: Command timeout in seconds (None waits indefinitely)

        Returns:
            CommandResult; timeouts and missing binaries are reported, not raised
        """
        logger.debug("Running %s in %s", " ".join(cmd), self.working_dir)
        start = time.monotonic()
        try:
            result = subprocess.run(
                cmd,
                cwd=self.working_dir,
                env=self.env,
                capture_output=True,
                text=True,
                timeout=timeout,
            )
            return CommandResult(
                returncode=result.returncode,
                stdout=result.stdout,
                stderr=result.stderr,
                duration_seconds=time.monotonic() - start,
            )

        except subprocess.TimeoutExpired as e:
            stdout = e.stdout.decode() if isinstance(e.stdout, bytes) else (e.stdout or '')
            return CommandResult(
                returncode=-1,
                stdout=stdout,
                stderr=f'Command timed out after {timeout} seconds',
                duration_seconds=time.monotonic() - start,
                timed_out=True,
            )
        except FileNotFoundError:
            return CommandResult(
                returncode=-1,
                stdout='',
                stderr=f'Command not found: {cmd[0]}',
                duration_seconds=time.monotonic() - start,
            )
