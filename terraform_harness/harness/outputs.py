"""Reading module outputs after a successful apply."""

import json
import logging
from typing import Any, Dict, List, Optional

from terraform_harness.errors import OutputNotFoundError
from terraform_harness.harness.invocation import ModuleInvocation
from terraform_harness.harness.results import OutputValue, ProvisioningResult

logger = logging.getLogger(__name__)


class OutputExtractor:
    """
    Reads named outputs of one provisioned invocation.

    Extraction is only valid while the resources are live: after a failed
    apply, or once ``release()`` has been called by teardown, every read
    raises OutputNotFoundError instead of returning stale values.
    """

    def __init__(
        self,
        executor,
        invocation: ModuleInvocation,
        provisioning: ProvisioningResult,
        timeout: Optional[float] = None,
    ):
        """
        Initialize extractor.

        Args:
            executor: ProvisioningExecutor used to build the terraform runtime
            invocation: The invocation that was applied
            provisioning: Result of init_and_apply for that invocation
            timeout: Seconds allowed for each `terraform output` call
        """
        self.executor = executor
        self.invocation = invocation
        self.provisioning = provisioning
        self.timeout = timeout
        self._released = False

    @property
    def live(self) -> bool:
        return self.provisioning.success and not self._released

    def release(self) -> None:
        """Mark the resources as gone; later reads fail."""
        self._released = True

    def output_all(self) -> Dict[str, OutputValue]:
        """Return every output the module exposes."""
        self._require_live("*")

        runtime = self.executor.runtime_for(self.invocation)
        result = runtime.output(timeout=self.timeout)
        if not result.success:
            raise OutputNotFoundError("*", f"terraform output failed: {result.output.strip()}")

        try:
            decoded = json.loads(result.stdout or "{}")
        except json.JSONDecodeError:
            raise OutputNotFoundError("*", "could not parse terraform output")

        outputs = {}
        for name, entry in decoded.items():
            if isinstance(entry, dict) and "value" in entry:
                value = entry["value"]
                sensitive = bool(entry.get("sensitive", False))
            else:
                value = entry
                sensitive = False
            outputs[name] = OutputValue(
                name=name,
                value=value,
                raw=json.dumps(value),
                sensitive=sensitive,
            )

        self.executor.events.debug(
            "terraform.output", "terraform output",
            {"count": len(outputs), "module": self.invocation.display_name},
        )
        return outputs

    def output(self, name: str) -> OutputValue:
        """
        Return a single output.

        Raises:
            OutputNotFoundError: If the module does not expose ``name`` or resources are not live
        """
        self._require_live(name)
        outputs = self.output_all()
        if name not in outputs:
            raise OutputNotFoundError(name)
        return outputs[name]

    def output_list(self, name: str) -> List[Any]:
        """Return a list-typed output."""
        return self.output(name).as_list()

    def output_map(self, name: str) -> Dict[str, Any]:
        """Return a map- or object-typed output."""
        return self.output(name).as_map()

    def _require_live(self, name: str) -> None:
        if not self.provisioning.success:
            raise OutputNotFoundError(name, "provisioning did not succeed")
        if self._released:
            raise OutputNotFoundError(name, "resources have been torn down")
