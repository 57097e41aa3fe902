"""Module invocation parameters."""

import json
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from terraform_harness.errors import ConfigurationError

_SCALAR_TYPES = (str, bool, int, float)


@dataclass(frozen=True)
class ModuleInvocation:
    """Everything needed to run one Terraform module.

    Instances are immutable: ``vars`` and ``env_vars`` are read-only
    mappings and sequence values are stored as tuples.
    """
    terraform_dir: str
    vars: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    env_vars: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    var_files: Tuple[str, ...] = ()
    backend_config: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    no_color: bool = True
    name: str = ""

    @property
    def display_name(self) -> str:
        return self.name or Path(self.terraform_dir).resolve().name

    def var_args(self) -> List[str]:
        """Render variables and var files as terraform CLI arguments."""
        args: List[str] = []
        for var_name in sorted(self.vars):
            args.extend(['-var', f'{var_name}={format_var_value(self.vars[var_name])}'])
        for var_file in self.var_files:
            args.extend(['-var-file', var_file])
        return args

    def process_env(self, base: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
        """Environment for terraform subprocesses: base overlaid with env_vars."""
        env = dict(os.environ if base is None else base)
        env.update(self.env_vars)
        return env

    def with_vars(self, **new_vars: Any) -> 'ModuleInvocation':
        """Return a copy with additional or replaced variables."""
        merged = dict(self.vars)
        merged.update(new_vars)
        return replace(self, vars=_freeze_vars(merged))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-friendly dictionary."""
        return {
            'name': self.display_name,
            'terraform_dir': self.terraform_dir,
            'vars': _thaw(self.vars),
            'env_vars': dict(self.env_vars),
            'var_files': list(self.var_files),
        }


def build_invocation(
    terraform_dir: str,
    vars: Optional[Mapping[str, Any]] = None,
    env_vars: Optional[Mapping[str, str]] = None,
    var_files: Iterable[str] = (),
    backend_config: Optional[Mapping[str, str]] = None,
    no_color: bool = True,
    name: str = "",
) -> ModuleInvocation:
    """
    Assemble a ModuleInvocation.

    Module existence is not checked here; the executor checks it before the
    first terraform command.

    Args:
        terraform_dir: Directory of the module under test
        vars: Terraform input variables
        env_vars: Extra environment variables for terraform (e.g. AWS_DEFAULT_REGION)
        var_files: Paths passed as -var-file
        backend_config: Values passed to init as -backend-config
        no_color: Pass -no-color to terraform
        name: Display name used in reports

    Raises:
        ConfigurationError: On invalid names or values that terraform cannot represent
    """
    if not isinstance(terraform_dir, (str, os.PathLike)) or not str(terraform_dir):
        raise ConfigurationError("terraform_dir must be a non-empty path")

    env: Dict[str, str] = {}
    for key, value in (env_vars or {}).items():
        if not isinstance(key, str) or not key:
            raise ConfigurationError(f"Environment variable names must be non-empty strings, got {key!r}")
        if not isinstance(value, str):
            raise ConfigurationError(f"Environment variable {key} must be a string, got {type(value).__name__}")
        env[key] = value

    backend: Dict[str, str] = {}
    for key, value in (backend_config or {}).items():
        if not isinstance(key, str) or not key:
            raise ConfigurationError(f"Backend config keys must be non-empty strings, got {key!r}")
        backend[key] = str(value)

    return ModuleInvocation(
        terraform_dir=str(terraform_dir),
        vars=_freeze_vars(vars or {}),
        env_vars=MappingProxyType(env),
        var_files=tuple(str(f) for f in var_files),
        backend_config=MappingProxyType(backend),
        no_color=no_color,
        name=name,
    )


def format_var_value(value: Any, nested: bool = False) -> str:
    """
    Format a value the way `terraform -var name=value` expects.

    Top-level strings are passed raw; strings inside lists and maps are quoted.
    """
    if value is None:
        return 'null'
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, (int, float)):
        return repr(value)
    if isinstance(value, str):
        return json.dumps(value) if nested else value
    if isinstance(value, Mapping):
        items = [f'{json.dumps(k)} = {format_var_value(v, nested=True)}' for k, v in value.items()]
        return '{' + ', '.join(items) + '}'
    # Sequence (validated on construction)
    return '[' + ', '.join(format_var_value(v, nested=True) for v in value) + ']'


def _freeze_vars(variables: Mapping[str, Any]) -> Mapping[str, Any]:
    frozen = {}
    for var_name, value in variables.items():
        if not isinstance(var_name, str) or not var_name.strip():
            raise ConfigurationError(f"Variable names must be non-empty strings, got {var_name!r}")
        frozen[var_name] = _freeze_value(value, var_name)
    return MappingProxyType(frozen)


def _freeze_value(value: Any, path: str) -> Any:
    """Validate a variable value and convert containers to immutable ones."""
    if value is None or isinstance(value, _SCALAR_TYPES):
        return value
    if isinstance(value, Mapping):
        items = {}
        for key, item in value.items():
            if not isinstance(key, str):
                raise ConfigurationError(f"Map keys must be strings in variable {path}, got {key!r}")
            items[key] = _freeze_value(item, f'{path}.{key}')
        return MappingProxyType(items)
    if isinstance(value, (list, tuple)):
        return tuple(_freeze_value(item, f'{path}[{i}]') for i, item in enumerate(value))
    raise ConfigurationError(
        f"Variable {path} has unsupported type {type(value).__name__}; "
        "use strings, numbers, booleans, lists or maps"
    )


def _thaw(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {k: _thaw(v) for k, v in value.items()}
    if isinstance(value, tuple):
        return [_thaw(v) for v in value]
    return value
