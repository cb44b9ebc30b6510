"""Variable and output substitution for resource configuration.

Supports substitution of:
- ${deployment} - Deployment identifier
- ${env} and any other variable declared in the spec's ``variables`` block
- ${<resource_id>.<output>} - An output of a declared dependency
"""

from __future__ import annotations

import re
from typing import Any, Mapping

from stratum.core.errors import ConfigurationError

REFERENCE_PATTERN = re.compile(r"\$\{([A-Za-z0-9_.-]+)\}")


def split_reference(token: str) -> tuple[str, str] | None:
    """Split ``db.endpoint`` into ``("db", "endpoint")``; None for plain variables."""
    resource_id, sep, key = token.rpartition(".")
    if not sep or not resource_id or not key:
        return None
    return resource_id, key


def find_references(config: Mapping[str, Any]) -> set[tuple[str, str]]:
    """Return every (resource_id, output_key) pair referenced by ``config``."""
    found: set[tuple[str, str]] = set()
    for value in config.values():
        if not isinstance(value, str):
            continue
        for match in REFERENCE_PATTERN.finditer(value):
            ref = split_reference(match.group(1))
            if ref is not None:
                found.add(ref)
    return found


class VariableSubstitutor:
    """Handles variable substitution in descriptor configuration."""

    def __init__(self, variables: Mapping[str, Any] | None = None) -> None:
        self.variables = {k: "" if v is None else str(v) for k, v in (variables or {}).items()}

    def substitute(self, value: Any) -> Any:
        """Recursively substitute variables in a value.

        Strings have ``${var}`` replaced; dicts and lists are processed
        recursively; other types are returned unchanged. Unknown variables
        and dependency references are left in place.
        """
        if isinstance(value, str):
            return REFERENCE_PATTERN.sub(self._replace_var, value)
        elif isinstance(value, dict):
            return {k: self.substitute(v) for k, v in value.items()}
        elif isinstance(value, list):
            return [self.substitute(item) for item in value]
        else:
            return value

    def _replace_var(self, match: re.Match[str]) -> str:
        return self.variables.get(match.group(1), match.group(0))


class OutputSubstitutor:
    """Resolves ``${dep.key}`` references against dependency outputs."""

    def __init__(self, outputs: Mapping[str, Mapping[str, Any]]) -> None:
        self._outputs = outputs

    def resolve(self, resource_id: str, config: Mapping[str, Any]) -> dict[str, Any]:
        return {key: self._resolve_value(resource_id, value) for key, value in config.items()}

    def _resolve_value(self, resource_id: str, value: Any) -> Any:
        if not isinstance(value, str):
            return value

        # A value that is exactly one reference keeps the output's type.
        whole = REFERENCE_PATTERN.fullmatch(value)
        if whole:
            ref = split_reference(whole.group(1))
            if ref is not None:
                return self._lookup(resource_id, *ref)

        def replace(match: re.Match[str]) -> str:
            ref = split_reference(match.group(1))
            if ref is None:
                return match.group(0)
            return str(self._lookup(resource_id, *ref))

        return REFERENCE_PATTERN.sub(replace, value)

    def _lookup(self, resource_id: str, dependency: str, key: str) -> Any:
        outputs = self._outputs.get(dependency)
        if outputs is None or key not in outputs:
            raise ConfigurationError(
                f"Unresolved reference ${{{dependency}.{key}}} in '{resource_id}'",
                details={"resource_id": resource_id, "dependency": dependency, "output": key},
            )
        return outputs[key]
