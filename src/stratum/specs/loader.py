"""
Deployment specification loader.

Reads a YAML document describing the resources of one deployment and
turns it into validated ResourceDescriptors.

Usage:
    from stratum.specs.loader import load_deployment_spec

    spec = load_deployment_spec("deploy/ai-agent.yaml")
    plan = build_plan(spec.descriptors)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import pydantic
import structlog
import yaml

from stratum.core.errors import ConfigurationError
from stratum.domain.models import ResourceDescriptor
from stratum.specs.substitution import VariableSubstitutor, find_references

logger = structlog.get_logger()

_RESOURCE_KEYS = {"id", "kind", "config", "depends_on", "backend"}


@dataclass(frozen=True)
class DeploymentSpec:
    """Validated contents of a deployment specification file."""

    descriptors: tuple[ResourceDescriptor, ...]
    deployment: str | None = None
    variables: dict[str, Any] = field(default_factory=dict)
    source: Path | None = None

    def get(self, resource_id: str) -> ResourceDescriptor | None:
        for descriptor in self.descriptors:
            if descriptor.id == resource_id:
                return descriptor
        return None


def load_deployment_spec(
    file_path: str | Path,
    *,
    deployment_id: str | None = None,
    variables: Mapping[str, Any] | None = None,
) -> DeploymentSpec:
    """
    Load a deployment specification from a YAML file.

    Args:
        file_path: Path to the specification file
        deployment_id: Deployment identifier exposed as ``${deployment}``
        variables: Extra variables overriding the file's ``variables`` block

    Returns:
        DeploymentSpec with validated descriptors

    Raises:
        ConfigurationError: If the file is missing, malformed, or
            references unknown resources
    """
    path = Path(file_path)
    if not path.exists():
        raise ConfigurationError(f"Deployment spec not found: {path}", details={"path": str(path)})

    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in {path}: {exc}", details={"path": str(path)}) from exc

    spec = parse_deployment_spec(data, deployment_id=deployment_id, variables=variables)
    logger.debug("deployment_spec_loaded", path=str(path), resources=len(spec.descriptors))
    return DeploymentSpec(
        descriptors=spec.descriptors,
        deployment=spec.deployment,
        variables=spec.variables,
        source=path,
    )


def parse_deployment_spec(
    data: Any,
    *,
    deployment_id: str | None = None,
    variables: Mapping[str, Any] | None = None,
) -> DeploymentSpec:
    """Validate an already-parsed specification document."""
    if not isinstance(data, dict):
        raise ConfigurationError("Deployment spec must be a mapping with a 'resources' key")

    raw_resources = data.get("resources")
    if raw_resources is None:
        raise ConfigurationError("Deployment spec has no 'resources'")

    file_variables = data.get("variables") or {}
    if not isinstance(file_variables, dict):
        raise ConfigurationError("'variables' must be a mapping")

    deployment = deployment_id or data.get("deployment")
    merged = {**file_variables, **(variables or {})}
    if deployment:
        merged.setdefault("deployment", deployment)
    substitutor = VariableSubstitutor(merged)

    descriptors = [
        _parse_resource(entry, substitutor) for entry in _iter_resources(raw_resources)
    ]
    validate_descriptors(descriptors)
    return DeploymentSpec(
        descriptors=tuple(descriptors),
        deployment=deployment,
        variables=merged,
    )


def _iter_resources(raw: Any) -> list[dict[str, Any]]:
    if isinstance(raw, dict):
        entries = []
        for resource_id, body in raw.items():
            if not isinstance(body, dict):
                raise ConfigurationError(f"Resource '{resource_id}' must be a mapping")
            entries.append({"id": resource_id, **body})
        return entries
    if isinstance(raw, list):
        for index, body in enumerate(raw):
            if not isinstance(body, dict):
                raise ConfigurationError(f"Resource #{index} must be a mapping")
        return list(raw)
    raise ConfigurationError("'resources' must be a list or a mapping")


def _parse_resource(entry: dict[str, Any], substitutor: VariableSubstitutor) -> ResourceDescriptor:
    resource_id = entry.get("id") or entry.get("name")
    if not resource_id:
        raise ConfigurationError("Resource is missing an 'id'", details={"entry": entry})
    resource_id = str(resource_id)

    unknown = set(entry) - _RESOURCE_KEYS - {"name"}
    if unknown:
        raise ConfigurationError(
            f"Resource '{resource_id}' has unknown keys: {', '.join(sorted(unknown))}",
            details={"resource_id": resource_id},
        )

    depends_on = entry.get("depends_on") or []
    if isinstance(depends_on, str):
        depends_on = [depends_on]
    if not isinstance(depends_on, list):
        raise ConfigurationError(
            f"'depends_on' of '{resource_id}' must be a list",
            details={"resource_id": resource_id},
        )

    config = entry.get("config") or {}
    if not isinstance(config, dict):
        raise ConfigurationError(
            f"'config' of '{resource_id}' must be a mapping",
            details={"resource_id": resource_id},
        )

    try:
        return ResourceDescriptor(
            id=resource_id,
            kind=entry.get("kind"),
            config=substitutor.substitute(config),
            depends_on=frozenset(str(dep) for dep in depends_on),
            backend=entry.get("backend"),
        )
    except (pydantic.ValidationError, ValueError) as exc:
        raise ConfigurationError(
            f"Invalid resource '{resource_id}': {exc}",
            details={"resource_id": resource_id},
        ) from exc


def validate_descriptors(descriptors: list[ResourceDescriptor] | tuple[ResourceDescriptor, ...]) -> None:
    """Check identifier uniqueness and that every reference resolves.

    Self-loops are left to the graph builder, which reports them as cycles.
    """
    seen: set[str] = set()
    for descriptor in descriptors:
        if descriptor.id in seen:
            raise ConfigurationError(
                f"Duplicate resource id '{descriptor.id}'",
                details={"resource_id": descriptor.id},
            )
        seen.add(descriptor.id)

    for descriptor in descriptors:
        missing = sorted(descriptor.depends_on - seen)
        if missing:
            raise ConfigurationError(
                f"Resource '{descriptor.id}' depends on unknown resources: {', '.join(missing)}",
                details={"resource_id": descriptor.id},
            )
        for dependency, key in sorted(find_references(descriptor.config)):
            if dependency not in descriptor.depends_on:
                raise ConfigurationError(
                    f"Resource '{descriptor.id}' references ${{{dependency}.{key}}} "
                    f"but does not depend on '{dependency}'",
                    details={"resource_id": descriptor.id},
                )
