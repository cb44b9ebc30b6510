"""Deployment specification loading and substitution."""

from stratum.specs.loader import (
    DeploymentSpec,
    load_deployment_spec,
    parse_deployment_spec,
    validate_descriptors,
)
from stratum.specs.substitution import OutputSubstitutor, VariableSubstitutor, find_references

__all__ = [
    "DeploymentSpec",
    "OutputSubstitutor",
    "VariableSubstitutor",
    "find_references",
    "load_deployment_spec",
    "parse_deployment_spec",
    "validate_descriptors",
]
