"""Stratum: dependency-ordered infrastructure provisioning and teardown."""

__version__ = "0.1.0"
