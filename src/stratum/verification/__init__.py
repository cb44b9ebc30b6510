"""Post-creation health verification."""

from stratum.verification.probes import KIND_PROBES, http_probe, tcp_probe
from stratum.verification.verifier import Verifier

__all__ = ["KIND_PROBES", "Verifier", "http_probe", "tcp_probe"]
