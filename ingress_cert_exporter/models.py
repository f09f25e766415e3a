"""
Data model for Ingress Certificate Exporter.
"""

from dataclasses import asdict, dataclass
from typing import Any, Dict

# Reported for a target whose TLS session could not be established.
FAILURE_SENTINEL = -1.0


@dataclass(frozen=True)
class HostnameTarget:
    """A hostname named by one ingress rule."""

    hostname: str
    ingress_name: str
    namespace: str


@dataclass(frozen=True)
class ProbeOutcome:
    """
    Result of probing one certificate presented by a target.

    A failed dial or handshake produces exactly one outcome with ``ok=False``
    and ``days_until_expiry`` set to ``FAILURE_SENTINEL``. An expired
    certificate has a negative value with ``ok=True``; only the flag tells the
    two apart.
    """

    domain: str
    ingress: str
    namespace: str
    common_name: str
    days_until_expiry: float
    ok: bool

    @classmethod
    def failed(cls, target: HostnameTarget) -> "ProbeOutcome":
        """Build the sentinel outcome for a target that could not be probed."""
        return cls(
            domain=target.hostname,
            ingress=target.ingress_name,
            namespace=target.namespace,
            common_name="",
            days_until_expiry=FAILURE_SENTINEL,
            ok=False,
        )

    def labels(self) -> Dict[str, str]:
        """Labels of the exported gauge sample."""
        return {
            "domain": self.domain,
            "ingress": self.ingress,
            "common_name": self.common_name,
            "namespace": self.namespace,
        }

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
