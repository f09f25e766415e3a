"""
Ingress Certificate Exporter

Probes the TLS certificates served by every hostname routed through
Kubernetes ingress rules and exports their remaining validity as
Prometheus metrics.
"""

__version__ = "1.0.0"
__author__ = "Ingress Certificate Exporter Team"
__description__ = "Prometheus exporter for Kubernetes ingress TLS certificate expiry"

from ingress_cert_exporter.collector import IngressCertificateCollector
from ingress_cert_exporter.config import Config
from ingress_cert_exporter.metrics import ExporterMetrics
from ingress_cert_exporter.probe import CertificateProbe
from ingress_cert_exporter.scheduler import ScatterGatherScheduler

__all__ = [
    "Config",
    "CertificateProbe",
    "ExporterMetrics",
    "IngressCertificateCollector",
    "ScatterGatherScheduler",
]
