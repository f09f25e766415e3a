"""
Prometheus registry and exporter self-metrics for Ingress Certificate Exporter.
"""

import re
import socket
import sys
import time
from typing import Any, Dict

import psutil
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
)
from prometheus_client.registry import Collector

from ingress_cert_exporter.logger import get_logger

# Series whose values are whole numbers and are rendered without a decimal part
INTEGER_METRICS = (
    "ssl_expiry{",
    "ssl_expiry_targets",
    "ssl_expiry_probe_failures",
    "ssl_expiry_last_collection_timestamp",
    "app_memory_bytes",
    "app_thread_count",
)


class ExporterMetrics:
    """Owns the registry the ``/metrics`` endpoint renders."""

    def __init__(self) -> None:
        self.logger = get_logger("metrics")
        self.registry = CollectorRegistry()

        # Collection metrics
        self.collection_duration_seconds = Histogram(
            "ssl_expiry_collection_duration_seconds",
            "Duration of a full discovery and probe pass",
            buckets=(0.5, 1, 2.5, 5, 10, 20, 30, 60, 120),
            registry=self.registry,
        )

        self.last_collection_timestamp = Gauge(
            "ssl_expiry_last_collection_timestamp",
            "Completion time of the last successful collection (Unix timestamp)",
            registry=self.registry,
        )

        self.targets_total = Gauge(
            "ssl_expiry_targets",
            "Ingress hostnames probed in the last collection",
            registry=self.registry,
        )

        self.probe_failures = Gauge(
            "ssl_expiry_probe_failures",
            "Targets that could not be probed in the last collection",
            registry=self.registry,
        )

        self.discovery_errors = Counter(
            "ssl_expiry_discovery_errors",
            "Collections aborted because ingress discovery failed",
            registry=self.registry,
        )

        # Application metrics
        self.app_memory_bytes = Gauge(
            "app_memory_bytes",
            "Application memory usage in bytes",
            ["type"],  # rss, vms
            registry=self.registry,
        )

        self.app_thread_count = Gauge(
            "app_thread_count", "Number of application threads", registry=self.registry
        )

        self.app_info = Info(
            "app_info",
            "Application information",
            ["hostname", "version", "python_version"],
            registry=self.registry,
        )

        self._last_system_update = 0.0
        self._system_update_interval = 30  # Update system metrics every 30 seconds

        self.logger.info("Exporter metrics initialized")

    def register_collector(self, collector: Collector) -> None:
        """Register a custom collector; only its ``describe`` runs now."""
        self.registry.register(collector)

    def record_collection(self, duration: float, targets: int, failures: int) -> None:
        """Record a finished collection pass."""
        self.collection_duration_seconds.observe(duration)
        self.last_collection_timestamp.set(int(time.time()))
        self.targets_total.set(targets)
        self.probe_failures.set(failures)

    def record_discovery_error(self) -> None:
        self.discovery_errors.inc()

    def update_system_metrics(self) -> None:
        """Update process metrics, at most once per update interval."""
        current_time = time.time()

        if current_time - self._last_system_update < self._system_update_interval:
            return

        try:
            process = psutil.Process()

            memory_info = process.memory_info()
            self.app_memory_bytes.labels(type="rss").set(int(memory_info.rss))
            self.app_memory_bytes.labels(type="vms").set(int(memory_info.vms))

            self.app_thread_count.set(int(process.num_threads()))

            from ingress_cert_exporter import __version__

            self.app_info.labels(
                hostname=socket.gethostname(),
                version=__version__,
                python_version=f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}",
            ).info({"platform": sys.platform, "process_id": str(process.pid)})

            self._last_system_update = current_time

        except psutil.Error as e:
            self.logger.error(f"Failed to update system metrics: {e}")

    def get_metrics(self) -> str:
        """
        Get Prometheus metrics in text format.

        Rendering runs every registered collector, including a full
        certificate collection pass.

        Returns:
            Metrics in Prometheus text format

        Raises:
            DiscoveryError: If the certificate collection could not list targets
        """
        self.update_system_metrics()

        raw_metrics = generate_latest(self.registry).decode("utf-8")

        return self._format_numeric_values(raw_metrics)

    def _format_numeric_values(self, metrics_text: str) -> str:
        """
        Format whole-number series without a decimal part.

        Args:
            metrics_text: Raw Prometheus metrics text

        Returns:
            Formatted metrics text
        """
        formatted_lines = []

        for line in metrics_text.split("\n"):
            if line.startswith("#") or not line.strip():
                formatted_lines.append(line)
                continue

            match = re.match(r"^(.+})\s+(\S+)$", line) or re.match(r"^(\S+)\s+(\S+)$", line)
            if not match or not match.group(1).startswith(INTEGER_METRICS):
                formatted_lines.append(line)
                continue

            metric_name, value = match.groups()
            try:
                float_value = float(value)
            except ValueError:
                formatted_lines.append(line)
                continue

            if float_value.is_integer():
                formatted_lines.append(f"{metric_name} {int(float_value)}")
            else:
                formatted_lines.append(line)

        return "\n".join(formatted_lines)

    def get_content_type(self) -> str:
        """Get content type for metrics endpoint."""
        return CONTENT_TYPE_LATEST

    def get_registry_status(self) -> Dict[str, Any]:
        """Get Prometheus registry status for health checks."""
        return {
            "prometheus_registry": {
                "status": "healthy",
                "last_update": self._last_system_update,
            }
        }
