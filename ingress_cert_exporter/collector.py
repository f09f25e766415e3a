"""
Prometheus collector publishing ingress certificate expiry.
"""

import time
from typing import TYPE_CHECKING, Iterable, List, Optional

from prometheus_client.core import GaugeMetricFamily, Metric
from prometheus_client.registry import Collector

from ingress_cert_exporter.dedupe import dedupe
from ingress_cert_exporter.logger import (
    get_logger,
    log_collection_complete,
    log_collection_start,
    log_discovery_error,
)
from ingress_cert_exporter.models import ProbeOutcome
from ingress_cert_exporter.scheduler import ScatterGatherScheduler
from ingress_cert_exporter.topology import DiscoveryError, KubernetesTopology

if TYPE_CHECKING:
    from ingress_cert_exporter.metrics import ExporterMetrics

METRIC_NAME = "ssl_expiry"
METRIC_HELP = "Checking SSL Expiration Dates of all ingress hosts"
METRIC_LABELS = ["domain", "ingress", "common_name", "namespace"]


class IngressCertificateCollector(Collector):
    """
    Pull-based collector for the ``ssl_expiry`` gauge family.

    ``describe`` only declares the family. Every ``collect`` runs a fresh
    discovery and probe pass; nothing is kept between scrapes.
    """

    def __init__(
        self,
        topology: KubernetesTopology,
        scheduler: ScatterGatherScheduler,
        metrics: Optional["ExporterMetrics"] = None,
    ):
        self.topology = topology
        self.scheduler = scheduler
        self.metrics = metrics
        self.logger = get_logger("collector")

    def describe(self) -> Iterable[Metric]:
        yield GaugeMetricFamily(METRIC_NAME, METRIC_HELP, labels=METRIC_LABELS)

    def collect(self) -> Iterable[Metric]:
        """
        Run one collection pass and emit one sample per observation.

        Raises:
            DiscoveryError: If targets could not be listed; the scrape fails
        """
        family = GaugeMetricFamily(METRIC_NAME, METRIC_HELP, labels=METRIC_LABELS)
        seen = set()
        for outcome in self.observe():
            labels = outcome.labels()
            label_values = tuple(labels[name] for name in METRIC_LABELS)
            if label_values in seen:
                # Same series twice with different values, e.g. two certificates
                # in one chain sharing a common name
                self.logger.warning(
                    f"Duplicate series for {labels}; value {outcome.days_until_expiry:g}",
                    extra={
                        "domain": outcome.domain,
                        "ingress": outcome.ingress,
                        "namespace": outcome.namespace,
                    },
                )
            seen.add(label_values)
            family.add_metric(list(label_values), outcome.days_until_expiry)
        yield family

    def observe(self) -> List[ProbeOutcome]:
        """
        Discover targets, probe them and deduplicate the outcomes.

        Returns:
            The observation set of this pass

        Raises:
            DiscoveryError: If targets could not be listed
        """
        start_time = time.time()

        try:
            targets = self.topology.targets()
        except DiscoveryError as e:
            log_discovery_error(self.logger, e)
            if self.metrics:
                self.metrics.record_discovery_error()
            raise

        log_collection_start(self.logger, len(targets))

        observations = dedupe(self.scheduler.collect(targets))

        duration = time.time() - start_time
        failures = sum(1 for outcome in observations if not outcome.ok)
        log_collection_complete(self.logger, duration, len(targets), len(observations), failures)

        if self.metrics:
            self.metrics.record_collection(duration, len(targets), failures)

        return observations
