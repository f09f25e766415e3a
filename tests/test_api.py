"""
Tests for FastAPI endpoints.
"""

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from ingress_cert_exporter.api import create_app
from ingress_cert_exporter.collector import IngressCertificateCollector
from ingress_cert_exporter.config import Config
from ingress_cert_exporter.metrics import ExporterMetrics
from ingress_cert_exporter.models import HostnameTarget, ProbeOutcome
from ingress_cert_exporter.topology import DiscoveryError


class TestAPI:
    """Test API endpoints."""

    @pytest.fixture
    def config(self):
        return Config(kubeconfig=None, tls_key="/etc/exporter/tls.key")

    @pytest.fixture
    def mock_collector(self):
        collector = MagicMock(spec=IngressCertificateCollector)
        collector.observe.return_value = [
            ProbeOutcome("a.example.com", "web", "shop", "a.example.com", 12.0, True),
            ProbeOutcome.failed(HostnameTarget("b.example.com", "api", "shop")),
        ]
        return collector

    @pytest.fixture
    def mock_metrics(self):
        metrics = MagicMock(spec=ExporterMetrics)
        metrics.get_metrics.return_value = "# Mock metrics\nssl_expiry 1\n"
        metrics.get_content_type.return_value = "text/plain; version=0.0.4; charset=utf-8"
        metrics.get_registry_status.return_value = {"prometheus_registry": {"status": "healthy"}}
        return metrics

    @pytest.fixture
    def client(self, config, mock_collector, mock_metrics):
        app = create_app(collector=mock_collector, metrics=mock_metrics, config=config)
        return TestClient(app)

    def test_metrics_endpoint(self, client, mock_metrics):
        response = client.get("/metrics")

        assert response.status_code == 200
        assert "text/plain" in response.headers["content-type"]
        assert "ssl_expiry 1" in response.text
        mock_metrics.get_metrics.assert_called_once()

    def test_metrics_endpoint_fails_on_discovery_error(self, client, mock_metrics):
        mock_metrics.get_metrics.side_effect = DiscoveryError("Unable to list namespaces")

        response = client.get("/metrics")

        assert response.status_code == 500
        assert "Unable to list namespaces" in response.json()["detail"]

    def test_targets_endpoint(self, client):
        response = client.get("/targets")

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 2
        assert data["failures"] == 1
        assert data["observations"][1] == {
            "domain": "b.example.com",
            "ingress": "api",
            "namespace": "shop",
            "common_name": "",
            "days_until_expiry": -1.0,
            "ok": False,
        }

    def test_targets_endpoint_discovery_error(self, client, mock_collector):
        mock_collector.observe.side_effect = DiscoveryError("forbidden")

        response = client.get("/targets")

        assert response.status_code == 500

    def test_health_endpoint(self, client, mock_collector):
        response = client.get("/healthz")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "version" in data
        assert data["probe_workers"] == 32
        mock_collector.observe.assert_not_called()

    def test_config_endpoint_redacts_secrets(self, client):
        response = client.get("/config")

        assert response.status_code == 200
        data = response.json()
        assert data["tls_key"] == "***REDACTED***"
        assert data["allowed_ips"][0].startswith("***REDACTED***")
        assert data["probe_timeout"] == "5s"

    def test_root_page(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert "/metrics" in response.text

    def test_ip_whitelist_blocks_unknown_clients(self, mock_collector, mock_metrics):
        config = Config(enable_ip_whitelist=True, allowed_ips=["10.0.0.0/8"])
        client = TestClient(create_app(collector=mock_collector, metrics=mock_metrics, config=config))

        response = client.get("/metrics")

        assert response.status_code == 403
        mock_metrics.get_metrics.assert_not_called()
