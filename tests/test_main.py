"""
Tests for the command line entry point.
"""

import asyncio
from unittest.mock import MagicMock, patch

from click.testing import CliRunner

import main
from ingress_cert_exporter import __version__
from ingress_cert_exporter.collector import IngressCertificateCollector
from ingress_cert_exporter.models import HostnameTarget, ProbeOutcome


class TestCli:
    """Test option handling."""

    def test_version(self):
        result = CliRunner().invoke(main.main, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.output

    @patch("main.asyncio.run")
    @patch("main.IngressCertExporter")
    def test_overrides_are_forwarded(self, mock_exporter, mock_run):
        result = CliRunner().invoke(main.main, ["--port", "9100", "--dry-run"])

        assert result.exit_code == 0
        mock_exporter.assert_called_once_with(None, overrides={"port": 9100}, dry_run=True)
        mock_run.assert_called_once()

    @patch("main.asyncio.run", side_effect=RuntimeError("no cluster"))
    @patch("main.IngressCertExporter")
    def test_failure_exits_non_zero(self, mock_exporter, mock_run):
        result = CliRunner().invoke(main.main, [])

        assert result.exit_code == 1


class TestIngressCertExporter:
    """Test application wiring."""

    @patch("main.setup_logging")
    @patch("main.build_api_client", return_value=MagicMock())
    def test_initialize_registers_collector(self, mock_build, mock_logging):
        exporter = main.IngressCertExporter(overrides={"workers": 2, "probe_timeout": "2s"})

        exporter.initialize()
        try:
            assert exporter.config.workers == 2
            assert isinstance(exporter.collector, IngressCertificateCollector)
            assert exporter.scheduler.workers == 2
            assert exporter.app is not None
            mock_build.assert_called_once_with(None, None)
        finally:
            exporter.shutdown()

    @patch("main.setup_logging")
    @patch("main.build_api_client", return_value=MagicMock())
    def test_dry_run_collects_once(self, mock_build, mock_logging, capsys):
        exporter = main.IngressCertExporter(dry_run=True)
        observations = [
            ProbeOutcome("a.example.com", "web", "shop", "a.example.com", 7.0, True),
            ProbeOutcome.failed(HostnameTarget("b.example.com", "api", "shop")),
        ]

        with patch.object(
            IngressCertificateCollector, "observe", return_value=observations
        ) as mock_observe:
            asyncio.run(exporter.run())

        mock_observe.assert_called_once()
        output = capsys.readouterr().out
        assert "shop/web a.example.com cn=a.example.com days=7 ok" in output
        assert "shop/api b.example.com cn=- days=-1 FAILED" in output
