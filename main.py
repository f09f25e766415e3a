#!/usr/bin/env python3
"""
Ingress Certificate Exporter - Main Application Entry Point
"""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import click
import uvicorn
from fastapi import FastAPI

from ingress_cert_exporter import __version__
from ingress_cert_exporter.api import create_app
from ingress_cert_exporter.collector import IngressCertificateCollector
from ingress_cert_exporter.config import Config, load_config
from ingress_cert_exporter.logger import setup_logging
from ingress_cert_exporter.metrics import ExporterMetrics
from ingress_cert_exporter.probe import CertificateProbe
from ingress_cert_exporter.scheduler import ScatterGatherScheduler
from ingress_cert_exporter.topology import KubernetesTopology, build_api_client


class IngressCertExporter:
    """Main application class for Ingress Certificate Exporter."""

    def __init__(
        self,
        config_path: Optional[str] = None,
        overrides: Optional[Dict[str, Any]] = None,
        dry_run: bool = False,
    ):
        self.config: Optional[Config] = None
        self.scheduler: Optional[ScatterGatherScheduler] = None
        self.metrics: Optional[ExporterMetrics] = None
        self.collector: Optional[IngressCertificateCollector] = None
        self.app: Optional[FastAPI] = None
        self.config_path = config_path
        self.overrides = overrides or {}
        self.dry_run = dry_run
        self.logger = logging.getLogger(__name__)

    def initialize(self) -> None:
        """Initialize all application components."""
        try:
            config = load_config(self.config_path)
            if self.overrides:
                config = Config(**{**config.model_dump(), **self.overrides})
            self.config = config

            setup_logging(self.config)
            self.logger.info("Initializing Ingress Certificate Exporter")

            api_client = build_api_client(self.config.kubeconfig, self.config.in_cluster)
            topology = KubernetesTopology(
                api_client,
                namespaces=self.config.namespaces,
                exclude_namespaces=self.config.exclude_namespaces,
            )

            probe = CertificateProbe(
                port=self.config.probe_port,
                timeout=self.config.probe_timeout_seconds,
                keepalive=self.config.probe_keepalive_seconds,
                require_dns_names=self.config.require_dns_names,
            )
            self.scheduler = ScatterGatherScheduler(
                probe.probe,
                workers=self.config.workers,
                collection_timeout=self.config.collection_timeout_seconds,
            )

            self.metrics = ExporterMetrics()
            self.collector = IngressCertificateCollector(topology, self.scheduler, self.metrics)
            self.metrics.register_collector(self.collector)

            self.app = create_app(collector=self.collector, metrics=self.metrics, config=self.config)

            self.logger.info("Ingress Certificate Exporter initialized successfully")

        except Exception as e:
            self.logger.error(f"Failed to initialize application: {e}")
            raise

    async def run(self) -> None:
        """Run the metrics server or perform a single dry-run collection."""
        if not self.app:
            self.initialize()

        assert self.config is not None, "Config should be initialized"
        assert self.collector is not None, "Collector should be initialized"

        if self.dry_run or self.config.dry_run:
            self.logger.info("Running in dry-run mode - collecting once without serving")
            try:
                loop = asyncio.get_running_loop()
                observations = await loop.run_in_executor(None, self.collector.observe)
                for outcome in observations:
                    status = "ok" if outcome.ok else "FAILED"
                    click.echo(
                        f"{outcome.namespace}/{outcome.ingress} {outcome.domain} "
                        f"cn={outcome.common_name or '-'} days={outcome.days_until_expiry:g} {status}"
                    )
                self.logger.info("Dry-run collection completed")
            finally:
                self.shutdown()
            return

        config_dict: Dict[str, Any] = {
            "app": self.app,
            "host": self.config.bind_address,
            "port": self.config.port,
            "log_level": self.config.log_level.lower(),
            "access_log": True,
        }

        if self.config.tls_cert and self.config.tls_key:
            config_dict.update(
                {
                    "ssl_keyfile": self.config.tls_key,
                    "ssl_certfile": self.config.tls_cert,
                }
            )
            self.logger.info(
                f"Starting HTTPS server on {self.config.bind_address}:{self.config.port}"
            )
        else:
            self.logger.info(
                f"Starting HTTP server on {self.config.bind_address}:{self.config.port}"
            )

        server = uvicorn.Server(uvicorn.Config(**config_dict))

        try:
            await server.serve()
        except KeyboardInterrupt:
            self.logger.info("Received interrupt signal")
        finally:
            self.shutdown()

    def shutdown(self) -> None:
        """Release probe workers."""
        self.logger.info("Starting graceful shutdown")

        if self.scheduler:
            self.scheduler.close()

        self.logger.info("Graceful shutdown completed")


@click.command()
@click.option(
    "--config",
    "-f",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file",
)
@click.option(
    "--kubeconfig",
    type=click.Path(exists=True, path_type=Path),
    help="Kubeconfig path (defaults to the pod service account)",
)
@click.option("--port", "-p", type=int, help="Port on which the metrics server listens")
@click.option("--version", "-v", is_flag=True, help="Show version information")
@click.option("--dry-run", is_flag=True, help="Collect once and print results, don't start server")
def main(
    config: Optional[Path],
    kubeconfig: Optional[Path],
    port: Optional[int],
    version: bool,
    dry_run: bool,
) -> None:
    """Ingress Certificate Exporter - Export TLS expiry of Kubernetes ingress hosts."""
    if version:
        click.echo(f"Ingress Certificate Exporter v{__version__}")
        return

    overrides: Dict[str, Any] = {}
    if kubeconfig:
        overrides["kubeconfig"] = str(kubeconfig)
    if port:
        overrides["port"] = port

    try:
        exporter = IngressCertExporter(
            str(config) if config else None, overrides=overrides, dry_run=dry_run
        )
        asyncio.run(exporter.run())
    except KeyboardInterrupt:
        click.echo("\nShutdown requested by user")
        sys.exit(0)
    except Exception as e:
        click.echo(f"Application failed: {e}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
