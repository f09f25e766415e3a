"""
FastAPI application for Ingress Certificate Exporter.
"""

import asyncio
import ipaddress
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Awaitable, Callable, Dict

from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from ingress_cert_exporter import __version__
from ingress_cert_exporter.collector import IngressCertificateCollector
from ingress_cert_exporter.config import Config
from ingress_cert_exporter.logger import get_logger
from ingress_cert_exporter.metrics import ExporterMetrics
from ingress_cert_exporter.topology import DiscoveryError


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Lifespan handler that suppresses CancelledError during shutdown."""
    logger = get_logger("api")
    logger.info("Ingress Certificate Exporter API started")
    try:
        yield
    except asyncio.CancelledError:
        pass
    finally:
        logger.info("Ingress Certificate Exporter API shutting down")


def _is_ip_allowed(client_ip: str, allowed_ips: list, logger: Any) -> bool:
    for allowed_ip in allowed_ips:
        try:
            if "/" in allowed_ip:
                network = ipaddress.ip_network(allowed_ip, strict=False)
                if ipaddress.ip_address(client_ip) in network:
                    return True
            elif client_ip == allowed_ip:
                return True
        except (ipaddress.AddressValueError, ValueError) as e:
            logger.warning(f"Invalid IP configuration '{allowed_ip}': {e}")
    return False


def create_app(
    collector: IngressCertificateCollector,
    metrics: ExporterMetrics,
    config: Config,
) -> FastAPI:
    """
    Create and configure FastAPI application.

    Args:
        collector: Certificate expiry collector, already registered on ``metrics``
        metrics: Exporter metrics owning the registry
        config: Configuration instance

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title="Ingress Certificate Exporter",
        description="Prometheus exporter for the TLS certificates of Kubernetes ingress hosts",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    logger = get_logger("api")

    @app.middleware("http")
    async def ip_whitelist_middleware(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        """Middleware to enforce IP whitelisting."""
        if not config.enable_ip_whitelist:
            return await call_next(request)

        client_ip = request.client.host if request.client else None

        # Handle case where client IP is not available (e.g., in tests)
        if not client_ip:
            logger.warning("Unable to determine client IP address, allowing request")
            return await call_next(request)

        if not _is_ip_allowed(client_ip, config.allowed_ips, logger):
            logger.warning(f"Access denied for IP address: {client_ip}")
            return JSONResponse(
                status_code=403,
                content={
                    "error": "Access forbidden",
                    "message": "Your IP address is not allowed to access this service",
                    "client_ip": client_ip,
                },
            )

        return await call_next(request)

    @app.get("/metrics", response_class=PlainTextResponse)
    async def get_metrics() -> PlainTextResponse:
        # Collection blocks on the cluster API and runs its own event loop
        loop = asyncio.get_running_loop()
        try:
            metrics_data: str = await loop.run_in_executor(None, metrics.get_metrics)
        except DiscoveryError as e:
            raise HTTPException(status_code=500, detail=f"Target discovery failed: {e}") from e
        except Exception as e:
            logger.error(f"Failed to generate metrics: {e}")
            raise HTTPException(status_code=500, detail="Failed to generate metrics") from e
        return PlainTextResponse(content=metrics_data, media_type=metrics.get_content_type())

    @app.get("/targets", response_class=JSONResponse)
    async def get_targets() -> JSONResponse:
        loop = asyncio.get_running_loop()
        try:
            observations = await loop.run_in_executor(None, collector.observe)
        except DiscoveryError as e:
            raise HTTPException(status_code=500, detail=f"Target discovery failed: {e}") from e

        return JSONResponse(
            content={
                "observations": [outcome.to_dict() for outcome in observations],
                "total": len(observations),
                "failures": sum(1 for outcome in observations if not outcome.ok),
            }
        )

    @app.get("/healthz", response_class=JSONResponse)
    async def get_health() -> JSONResponse:
        health_status: Dict[str, Any] = {
            **metrics.get_registry_status(),
            "probe_workers": config.workers,
            "probe_timeout": config.probe_timeout,
            "collection_timeout": config.collection_timeout,
            "status": "healthy",
            "version": __version__,
        }
        return JSONResponse(content=health_status)

    @app.get("/config", response_class=JSONResponse)
    async def get_config() -> JSONResponse:
        config_dict: Dict[str, Any] = config.model_dump()

        # Always redact sensitive information
        if config_dict.get("tls_key"):
            config_dict["tls_key"] = "***REDACTED***"
        if config_dict.get("kubeconfig"):
            config_dict["kubeconfig"] = "***REDACTED***"
        config_dict["allowed_ips"] = [
            f"***REDACTED*** ({len(config_dict['allowed_ips'])} IPs/networks)"
        ]

        return JSONResponse(content=config_dict)

    @app.get("/", response_class=Response)
    async def root() -> Response:
        html_content = f"""<!DOCTYPE html>
<html>
<head><title>Ingress Certificate Exporter</title><meta charset="utf-8"></head>
<body>
    <h1>Ingress Certificate Exporter v{__version__}</h1>
    <ul>
        <li><a href="/metrics">/metrics</a> - Prometheus metrics (runs a full probe pass)</li>
        <li><a href="/targets">/targets</a> - Current observations as JSON</li>
        <li><a href="/healthz">/healthz</a> - Health status</li>
        <li><a href="/config">/config</a> - Configuration (sensitive data redacted)</li>
    </ul>
</body>
</html>
"""
        return Response(content=html_content, media_type="text/html")

    return app
