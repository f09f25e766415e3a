"""
Standardized logging configuration for Ingress Certificate Exporter.
"""

import logging
import logging.handlers
import sys
from pathlib import Path

from ingress_cert_exporter.config import Config


class CustomFormatter(logging.Formatter):
    """Custom formatter with colored output for console."""

    # Color codes
    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
        "RESET": "\033[0m",  # Reset
    }

    def __init__(self, use_color: bool = True) -> None:
        self.use_color = use_color
        super().__init__()

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with optional colors."""
        if self.use_color and record.levelname in self.COLORS:
            color = self.COLORS[record.levelname]
            reset = self.COLORS["RESET"]
            level_name = f"{color}{record.levelname:<8}{reset}"
        else:
            level_name = f"{record.levelname:<8}"

        timestamp = self.formatTime(record, "%Y-%m-%d %H:%M:%S")

        message = record.getMessage()

        if record.exc_info:
            if not message.endswith("\n"):
                message += "\n"
            message += self.formatException(record.exc_info)

        return f"{timestamp} | {level_name} | {record.name:<30} | {message}"


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    EXTRA_FIELDS = (
        "domain",
        "ingress",
        "namespace",
        "error_type",
        "target_count",
        "outcome_count",
        "failure_count",
        "collection_duration",
    )

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        import json
        from datetime import datetime

        log_data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        for field in self.EXTRA_FIELDS:
            if hasattr(record, field):
                log_data[field] = getattr(record, field)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False)


def setup_logging(config: Config) -> None:
    """
    Setup logging configuration.

    Args:
        config: Configuration object
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, config.log_level))

    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(getattr(logging, config.log_level))

    # Use colored formatter for console if output is a TTY
    use_color = hasattr(sys.stdout, "isatty") and sys.stdout.isatty()
    console_handler.setFormatter(CustomFormatter(use_color=use_color))
    root_logger.addHandler(console_handler)

    if config.log_file:
        log_path = Path(config.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        # Rotating file handler (10MB max, 5 backups)
        file_handler = logging.handlers.RotatingFileHandler(
            config.log_file, maxBytes=10 * 1024 * 1024, backupCount=5, encoding="utf-8"
        )
        file_handler.setLevel(getattr(logging, config.log_level))
        file_handler.setFormatter(StructuredFormatter())
        root_logger.addHandler(file_handler)

    # Kubernetes client logs every request at DEBUG through urllib3
    logging.getLogger("uvicorn").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("kubernetes").setLevel(logging.WARNING)

    app_logger = logging.getLogger("ingress_cert_exporter")
    app_logger.info(f"Logging initialized - Level: {config.log_level}")

    if config.log_file:
        app_logger.info(f"Log file: {config.log_file}")


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance.

    Args:
        name: Logger name

    Returns:
        Logger instance
    """
    return logging.getLogger(f"ingress_cert_exporter.{name}")


# Logging helpers for collection operations
def log_collection_start(logger: logging.Logger, target_count: int) -> None:
    """Log collection pass start."""
    logger.info(
        f"Starting certificate collection for {target_count} targets",
        extra={"target_count": target_count},
    )


def log_certificate_observed(
    logger: logging.Logger, domain: str, common_name: str, days_until_expiry: float
) -> None:
    """Log a certificate read from a target."""
    logger.debug(
        f"Certificate observed for {domain}: CN={common_name}, expires in {days_until_expiry:g} days",
        extra={"domain": domain},
    )


def log_probe_failure(
    logger: logging.Logger,
    domain: str,
    ingress: str,
    namespace: str,
    error: BaseException,
    error_type: str = "dial_error",
) -> None:
    """Log a target that could not be probed."""
    logger.warning(
        f"Probe failed for {domain} (ingress {namespace}/{ingress}): {error}",
        extra={
            "domain": domain,
            "ingress": ingress,
            "namespace": namespace,
            "error_type": error_type,
        },
    )


def log_collection_complete(
    logger: logging.Logger, duration: float, targets: int, outcomes: int, failures: int
) -> None:
    """Log collection pass completion."""
    logger.info(
        f"Certificate collection completed - Duration: {duration:.2f}s, "
        f"Targets: {targets}, Records: {outcomes}, Failures: {failures}",
        extra={
            "collection_duration": duration,
            "target_count": targets,
            "outcome_count": outcomes,
            "failure_count": failures,
        },
    )


def log_discovery_error(logger: logging.Logger, error: BaseException) -> None:
    """Log a failed target discovery; the scrape is aborted."""
    logger.error(
        f"Target discovery failed, aborting collection: {error}",
        extra={"error_type": "discovery_error"},
    )
