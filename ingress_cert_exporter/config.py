"""
Configuration management for Ingress Certificate Exporter.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator


class Config(BaseModel):
    """Configuration model for Ingress Certificate Exporter."""

    # Server settings
    port: int = Field(default=8080, ge=1, le=65535)
    bind_address: str = Field(default="0.0.0.0")  # nosec B104

    # TLS settings for metrics endpoint
    tls_cert: Optional[str] = None
    tls_key: Optional[str] = None

    # Cluster access
    kubeconfig: Optional[str] = None
    in_cluster: Optional[bool] = None  # None: try service account, then kubeconfig

    # Target discovery
    namespaces: List[str] = Field(default_factory=list)  # empty: every namespace
    exclude_namespaces: List[str] = Field(default_factory=list)

    # Probe settings
    probe_port: int = Field(default=443, ge=1, le=65535)
    probe_timeout: str = Field(default="5s")
    probe_keepalive: str = Field(default="5s")
    workers: int = Field(default=32, ge=1, le=512)
    collection_timeout: str = Field(default="30s")
    require_dns_names: bool = Field(default=False)

    # Logging
    log_level: str = Field(default="INFO")
    log_file: Optional[str] = None

    # Operation modes
    dry_run: bool = Field(default=False)

    # Security settings
    allowed_ips: List[str] = Field(default_factory=lambda: ["127.0.0.1", "::1"])
    enable_ip_whitelist: bool = Field(default=False)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v.upper()

    @field_validator("kubeconfig")
    @classmethod
    def validate_kubeconfig(cls, v: Optional[str]) -> Optional[str]:
        """Expand the kubeconfig path; a missing file is reported at client build time."""
        if not v:
            return None
        path = Path(v).expanduser()
        if not path.exists():
            logging.warning(f"Kubeconfig file does not exist: {v}")
        return str(path)

    @field_validator("namespaces", "exclude_namespaces")
    @classmethod
    def validate_namespaces(cls, v: List[str]) -> List[str]:
        """Drop blank entries and duplicates, keeping order."""
        seen: List[str] = []
        for name in v:
            name = name.strip()
            if name and name not in seen:
                seen.append(name)
        return seen

    @field_validator("allowed_ips")
    @classmethod
    def validate_allowed_ips(cls, v: List[str]) -> List[str]:
        """Validate IP addresses and CIDR blocks in allowed_ips list."""
        import ipaddress

        validated_ips = []
        for ip_str in v:
            try:
                if "/" in ip_str:
                    ipaddress.ip_network(ip_str, strict=False)
                else:
                    ipaddress.ip_address(ip_str)
                validated_ips.append(ip_str)
            except (ipaddress.AddressValueError, ValueError) as e:
                logging.error(f"Invalid IP address or network '{ip_str}': {e}")

        # Ensure localhost is always allowed for health checks
        for localhost in ["127.0.0.1", "::1"]:
            if localhost not in validated_ips:
                validated_ips.append(localhost)
                logging.info(f"Added {localhost} to allowed IPs for localhost access")

        return validated_ips

    @field_validator("probe_timeout", "probe_keepalive")
    @classmethod
    def validate_duration(cls, v: str) -> str:
        """Validate duration format (e.g., '5s', '1m')."""
        if not v:
            raise ValueError("Duration cannot be empty")

        pattern = r"^\d+[smhd]$"
        if not re.match(pattern, v):
            raise ValueError("Duration must be in format like '5s', '1m', '1h', '1d'")
        if int(v[:-1]) == 0:
            raise ValueError("Probe durations must be greater than zero")
        return v

    @field_validator("collection_timeout")
    @classmethod
    def validate_collection_timeout(cls, v: str) -> str:
        """Validate collection deadline; '0s' disables it."""
        if not re.match(r"^\d+[smhd]$", v or ""):
            raise ValueError("Duration must be in format like '30s', '2m'")
        return v

    def parse_duration_seconds(self, duration: str) -> int:
        """Parse duration string to seconds."""
        match = re.match(r"^(\d+)([smhd])$", duration)
        if not match:
            raise ValueError(f"Invalid duration format: {duration}")

        value, unit = match.groups()
        multipliers = {"s": 1, "m": 60, "h": 3600, "d": 86400}

        return int(value) * multipliers[unit]

    @property
    def probe_timeout_seconds(self) -> int:
        """Get per-probe connect timeout in seconds."""
        return self.parse_duration_seconds(self.probe_timeout)

    @property
    def probe_keepalive_seconds(self) -> int:
        """Get TCP keep-alive interval in seconds."""
        return self.parse_duration_seconds(self.probe_keepalive)

    @property
    def collection_timeout_seconds(self) -> Optional[int]:
        """Get the collection pass deadline in seconds, or None when disabled."""
        seconds = self.parse_duration_seconds(self.collection_timeout)
        return seconds or None


def load_config(config_path: Optional[str] = None) -> Config:
    """
    Load configuration from file or environment variables.

    Args:
        config_path: Path to configuration file

    Returns:
        Config object
    """
    config_data: Dict[str, Any] = {}

    if config_path:
        config_file = Path(config_path)
        if config_file.exists():
            with open(config_file, "r", encoding="utf-8") as f:
                config_data = yaml.safe_load(f) or {}
        else:
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

    env_overrides = _get_env_overrides()
    config_data.update(env_overrides)

    return Config(**config_data)


def _to_bool(value: str) -> bool:
    return value.lower() in ("true", "1", "yes")


def _get_env_overrides() -> dict:
    """Get configuration overrides from environment variables."""
    env_mapping: Dict[str, tuple[str, Callable[[str], Any]]] = {
        "INGRESS_EXPORTER_PORT": ("port", int),
        "INGRESS_EXPORTER_BIND_ADDRESS": ("bind_address", str),
        "INGRESS_EXPORTER_TLS_CERT": ("tls_cert", str),
        "INGRESS_EXPORTER_TLS_KEY": ("tls_key", str),
        "INGRESS_EXPORTER_KUBECONFIG": ("kubeconfig", str),
        "INGRESS_EXPORTER_IN_CLUSTER": ("in_cluster", _to_bool),
        "INGRESS_EXPORTER_PROBE_PORT": ("probe_port", int),
        "INGRESS_EXPORTER_PROBE_TIMEOUT": ("probe_timeout", str),
        "INGRESS_EXPORTER_PROBE_KEEPALIVE": ("probe_keepalive", str),
        "INGRESS_EXPORTER_WORKERS": ("workers", int),
        "INGRESS_EXPORTER_COLLECTION_TIMEOUT": ("collection_timeout", str),
        "INGRESS_EXPORTER_REQUIRE_DNS_NAMES": ("require_dns_names", _to_bool),
        "INGRESS_EXPORTER_LOG_LEVEL": ("log_level", str),
        "INGRESS_EXPORTER_LOG_FILE": ("log_file", str),
        "INGRESS_EXPORTER_DRY_RUN": ("dry_run", _to_bool),
        "INGRESS_EXPORTER_ENABLE_IP_WHITELIST": ("enable_ip_whitelist", _to_bool),
    }

    overrides = {}
    for env_var, (config_key, converter) in env_mapping.items():
        value = os.getenv(env_var)
        if value is not None:
            try:
                overrides[config_key] = converter(value)
            except (ValueError, TypeError) as e:
                logging.warning(f"Invalid value for {env_var}: {value} - {e}")

    # Handle list environment variables
    namespaces = os.getenv("INGRESS_EXPORTER_NAMESPACES")
    if namespaces:
        overrides["namespaces"] = [n.strip() for n in namespaces.split(",")]

    exclude_namespaces = os.getenv("INGRESS_EXPORTER_EXCLUDE_NAMESPACES")
    if exclude_namespaces:
        overrides["exclude_namespaces"] = [n.strip() for n in exclude_namespaces.split(",")]

    allowed_ips = os.getenv("INGRESS_EXPORTER_ALLOWED_IPS")
    if allowed_ips:
        overrides["allowed_ips"] = [ip.strip() for ip in allowed_ips.split(",")]

    return overrides


def create_example_config(output_path: str = "config.example.yaml") -> None:
    """Create an example configuration file."""
    example_config = {
        "port": 8080,
        "bind_address": "0.0.0.0",  # nosec B104
        "kubeconfig": None,
        "in_cluster": None,
        "namespaces": [],
        "exclude_namespaces": ["kube-system"],
        "probe_port": 443,
        "probe_timeout": "5s",
        "probe_keepalive": "5s",
        "workers": 32,
        "collection_timeout": "30s",
        "require_dns_names": False,
        "log_level": "INFO",
        "dry_run": False,
        "allowed_ips": ["127.0.0.1", "::1", "10.0.0.0/8"],
        "enable_ip_whitelist": False,
    }

    with open(output_path, "w", encoding="utf-8") as f:
        yaml.dump(example_config, f, default_flow_style=False, sort_keys=False)
