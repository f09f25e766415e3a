"""
Ingress target discovery for Ingress Certificate Exporter.
"""

from typing import Iterable, List, Optional

import urllib3
from kubernetes import client, config
from kubernetes.client.exceptions import ApiException

from ingress_cert_exporter.logger import get_logger
from ingress_cert_exporter.models import HostnameTarget


class DiscoveryError(Exception):
    """Namespace or ingress listing failed; the collection pass cannot continue."""


def build_api_client(
    kubeconfig: Optional[str] = None, in_cluster: Optional[bool] = None
) -> client.ApiClient:
    """
    Build a Kubernetes API client.

    An explicit kubeconfig wins. Otherwise the pod service account is tried
    first and the default kubeconfig is the fallback, unless ``in_cluster``
    pins one of the two.

    Args:
        kubeconfig: Path to a kubeconfig file
        in_cluster: Force (True) or forbid (False) service-account credentials

    Returns:
        Configured API client
    """
    logger = get_logger("topology")

    try:
        if kubeconfig:
            api_client = config.new_client_from_config(config_file=kubeconfig)
            logger.info(f"Built cluster client from kubeconfig {kubeconfig}")
            return api_client

        if in_cluster is not False:
            configuration = client.Configuration()
            try:
                config.load_incluster_config(client_configuration=configuration)
                logger.info("Built cluster client from service account")
                return client.ApiClient(configuration)
            except config.ConfigException:
                if in_cluster:
                    raise
                logger.debug("No service account available, falling back to kubeconfig")

        api_client = config.new_client_from_config()
        logger.info("Built cluster client from default kubeconfig")
        return api_client

    except (config.ConfigException, OSError) as e:
        raise DiscoveryError(f"Unable to load cluster credentials: {e}") from e


class KubernetesTopology:
    """Lists the hostnames configured on every Ingress in the cluster."""

    def __init__(
        self,
        api_client: client.ApiClient,
        namespaces: Optional[Iterable[str]] = None,
        exclude_namespaces: Optional[Iterable[str]] = None,
    ):
        self.core_api = client.CoreV1Api(api_client)
        self.networking_api = client.NetworkingV1Api(api_client)
        self.namespaces = list(namespaces or [])
        self.exclude_namespaces = set(exclude_namespaces or [])
        self.logger = get_logger("topology")

    def list_namespaces(self) -> List[str]:
        """
        List namespace names.

        Raises:
            DiscoveryError: If the cluster API call fails
        """
        try:
            response = self.core_api.list_namespace()
        except (ApiException, urllib3.exceptions.HTTPError) as e:
            raise DiscoveryError(f"Unable to list namespaces: {e}") from e

        return [item.metadata.name for item in response.items]

    def list_ingress_rules(self, namespace: str) -> List[HostnameTarget]:
        """
        List one target per ingress rule in a namespace.

        Raises:
            DiscoveryError: If the cluster API call fails
        """
        try:
            response = self.networking_api.list_namespaced_ingress(namespace)
        except (ApiException, urllib3.exceptions.HTTPError) as e:
            raise DiscoveryError(
                f"Unable to list ingress resources in namespace {namespace}: {e}"
            ) from e

        targets = []
        for ingress in response.items:
            ingress_name = ingress.metadata.name
            for rule in (ingress.spec.rules if ingress.spec else None) or []:
                if not rule.host:
                    self.logger.debug(
                        f"Skipping rule without host on ingress {namespace}/{ingress_name}"
                    )
                    continue
                targets.append(
                    HostnameTarget(
                        hostname=rule.host, ingress_name=ingress_name, namespace=namespace
                    )
                )
        return targets

    def targets(self) -> List[HostnameTarget]:
        """
        Discover every probe target in the selected namespaces.

        Raises:
            DiscoveryError: If any listing call fails
        """
        namespaces = self.namespaces or self.list_namespaces()

        targets: List[HostnameTarget] = []
        for namespace in namespaces:
            if namespace in self.exclude_namespaces:
                continue
            targets.extend(self.list_ingress_rules(namespace))

        self.logger.debug(f"Discovered {len(targets)} targets in {len(namespaces)} namespaces")
        return targets
