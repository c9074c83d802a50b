"""Kubernetes API client wrapper for read-side status queries."""

from typing import Any, cast

import structlog
from kubernetes import client, config  # type: ignore[import-untyped]
from kubernetes.client.exceptions import ApiException  # type: ignore[import-untyped]

from .config import Settings
from .errors import PrerequisiteError

logger = structlog.get_logger()


class KubernetesClient:
    """Wrapper for Kubernetes API reads."""

    def __init__(self, settings: Settings) -> None:
        """Initialize Kubernetes client."""
        self.settings = settings
        self._load_config()
        self.core_v1 = client.CoreV1Api()
        self.custom = client.CustomObjectsApi()

    def _load_config(self) -> None:
        """Load Kubernetes configuration."""
        try:
            config.load_incluster_config()
            logger.info("Loaded in-cluster Kubernetes config")
        except config.ConfigException:
            kubeconfig = str(self.settings.kubeconfig) if self.settings.kubeconfig else None
            try:
                config.load_kube_config(config_file=kubeconfig)
            except config.ConfigException as e:
                raise PrerequisiteError(
                    f"Kubernetes config not found ({e}). Run 'stackctl cluster up' first."
                ) from e
            logger.info("Loaded local Kubernetes config")

    def namespace_exists(self, name: str) -> bool:
        try:
            self.core_v1.read_namespace(name=name)
            return True
        except ApiException as e:
            if e.status != 404:
                logger.error("Failed to read namespace", namespace=name, error=str(e))
            return False

    def get_custom_object(
        self,
        group: str,
        version: str,
        plural: str,
        name: str,
        namespace: str | None = None,
    ) -> dict[str, Any] | None:
        """Get a namespaced or cluster-scoped custom resource."""
        try:
            if namespace:
                obj = self.custom.get_namespaced_custom_object(
                    group=group, version=version, namespace=namespace, plural=plural, name=name
                )
            else:
                obj = self.custom.get_cluster_custom_object(
                    group=group, version=version, plural=plural, name=name
                )
            return cast(dict[str, Any], obj)
        except ApiException as e:
            if e.status != 404:
                logger.error("Failed to get custom object", plural=plural, name=name, error=str(e))
            return None

    def list_custom_objects(
        self,
        group: str,
        version: str,
        plural: str,
        namespace: str | None = None,
    ) -> list[dict[str, Any]]:
        try:
            if namespace:
                result = self.custom.list_namespaced_custom_object(
                    group=group, version=version, namespace=namespace, plural=plural
                )
            else:
                result = self.custom.list_cluster_custom_object(
                    group=group, version=version, plural=plural
                )
            return cast(list[dict[str, Any]], result.get("items", []))
        except ApiException as e:
            logger.error("Failed to list custom objects", plural=plural, error=str(e))
            return []

    def list_pods(self, namespace: str, label_selector: str | None = None) -> list[client.V1Pod]:
        try:
            pods = self.core_v1.list_namespaced_pod(
                namespace=namespace,
                label_selector=label_selector or "",
            )
            return list(pods.items)
        except ApiException as e:
            logger.error("Failed to list pods", namespace=namespace, error=str(e))
            return []

    @staticmethod
    def pod_ready(pod: client.V1Pod) -> bool:
        """Check the Ready condition of a pod."""
        if pod.status and pod.status.conditions:
            for condition in pod.status.conditions:
                if condition.type == "Ready":
                    return cast(bool, condition.status == "True")
        return False
