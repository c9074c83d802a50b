"""k3d cluster lifecycle."""

import json
from pathlib import Path
from typing import Any

import structlog

from .runner import CommandRunner

logger = structlog.get_logger()


class K3d:
    """Manages the local k3d cluster and its registry."""

    def __init__(self, runner: CommandRunner, cluster_name: str) -> None:
        self.runner = runner
        self.cluster_name = cluster_name

    def _cluster(self) -> dict[str, Any] | None:
        result = self.runner.run(["k3d", "cluster", "list", "-o", "json"], check=False)
        if not result.ok or not result.stdout.strip():
            return None
        for cluster in json.loads(result.stdout):
            if cluster.get("name") == self.cluster_name:
                found: dict[str, Any] = cluster
                return found
        return None

    def cluster_exists(self) -> bool:
        return self._cluster() is not None

    def servers_running(self) -> int:
        cluster = self._cluster()
        if cluster is None:
            return 0
        return int(cluster.get("serversRunning", 0))

    def create(self, config_path: Path) -> None:
        logger.info("Creating k3d cluster", cluster=self.cluster_name, config=str(config_path))
        self.runner.run(["k3d", "cluster", "create", "--config", str(config_path)])

    def start(self) -> None:
        logger.info("Starting stopped k3d cluster", cluster=self.cluster_name)
        self.runner.run(["k3d", "cluster", "start", self.cluster_name])

    def delete(self) -> bool:
        if not self.cluster_exists():
            logger.info("Cluster does not exist, nothing to delete", cluster=self.cluster_name)
            return False
        self.runner.run(["k3d", "cluster", "delete", self.cluster_name])
        logger.info("Deleted k3d cluster", cluster=self.cluster_name)
        return True

    def write_kubeconfig(self) -> Path:
        result = self.runner.run(["k3d", "kubeconfig", "write", self.cluster_name])
        return Path(result.stdout.strip())

    def registry_exists(self, registry: str) -> bool:
        result = self.runner.run(["k3d", "registry", "list", "-o", "json"], check=False)
        if not result.ok or not result.stdout.strip():
            return False
        names = {entry.get("name", "") for entry in json.loads(result.stdout)}
        return registry in names or f"k3d-{registry}" in names

    def delete_registry(self, registry: str) -> bool:
        if not self.registry_exists(registry):
            return False
        self.runner.run(["k3d", "registry", "delete", registry])
        logger.info("Deleted k3d registry", registry=registry)
        return True
