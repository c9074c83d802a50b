"""k3d cluster component."""

from ..errors import ComponentError, PrerequisiteError, StackError
from ..models import ComponentStatus, NamespaceStatus
from ..runner import require_tools
from .base import Component, Tools, Wait

CLUSTER_CONFIG = "clusters/k3d/cluster-config.yaml"


class ClusterComponent(Component):
    """Creates, starts and destroys the local k3d cluster."""

    name = "cluster"
    description = "k3d cluster with local registry"
    tools_required = ("k3d", "kubectl")
    waits = (Wait("nodes", "Ready", timeout=120, all_matching=True),)

    def __init__(self, tools: Tools, keep_registry: bool = False) -> None:
        super().__init__(tools)
        self.k3d = tools.k3d
        self.keep_registry = keep_registry

    def up(self) -> None:
        require_tools(*self.tools_required)
        try:
            if self.k3d.cluster_exists():
                if self.k3d.servers_running() == 0:
                    self.k3d.start()
                else:
                    self.log.info("Cluster already running", cluster=self.settings.cluster_name)
            else:
                config = self.settings.path(CLUSTER_CONFIG)
                if not config.exists():
                    raise PrerequisiteError(f"Cluster config not found: {config}")
                self.k3d.create(config)
            self.settings.kubeconfig = self.k3d.write_kubeconfig()
            self.log.info("Kubeconfig written", path=str(self.settings.kubeconfig))
            self.run_waits(self.waits)
        except StackError as e:
            raise ComponentError(self.name, "up", e) from e

    def down(self) -> None:
        require_tools("k3d")
        self.k3d.delete()
        if not self.keep_registry:
            self.k3d.delete_registry(self.settings.registry_name)

    def status(self) -> ComponentStatus:
        if not self.k3d.cluster_exists():
            return ComponentStatus(component=self.name, installed=False, message="cluster not found")
        running = self.k3d.servers_running()
        nodes = (self.kubectl.get_json("nodes") or {}).get("items", [])
        ready = sum(
            1
            for node in nodes
            if any(
                c.get("type") == "Ready" and c.get("status") == "True"
                for c in node.get("status", {}).get("conditions", [])
            )
        )
        return ComponentStatus(
            component=self.name,
            installed=running > 0,
            namespaces=[NamespaceStatus(namespace="nodes", pods_ready=ready, pods_total=len(nodes))],
            message=f"{running} server(s) running",
        )
