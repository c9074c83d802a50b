"""Declarative component model shared by every deployable part of the stack."""

import time
from dataclasses import dataclass, field
from functools import cached_property
from typing import ClassVar

import structlog

from ..config import Settings
from ..errors import ComponentError, PrerequisiteError, StackError, WaitTimeoutError
from ..helm import Helm, HelmRelease
from ..k3d import K3d
from ..kubectl import Kubectl
from ..kubernetes_client import KubernetesClient
from ..models import ComponentStatus, NamespaceStatus
from ..runner import CommandRunner, require_tools

logger = structlog.get_logger()


@dataclass(frozen=True)
class Manifest:
    """A manifest file or directory relative to the repo root."""

    path: str
    optional: bool = False


@dataclass(frozen=True)
class Wait:
    """A bounded readiness wait run after installation."""

    resource: str
    condition: str = "Available"
    namespace: str | None = None
    selector: str | None = None
    timeout: int | None = None
    best_effort: bool = False
    all_matching: bool = False


@dataclass(frozen=True)
class Requirement:
    """An object that must already exist before a component can deploy."""

    kind: str
    name: str
    namespace: str | None = None
    hint: str = ""


@dataclass
class Tools:
    """Everything a component needs to talk to the cluster."""

    settings: Settings
    runner: CommandRunner
    kubectl: Kubectl
    helm: Helm
    k3d: K3d
    _kube: KubernetesClient | None = field(default=None, repr=False)

    @property
    def kube(self) -> KubernetesClient:
        if self._kube is None:
            self._kube = KubernetesClient(self.settings)
        return self._kube

    @classmethod
    def from_settings(cls, settings: Settings) -> "Tools":
        runner = CommandRunner(settings)
        return cls(
            settings=settings,
            runner=runner,
            kubectl=Kubectl(runner),
            helm=Helm(runner, settings.repo_root, timeout=settings.helm_timeout),
            k3d=K3d(runner, settings.cluster_name),
        )


class Component:
    """A deployable unit: namespaces, helm releases, manifests and waits.

    Subclasses declare their parts as class attributes. ``up`` is idempotent:
    repos and namespaces are ensured, releases upgrade when present, and
    manifests are applied with ``kubectl apply``. ``down`` is best-effort and
    safe to repeat.
    """

    name: ClassVar[str]
    description: ClassVar[str] = ""
    tools_required: ClassVar[tuple[str, ...]] = ("kubectl", "helm")
    namespaces: ClassVar[dict[str, dict[str, str]]] = {}
    pre_manifests: ClassVar[tuple[Manifest, ...]] = ()
    releases: ClassVar[tuple[HelmRelease, ...]] = ()
    release_waits: ClassVar[tuple[Wait, ...]] = ()
    manifests: ClassVar[tuple[Manifest, ...]] = ()
    waits: ClassVar[tuple[Wait, ...]] = ()
    requires: ClassVar[tuple[Requirement, ...]] = ()
    # Namespaces shared with other components are only removed once empty.
    shared_namespaces: ClassVar[bool] = False
    endpoints: ClassVar[dict[str, str]] = {}

    def __init__(self, tools: Tools) -> None:
        self.tools = tools
        self.settings = tools.settings
        self.kubectl = tools.kubectl
        self.helm = tools.helm
        self.log = logger.bind(component=self.name)

    @cached_property
    def all_namespaces(self) -> list[str]:
        names = list(self.namespaces)
        for release in self.releases:
            if release.namespace not in names:
                names.append(release.namespace)
        return names

    # --- prechecks -------------------------------------------------------

    def check_prerequisites(self) -> None:
        """Fail fast on missing tools, an unreachable cluster or missing dependencies."""
        require_tools(*self.tools_required)
        if not self.kubectl.cluster_reachable():
            raise PrerequisiteError(
                "Kubernetes cluster is not reachable. Run 'stackctl cluster up' first."
            )
        for req in self.requires:
            if not self.kubectl.exists(req.kind, req.name, req.namespace):
                where = f" in namespace {req.namespace}" if req.namespace else ""
                hint = f" {req.hint}" if req.hint else ""
                raise PrerequisiteError(f"{self.name} requires {req.kind}/{req.name}{where}.{hint}")

    # --- up --------------------------------------------------------------

    def up(self) -> None:
        """Deploy or converge the component."""
        started = time.monotonic()
        self.log.info("Deploying component", description=self.description)
        self.check_prerequisites()
        try:
            self._add_repos()
            for namespace, labels in self.namespaces.items():
                self.kubectl.ensure_namespace(namespace, labels)
            self.apply_manifests(self.pre_manifests)
            for release in self.releases:
                self.helm.install_or_upgrade(release)
            self.run_waits(self.release_waits)
            self.apply_manifests(self.manifests)
            self.after_apply()
            self.run_waits(self.waits)
        except StackError as e:
            raise ComponentError(self.name, "up", e) from e
        self.log.info("Component ready", duration_s=round(time.monotonic() - started, 1))

    def _add_repos(self) -> None:
        seen: set[str] = set()
        for release in self.releases:
            if release.repo_name not in seen:
                self.helm.repo_add(release.repo_name, release.repo_url)
                seen.add(release.repo_name)

    def apply_manifests(self, manifests: tuple[Manifest, ...]) -> None:
        for manifest in manifests:
            path = self.settings.path(manifest.path)
            if not path.exists():
                if manifest.optional:
                    self.log.info("Optional manifest not present, skipping", path=manifest.path)
                    continue
                raise PrerequisiteError(f"Manifest not found: {path}")
            self.kubectl.apply(path)

    def after_apply(self) -> None:
        """Hook for component-specific steps between manifests and final waits."""

    def run_waits(self, waits: tuple[Wait, ...]) -> None:
        for wait in waits:
            timeout = wait.timeout or self.settings.wait_timeout_seconds
            try:
                self.kubectl.wait(
                    wait.resource,
                    wait.condition,
                    namespace=wait.namespace,
                    selector=wait.selector,
                    timeout=timeout,
                    all_matching=wait.all_matching,
                )
            except WaitTimeoutError as e:
                if not wait.best_effort:
                    raise
                self.log.warning("Wait did not complete, continuing", error=str(e))

    # --- down ------------------------------------------------------------

    def down(self) -> None:
        """Remove the component. Absent resources are not an error."""
        require_tools(*self.tools_required)
        self.log.info("Removing component")
        for manifest in reversed(self.manifests + self.pre_manifests):
            path = self.settings.path(manifest.path)
            if path.exists():
                self.kubectl.delete_path(path)
        for release in reversed(self.releases):
            try:
                self.helm.uninstall(release.name, release.namespace)
            except StackError as e:
                self.log.warning("Uninstall failed, continuing", release=release.name, error=str(e))
        for namespace in self.all_namespaces:
            if self.shared_namespaces and not self._namespace_empty(namespace):
                self.log.info("Namespace still in use, keeping", namespace=namespace)
                continue
            self.kubectl.delete_namespace(namespace)
        self.log.info("Component removed")

    def _namespace_empty(self, namespace: str) -> bool:
        pods = self.kubectl.get_json("pods", namespace=namespace)
        return not (pods or {}).get("items")

    # --- status ----------------------------------------------------------

    def status(self) -> ComponentStatus:
        releases = {r.name: self.helm.release_exists(r.name, r.namespace) for r in self.releases}
        namespaces = [self._namespace_status(ns) for ns in self.all_namespaces]
        installed = all(releases.values()) if releases else any(ns.pods_total for ns in namespaces)
        return ComponentStatus(
            component=self.name,
            installed=installed,
            releases=releases,
            namespaces=namespaces,
        )

    def _namespace_status(self, namespace: str) -> NamespaceStatus:
        pods = (self.kubectl.get_json("pods", namespace=namespace) or {}).get("items", [])
        ready = 0
        for pod in pods:
            phase = pod.get("status", {}).get("phase")
            conditions = pod.get("status", {}).get("conditions", [])
            if phase == "Succeeded" or any(
                c.get("type") == "Ready" and c.get("status") == "True" for c in conditions
            ):
                ready += 1
        return NamespaceStatus(namespace=namespace, pods_ready=ready, pods_total=len(pods))
