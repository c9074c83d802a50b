"""Ordered stack deployment and teardown."""

from collections.abc import Callable
from datetime import UTC, datetime

import structlog

from .components import REGISTRY, ArgoCDComponent, ClusterComponent, Component, Tools, build_component
from .errors import StackError
from .models import ComponentStatus, StackRunReport

logger = structlog.get_logger()

# Fixed deployment order. Each step assumes the ones before it are in place.
STACK_ORDER: tuple[str, ...] = (
    "cluster",
    "istio",
    "cert-manager",
    "ingress",
    "minio",
    "prometheus-grafana",
    "loki",
    "tracing",
    "velero",
)

TEARDOWN_ORDER: tuple[str, ...] = (
    "sample-app",
    "velero",
    "tracing",
    "loki",
    "prometheus-grafana",
    "minio",
    "ingress",
    "cert-manager",
    "istio",
)

# (label, namespace, selector) grouped by ArgoCD sync wave
GITOPS_WAVES: tuple[tuple[str, tuple[tuple[str, str, str | None], ...]], ...] = (
    (
        "Platform layer",
        (
            ("Istiod", "istio-system", "app=istiod"),
            ("cert-manager", "cert-manager", None),
            ("Istio gateway", "istio-ingress", None),
            ("Minio", "minio", "release=minio"),
        ),
    ),
    (
        "Observability layer",
        (
            ("Prometheus", "observability", "app.kubernetes.io/name=prometheus"),
            ("Grafana", "observability", "app.kubernetes.io/name=grafana"),
        ),
    ),
    (
        "Workloads layer",
        (
            ("Home Automation", "home-automation", "app.kubernetes.io/name=mosquitto"),
            ("Sample app", "ingress-sample", "app=httpbin"),
        ),
    ),
)


class StackOrchestrator:
    """Runs components in a fixed order and reports how far it got."""

    def __init__(self, tools: Tools) -> None:
        self.tools = tools
        self.settings = tools.settings

    def component(self, name: str) -> Component:
        return build_component(name, self.tools)

    def _step(self, report: StackRunReport, label: str, action: Callable[[], None]) -> None:
        logger.info("Stack step", step=label, position=len(report.completed) + 1)
        action()
        report.completed.append(label)

    def up(self, components: tuple[str, ...] = STACK_ORDER) -> StackRunReport:
        """Deploy components in order, stopping at the first failure.

        There is no rollback. Every step is idempotent, so running again
        resumes from the step that failed.
        """
        report = StackRunReport(operation="stack-up")
        for name in components:
            try:
                self._step(report, name, self.component(name).up)
            except StackError as e:
                report.failed_step = name
                report.error = str(e)
                logger.error(
                    "Deployment failed",
                    step=name,
                    error=str(e),
                    completed=report.completed,
                )
                break
        report.finished = datetime.now(UTC)
        return report

    def up_gitops(self) -> StackRunReport:
        """Bootstrap ArgoCD and hand the rest of the stack to the app-of-apps."""
        report = StackRunReport(operation="stack-up-gitops")
        argocd = ArgoCDComponent(self.tools)
        bootstrap: tuple[tuple[str, Callable[[], None]], ...] = (
            ("k3d cluster", self.component("cluster").up),
            ("ArgoCD", argocd.up),
            ("Root application", argocd.apply_root_app),
        )
        for label, action in bootstrap:
            try:
                self._step(report, label, action)
            except StackError as e:
                report.failed_step = label
                report.error = str(e)
                report.finished = datetime.now(UTC)
                logger.error("Deployment failed", step=label, error=str(e), completed=report.completed)
                return report

        self._wait_for_crd("gateways.networking.istio.io", timeout=180)
        for layer, targets in GITOPS_WAVES:
            logger.info("Waiting for layer", layer=layer)
            for label, namespace, selector in targets:
                self._wait_namespace(label, namespace, selector)
            report.completed.append(layer)
        report.finished = datetime.now(UTC)
        return report

    def _wait_for_crd(self, crd: str, timeout: int) -> None:
        if not self.tools.kubectl.wait_until_exists(
            "crd", crd, timeout=timeout, interval=self.settings.poll_interval_seconds
        ):
            logger.warning("CRD did not appear in time", crd=crd, timeout=timeout)

    def _wait_namespace(self, label: str, namespace: str, selector: str | None) -> None:
        """Best-effort readiness wait; ArgoCD keeps reconciling after we return."""
        ready = self.tools.kubectl.wait_for_pods_ready(
            namespace,
            selector,
            timeout=self.settings.wait_timeout_seconds,
            best_effort=True,
        )
        if ready:
            logger.info("Ready", target=label, namespace=namespace)

    def down(self, keep_cluster: bool = False) -> StackRunReport:
        """Tear everything down in reverse order, continuing past failures."""
        report = StackRunReport(operation="stack-down")
        for name in TEARDOWN_ORDER:
            try:
                self._step(report, name, self.component(name).down)
            except StackError as e:
                report.warnings.append(f"{name}: {e}")
                logger.warning("Teardown step had issues, continuing", step=name, error=str(e))

        if keep_cluster:
            logger.info("Keeping cluster")
        else:
            try:
                self._step(report, "cluster", ClusterComponent(self.tools).down)
            except StackError as e:
                report.warnings.append(f"cluster: {e}")
                logger.warning("Cluster teardown had issues", error=str(e))
        report.finished = datetime.now(UTC)
        return report

    def status(self, components: tuple[str, ...] | None = None) -> list[ComponentStatus]:
        names = components or tuple(REGISTRY)
        statuses = []
        for name in names:
            try:
                statuses.append(self.component(name).status())
            except StackError as e:
                statuses.append(ComponentStatus(component=name, installed=False, message=str(e)))
        return statuses

    def endpoints(self) -> dict[str, str]:
        """Gateway URLs for every component that exposes one."""
        urls: dict[str, str] = {}
        for cls in REGISTRY.values():
            for label, host in cls.endpoints.items():
                urls[label] = f"https://{host}:{self.settings.gateway_https_port}"
        return urls

