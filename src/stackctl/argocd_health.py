"""ArgoCD application health checks.

Reads Application status from the cluster, classifies each app into
healthy/degraded/failed buckets, and retries required tiers a fixed number
of times while ArgoCD is still reconciling.
"""

import time
from typing import Any

import structlog

from .config import Settings
from .errors import PrerequisiteError
from .kubernetes_client import KubernetesClient
from .models import (
    AppCheck,
    ApplicationStatus,
    AppOutcome,
    HealthReport,
    HealthStatus,
    SyncStatus,
)

logger = structlog.get_logger()

ARGOCD_NAMESPACE = "argocd"
ARGO_GROUP = "argoproj.io"
ARGO_VERSION = "v1alpha1"

CRITICAL_PLATFORM_APPS = ("istio-base", "istio-istiod", "cert-manager", "istio-gateway", "ingress-config")
CRITICAL_OBSERVABILITY_APPS = ("prometheus-grafana", "loki", "jaeger")
IMPORTANT_APPS = (
    "cert-manager-resources",
    "istio-resources",
    "minio",
    "velero",
    "tempo",
    "otel-collector",
)
WORKLOAD_APPS = ("home-automation", "media-stack", "sample-app")


def parse_application(name: str, obj: dict[str, Any] | None) -> ApplicationStatus:
    """Build an ApplicationStatus from a raw Application object."""
    if obj is None:
        return ApplicationStatus(name=name)

    status = obj.get("status") or {}
    operation = status.get("operationState") or {}
    sync_error = ""
    for condition in status.get("conditions") or []:
        if condition.get("type") == "SyncError":
            sync_error = condition.get("message", "")
            break

    return ApplicationStatus(
        name=name,
        sync=SyncStatus.parse((status.get("sync") or {}).get("status")),
        health=HealthStatus.parse((status.get("health") or {}).get("status")),
        operation_phase=operation.get("phase") or "Unknown",
        operation_message=operation.get("message") or "",
        sync_error=sync_error,
    )


def classify(status: ApplicationStatus, required: bool) -> AppCheck:
    """Place one application into an outcome bucket.

    Required apps fail on anything that blocks the stack; optional apps only
    ever degrade.
    """
    app = status.name
    if not status.found:
        if required:
            return AppCheck(app, AppOutcome.FAILED, "NOT FOUND (required app missing)")
        return AppCheck(app, AppOutcome.SKIPPED, "Not deployed (optional)")

    if status.sync is not SyncStatus.SYNCED:
        drift = status.health is HealthStatus.HEALTHY and (
            status.operation_phase == "Succeeded"
            or "successfully synced" in status.operation_message
        )
        if drift:
            return AppCheck(
                app,
                AppOutcome.DEGRADED,
                f"OutOfSync but healthy (drift detected, operation: {status.operation_phase})",
            )
        detail = (
            f"sync: {status.sync.value}, health: {status.health.value}, "
            f"phase: {status.operation_phase}"
        )
        if status.operation_message:
            detail = f"{detail}; {status.operation_message}"
        if status.sync_error:
            detail = f"{detail}; sync error: {status.sync_error}"
        if required:
            return AppCheck(app, AppOutcome.FAILED, f"SYNC FAILED ({detail})")
        return AppCheck(app, AppOutcome.DEGRADED, f"Out of sync ({detail})")

    if status.health is HealthStatus.HEALTHY:
        return AppCheck(app, AppOutcome.HEALTHY, "Synced and Healthy")

    if status.health is HealthStatus.PROGRESSING:
        if required:
            return AppCheck(app, AppOutcome.DEGRADED, "Still progressing (may need more time)")
        return AppCheck(app, AppOutcome.HEALTHY, "Synced, still progressing")

    if status.health in (HealthStatus.DEGRADED, HealthStatus.MISSING):
        detail = f"sync: {status.sync.value}, health: {status.health.value}"
        if status.operation_message:
            detail = f"{detail}; {status.operation_message}"
        if required:
            return AppCheck(app, AppOutcome.FAILED, f"UNHEALTHY ({detail})")
        return AppCheck(app, AppOutcome.DEGRADED, f"Degraded ({detail})")

    return AppCheck(
        app,
        AppOutcome.DEGRADED,
        f"Unknown health status '{status.health.value}' (sync: {status.sync.value})",
    )


class ArgoCDHealthChecker:
    """Verifies that ArgoCD-managed applications are synced and healthy."""

    def __init__(
        self,
        settings: Settings,
        k8s_client: KubernetesClient,
        sleep: Any = time.sleep,
    ) -> None:
        self.settings = settings
        self.k8s = k8s_client
        self._sleep = sleep

    def get_status(self, app: str) -> ApplicationStatus:
        obj = self.k8s.get_custom_object(
            ARGO_GROUP, ARGO_VERSION, "applications", app, namespace=ARGOCD_NAMESPACE
        )
        return parse_application(app, obj)

    def check_app(self, app: str, required: bool) -> AppCheck:
        check = classify(self.get_status(app), required)
        log = logger.bind(app=app, outcome=check.outcome.value)
        if check.outcome is AppOutcome.FAILED:
            log.error(check.message)
        elif check.outcome is AppOutcome.HEALTHY:
            log.info(check.message)
        else:
            log.warning(check.message)
        return check

    def wait_for_apps(
        self,
        apps: tuple[str, ...],
        required: bool,
        max_retries: int | None = None,
        retry_delay: int | None = None,
    ) -> list[AppCheck]:
        """Check a tier repeatedly until none fail or the retry budget runs out.

        Returns the checks from the final round.
        """
        retries = max_retries if max_retries is not None else self.settings.argocd_max_retries
        delay = retry_delay if retry_delay is not None else self.settings.argocd_retry_delay_seconds
        checks: list[AppCheck] = []
        for attempt in range(1, retries + 1):
            checks = [self.check_app(app, required) for app in apps]
            if not any(c.outcome is AppOutcome.FAILED for c in checks):
                break
            if attempt < retries:
                logger.info(
                    "Waiting before retry",
                    delay_s=delay,
                    next_attempt=attempt + 1,
                    max_retries=retries,
                )
                self._sleep(delay)
        return checks

    def verify_components(self) -> list[AppCheck]:
        """Check component-level health that ArgoCD status alone can miss."""
        checks: list[AppCheck] = []

        peer_auth = self.k8s.get_custom_object(
            "security.istio.io", "v1", "peerauthentications", "default", namespace="istio-system"
        )
        mode = (((peer_auth or {}).get("spec") or {}).get("mtls") or {}).get("mode", "NOTFOUND")
        if mode == "STRICT":
            checks.append(AppCheck("istio-mtls-config", AppOutcome.HEALTHY, "Istio mTLS: STRICT"))
        else:
            checks.append(
                AppCheck("istio-mtls-config", AppOutcome.FAILED, f"Istio mTLS not STRICT (got: {mode})")
            )

        cert = self.k8s.get_custom_object(
            "cert-manager.io", "v1", "certificates", "gateway-tls", namespace="istio-ingress"
        )
        if _condition_true(cert, "Ready"):
            checks.append(AppCheck("cert-manager-certificate", AppOutcome.HEALTHY, "Gateway TLS: Ready"))
        else:
            checks.append(
                AppCheck("cert-manager-certificate", AppOutcome.FAILED, "Gateway TLS certificate not ready")
            )

        issuers = self.k8s.list_custom_objects("cert-manager.io", "v1", "clusterissuers")
        if any(_condition_true(issuer, "Ready") for issuer in issuers):
            checks.append(AppCheck("clusterissuers", AppOutcome.HEALTHY, "ClusterIssuers: Ready"))
        else:
            checks.append(AppCheck("clusterissuers", AppOutcome.DEGRADED, "ClusterIssuers may not be ready"))

        for label, check_name in (("prometheus", "prometheus-pod"), ("grafana", "grafana-pod")):
            pods = self.k8s.list_pods("observability", f"app.kubernetes.io/name={label}")
            if not pods:
                checks.append(AppCheck(check_name, AppOutcome.FAILED, f"{label} pod not found"))
            elif self.k8s.pod_ready(pods[0]):
                checks.append(AppCheck(check_name, AppOutcome.HEALTHY, f"{label}: Running and ready"))
            else:
                checks.append(AppCheck(check_name, AppOutcome.DEGRADED, f"{label} pod not ready"))

        loki = self.k8s.list_pods("observability", "app.kubernetes.io/name=loki")
        if loki and self.k8s.pod_ready(loki[0]):
            checks.append(AppCheck("loki-pod", AppOutcome.HEALTHY, "Loki: Running and ready"))
        else:
            checks.append(AppCheck("loki-pod", AppOutcome.DEGRADED, "Loki may not be ready"))

        for check in checks:
            logger.info("Component check", check=check.app, outcome=check.outcome.value, detail=check.message)
        return checks

    def run(self) -> HealthReport:
        """Run every tier and the component verification."""
        if not self.k8s.namespace_exists(ARGOCD_NAMESPACE):
            raise PrerequisiteError("ArgoCD namespace not found. Is ArgoCD installed?")

        report = HealthReport(
            critical_checked=len(CRITICAL_PLATFORM_APPS) + len(CRITICAL_OBSERVABILITY_APPS)
        )
        report.checks += self.wait_for_apps(CRITICAL_PLATFORM_APPS, required=True)
        report.checks += self.wait_for_apps(CRITICAL_OBSERVABILITY_APPS, required=True)
        report.checks += [self.check_app(app, required=False) for app in IMPORTANT_APPS]
        report.checks += [self.check_app(app, required=False) for app in WORKLOAD_APPS]
        report.checks += self.verify_components()

        for check in report.checks:
            if check.outcome is AppOutcome.FAILED:
                report.failed.append(check.app)
            elif check.outcome is AppOutcome.DEGRADED:
                report.degraded.append(check.app)
        return report


def _condition_true(obj: dict[str, Any] | None, condition_type: str) -> bool:
    conditions = ((obj or {}).get("status") or {}).get("conditions") or []
    return any(c.get("type") == condition_type and c.get("status") == "True" for c in conditions)
