"""Platform layer: mesh, certificates, ingress, storage, backups and GitOps."""

import base64
import time

from ..errors import CommandError
from ..helm import HelmRelease
from .base import Component, Manifest, Requirement, Wait

ISTIO_VERSION = "1.24.0"
ISTIO_REPO = ("istio", "https://istio-release.storage.googleapis.com/charts")


class IstioComponent(Component):
    """Istio base CRDs, istiod control plane and the ingress gateway."""

    name = "istio"
    description = "Istio service mesh"
    namespaces = {"istio-system": {}, "istio-ingress": {"istio-injection": "enabled"}}
    releases = (
        HelmRelease("istio-base", "istio/base", *ISTIO_REPO, ISTIO_VERSION, "istio-system",
                    ["platform/istio/base/values.yaml"]),
        HelmRelease("istiod", "istio/istiod", *ISTIO_REPO, ISTIO_VERSION, "istio-system",
                    ["platform/istio/istiod/values.yaml"]),
        HelmRelease("istio-ingress", "istio/gateway", *ISTIO_REPO, ISTIO_VERSION, "istio-ingress",
                    ["platform/istio/gateway/values.yaml"]),
    )
    manifests = (Manifest("platform/istio/resources", optional=True),)
    waits = (
        Wait("deployment/istiod", namespace="istio-system", timeout=120),
        Wait("deployment/istio-ingress", namespace="istio-ingress", timeout=120),
    )


class CertManagerComponent(Component):
    """cert-manager with a self-signed CA chain exposed as ClusterIssuers."""

    name = "cert-manager"
    description = "cert-manager and the automation CA"
    namespaces = {"cert-manager": {}}
    releases = (
        HelmRelease("cert-manager", "jetstack/cert-manager", "jetstack", "https://charts.jetstack.io",
                    "v1.16.2", "cert-manager", ["platform/cert-manager/values.yaml"],
                    set_values={"crds.enabled": "true"}),
    )
    release_waits = (
        Wait("deployment/cert-manager-webhook", namespace="cert-manager", timeout=120),
    )
    resources = Manifest("platform/cert-manager/resources")
    waits = (
        Wait("clusterissuer/selfsigned-issuer", "Ready", timeout=60),
        Wait("certificate/selfsigned-ca", "Ready", namespace="cert-manager", timeout=60),
        Wait("clusterissuer/automation-ca-issuer", "Ready", timeout=60),
        Wait("pods", "Ready", namespace="cert-manager", timeout=120, all_matching=True),
    )

    def after_apply(self) -> None:
        """Apply issuer resources, retrying while the webhook finishes starting."""
        path = self.settings.path(self.resources.path)
        attempts = self.settings.webhook_retries
        for attempt in range(1, attempts + 1):
            try:
                self.kubectl.apply(path)
                return
            except CommandError as e:
                if attempt == attempts:
                    raise
                self.log.warning(
                    "Webhook not ready, retrying",
                    attempt=attempt,
                    max_attempts=attempts,
                    error=e.stderr,
                )
                time.sleep(self.settings.webhook_retry_delay_seconds)

    def down(self) -> None:
        path = self.settings.path(self.resources.path)
        if path.exists():
            self.kubectl.delete_path(path)
        super().down()


class IngressComponent(Component):
    """Istio Gateway, TLS certificate and the HTTP->HTTPS redirect."""

    name = "ingress"
    description = "Istio gateway routing with TLS"
    tools_required = ("kubectl",)
    manifests = (Manifest("platform/ingress/resources"),)
    requires = (
        Requirement("deployment", "istiod", "istio-system", "Run 'stackctl istio up' first."),
        Requirement("clusterissuer", "automation-ca-issuer", hint="Run 'stackctl cert-manager up' first."),
    )
    waits = (Wait("certificate/gateway-tls", "Ready", namespace="istio-ingress", timeout=60),)
    endpoints = {"httpbin": "httpbin.localhost"}

    def down(self) -> None:
        # The istio-ingress namespace belongs to the istio component.
        path = self.settings.path(self.manifests[0].path)
        if path.exists():
            self.kubectl.delete_path(path)


class MinioComponent(Component):
    """Minio object storage holding Loki chunks, Tempo traces and Velero backups."""

    name = "minio"
    description = "Minio S3-compatible object storage"
    pre_manifests = (
        Manifest("platform/minio/resources/namespace.yaml"),
        Manifest("platform/minio/resources/secret.yaml"),
    )
    releases = (
        HelmRelease("minio", "minio/minio", "minio", "https://charts.min.io/", "5.2.0", "minio",
                    ["platform/minio/values.yaml"]),
    )
    manifests = (Manifest("platform/minio/resources/virtualservice.yaml", optional=True),)
    waits = (
        Wait("pod", "Ready", namespace="minio", selector="app.kubernetes.io/name=minio", timeout=180),
    )
    endpoints = {"Minio": "minio.localhost"}


class VeleroComponent(Component):
    """Velero backups into the Minio velero bucket with a daily schedule."""

    name = "velero"
    description = "Velero backup and restore"
    pre_manifests = (
        Manifest("platform/velero/resources/namespace.yaml"),
        Manifest("platform/velero/resources/secret.yaml"),
    )
    releases = (
        HelmRelease("velero", "vmware-tanzu/velero", "vmware-tanzu",
                    "https://vmware-tanzu.github.io/helm-charts", "7.2.1", "velero",
                    ["platform/velero/values.yaml"]),
    )
    release_waits = (Wait("deployment/velero", namespace="velero", timeout=180),)
    manifests = (Manifest("platform/velero/resources/backup-schedule.yaml"),)
    requires = (Requirement("deployment", "minio", "minio", "Run 'stackctl minio up' first."),)


class ArgoCDComponent(Component):
    """ArgoCD bootstrap: controller, projects and the repository credentials."""

    name = "argocd"
    description = "ArgoCD GitOps controller"
    pre_manifests = (Manifest("argocd/bootstrap/namespace.yaml"),)
    releases = (
        HelmRelease("argocd", "argo/argo-cd", "argo", "https://argoproj.github.io/argo-helm",
                    "9.1.7", "argocd", ["argocd/bootstrap/values.yaml"]),
    )
    release_waits = (
        Wait("deployment/argocd-server", namespace="argocd", timeout=300),
        Wait("deployment/argocd-application-controller", namespace="argocd", timeout=300,
             best_effort=True),
        Wait("deployment/argocd-repo-server", namespace="argocd", timeout=300),
    )
    manifests = (
        Manifest("argocd/projects", optional=True),
        Manifest("argocd/bootstrap/resources", optional=True),
    )
    root_app = Manifest("argocd/applications/root-app.yaml")
    endpoints = {"ArgoCD": "argocd.localhost"}

    def apply_root_app(self) -> None:
        """Apply the app-of-apps that manages every child Application."""
        self.apply_manifests((self.root_app,))

    def admin_password(self) -> str | None:
        encoded = self.kubectl.jsonpath(
            "secret", "argocd-initial-admin-secret", "{.data.password}", namespace="argocd"
        )
        if not encoded:
            return None
        return base64.b64decode(encoded).decode()

    def down(self) -> None:
        # Applications carry finalizers; drop them first so the namespace can terminate.
        apps = (self.kubectl.get_json("applications", namespace="argocd") or {}).get("items", [])
        for app in apps:
            name = app.get("metadata", {}).get("name")
            if name:
                self.tools.runner.run(
                    ["kubectl", "patch", "application", name, "-n", "argocd",
                     "--type=merge", "-p", '{"metadata":{"finalizers":null}}'],
                    check=False,
                )
        super().down()
