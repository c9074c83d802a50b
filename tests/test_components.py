"""Tests for the component model and concrete components."""

from pathlib import Path
from unittest.mock import MagicMock, call

import pytest

from stackctl.components import (
    REGISTRY,
    CertManagerComponent,
    ClusterComponent,
    HomeAutomationComponent,
    IngressComponent,
    IstioComponent,
    LokiComponent,
    MediaStackComponent,
    MinioComponent,
    Tools,
    build_component,
)
from stackctl.errors import CommandError, ComponentError, PrerequisiteError, WaitTimeoutError

from .conftest import write_manifest


class TestRegistry:
    def test_all_cli_components_registered(self) -> None:
        assert set(REGISTRY) == {
            "cluster", "istio", "cert-manager", "ingress", "minio", "prometheus-grafana", "loki",
            "tracing", "velero", "argocd", "home-automation", "media-stack", "sample-app",
        }

    def test_build_unknown_component(self, tools: Tools) -> None:
        with pytest.raises(ValueError, match="Unknown component"):
            build_component("nope", tools)

    def test_pinned_versions(self) -> None:
        versions = {r.name: r.version for cls in REGISTRY.values() for r in cls.releases}

        assert versions["istiod"] == "1.24.0"
        assert versions["cert-manager"] == "v1.16.2"
        assert versions["prometheus"] == "80.4.1"
        assert versions["loki"] == "2.10.3"
        assert versions["velero"] == "7.2.1"
        assert versions["argocd"] == "9.1.7"


class TestComponentUp:
    def test_up_installs_releases_in_order(self, tools: Tools, mock_helm: MagicMock, repo_root: Path) -> None:
        IstioComponent(tools).up()

        installed = [c.args[0].name for c in mock_helm.install_or_upgrade.call_args_list]
        assert installed == ["istio-base", "istiod", "istio-ingress"]
        mock_helm.repo_add.assert_called_once_with("istio", "https://istio-release.storage.googleapis.com/charts")

    def test_up_ensures_labelled_namespaces(self, tools: Tools, mock_kubectl: MagicMock) -> None:
        IstioComponent(tools).up()

        mock_kubectl.ensure_namespace.assert_any_call("istio-ingress", {"istio-injection": "enabled"})

    def test_up_runs_waits(self, tools: Tools, mock_kubectl: MagicMock) -> None:
        IstioComponent(tools).up()

        waited = [c.args[0] for c in mock_kubectl.wait.call_args_list]
        assert waited == ["deployment/istiod", "deployment/istio-ingress"]

    def test_optional_manifest_skipped(self, tools: Tools, mock_kubectl: MagicMock) -> None:
        IstioComponent(tools).up()

        mock_kubectl.apply.assert_not_called()

    def test_required_manifest_missing_fails(self, tools: Tools) -> None:
        with pytest.raises(ComponentError, match="Manifest not found"):
            MinioComponent(tools).up()

    def test_manifests_applied_before_release(
        self, tools: Tools, mock_kubectl: MagicMock, mock_helm: MagicMock, repo_root: Path
    ) -> None:
        write_manifest(repo_root, "platform/minio/resources/namespace.yaml")
        write_manifest(repo_root, "platform/minio/resources/secret.yaml")
        order = MagicMock()
        order.attach_mock(mock_kubectl.apply, "apply")
        order.attach_mock(mock_helm.install_or_upgrade, "install")

        MinioComponent(tools).up()

        names = [c[0] for c in order.mock_calls]
        assert names == ["apply", "apply", "install"]

    def test_unreachable_cluster(self, tools: Tools, mock_kubectl: MagicMock) -> None:
        mock_kubectl.cluster_reachable.return_value = False

        with pytest.raises(PrerequisiteError, match="not reachable"):
            IstioComponent(tools).up()

    def test_missing_dependency(self, tools: Tools, mock_kubectl: MagicMock) -> None:
        mock_kubectl.exists.side_effect = lambda kind, name, ns=None: kind != "clusterissuer"

        with pytest.raises(PrerequisiteError, match="clusterissuer/automation-ca-issuer"):
            IngressComponent(tools).up()

    def test_wait_timeout_wrapped(self, tools: Tools, mock_kubectl: MagicMock) -> None:
        mock_kubectl.wait.side_effect = WaitTimeoutError("istiod not available")

        with pytest.raises(ComponentError, match="istio: up failed: istiod not available"):
            IstioComponent(tools).up()

    def test_best_effort_wait_continues(self, tools: Tools, mock_kubectl: MagicMock) -> None:
        def wait(resource: str, condition: str, **kwargs: object) -> None:
            if kwargs.get("selector") == "app.kubernetes.io/name=promtail":
                raise WaitTimeoutError("promtail slow")

        mock_kubectl.wait.side_effect = wait

        LokiComponent(tools).up()


class TestCertManager:
    def test_retries_resources_until_webhook_ready(
        self, tools: Tools, mock_kubectl: MagicMock, repo_root: Path
    ) -> None:
        write_manifest(repo_root, "platform/cert-manager/resources/kustomization.yaml")
        mock_kubectl.apply.side_effect = [CommandError(["kubectl"], 1, "webhook refused"), None]

        CertManagerComponent(tools).up()

        assert mock_kubectl.apply.call_count == 2

    def test_gives_up_after_retry_budget(self, tools: Tools, mock_kubectl: MagicMock, repo_root: Path) -> None:
        write_manifest(repo_root, "platform/cert-manager/resources/kustomization.yaml")
        mock_kubectl.apply.side_effect = CommandError(["kubectl"], 1, "webhook refused")

        with pytest.raises(ComponentError):
            CertManagerComponent(tools).up()

        assert mock_kubectl.apply.call_count == tools.settings.webhook_retries

    def test_crds_enabled(self) -> None:
        assert CertManagerComponent.releases[0].set_values == {"crds.enabled": "true"}


class TestComponentDown:
    def test_down_uninstalls_in_reverse(self, tools: Tools, mock_helm: MagicMock) -> None:
        IstioComponent(tools).down()

        removed = [c.args[0] for c in mock_helm.uninstall.call_args_list]
        assert removed == ["istio-ingress", "istiod", "istio-base"]

    def test_down_deletes_namespaces(self, tools: Tools, mock_kubectl: MagicMock) -> None:
        IstioComponent(tools).down()

        mock_kubectl.delete_namespace.assert_has_calls([call("istio-system"), call("istio-ingress")])

    def test_down_keeps_shared_namespace_in_use(self, tools: Tools, mock_kubectl: MagicMock) -> None:
        mock_kubectl.get_json.return_value = {"items": [{"metadata": {"name": "grafana"}}]}

        LokiComponent(tools).down()

        mock_kubectl.delete_namespace.assert_not_called()

    def test_down_continues_after_uninstall_error(self, tools: Tools, mock_helm: MagicMock) -> None:
        mock_helm.uninstall.side_effect = [CommandError(["helm"], 1, "stuck"), True, True]

        IstioComponent(tools).down()

        assert mock_helm.uninstall.call_count == 3

    def test_ingress_down_leaves_namespace(self, tools: Tools, mock_kubectl: MagicMock, repo_root: Path) -> None:
        write_manifest(repo_root, "platform/ingress/resources/gateway.yaml")

        IngressComponent(tools).down()

        mock_kubectl.delete_path.assert_called_once()
        mock_kubectl.delete_namespace.assert_not_called()


class TestStatus:
    def test_status_counts_ready_pods(self, tools: Tools, mock_kubectl: MagicMock, mock_helm: MagicMock) -> None:
        mock_helm.release_exists.return_value = True
        mock_kubectl.get_json.return_value = {
            "items": [
                {"status": {"phase": "Running", "conditions": [{"type": "Ready", "status": "True"}]}},
                {"status": {"phase": "Pending", "conditions": [{"type": "Ready", "status": "False"}]}},
            ]
        }

        status = MinioComponent(tools).status()

        assert status.installed
        assert status.namespaces[0].pods_ready == 1
        assert status.namespaces[0].pods_total == 2
        assert not status.healthy


class TestWorkloads:
    def test_home_automation_manifests(self) -> None:
        paths = [m.path for m in HomeAutomationComponent.manifests]

        assert "apps/home-automation/mosquitto/deployment.yaml" in paths
        assert "apps/home-automation/homebridge/configmap.yaml" not in paths
        assert HomeAutomationComponent.pre_manifests[0].path == "apps/home-automation/namespace.yaml"

    def test_media_stack_shared_storage_first(self) -> None:
        paths = [m.path for m in MediaStackComponent.pre_manifests]

        assert paths == ["apps/media/namespace.yaml", "apps/media/shared-storage/downloads-pvc.yaml"]

    def test_waits_per_app(self) -> None:
        selectors = [w.selector for w in MediaStackComponent.waits]

        assert selectors == [
            "app.kubernetes.io/name=nzbget",
            "app.kubernetes.io/name=sonarr",
            "app.kubernetes.io/name=radarr",
        ]


class TestCluster:
    def test_creates_missing_cluster(self, tools: Tools, mock_k3d: MagicMock, repo_root: Path) -> None:
        write_manifest(repo_root, "clusters/k3d/cluster-config.yaml")
        mock_k3d.cluster_exists.return_value = False
        mock_k3d.write_kubeconfig.return_value = Path("/tmp/kc")

        ClusterComponent(tools).up()

        mock_k3d.create.assert_called_once_with(repo_root / "clusters/k3d/cluster-config.yaml")
        assert tools.settings.kubeconfig == Path("/tmp/kc")

    def test_starts_stopped_cluster(self, tools: Tools, mock_k3d: MagicMock) -> None:
        mock_k3d.cluster_exists.return_value = True
        mock_k3d.servers_running.return_value = 0

        ClusterComponent(tools).up()

        mock_k3d.start.assert_called_once()
        mock_k3d.create.assert_not_called()

    def test_running_cluster_untouched(self, tools: Tools, mock_k3d: MagicMock) -> None:
        mock_k3d.cluster_exists.return_value = True
        mock_k3d.servers_running.return_value = 1

        ClusterComponent(tools).up()

        mock_k3d.start.assert_not_called()
        mock_k3d.create.assert_not_called()

    def test_missing_config(self, tools: Tools, mock_k3d: MagicMock) -> None:
        mock_k3d.cluster_exists.return_value = False

        with pytest.raises(ComponentError, match="Cluster config not found"):
            ClusterComponent(tools).up()

    def test_down_keeps_registry(self, tools: Tools, mock_k3d: MagicMock) -> None:
        ClusterComponent(tools, keep_registry=True).down()

        mock_k3d.delete.assert_called_once()
        mock_k3d.delete_registry.assert_not_called()
