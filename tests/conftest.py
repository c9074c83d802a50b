"""Pytest fixtures for stackctl tests."""

from collections.abc import Iterator
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from stackctl.components import Tools
from stackctl.config import Settings
from stackctl.helm import Helm
from stackctl.k3d import K3d
from stackctl.kubectl import Kubectl
from stackctl.kubernetes_client import KubernetesClient
from stackctl.runner import CommandResult, CommandRunner


def ok(stdout: str = "", args: list[str] | None = None) -> CommandResult:
    return CommandResult(args=args or [], returncode=0, stdout=stdout)


def failed(stderr: str = "error", returncode: int = 1) -> CommandResult:
    return CommandResult(args=[], returncode=returncode, stderr=stderr)


@pytest.fixture
def repo_root(tmp_path: Path) -> Path:
    """Create an empty manifests tree."""
    return tmp_path


@pytest.fixture
def settings(repo_root: Path) -> Settings:
    """Create test settings with no waiting between retries."""
    return Settings(
        repo_root=repo_root,
        cluster_name="automation-k8s",
        wait_timeout_seconds=30,
        webhook_retries=3,
        webhook_retry_delay_seconds=0,
        argocd_max_retries=3,
        argocd_retry_delay_seconds=0,
        storage_location_polls=2,
        storage_test_polls=2,
        poll_interval_seconds=0,
    )


@pytest.fixture
def mock_runner(settings: Settings) -> MagicMock:
    runner = MagicMock(spec=CommandRunner)
    runner.settings = settings
    runner.run.return_value = ok()
    return runner


@pytest.fixture
def mock_kubectl(mock_runner: MagicMock) -> MagicMock:
    kubectl = MagicMock(spec=Kubectl)
    kubectl.runner = mock_runner
    kubectl.cluster_reachable.return_value = True
    kubectl.exists.return_value = True
    kubectl.get_json.return_value = {"items": []}
    return kubectl


@pytest.fixture
def mock_helm() -> MagicMock:
    helm = MagicMock(spec=Helm)
    helm.release_exists.return_value = False
    helm.install_or_upgrade.return_value = "install"
    return helm


@pytest.fixture
def mock_k3d() -> MagicMock:
    return MagicMock(spec=K3d)


@pytest.fixture
def mock_k8s_client(settings: Settings) -> MagicMock:
    """Create a mock Kubernetes client."""
    with (
        patch.object(KubernetesClient, "_load_config"),
        patch("stackctl.kubernetes_client.client"),
    ):
        client = MagicMock(spec=KubernetesClient)
        client.settings = settings
        client.namespace_exists.return_value = True
        return client


@pytest.fixture
def tools(
    settings: Settings,
    mock_runner: MagicMock,
    mock_kubectl: MagicMock,
    mock_helm: MagicMock,
    mock_k3d: MagicMock,
    mock_k8s_client: MagicMock,
) -> Iterator[Tools]:
    """Tools wired to mocks; tool presence checks always pass."""
    with patch("stackctl.components.base.require_tools"), patch("stackctl.components.cluster.require_tools"):
        yield Tools(
            settings=settings,
            runner=mock_runner,
            kubectl=mock_kubectl,
            helm=mock_helm,
            k3d=mock_k3d,
            _kube=mock_k8s_client,
        )


def write_manifest(root: Path, relative: str, content: str = "kind: ConfigMap\n") -> Path:
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    return path


def application(sync: str, health: str, phase: str = "Succeeded", message: str = "") -> dict:
    """Build a minimal ArgoCD Application object."""
    return {
        "metadata": {"name": "app"},
        "status": {
            "sync": {"status": sync},
            "health": {"status": health},
            "operationState": {"phase": phase, "message": message},
        },
    }
