"""Tests for the Kubernetes API client wrapper."""

from unittest.mock import patch

import pytest
from kubernetes.config import ConfigException  # type: ignore[import-untyped]

from stackctl.config import Settings
from stackctl.errors import PrerequisiteError
from stackctl.kubernetes_client import KubernetesClient


class TestLoadConfig:
    def test_falls_back_to_kubeconfig(self, settings: Settings) -> None:
        with (
            patch("stackctl.kubernetes_client.config.load_incluster_config", side_effect=ConfigException("no sa")),
            patch("stackctl.kubernetes_client.config.load_kube_config") as load_kube_config,
            patch("stackctl.kubernetes_client.client"),
        ):
            KubernetesClient(settings)

        load_kube_config.assert_called_once_with(config_file=None)

    def test_missing_kubeconfig_is_prerequisite_error(self, settings: Settings) -> None:
        with (
            patch("stackctl.kubernetes_client.config.load_incluster_config", side_effect=ConfigException("no sa")),
            patch(
                "stackctl.kubernetes_client.config.load_kube_config",
                side_effect=ConfigException("Invalid kube-config file. No configuration found."),
            ),
        ):
            with pytest.raises(PrerequisiteError, match="Kubernetes config not found"):
                KubernetesClient(settings)
