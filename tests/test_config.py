"""Tests for configuration."""

import os
from pathlib import Path
from unittest.mock import patch

from stackctl.config import Settings, get_settings


class TestSettings:
    """Tests for Settings class."""

    def test_default_values(self) -> None:
        settings = Settings()

        assert settings.cluster_name == "automation-k8s"
        assert settings.helm_timeout == "10m"
        assert settings.argocd_max_retries == 3
        assert settings.argocd_retry_delay_seconds == 30
        assert settings.minio_buckets == ["loki-chunks", "tempo-traces", "velero"]

    def test_gateway_urls(self) -> None:
        settings = Settings()

        assert settings.https_url == "https://localhost:8443"
        assert settings.http_url == "http://localhost:8080"

    def test_path_resolves_under_repo_root(self, tmp_path: Path) -> None:
        settings = Settings(repo_root=tmp_path)

        assert settings.path("platform", "minio", "values.yaml") == tmp_path / "platform/minio/values.yaml"

    def test_env_prefix(self) -> None:
        with patch.dict(
            os.environ,
            {
                "STACKCTL_CLUSTER_NAME": "custom",
                "STACKCTL_ARGOCD_MAX_RETRIES": "5",
            },
        ):
            settings = Settings()

            assert settings.cluster_name == "custom"
            assert settings.argocd_max_retries == 5

    def test_get_settings_returns_settings(self) -> None:
        assert isinstance(get_settings(), Settings)
