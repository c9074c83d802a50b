"""Configuration management for stackctl."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="STACKCTL_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Cluster settings
    cluster_name: str = Field(default="automation-k8s", description="k3d cluster name")
    registry_name: str = Field(default="registry.localhost", description="k3d registry name")
    repo_root: Path = Field(default=Path("."), description="Root of the manifests tree")
    kubeconfig: Path | None = Field(default=None, description="Explicit KUBECONFIG path")

    # Timeouts
    command_timeout_seconds: int = Field(default=900, description="Hard limit per external command")
    wait_timeout_seconds: int = Field(default=180, description="Default kubectl wait timeout")
    helm_timeout: str = Field(default="10m", description="helm --timeout value")

    # Retry budgets
    webhook_retries: int = Field(default=5, description="Attempts to apply webhook-validated resources")
    webhook_retry_delay_seconds: int = Field(default=10, description="Sleep between webhook attempts")
    argocd_max_retries: int = Field(default=3, description="Rounds for required ArgoCD tiers")
    argocd_retry_delay_seconds: int = Field(default=30, description="Sleep between ArgoCD rounds")
    storage_location_polls: int = Field(default=10, description="Polls for Velero storage location")
    poll_interval_seconds: int = Field(default=5, description="Sleep between status polls")

    # Gateway
    gateway_host: str = Field(default="localhost", description="Host the gateway is bound to")
    gateway_http_port: int = Field(default=8080, description="Gateway HTTP port")
    gateway_https_port: int = Field(default=8443, description="Gateway HTTPS port")

    # Storage and backups
    minio_buckets: list[str] = Field(
        default=["loki-chunks", "tempo-traces", "velero"],
        description="Buckets provisioned in Minio",
    )
    velero_test_namespace: str = Field(default="velero-test", description="Disposable backup namespace")
    storage_test_namespace: str = Field(default="default", description="Namespace for the provisioning test")
    storage_test_polls: int = Field(default=60, description="Polls for the test PVC and pod phases")

    # Logging
    log_level: str = Field(default="INFO", description="Minimum log level")
    log_json: bool = Field(default=False, description="Render logs as JSON")

    def path(self, *parts: str) -> Path:
        """Resolve a path inside the manifests tree."""
        return self.repo_root.joinpath(*parts)

    @property
    def https_url(self) -> str:
        return f"https://{self.gateway_host}:{self.gateway_https_port}"

    @property
    def http_url(self) -> str:
        return f"http://{self.gateway_host}:{self.gateway_http_port}"


def get_settings() -> Settings:
    """Get application settings."""
    return Settings()
