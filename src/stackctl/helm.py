"""Helm release management."""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog

from .runner import CommandResult, CommandRunner

logger = structlog.get_logger()


@dataclass
class HelmRelease:
    """A pinned chart installed under a release name."""

    name: str
    chart: str
    repo_name: str
    repo_url: str
    version: str
    namespace: str
    values_files: list[str] = field(default_factory=list)
    set_values: dict[str, str] = field(default_factory=dict)
    wait: bool = True


class Helm:
    """Idempotent helm operations."""

    def __init__(self, runner: CommandRunner, repo_root: Path, timeout: str = "10m") -> None:
        self.runner = runner
        self.repo_root = repo_root
        self.timeout = timeout

    def _helm(self, *args: str, check: bool = True) -> CommandResult:
        return self.runner.run(["helm", *args], check=check)

    def repo_add(self, name: str, url: str) -> None:
        """Add a chart repository unless present, then refresh it."""
        listing = self._helm("repo", "list", "-o", "json", check=False)
        known: list[dict[str, Any]] = []
        if listing.ok and listing.stdout.strip():
            known = json.loads(listing.stdout)
        if any(repo.get("name") == name for repo in known):
            logger.debug("Helm repo already configured", repo=name)
        else:
            self._helm("repo", "add", name, url)
            logger.info("Added helm repo", repo=name, url=url)
        self._helm("repo", "update", name)

    def release_exists(self, release: str, namespace: str) -> bool:
        return self._helm("status", release, "-n", namespace, check=False).ok

    def install_or_upgrade(self, release: HelmRelease) -> str:
        """Install the release, or upgrade it when already present.

        Returns:
            "upgrade" or "install"
        """
        action = "upgrade" if self.release_exists(release.name, release.namespace) else "install"
        args = [
            action,
            release.name,
            release.chart,
            "-n",
            release.namespace,
            "--create-namespace",
            "--version",
            release.version,
        ]
        for values in release.values_files:
            args += ["-f", str(self.repo_root / values)]
        for key, value in release.set_values.items():
            args += ["--set", f"{key}={value}"]
        if release.wait:
            args += ["--wait", "--timeout", self.timeout]

        logger.info(
            "Helm release",
            action=action,
            release=release.name,
            chart=release.chart,
            version=release.version,
            namespace=release.namespace,
        )
        self._helm(*args)
        return action

    def uninstall(self, release: str, namespace: str) -> bool:
        """Uninstall a release if it exists. Returns whether anything was removed."""
        if not self.release_exists(release, namespace):
            logger.info("Helm release not installed, skipping", release=release)
            return False
        self._helm("uninstall", release, "-n", namespace, "--wait")
        logger.info("Uninstalled helm release", release=release, namespace=namespace)
        return True

    def list_releases(self, namespace: str | None = None) -> list[dict[str, Any]]:
        args = ["list", "-o", "json"]
        args += ["-n", namespace] if namespace else ["-A"]
        result = self._helm(*args, check=False)
        if not result.ok or not result.stdout.strip():
            return []
        releases: list[dict[str, Any]] = json.loads(result.stdout)
        return releases
