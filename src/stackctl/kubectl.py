"""kubectl wrapper used for every cluster mutation."""

import json
import time
from pathlib import Path
from typing import Any

import structlog

from .errors import CommandError, WaitTimeoutError
from .runner import CommandResult, CommandRunner

logger = structlog.get_logger()


class Kubectl:
    """Idempotent helpers around the kubectl CLI."""

    def __init__(self, runner: CommandRunner) -> None:
        self.runner = runner

    def _kubectl(self, *args: str, check: bool = True, **kwargs: Any) -> CommandResult:
        return self.runner.run(["kubectl", *args], check=check, **kwargs)

    def cluster_reachable(self) -> bool:
        return self._kubectl("cluster-info", check=False, timeout=30).ok

    def apply(self, path: Path, namespace: str | None = None) -> None:
        """Apply a file or directory, using kustomize when the directory has one."""
        flag = "-k" if path.is_dir() and (path / "kustomization.yaml").exists() else "-f"
        args = ["apply", flag, str(path)]
        if namespace:
            args += ["-n", namespace]
        self._kubectl(*args)
        logger.info("Applied manifests", path=str(path))

    def apply_manifest(self, manifest: str, namespace: str | None = None) -> None:
        """Apply YAML text passed on stdin."""
        args = ["apply", "-f", "-"]
        if namespace:
            args += ["-n", namespace]
        self._kubectl(*args, input=manifest)

    def delete_path(self, path: Path) -> None:
        """Best-effort delete of everything in a file or directory."""
        flag = "-k" if path.is_dir() and (path / "kustomization.yaml").exists() else "-f"
        result = self._kubectl(
            "delete", flag, str(path), "--ignore-not-found=true", "--wait=false", check=False
        )
        if not result.ok:
            logger.warning("Delete reported errors", path=str(path), stderr=result.stderr.strip())

    def delete(
        self,
        kind: str,
        name: str,
        namespace: str | None = None,
        wait: bool = False,
        timeout: int | None = None,
    ) -> bool:
        """Delete one object, ignoring absence. Returns whether kubectl succeeded."""
        args = ["delete", kind, name, "--ignore-not-found=true", f"--wait={str(wait).lower()}"]
        if namespace:
            args += ["-n", namespace]
        if timeout:
            args.append(f"--timeout={timeout}s")
        return self._kubectl(*args, check=False).ok

    def ensure_namespace(self, name: str, labels: dict[str, str] | None = None) -> None:
        """Create a namespace if missing and apply labels."""
        rendered = self._kubectl(
            "create", "namespace", name, "--dry-run=client", "-o", "yaml"
        ).stdout
        self.apply_manifest(rendered)
        for key, value in (labels or {}).items():
            self._kubectl("label", "namespace", name, f"{key}={value}", "--overwrite")

    def delete_namespace(self, name: str) -> None:
        self.delete("namespace", name, wait=False)

    def exists(self, kind: str, name: str, namespace: str | None = None) -> bool:
        args = ["get", kind, name]
        if namespace:
            args += ["-n", namespace]
        return self._kubectl(*args, check=False).ok

    def get_json(
        self,
        kind: str,
        name: str | None = None,
        namespace: str | None = None,
        selector: str | None = None,
    ) -> dict[str, Any] | None:
        """Fetch an object or list as parsed JSON, None when unavailable."""
        args = ["get", kind]
        if name:
            args.append(name)
        if namespace:
            args += ["-n", namespace]
        if selector:
            args += ["-l", selector]
        args += ["-o", "json"]
        result = self._kubectl(*args, check=False)
        if not result.ok:
            return None
        try:
            data: dict[str, Any] = json.loads(result.stdout)
        except json.JSONDecodeError:
            logger.warning("Unparseable kubectl output", kind=kind, name=name)
            return None
        return data

    def jsonpath(
        self,
        kind: str,
        name: str,
        expression: str,
        namespace: str | None = None,
        default: str = "",
    ) -> str:
        """Read a field with a jsonpath expression."""
        args = ["get", kind, name, "-o", f"jsonpath={expression}"]
        if namespace:
            args += ["-n", namespace]
        result = self._kubectl(*args, check=False)
        if not result.ok:
            return default
        return result.stdout.strip() or default

    def wait(
        self,
        resource: str,
        condition: str,
        namespace: str | None = None,
        selector: str | None = None,
        timeout: int = 180,
        all_matching: bool = False,
    ) -> None:
        """Block until kubectl reports the condition, raising on timeout."""
        args = ["wait", f"--for=condition={condition}", resource]
        if selector:
            args += ["-l", selector]
        elif all_matching:
            args.append("--all")
        if namespace:
            args += ["-n", namespace]
        args.append(f"--timeout={timeout}s")
        try:
            self._kubectl(*args, timeout=timeout + 30)
        except CommandError as e:
            target = f"{resource} -l {selector}" if selector else resource
            raise WaitTimeoutError(
                f"{target} did not reach {condition} within {timeout}s: {e.stderr}"
            ) from e

    def wait_for_pods_ready(
        self,
        namespace: str,
        selector: str | None = None,
        timeout: int = 180,
        best_effort: bool = False,
    ) -> bool:
        """Wait for pods to be Ready; every pod in the namespace when no selector is given.

        Returns False instead of raising when best_effort is set and the wait fails.
        """
        try:
            self.wait(
                "pods",
                "Ready",
                namespace=namespace,
                selector=selector,
                timeout=timeout,
                all_matching=selector is None,
            )
        except WaitTimeoutError as e:
            if not best_effort:
                raise
            logger.warning("Pods not ready yet", namespace=namespace, selector=selector, error=str(e))
            return False
        return True

    def wait_until_exists(self, kind: str, name: str, timeout: int, interval: int = 5) -> bool:
        """Poll until an object appears."""
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if self.exists(kind, name):
                return True
            time.sleep(interval)
        return False

    def exec(self, namespace: str, target: str, command: list[str], timeout: int = 120) -> CommandResult:
        """Run a command in a pod or workload (e.g. deploy/velero)."""
        return self._kubectl(
            "exec", "-n", namespace, target, "--", *command, check=False, timeout=timeout
        )

    def logs(self, namespace: str, pod: str) -> str:
        result = self._kubectl("logs", pod, "-n", namespace, check=False)
        return result.stdout if result.ok else ""

    def run_pod(
        self, name: str, namespace: str, image: str, command: list[str], timeout: int = 120
    ) -> CommandResult:
        """Run a transient pod to completion and return its output."""
        return self._kubectl(
            "run", name, f"--image={image}", "--rm", "-i", "--restart=Never",
            "-n", namespace, "--quiet", "--", *command,
            check=False, timeout=timeout,
        )
