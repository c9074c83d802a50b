"""Acceptance checks run against a live cluster."""

import json
import time
import uuid
from collections.abc import Callable
from typing import Any

import requests
import structlog
import urllib3
import yaml

from .components import HomeAutomationComponent, MediaStackComponent, Tools, WorkloadComponent
from .errors import StackError
from .models import TestSuiteReport

logger = structlog.get_logger()

CURL_IMAGE = "curlimages/curl:latest"


class IngressCheck:
    """Gateway routing: HTTPS serves httpbin, HTTP redirects."""

    suite = "ingress"

    def __init__(self, tools: Tools, host: str = "httpbin.localhost") -> None:
        self.settings = tools.settings
        self.host = host

    def run(self) -> TestSuiteReport:
        report = TestSuiteReport(self.suite)
        urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)
        headers = {"Host": self.host}
        try:
            https = requests.get(self.settings.https_url, headers=headers, verify=False, timeout=10)
            report.add("https returns 200", https.status_code == 200, f"got {https.status_code}")
        except requests.RequestException as e:
            report.add("https returns 200", False, str(e))
        try:
            http = requests.get(
                self.settings.http_url, headers=headers, allow_redirects=False, timeout=10
            )
            report.add("http redirects with 301", http.status_code == 301, f"got {http.status_code}")
        except requests.RequestException as e:
            report.add("http redirects with 301", False, str(e))
        return report


def bucket_names(listing: str) -> set[str]:
    """Bucket names from `mc ls` output, e.g. `[2024-01-01 10:00:00 UTC]     0B velero/`."""
    names = set()
    for line in listing.splitlines():
        fields = line.split()
        if fields:
            names.add(fields[-1].rstrip("/"))
    return names


class MinioCheck:
    """Minio pod, buckets and persistent volume."""

    suite = "minio"
    namespace = "minio"
    selector = "app.kubernetes.io/name=minio"

    def __init__(self, tools: Tools) -> None:
        self.settings = tools.settings
        self.kubectl = tools.kubectl

    def _pod(self) -> dict[str, Any] | None:
        items = (self.kubectl.get_json("pods", namespace=self.namespace, selector=self.selector) or {}).get(
            "items", []
        )
        return items[0] if items else None

    def run(self) -> TestSuiteReport:
        report = TestSuiteReport(self.suite)
        pod = self._pod()
        phase = (pod or {}).get("status", {}).get("phase", "NotFound")
        report.add("minio pod running", phase == "Running", f"phase: {phase}")
        if pod is None:
            return report

        pod_name = pod["metadata"]["name"]
        listing = self.kubectl.exec(self.namespace, pod_name, ["mc", "ls", "local"])
        buckets = bucket_names(listing.stdout) if listing.ok else set()
        for bucket in self.settings.minio_buckets:
            report.add(
                f"bucket {bucket} exists",
                bucket in buckets,
                listing.stderr.strip() if not listing.ok else "",
            )

        pvcs = (self.kubectl.get_json("pvc", namespace=self.namespace, selector=self.selector) or {}).get(
            "items", []
        )
        pvc_phase = pvcs[0].get("status", {}).get("phase", "Unknown") if pvcs else "NotFound"
        report.add("minio pvc bound", pvc_phase == "Bound", f"phase: {pvc_phase}")
        return report


class LokiCheck:
    """Loki readiness and a LogQL query through the in-cluster service."""

    suite = "loki"
    namespace = "observability"

    def __init__(self, tools: Tools) -> None:
        self.kubectl = tools.kubectl

    def query(self, logql: str) -> str:
        """Run a LogQL query from a throwaway curl pod and return the raw body."""
        result = self.kubectl.run_pod(
            f"loki-query-{uuid.uuid4().hex[:6]}",
            self.namespace,
            CURL_IMAGE,
            ["curl", "-s", "-G", "http://loki:3100/loki/api/v1/query", "--data-urlencode", f"query={logql}"],
        )
        return result.stdout

    def run(self) -> TestSuiteReport:
        report = TestSuiteReport(self.suite)
        pods = (
            self.kubectl.get_json("pods", namespace=self.namespace, selector="app=loki,release=loki") or {}
        ).get("items", [])
        phase = pods[0].get("status", {}).get("phase", "Unknown") if pods else "NotFound"
        report.add("loki pod running", phase == "Running", f"phase: {phase}")

        body = self.query('{namespace="kube-system"}')
        try:
            status = json.loads(body).get("status")
        except (json.JSONDecodeError, AttributeError):
            status = None
        report.add("kube-system query succeeds", status == "success", body[:200] if status != "success" else "")
        return report


class VeleroCheck:
    """Velero deployment, storage location, schedule and a backup/restore cycle."""

    suite = "velero"
    namespace = "velero"

    def __init__(self, tools: Tools, sleep: Callable[[float], None] = time.sleep) -> None:
        self.settings = tools.settings
        self.kubectl = tools.kubectl
        self.test_namespace = tools.settings.velero_test_namespace
        self._sleep = sleep

    def test_manifests(self) -> str:
        configmap = {
            "apiVersion": "v1",
            "kind": "ConfigMap",
            "metadata": {"name": "test-config"},
            "data": {"test-key": "test-value"},
        }
        deployment = {
            "apiVersion": "apps/v1",
            "kind": "Deployment",
            "metadata": {"name": "test-app"},
            "spec": {
                "replicas": 1,
                "selector": {"matchLabels": {"app": "test-app"}},
                "template": {
                    "metadata": {"labels": {"app": "test-app"}},
                    "spec": {
                        "containers": [
                            {
                                "name": "nginx",
                                "image": "nginx:alpine",
                                "resources": {
                                    "requests": {"cpu": "10m", "memory": "16Mi"},
                                    "limits": {"cpu": "100m", "memory": "64Mi"},
                                },
                            }
                        ]
                    },
                },
            },
        }
        return yaml.safe_dump_all([configmap, deployment], sort_keys=False)

    def _velero(self, *args: str) -> bool:
        result = self.kubectl.exec(self.namespace, "deploy/velero", ["/velero", *args], timeout=300)
        if not result.ok:
            logger.error("velero command failed", args=list(args), stderr=result.stderr.strip())
        return result.ok

    def _phase(self, kind: str, name: str) -> str:
        return self.kubectl.jsonpath(kind, name, "{.status.phase}", namespace=self.namespace, default="Unknown")

    def check_storage_location(self) -> str:
        phase = self._phase("backupstoragelocation", "default")
        polls = self.settings.storage_location_polls
        while phase != "Available" and polls > 0:
            self._sleep(self.settings.poll_interval_seconds)
            phase = self._phase("backupstoragelocation", "default")
            polls -= 1
        return phase

    def backup_restore_cycle(self, report: TestSuiteReport) -> None:
        stamp = time.strftime("%Y%m%d%H%M%S")
        backup_name = f"velero-test-{stamp}"
        restore_name = f"velero-test-restore-{stamp}"

        self.kubectl.ensure_namespace(self.test_namespace)
        try:
            self.kubectl.apply_manifest(self.test_manifests(), namespace=self.test_namespace)
            self.kubectl.wait("deployment/test-app", namespace=self.test_namespace, timeout=120)

            created = self._velero(
                "backup", "create", backup_name,
                f"--include-namespaces={self.test_namespace}", "--wait",
            )
            phase = self._phase("backup", backup_name) if created else "NotCreated"
            report.add("backup completes", phase == "Completed", f"phase: {phase}")
            if phase != "Completed":
                return

            if not self.kubectl.delete("namespace", self.test_namespace, wait=True, timeout=60):
                self._force_delete_namespace()
            self._sleep(self.settings.poll_interval_seconds)

            restored = self._velero("restore", "create", restore_name, f"--from-backup={backup_name}", "--wait")
            phase = self._phase("restore", restore_name) if restored else "NotCreated"
            report.add("restore completes", phase in ("Completed", "PartiallyFailed"), f"phase: {phase}")

            report.add(
                "configmap restored",
                self.kubectl.exists("configmap", "test-config", self.test_namespace),
            )
            report.add(
                "deployment restored",
                self.kubectl.exists("deployment", "test-app", self.test_namespace),
            )
        finally:
            self.kubectl.delete_namespace(self.test_namespace)

    def _force_delete_namespace(self) -> None:
        self.kubectl.runner.run(
            ["kubectl", "delete", "namespace", self.test_namespace, "--force", "--grace-period=0"],
            check=False,
        )

    def run(self, cycle: bool = True) -> TestSuiteReport:
        report = TestSuiteReport(self.suite)
        ready = self.kubectl.jsonpath(
            "deployment", "velero", "{.status.readyReplicas}", namespace=self.namespace, default="0"
        )
        report.add("velero deployment ready", ready not in ("", "0"), f"readyReplicas: {ready}")

        phase = self.check_storage_location()
        report.add("storage location available", phase == "Available", f"phase: {phase}")
        report.add("daily-backup schedule exists", self.kubectl.exists("schedule", "daily-backup", self.namespace))

        if cycle and report.passed:
            try:
                self.backup_restore_cycle(report)
            except StackError as e:
                report.add("backup/restore cycle", False, str(e))
        return report


class StorageCheck:
    """Dynamic provisioning: a PVC binds and a pod can write to it."""

    suite = "storage"
    name = "storage-test"

    def __init__(self, tools: Tools, sleep: Callable[[float], None] = time.sleep) -> None:
        self.settings = tools.settings
        self.kubectl = tools.kubectl
        self.namespace = tools.settings.storage_test_namespace
        self._sleep = sleep

    def test_manifests(self) -> str:
        pvc = {
            "apiVersion": "v1",
            "kind": "PersistentVolumeClaim",
            "metadata": {"name": self.name},
            "spec": {
                "accessModes": ["ReadWriteOnce"],
                "resources": {"requests": {"storage": "100Mi"}},
            },
        }
        pod = {
            "apiVersion": "v1",
            "kind": "Pod",
            "metadata": {"name": self.name},
            "spec": {
                "restartPolicy": "Never",
                "containers": [
                    {
                        "name": "writer",
                        "image": "busybox:1.36",
                        "command": [
                            "sh",
                            "-c",
                            "echo hello > /data/test.txt && cat /data/test.txt && echo 'Storage test passed'",
                        ],
                        "volumeMounts": [{"name": "data", "mountPath": "/data"}],
                    }
                ],
                "volumes": [{"name": "data", "persistentVolumeClaim": {"claimName": self.name}}],
            },
        }
        return yaml.safe_dump_all([pvc, pod], sort_keys=False)

    def _phase(self, kind: str) -> str:
        return self.kubectl.jsonpath(kind, self.name, "{.status.phase}", namespace=self.namespace, default="Unknown")

    def _poll(self, kind: str, done: tuple[str, ...]) -> str:
        phase = self._phase(kind)
        polls = self.settings.storage_test_polls
        while phase not in done and polls > 0:
            self._sleep(self.settings.poll_interval_seconds)
            phase = self._phase(kind)
            polls -= 1
        return phase

    def cleanup(self) -> None:
        # The pod holds the claim, so it goes first.
        self.kubectl.delete("pod", self.name, self.namespace, wait=True, timeout=60)
        self.kubectl.delete("pvc", self.name, self.namespace, wait=True, timeout=60)

    def run(self) -> TestSuiteReport:
        report = TestSuiteReport(self.suite)
        self.cleanup()
        try:
            self.kubectl.apply_manifest(self.test_manifests(), namespace=self.namespace)

            # WaitForFirstConsumer classes only bind once the pod is scheduled.
            pvc_phase = self._poll("pvc", ("Bound",))
            report.add("pvc bound", pvc_phase == "Bound", f"phase: {pvc_phase}")
            if pvc_phase != "Bound":
                return report

            pod_phase = self._poll("pod", ("Succeeded", "Failed"))
            report.add("writer pod succeeded", pod_phase == "Succeeded", f"phase: {pod_phase}")

            logs = self.kubectl.logs(self.namespace, self.name)
            report.add("data written to volume", "Storage test passed" in logs, logs.strip()[-200:])
        finally:
            self.cleanup()
        return report


class DashboardsCheck:
    """Grafana dashboards, alerting rules, Alertmanager and Grafana health."""

    suite = "dashboards"
    namespace = "observability"
    dashboards = {
        "grafana-dashboard-cluster-overview": "cluster-overview.json",
        "grafana-dashboard-istio-mesh": "istio-mesh.json",
        "grafana-dashboard-namespace-resources": "namespace-resources.json",
    }
    grafana_url = "http://prometheus-grafana.observability.svc/api/health"

    def __init__(self, tools: Tools) -> None:
        self.kubectl = tools.kubectl

    def check_dashboard(self, report: TestSuiteReport, name: str, key: str) -> None:
        configmap = self.kubectl.get_json("configmap", name, namespace=self.namespace)
        report.add(f"{name} exists", configmap is not None)
        if configmap is None:
            return

        label = (configmap.get("metadata", {}).get("labels") or {}).get("grafana_dashboard")
        report.add(f"{name} has grafana_dashboard label", label == "1", f"label: {label}")

        content = (configmap.get("data") or {}).get(key, "")
        try:
            json.loads(content)
            valid = bool(content)
        except json.JSONDecodeError:
            valid = False
        report.add(f"{name} json valid", valid, "" if valid else f"key {key} missing or invalid")

    def grafana_health(self) -> str | None:
        """Query Grafana's health endpoint from a throwaway curl pod."""
        result = self.kubectl.run_pod(
            f"grafana-health-{uuid.uuid4().hex[:6]}",
            self.namespace,
            CURL_IMAGE,
            ["curl", "-s", self.grafana_url],
        )
        try:
            database: str | None = json.loads(result.stdout).get("database")
        except (json.JSONDecodeError, AttributeError):
            return None
        return database

    def run(self) -> TestSuiteReport:
        report = TestSuiteReport(self.suite)
        for name, key in self.dashboards.items():
            self.check_dashboard(report, name, key)

        report.add(
            "cluster-alerts rule exists",
            self.kubectl.exists("prometheusrule", "cluster-alerts", self.namespace),
        )

        alertmanager = (
            self.kubectl.get_json(
                "pods", namespace=self.namespace, selector="app.kubernetes.io/name=alertmanager"
            )
            or {}
        ).get("items", [])
        report.add("alertmanager pod exists", bool(alertmanager))

        database = self.grafana_health()
        report.add("grafana healthy", database == "ok", f"database: {database}")
        return report


class WorkloadCheck:
    """Every app of a workload component has a Ready pod."""

    def __init__(self, tools: Tools, component: WorkloadComponent) -> None:
        self.kubectl = tools.kubectl
        self.component = component
        self.suite = component.name

    def run(self) -> TestSuiteReport:
        report = TestSuiteReport(self.suite)
        for app, selector in self.component.app_selectors.items():
            pods = (
                self.kubectl.get_json("pods", namespace=self.component.namespace, selector=selector) or {}
            ).get("items", [])
            if not pods:
                report.add(f"{app} running", False, "no pods")
                continue
            not_ready = [
                f"{pod.get('metadata', {}).get('name', '?')} ({pod.get('status', {}).get('phase', 'Unknown')})"
                for pod in pods
                if not pod_ready(pod)
            ]
            if not_ready:
                report.add(f"{app} running", False, f"not ready: {', '.join(not_ready)}")
            else:
                report.add(f"{app} running", True, f"{len(pods)} pod(s) ready")
        return report


def pod_ready(pod: dict[str, Any]) -> bool:
    conditions = pod.get("status", {}).get("conditions", [])
    return any(c.get("type") == "Ready" and c.get("status") == "True" for c in conditions)


def home_automation_check(tools: Tools) -> WorkloadCheck:
    return WorkloadCheck(tools, HomeAutomationComponent(tools))


def media_stack_check(tools: Tools) -> WorkloadCheck:
    return WorkloadCheck(tools, MediaStackComponent(tools))


def run_all_tests(tools: Tools) -> list[TestSuiteReport]:
    """Run every acceptance suite; suites continue after earlier failures."""
    suites = [
        StorageCheck(tools),
        IngressCheck(tools),
        MinioCheck(tools),
        LokiCheck(tools),
        DashboardsCheck(tools),
        VeleroCheck(tools),
        home_automation_check(tools),
        media_stack_check(tools),
    ]
    reports = []
    for suite in suites:
        logger.info("Running acceptance suite", suite=suite.suite)
        try:
            reports.append(suite.run())
        except StackError as e:
            report = TestSuiteReport(suite.suite)
            report.add("suite execution", False, str(e))
            reports.append(report)
    return reports
