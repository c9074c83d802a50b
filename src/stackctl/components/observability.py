"""Observability layer: metrics, logs and traces."""

from ..helm import HelmRelease
from .base import Component, Manifest, Wait

NAMESPACE = "observability"
GRAFANA_REPO = ("grafana", "https://grafana.github.io/helm-charts")


class PrometheusGrafanaComponent(Component):
    """kube-prometheus-stack with mesh monitors, dashboards and alert rules."""

    name = "prometheus-grafana"
    description = "Prometheus and Grafana"
    shared_namespaces = True
    pre_manifests = (Manifest("observability/prometheus-grafana/resources/namespace.yaml"),)
    releases = (
        HelmRelease("prometheus", "prometheus-community/kube-prometheus-stack",
                    "prometheus-community", "https://prometheus-community.github.io/helm-charts",
                    "80.4.1", NAMESPACE, ["observability/prometheus-grafana/values.yaml"]),
    )
    manifests = (
        Manifest("observability/prometheus-grafana/resources/servicemonitor-istio.yaml", optional=True),
        Manifest("observability/prometheus-grafana/resources/podmonitor-envoy.yaml", optional=True),
        Manifest("observability/prometheus-grafana/resources/virtualservice-grafana.yaml", optional=True),
        Manifest("observability/prometheus-grafana/resources/virtualservice-prometheus.yaml", optional=True),
        Manifest("observability/prometheus-grafana/dashboards", optional=True),
        Manifest("observability/prometheus-grafana/rules", optional=True),
    )
    waits = (
        Wait("deployment/prometheus-kube-prometheus-operator", namespace=NAMESPACE, timeout=180),
        Wait("deployment/prometheus-grafana", namespace=NAMESPACE, timeout=180),
        Wait("pod", "Ready", namespace=NAMESPACE, selector="app.kubernetes.io/name=prometheus",
             timeout=180, best_effort=True),
    )
    endpoints = {"Grafana": "grafana.localhost", "Prometheus": "prometheus.localhost"}


class LokiComponent(Component):
    """Loki with Promtail shipping every pod's logs."""

    name = "loki"
    description = "Loki and Promtail"
    shared_namespaces = True
    namespaces = {NAMESPACE: {}}
    releases = (
        HelmRelease("loki", "grafana/loki-stack", *GRAFANA_REPO, "2.10.3", NAMESPACE,
                    ["observability/loki/values.yaml"]),
    )
    manifests = (Manifest("observability/loki/resources", optional=True),)
    waits = (
        Wait("pod", "Ready", namespace=NAMESPACE, selector="app=loki,release=loki", timeout=180),
        Wait("pod", "Ready", namespace=NAMESPACE, selector="app.kubernetes.io/name=promtail",
             timeout=120, best_effort=True),
    )


class TracingComponent(Component):
    """Tempo trace storage, the Jaeger UI and the OTel Collector pipeline."""

    name = "tracing"
    description = "Jaeger, Tempo and the OTel Collector"
    shared_namespaces = True
    namespaces = {NAMESPACE: {}}
    releases = (
        HelmRelease("tempo", "grafana/tempo", *GRAFANA_REPO, "1.24.1", NAMESPACE,
                    ["observability/tempo/values.yaml"]),
        HelmRelease("jaeger", "jaegertracing/jaeger", "jaegertracing",
                    "https://jaegertracing.github.io/helm-charts", "4.1.4", NAMESPACE,
                    ["observability/jaeger/values.yaml"]),
        HelmRelease("otel-collector", "open-telemetry/opentelemetry-collector", "open-telemetry",
                    "https://open-telemetry.github.io/opentelemetry-helm-charts", "0.141.1",
                    NAMESPACE, ["observability/otel-collector/values.yaml"]),
    )
    manifests = (
        Manifest("observability/tempo/resources/grafana-datasource.yaml", optional=True),
        Manifest("observability/jaeger/resources/virtualservice.yaml", optional=True),
    )
    waits = (
        Wait("pod", "Ready", namespace=NAMESPACE, selector="app.kubernetes.io/name=tempo", timeout=180),
        Wait("pod", "Ready", namespace=NAMESPACE, selector="app.kubernetes.io/name=jaeger", timeout=180),
        Wait("pod", "Ready", namespace=NAMESPACE,
             selector="app.kubernetes.io/name=opentelemetry-collector", timeout=180),
    )
    endpoints = {"Jaeger": "jaeger.localhost"}
