"""Deployable components of the stack."""

from .base import Component, Manifest, Requirement, Tools, Wait
from .cluster import ClusterComponent
from .observability import LokiComponent, PrometheusGrafanaComponent, TracingComponent
from .platform import (
    ArgoCDComponent,
    CertManagerComponent,
    IngressComponent,
    IstioComponent,
    MinioComponent,
    VeleroComponent,
)
from .workloads import (
    HomeAutomationComponent,
    MediaStackComponent,
    SampleAppComponent,
    WorkloadComponent,
)

REGISTRY: dict[str, type[Component]] = {
    cls.name: cls
    for cls in (
        ClusterComponent,
        IstioComponent,
        CertManagerComponent,
        IngressComponent,
        MinioComponent,
        PrometheusGrafanaComponent,
        LokiComponent,
        TracingComponent,
        VeleroComponent,
        ArgoCDComponent,
        HomeAutomationComponent,
        MediaStackComponent,
        SampleAppComponent,
    )
}


def build_component(name: str, tools: Tools) -> Component:
    """Instantiate a registered component by its CLI name."""
    try:
        return REGISTRY[name](tools)
    except KeyError:
        raise ValueError(f"Unknown component: {name}") from None


__all__ = [
    "REGISTRY",
    "ArgoCDComponent",
    "CertManagerComponent",
    "ClusterComponent",
    "Component",
    "HomeAutomationComponent",
    "IngressComponent",
    "IstioComponent",
    "LokiComponent",
    "Manifest",
    "MediaStackComponent",
    "MinioComponent",
    "PrometheusGrafanaComponent",
    "Requirement",
    "SampleAppComponent",
    "Tools",
    "TracingComponent",
    "VeleroComponent",
    "Wait",
    "WorkloadComponent",
    "build_component",
]
