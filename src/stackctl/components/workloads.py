"""Application workloads deployed from plain manifests."""

from typing import ClassVar

from .base import Component, Manifest, Wait


def _app_manifests(root: str, app: str, parts: tuple[str, ...]) -> tuple[Manifest, ...]:
    return tuple(Manifest(f"{root}/{app}/{part}.yaml") for part in parts) + (
        Manifest(f"{root}/{app}/resources/servicemonitor.yaml", optional=True),
        Manifest(f"{root}/{app}/resources/virtualservice.yaml", optional=True),
    )


class WorkloadComponent(Component):
    """A namespace of manifest-only apps, each labelled app.kubernetes.io/name=<app>."""

    tools_required = ("kubectl",)
    root: ClassVar[str]
    namespace: ClassVar[str]
    apps: ClassVar[dict[str, tuple[str, ...]]]
    shared_manifests: ClassVar[tuple[Manifest, ...]] = ()

    def __init_subclass__(cls, **kwargs: object) -> None:
        super().__init_subclass__(**kwargs)
        if not hasattr(cls, "root"):
            return
        cls.pre_manifests = (Manifest(f"{cls.root}/namespace.yaml"),) + cls.shared_manifests
        cls.manifests = tuple(
            manifest
            for app, parts in cls.apps.items()
            for manifest in _app_manifests(cls.root, app, parts)
        )
        cls.waits = tuple(
            Wait("pod", "Ready", namespace=cls.namespace,
                 selector=f"app.kubernetes.io/name={app}", timeout=300)
            for app in cls.apps
        )

    @property
    def app_selectors(self) -> dict[str, str]:
        return {app: f"app.kubernetes.io/name={app}" for app in self.apps}

    @property
    def all_namespaces(self) -> list[str]:  # type: ignore[override]
        return [self.namespace]


class HomeAutomationComponent(WorkloadComponent):
    """Mosquitto, Home Assistant, Zigbee2MQTT and Homebridge."""

    name = "home-automation"
    description = "Home Automation stack"
    root = "apps/home-automation"
    namespace = "home-automation"
    apps = {
        "mosquitto": ("configmap", "pvc", "service", "deployment"),
        "homeassistant": ("configmap", "pvc", "service", "deployment"),
        "zigbee2mqtt": ("configmap", "pvc", "service", "deployment"),
        "homebridge": ("pvc", "service", "deployment"),
    }
    endpoints = {
        "HomeAssistant": "homeassistant.localhost",
        "Zigbee2MQTT": "zigbee2mqtt.localhost",
        "Homebridge": "homebridge.localhost",
    }


class MediaStackComponent(WorkloadComponent):
    """NZBGet, Sonarr and Radarr sharing a downloads volume."""

    name = "media-stack"
    description = "Media stack"
    root = "apps/media"
    namespace = "media"
    shared_manifests = (Manifest("apps/media/shared-storage/downloads-pvc.yaml"),)
    apps = {
        "nzbget": ("configmap", "pvc", "service", "deployment"),
        "sonarr": ("pvc", "service", "deployment"),
        "radarr": ("pvc", "service", "deployment"),
    }
    endpoints = {
        "NZBGet": "nzbget.localhost",
        "Sonarr": "sonarr.localhost",
        "Radarr": "radarr.localhost",
    }


class SampleAppComponent(Component):
    """httpbin behind the gateway, used by the ingress checks."""

    name = "sample-app"
    description = "httpbin sample application"
    tools_required = ("kubectl",)
    namespace = "ingress-sample"
    pre_manifests = (Manifest("apps/sample/httpbin/namespace.yaml"),)
    manifests = (
        Manifest("apps/sample/httpbin/deployment.yaml"),
        Manifest("apps/sample/httpbin/service.yaml"),
        Manifest("apps/sample/httpbin/virtual-service.yaml"),
    )
    waits = (Wait("pods", "Ready", namespace="ingress-sample", selector="app=httpbin", timeout=120),)
    endpoints = {"httpbin": "httpbin.localhost"}

    @property
    def all_namespaces(self) -> list[str]:  # type: ignore[override]
        return [self.namespace]
