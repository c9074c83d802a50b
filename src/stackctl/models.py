"""Data models shared by the orchestrator, health checks and acceptance tests."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum


@dataclass
class NamespaceStatus:
    """Pod readiness inside one namespace."""

    namespace: str
    pods_ready: int = 0
    pods_total: int = 0

    @property
    def all_ready(self) -> bool:
        return self.pods_total > 0 and self.pods_ready == self.pods_total


@dataclass
class ComponentStatus:
    """Observed state of a deployed component."""

    component: str
    installed: bool
    releases: dict[str, bool] = field(default_factory=dict)
    namespaces: list[NamespaceStatus] = field(default_factory=list)
    message: str = ""

    @property
    def healthy(self) -> bool:
        return self.installed and all(ns.all_ready for ns in self.namespaces)


@dataclass
class StackRunReport:
    """What an ordered stack run managed to do."""

    operation: str
    completed: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    failed_step: str | None = None
    error: str | None = None
    started: datetime = field(default_factory=lambda: datetime.now(UTC))
    finished: datetime | None = None

    @property
    def succeeded(self) -> bool:
        return self.failed_step is None

    @property
    def duration_seconds(self) -> float:
        end = self.finished or datetime.now(UTC)
        return (end - self.started).total_seconds()


class SyncStatus(Enum):
    """ArgoCD Application sync state."""

    SYNCED = "Synced"
    OUT_OF_SYNC = "OutOfSync"
    UNKNOWN = "Unknown"
    NOT_FOUND = "NotFound"

    @classmethod
    def parse(cls, value: str | None) -> "SyncStatus":
        for member in cls:
            if member.value == value:
                return member
        return cls.UNKNOWN


class HealthStatus(Enum):
    """ArgoCD Application health state."""

    HEALTHY = "Healthy"
    PROGRESSING = "Progressing"
    DEGRADED = "Degraded"
    MISSING = "Missing"
    SUSPENDED = "Suspended"
    UNKNOWN = "Unknown"
    NOT_FOUND = "NotFound"

    @classmethod
    def parse(cls, value: str | None) -> "HealthStatus":
        for member in cls:
            if member.value == value:
                return member
        return cls.UNKNOWN


class AppOutcome(Enum):
    """Classification bucket for one application check."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class ApplicationStatus:
    """Fields read from an ArgoCD Application's status."""

    name: str
    sync: SyncStatus = SyncStatus.NOT_FOUND
    health: HealthStatus = HealthStatus.NOT_FOUND
    operation_phase: str = "Unknown"
    operation_message: str = ""
    sync_error: str = ""

    @property
    def found(self) -> bool:
        return self.sync is not SyncStatus.NOT_FOUND


@dataclass
class AppCheck:
    """Result of classifying an application."""

    app: str
    outcome: AppOutcome
    message: str


@dataclass
class HealthReport:
    """Aggregate result of an ArgoCD health run."""

    checks: list[AppCheck] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    degraded: list[str] = field(default_factory=list)
    critical_checked: int = 0

    @property
    def passed(self) -> bool:
        return not self.failed


@dataclass
class CheckResult:
    """Result of a single acceptance check."""

    name: str
    passed: bool
    detail: str = ""


@dataclass
class TestSuiteReport:
    """Acceptance checks grouped under a suite name."""

    __test__ = False

    suite: str
    results: list[CheckResult] = field(default_factory=list)

    def add(self, name: str, passed: bool, detail: str = "") -> CheckResult:
        result = CheckResult(name=name, passed=passed, detail=detail)
        self.results.append(result)
        return result

    @property
    def passed(self) -> bool:
        return all(r.passed for r in self.results)

    @property
    def failures(self) -> list[CheckResult]:
        return [r for r in self.results if not r.passed]
