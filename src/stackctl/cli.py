"""Command-line interface for stackctl."""

import shutil
import sys
from pathlib import Path
from typing import Optional

import structlog
import typer
import yaml
from rich.console import Console
from rich.table import Table

from .acceptance import home_automation_check, media_stack_check, run_all_tests
from .argocd_health import ArgoCDHealthChecker
from .components import REGISTRY, ArgoCDComponent, Component, Tools
from .config import Settings, get_settings
from .errors import StackError
from .logging_config import configure_logging
from .models import ComponentStatus, HealthReport, StackRunReport, TestSuiteReport
from .orchestrator import StackOrchestrator

app = typer.Typer(
    name="stackctl",
    help="Deploy and operate the home-automation Kubernetes stack",
    add_completion=False,
    no_args_is_help=True,
)
stack_app = typer.Typer(help="Whole-stack operations", no_args_is_help=True)
app.add_typer(stack_app, name="stack")

console = Console()
logger = structlog.get_logger()

_settings: Settings | None = None


@app.callback()
def main_callback(
    repo_root: Optional[Path] = typer.Option(None, help="Root of the manifests tree"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    log_json: bool = typer.Option(False, "--log-json", help="Emit JSON logs"),
) -> None:
    """Configure settings and logging for every command."""
    global _settings
    settings = get_settings()
    if repo_root is not None:
        settings.repo_root = repo_root
    configure_logging("DEBUG" if verbose else settings.log_level, json=log_json or settings.log_json)
    _settings = settings


def get_tools() -> Tools:
    return Tools.from_settings(_settings or get_settings())


def _confirm(message: str, force: bool) -> bool:
    if force:
        return True
    return typer.confirm(message, default=False)


def _fail(message: str) -> None:
    console.print(f"[red]❌ {message}[/red]")
    raise typer.Exit(1)


def print_statuses(statuses: list[ComponentStatus]) -> None:
    table = Table(title="Stack Status")
    table.add_column("Component", style="cyan")
    table.add_column("Installed")
    table.add_column("Releases")
    table.add_column("Pods ready")
    table.add_column("Notes")
    for status in statuses:
        releases = ", ".join(f"{name}{'' if ok else ' (missing)'}" for name, ok in status.releases.items())
        pods = ", ".join(f"{ns.namespace} {ns.pods_ready}/{ns.pods_total}" for ns in status.namespaces)
        mark = "[green]✓[/green]" if status.healthy else ("[yellow]△[/yellow]" if status.installed else "[red]✗[/red]")
        table.add_row(status.component, mark, releases or "-", pods or "-", status.message)
    console.print(table)


def print_run_report(report: StackRunReport) -> None:
    minutes, seconds = divmod(int(report.duration_seconds), 60)
    if report.succeeded:
        console.print(f"[green]✅ {report.operation} complete in {minutes}m {seconds}s[/green]")
    else:
        console.print(f"[red]❌ {report.operation} failed at step '{report.failed_step}': {report.error}[/red]")
        if report.completed:
            console.print("Successfully deployed components:")
            for step in report.completed:
                console.print(f"  - {step}")
        console.print("Fix the issue and re-run 'stackctl stack up' (idempotent)")
        console.print("Or run 'stackctl stack down' to clean up")
    for warning in report.warnings:
        console.print(f"[yellow]⚠️  {warning}[/yellow]")


def print_suite(report: TestSuiteReport) -> None:
    console.print(f"\n[bold]{report.suite}[/bold]")
    for result in report.results:
        mark = "[green]PASS[/green]" if result.passed else "[red]FAIL[/red]"
        detail = f" ({result.detail})" if result.detail else ""
        console.print(f"  {mark} {result.name}{detail}")


def print_health(report: HealthReport) -> None:
    console.print(f"\nCritical apps checked: {report.critical_checked}")
    console.print(f"Failed: {len(report.failed)}")
    console.print(f"Degraded: {len(report.degraded)}")
    if report.failed:
        console.print(f"[red]FAILED apps: {' '.join(report.failed)}[/red]")
        for check in report.checks:
            if check.app in report.failed:
                console.print(f"  [red]✗ {check.app}: {check.message}[/red]")
    if report.degraded:
        console.print(f"[yellow]Degraded apps: {' '.join(report.degraded)}[/yellow]")


# === COMPONENT COMMANDS ===


def _register_component(name: str, component_cls: type[Component]) -> None:
    sub = typer.Typer(help=component_cls.description or name, no_args_is_help=True)

    @sub.command("up")
    def up() -> None:
        """Deploy or upgrade (idempotent)."""
        component = component_cls(get_tools())
        try:
            component.up()
        except StackError as e:
            _fail(str(e))
        console.print(f"[green]✅ {name} is up[/green]")
        if isinstance(component, ArgoCDComponent):
            password = component.admin_password()
            if password:
                console.print(f"ArgoCD admin password: {password}")

    @sub.command("down")
    def down(
        force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation prompt"),
    ) -> None:
        """Remove (safe to re-run)."""
        if not _confirm(f"This will remove {name}. Continue?", force):
            console.print("Aborted.")
            return
        try:
            component_cls(get_tools()).down()
        except StackError as e:
            _fail(str(e))
        console.print(f"[green]✅ {name} removed[/green]")

    @sub.command("status")
    def status() -> None:
        """Show releases and pod readiness."""
        try:
            print_statuses([component_cls(get_tools()).status()])
        except StackError as e:
            _fail(str(e))

    if name == "home-automation" or name == "media-stack":
        factory = home_automation_check if name == "home-automation" else media_stack_check

        @sub.command("test")
        def test() -> None:
            """Verify every app pod is running."""
            report = factory(get_tools()).run()
            print_suite(report)
            if not report.passed:
                raise typer.Exit(1)

    if name == "argocd":
        sub.command("health")(argocd_health)

    app.add_typer(sub, name=name)


def argocd_health() -> None:
    """Check that ArgoCD applications are synced and healthy."""
    tools = get_tools()
    try:
        report = ArgoCDHealthChecker(tools.settings, tools.kube).run()
    except StackError as e:
        _fail(str(e))
        return
    print_health(report)
    if not report.passed:
        raise typer.Exit(1)
    console.print("[green]SUCCESS: All critical ArgoCD applications are synced and healthy[/green]")


for _name, _cls in REGISTRY.items():
    _register_component(_name, _cls)


# === STACK COMMANDS ===


@stack_app.command("up")
def stack_up(
    gitops: bool = typer.Option(False, "--gitops", help="Bootstrap ArgoCD and deploy via app-of-apps"),
) -> None:
    """Deploy the whole stack in dependency order."""
    orchestrator = StackOrchestrator(get_tools())
    report = orchestrator.up_gitops() if gitops else orchestrator.up()
    print_run_report(report)
    if not report.succeeded:
        raise typer.Exit(1)
    table = Table(title="Endpoints")
    table.add_column("Service", style="cyan")
    table.add_column("URL")
    for label, url in orchestrator.endpoints().items():
        table.add_row(label, url)
    console.print(table)
    console.print(f"export KUBECONFIG=$(k3d kubeconfig write {orchestrator.settings.cluster_name})")


@stack_app.command("down")
def stack_down(
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation prompt"),
    keep_cluster: bool = typer.Option(False, "--keep-cluster", help="Tear down apps but keep the cluster"),
) -> None:
    """Tear down the whole stack in reverse order."""
    if not _confirm("This will tear down the entire stack. All metrics and logs will be lost. Continue?", force):
        console.print("Aborted.")
        return
    print_run_report(StackOrchestrator(get_tools()).down(keep_cluster=keep_cluster))


@stack_app.command("status")
def stack_status() -> None:
    """Show every component's status."""
    print_statuses(StackOrchestrator(get_tools()).status())


# === TEST / LINT / CLEAN ===


@app.command("test")
def test_all() -> None:
    """Run every acceptance suite against the running cluster."""
    reports = run_all_tests(get_tools())
    for report in reports:
        print_suite(report)
    failed = [r.suite for r in reports if not r.passed]
    if failed:
        _fail(f"Failed suites: {', '.join(failed)}")
    console.print("[green]✅ All acceptance suites passed[/green]")


def lint_yaml(root: Path) -> list[str]:
    """Parse every YAML file under root and return the errors found."""
    errors = []
    for path in sorted([*root.rglob("*.yaml"), *root.rglob("*.yml")]):
        if any(part.startswith(".") for part in path.relative_to(root).parts):
            continue
        try:
            with open(path) as f:
                list(yaml.safe_load_all(f))
        except yaml.YAMLError as e:
            errors.append(f"{path}: {e}")
    return errors


@app.command("lint")
def lint() -> None:
    """Check that every YAML file parses."""
    root = (_settings or get_settings()).repo_root
    errors = lint_yaml(root)
    for error in errors:
        console.print(f"[red]{error}[/red]")
    if errors:
        raise typer.Exit(1)
    console.print("[green]✅ YAML lint passed[/green]")


@app.command("clean")
def clean() -> None:
    """Remove generated files."""
    tmp = (_settings or get_settings()).repo_root / ".tmp"
    shutil.rmtree(tmp, ignore_errors=True)
    console.print("Done")


def main() -> int:
    try:
        app()
    except StackError as e:
        console.print(f"[red]❌ {e}[/red]")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
