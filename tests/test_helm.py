"""Tests for helm release management."""

from pathlib import Path
from unittest.mock import MagicMock

from stackctl.helm import Helm, HelmRelease

from .conftest import failed, ok

RELEASE = HelmRelease(
    "minio", "minio/minio", "minio", "https://charts.min.io/", "5.2.0", "minio", ["platform/minio/values.yaml"]
)


def commands(runner: MagicMock) -> list[list[str]]:
    return [list(c[0][0]) for c in runner.run.call_args_list]


class TestRepoAdd:
    def test_adds_missing_repo(self, mock_runner: MagicMock, tmp_path: Path) -> None:
        mock_runner.run.side_effect = [ok("[]"), ok(), ok()]

        Helm(mock_runner, tmp_path).repo_add("minio", "https://charts.min.io/")

        assert commands(mock_runner)[1] == ["helm", "repo", "add", "minio", "https://charts.min.io/"]
        assert commands(mock_runner)[2] == ["helm", "repo", "update", "minio"]

    def test_skips_existing_repo(self, mock_runner: MagicMock, tmp_path: Path) -> None:
        mock_runner.run.side_effect = [ok('[{"name": "minio", "url": "x"}]'), ok()]

        Helm(mock_runner, tmp_path).repo_add("minio", "https://charts.min.io/")

        assert ["helm", "repo", "add", "minio", "https://charts.min.io/"] not in commands(mock_runner)


class TestInstallOrUpgrade:
    def test_installs_when_absent(self, mock_runner: MagicMock, tmp_path: Path) -> None:
        mock_runner.run.side_effect = [failed("release: not found"), ok()]

        action = Helm(mock_runner, tmp_path, timeout="5m").install_or_upgrade(RELEASE)

        assert action == "install"
        command = commands(mock_runner)[1]
        assert command[:4] == ["helm", "install", "minio", "minio/minio"]
        assert command[command.index("--version") + 1] == "5.2.0"
        assert command[command.index("-f") + 1] == str(tmp_path / "platform/minio/values.yaml")
        assert command[-3:] == ["--wait", "--timeout", "5m"]

    def test_upgrades_when_present(self, mock_runner: MagicMock, tmp_path: Path) -> None:
        mock_runner.run.side_effect = [ok(), ok()]

        assert Helm(mock_runner, tmp_path).install_or_upgrade(RELEASE) == "upgrade"
        assert commands(mock_runner)[1][1] == "upgrade"

    def test_set_values_passed(self, mock_runner: MagicMock, tmp_path: Path) -> None:
        release = HelmRelease("cm", "jetstack/cert-manager", "jetstack", "u", "v1.16.2", "cert-manager",
                              set_values={"crds.enabled": "true"})
        mock_runner.run.side_effect = [failed(), ok()]

        Helm(mock_runner, tmp_path).install_or_upgrade(release)

        command = commands(mock_runner)[1]
        assert command[command.index("--set") + 1] == "crds.enabled=true"


class TestUninstall:
    def test_uninstall_absent_is_noop(self, mock_runner: MagicMock, tmp_path: Path) -> None:
        mock_runner.run.return_value = failed()

        assert Helm(mock_runner, tmp_path).uninstall("loki", "observability") is False
        assert mock_runner.run.call_count == 1

    def test_uninstall_present(self, mock_runner: MagicMock, tmp_path: Path) -> None:
        assert Helm(mock_runner, tmp_path).uninstall("loki", "observability") is True
        assert commands(mock_runner)[1] == ["helm", "uninstall", "loki", "-n", "observability", "--wait"]

    def test_list_releases(self, mock_runner: MagicMock, tmp_path: Path) -> None:
        mock_runner.run.return_value = ok('[{"name": "loki"}]')

        assert Helm(mock_runner, tmp_path).list_releases() == [{"name": "loki"}]
        assert commands(mock_runner)[0] == ["helm", "list", "-o", "json", "-A"]
