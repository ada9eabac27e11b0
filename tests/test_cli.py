"""Tests for the command-line interface (kubeforge.cli)."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from kubeforge import __version__
from kubeforge.alpha.update import UpgradeSession, UpgradeState
from kubeforge.cli import EXIT_CONFLICTS, build_parser, main
from kubeforge.plugin.base import Bundle
from kubeforge.plugins.deploy_image import DeployImagePlugin
from kubeforge.project.resource import GVK
from kubeforge.project.store import read_from
from kubeforge.project.version import PluginVersion, Stage

MEMCACHED = GVK(group="cache", domain="example.com", version="v1alpha1", kind="Memcached")


@pytest.fixture
def project(tmp_project_dir: Path, monkeypatch) -> Path:
    """An initialised project, with the working directory inside it."""
    monkeypatch.chdir(tmp_project_dir)
    main(["init", "--domain", "example.com", "--repo", "github.com/example/memcached"])
    return tmp_project_dir


def _config(root: Path):
    return read_from(root / "PROJECT")


class TestParser:
    @pytest.mark.unit
    @pytest.mark.parametrize(
        "flags, expected",
        [([], True), (["--namespaced"], True), (["--namespaced=false"], False), (["--no-namespaced"], False)],
    )
    def test_boolean_flags(self, flags, expected):
        args = build_parser().parse_args(["create", "api", "--version", "v1", "--kind", "Frigate", *flags])
        assert args.namespaced is expected

    @pytest.mark.unit
    def test_invalid_boolean(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["create", "api", "--version", "v1", "--kind", "Frigate", "--resource=maybe"])

    @pytest.mark.unit
    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


class TestInit:
    @pytest.mark.unit
    def test_init_writes_project_file(self, project):
        config = _config(project)
        assert config.get_domain() == "example.com"
        assert config.get_repository() == "github.com/example/memcached"
        assert config.get_project_name() == "test-project"
        assert config.get_plugin_chain() == ["go.kubebuilder.io/v4"]
        assert config.get_cli_version() == __version__
        assert (project / "go.mod").is_file()

    @pytest.mark.unit
    def test_init_twice_fails(self, project):
        with pytest.raises(SystemExit) as exc_info:
            main(["init", "--repo", "github.com/example/other"])
        assert exc_info.value.code == 1

    @pytest.mark.unit
    def test_init_legacy_schema_rejected(self, tmp_project_dir, monkeypatch):
        monkeypatch.chdir(tmp_project_dir)
        with pytest.raises(SystemExit) as exc_info:
            main(["init", "--project-version", "2", "--repo", "github.com/example/op"])
        assert exc_info.value.code == 1
        assert not (tmp_project_dir / "PROJECT").exists()


class TestResourceCommands:
    @pytest.mark.unit
    def test_create_api(self, project):
        main(["create", "api", "--group", "cache", "--version", "v1alpha1", "--kind", "Memcached"])
        tracked = _config(project).get_resource(MEMCACHED)
        assert tracked.has_api() and tracked.api.namespaced
        assert tracked.has_controller()
        assert (project / "api/v1alpha1/memcached_types.go").is_file()

    @pytest.mark.unit
    def test_create_controller_only(self, project):
        main([
            "create", "api", "--group", "cache", "--version", "v1alpha1", "--kind", "Memcached",
            "--resource=false",
        ])
        tracked = _config(project).get_resource(MEMCACHED)
        assert not tracked.has_api()
        assert tracked.has_controller()

    @pytest.mark.unit
    def test_invalid_kind_fails(self, project):
        with pytest.raises(SystemExit) as exc_info:
            main(["create", "api", "--group", "cache", "--version", "v1alpha1", "--kind", "memcached"])
        assert exc_info.value.code == 1

    @pytest.mark.unit
    def test_create_webhook(self, project):
        main(["create", "api", "--group", "cache", "--version", "v1alpha1", "--kind", "Memcached"])
        main([
            "create", "webhook", "--group", "cache", "--version", "v1alpha1", "--kind", "Memcached",
            "--defaulting", "--programmatic-validation",
        ])
        tracked = _config(project).get_resource(MEMCACHED)
        assert tracked.has_defaulting_webhook() and tracked.has_validation_webhook()
        assert tracked.webhooks.webhook_version == "v1"
        assert (project / "internal/webhook/v1alpha1/memcached_webhook.go").is_file()

    @pytest.mark.unit
    def test_edit_multigroup(self, project):
        main(["edit", "--multigroup"])
        assert _config(project).is_multigroup()
        main(["edit", "--multigroup=false"])
        assert not _config(project).is_multigroup()

    @pytest.mark.unit
    def test_delete_api(self, project):
        main(["create", "api", "--group", "cache", "--version", "v1alpha1", "--kind", "Memcached"])
        main(["delete", "api", "--group", "cache", "--version", "v1alpha1", "--kind", "Memcached"])
        assert _config(project).resources_length() == 0
        assert not (project / "api/v1alpha1/memcached_types.go").exists()

    @pytest.mark.unit
    def test_delete_webhook(self, project):
        main(["create", "api", "--group", "cache", "--version", "v1alpha1", "--kind", "Memcached"])
        main([
            "create", "webhook", "--group", "cache", "--version", "v1alpha1", "--kind", "Memcached",
            "--defaulting", "--programmatic-validation",
        ])
        main([
            "delete", "webhook", "--group", "cache", "--version", "v1alpha1", "--kind", "Memcached",
            "--defaulting",
        ])
        tracked = _config(project).get_resource(MEMCACHED)
        assert not tracked.has_defaulting_webhook()
        assert tracked.has_validation_webhook()

        main(["delete", "webhook", "--group", "cache", "--version", "v1alpha1", "--kind", "Memcached"])
        assert not _config(project).get_resource(MEMCACHED).has_webhooks()
        assert not (project / "internal/webhook/v1alpha1/memcached_webhook.go").exists()

    @pytest.mark.unit
    def test_delete_missing_webhook_type_fails(self, project):
        main(["create", "api", "--group", "cache", "--version", "v1alpha1", "--kind", "Memcached"])
        with pytest.raises(SystemExit) as exc_info:
            main([
                "delete", "webhook", "--group", "cache", "--version", "v1alpha1", "--kind", "Memcached",
                "--conversion",
            ])
        assert exc_info.value.code == 1

    @pytest.mark.unit
    def test_delete_unknown_api(self, project):
        with pytest.raises(SystemExit) as exc_info:
            main(["delete", "api", "--group", "cache", "--version", "v1", "--kind", "Missing"])
        assert exc_info.value.code == 1

    @pytest.mark.unit
    def test_commands_need_project(self, tmp_project_dir, monkeypatch):
        monkeypatch.chdir(tmp_project_dir)
        with pytest.raises(SystemExit) as exc_info:
            main(["edit", "--multigroup"])
        assert exc_info.value.code == 1


class TestAlphaCommands:
    @pytest.mark.unit
    def test_update_rejects_bad_version_before_git(self, tmp_project_dir, monkeypatch):
        monkeypatch.chdir(tmp_project_dir)
        with patch("kubeforge.alpha.update.run_git", new=AsyncMock(return_value="")) as mock_git:
            with pytest.raises(SystemExit) as exc_info:
                main(["alpha", "update", "--from-version", "four"])
        assert exc_info.value.code == 1
        mock_git.assert_not_awaited()

    @pytest.mark.unit
    @pytest.mark.parametrize("force, expected", [(False, EXIT_CONFLICTS), (True, None)])
    def test_update_conflict_exit_status(self, tmp_project_dir, monkeypatch, force, expected):
        monkeypatch.chdir(tmp_project_dir)
        session = UpgradeSession(from_branch="main", state=UpgradeState.CONFLICTS_LEFT_FOR_USER)
        argv = ["alpha", "update"] + (["--force"] if force else [])
        with patch("kubeforge.cli.UpgradeOrchestrator.run", new=AsyncMock(return_value=session)):
            if expected is None:
                main(argv)
            else:
                with pytest.raises(SystemExit) as exc_info:
                    main(argv)
                assert exc_info.value.code == expected

    @pytest.mark.unit
    def test_clean_update_exits_zero(self, tmp_project_dir, monkeypatch):
        monkeypatch.chdir(tmp_project_dir)
        session = UpgradeSession(from_branch="main", state=UpgradeState.DONE)
        with patch("kubeforge.cli.UpgradeOrchestrator.run", new=AsyncMock(return_value=session)):
            main(["alpha", "update"])

    @pytest.mark.unit
    def test_update_flags_reach_orchestrator(self, tmp_project_dir, monkeypatch):
        monkeypatch.chdir(tmp_project_dir)
        orchestrator_cls = MagicMock()
        orchestrator_cls.return_value.run = AsyncMock(
            return_value=UpgradeSession(from_branch="develop", state=UpgradeState.DONE)
        )
        with patch("kubeforge.cli.UpgradeOrchestrator", new=orchestrator_cls):
            main([
                "alpha", "update", "--from-branch", "develop", "--from-version", "4.5.0",
                "--to-version", "4.6.0", "--force", "--show-commits", "--output-branch", "upgrade",
                "--git-config", "rerere.enabled=true", "--git-config", "disable",
                "--merge-message", "chore: upgrade", "--conflict-message", "chore: conflicts",
            ])
        kwargs = orchestrator_cls.call_args.kwargs
        assert kwargs["from_branch"] == "develop"
        assert kwargs["from_version"] == "4.5.0"
        assert kwargs["to_version"] == "4.6.0"
        assert kwargs["force"] is True
        assert kwargs["show_commits"] is True
        assert kwargs["output_branch"] == "upgrade"
        assert kwargs["restore_paths"] == []
        assert kwargs["git_config"] == ["rerere.enabled=true", "disable"]
        assert kwargs["merge_message"] == "chore: upgrade"
        assert kwargs["conflict_message"] == "chore: conflicts"

    @pytest.mark.unit
    def test_restore_paths_repeatable(self):
        args = build_parser().parse_args(
            ["alpha", "update", "--restore-path", ".github/workflows", "--restore-path", "docs"]
        )
        assert args.restore_path == [".github/workflows", "docs"]
        assert args.force is False and args.show_commits is False

    @pytest.mark.unit
    def test_generate_runs_generator(self, project):
        with patch("kubeforge.cli.Generator.generate", new=AsyncMock()) as mock_generate:
            main(["alpha", "generate", "--output-dir", "out"])
        mock_generate.assert_awaited_once()


class TestVersion:
    @pytest.mark.unit
    def test_prints_version(self, capsys):
        main(["version"])
        assert f"kubeforge {__version__}" in capsys.readouterr().out

    @pytest.mark.unit
    def test_malformed_environment_setting(self, monkeypatch):
        monkeypatch.setenv("KUBEFORGE_GIT_TIMEOUT", "soon")
        with pytest.raises(SystemExit) as exc_info:
            main(["version"])
        assert exc_info.value.code == 1


class TestRegisteredPlugins:
    @staticmethod
    def _bundle() -> Bundle:
        return Bundle("deploy-image.custom-domain", PluginVersion(1, Stage.ALPHA), [DeployImagePlugin()])

    @pytest.mark.unit
    def test_bundle_key_in_layout(self, tmp_project_dir, monkeypatch):
        monkeypatch.chdir(tmp_project_dir)
        bundle = self._bundle()
        main(
            [
                "init", "--domain", "example.com", "--repo", "github.com/example/memcached",
                "--plugins", f"go.kubebuilder.io/v4,{bundle.key}",
            ],
            plugins=[bundle],
        )
        main(
            [
                "create", "api", "--group", "cache", "--version", "v1alpha1", "--kind", "Memcached",
                "--image=memcached:1.6", f"--plugins={bundle.key}",
            ],
            plugins=[bundle],
        )

        config = _config(tmp_project_dir)
        assert config.get_plugin_chain() == ["go.kubebuilder.io/v4", "deploy-image.custom-domain/v1-alpha"]
        [entry] = config.decode_plugin_config(bundle.key)["resources"]
        assert entry["kind"] == "Memcached"
        assert config.get_resource(MEMCACHED).has_controller()

    @pytest.mark.unit
    def test_unregistered_bundle_key_fails(self, tmp_project_dir, monkeypatch):
        monkeypatch.chdir(tmp_project_dir)
        bundle = self._bundle()
        main(
            [
                "init", "--domain", "example.com", "--repo", "github.com/example/memcached",
                "--plugins", f"go.kubebuilder.io/v4,{bundle.key}",
            ],
            plugins=[bundle],
        )
        with pytest.raises(SystemExit) as exc_info:
            main(["edit", "--multigroup"])
        assert exc_info.value.code == 1
