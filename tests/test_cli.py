"""Unit tests for image_migrator/cli.py"""

import base64
import json
import os
from unittest.mock import patch

import pytest

from image_migrator import cli

PLAN = """
migrationUnits:
  - sourceImage: docker.io/library/alpine:3.19
    destinationImage: registry.example.com/mirror/alpine:3.19
  - sourceImage: docker.io/library/busybox:1.36
    destinationImage: registry.example.com/mirror/busybox:1.36
"""


@pytest.fixture
def plan_path(tmp_path):
    path = tmp_path / "migration.yaml"
    path.write_text(PLAN)
    return str(path)


@pytest.fixture
def clean_env():
    with patch.dict(os.environ, {}, clear=True):
        yield


@pytest.fixture
def engine_class(make_engine, clean_env):
    """Patch the CLI's DockerEngineClient with a recording engine"""
    engine = make_engine()
    with patch("image_migrator.cli.DockerEngineClient", return_value=engine) as mock_class:
        mock_class.engine = engine
        yield mock_class


class TestParseArguments:
    """Tests for parse_arguments"""

    def test_defaults(self, clean_env):
        args = cli.parse_arguments([])

        assert args.config_path == ""
        assert args.pull_username is None
        assert args.push_password is None
        assert args.max_workers is None
        assert args.dry_run is False
        assert args.allow_failures is False

    def test_config_path_spellings(self, clean_env):
        assert cli.parse_arguments(["--configPath", "a.yaml"]).config_path == "a.yaml"
        assert cli.parse_arguments(["--config-path", "b.yaml"]).config_path == "b.yaml"

    def test_config_path_from_environment(self):
        with patch.dict(os.environ, {"CONFIG_FILE": "env.yaml"}, clear=True):
            assert cli.parse_arguments([]).config_path == "env.yaml"


class TestMain:
    """Tests for main"""

    def test_empty_config_path_exits_nonzero(self, engine_class, caplog):
        assert cli.main([]) == 1

        engine_class.assert_not_called()
        assert "configPath is empty" in caplog.text

    def test_unreadable_config_exits_nonzero(self, engine_class, tmp_path):
        assert cli.main(["--configPath", str(tmp_path / "missing.yaml")]) == 1

        engine_class.assert_not_called()

    def test_invalid_max_workers_exits_nonzero(self, engine_class, plan_path):
        assert cli.main(["--configPath", plan_path, "--max-workers", "0"]) == 1

        engine_class.assert_not_called()

    def test_successful_migration(self, engine_class, plan_path):
        assert cli.main(["--configPath", plan_path]) == 0

        assert engine_class.engine.calls == [
            ("pull", "docker.io/library/alpine:3.19"),
            ("tag", "docker.io/library/alpine:3.19", "registry.example.com/mirror/alpine:3.19"),
            ("push", "registry.example.com/mirror/alpine:3.19"),
            ("pull", "docker.io/library/busybox:1.36"),
            ("tag", "docker.io/library/busybox:1.36", "registry.example.com/mirror/busybox:1.36"),
            ("push", "registry.example.com/mirror/busybox:1.36"),
        ]

    def test_engine_options_passed_through(self, engine_class, plan_path):
        cli.main(["--configPath", plan_path, "--docker-host", "tcp://10.0.0.5:2375", "--engine-timeout", "30"])

        engine_class.assert_called_once_with(base_url="tcp://10.0.0.5:2375", timeout=30)

    def test_failed_unit_exits_nonzero(self, engine_class, plan_path):
        engine_class.engine.fail_pull = {"docker.io/library/alpine:3.19"}

        assert cli.main(["--configPath", plan_path]) == 1

        assert ("push", "registry.example.com/mirror/busybox:1.36") in engine_class.engine.calls

    def test_allow_failures(self, engine_class, plan_path):
        engine_class.engine.fail_push = {"registry.example.com/mirror/alpine:3.19"}

        assert cli.main(["--configPath", plan_path, "--allow-failures"]) == 0

    def test_health_check_failure_aborts(self, engine_class, plan_path):
        engine_class.engine.ping = lambda: False

        assert cli.main(["--configPath", plan_path]) == 1

        assert engine_class.engine.calls == []

    def test_skip_health_check(self, engine_class, plan_path):
        engine_class.engine.ping = lambda: False

        assert cli.main(["--configPath", plan_path, "--skip-health-check"]) == 0

    def test_dry_run_makes_no_engine_calls(self, engine_class, plan_path):
        engine_class.engine.ping = lambda: False

        assert cli.main(["--configPath", plan_path, "--dry-run"]) == 0

        assert engine_class.engine.calls == []

    def test_credentials_from_flags(self, engine_class, plan_path):
        cli.main(
            [
                "--configPath", plan_path,
                "--pull-username", "reader", "--pull-password", "r-secret",
                "--push-username", "writer", "--push-password", "w-secret",
            ]
        )

        tokens = dict(engine_class.engine.tokens[:2])
        decoded = {side: json.loads(base64.urlsafe_b64decode(t)) for side, t in tokens.items()}
        assert decoded == {
            "pull": {"username": "reader", "password": "r-secret"},
            "push": {"username": "writer", "password": "w-secret"},
        }

    def test_credentials_from_environment(self, engine_class, plan_path):
        with patch.dict(os.environ, {"PUSH_REGISTRY_USERNAME": "writer", "PUSH_REGISTRY_PASSWORD": "w-secret"}):
            cli.main(["--configPath", plan_path])

        pull_token = engine_class.engine.tokens[0][1]
        push_token = engine_class.engine.tokens[1][1]
        assert pull_token is None
        assert json.loads(base64.urlsafe_b64decode(push_token)) == {"username": "writer", "password": "w-secret"}

    def test_report_written(self, engine_class, plan_path, tmp_path):
        engine_class.engine.fail_tag = {"registry.example.com/mirror/busybox:1.36"}
        output = tmp_path / "reports" / "migration.json"

        cli.main(["--configPath", plan_path, "--output", str(output)])

        report = json.loads(output.read_text())
        assert report["summary"]["total_units"] == 2
        assert report["summary"]["failed"] == 1
        assert report["units"][1]["failed_step"] == "tag"

    def test_timestamped_report(self, engine_class, plan_path, tmp_path):
        output = tmp_path / "migration.json"

        assert cli.main(["--configPath", plan_path, "--output", str(output), "--timestamp"]) == 0

        assert not output.exists()
        reports = list(tmp_path.glob("migration-*.json"))
        assert len(reports) == 1
        assert json.loads(reports[0].read_text())["summary"]["succeeded"] == 2

    def test_incomplete_unit_does_not_block_the_plan(self, engine_class, tmp_path):
        path = tmp_path / "migration.yaml"
        path.write_text(
            "migrationUnits:\n"
            "  - sourceImage: docker.io/library/alpine:3.19\n"
            "    destinationImage: registry.example.com/mirror/alpine:3.19\n"
            "  - sourceImage: docker.io/library/busybox:1.36\n"
        )

        assert cli.main(["--configPath", str(path)]) == 1

        assert ("push", "registry.example.com/mirror/alpine:3.19") in engine_class.engine.calls
        assert ("tag", "docker.io/library/busybox:1.36", "") in engine_class.engine.calls

    def test_unexpected_error_exits_nonzero(self, engine_class, plan_path):
        with patch("image_migrator.cli.RegistryMigrator") as mock_migrator:
            mock_migrator.return_value.run.side_effect = RuntimeError("boom")

            assert cli.main(["--configPath", plan_path]) == 1
