"""Integration tests for the devboot CLI through click's CliRunner."""

from __future__ import annotations

import base64
import json
import stat
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from click.testing import CliRunner

from devboot.cli.main import cli
from devboot.core.aws import CallerIdentity, StsIdentityProvider
from devboot.core.config import save_active_profile
from devboot.core.connector import ConnectOutcome, ConnectResult, ServiceConnector, SkipReason
from devboot.core.exceptions import DaemonStartError, IdentityError, JoinError

ROLE_ARN = "arn:aws:iam::123456789012:role/devcontainer"


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def no_aws(monkeypatch: pytest.MonkeyPatch) -> None:
    def _fail(self, profile=None):
        raise IdentityError("Unable to locate credentials")

    monkeypatch.setattr(StsIdentityProvider, "get_caller_identity", _fail)


@pytest.fixture
def aws_ok(monkeypatch: pytest.MonkeyPatch) -> list:
    calls: list = []

    def _ok(self, profile=None):
        calls.append(profile)
        return CallerIdentity("123456789012", ROLE_ARN, "AROA:x")

    monkeypatch.setattr(StsIdentityProvider, "get_caller_identity", _ok)
    return calls


# ---------------------------------------------------------------------------
# devboot credentials
# ---------------------------------------------------------------------------


class TestCredentialsCommand:
    def test_nothing_configured_exits_zero(self, runner, no_aws, isolated_home) -> None:
        result = runner.invoke(cli, ["credentials"], catch_exceptions=False)
        assert result.exit_code == 0
        assert "No AWS credentials configured." in result.output
        assert "AWS credential setup complete." in result.output
        assert not (isolated_home / ".aws").exists()

    def test_codespaces_missing_secrets_exits_zero(self, runner, no_aws) -> None:
        result = runner.invoke(
            cli, ["credentials"], env={"CODESPACES": "true"}, catch_exceptions=False
        )
        assert result.exit_code == 0
        assert "IAM Roles Anywhere secrets not configured" in result.output

    def test_roles_anywhere(self, runner, aws_ok, isolated_home) -> None:
        env = {
            "CODESPACES": "true",
            "ROLES_ANYWHERE_CERTIFICATE": base64.b64encode(b"cert").decode(),
            "ROLES_ANYWHERE_PRIVATE_KEY": base64.b64encode(b"key").decode(),
            "ROLES_ANYWHERE_TRUST_ANCHOR_ARN": (
                "arn:aws:rolesanywhere:eu-west-1:123456789012:trust-anchor/a"
            ),
            "ROLES_ANYWHERE_PROFILE_ARN": "arn:aws:rolesanywhere:eu-west-1:123456789012:profile/p",
            "ROLES_ANYWHERE_ROLE_ARN": ROLE_ARN,
        }
        result = runner.invoke(cli, ["credentials"], env=env, catch_exceptions=False)
        assert result.exit_code == 0
        assert "AWS credentials are working!" in result.output
        key = isolated_home / ".aws" / "roles-anywhere" / "private-key.pem"
        assert stat.S_IMODE(key.stat().st_mode) == 0o600

    def test_bad_config_exits_one(self, runner, tmp_path) -> None:
        cfg = tmp_path / "config.toml"
        cfg.write_text("[tailscale]\nmax_attempts = 0\n")
        result = runner.invoke(cli, ["credentials"], env={"DEVBOOT_CONFIG": str(cfg)})
        assert result.exit_code == 1
        assert "Config error" in result.output


# ---------------------------------------------------------------------------
# devboot tailscale
# ---------------------------------------------------------------------------


class TestTailscaleCommand:
    def test_skip_exits_zero(self, runner, monkeypatch) -> None:
        monkeypatch.setattr(
            ServiceConnector,
            "run",
            lambda self: ConnectResult(ConnectOutcome.SKIPPED, reason=SkipReason.PLACEHOLDER),
        )
        result = runner.invoke(cli, ["tailscale"], catch_exceptions=False)
        assert result.exit_code == 0
        assert "Tailscale setup complete." in result.output

    def test_no_credentials_skips(self, runner, no_aws) -> None:
        result = runner.invoke(cli, ["tailscale"], catch_exceptions=False)
        assert result.exit_code == 0
        assert "AWS credentials not available." in result.output
        assert "Skipping Tailscale setup." in result.output

    def test_daemon_failure_prints_log_tail(self, runner, monkeypatch) -> None:
        def _fail(self):
            raise DaemonStartError(
                "tailscaled daemon failed to start within timeout",
                log_tail=["logtail: dial failed", "wgengine: no tun"],
            )

        monkeypatch.setattr(ServiceConnector, "run", _fail)
        result = runner.invoke(cli, ["tailscale"])
        assert result.exit_code == 1
        assert "[ERROR] tailscaled daemon failed to start within timeout" in result.output
        assert "wgengine: no tun" in result.output

    def test_join_failure_exits_one(self, runner, monkeypatch) -> None:
        def _fail(self):
            raise JoinError("Failed to connect to Tailscale network.")

        monkeypatch.setattr(ServiceConnector, "run", _fail)
        result = runner.invoke(cli, ["tailscale"])
        assert result.exit_code == 1
        assert "Failed to connect" in result.output

    def test_uses_persisted_profile(self, runner, aws_ok, monkeypatch) -> None:
        save_active_profile("sandbox")
        monkeypatch.setattr(
            "devboot.core.aws.SsmParameterStore.get_parameter",
            lambda self, name, decrypt=True: None,
        )
        result = runner.invoke(cli, ["tailscale"], catch_exceptions=False)
        assert result.exit_code == 0
        assert aws_ok == ["sandbox"]
        assert "Could not fetch Tailscale auth key" in result.output


# ---------------------------------------------------------------------------
# devboot shell-env
# ---------------------------------------------------------------------------


class TestShellEnv:
    def test_no_profile_prints_nothing(self, runner) -> None:
        result = runner.invoke(cli, ["shell-env"], catch_exceptions=False)
        assert result.exit_code == 0
        assert result.output == ""

    def test_profile_export(self, runner) -> None:
        save_active_profile("my profile")
        result = runner.invoke(cli, ["shell-env"], catch_exceptions=False)
        assert result.exit_code == 0
        assert result.output.strip() == "export AWS_PROFILE='my profile'"


# ---------------------------------------------------------------------------
# devboot certs generate
# ---------------------------------------------------------------------------


class TestCertsGenerate:
    def test_generate_then_keep(self, runner, tmp_path: Path) -> None:
        out = tmp_path / "certs"
        args = ["certs", "generate", "--directory", str(out), "--key-size", "2048"]
        result = runner.invoke(cli, args, catch_exceptions=False)
        assert result.exit_code == 0
        assert (out / "ca-cert.pem").exists()
        assert (out / "end-entity-key.pem.b64").exists()
        first = (out / "ca-cert.pem").read_bytes()

        result = runner.invoke(cli, [*args, "--no-input"], catch_exceptions=False)
        assert result.exit_code == 0
        assert "Keeping existing certificates" in result.output
        assert (out / "ca-cert.pem").read_bytes() == first

    def test_small_key_rejected(self, runner, tmp_path: Path) -> None:
        result = runner.invoke(
            cli, ["certs", "generate", "--directory", str(tmp_path), "--key-size", "1024"]
        )
        assert result.exit_code == 1
        assert not (tmp_path / "ca-cert.pem").exists()


# ---------------------------------------------------------------------------
# devboot deploy
# ---------------------------------------------------------------------------


class TestDeploy:
    def test_requires_credentials(self, runner, no_aws, tmp_path: Path) -> None:
        result = runner.invoke(cli, ["deploy", "--template", str(tmp_path / "t.yaml")])
        assert result.exit_code == 1
        assert "AWS credentials not configured or invalid." in result.output

    def test_requires_template(self, runner, aws_ok, tmp_path: Path) -> None:
        result = runner.invoke(cli, ["deploy", "--template", str(tmp_path / "missing.yaml")])
        assert result.exit_code == 1
        assert "Bootstrap template not found" in result.output

    def test_requires_ca_certificate(self, runner, aws_ok, tmp_path: Path, monkeypatch) -> None:
        template = tmp_path / "bootstrap.template"
        template.write_text("{}")
        monkeypatch.setattr("boto3.Session", MagicMock())
        result = runner.invoke(
            cli,
            ["deploy", "--template", str(template), "--certs-dir", str(tmp_path / "certs")],
        )
        assert result.exit_code == 1
        assert "CA certificate not found" in result.output

    def test_deploys_with_ca_body(self, runner, aws_ok, tmp_path: Path, monkeypatch) -> None:
        template = tmp_path / "bootstrap.template"
        template.write_text("{}")
        certs = tmp_path / "certs"
        certs.mkdir()
        (certs / "ca-cert.pem").write_text("-----BEGIN CERTIFICATE-----\n")

        session = MagicMock()
        cfn = MagicMock()
        cfn.describe_stacks.return_value = {
            "Stacks": [
                {
                    "StackStatus": "UPDATE_COMPLETE",
                    "Outputs": [{"OutputKey": "DevcontainerRoleArn", "OutputValue": ROLE_ARN}],
                }
            ]
        }
        ssm = MagicMock()
        ssm.get_paginator.return_value.paginate.return_value = []
        session.return_value.client.side_effect = lambda name: {
            "cloudformation": cfn,
            "ssm": ssm,
        }[name]
        monkeypatch.setattr("boto3.Session", session)

        result = runner.invoke(
            cli,
            [
                "deploy",
                "--template",
                str(template),
                "--certs-dir",
                str(certs),
                "--project-name",
                "demo",
            ],
            catch_exceptions=False,
        )
        assert result.exit_code == 0
        kwargs = cfn.create_change_set.call_args.kwargs
        params = {p["ParameterKey"]: p["ParameterValue"] for p in kwargs["Parameters"]}
        assert params == {
            "ProjectName": "demo",
            "Environment": "dev",
            "CACertificateBody": "-----BEGIN CERTIFICATE-----\n",
        }
        assert "Bootstrap deployment complete!" in result.output


# ---------------------------------------------------------------------------
# devboot doctor / version
# ---------------------------------------------------------------------------


class TestDoctor:
    def test_json(self, runner, no_aws) -> None:
        result = runner.invoke(
            cli, ["doctor", "--json"], env={"CODESPACES": "true"}, catch_exceptions=False
        )
        assert result.exit_code == 0
        data = json.loads(result.output)
        names = {c["name"]: c for c in data["checks"]}
        assert names["Environment"]["detail"] == "codespaces"
        assert names["Roles Anywhere secrets"]["status"] == "warn"
        assert names["AWS identity"]["status"] == "warn"
        assert data["all_pass"] is True

    def test_bad_config_fails(self, runner, no_aws, tmp_path) -> None:
        cfg = tmp_path / "config.toml"
        cfg.write_text("project_name = [")
        result = runner.invoke(
            cli, ["doctor", "--json"], env={"DEVBOOT_CONFIG": str(cfg)}, catch_exceptions=False
        )
        data = json.loads(result.output)
        assert data["all_pass"] is False

    def test_text(self, runner, aws_ok) -> None:
        result = runner.invoke(cli, ["doctor"], catch_exceptions=False)
        assert result.exit_code == 0
        assert "devboot doctor" in result.output
        assert ROLE_ARN in result.output


class TestVersion:
    def test_version_json(self, runner) -> None:
        result = runner.invoke(cli, ["version", "--json"], catch_exceptions=False)
        data = json.loads(result.output)
        assert data["devboot"] == "0.1.0"

    def test_version_flag(self, runner) -> None:
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "devboot 0.1.0" in result.output
