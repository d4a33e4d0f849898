"""Tests for the gcal-auth CLI."""

from __future__ import annotations

import re
from pathlib import Path

import pytest
import yaml
from typer.testing import CliRunner

from gcal_auth import __version__
from gcal_auth.cli import app

runner = CliRunner()


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for var in ("GOOGLE_CLIENT_ID", "GOOGLE_CLIENT_SECRET", "TOKEN_ENCRYPTION_KEY"):
        monkeypatch.delenv(var, raising=False)


class TestCli:
    def test_version(self) -> None:
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_generate_key(self) -> None:
        result = runner.invoke(app, ["generate-key"])
        assert result.exit_code == 0
        assert re.fullmatch(r"[0-9a-f]{64}", result.output.strip())

    def test_status_valid(self, tmp_path: Path) -> None:
        config_file = tmp_path / "gcal-auth.yaml"
        config_file.write_text(yaml.dump({
            "google": {"client_id": "file-id", "client_secret": "file-secret"},
        }))
        result = runner.invoke(app, ["status", "--config", str(config_file)])
        assert result.exit_code == 0
        assert "Configuration is valid" in result.output

    def test_status_missing_credentials(self, tmp_path: Path) -> None:
        result = runner.invoke(app, ["status", "--config", str(tmp_path / "absent.yaml")])
        assert result.exit_code == 1
        assert "GOOGLE_CLIENT_ID" in result.output

    def test_status_bad_key(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        monkeypatch.setenv("GOOGLE_CLIENT_ID", "id")
        monkeypatch.setenv("GOOGLE_CLIENT_SECRET", "secret")
        monkeypatch.setenv("TOKEN_ENCRYPTION_KEY", "abcd")
        result = runner.invoke(app, ["status", "--config", str(tmp_path / "absent.yaml")])
        assert result.exit_code == 1

    def test_login_missing_credentials(self, tmp_path: Path) -> None:
        result = runner.invoke(app, ["login", "--config", str(tmp_path / "absent.yaml")])
        assert result.exit_code == 1
        assert "Authorization failed" in result.output

    def test_login_invalid_config(self, tmp_path: Path) -> None:
        config_file = tmp_path / "gcal-auth.yaml"
        config_file.write_text(yaml.dump({"auth": {"port": 70000}}))
        result = runner.invoke(app, ["login", "--config", str(config_file)])
        assert result.exit_code == 1
        assert "Invalid configuration" in result.output
        assert "auth.port" in result.output

    def test_status_invalid_config(self, tmp_path: Path) -> None:
        config_file = tmp_path / "gcal-auth.yaml"
        config_file.write_text(yaml.dump({"google": {"redirect_uri": "http://localhost/cb"}}))
        result = runner.invoke(app, ["status", "--config", str(config_file)])
        assert result.exit_code == 1
        assert "Invalid configuration" in result.output

    def test_login_interrupted(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("GOOGLE_CLIENT_ID", "id")
        monkeypatch.setenv("GOOGLE_CLIENT_SECRET", "secret")

        def _interrupt(coro):  # noqa: ANN001, ANN202
            coro.close()
            raise KeyboardInterrupt

        monkeypatch.setattr("gcal_auth.cli.asyncio.run", _interrupt)
        result = runner.invoke(app, ["login", "--config", "absent.yaml"])
        assert result.exit_code == 130
        assert "cancelled" in result.output
