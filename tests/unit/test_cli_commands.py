"""Unit tests for the CLI — command registration and the local environment."""

from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from fleetcore.cli.app import app

runner = CliRunner()


@pytest.fixture
def state_dir(tmp_path: Path, monkeypatch) -> Path:
    monkeypatch.chdir(tmp_path)
    return tmp_path / "state"


def _invoke(*args: str, state_dir: Path | None = None):
    argv = list(args)
    if state_dir is not None:
        argv += ["--state-dir", str(state_dir)]
    return runner.invoke(app, argv)


# ---------------------------------------------------------------------------
# Test: CLI help and registration
# ---------------------------------------------------------------------------


class TestCliApp:
    """The CLI must register all expected commands and show help."""

    def test_no_args_shows_help(self):
        result = runner.invoke(app, [])
        # Typer's no_args_is_help may exit with 0 or 2 depending on version
        assert result.exit_code in (0, 2)
        assert "usage" in result.output.lower()

    def test_help_lists_commands(self):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        for name in ("bootstrap", "start-instance", "destroy", "status", "classify"):
            assert name in result.output

    @pytest.mark.parametrize(
        "command",
        [
            "bootstrap", "start-instance", "destroy", "status", "seed",
            "image-sources", "validate-images", "classify", "select-hardware",
        ],
    )
    def test_command_registered(self, command):
        assert runner.invoke(app, [command, "--help"]).exit_code == 0


# ---------------------------------------------------------------------------
# Test: local environment lifecycle
# ---------------------------------------------------------------------------


class TestLifecycle:
    def test_bootstrap_start_destroy(self, state_dir):
        assert _invoke("seed", state_dir=state_dir).exit_code == 0

        result = _invoke("bootstrap", state_dir=state_dir)
        assert result.exit_code == 0, result.output
        assert "bootstrapped" in result.output

        result = _invoke("status", state_dir=state_dir)
        assert result.exit_code == 0
        assert "(bootstrapped)" in result.output
        assert "cpu-power=100" in result.output

        result = _invoke("start-instance", "1", "-c", "mem=1024", state_dir=state_dir)
        assert result.exit_code == 0, result.output
        assert "m1.small" in result.output

        result = _invoke("destroy", state_dir=state_dir)
        assert result.exit_code == 0, result.output
        assert "unbootstrapped" in result.output

    def test_bootstrap_twice_fails(self, state_dir):
        _invoke("seed", state_dir=state_dir)
        _invoke("bootstrap", state_dir=state_dir)
        result = _invoke("bootstrap", state_dir=state_dir)
        assert result.exit_code == 1
        assert "already-bootstrapped" in result.output

    def test_start_before_bootstrap_fails(self, state_dir):
        result = _invoke("start-instance", "1", state_dir=state_dir)
        assert result.exit_code == 1
        assert "not-bootstrapped" in result.output

    def test_status_unbootstrapped(self, state_dir):
        result = _invoke("status", state_dir=state_dir)
        assert result.exit_code == 0
        assert "(unbootstrapped)" in result.output

    def test_bad_constraints(self, state_dir):
        result = _invoke("bootstrap", "-c", "colour=red", state_dir=state_dir)
        assert result.exit_code == 2

    def test_image_sources(self, state_dir):
        result = _invoke("image-sources", state_dir=state_dir)
        assert result.exit_code == 0
        assert "file://" in result.output
        assert "cloud-images.ubuntu.com" in result.output

    def test_validate_images(self, state_dir):
        _invoke("seed", state_dir=state_dir)
        result = _invoke("validate-images", "--arch", "i386", state_dir=state_dir)
        assert result.exit_code == 0
        assert "ami-00000034" in result.output
        assert "ami-00000033" not in result.output


class TestInspect:
    def test_classify_testing_table(self):
        result = runner.invoke(app, ["classify", "--testing", "8.0.0.1", "127.0.0.1"])
        assert result.exit_code == 0
        assert "public" in result.output
        assert "local-cloud" in result.output

    def test_classify_default_table(self):
        result = runner.invoke(app, ["classify", "10.0.0.1"])
        assert result.exit_code == 0
        assert "local-cloud" in result.output

    def test_select_hardware(self):
        result = runner.invoke(app, ["select-hardware", "mem=1024"])
        assert result.exit_code == 0
        assert "m1.small" in result.output

    def test_select_hardware_no_match(self):
        result = runner.invoke(app, ["select-hardware", "mem=64G"])
        assert result.exit_code == 1
        assert "no-matching-hardware" in result.output
