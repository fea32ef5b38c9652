"""
Integration tests for CLI volume group commands.
"""

from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from lvmctl.cli.cli import app
from lvmctl.lib.exceptions import classify

GiB = 1024 ** 3


@pytest.fixture
def lvm(fake_lvm, no_config):
    """FakeLVM wired into the vg command group."""
    with patch("lvmctl.cli.commands.vg.make_runner", return_value=fake_lvm):
        yield fake_lvm


class TestVgShow:
    """Tests for vg show command."""

    @pytest.mark.integration
    def test_show_named(self, lvm):
        lvm.add_lv("vg_test", "vol1", GiB)

        runner = CliRunner()
        result = runner.invoke(app, ["vg", "show", "vg_test"])

        assert result.exit_code == 0
        assert f"vg_test uuid={lvm.vgs['vg_test']['uuid']}" in result.output
        assert f"size={10 * GiB} free={9 * GiB}" in result.output

    @pytest.mark.integration
    def test_show_default_from_config(self, lvm, monkeypatch, temp_dir):
        config_path = temp_dir / "lvmctl.conf"
        config_path.write_text("[lvm]\nvg_name = vg_test\n", encoding="utf-8")
        monkeypatch.setenv("LVMCTL_CONFIG_PATH", str(config_path))

        runner = CliRunner()
        result = runner.invoke(app, ["vg", "show"])

        assert result.exit_code == 0
        assert "vg_test" in result.output

    @pytest.mark.integration
    def test_show_missing(self, lvm):
        runner = CliRunner()
        result = runner.invoke(app, ["vg", "show", "vg_missing"])

        assert result.exit_code == 2
        assert "Error showing volume group" in result.output
        assert 'Volume group "vg_missing" not found' in result.output

    @pytest.mark.integration
    def test_show_lvm_failure(self, lvm):
        lvm.fail["fullreport"] = classify(5, "  Reading VG vg_test from disk failed.\n")

        runner = CliRunner()
        result = runner.invoke(app, ["vg", "show", "vg_test"])

        assert result.exit_code == 1
        assert "exit status 5" in result.output


class TestVgList:
    """Tests for vg list command."""

    @pytest.mark.integration
    def test_list(self, lvm):
        lvm.add_vg("vg_other", size=GiB)

        runner = CliRunner()
        result = runner.invoke(app, ["vg", "list"])

        assert result.exit_code == 0
        assert f"vg_test size={10 * GiB}" in result.output
        assert f"vg_other size={GiB}" in result.output

    @pytest.mark.integration
    def test_list_empty(self, lvm):
        lvm.vgs.clear()

        runner = CliRunner()
        result = runner.invoke(app, ["vg", "list"])

        assert result.exit_code == 0
        assert "No volume groups found" in result.output

    @pytest.mark.integration
    def test_verbose_flag(self, lvm):
        runner = CliRunner()
        result = runner.invoke(app, ["--verbose", "vg", "list"])

        assert result.exit_code == 0
