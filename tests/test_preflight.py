"""
Tests for tundev.preflight and the command line entry point.
"""

import os
from unittest import mock

import pytest

from tundev import preflight
from tundev.__main__ import main
from tundev.exceptions import UnsupportedPlatformError


class TestPreflight:
    def test_results_shape(self):
        results = preflight.run_preflight_checks(verbose=False)

        assert [name for name, _, _ in results] == ["Platform", "Privileges", "PyYAML"]
        assert all(isinstance(ok, bool) and isinstance(msg, str) for _, ok, msg in results)

    def test_yaml_available(self):
        ok, _ = preflight.check_yaml_available()

        assert ok

    def test_root_check(self):
        with mock.patch.object(os, "geteuid", return_value=0):
            assert preflight.check_root_privileges()[0]
        with mock.patch.object(os, "geteuid", return_value=501):
            assert not preflight.check_root_privileges()[0]

    def test_validate_startup_fails(self):
        with mock.patch.object(preflight, "check_platform", return_value=(False, "nope")):
            with pytest.raises(UnsupportedPlatformError, match="nope"):
                preflight.validate_startup()

    def test_verbose_output(self, capsys):
        preflight.run_preflight_checks(verbose=True)

        assert "PyYAML" in capsys.readouterr().out


class TestMain:
    def test_init_config(self, tmp_path, capsys):
        path = tmp_path / "config.yaml"

        assert main(["--init-config", "--config", str(path)]) == 0
        assert path.exists()
        assert str(path) in capsys.readouterr().out

    def test_check(self):
        passing = [("Platform", True, "ok")]
        with mock.patch("tundev.__main__.run_preflight_checks", return_value=passing):
            assert main(["--check"]) == 0

    def test_startup_failure(self, tmp_path, capsys):
        with mock.patch(
            "tundev.__main__.validate_startup",
            side_effect=UnsupportedPlatformError("not darwin"),
        ):
            assert main(["--config", str(tmp_path / "none.yaml")]) == 1

        assert "not darwin" in capsys.readouterr().out
