"""
Tests for tundev.config and tundev.logging_setup modules.
"""

import logging
import os

import pytest
import yaml

from tundev.config import (
    RuntimeConfig,
    load_config_file,
    save_default_config,
    apply_config_file,
    CTLIOCGINFO,
    SIOCGIFMTU,
    SIOCSIFMTU,
    MAX_KCTL_NAME,
)
from tundev.logging_setup import (
    setup_logging,
    reset_logging,
    format_block,
    ColorFormatter,
)


def _iowr(group, num, size):
    return 0xC0000000 | (size & 0x1FFF) << 16 | ord(group) << 8 | num


class TestConstants:
    """ioctl request codes encode the structure sizes they carry."""

    def test_ctliocginfo(self):
        assert CTLIOCGINFO == _iowr("N", 3, 4 + MAX_KCTL_NAME)

    def test_mtu_ioctls(self):
        assert SIOCGIFMTU == _iowr("i", 51, 32)
        assert SIOCSIFMTU == 0x80000000 | 32 << 16 | ord("i") << 8 | 52


class TestConfigFile:
    """Tests for YAML config handling."""

    def test_missing_file(self, tmp_path):
        assert load_config_file(str(tmp_path / "missing.yaml")) == {}

    def test_default_config_roundtrip(self, tmp_path):
        path = str(tmp_path / "sub" / "config.yaml")

        assert save_default_config(path)
        data = load_config_file(path)

        assert data["device"] == {"index": 0, "mtu": 0}
        assert data["logging"]["level"] == "INFO"

    def test_non_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")

        assert load_config_file(str(path)) == {}

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("device: [unclosed\n")

        with pytest.raises(yaml.YAMLError):
            load_config_file(str(path))


class TestApplyConfig:
    """CLI values take precedence over the file."""

    def test_file_fills_defaults(self):
        config = RuntimeConfig()

        apply_config_file(config, {
            "device": {"index": 3, "mtu": 1400},
            "logging": {"to_file": False, "level": "DEBUG"},
        })

        assert config.effective_index == 3
        assert config.effective_mtu == 1400
        assert config.log_to_file is False
        assert config.log_level == "DEBUG"

    def test_cli_wins(self):
        config = RuntimeConfig(interface_index=1, mtu=9000)

        apply_config_file(config, {"device": {"index": 3, "mtu": 1400}})

        assert config.effective_index == 1
        assert config.effective_mtu == 9000

    def test_explicit_zero_mtu_wins(self):
        config = RuntimeConfig(mtu=0)

        apply_config_file(config, {"device": {"mtu": 1400}})

        assert config.effective_mtu == 0

    def test_empty(self):
        config = RuntimeConfig()

        apply_config_file(config, {})

        assert config.effective_index == 0
        assert config.effective_mtu == 0


class TestLogging:
    """Tests for logging setup."""

    def setup_method(self):
        reset_logging()

    def teardown_method(self):
        reset_logging()

    def test_file_logging(self, tmp_path):
        log_file = tmp_path / "logs" / "tundev.log"
        logger = setup_logging(log_to_file=True, log_to_console=False, log_file=str(log_file))

        logging.getLogger("tundev.device").info("hello from device")
        for handler in logger.handlers:
            handler.flush()

        assert "hello from device" in log_file.read_text()

    def test_setup_is_cached(self):
        first = setup_logging(log_to_file=False)
        second = setup_logging(log_to_file=False, log_level="DEBUG")

        assert first is second

    def test_color_formatter_keeps_record(self):
        record = logging.LogRecord("tundev", logging.ERROR, __file__, 1, "bad", None, None)

        text = ColorFormatter("%(levelname)s %(message)s").format(record)

        assert "\033[31m" in text
        assert record.levelname == "ERROR"

    def test_format_block(self):
        assert format_block("DEVICE", ["a", "b"]) == "[DEVICE]\n  a\n  b"
