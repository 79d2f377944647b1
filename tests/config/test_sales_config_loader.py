"""Tests for the YAML configuration loader and get_active_config resolution."""

from __future__ import annotations

from textwrap import dedent

import pytest
import yaml

from sales_config import CONFIG_PATH_ENV, SalesConfig, get_active_config
from sales_config.loader import load_config, parse_config


def _write(tmp_path, text):
    path = tmp_path / "sales.yaml"
    path.write_text(dedent(text))
    return path


class TestDefaults:

    def test_defaults_are_complete(self):
        config = SalesConfig()
        assert config.receivables.default_credit_days == 30
        assert config.folios.sale_prefix == "VTA"
        assert config.folios.receivable_prefix == "CXC"
        assert config.folios.payable_prefix == "CXP"
        assert config.folios.payment_prefix == "PAG"
        assert config.folios.sequence_width == 4
        assert config.logging.level == "INFO"
        assert config.source is None

    def test_empty_file_gives_defaults(self, tmp_path):
        config = load_config(_write(tmp_path, ""))
        assert config.receivables == SalesConfig().receivables
        assert config.source == str(tmp_path / "sales.yaml")


class TestLoadConfig:

    def test_sections_override_defaults(self, tmp_path):
        path = _write(tmp_path, """
            database:
              url: sqlite:///other.db
              echo: true
            logging:
              level: debug
            receivables:
              default_credit_days: 45
            folios:
              sale_prefix: SAL
        """)
        config = load_config(path)
        assert config.database.url == "sqlite:///other.db"
        assert config.database.echo is True
        assert config.logging.level == "DEBUG"
        assert config.receivables.default_credit_days == 45
        assert config.folios.sale_prefix == "SAL"
        assert config.folios.payment_prefix == "PAG"

    def test_malformed_yaml(self, tmp_path):
        with pytest.raises(yaml.YAMLError):
            load_config(_write(tmp_path, "receivables: [unclosed\n"))

    def test_top_level_must_be_mapping(self, tmp_path):
        with pytest.raises(ValueError):
            load_config(_write(tmp_path, "- a\n- b\n"))

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "absent.yaml")


class TestValidation:

    def test_unknown_section(self):
        with pytest.raises(ValueError, match="Unknown configuration sections"):
            parse_config({"invoices": {}})

    def test_unknown_key(self):
        with pytest.raises(ValueError, match="unknown keys"):
            parse_config({"receivables": {"grace_days": 5}})

    @pytest.mark.parametrize("value", [0, -3, "30", True, 1.5])
    def test_credit_days_must_be_positive_int(self, value):
        with pytest.raises(ValueError):
            parse_config({"receivables": {"default_credit_days": value}})

    def test_blank_prefix(self):
        with pytest.raises(ValueError):
            parse_config({"folios": {"payment_prefix": "  "}})

    def test_echo_must_be_boolean(self):
        with pytest.raises(ValueError):
            parse_config({"database": {"echo": "yes"}})

    def test_unknown_log_level(self):
        with pytest.raises(ValueError, match="not a log level"):
            parse_config({"logging": {"level": "chatty"}})

    def test_section_must_be_mapping(self):
        with pytest.raises(ValueError):
            parse_config({"folios": "VTA"})


class TestGetActiveConfig:

    def test_defaults_without_path(self, monkeypatch):
        monkeypatch.delenv(CONFIG_PATH_ENV, raising=False)
        assert get_active_config() == SalesConfig()

    def test_explicit_path(self, tmp_path, monkeypatch):
        monkeypatch.delenv(CONFIG_PATH_ENV, raising=False)
        path = _write(tmp_path, "receivables:\n  default_credit_days: 10\n")
        assert get_active_config(path).receivables.default_credit_days == 10

    def test_environment_variable(self, tmp_path, monkeypatch, captured_logs):
        path = _write(tmp_path, "receivables:\n  default_credit_days: 60\n")
        monkeypatch.setenv(CONFIG_PATH_ENV, str(path))
        config = get_active_config()
        assert config.receivables.default_credit_days == 60

        loaded = [r for r in captured_logs() if r["message"] == "sales_config_loaded"]
        assert loaded and loaded[-1]["source"] == str(path)

    def test_explicit_path_must_exist(self, tmp_path, monkeypatch):
        monkeypatch.setenv(CONFIG_PATH_ENV, str(tmp_path / "absent.yaml"))
        with pytest.raises(FileNotFoundError):
            get_active_config()
