"""
ExcelVC Agent - Configuration Tests
====================================

Invariants tested:
1. Defaults match the documented agent behaviour (1 s quiet period, 7 day retention)
2. Invalid values are rejected at load and on assignment
3. The config file is written owner-readable only
"""

import json
import os
import stat

import pytest
from pydantic import ValidationError

from excelvc_agent.config import Config, ConfigManager


@pytest.fixture
def manager(tmp_path):
    return ConfigManager(tmp_path / "excelvc" / "config.json")


class TestConfigModel:

    def test_defaults(self):
        config = Config()

        assert config.watch_roots == []
        assert config.watch_new_directories is True
        assert config.quiet_period_seconds == 1.0
        assert config.stability_poll_seconds == 0.4
        assert config.retention_days == 7
        assert config.retention_interval_hours == 24
        assert config.encryption_key_env == "EXCELVC_KEY"
        assert config.log_level == "INFO"

    def test_watch_roots_normalized_and_deduplicated(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        config = Config(watch_roots=["docs", str(tmp_path / "docs"), "other"])

        assert config.watch_roots == [str(tmp_path / "docs"), str(tmp_path / "other")]

    def test_home_is_expanded(self, monkeypatch, tmp_path):
        monkeypatch.setenv("HOME", str(tmp_path))
        assert Config(watch_roots=["~/Documents"]).watch_roots == [str(tmp_path / "Documents")]

    def test_log_level_uppercased(self):
        assert Config(log_level="debug").log_level == "DEBUG"

    @pytest.mark.parametrize("field,value", [
        ("log_level", "VERBOSE"),
        ("quiet_period_seconds", 0),
        ("stability_poll_seconds", -1),
        ("compression_level", 10),
        ("retention_days", 0),
        ("encryption_key_env", ""),
    ])
    def test_invalid_values_rejected(self, field, value):
        with pytest.raises(ValidationError):
            Config(**{field: value})

    def test_assignment_is_validated(self):
        config = Config()
        with pytest.raises(ValidationError):
            config.retention_days = -3


class TestConfigManager:

    def test_load_missing_file(self, manager):
        with pytest.raises(FileNotFoundError):
            manager.load()

    def test_save_and_load(self, manager, tmp_path):
        manager.save(Config(watch_roots=[str(tmp_path)], retention_days=14))

        loaded = ConfigManager(manager.config_path).load()

        assert loaded.watch_roots == [str(tmp_path)]
        assert loaded.retention_days == 14

    def test_saved_file_is_owner_only(self, manager):
        manager.save(Config())
        mode = stat.S_IMODE(os.stat(manager.config_path).st_mode)
        assert mode == 0o600

    def test_invalid_file_rejected(self, manager):
        manager.config_path.parent.mkdir(parents=True)
        manager.config_path.write_text(json.dumps({"retention_days": "forever"}))

        with pytest.raises(ValidationError):
            manager.load()

    def test_update_persists(self, manager):
        manager.save(Config())
        manager.update({'quiet_period_seconds': 2.5})

        assert ConfigManager(manager.config_path).load().quiet_period_seconds == 2.5

    def test_add_watch_root(self, manager, tmp_path):
        manager.save(Config())

        assert manager.add_watch_root(str(tmp_path / "docs")) is True
        assert manager.add_watch_root(str(tmp_path / "docs") + os.sep) is False
        assert ConfigManager(manager.config_path).load().watch_roots == [str(tmp_path / "docs")]

    def test_reset_removes_file(self, manager):
        manager.save(Config())
        manager.reset()

        assert not manager.config_path.exists()

    def test_ensure_directories(self, manager, tmp_path):
        manager.save(Config(
            db_path=str(tmp_path / "state" / "excelvc.db"),
            log_dir=str(tmp_path / "state" / "logs")
        ))

        manager.ensure_directories()

        assert (tmp_path / "state" / "logs").is_dir()
        assert stat.S_IMODE(os.stat(tmp_path / "state").st_mode) == 0o700
