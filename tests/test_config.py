"""Simple tests for the config module."""

from pathlib import Path

import pytest

from clinicore.adapters.sql import SqlSettings
from clinicore.config import AppSettings, Config, Settings
from clinicore.migration import MigrationSettings
from clinicore.services.resolution import ResolutionCacheSettings


class SampleSettings(Settings):
    name: str = "sample"
    value: int = 123


@pytest.mark.unit
class TestSettings:
    def test_defaults_and_overrides(self) -> None:
        assert SampleSettings().value == 123
        custom = SampleSettings(name="custom", value=456)
        assert custom.name == "custom"
        assert custom.value == 456

    def test_settings_group(self) -> None:
        assert SampleSettings.settings_group() == "sample"
        assert ResolutionCacheSettings.settings_group() == "resolution_cache"
        assert Settings.settings_group() == "app"

    def test_env_prefix(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CLINICORE_SQL_DATABASE_PATH", "/tmp/env.db")
        monkeypatch.setenv("CLINICORE_MIGRATION_TABLE_NAME", "history")
        assert SqlSettings().database_path == "/tmp/env.db"
        assert MigrationSettings().table_name == "history"

    def test_yaml_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("clinicore.config.settings_path", tmp_path)
        (tmp_path / "resolution_cache.yaml").write_text("max_size: 42\nttl: 5\n")
        settings = ResolutionCacheSettings()
        assert settings.max_size == 42
        assert settings.ttl == 5.0

    def test_init_beats_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CLINICORE_RESOLUTION_CACHE_MAX_SIZE", "7")
        assert ResolutionCacheSettings().max_size == 7
        assert ResolutionCacheSettings(max_size=9).max_size == 9


@pytest.mark.unit
class TestAppSettings:
    def test_name_normalized(self) -> None:
        app = AppSettings(name="My Clinic_App")
        assert app.name == "my-clinic-app"
        assert app.title == "My Clinic App"

    def test_name_too_short(self) -> None:
        with pytest.raises(ValueError, match="too short"):
            AppSettings(name="ab")

    def test_deployed_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CLINICORE_DEPLOYED", "true")
        assert AppSettings().deployed


@pytest.mark.unit
class TestConfig:
    def test_groups_are_created_once(self) -> None:
        config = Config()
        first = config.get(SqlSettings)
        assert config.get(SqlSettings) is first

    def test_register(self) -> None:
        config = Config()
        custom = SqlSettings(database_path=":memory:")
        config.register(custom)
        assert config.get(SqlSettings) is custom

    def test_initial_groups(self) -> None:
        app = AppSettings(name="clinic")
        config = Config(app=app)
        assert config.app is app
        assert not config.deployed
