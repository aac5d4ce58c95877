import os
from pathlib import Path

import rich.repr
import typing as t
from inflection import underscore
from pydantic import Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

from .depends import depends

root_path = Path(os.getenv("CLINICORE_ROOT", Path.cwd()))
settings_path = root_path / "settings"


def _is_deployed() -> bool:
    return os.getenv("CLINICORE_DEPLOYED", "False").lower() == "true"


@rich.repr.auto
class Settings(BaseSettings):
    """Base class for every settings group.

    Values are resolved, highest priority first, from init kwargs,
    ``CLINICORE_<GROUP>_<FIELD>`` environment variables and
    ``settings/<group>.yaml``.
    """

    model_config = SettingsConfigDict(
        extra="ignore",
        arbitrary_types_allowed=True,
        validate_default=True,
        protected_namespaces=("model_", "settings_"),
    )

    @classmethod
    def settings_group(cls) -> str:
        return underscore(cls.__name__.removesuffix("Settings")) or "app"

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        yaml_settings = YamlConfigSettingsSource(
            settings_cls,
            yaml_file=settings_path / f"{cls.settings_group()}.yaml",
        )
        return (init_settings, env_settings, yaml_settings)


class AppSettings(Settings):
    model_config = SettingsConfigDict(env_prefix="CLINICORE_APP_")

    name: str = "clinicore"
    title: str | None = None
    deployed: bool = Field(default_factory=_is_deployed)

    def model_post_init(self, __context: t.Any) -> None:
        self.title = self.title or self.name.replace("-", " ").title()

    @field_validator("name")
    @classmethod
    def normalize_app_name(cls, v: str) -> str:
        name = v.strip().replace(" ", "-").replace("_", "-").lower()
        if len(name) < 3:
            msg = "App name too short"
            raise ValueError(msg)
        return name


@rich.repr.auto
class Config:
    """Process-wide settings container.

    Groups are created lazily so that importing the package never touches
    the filesystem or environment beyond what a group needs.
    """

    def __init__(self, **groups: Settings) -> None:
        self._groups: dict[str, Settings] = dict(groups)

    @property
    def root_path(self) -> Path:
        return root_path

    @property
    def settings_path(self) -> Path:
        return settings_path

    @property
    def app(self) -> AppSettings:
        return t.cast("AppSettings", self.get(AppSettings))

    @property
    def deployed(self) -> bool:
        return self.app.deployed

    def get[S: Settings](self, settings_cls: type[S]) -> S:
        group = settings_cls.settings_group()
        if group not in self._groups:
            self._groups[group] = settings_cls()
        return t.cast("S", self._groups[group])

    def register(self, settings: Settings) -> None:
        self._groups[settings.settings_group()] = settings

    def __rich_repr__(self) -> rich.repr.Result:
        yield from self._groups.items()


depends.set(Config, Config())
