"""Loguru-based logger shared by every clinicore component.

Modules obtain the process logger with::

    from clinicore.depends import depends
    from clinicore.logger import Logger

    logger = depends.get_sync(Logger)
"""

import json
import logging
import os
import sys
from inspect import currentframe

import asyncio
import typing as t
from aioconsole import aprint
from datetime import UTC, datetime
from loguru._logger import Core as _Core
from loguru._logger import Logger as _Logger
from pydantic_settings import SettingsConfigDict

from .config import Config, Settings
from .depends import depends


class LoggerSettings(Settings):
    model_config = SettingsConfigDict(env_prefix="CLINICORE_LOGGER_")

    log_level: str = "INFO"
    deployed_level: str = "WARNING"
    level_per_module: dict[str, str] = {}
    format: dict[str, str] = {
        "time": "<b><e>[</e> <w>{time:YYYY-MM-DD HH:mm:ss.SSS}</w> <e>]</e></b>",
        "level": " <level>{level:>8}</level>",
        "sep": " <b><w>in</w></b> ",
        "name": "<b>{extra[mod_name]:>20}</b>",
        "line": "<b><e>[</e><w>{line:^5}</w><e>]</e></b>",
        "message": "  <level>{message}</level>",
    }
    json_output: bool = False
    enable_stderr_sink: bool = False
    stderr_level: str = "INFO"
    async_logging: bool = True

    def sink_kwargs(self) -> dict[str, t.Any]:
        return {
            "format": "".join(self.format.values()),
            "enqueue": self.async_logging,
            "backtrace": False,
            "diagnose": False,
            "colorize": not self.json_output,
        }


_LEVELS = {"DEBUG": 10, "INFO": 20, "SUCCESS": 25, "WARNING": 30, "ERROR": 40}


class Logger(_Logger):  # type: ignore[misc]
    """Process logger with its own loguru core."""

    def __init__(self) -> None:
        _Logger.__init__(  # type: ignore[no-untyped-call]
            self,
            core=_Core(),  # type: ignore[no-untyped-call]
            exception=None,
            depth=0,
            record=False,
            lazy=False,
            colors=False,
            raw=False,
            capture=True,
            patchers=[],
            extra={},
        )
        self._settings: LoggerSettings | None = None
        self._initialized = False

    @property
    def settings(self) -> LoggerSettings:
        if self._settings is None:
            self._settings = self.config.get(LoggerSettings)
        return self._settings

    @property
    def config(self) -> Config:
        return depends.get_sync(Config)

    def init(self) -> None:
        if self._initialized:
            return
        self.remove()  # type: ignore[no-untyped-call]
        if not self._is_testing_mode():
            self.configure(patcher=self._patch)  # type: ignore[no-untyped-call]
            self._add_primary_sink()
            if self.settings.enable_stderr_sink:
                self._add_stderr_sink()
        self._initialized = True

    @staticmethod
    def _is_testing_mode() -> bool:
        return "pytest" in sys.modules or os.getenv("TESTING", "").lower() == "true"

    def _patch(self, record: dict[str, t.Any]) -> None:
        record["extra"]["mod_name"] = self._extract_module_name(record)

    @staticmethod
    def _extract_module_name(record: dict[str, t.Any]) -> str:
        mod_parts = record.get("name", "").split(".")
        if len(mod_parts) > 2:
            return ".".join(mod_parts[1:])
        return ".".join(mod_parts)

    def _effective_level(self) -> str:
        if self.config.deployed:
            return self.settings.deployed_level.upper()
        return self.settings.log_level.upper()

    def _filter_by_module(self, record: dict[str, t.Any]) -> bool:
        module_name = record["extra"].get("mod_name", record["name"])
        target = self.settings.level_per_module.get(
            module_name,
            self._effective_level(),
        )
        return record["level"].no >= _LEVELS.get(target.upper(), 20)

    @staticmethod
    async def async_sink(message: str) -> None:
        await aprint(message, end="")

    def _add_primary_sink(self) -> None:
        try:
            asyncio.get_running_loop()
            sink: t.Any = self.async_sink
        except RuntimeError:
            sink = sys.stdout
        self.add(  # type: ignore[no-untyped-call]
            sink,
            filter=t.cast("t.Any", self._filter_by_module),
            **self.settings.sink_kwargs(),
        )

    def _add_stderr_sink(self) -> None:
        def stderr_sink(message: t.Any) -> None:
            record = message.record
            event = {
                "timestamp": datetime.now(UTC).isoformat(),
                "level": record["level"].name,
                "event": f"{record['extra'].get('mod_name', 'unknown')}.{record['function']}",
                "message": record["message"],
                "attributes": {"line": record["line"], **record["extra"]},
            }
            sys.stderr.write(json.dumps(event, default=str) + "\n")

        self.add(  # type: ignore[no-untyped-call]
            stderr_sink,
            level=self.settings.stderr_level,
            colorize=False,
        )


class InterceptHandler(logging.Handler):
    """Route standard library logging (SQLAlchemy, aiosqlite) into loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        logger_instance = depends.get_sync(Logger)
        try:
            level: str | int = logger_instance.level(record.levelname).name  # type: ignore[no-untyped-call]
        except ValueError:
            level = record.levelno

        frame, depth = (currentframe(), 0)
        while frame and (depth == 0 or frame.f_code.co_filename == logging.__file__):
            frame = frame.f_back
            depth += 1

        logger_instance.opt(depth=depth, exception=record.exc_info).log(  # type: ignore[no-untyped-call]
            level,
            record.getMessage(),
        )


def configure_stdlib_logging_interception() -> None:
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)


_logger = Logger()
_logger.init()
depends.set(Logger, _logger)
