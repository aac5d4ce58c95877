import logging

import pytest

from clinicore.depends import depends
from clinicore.logger import InterceptHandler, Logger, LoggerSettings


@pytest.fixture
def captured() -> list[str]:
    logger = depends.get_sync(Logger)
    messages: list[str] = []
    handler_id = logger.add(messages.append, format="{level}:{message}", level="DEBUG")
    yield messages
    logger.remove(handler_id)


@pytest.mark.unit
class TestLoggerSettings:
    def test_defaults(self) -> None:
        settings = LoggerSettings()
        assert settings.log_level == "INFO"
        assert settings.deployed_level == "WARNING"
        assert not settings.json_output

    def test_sink_kwargs(self) -> None:
        kwargs = LoggerSettings(json_output=True, async_logging=False).sink_kwargs()
        assert not kwargs["colorize"]
        assert not kwargs["enqueue"]
        assert "{message}" in kwargs["format"]


@pytest.mark.unit
class TestLogger:
    def test_registered_instance(self) -> None:
        assert isinstance(depends.get_sync(Logger), Logger)

    def test_logs_to_added_sink(self, captured: list[str]) -> None:
        depends.get_sync(Logger).info("schema ready")
        assert captured == ["INFO:schema ready\n"]

    def test_module_name_extraction(self) -> None:
        record = {"name": "clinicore.migration.manager"}
        assert Logger._extract_module_name(record) == "migration.manager"
        assert Logger._extract_module_name({"name": "clinicore.config"}) == "clinicore.config"

    def test_intercepts_stdlib_logging(self, captured: list[str]) -> None:
        stdlib_logger = logging.getLogger("tests.intercept")
        stdlib_logger.addHandler(InterceptHandler())
        stdlib_logger.setLevel(logging.INFO)
        stdlib_logger.propagate = False
        try:
            stdlib_logger.warning("from sqlalchemy")
        finally:
            stdlib_logger.handlers.clear()
        assert captured == ["WARNING:from sqlalchemy\n"]
