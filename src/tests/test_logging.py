import json

from loguru import logger

from throttlekit.logging import LogConfig, configure_logging, get_logger, normalize_environment


def test_environment_aliases():
    assert normalize_environment("dev") == "development"
    assert normalize_environment("TEST") == "testing"
    assert normalize_environment("prod") == "production"
    assert normalize_environment("mars") == "development"
    assert normalize_environment(None) == "development"


def test_configure_logging_uses_environment_defaults(monkeypatch):
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    config = configure_logging(environment="testing")
    assert config.level == "WARNING"
    assert config.file is False
    logger.remove()


def test_json_logging(monkeypatch, capsys):
    monkeypatch.setenv("LOG_JSON", "1")
    configure_logging(LogConfig(level="INFO", colorize=False))

    get_logger("test").info("hello {name}", name="world")

    captured = capsys.readouterr().out.strip().splitlines()[-1]
    data = json.loads(captured)
    assert data["message"] == "hello world"
    assert data["level"] == "INFO"
    assert data["extra"]["logger_name"] == "test"
    logger.remove()


def test_plain_logging(monkeypatch, capsys):
    monkeypatch.delenv("LOG_JSON", raising=False)
    configure_logging({"level": "DEBUG", "colorize": False})

    logger.debug("plain message")

    assert "plain message" in capsys.readouterr().out
    logger.remove()
