import logging
import sys
from uuid import uuid4

from scorecard.utils.logger import LOG_FORMAT, get_logger, set_package_level


def _cleanup_handlers(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        logger.removeHandler(handler)


def test_get_logger_reuses_stream_handler():
    logger_name = f"test_logger_{uuid4()}"

    first_logger = get_logger(logger_name)
    second_logger = get_logger(logger_name)

    assert first_logger is second_logger
    stream_handlers = [h for h in first_logger.handlers if isinstance(h, logging.StreamHandler)]
    assert len(stream_handlers) == 1
    handler = stream_handlers[0]
    assert handler.stream is sys.stdout
    assert handler.formatter._fmt == "%(asctime)s - %(name)s - %(levelname)s - %(message)s" == LOG_FORMAT

    _cleanup_handlers(first_logger)


def test_get_logger_ignores_non_stdout_stream_handlers():
    logger_name = f"test_logger_{uuid4()}"
    logger = logging.getLogger(logger_name)
    stderr_handler = logging.StreamHandler(sys.stderr)
    logger.addHandler(stderr_handler)

    same = get_logger(logger_name)

    assert same is logger
    stdout_handlers = [h for h in logger.handlers if getattr(h, "stream", None) is sys.stdout]
    assert stderr_handler in logger.handlers
    assert len(stdout_handlers) == 1

    _cleanup_handlers(logger)


def test_level_from_argument_and_environment(monkeypatch):
    assert get_logger(f"test_logger_{uuid4()}", level="warning").level == logging.WARNING
    monkeypatch.setenv("SCORECARD_LOG_LEVEL", "DEBUG")
    assert get_logger(f"test_logger_{uuid4()}").level == logging.DEBUG
    monkeypatch.setenv("SCORECARD_LOG_LEVEL", "chatty")
    assert get_logger(f"test_logger_{uuid4()}").level == logging.INFO


def test_set_package_level_only_touches_scorecard_loggers():
    ours = get_logger(f"scorecard.test_{uuid4().hex}")
    other = get_logger(f"elsewhere_{uuid4().hex}", level=logging.INFO)
    set_package_level("ERROR")
    try:
        assert ours.level == logging.ERROR
        assert other.level == logging.INFO
    finally:
        set_package_level(logging.INFO)
        _cleanup_handlers(ours)
        _cleanup_handlers(other)
