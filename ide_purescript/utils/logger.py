import inspect
import json
import logging
import os
import sys
from contextlib import contextmanager
from loguru import logger as _loguru_logger
from typing import Optional

_LOGGING_CONFIGURED = False
_logger = _loguru_logger


def production_log_sink(message):
    """Sink for production that writes one flat JSON object per line.

    loguru serializes the record when serialize=True; the nested record is
    flattened here so log shippers can index root/channel fields directly.
    """
    record = json.loads(message)["record"]
    extra = dict(record["extra"])

    log_data = {
        "timestamp": record["time"]["repr"],
        "level": record["level"]["name"],
        "logger": extra.pop("name", record["name"]),
        "function": record["function"],
        "line": record["line"],
        "message": record["message"],
        **extra,
    }
    if record["exception"]:
        log_data["exception"] = record["exception"]

    sys.stderr.write(json.dumps(log_data, default=str) + "\n")
    sys.stderr.flush()


class InterceptHandler(logging.Handler):
    """Route standard library logging (pygls, asyncio) through loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = _logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = inspect.currentframe(), 0
        while frame and (depth == 0 or frame.f_code.co_filename == logging.__file__):
            frame = frame.f_back
            depth += 1

        _logger.bind(name=record.name).opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def configure_logging(level: Optional[str] = None):
    """
    Configure loguru as the single logging backend.

    Logs go to stderr: a language server client may share stdout with an
    editor host, so stdout is left alone.
    """
    global _LOGGING_CONFIGURED, _logger

    if _LOGGING_CONFIGURED:
        return

    if level is None:
        level = os.getenv("LOG_LEVEL", "INFO").upper()

    env = os.getenv("ENV", "development")

    _logger.remove()

    def patcher(record):
        record["extra"].setdefault("name", record["name"])

    _logger = _logger.patch(patcher)

    if env == "production":
        _logger.add(
            production_log_sink,
            format="{message}",
            level=level,
            serialize=True,
        )
    else:
        _logger.add(
            sys.stderr,
            format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{extra[name]}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | <level>{message}</level> - {extra}",
            level=level,
            colorize=True,
        )

    intercept_handler = InterceptHandler()

    library_levels = {
        # pygls logs every message it frames at DEBUG
        "pygls": "WARNING",
        "pygls.protocol": "WARNING",
        "pygls.client": "INFO",
        "asyncio": "WARNING",
    }

    logging.basicConfig(handlers=[intercept_handler], level=logging.WARNING, force=True)

    for logger_name, log_level in library_levels.items():
        lib_logger = logging.getLogger(logger_name)
        lib_logger.handlers = [intercept_handler]
        lib_logger.setLevel(log_level)
        lib_logger.propagate = False

    _LOGGING_CONFIGURED = True


@contextmanager
def log_context(**kwargs):
    """
    Attach fields (root, command, ...) to every log record emitted inside the block.

    Backed by loguru's contextualize(), so it follows asyncio tasks.

    Usage:
        with log_context(root=session.root):
            logger.info("Language server ready")
    """
    with _logger.contextualize(**kwargs):
        yield


def setup_logger(name: str):
    """
    Return a loguru logger bound to ``name``, configuring logging on first use.

    Extra fields can be passed per call:
        logger.info("Dispatching {command}", command=command)
    """
    if not _LOGGING_CONFIGURED:
        configure_logging()

    return _logger.bind(name=name)
