"""
Structured logging for dataprep

Every module logs through a child of the "dataprep" logger, which owns the
single stdout handler. Entries are JSON (python-json-logger) by default so
run lifecycle events, keyed by run_id and source_id, can be collected and
searched; LOG_FORMAT=text switches to a readable line format for local runs.

Never pass record content in `extra`: entries carry ids, counts and
durations only.
"""
import logging
import os
import sys
import time

from pythonjsonlogger import jsonlogger

PACKAGE_LOGGER_NAME = "dataprep"

LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

JSON_FIELDS = "%(timestamp)s %(level)s %(logger)s %(component)s %(message)s"
TEXT_FIELDS = "%(asctime)s %(levelname)-7s [%(threadName)s] %(name)s: %(message)s"


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """
    JSON formatter for pipeline log entries

    On top of the message and any `extra` fields, each entry records where it
    came from: level, logger, component (the logger name below "dataprep."),
    function, and the process and thread ids. Background runs execute on
    worker threads, so thread_id is what ties a run's entries together when
    run_id is absent.
    """

    def add_fields(self, log_record: dict, record: logging.LogRecord, message_dict: dict) -> None:
        super().add_fields(log_record, record, message_dict)

        if not log_record.get("timestamp"):
            log_record["timestamp"] = self.formatTime(record, self.datefmt)
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["component"] = record.name.removeprefix(f"{PACKAGE_LOGGER_NAME}.")
        log_record["function"] = record.funcName
        log_record["process_id"] = record.process
        log_record["thread_id"] = record.thread


def setup_logger(
    name: str = PACKAGE_LOGGER_NAME,
    level: str | None = None,
    format_type: str | None = None,
) -> logging.Logger:
    """
    (Re)configure a logger with one stdout handler

    Args:
        name: Logger name
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL (defaults to env var LOG_LEVEL, then INFO)
        format_type: "json" or "text" (defaults to env var LOG_FORMAT, then json)

    Returns:
        The configured logger; it does not propagate to the root logger
    """
    log_level = LOG_LEVELS.get((level or os.getenv("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    format_type = (format_type or os.getenv("LOG_FORMAT", "json")).lower()

    logger = logging.getLogger(name)
    logger.setLevel(log_level)
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    if format_type == "json":
        handler.setFormatter(CustomJsonFormatter(fmt=JSON_FIELDS, datefmt="%Y-%m-%dT%H:%M:%S"))
    else:
        handler.setFormatter(logging.Formatter(fmt=TEXT_FIELDS, datefmt="%Y-%m-%d %H:%M:%S"))

    logger.addHandler(handler)
    logger.propagate = False
    return logger


def get_logger(name: str = PACKAGE_LOGGER_NAME) -> logging.Logger:
    """
    Get a logger, configuring the owning handler on first use

    Module loggers (`get_logger(__name__)` inside dataprep) stay handler-less
    and propagate to the package logger, so LOG_LEVEL and LOG_FORMAT apply
    to the whole pipeline at once. Any other name gets its own handler.
    """
    package = logging.getLogger(PACKAGE_LOGGER_NAME)
    if name.startswith(f"{PACKAGE_LOGGER_NAME}."):
        if not package.handlers:
            setup_logger(PACKAGE_LOGGER_NAME)
        return logging.getLogger(name)

    logger = logging.getLogger(name)
    if not logger.handlers:
        return setup_logger(name)
    return logger


class log_operation:
    """
    Log the start and the outcome of a pipeline stage with its duration

    Usage:
        with log_operation("Formatting output", logger=logger, run_id=12):
            ...

    The `extra_fields` are attached to both entries. Exceptions are logged
    with their type and traceback and then re-raised.
    """

    def __init__(self, operation_name: str, logger: logging.Logger | None = None, **extra_fields):
        self.operation_name = operation_name
        self.logger = logger or get_logger()
        self.extra_fields = extra_fields
        self.start_time: float | None = None

    def _fields(self, **fields) -> dict:
        return {"operation": self.operation_name, **fields, **self.extra_fields}

    def __enter__(self):
        self.start_time = time.perf_counter()
        self.logger.info(f"Starting: {self.operation_name}", extra=self._fields())
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration = round(time.perf_counter() - self.start_time, 3)

        if exc_type is None:
            self.logger.info(
                f"Completed: {self.operation_name}",
                extra=self._fields(duration_seconds=duration, status="success"),
            )
        else:
            self.logger.error(
                f"Failed: {self.operation_name}",
                extra=self._fields(
                    duration_seconds=duration,
                    status="error",
                    error_type=exc_type.__name__,
                    error_message=str(exc_val),
                ),
                exc_info=True,
            )
        return False
