from __future__ import annotations

import logging
import os
import sys
from typing import NoReturn, Optional, Union

from dotenv import load_dotenv

load_dotenv()

try:
    import colorlog  # type: ignore
except ImportError:  # pragma: no cover - optional dependency
    colorlog = None

TRACE = 5

_LEVELS = {
    "TRACE": TRACE,
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


class AppLogger(logging.Logger):
    def error_raise(
        self,
        message: str,
        *,
        exc: Optional[Union[BaseException, type[BaseException]]] = None,
    ) -> NoReturn:
        """
        Log ``message`` at error level, then raise ``exc`` (a class is
        instantiated with the message). Defaults to RuntimeError.
        """
        self.error(message, stacklevel=2)
        if exc is None:
            raise RuntimeError(message)
        if isinstance(exc, type):
            raise exc(message)
        raise exc

    def trace(self, message: str, *args, **kwargs) -> None:
        if self.isEnabledFor(TRACE):
            self._log(TRACE, message, args, **kwargs)


class ContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:  # pragma: no cover - trivial
        record.classname = record.module
        record.funcname = record.funcName
        return True


def parse_level(raw: str | None, default: int = logging.INFO) -> int:
    return _LEVELS.get((raw or "").strip().upper(), default)


def _determine_level() -> int:
    return parse_level(os.getenv("LOGITLOOM_LOG_LEVEL") or os.getenv("LOG_LEVEL"))


def _build_formatter() -> logging.Formatter:
    base_format = "[%(levelname)s] %(asctime)s - %(classname)s:%(lineno)d %(funcname)s(): %(message)s"
    date_format = "%H:%M:%S"
    if colorlog is not None:
        return colorlog.ColoredFormatter(
            fmt="%(log_color)s" + base_format,
            datefmt=date_format,
            log_colors={
                "TRACE": "white",
                "DEBUG": "cyan",
                "INFO": "green",
                "WARNING": "yellow",
                "ERROR": "red",
                "CRITICAL": "bold_red",
            },
        )
    return logging.Formatter(fmt=base_format, datefmt=date_format)


def setup_logger(name: str) -> AppLogger:
    logging.addLevelName(TRACE, "TRACE")
    logging.setLoggerClass(AppLogger)
    logger = logging.getLogger(name)
    if getattr(logger, "_logger_initialized", False):  # type: ignore[attr-defined]
        return logger  # type: ignore[return-value]

    logger.setLevel(_determine_level())
    logger.propagate = False

    # stdout carries the rendered tree and `sniff` JSON
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(logging.NOTSET)
    handler.setFormatter(_build_formatter())

    logger.addHandler(handler)
    logger.addFilter(ContextFilter())
    logger._logger_initialized = True  # type: ignore[attr-defined]
    return logger  # type: ignore[return-value]


def set_level(level: int | str) -> None:
    logger.setLevel(parse_level(level) if isinstance(level, str) else level)


logger: AppLogger = setup_logger("logitloom")

__all__ = ["logger", "setup_logger", "set_level", "parse_level", "AppLogger", "TRACE"]
