"""
Structured logging for fallback orchestration.

``FallbackLogger`` renders a consistent ``[component=... key=value] message``
prefix carrying session, message and model identifiers, and
``configure_logging`` installs a handler for the package according to the
``log`` section of the configuration.
"""

import json
import logging
import time
from contextlib import contextmanager
from typing import Optional

from ..config.models import LogConfig

PACKAGE_LOGGER = "rate_limit_fallback"

LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


class FallbackLogger:
    """Structured logger for one component of the fallback pipeline."""

    def __init__(self, component: str):
        """
        Initialize logger for a component.

        Args:
            component: Component name (e.g., "handler", "plugin")
        """
        self.component = component
        self.logger = logging.getLogger(f"{PACKAGE_LOGGER}.{component}")

    def _format_message(self, message: str, **kwargs) -> str:
        fields = [f"component={self.component}"]

        for key, value in kwargs.items():
            if value is not None:
                fields.append(f"{key}={value}")

        return f"[{' '.join(fields)}] {message}"

    def debug(self, message: str, session_id: Optional[str] = None,
              model: Optional[str] = None, **kwargs):
        self.logger.debug(
            self._format_message(message, session_id=session_id, model=model, **kwargs)
        )

    def info(self, message: str, session_id: Optional[str] = None,
             model: Optional[str] = None, **kwargs):
        self.logger.info(
            self._format_message(message, session_id=session_id, model=model, **kwargs)
        )

    def warning(self, message: str, session_id: Optional[str] = None,
                model: Optional[str] = None, error: Optional[BaseException] = None, **kwargs):
        if error is not None:
            kwargs['error_type'] = type(error).__name__
            kwargs['error_msg'] = str(error)

        self.logger.warning(
            self._format_message(message, session_id=session_id, model=model, **kwargs)
        )

    def error(self, message: str, session_id: Optional[str] = None,
              model: Optional[str] = None, error: Optional[BaseException] = None, **kwargs):
        if error is not None:
            kwargs['error_type'] = type(error).__name__
            kwargs['error_msg'] = str(error)

        self.logger.error(
            self._format_message(message, session_id=session_id, model=model, **kwargs)
        )

    @contextmanager
    def track_fallback(self, session_id: str, model: str, message_id: Optional[str] = None):
        """
        Log the start, completion or failure of one fallback resend.

        Yields:
            Dict with the fallback metadata including ``start_time``
        """
        start_time = time.time()
        self.debug("Starting fallback", session_id=session_id, model=model, message_id=message_id)

        metadata = {
            'session_id': session_id,
            'message_id': message_id,
            'model': model,
            'start_time': start_time,
        }

        try:
            yield metadata

            duration = time.time() - start_time
            self.info(
                "Completed fallback",
                session_id=session_id,
                model=model,
                message_id=message_id,
                duration_ms=int(duration * 1000)
            )
        except Exception as e:
            duration = time.time() - start_time
            self.error(
                "Failed fallback",
                session_id=session_id,
                model=model,
                message_id=message_id,
                duration_ms=int(duration * 1000),
                error=e
            )
            raise


class JsonFormatter(logging.Formatter):
    """One JSON object per record."""

    def __init__(self, enable_timestamp: bool = True):
        super().__init__()
        self.enable_timestamp = enable_timestamp

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        if self.enable_timestamp:
            payload["timestamp"] = self.formatTime(record, "%Y-%m-%dT%H:%M:%S")
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload)


def configure_logging(config: Optional[LogConfig] = None) -> logging.Logger:
    """
    Install a stream handler on the package logger.

    Calling this again replaces the previously installed handler.
    """
    config = config or LogConfig()
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(LEVELS.get(config.level, logging.WARNING))

    for handler in list(logger.handlers):
        if getattr(handler, "_rate_limit_fallback", False):
            logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler._rate_limit_fallback = True
    if config.format == "json":
        handler.setFormatter(JsonFormatter(config.enable_timestamp))
    elif config.enable_timestamp:
        handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
    else:
        handler.setFormatter(logging.Formatter("[%(levelname)s] %(name)s: %(message)s"))

    logger.addHandler(handler)
    return logger
