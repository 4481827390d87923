"""Logging for Quarry.

Every log line can carry dimensions (request id, organization id, datastore id, ...).
Dimensions are attached with `with_context`, which returns a new logger so that a
request-scoped logger can be specialised per component without mutating the parent.

Usage:
    from quarry.core.logging import logger

    log = logger.with_context(organization_id=str(org_id))
    log.info("Triggered sync")
"""

import logging
import sys
from typing import Any, Dict, Optional

from rich.console import Console
from rich.logging import RichHandler

from quarry.core.config import settings

ROOT_LOGGER_NAME = "quarry"

_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class _DimensionsFormatter(logging.Formatter):
    """Formatter that appends the record's dimensions as key=value pairs."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        dimensions = getattr(record, "dimensions", None)
        if dimensions:
            rendered = " ".join(f"{key}={value}" for key, value in sorted(dimensions.items()))
            message = f"{message} [{rendered}]"
        return message


class ContextualLogger(logging.LoggerAdapter):
    """Logger adapter carrying a dictionary of dimensions."""

    def __init__(self, logger: logging.Logger, dimensions: Optional[Dict[str, Any]] = None):
        """Initialize the contextual logger.

        Args:
            logger: Underlying stdlib logger
            dimensions: Key/value pairs attached to every record
        """
        super().__init__(logger, {})
        self.dimensions: Dict[str, Any] = dict(dimensions or {})

    def process(self, msg, kwargs):
        extra = kwargs.setdefault("extra", {})
        extra["dimensions"] = {**self.dimensions, **extra.get("dimensions", {})}
        return msg, kwargs

    def with_context(self, **dimensions: Any) -> "ContextualLogger":
        """Return a new logger with additional dimensions."""
        return ContextualLogger(self.logger, {**self.dimensions, **dimensions})


class LoggerConfigurator:
    """Configures the root Quarry logger and hands out contextual loggers."""

    _configured = False

    @classmethod
    def _setup(cls) -> None:
        if cls._configured:
            return

        root = logging.getLogger(ROOT_LOGGER_NAME)
        root.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

        if settings.LOCAL_DEVELOPMENT:
            handler: logging.Handler = RichHandler(
                console=Console(width=200),
                show_time=True,
                show_path=False,
                rich_tracebacks=True,
            )
        else:
            handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(_DimensionsFormatter(_FORMAT))

        root.addHandler(handler)
        root.propagate = False
        cls._configured = True

    @classmethod
    def configure_logger(
        cls, name: str, dimensions: Optional[Dict[str, Any]] = None
    ) -> ContextualLogger:
        """Get a contextual logger under the Quarry root logger.

        Args:
            name: Logger name, usually the module's `__name__`
            dimensions: Initial dimensions

        Returns:
            Configured contextual logger
        """
        cls._setup()
        if not name.startswith(ROOT_LOGGER_NAME):
            name = f"{ROOT_LOGGER_NAME}.{name}"
        return ContextualLogger(logging.getLogger(name), dimensions)


logger = LoggerConfigurator.configure_logger(ROOT_LOGGER_NAME)
