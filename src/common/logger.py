"""
Logging setup for the health storage engine.

Module loggers are plain `logging.getLogger(__name__)`. Code that runs a
named multi-step operation (a transaction, a guarded delete) logs through
`get_logger(__name__, operation=...)` instead, so every line it writes
carries the same `[op:<name>]` tag.
"""

import logging
import sys
from typing import Any, MutableMapping, Optional, Tuple

from .config import Config


# Seeded from DEBUG_MODE; scripts flip it with --verbose
_GLOBAL_DEBUG_MODE = Config.DEBUG_MODE


def set_global_debug_mode(enabled: bool) -> None:
    global _GLOBAL_DEBUG_MODE
    _GLOBAL_DEBUG_MODE = enabled


def is_debug_mode() -> bool:
    return _GLOBAL_DEBUG_MODE


class StorageLogger(logging.LoggerAdapter):
    """
    Tags messages with the storage operation and, when given, the collection:

        [op:delete_county] [counties] Deleted county 42

    In debug mode the underlying logger is lowered to DEBUG so transaction
    start/commit lines show up.
    """

    def __init__(
        self,
        name: str,
        operation: Optional[str] = None,
        collection: Optional[str] = None,
        debug_mode: Optional[bool] = None,
    ):
        super().__init__(logging.getLogger(name), {})
        self.operation = operation
        self.collection = collection

        if debug_mode if debug_mode is not None else is_debug_mode():
            self.logger.setLevel(logging.DEBUG)

    @property
    def level(self) -> int:
        return self.logger.level

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        tags = []
        if self.operation:
            tags.append(f"[op:{self.operation}]")
        if self.collection:
            tags.append(f"[{self.collection}]")
        if not tags:
            return msg, kwargs
        return f"{' '.join(tags)} {msg}", kwargs


_FORMATS = {
    # One JSON object per line for log shipping
    "json": '{"time": "%(asctime)s", "level": "%(levelname)s", "name": "%(name)s", "message": "%(message)s"}',
    "simple": "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
}


def setup_logging(level: str = Config.LOG_LEVEL, format: str = Config.LOG_FORMAT) -> None:
    """
    Route all logging to stdout with the configured level and format.

    Args:
        level: DEBUG, INFO, WARNING or ERROR
        format: "simple" or "json"
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.setFormatter(logging.Formatter(_FORMATS.get(format, _FORMATS["simple"]), datefmt="%Y-%m-%d %H:%M:%S"))

    root_logger = logging.getLogger()
    for existing in root_logger.handlers[:]:
        root_logger.removeHandler(existing)
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level)

    # pymongo is chatty at DEBUG (heartbeats, pool events)
    if log_level > logging.DEBUG:
        logging.getLogger("pymongo").setLevel(logging.WARNING)


def get_logger(
    name: str,
    operation: Optional[str] = None,
    collection: Optional[str] = None,
    debug_mode: Optional[bool] = None,
) -> StorageLogger:
    """Operation-tagged logger; debug_mode=None follows the global setting."""
    return StorageLogger(name, operation, collection, debug_mode)
