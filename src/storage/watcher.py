"""
Change notification for the configs collection.

Watches the collection through a MongoDB change stream on a background
thread and tells a listener when configuration changed, so collaborators
can refresh their cached copy. The storage engine itself does not depend
on these notifications.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from pymongo import errors as mongo_errors

from src.common.error_handling import StorageError, best_effort

from .collection import CollectionHandle
from .database import Collections

logger = logging.getLogger(__name__)


class ConfigsListener(ABC):
    """Implemented by collaborators that cache configuration."""

    @abstractmethod
    def on_configs_changed(self) -> None:
        pass


class ConfigWatcher:
    """
    Runs a change stream on the configs collection.

    Args:
        configs: Handle of the configs collection
        listener: Notified once per change event on that collection
    """

    def __init__(self, configs: CollectionHandle, listener: ConfigsListener):
        self._configs = configs
        self._listener = listener
        self._stream = None
        self._thread: Optional[threading.Thread] = None
        self._stopped = threading.Event()

    def start(self) -> None:
        """Start watching on a daemon thread. Does nothing if already running."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stopped.clear()
        self._thread = threading.Thread(target=self._run, name="configs-watcher", daemon=True)
        self._thread.start()
        logger.info("Watching configs collection for changes")

    def stop(self) -> None:
        """Close the change stream and wait for the thread to exit."""
        self._stopped.set()
        stream = self._stream
        if stream is not None:
            stream.close()
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None
        logger.info("Stopped watching configs collection")

    def _run(self) -> None:
        try:
            with self._configs.watch() as stream:
                self._stream = stream
                # stop() may have run before the stream existed to be closed
                if self._stopped.is_set():
                    return
                for change in stream:
                    if self._stopped.is_set():
                        break
                    self.handle_change(change)
        except (StorageError, mongo_errors.PyMongoError) as e:
            if not self._stopped.is_set():
                logger.error(f"Configs change stream ended: {e}")
        finally:
            self._stream = None

    def handle_change(self, change: Dict[str, Any]) -> bool:
        """
        Notify the listener if the event concerns the configs collection.

        Returns:
            True if the listener was notified
        """
        namespace = change.get("ns") or {}
        if namespace.get("coll") != Collections.CONFIGS:
            return False
        logger.info(f"Configs changed ({change.get('operationType')})")
        self._notify()
        return True

    @best_effort("notify configs listener")
    def _notify(self) -> None:
        self._listener.on_configs_changed()
