from __future__ import annotations

import json
import logging
from threading import RLock
from typing import Any, Callable, List, Optional

from .config import settings
from .domain import AppState
from .errors import ImportFormatError
from .services import CommandResult, DocumentInput, load_state
from .storage import DocumentStore

logger = logging.getLogger(__name__)

Subscriber = Callable[[AppState, List[str]], None]
Command = Callable[..., CommandResult]


class WorkAccountingStore:
    """Single-writer holder of the aggregate.

    Commands are serialised through ``dispatch``; each one replaces the aggregate
    atomically, saves it fire-and-forget and notifies subscribers with the names of
    the collections that changed.
    """

    def __init__(self, documents: DocumentStore, key: Optional[str] = None) -> None:
        self._lock = RLock()
        self._documents = documents
        self._key = key or settings.storage_key
        self._state = AppState()
        self._subscribers: List[Subscriber] = []

    @property
    def state(self) -> AppState:
        with self._lock:
            return self._state

    def snapshot(self) -> AppState:
        with self._lock:
            return self._state.model_copy(deep=True)

    def load(self) -> AppState:
        raw = self._documents.load(self._key)
        if raw is None:
            return self.state
        try:
            loaded = load_state(raw)
        except ImportFormatError as exc:
            logger.warning("Stored document %r could not be decoded, starting empty: %s", self._key, exc)
            return self.state
        with self._lock:
            self._state = loaded
        return loaded

    def dispatch(self, command: Command, *args: Any, **kwargs: Any) -> CommandResult:
        with self._lock:
            result = command(self._state, *args, **kwargs)
            if not result.applied:
                return result
            self._state = result.state
            logger.info("%s changed %s", command.__name__, ", ".join(result.changed))
            self._persist(result.state)
            subscribers = list(self._subscribers)
        self._notify(subscribers, result.state, result.changed)
        return result

    def query(self, function: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        with self._lock:
            return function(self._state, *args, **kwargs)

    def replace(self, document: DocumentInput) -> AppState:
        """Swap in an externally changed snapshot wholesale; nothing is merged."""
        replacement = load_state(document)
        with self._lock:
            self._state = replacement
            subscribers = list(self._subscribers)
        logger.info("Aggregate replaced from external snapshot")
        self._notify(subscribers, replacement, ["welders", "norms", "plan"])
        return replacement

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def _persist(self, state: AppState) -> None:
        try:
            self._documents.save(self._key, json.dumps(state.to_document(), ensure_ascii=False))
        except Exception:
            logger.warning("Saving %r failed; in-memory state kept", self._key, exc_info=True)

    @staticmethod
    def _notify(subscribers: List[Subscriber], state: AppState, changed: List[str]) -> None:
        for callback in subscribers:
            try:
                callback(state, list(changed))
            except Exception:
                logger.exception("Subscriber %r failed", callback)


def build_store(documents: DocumentStore, key: Optional[str] = None) -> WorkAccountingStore:
    store = WorkAccountingStore(documents, key)
    store.load()
    return store
