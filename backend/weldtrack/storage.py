"""Key-value document stores backing the aggregate.

The engine never talks to these directly; the store in ``state`` loads one document
at start-up and saves the full aggregate after each applied command.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from threading import RLock
from typing import Dict, Optional

from sqlalchemy.orm import sessionmaker
from typing_extensions import Protocol

from .config import Settings
from .database import build_engine, build_session_factory, db_session
from .models import StoredDocument


class DocumentStore(Protocol):
    def load(self, key: str) -> Optional[str]:
        ...

    def save(self, key: str, value: str) -> None:
        ...

    def delete(self, key: str) -> None:
        ...


class MemoryDocumentStore:
    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._lock = RLock()
        self._documents: Dict[str, str] = dict(initial or {})

    def load(self, key: str) -> Optional[str]:
        with self._lock:
            return self._documents.get(key)

    def save(self, key: str, value: str) -> None:
        with self._lock:
            self._documents[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._documents.pop(key, None)


class JsonFileDocumentStore:
    """Stores each key as ``<key>.json`` inside ``directory``."""

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        safe = "".join(char if char.isalnum() or char in "-_" else "_" for char in key)
        return self.directory / f"{safe}.json"

    def load(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def save(self, key: str, value: str) -> None:
        path = self._path(key)
        fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=f".{path.stem}-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(value)
            os.replace(tmp_name, path)
        except Exception:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


class SqlDocumentStore:
    def __init__(self, session_factory: sessionmaker) -> None:
        self.session_factory = session_factory

    def load(self, key: str) -> Optional[str]:
        with db_session(self.session_factory) as session:
            record = session.get(StoredDocument, key)
            return record.value if record else None

    def save(self, key: str, value: str) -> None:
        with db_session(self.session_factory) as session:
            record = session.get(StoredDocument, key)
            if record:
                record.value = value
            else:
                session.add(StoredDocument(key=key, value=value))

    def delete(self, key: str) -> None:
        with db_session(self.session_factory) as session:
            record = session.get(StoredDocument, key)
            if record:
                session.delete(record)


def build_document_store(config: Settings) -> DocumentStore:
    if config.storage_backend == "memory":
        return MemoryDocumentStore()
    if config.storage_backend == "json":
        return JsonFileDocumentStore(config.json_dir)
    config.sqlite_path.parent.mkdir(parents=True, exist_ok=True)
    engine = build_engine(f"sqlite:///{config.sqlite_path}")
    return SqlDocumentStore(build_session_factory(engine))


__all__ = [
    "DocumentStore",
    "JsonFileDocumentStore",
    "MemoryDocumentStore",
    "SqlDocumentStore",
    "build_document_store",
]
