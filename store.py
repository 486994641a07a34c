from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Optional

from sqlalchemy import delete, inspect, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from config import Settings
from database import Base, build_engine, build_session_factory, session_scope
from models import UserRecord

logger = logging.getLogger(__name__)

Document = dict[str, Any]


class StoreUnavailable(RuntimeError):
    pass


class UserStore:
    """Durable, ordered collection of user documents keyed by email.

    Callers normalise emails before lookup; the store matches exactly.
    Mutating callers wrap their load/compute/replace sequence in
    :meth:`mutation` so writes within one process never interleave.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()

    @contextmanager
    def mutation(self) -> Iterator[None]:
        with self._lock:
            yield

    def load(self) -> list[Document]:
        raise NotImplementedError

    def replace_all(self, documents: Iterable[Document]) -> None:
        raise NotImplementedError

    def find_by_email(self, email: str) -> Optional[Document]:
        for document in self.load():
            if isinstance(document, dict) and document.get("email") == email:
                return document
        return None

    def insert(self, document: Document) -> None:
        with self.mutation():
            documents = self.load()
            documents.append(document)
            self.replace_all(documents)


class JsonFileUserStore(UserStore):
    def __init__(self, path: Path) -> None:
        super().__init__()
        self.path = Path(path)

    def load(self) -> list[Document]:
        with self._lock:
            try:
                raw = self.path.read_text(encoding="utf-8")
            except FileNotFoundError:
                self._write([])
                logger.info(f"store_init: backend=file path={self.path}")
                return []
            except OSError as exc:
                raise StoreUnavailable(f"Cannot read user store at {self.path}") from exc

        try:
            documents = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise StoreUnavailable(f"User store at {self.path} is not valid JSON") from exc
        if not isinstance(documents, list):
            raise StoreUnavailable(f"User store at {self.path} is not a list")
        return documents

    def replace_all(self, documents: Iterable[Document]) -> None:
        with self._lock:
            self._write(list(documents))

    def _write(self, documents: list[Document]) -> None:
        payload = json.dumps(documents, indent=2)
        tmp_name: Optional[str] = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
            os.replace(tmp_name, self.path)
        except OSError as exc:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise StoreUnavailable(f"Cannot write user store at {self.path}") from exc


class SqlUserStore(UserStore):
    def __init__(self, engine: Engine) -> None:
        super().__init__()
        self.engine = engine
        self._sessions = build_session_factory(engine)
        self._ready = False

    def _ensure_schema(self) -> None:
        if self._ready:
            return
        with self._lock:
            if not inspect(self.engine).has_table(UserRecord.__tablename__):
                Base.metadata.create_all(self.engine)
                logger.info(f"store_init: backend=sql url={self.engine.url!r}")
            self._ready = True

    def load(self) -> list[Document]:
        try:
            self._ensure_schema()
            with session_scope(self._sessions) as session:
                records = session.scalars(
                    select(UserRecord).order_by(UserRecord.position)
                ).all()
                return [copy.deepcopy(record.document) for record in records]
        except SQLAlchemyError as exc:
            raise StoreUnavailable("Cannot read user store") from exc

    def find_by_email(self, email: str) -> Optional[Document]:
        try:
            self._ensure_schema()
            with session_scope(self._sessions) as session:
                record = session.scalar(
                    select(UserRecord).where(UserRecord.email == email)
                )
                return copy.deepcopy(record.document) if record else None
        except SQLAlchemyError as exc:
            raise StoreUnavailable("Cannot read user store") from exc

    def replace_all(self, documents: Iterable[Document]) -> None:
        records = [
            UserRecord(position=index, email=document.get("email"), document=document)
            for index, document in enumerate(documents)
        ]
        try:
            self._ensure_schema()
            with self._lock, session_scope(self._sessions) as session:
                session.execute(delete(UserRecord))
                session.add_all(records)
        except SQLAlchemyError as exc:
            raise StoreUnavailable("Cannot write user store") from exc


def build_store(settings: Settings) -> UserStore:
    if settings.store_backend == "sql":
        return SqlUserStore(build_engine(settings.database_url))
    if settings.store_backend == "file":
        return JsonFileUserStore(settings.users_file)
    raise ValueError(f"Unsupported store backend: {settings.store_backend}")
