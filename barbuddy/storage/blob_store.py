"""Key/value JSON blob persistence.

Writes are best-effort: failures are logged and reported as ``False``, never
raised, so a storage hiccup cannot abort a generation run.
"""

from __future__ import annotations

import datetime
import json
import logging
import os
from pathlib import Path
from typing import Any, Protocol

from sqlalchemy import JSON, DateTime, String, create_engine, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

logger = logging.getLogger(__name__)


class BlobStore(Protocol):
  """Load and save JSON-serialisable values by key."""

  def load(self, key: str) -> Any | None:
    """Return the stored value, or ``None`` when absent or unreadable."""
    ...

  def save(self, key: str, value: Any) -> bool:
    """Persist ``value``; return False when the write failed."""
    ...


class FileBlobStore:
  """One ``<key>.json`` file per blob under a storage directory."""

  def __init__(self, root: Path) -> None:
    self.root = Path(root)
    self.root.mkdir(parents=True, exist_ok=True)

  def path_for(self, key: str) -> Path:
    return self.root / f"{key}.json"

  def load(self, key: str) -> Any | None:
    path = self.path_for(key)
    if not path.is_file():
      return None
    try:
      return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
      logger.error("Failed to load %s from %s: %s", key, path, exc)
      return None

  def save(self, key: str, value: Any) -> bool:
    path = self.path_for(key)
    tmp_path = path.with_suffix(".json.tmp")
    try:
      tmp_path.write_text(json.dumps(value, ensure_ascii=False), encoding="utf-8")
      # Replace in one step so readers never see a half-written file.
      os.replace(tmp_path, path)
      return True
    except (OSError, TypeError, ValueError) as exc:
      logger.error("Failed to save %s to %s: %s", key, path, exc)
      return False

  def size_of(self, key: str) -> int:
    path = self.path_for(key)
    try:
      return path.stat().st_size if path.is_file() else 0
    except OSError:
      return 0


class Base(DeclarativeBase):
  pass


class JsonBlob(Base):
  __tablename__ = "json_blobs"

  key: Mapped[str] = mapped_column(String(128), primary_key=True)
  payload: Mapped[Any] = mapped_column(JSON, nullable=True)
  updated_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class SqlBlobStore:
  """Blob store backed by a single SQL table."""

  def __init__(self, dsn: str, *, echo: bool = False) -> None:
    self._engine = create_engine(dsn, echo=echo, future=True)
    Base.metadata.create_all(self._engine)
    self._session_factory = sessionmaker(bind=self._engine, expire_on_commit=False, class_=Session)

  def load(self, key: str) -> Any | None:
    try:
      with self._session_factory() as session:
        return session.execute(select(JsonBlob.payload).where(JsonBlob.key == key)).scalar_one_or_none()
    except SQLAlchemyError as exc:
      logger.error("Failed to load blob %s: %s", key, exc)
      return None

  def save(self, key: str, value: Any) -> bool:
    try:
      with self._session_factory.begin() as session:
        record = session.get(JsonBlob, key)
        if record is None:
          session.add(JsonBlob(key=key, payload=value))
        else:
          record.payload = value
      return True
    except (SQLAlchemyError, TypeError, ValueError) as exc:
      logger.error("Failed to save blob %s: %s", key, exc)
      return False

  def dispose(self) -> None:
    self._engine.dispose()
