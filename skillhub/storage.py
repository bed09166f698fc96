"""
Document store access for the skills registry.

Every page fetch and every patch runs inside its own session, so each call is
atomic on its own. Nothing here coordinates between calls.
"""

import base64
import binascii
import json
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator, List, Optional

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from .database import SkillVersionFingerprint


class InvalidCursorError(ValueError):
    """Raised when a pagination cursor was not produced by this store."""
    pass


class DocumentNotFoundError(LookupError):
    """Raised when a patch targets a document that does not exist."""
    pass


@dataclass
class Page:
    page: List[Any]
    is_done: bool
    continue_cursor: str


def encode_cursor(last_id: Optional[str]) -> str:
    raw = json.dumps({"after": last_id}).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii")


def decode_cursor(cursor: Optional[str]) -> Optional[str]:
    """Return the id to resume after, or None to start from the beginning."""
    if cursor is None:
        return None
    try:
        data = json.loads(base64.urlsafe_b64decode(cursor.encode("ascii")))
    except (binascii.Error, UnicodeError, ValueError) as e:
        raise InvalidCursorError(f"Malformed cursor: {cursor!r}") from e
    if not isinstance(data, dict) or "after" not in data:
        raise InvalidCursorError(f"Malformed cursor: {cursor!r}")
    after = data["after"]
    if after is not None and not isinstance(after, str):
        raise InvalidCursorError(f"Malformed cursor: {cursor!r}")
    return after


def paginate(session: Session, model, cursor: Optional[str], num_items: int) -> Page:
    """
    Read one page of ``model`` rows in ascending id order.

    Args:
        session: Open session
        model: Mapped class with a string ``id`` primary key
        cursor: Token from a previous page, or None to start
        num_items: Page size

    Returns:
        Page with the rows, a done flag and the cursor for the next page
    """
    after = decode_cursor(cursor)
    query = session.query(model).order_by(model.id.asc())
    if after is not None:
        query = query.filter(model.id > after)

    # One extra row tells us whether another page exists
    rows = query.limit(num_items + 1).all()
    page = rows[:num_items]
    is_done = len(rows) <= num_items
    last_id = page[-1].id if page else after
    return Page(page=page, is_done=is_done, continue_cursor=encode_cursor(last_id))


def get_or_raise(session: Session, model, doc_id: str):
    doc = session.get(model, doc_id)
    if doc is None:
        raise DocumentNotFoundError(f"{model.__tablename__} document not found: {doc_id}")
    return doc


def fingerprints_for_version(session: Session, version_id: str, limit: int) -> List[SkillVersionFingerprint]:
    """Indexed lookup of fingerprint entries by version id."""
    return (
        session.query(SkillVersionFingerprint)
        .filter(SkillVersionFingerprint.version_id == version_id)
        .order_by(SkillVersionFingerprint.id.asc())
        .limit(limit)
        .all()
    )


class SkillStore:
    """Session factory bound to one SQLite registry database."""

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self.engine = create_engine(f"sqlite:///{db_path}")
        self._sessions = sessionmaker(bind=self.engine, expire_on_commit=False)

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """Session committed on success and rolled back on any error."""
        session = self._sessions()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    @contextmanager
    def read(self) -> Iterator[Session]:
        session = self._sessions()
        try:
            yield session
        finally:
            session.close()

    def dispose(self) -> None:
        self.engine.dispose()
