"""
Database schema and connection management.

Uses SQLite with SQLAlchemy for the skills registry. Bundle file lists and
parsed README metadata are schemaless documents, so they live in JSON columns.
"""

import uuid
from datetime import datetime
from pathlib import Path

from sqlalchemy import JSON, Column, DateTime, ForeignKey, String, Text, create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

Base = declarative_base()


def new_id(prefix: str) -> str:
    """Generate a document id such as ``skv_3f0c...``."""
    return f"{prefix}_{uuid.uuid4().hex}"


class User(Base):
    """Registry account; only the role matters to maintenance jobs."""

    __tablename__ = "users"

    id = Column(String, primary_key=True, default=lambda: new_id("usr"))
    handle = Column(String, nullable=False, unique=True)
    role = Column(String, nullable=False, default="user")  # admin, moderator, user
    created_at = Column(DateTime, nullable=False, default=datetime.now)


class Skill(Base):
    """Published skill."""

    __tablename__ = "skills"

    id = Column(String, primary_key=True, default=lambda: new_id("skl"))
    slug = Column(String, nullable=False, unique=True)
    latest_version_id = Column(String, nullable=True)
    summary = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, nullable=False, default=datetime.now)


class SkillVersion(Base):
    """Immutable file bundle of a skill, apart from ``parsed`` and ``fingerprint``."""

    __tablename__ = "skill_versions"

    id = Column(String, primary_key=True, default=lambda: new_id("skv"))
    skill_id = Column(String, ForeignKey("skills.id"), nullable=False, index=True)
    version = Column(String, nullable=False)
    files = Column(JSON, nullable=False, default=list)  # [{path, sha256, storageId}]
    parsed = Column(JSON, nullable=False, default=dict)  # {frontmatter, metadata?, clawdis?}
    fingerprint = Column(String, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.now)


class SkillVersionFingerprint(Base):
    """Fingerprint index entry; each version should own exactly one."""

    __tablename__ = "skill_version_fingerprints"

    id = Column(String, primary_key=True, default=lambda: new_id("skf"))
    skill_id = Column(String, nullable=False)
    version_id = Column(String, nullable=False, index=True)
    fingerprint = Column(String, nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, default=datetime.now)


def init_database(db_path: Path) -> None:
    """
    Initialize database and create tables.

    Args:
        db_path: Path to SQLite database file
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)
    engine = create_engine(f"sqlite:///{db_path}")
    Base.metadata.create_all(engine)


def get_session(db_path: Path):
    """
    Get database session.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLAlchemy session
    """
    engine = create_engine(f"sqlite:///{db_path}")
    Session = sessionmaker(bind=engine)
    return Session()
