"""
Pytest configuration and shared fixtures.
"""

import os
import tempfile

# Keep log files out of the working tree; must run before skillhub is imported
os.environ.setdefault("SKILLHUB_LOG_DIR", tempfile.mkdtemp(prefix="skillhub-logs-"))

import pytest
from pathlib import Path
from typing import Any, Dict, List, Optional

from skillhub.access import Caller
from skillhub.blobs import LocalBlobStore
from skillhub.database import Skill, SkillVersion, SkillVersionFingerprint, User, init_database
from skillhub.storage import SkillStore


SAMPLE_README = """---
name: pdf-tools
description: Extract text and tables from PDF files.
metadata:
  clawdis:
    emoji: "📄"
    requires:
      bins: [pdftotext]
---

# PDF Tools

Use this skill to work with PDFs.
"""


class RegistryBuilder:
    """Seeds skills, versions and fingerprint entries into a test store."""

    def __init__(self, store: SkillStore, blobs: LocalBlobStore):
        self.store = store
        self.blobs = blobs

    def add_user(self, handle: str, role: str) -> str:
        with self.store.transaction() as session:
            user = User(handle=handle, role=role)
            session.add(user)
            session.flush()
            return user.id

    def add_skill(
        self,
        skill_id: str,
        readme: Optional[str] = SAMPLE_README,
        summary: Optional[str] = None,
        parsed: Optional[Dict[str, Any]] = None,
        files: Optional[List[Dict[str, str]]] = None,
        with_version: bool = True,
        store_blob: bool = True,
    ) -> Dict[str, str]:
        """Add a skill with one latest version; returns the ids used."""
        version_id = f"{skill_id}_v1"
        storage_id = f"blob_{skill_id}"
        if files is None:
            files = [{"path": "x.ts", "sha256": "b", "storageId": f"blob_{skill_id}_x"}]
            if readme is not None:
                files.insert(0, {"path": "SKILL.md", "sha256": "a", "storageId": storage_id})
        if readme is not None and store_blob:
            self.blobs.put(readme.encode("utf-8"), storage_id=storage_id)

        with self.store.transaction() as session:
            session.add(Skill(
                id=skill_id,
                slug=skill_id.replace("_", "-"),
                summary=summary,
                latest_version_id=version_id if with_version else None,
            ))
            if with_version:
                session.add(SkillVersion(
                    id=version_id,
                    skill_id=skill_id,
                    version="1.0.0",
                    files=files,
                    parsed=parsed if parsed is not None else {"frontmatter": {}},
                ))
        return {"skill_id": skill_id, "version_id": version_id, "storage_id": storage_id}

    def add_version(
        self,
        version_id: str,
        files: List[Dict[str, str]],
        fingerprint: Optional[str] = None,
        skill_id: str = "skl_owner",
    ) -> str:
        with self.store.transaction() as session:
            session.add(SkillVersion(
                id=version_id,
                skill_id=skill_id,
                version="1.0.0",
                files=files,
                parsed={"frontmatter": {}},
                fingerprint=fingerprint,
            ))
        return version_id

    def add_entry(self, version_id: str, fingerprint: str, skill_id: str = "skl_owner") -> str:
        with self.store.transaction() as session:
            entry = SkillVersionFingerprint(skill_id=skill_id, version_id=version_id, fingerprint=fingerprint)
            session.add(entry)
            session.flush()
            return entry.id


class RecordingScheduler:
    """Scheduler double that records calls instead of running them."""

    def __init__(self):
        self.calls = []

    def run_after(self, delay, job, **kwargs):
        self.calls.append((delay, job, kwargs))

    def run_pending(self):
        results = [job(**kwargs) for _, job, kwargs in self.calls]
        self.calls = []
        return results


@pytest.fixture
def db_path(tmp_path) -> Path:
    """Create an empty registry database."""
    path = tmp_path / "skillhub.db"
    init_database(path)
    return path


@pytest.fixture
def store(db_path):
    s = SkillStore(db_path)
    yield s
    s.dispose()


@pytest.fixture
def blobs(tmp_path) -> LocalBlobStore:
    return LocalBlobStore(tmp_path / "blobs")


@pytest.fixture
def registry(store, blobs) -> RegistryBuilder:
    return RegistryBuilder(store, blobs)


@pytest.fixture
def admin() -> Caller:
    return Caller(user_id="usr_admin", handle="root", role="admin")


@pytest.fixture
def member() -> Caller:
    return Caller(user_id="usr_member", handle="alice", role="user")


@pytest.fixture
def scheduler() -> RecordingScheduler:
    return RecordingScheduler()
