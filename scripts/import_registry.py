#!/usr/bin/env python3
"""
Import a registry JSON export into the SQLite store.

The export holds "users", "skills", "versions" and "fingerprints" lists
(camelCase keys, as the registry API emits them) and an optional "blobs"
mapping of storage id to file text.

Usage:
    python scripts/import_registry.py --json data/export.json --db data/skillhub.db --blobs data/blobs
"""

import argparse
import json
from datetime import datetime
from pathlib import Path
import sys

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from skillhub.blobs import LocalBlobStore
from skillhub.database import Skill, SkillVersion, SkillVersionFingerprint, User, init_database, get_session


def parse_timestamp(ts):
    """Parse ISO string or epoch milliseconds, handle missing timestamps."""
    if ts is None or ts == "":
        return datetime.now()
    if isinstance(ts, (int, float)):
        return datetime.fromtimestamp(ts / 1000)
    try:
        return datetime.fromisoformat(ts)
    except (ValueError, TypeError):
        return datetime.now()


def _ident(record: dict) -> dict:
    # Records without an id get a generated one
    return {"id": record["id"]} if record.get("id") else {}


def build_documents(data: dict) -> list:
    docs = []
    for u in data.get("users", []):
        docs.append(User(
            **_ident(u),
            handle=u["handle"],
            role=u.get("role", "user"),
            created_at=parse_timestamp(u.get("createdAt")),
        ))
    for s in data.get("skills", []):
        created_at = parse_timestamp(s.get("createdAt"))
        docs.append(Skill(
            **_ident(s),
            slug=s["slug"],
            summary=s.get("summary"),
            latest_version_id=s.get("latestVersionId"),
            created_at=created_at,
            updated_at=parse_timestamp(s.get("updatedAt")) if s.get("updatedAt") else created_at,
        ))
    for v in data.get("versions", []):
        docs.append(SkillVersion(
            **_ident(v),
            skill_id=v["skillId"],
            version=v.get("version", "0.0.0"),
            files=v.get("files", []),
            parsed=v.get("parsed") or {"frontmatter": {}},
            fingerprint=v.get("fingerprint"),
            created_at=parse_timestamp(v.get("createdAt")),
        ))
    for f in data.get("fingerprints", []):
        docs.append(SkillVersionFingerprint(
            **_ident(f),
            skill_id=f["skillId"],
            version_id=f["versionId"],
            fingerprint=f["fingerprint"],
            created_at=parse_timestamp(f.get("createdAt")),
        ))
    return docs


def import_registry(json_path: Path, db_path: Path, blob_dir: Path, dry_run: bool = False):
    """
    Load an export into the database and blob directory.

    Args:
        json_path: Path to JSON export
        db_path: Path to SQLite database file
        blob_dir: Directory for blob files
        dry_run: If True, don't write anything
    """
    print(f"Loading export from {json_path}...")
    with open(json_path, encoding="utf-8") as f:
        data = json.load(f)

    for key in ("users", "skills", "versions", "fingerprints", "blobs"):
        print(f"  {key}: {len(data.get(key, []))}")

    if dry_run:
        print("\n[DRY RUN] Nothing written.")
        return True

    print(f"\nInitializing database at {db_path}...")
    init_database(db_path)
    session = get_session(db_path)

    try:
        for doc in build_documents(data):
            session.merge(doc)
        session.commit()
    except Exception as e:
        session.rollback()
        print(f"❌ Failed to commit: {e}")
        return False
    finally:
        session.close()

    blobs = LocalBlobStore(blob_dir)
    for storage_id, text in data.get("blobs", {}).items():
        blobs.put(text.encode("utf-8"), storage_id=storage_id)

    print("\n✅ Import complete!")
    return True


def main():
    parser = argparse.ArgumentParser(description="Import a registry JSON export")
    parser.add_argument("--json", type=Path, required=True,
                       help="Path to JSON export")
    parser.add_argument("--db", type=Path, default=Path("data/skillhub.db"),
                       help="Path to SQLite database file")
    parser.add_argument("--blobs", type=Path, default=Path("data/blobs"),
                       help="Directory for blob files")
    parser.add_argument("--dry-run", action="store_true",
                       help="Show counts without writing")

    args = parser.parse_args()

    if not args.json.exists():
        print(f"❌ JSON file not found: {args.json}")
        sys.exit(1)

    success = import_registry(args.json, args.db, args.blobs, dry_run=args.dry_run)
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
