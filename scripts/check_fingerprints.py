#!/usr/bin/env python3
"""
Report versions whose fingerprints violate the index invariant.

Every version should have exactly one fingerprint entry, equal to the hash
of its files, and a stored fingerprint with the same value. Read-only; run
`skillhub backfill-fingerprints` to repair.

Usage:
    python scripts/check_fingerprints.py --db data/skillhub.db
"""

import argparse
from collections import defaultdict
from pathlib import Path
import sys

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from skillhub.database import SkillVersion, SkillVersionFingerprint, get_session
from skillhub.files import hash_skill_files, normalize_files


def find_violations(session) -> list:
    """Return one {version_id, problem} dict per inconsistent version."""
    entries = defaultdict(list)
    for entry in session.query(SkillVersionFingerprint).all():
        entries[entry.version_id].append(entry.fingerprint)

    violations = []
    for version in session.query(SkillVersion).order_by(SkillVersion.id).all():
        expected = hash_skill_files(normalize_files(version.files or []))
        found = entries.get(version.id, [])

        if not found:
            problem = "no fingerprint entry"
        elif len(found) > 1:
            problem = f"{len(found)} fingerprint entries"
        elif found[0] != expected:
            problem = "entry does not match file hash"
        elif version.fingerprint != expected:
            problem = "stored fingerprint missing or stale"
        else:
            continue

        violations.append({"version_id": version.id, "problem": problem})
    return violations


def check(db_path: Path) -> bool:
    print(f"Querying database at {db_path}...")
    session = get_session(db_path)
    try:
        total = session.query(SkillVersion).count()
        violations = find_violations(session)
    finally:
        session.close()

    print(f"  Versions: {total}")

    if violations:
        print(f"\n❌ FINGERPRINT VIOLATIONS: {len(violations)} versions")
        for v in violations[:5]:
            print(f"   - {v['version_id']}: {v['problem']}")
        if len(violations) > 5:
            print(f"   ... and {len(violations) - 5} more")
        return False

    print("✅ All versions have exactly one matching fingerprint entry")
    return True


def main():
    parser = argparse.ArgumentParser(description="Check fingerprint index consistency")
    parser.add_argument("--db", type=Path, default=Path("data/skillhub.db"),
                       help="Path to SQLite database file")

    args = parser.parse_args()

    if not args.db.exists():
        print(f"❌ Database file not found: {args.db}")
        sys.exit(1)

    success = check(args.db)
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
