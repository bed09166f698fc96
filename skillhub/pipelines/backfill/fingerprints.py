"""
Skill Fingerprint Backfill.

Responsibilities:
- Recompute each version's fingerprint from its file list.
- Repair the fingerprint index so every version has exactly one entry,
  equal to the recomputed hash.

Non-Responsibilities:
- No hashing internals; ``hash_files`` is injected.

Invariant:
Entries are repaired by delete-then-insert, never edited in place.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from ...database import SkillVersion, SkillVersionFingerprint
from ...files import hash_skill_files, normalize_files
from ...logger import get_logger
from ...storage import SkillStore, fingerprints_for_version, paginate
from .common import BackfillIncompleteError, clamp_batch_size, resolve_batch_params

logger = get_logger()

JOB_NAME = "skill_fingerprints"

FINGERPRINT_ENTRY_LIMIT = 20


@dataclass
class FingerprintEntry:
    id: str
    fingerprint: str


@dataclass
class FingerprintPageItem:
    skill_id: str
    version_id: str
    version_fingerprint: Optional[str]
    files: List[Dict[str, str]]
    existing_entries: List[FingerprintEntry] = field(default_factory=list)


@dataclass
class FingerprintPage:
    items: List[FingerprintPageItem]
    cursor: Optional[str]
    is_done: bool


@dataclass
class FingerprintBackfillStats:
    versions_scanned: int = 0
    versions_patched: int = 0
    fingerprints_inserted: int = 0
    fingerprint_mismatches: int = 0
    versions_missing: int = 0


def get_skill_fingerprint_backfill_page(
    session: Session,
    cursor: Optional[str] = None,
    batch_size: Optional[float] = None,
) -> FingerprintPage:
    """
    Read one page of versions, keeping only those whose fingerprint state
    looks inconsistent.

    A version is kept when it has no stored fingerprint, no index entries,
    or entries that disagree with each other or with the stored value.
    """
    page = paginate(session, SkillVersion, cursor, clamp_batch_size(batch_size))

    items: List[FingerprintPageItem] = []
    for version in page.page:
        entries = fingerprints_for_version(session, version.id, FINGERPRINT_ENTRY_LIMIT)

        has_any_entry = len(entries) > 0
        entry_fingerprints = {entry.fingerprint for entry in entries}
        has_fingerprint_mismatch = (
            isinstance(version.fingerprint, str)
            and has_any_entry
            and (len(entry_fingerprints) != 1 or version.fingerprint not in entry_fingerprints)
        )
        needs_fingerprint_field = not version.fingerprint
        needs_fingerprint_entry = not has_any_entry

        if not needs_fingerprint_field and not needs_fingerprint_entry and not has_fingerprint_mismatch:
            continue

        items.append(FingerprintPageItem(
            skill_id=version.skill_id,
            version_id=version.id,
            version_fingerprint=version.fingerprint or None,
            files=normalize_files(version.files or []),
            existing_entries=[FingerprintEntry(id=e.id, fingerprint=e.fingerprint) for e in entries],
        ))

    return FingerprintPage(items=items, cursor=page.continue_cursor, is_done=page.is_done)


def apply_skill_fingerprint_backfill_patch(
    session: Session,
    version_id: str,
    fingerprint: str,
    patch_version: bool,
    replace_entries: bool,
    existing_entry_ids: Iterable[str] = (),
) -> Dict[str, Any]:
    """
    Write a recomputed fingerprint.

    Args:
        session: Open transaction
        version_id: Version to repair
        fingerprint: Freshly computed hash
        patch_version: Overwrite the version's stored fingerprint
        replace_entries: Delete ``existing_entry_ids`` and insert one new entry
        existing_entry_ids: Entry ids read by the page fetch

    Returns:
        {"ok": True}, or {"ok": False, "reason": "missingVersion"} if the
        version was deleted since the page was read
    """
    version = session.get(SkillVersion, version_id)
    if version is None:
        return {"ok": False, "reason": "missingVersion"}

    if patch_version:
        version.fingerprint = fingerprint

    if replace_entries:
        for entry_id in existing_entry_ids:
            entry = session.get(SkillVersionFingerprint, entry_id)
            if entry is not None:
                session.delete(entry)

        session.add(SkillVersionFingerprint(
            skill_id=version.skill_id,
            version_id=version.id,
            fingerprint=fingerprint,
            created_at=datetime.now(),
        ))

    return {"ok": True}


def backfill_skill_fingerprints(
    store: SkillStore,
    dry_run: bool = False,
    batch_size: Optional[float] = None,
    max_batches: Optional[float] = None,
    hash_files: Callable = hash_skill_files,
) -> Dict[str, Any]:
    """
    Scan all versions and reconcile stored fingerprints with their files.

    Args:
        store: Registry store
        dry_run: Count what would change without writing
        batch_size: Versions per page
        max_batches: Page budget; the scan must finish within it
        hash_files: ``(files) -> str`` over ``[{path, sha256}]``

    Returns:
        {"ok": True, "stats": {...}}

    Raises:
        BackfillIncompleteError: If the scan did not finish within max_batches
    """
    dry_run = bool(dry_run)
    batch_size, max_batches = resolve_batch_params(batch_size, max_batches)
    totals = FingerprintBackfillStats()

    logger.record_run_start(JOB_NAME)
    logger.info(
        "Starting skill fingerprint backfill",
        dry_run=dry_run,
        batch_size=batch_size,
        max_batches=max_batches,
    )

    cursor: Optional[str] = None
    is_done = False

    try:
        for batch in range(max_batches):
            with store.read() as session:
                page = get_skill_fingerprint_backfill_page(session, cursor=cursor, batch_size=batch_size)

            cursor = page.cursor
            is_done = page.is_done
            logger.record_page_fetch(len(page.items))
            logger.debug("Fetched version page", batch=batch, items=len(page.items), is_done=is_done)

            for item in page.items:
                totals.versions_scanned += 1

                fingerprint = hash_files(item.files)

                existing_fingerprints = {entry.fingerprint for entry in item.existing_entries}
                has_any_entry = len(item.existing_entries) > 0
                entry_is_correct = (
                    has_any_entry
                    and len(existing_fingerprints) == 1
                    and fingerprint in existing_fingerprints
                )
                version_fingerprint_is_correct = item.version_fingerprint == fingerprint

                if has_any_entry and not entry_is_correct:
                    totals.fingerprint_mismatches += 1

                should_patch_version = not version_fingerprint_is_correct
                should_replace_entries = not entry_is_correct
                if not should_patch_version and not should_replace_entries:
                    continue

                if should_patch_version:
                    totals.versions_patched += 1
                if should_replace_entries:
                    totals.fingerprints_inserted += 1

                if dry_run:
                    continue

                with store.transaction() as session:
                    result = apply_skill_fingerprint_backfill_patch(
                        session,
                        version_id=item.version_id,
                        fingerprint=fingerprint,
                        patch_version=should_patch_version,
                        replace_entries=should_replace_entries,
                        existing_entry_ids=(
                            [entry.id for entry in item.existing_entries] if should_replace_entries else []
                        ),
                    )

                if not result["ok"]:
                    totals.versions_missing += 1
                    logger.warning(
                        "Version disappeared before fingerprint patch",
                        version_id=item.version_id,
                        reason=result["reason"],
                    )
                    continue
                logger.record_patch_applied()

            if is_done:
                break

        if not is_done:
            raise BackfillIncompleteError(cursor=cursor)
    except Exception as e:
        logger.record_run_failure(JOB_NAME, type(e).__name__)
        logger.error("Skill fingerprint backfill failed", error=str(e), stats=asdict(totals))
        raise

    logger.record_run_complete(JOB_NAME)
    logger.info("Skill fingerprint backfill complete", dry_run=dry_run, stats=asdict(totals))
    return {"ok": True, "stats": asdict(totals)}
