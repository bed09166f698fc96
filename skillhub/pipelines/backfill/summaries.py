"""
Skill Summary Backfill.

Responsibilities:
- Re-derive each skill's summary and its latest version's parsed metadata
  from the SKILL.md stored with that version.
- Patch only what differs from the stored state.

Non-Responsibilities:
- No frontmatter parsing; ``build_patch`` is injected.

Invariant:
Skills with missing versions, READMEs, or blobs are counted, never patched.
"""

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from ...database import Skill, SkillVersion
from ...files import find_readme_file
from ...logger import get_logger
from ...schema import ensure_parsed
from ...skill_backfill import SummaryPatch, build_skill_summary_backfill_patch
from ...storage import SkillStore, get_or_raise, paginate
from .common import BackfillIncompleteError, clamp_batch_size, resolve_batch_params

logger = get_logger()

JOB_NAME = "skill_summaries"

OK = "ok"
MISSING_LATEST_VERSION = "missingLatestVersion"
MISSING_VERSION_DOC = "missingVersionDoc"
MISSING_README = "missingReadme"


@dataclass
class SummaryPageItem:
    kind: str
    skill_id: str
    version_id: Optional[str] = None
    skill_summary: Optional[str] = None
    version_parsed: Optional[Dict[str, Any]] = None
    readme_storage_id: Optional[str] = None


@dataclass
class SummaryPage:
    items: List[SummaryPageItem]
    cursor: Optional[str]
    is_done: bool


@dataclass
class SummaryBackfillStats:
    skills_scanned: int = 0
    skills_patched: int = 0
    versions_patched: int = 0
    missing_latest_version: int = 0
    missing_readme: int = 0
    missing_storage_blob: int = 0


def get_skill_backfill_page(
    session: Session,
    cursor: Optional[str] = None,
    batch_size: Optional[float] = None,
) -> SummaryPage:
    """
    Read one page of skills and classify each one.

    Args:
        session: Open read session
        cursor: Token from the previous page, or None to start
        batch_size: Skills per page (clamped to [1, 200], default 50)

    Returns:
        SummaryPage of classified items
    """
    page = paginate(session, Skill, cursor, clamp_batch_size(batch_size))

    items: List[SummaryPageItem] = []
    for skill in page.page:
        if not skill.latest_version_id:
            items.append(SummaryPageItem(kind=MISSING_LATEST_VERSION, skill_id=skill.id))
            continue

        version = session.get(SkillVersion, skill.latest_version_id)
        if version is None:
            items.append(SummaryPageItem(
                kind=MISSING_VERSION_DOC,
                skill_id=skill.id,
                version_id=skill.latest_version_id,
            ))
            continue

        readme = find_readme_file(version.files or [])
        if readme is None:
            items.append(SummaryPageItem(kind=MISSING_README, skill_id=skill.id, version_id=version.id))
            continue

        items.append(SummaryPageItem(
            kind=OK,
            skill_id=skill.id,
            version_id=version.id,
            skill_summary=skill.summary,
            version_parsed=version.parsed,
            readme_storage_id=readme["storageId"],
        ))

    return SummaryPage(items=items, cursor=page.continue_cursor, is_done=page.is_done)


def apply_skill_backfill_patch(
    session: Session,
    skill_id: str,
    version_id: str,
    summary: Optional[str] = None,
    parsed: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Overwrite the skill summary and/or version parsed metadata. Last write wins."""
    if isinstance(summary, str):
        skill = get_or_raise(session, Skill, skill_id)
        skill.summary = summary
        skill.updated_at = datetime.now()
    if parsed is not None:
        version = get_or_raise(session, SkillVersion, version_id)
        version.parsed = ensure_parsed(parsed)
    return {"ok": True}


def backfill_skill_summaries(
    store: SkillStore,
    blobs,
    dry_run: bool = False,
    batch_size: Optional[float] = None,
    max_batches: Optional[float] = None,
    build_patch: Callable = build_skill_summary_backfill_patch,
) -> Dict[str, Any]:
    """
    Scan all skills and bring summaries and parsed metadata up to date.

    Args:
        store: Registry store
        blobs: Blob store holding SKILL.md contents (LocalBlobStore or HttpBlobStore)
        dry_run: Count what would change without writing
        batch_size: Skills per page
        max_batches: Page budget; the scan must finish within it
        build_patch: ``(readme_text, current_summary, current_parsed) -> SummaryPatch``

    Returns:
        {"ok": True, "stats": {...}}

    Raises:
        BackfillIncompleteError: If the scan did not finish within max_batches
    """
    dry_run = bool(dry_run)
    batch_size, max_batches = resolve_batch_params(batch_size, max_batches)
    totals = SummaryBackfillStats()

    logger.record_run_start(JOB_NAME)
    logger.info(
        "Starting skill summary backfill",
        dry_run=dry_run,
        batch_size=batch_size,
        max_batches=max_batches,
    )

    cursor: Optional[str] = None
    is_done = False

    try:
        for batch in range(max_batches):
            with store.read() as session:
                page = get_skill_backfill_page(session, cursor=cursor, batch_size=batch_size)

            cursor = page.cursor
            is_done = page.is_done
            logger.record_page_fetch(len(page.items))
            logger.debug("Fetched skill page", batch=batch, items=len(page.items), is_done=is_done)

            for item in page.items:
                totals.skills_scanned += 1
                if item.kind in (MISSING_LATEST_VERSION, MISSING_VERSION_DOC):
                    totals.missing_latest_version += 1
                    continue
                if item.kind == MISSING_README:
                    totals.missing_readme += 1
                    continue

                blob = blobs.get(item.readme_storage_id)
                if blob is None:
                    totals.missing_storage_blob += 1
                    logger.warning(
                        "README blob missing",
                        skill_id=item.skill_id,
                        storage_id=item.readme_storage_id,
                    )
                    continue

                patch = build_patch(blob.text(), item.skill_summary, item.version_parsed)
                if patch is None:
                    continue
                # Blank summaries never overwrite the stored one
                patch = SummaryPatch(summary=patch.summary or None, parsed=patch.parsed)
                if patch.is_empty():
                    continue
                if patch.summary is not None:
                    totals.skills_patched += 1
                if patch.parsed is not None:
                    totals.versions_patched += 1

                if dry_run:
                    continue

                with store.transaction() as session:
                    apply_skill_backfill_patch(
                        session,
                        skill_id=item.skill_id,
                        version_id=item.version_id,
                        summary=patch.summary,
                        parsed=patch.parsed,
                    )
                logger.record_patch_applied()

            if is_done:
                break

        if not is_done:
            raise BackfillIncompleteError(cursor=cursor)
    except Exception as e:
        logger.record_run_failure(JOB_NAME, type(e).__name__)
        logger.error("Skill summary backfill failed", error=str(e), stats=asdict(totals))
        raise

    logger.record_run_complete(JOB_NAME)
    logger.info("Skill summary backfill complete", dry_run=dry_run, stats=asdict(totals))
    return {"ok": True, "stats": asdict(totals)}
