"""
Externally reachable maintenance operations.

Each backfill has a run-now entry point and a schedule entry point, both
restricted to admins. The page fetchers and patch appliers behind them are
internal and only called by the pipelines.
"""

from typing import Any, Callable, Dict, Optional

from .access import Caller, requires_role
from .files import hash_skill_files
from .logger import get_logger
from .pipelines.backfill import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_MAX_BATCHES,
    backfill_skill_fingerprints,
    backfill_skill_summaries,
)
from .scheduler import ThreadScheduler
from .skill_backfill import build_skill_summary_backfill_patch
from .storage import SkillStore

logger = get_logger()


class MaintenanceService:
    """Admin-gated entry points for the summary and fingerprint backfills."""

    def __init__(
        self,
        store: SkillStore,
        blobs,
        scheduler=None,
        build_patch: Callable = build_skill_summary_backfill_patch,
        hash_files: Callable = hash_skill_files,
    ):
        self.store = store
        self.blobs = blobs
        self.scheduler = scheduler or ThreadScheduler()
        self.build_patch = build_patch
        self.hash_files = hash_files

    # Internal jobs, also the targets handed to the scheduler

    def backfill_skill_summaries_internal(
        self,
        dry_run: bool = False,
        batch_size: Optional[float] = None,
        max_batches: Optional[float] = None,
    ) -> Dict[str, Any]:
        return backfill_skill_summaries(
            self.store,
            self.blobs,
            dry_run=dry_run,
            batch_size=batch_size,
            max_batches=max_batches,
            build_patch=self.build_patch,
        )

    def backfill_skill_fingerprints_internal(
        self,
        dry_run: bool = False,
        batch_size: Optional[float] = None,
        max_batches: Optional[float] = None,
    ) -> Dict[str, Any]:
        return backfill_skill_fingerprints(
            self.store,
            dry_run=dry_run,
            batch_size=batch_size,
            max_batches=max_batches,
            hash_files=self.hash_files,
        )

    # Entry points

    @requires_role("admin")
    def backfill_skill_summaries(
        self,
        caller: Caller,
        dry_run: bool = False,
        batch_size: Optional[float] = None,
        max_batches: Optional[float] = None,
    ) -> Dict[str, Any]:
        logger.info("Summary backfill requested", caller=caller.handle, dry_run=bool(dry_run))
        return self.backfill_skill_summaries_internal(
            dry_run=dry_run, batch_size=batch_size, max_batches=max_batches
        )

    @requires_role("admin")
    def schedule_backfill_skill_summaries(self, caller: Caller, dry_run: bool = False) -> Dict[str, Any]:
        self.scheduler.run_after(
            0,
            self.backfill_skill_summaries_internal,
            dry_run=bool(dry_run),
            batch_size=DEFAULT_BATCH_SIZE,
            max_batches=DEFAULT_MAX_BATCHES,
        )
        logger.info("Summary backfill scheduled", caller=caller.handle, dry_run=bool(dry_run))
        return {"ok": True}

    @requires_role("admin")
    def backfill_skill_fingerprints(
        self,
        caller: Caller,
        dry_run: bool = False,
        batch_size: Optional[float] = None,
        max_batches: Optional[float] = None,
    ) -> Dict[str, Any]:
        logger.info("Fingerprint backfill requested", caller=caller.handle, dry_run=bool(dry_run))
        return self.backfill_skill_fingerprints_internal(
            dry_run=dry_run, batch_size=batch_size, max_batches=max_batches
        )

    @requires_role("admin")
    def schedule_backfill_skill_fingerprints(self, caller: Caller, dry_run: bool = False) -> Dict[str, Any]:
        self.scheduler.run_after(
            0,
            self.backfill_skill_fingerprints_internal,
            dry_run=bool(dry_run),
            batch_size=DEFAULT_BATCH_SIZE,
            max_batches=DEFAULT_MAX_BATCHES,
        )
        logger.info("Fingerprint backfill scheduled", caller=caller.handle, dry_run=bool(dry_run))
        return {"ok": True}
