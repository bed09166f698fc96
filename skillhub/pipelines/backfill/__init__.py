"""
Backfill Pipelines.

Responsibilities:
- Recompute derived skill fields (summary, parsed metadata, fingerprints).
- Scan the store page by page through an opaque cursor.

Non-Responsibilities:
- No authorization; callers go through skillhub.maintenance.
- No README parsing or hashing internals; both are injected.

Invariant:
A backfill over already-corrected records must be a no-op.
"""

from .common import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_MAX_BATCHES,
    MAX_BATCH_SIZE,
    MAX_MAX_BATCHES,
    BackfillIncompleteError,
    clamp_int,
)
from .fingerprints import backfill_skill_fingerprints
from .summaries import backfill_skill_summaries

__all__ = [
    "DEFAULT_BATCH_SIZE",
    "DEFAULT_MAX_BATCHES",
    "MAX_BATCH_SIZE",
    "MAX_MAX_BATCHES",
    "BackfillIncompleteError",
    "backfill_skill_fingerprints",
    "backfill_skill_summaries",
    "clamp_int",
]
