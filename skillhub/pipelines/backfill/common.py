"""Batching limits and errors shared by the backfill pipelines."""

import math
from typing import Optional, Tuple

DEFAULT_BATCH_SIZE = 50
MAX_BATCH_SIZE = 200
DEFAULT_MAX_BATCHES = 20
MAX_MAX_BATCHES = 200

INCOMPLETE_MESSAGE = "Backfill incomplete (maxBatches reached)"


class BackfillIncompleteError(Exception):
    """Raised when a scan does not reach the end within ``max_batches`` pages."""

    def __init__(self, message: str = INCOMPLETE_MESSAGE, cursor: Optional[str] = None):
        super().__init__(message)
        self.cursor = cursor


def clamp_int(value: float, minimum: int, maximum: int) -> int:
    """
    Truncate toward zero and clamp into ``[minimum, maximum]``.

    Non-finite values (NaN, infinities) map to ``minimum``.
    """
    if isinstance(value, float) and not math.isfinite(value):
        return minimum
    return min(maximum, max(minimum, int(value)))


def clamp_batch_size(batch_size: Optional[float]) -> int:
    return clamp_int(DEFAULT_BATCH_SIZE if batch_size is None else batch_size, 1, MAX_BATCH_SIZE)


def resolve_batch_params(batch_size: Optional[float], max_batches: Optional[float]) -> Tuple[int, int]:
    """Apply defaults and limits to caller-supplied batch parameters."""
    return (
        clamp_batch_size(batch_size),
        clamp_int(DEFAULT_MAX_BATCHES if max_batches is None else max_batches, 1, MAX_MAX_BATCHES),
    )
