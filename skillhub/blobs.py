"""Blob storage for skill bundle files, keyed by storage id."""

import re
import uuid
from pathlib import Path
from typing import Optional

import requests

from .logger import get_logger
from .retry import exponential_backoff, should_retry_http_status

logger = get_logger()

STORAGE_ID_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")


class BlobStoreError(Exception):
    """Raised when blob storage answers with a non-retryable error."""
    pass


class TransientBlobError(BlobStoreError):
    """Raised for responses worth retrying (rate limits, 5xx)."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class Blob:
    """Raw blob contents."""

    def __init__(self, data: bytes):
        self.data = data

    def text(self) -> str:
        return self.data.decode("utf-8", errors="replace")


def _check_storage_id(storage_id: str) -> str:
    if not STORAGE_ID_PATTERN.match(storage_id) or storage_id in {".", ".."}:
        raise ValueError(f"Invalid storage id: {storage_id!r}")
    return storage_id


class LocalBlobStore:
    """Blobs kept as flat files in one directory."""

    def __init__(self, root: Path):
        self.root = root

    def get(self, storage_id: str) -> Optional[Blob]:
        path = self.root / _check_storage_id(storage_id)
        if not path.is_file():
            return None
        return Blob(path.read_bytes())

    def put(self, data: bytes, storage_id: Optional[str] = None) -> str:
        """Store bytes and return their storage id."""
        storage_id = _check_storage_id(storage_id or f"kg{uuid.uuid4().hex}")
        self.root.mkdir(parents=True, exist_ok=True)
        (self.root / storage_id).write_bytes(data)
        return storage_id


RETRYABLE_ERRORS = (
    requests.exceptions.Timeout,
    requests.exceptions.ConnectionError,
    TransientBlobError,
)


class HttpBlobStore:
    """Blobs served over HTTP at ``{base_url}/{storage_id}``."""

    def __init__(self, base_url: str, timeout: float = 15, max_retries: int = 3, base_delay: float = 1.0):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self.base_delay = base_delay

    def _fetch(self, url: str) -> requests.Response:
        resp = requests.get(url, timeout=self.timeout)
        if should_retry_http_status(resp.status_code):
            raise TransientBlobError(f"Blob storage returned {resp.status_code}: {url}", status=resp.status_code)
        return resp

    def _retry_logger(self, storage_id: str):
        def log_retry(attempt: int, error: Exception, delay: float):
            logger.record_blob_retry()
            logger.warning(
                "Retrying blob fetch",
                storage_id=storage_id,
                attempt=attempt,
                status=getattr(error, "status", None),
                error_type=type(error).__name__,
                delay=delay,
            )
        return log_retry

    def get(self, storage_id: str) -> Optional[Blob]:
        url = f"{self.base_url}/{_check_storage_id(storage_id)}"
        fetch = exponential_backoff(
            max_retries=self.max_retries,
            base_delay=self.base_delay,
            exceptions=RETRYABLE_ERRORS,
            on_retry=self._retry_logger(storage_id),
        )(self._fetch)

        resp = fetch(url)
        if resp.status_code == 404:
            return None
        try:
            resp.raise_for_status()
        except requests.exceptions.HTTPError as e:
            logger.error("Blob request failed", storage_id=storage_id, status=resp.status_code)
            raise BlobStoreError(f"Blob request failed ({resp.status_code}): {url}") from e
        return Blob(resp.content)
