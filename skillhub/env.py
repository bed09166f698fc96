import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


def load_env() -> None:
    """Load .env from project root if present. Existing variables win."""
    env_path = Path.cwd() / ".env"
    if not env_path.exists():
        return
    load_dotenv(dotenv_path=env_path, override=False)


@dataclass
class Settings:
    db_path: Path
    blob_dir: Path
    blob_url: Optional[str]
    log_level: str
    log_dir: Path

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            db_path=Path(os.getenv("SKILLHUB_DB_PATH", "data/skillhub.db")),
            blob_dir=Path(os.getenv("SKILLHUB_BLOB_DIR", "data/blobs")),
            blob_url=os.getenv("SKILLHUB_BLOB_URL") or None,
            log_level=os.getenv("SKILLHUB_LOG_LEVEL", "INFO").upper(),
            log_dir=Path(os.getenv("SKILLHUB_LOG_DIR", "logs")),
        )
