import hashlib
from typing import Any, Dict, Iterable, List, Optional

README_NAMES = {"skill.md", "skills.md"}


def normalize_files(files: Iterable[Dict[str, Any]]) -> List[Dict[str, str]]:
    """Reduce bundle file entries to the ``{path, sha256}`` pairs that get hashed."""
    return [{"path": f["path"], "sha256": f["sha256"]} for f in files]


def find_readme_file(files: Iterable[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    for f in files:
        if f.get("path", "").lower() in README_NAMES:
            return f
    return None


def hash_skill_files(files: Iterable[Dict[str, Any]]) -> str:
    """
    Canonical fingerprint of a file bundle.

    SHA-256 over ``path:sha256`` lines in list order, so both the file
    contents and their order change the result.
    """
    payload = "\n".join(f"{f['path']}:{f['sha256']}" for f in files)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()
