"""
Derives skill summary and parsed metadata from SKILL.md content.

``build_skill_summary_backfill_patch`` is the patch function the summary
backfill calls by default; it is pure and has no store access.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional

import yaml

FRONTMATTER_PATTERN = re.compile(r"\A---[ \t]*\n(.*?)\n---[ \t]*(?:\n|\Z)", re.DOTALL)


@dataclass
class SummaryPatch:
    summary: Optional[str] = None
    parsed: Optional[Dict[str, Any]] = None

    def is_empty(self) -> bool:
        return self.summary is None and self.parsed is None


def _json_safe(value: Any) -> Any:
    # YAML can yield dates and other non-JSON scalars
    return json.loads(json.dumps(value, default=str))


def parse_frontmatter(text: str) -> Dict[str, Any]:
    """
    Parse the YAML frontmatter block of a Markdown document.

    Returns an empty mapping when there is no frontmatter, it fails to
    parse, or it is not a mapping.
    """
    text = text.lstrip("\ufeff").replace("\r\n", "\n")
    match = FRONTMATTER_PATTERN.match(text)
    if not match:
        return {}
    try:
        data = yaml.safe_load(match.group(1))
    except yaml.YAMLError:
        return {}
    if not isinstance(data, dict):
        return {}
    return _json_safe({str(k): v for k, v in data.items()})


def _frontmatter_metadata(frontmatter: Dict[str, Any]) -> Optional[Any]:
    metadata = frontmatter.get("metadata")
    if isinstance(metadata, str):
        try:
            return json.loads(metadata)
        except ValueError:
            return None
    return metadata


def build_parsed(frontmatter: Dict[str, Any]) -> Dict[str, Any]:
    parsed: Dict[str, Any] = {"frontmatter": frontmatter}
    metadata = _frontmatter_metadata(frontmatter)
    if metadata is not None:
        parsed["metadata"] = metadata
    clawdis = metadata.get("clawdis") if isinstance(metadata, dict) else None
    if clawdis is None:
        clawdis = frontmatter.get("clawdis")
    if clawdis is not None:
        parsed["clawdis"] = clawdis
    return parsed


def build_skill_summary_backfill_patch(
    readme_text: str,
    current_summary: Optional[str],
    current_parsed: Optional[Dict[str, Any]],
) -> SummaryPatch:
    """
    Compare derived state against what is stored.

    Args:
        readme_text: SKILL.md contents
        current_summary: Summary stored on the skill
        current_parsed: Parsed metadata stored on the version

    Returns:
        SummaryPatch holding only the fields that differ
    """
    frontmatter = parse_frontmatter(readme_text)
    parsed = build_parsed(frontmatter)

    description = frontmatter.get("description")
    summary = description.strip() if isinstance(description, str) else ""

    patch = SummaryPatch()
    if summary and summary != current_summary:
        patch.summary = summary
    if parsed != (current_parsed or {}):
        patch.parsed = parsed
    return patch
