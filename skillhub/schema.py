from typing import Any, Dict, List

PARSED_KEYS = {"frontmatter", "metadata", "clawdis"}


class ParsedShapeError(ValueError):
    """Raised when a parsed-metadata patch does not have the stored shape."""
    pass


def validate_parsed(data: Any) -> List[str]:
    """
    Returns a list of shape errors for a parsed-metadata document.
    Empty list means valid. Only the envelope is checked; ``metadata``
    and ``clawdis`` are open documents.
    """
    errors: List[str] = []

    if not isinstance(data, dict):
        return ["Parsed metadata must be a mapping"]

    if "frontmatter" not in data:
        errors.append("Missing required field: frontmatter")
    elif not isinstance(data["frontmatter"], dict):
        errors.append("Field 'frontmatter' must be a mapping")
    elif not all(isinstance(k, str) for k in data["frontmatter"]):
        errors.append("Field 'frontmatter' must have string keys")

    unexpected = set(data) - PARSED_KEYS
    if unexpected:
        errors.append(f"Unexpected field(s): {', '.join(sorted(unexpected))}")

    return errors


def ensure_parsed(data: Dict[str, Any]) -> Dict[str, Any]:
    errors = validate_parsed(data)
    if errors:
        raise ParsedShapeError("; ".join(errors))
    return data
