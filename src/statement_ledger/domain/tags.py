from typing import Any


def parse_tag_list(raw_tags: str | None) -> list[str]:
    if not raw_tags:
        return []
    return normalize_tags(raw_tags.split(","))


def normalize_tags(value: Any) -> list[str]:
    """Return unique, stripped tag ids in first-seen order."""
    if not value:
        return []
    if isinstance(value, str):
        return parse_tag_list(value)
    if not isinstance(value, (list, tuple, set, frozenset)):
        return []
    tags: list[str] = []
    seen = set()
    for item in value:
        tag = str(item).strip()
        if tag and tag not in seen:
            tags.append(tag)
            seen.add(tag)
    return tags


def merge_tags(existing_tags: list[str] | None, new_tags: list[str]) -> tuple[list[str], bool]:
    """Union ``new_tags`` into ``existing_tags`` without removing anything.

    Returns the merged list and whether any tag was actually added.
    """
    merged = normalize_tags(existing_tags)
    seen = set(merged)
    added = False
    for tag in normalize_tags(new_tags):
        if tag not in seen:
            merged.append(tag)
            seen.add(tag)
            added = True
    return merged, added
