"""
Payload shaping helpers shared by the pipelines.
"""
import json
import re
from typing import Any, Iterable, Iterator, List

REDACT_LIMIT = 2000


def strip_keys(data: dict, keys: Iterable[str]) -> dict:
    """Copy of ``data`` without remote-assigned keys."""
    drop = set(keys)
    return {k: v for k, v in (data or {}).items() if k not in drop}


def keep_keys(data: dict, keys: Iterable[str]) -> dict:
    """Copy of ``data`` limited to an allow-list of keys."""
    allowed = set(keys)
    return {k: v for k, v in (data or {}).items() if k in allowed}


def clean_empty(value: Any) -> Any:
    """
    Recursively drop None, empty strings, empty lists and empty dicts.

    Zero and False are real values and are kept.
    """
    if isinstance(value, dict):
        cleaned = {k: clean_empty(v) for k, v in value.items()}
        return {k: v for k, v in cleaned.items() if not _is_empty(v)}
    if isinstance(value, list):
        cleaned = [clean_empty(v) for v in value]
        return [v for v in cleaned if not _is_empty(v)]
    return value


def _is_empty(value: Any) -> bool:
    return value is None or value == '' or value == [] or value == {}


def slugify(text: str, max_length: int = 80) -> str:
    """Lowercase URL slug: non-alphanumerics become single dashes."""
    slug = (text or '').lower()
    slug = re.sub(r'[\'"()\[\]{}]', '', slug)
    slug = re.sub(r'[^a-z0-9]+', '-', slug)
    slug = re.sub(r'-{2,}', '-', slug).strip('-')
    return slug[:max_length].rstrip('-')


def redact_large(value: Any, limit: int = REDACT_LIMIT) -> str:
    """Serialize a payload for logging, truncated to ``limit`` characters."""
    text = value if isinstance(value, str) else json.dumps(value, default=str)
    if len(text) > limit:
        return text[:limit] + '...[truncated]'
    return text


def chunked(items: List[Any], size: int) -> Iterator[List[Any]]:
    """Yield consecutive fixed-size slices of ``items``."""
    for start in range(0, len(items), size):
        yield items[start:start + size]
