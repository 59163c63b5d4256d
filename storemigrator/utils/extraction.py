"""
Field extraction helpers for remote payloads.

Remote items carry their creation date and email address under several
possible keys depending on the API version that produced them. Each
extractor here is an ordered list of strategies; the first one returning a
value wins.
"""
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, List, Optional

# Epoch numbers above this are milliseconds
_MILLIS_THRESHOLD = 10 ** 11


def get_path(data: Any, path: str, default=None):
    """
    Read a dotted path from nested dicts/lists.

    Numeric segments index into lists: ``info.emails.0.email``.
    """
    current = data
    for part in path.split('.'):
        if isinstance(current, dict):
            current = current.get(part)
        elif isinstance(current, list) and part.isdigit():
            index = int(part)
            current = current[index] if index < len(current) else None
        else:
            return default
        if current is None:
            return default
    return current


def parse_timestamp(value) -> Optional[float]:
    """Convert an epoch number or ISO-8601 string to epoch seconds."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value / 1000.0 if value > _MILLIS_THRESHOLD else float(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.isdigit():
            return parse_timestamp(int(text))
        try:
            parsed = datetime.fromisoformat(text.replace('Z', '+00:00'))
        except ValueError:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed.timestamp()
    return None


def _path_strategy(path: str) -> Callable[[dict], Optional[float]]:
    def strategy(item: dict) -> Optional[float]:
        return parse_timestamp(get_path(item, path))
    strategy.__name__ = f'created_from_{path.replace(".", "_")}'
    return strategy


CREATED_DATE_PATHS = (
    'createdDate',
    'dateCreated',
    'createdAt',
    'creationDate',
    'date_created',
    '_createdDate',
    'audit.createdDate',
    'audit.dateCreated',
    'metadata.createdDate',
    'metadata.dateCreated',
)

# Loyalty accounts only expose activity dates on older records
ACTIVITY_DATE_PATHS = ('updatedDate', 'lastActivityDate')

CREATED_DATE_STRATEGIES = [_path_strategy(p) for p in CREATED_DATE_PATHS]
LOYALTY_DATE_STRATEGIES = CREATED_DATE_STRATEGIES + [_path_strategy(p) for p in ACTIVITY_DATE_PATHS]


def first_match(item: dict, strategies: Iterable[Callable[[dict], Any]]):
    """Run strategies in order and return the first non-empty result."""
    for strategy in strategies:
        value = strategy(item)
        if value not in (None, ''):
            return value
    return None


def resolve_created_timestamp(item: dict, strategies: List[Callable] = None) -> Optional[float]:
    """
    Best-effort creation time of a remote item, in epoch seconds.

    Returns None when no strategy finds a usable date.
    """
    if not isinstance(item, dict):
        return None
    return first_match(item, strategies or CREATED_DATE_STRATEGIES)


def oldest_first(items: Iterable[dict], resolver: Callable[[dict], Optional[float]] = None) -> List[dict]:
    """
    Sort items by creation time, oldest first.

    Undated items go last and keep their relative list order. The sort is
    stable, so items sharing a timestamp also keep list order.
    """
    resolver = resolver or resolve_created_timestamp
    keyed = [(resolver(item), index, item) for index, item in enumerate(items)]
    keyed.sort(key=lambda entry: (entry[0] is None, entry[0] or 0.0, entry[1]))
    return [item for _, _, item in keyed]


def _email_strategy(path: str) -> Callable[[dict], Optional[str]]:
    def strategy(item: dict) -> Optional[str]:
        value = get_path(item, path)
        if isinstance(value, str) and value.strip():
            return value.strip().lower()
        return None
    strategy.__name__ = f'email_from_{path.replace(".", "_")}'
    return strategy


EMAIL_PATHS = (
    'contact.email',
    'contact.primaryEmail.email',
    'contact.info.emails.0.email',
    'contact.emails.items.0.email',
    'primaryInfo.email',
    'info.emails.items.0.email',
    'info.emails.0.email',
    'loginEmail',
)

EMAIL_STRATEGIES = [_email_strategy(p) for p in EMAIL_PATHS]


def extract_email(item: dict) -> Optional[str]:
    """Lowercased email address of a contact, member or loyalty account."""
    if not isinstance(item, dict):
        return None
    return first_match(item, EMAIL_STRATEGIES)
