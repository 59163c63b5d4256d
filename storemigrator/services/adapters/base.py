"""
Shared paging and result helpers for remote adapters.
"""
import logging
from typing import Any, Callable, Dict, Iterator, Optional

from ..platform_client import ApiResponse, PlatformClient
from ...utils.exceptions import RemoteApiError

logger = logging.getLogger(__name__)


def create_result(response: ApiResponse, id_path: str) -> Dict[str, Any]:
    """
    Normalize a create call into ``{'ok', 'id'}`` or ``{'ok', 'status', 'error'}``.

    The error is the verbatim response body so it can be stored on the ledger.
    """
    if response.ok:
        new_id = response.json_path(id_path)
        if new_id:
            return {'ok': True, 'id': new_id, 'data': response.data}
        return {'ok': False, 'status': response.status, 'error': f'No {id_path} in response: {response.body}'}
    return {'ok': False, 'status': response.status, 'error': response.body or response.error()}


class RemoteAdapter:
    """Base class for per-entity adapters."""

    def __init__(self, client: PlatformClient):
        self.client = client

    def _require_ok(self, response: ApiResponse, what: str) -> ApiResponse:
        if not response.ok:
            raise RemoteApiError(f"{what} failed: {response.error()}", response.status, response.body)
        return response

    def _offset_pages(
        self,
        fetch: Callable[[int, int], ApiResponse],
        items_key: str,
        limit: int,
        what: str
    ) -> Iterator[dict]:
        """Yield items from an offset-paged endpoint, starting at offset 0."""
        offset = 0
        while True:
            response = self._require_ok(fetch(offset, limit), what)
            items = response.data.get(items_key) or []
            yield from items

            total = response.json_path('totalResults') or response.json_path('pagingMetadata.total')
            offset += len(items)
            if len(items) < limit or (total is not None and offset >= int(total)):
                break

    def _cursor_pages(
        self,
        fetch: Callable[[Optional[str]], ApiResponse],
        items_key: str,
        what: str,
        cursor_paths=('pagingMetadata.cursors.next', 'paging.nextCursor', 'metadata.cursors.next')
    ) -> Iterator[dict]:
        """Yield items from a cursor-paged endpoint, starting with no cursor."""
        cursor = None
        seen = set()
        while True:
            response = self._require_ok(fetch(cursor), what)
            yield from response.data.get(items_key) or []

            cursor = next((response.json_path(p) for p in cursor_paths if response.json_path(p)), None)
            if not cursor or cursor in seen:
                break
            seen.add(cursor)
