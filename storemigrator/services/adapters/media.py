"""
Site media manager: folders and files.
"""
import logging
from typing import Any, Dict, Iterator, List, Optional

from .base import RemoteAdapter, create_result

logger = logging.getLogger(__name__)

MEDIA_ROOT = 'media-root'
IMPORT_BATCH_SIZE = 50


class MediaAdapter(RemoteAdapter):
    """
    Media folders and files.

    ``ensure_folder`` caches folder ids by (token, parent, name) so a run
    creates each destination folder at most once.
    """

    PAGE_SIZE = 100

    def __init__(self, client):
        super().__init__(client)
        self._folder_cache: Dict[tuple, str] = {}

    def list_folders(self, token: str) -> List[dict]:
        response = self._require_ok(self.client.get(token, 'site-media/v1/folders'), 'Folders list')
        return response.data.get('folders') or []

    def list_files(self, token: str, folder_id: str) -> Iterator[dict]:
        def fetch(cursor):
            params = {'parentFolderId': folder_id, 'paging.limit': self.PAGE_SIZE}
            if cursor:
                params['paging.cursor'] = cursor
            return self.client.get(token, 'site-media/v1/files', params)

        return self._cursor_pages(fetch, 'files', f'Files list for folder {folder_id}', ('paging.nextCursor',))

    def ensure_folder(self, token: str, display_name: str, parent_folder_id: str = MEDIA_ROOT) -> Dict[str, Any]:
        """Find a destination folder by name under ``parent_folder_id`` or create it."""
        cache_key = (token, parent_folder_id, display_name)
        if cache_key in self._folder_cache:
            return {'ok': True, 'id': self._folder_cache[cache_key]}

        existing = self.client.get(token, 'site-media/v1/folders')
        if existing.ok:
            for folder in existing.data.get('folders') or []:
                if (folder.get('displayName') == display_name
                        and (folder.get('parentFolderId') or MEDIA_ROOT) == parent_folder_id):
                    self._folder_cache[cache_key] = folder['id']
                    return {'ok': True, 'id': folder['id']}

        response = self.client.post(token, 'site-media/v1/folders', {
            'displayName': display_name,
            'parentFolderId': parent_folder_id,
        })
        result = create_result(response, 'folder.id')
        if result['ok']:
            self._folder_cache[cache_key] = result['id']
            logger.info(f"Created media folder '{display_name}' -> {result['id']}")
        return result

    def import_file_by_url(
        self,
        token: str,
        url: str,
        display_name: str,
        parent_folder_id: str,
        mime_type: Optional[str] = None
    ) -> Dict[str, Any]:
        payload = {
            'url': url,
            'displayName': display_name,
            'parentFolderId': parent_folder_id,
            'private': False,
        }
        if mime_type:
            payload['mimeType'] = mime_type
        response = self.client.post(token, 'site-media/v1/files/import', payload)
        return create_result(response, 'file.id')

    def import_batch(self, token: str, files: List[dict], parent_folder_id: str) -> List[Dict[str, Any]]:
        """
        Import up to one batch of files by URL.

        Returns one result per input file, in the same order. Files without
        a URL fail without a remote call.
        """
        results = []
        for item in files[:IMPORT_BATCH_SIZE]:
            url = item.get('url')
            if not url:
                results.append({'ok': False, 'error': 'File has no URL'})
                continue
            results.append(self.import_file_by_url(
                token,
                url,
                item.get('displayName') or 'Imported_File',
                parent_folder_id,
                item.get('mimeType'),
            ))
        return results
