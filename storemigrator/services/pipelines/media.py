"""
Media pipeline.

Runs in two phases. Staging lists every folder (plus the synthetic root) and
its files and records a pending row per folder. Import then ensures each
destination folder and imports its files by URL in batches. A folder only
succeeds when every one of its files imported.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List

from .base import BasePipeline, RunContext
from ..adapters.media import IMPORT_BATCH_SIZE, MEDIA_ROOT, MediaAdapter
from ...models import MediaMigration
from ...utils.payloads import chunked

logger = logging.getLogger(__name__)

ROOT_FOLDER = {'id': MEDIA_ROOT, 'displayName': 'Root'}


@dataclass
class StagedFolder:
    folder: Dict[str, Any]
    files: List[dict]
    entry: Any = None

    @property
    def name(self) -> str:
        return self.folder.get('displayName') or self.folder.get('id')


@dataclass
class FolderImport:
    """Outcome of importing one folder's files."""
    imported: int = 0
    failed_names: List[str] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.failed_names


def file_name(item: dict) -> str:
    return item.get('displayName') or item.get('id') or 'Imported_File'


class MediaPipeline(BasePipeline):

    entity_type = 'media'
    label = 'Media'
    model = MediaMigration
    adapter_classes = {'media': MediaAdapter}

    def migrate(self, ctx: RunContext) -> None:
        folders = [dict(ROOT_FOLDER)] + list(self.media.list_folders(ctx.from_token))
        folders = self.limit(ctx, folders)
        self._staged: List[StagedFolder] = []
        self._folder_map = {MEDIA_ROOT: MEDIA_ROOT}
        ctx.result.extra.setdefault('files', 0)

        self.process_all(ctx, folders, self.stage_folder)
        total_files = sum(len(s.files) for s in self._staged)
        self.log.info(self.context, f'Staged {len(self._staged)} folder(s) with {total_files} file(s).')

        self.process_all(ctx, self._staged, self.import_folder)

    def describe(self, item: Any) -> str:
        if isinstance(item, StagedFolder):
            return item.name
        return super().describe(item)

    # ==================== STAGING ====================

    def stage_folder(self, ctx: RunContext, folder: dict) -> None:
        files = list(self.media.list_files(ctx.from_token, folder['id']))
        entry = self.stage(
            ctx, folder['id'],
            folder_name=folder.get('displayName'),
            total_files=len(files),
        )
        if self.skip_finished(ctx, entry):
            self._folder_map[folder['id']] = entry.destination_id
            return
        self._staged.append(StagedFolder(folder, files, entry))

    # ==================== IMPORT ====================

    def import_folder(self, ctx: RunContext, staged: StagedFolder) -> None:
        entry = ctx.entry = staged.entry
        if self.skip_dry_run(ctx, entry):
            return

        destination_id = self._destination_folder(ctx, staged)
        if not destination_id:
            return

        outcome = FolderImport()
        for batch in chunked(staged.files, IMPORT_BATCH_SIZE):
            for item, result in zip(batch, self.media.import_batch(ctx.to_token, batch, destination_id)):
                if result['ok']:
                    outcome.imported += 1
                else:
                    outcome.failed_names.append(file_name(item))
                    logger.debug(f"Media file '{file_name(item)}' failed: {result.get('error')}")

        ctx.result.extra['files'] += outcome.imported
        if outcome.complete:
            self.succeed(ctx, entry, destination_id, imported_files=outcome.imported, failed_files=[])
            self.log.success(self.context, f"Folder '{staged.name}': imported {outcome.imported} file(s).")
        else:
            self.fail(
                ctx, entry,
                f"Failed files: {', '.join(outcome.failed_names)}",
                destination_folder_id=destination_id,
                imported_files=outcome.imported,
                failed_files=outcome.failed_names,
            )

    def _destination_folder(self, ctx: RunContext, staged: StagedFolder):
        """Destination folder id; the root maps onto the destination root."""
        source_id = staged.folder['id']
        if source_id == MEDIA_ROOT:
            return MEDIA_ROOT

        parent = self._folder_map.get(staged.folder.get('parentFolderId') or MEDIA_ROOT, MEDIA_ROOT)
        result = self.media.ensure_folder(ctx.to_token, staged.name, parent)
        if not result['ok']:
            self.fail(ctx, staged.entry, result['error'])
            return None
        self._folder_map[source_id] = result['id']
        return result['id']
