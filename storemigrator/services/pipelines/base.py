"""
Shared skeleton for per-entity migration pipelines.

Every pipeline follows the same outline: resolve both store tokens, list the
source items, then for each item stage a pending ledger row, skip it if an
earlier run already finished it, transform and write it to the destination,
and resolve the row. Per-item exceptions never escape ``run``.
"""
import logging
from dataclasses import dataclass, field
from itertools import islice
from typing import Any, Callable, Dict, Iterable, List, Optional

from ...extensions import db
from ...utils.exceptions import ConfigurationError
from ..id_remapper import IdRemapper
from ..ledger_service import MigrationLedger

logger = logging.getLogger(__name__)

DRY_RUN_MESSAGE = 'Dry run; not imported.'


@dataclass
class PipelineResult:
    """Counts and error lines for one entity type."""
    entity_type: str
    label: str
    imported: int = 0
    skipped: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)
    extra: Dict[str, int] = field(default_factory=dict)

    def add_error(self, message: str) -> None:
        self.errors.append(message)

    def summary(self) -> str:
        parts = [f'imported={self.imported}']
        parts.extend(f'{name}={value}' for name, value in self.extra.items())
        parts.extend([f'skipped={self.skipped}', f'failed={self.failed}'])
        return f"{self.label}: {', '.join(parts)}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'entity_type': self.entity_type,
            'imported': self.imported,
            'skipped': self.skipped,
            'failed': self.failed,
            'errors': list(self.errors),
            'summary': self.summary(),
            **self.extra,
        }


@dataclass
class RunContext:
    """Everything one pipeline run needs, threaded through each step."""
    operator_id: int
    from_store_id: str
    to_store_id: str
    from_token: str
    to_token: str
    ledger: MigrationLedger
    result: PipelineResult
    options: Dict[str, Any] = field(default_factory=dict)
    entry: Any = None

    @property
    def dry_run(self) -> bool:
        return bool(self.options.get('dry_run'))

    @property
    def max_items(self) -> Optional[int]:
        value = self.options.get('max')
        return int(value) if value else None


class BasePipeline:
    """
    Base class for entity pipelines.

    Subclasses set ``entity_type``, ``label``, ``model`` and
    ``adapter_classes`` and implement ``migrate``. Adapters are built from
    the shared client unless passed in by keyword (tests pass fakes).

    Args:
        client: PlatformClient shared by every adapter
        token_provider: Object with ``get_access_token`` or a plain callable
        logger: MigrationLogger for the operator-visible audit trail
        remapper: IdRemapper shared across pipelines in one run
    """

    entity_type: str = None
    label: str = None
    model = None
    adapter_classes: Dict[str, type] = {}
    progress_every = 50

    def __init__(self, client, token_provider, logger, remapper: IdRemapper = None, **adapters):
        self.client = client
        self.token_provider = token_provider
        self.log = logger
        self.remapper = remapper if remapper is not None else IdRemapper()
        for name, adapter_class in self.adapter_classes.items():
            setattr(self, name, adapters.get(name) or adapter_class(client))

    @property
    def context(self) -> str:
        return f'Migrate {self.label}'

    # ==================== RUN ====================

    def run(
        self,
        operator_id: int,
        from_store_id: str,
        to_store_id: str,
        options: Optional[Dict[str, Any]] = None
    ) -> PipelineResult:
        """
        Migrate every source item of this entity type.

        Raises:
            ConfigurationError: a store token is missing (nothing written)
        """
        if getattr(self.log, 'operator_id', None) is None and hasattr(self.log, 'bind'):
            self.log = self.log.bind(operator_id)

        from_token = self.resolve_token(from_store_id)
        if not from_token:
            raise ConfigurationError(f'Could not get access token for source store {from_store_id}.')
        to_token = self.resolve_token(to_store_id)
        if not to_token:
            raise ConfigurationError(f'Could not get access token for destination store {to_store_id}.')

        result = PipelineResult(self.entity_type, self.label)
        ctx = RunContext(
            operator_id=operator_id,
            from_store_id=from_store_id,
            to_store_id=to_store_id,
            from_token=from_token,
            to_token=to_token,
            ledger=MigrationLedger(self.model, operator_id, from_store_id, to_store_id),
            result=result,
            options=dict(options or {}),
        )

        self.log.info(self.context, f'Start: from={from_store_id} to={to_store_id}.')
        try:
            self.migrate(ctx)
        except ConfigurationError:
            raise
        except Exception as e:
            db.session.rollback()
            logger.exception(f'{self.label} migration aborted')
            result.add_error(f'{self.label} migration aborted: {e}')

        level = 'success'
        if result.errors or result.failed:
            level = 'warn' if result.imported else 'error'
        self.log.log(self.context, f'Done. {result.summary()}', level)
        return result

    def migrate(self, ctx: RunContext) -> None:
        raise NotImplementedError

    def resolve_token(self, store_id: str) -> Optional[str]:
        if not store_id:
            return None
        getter = getattr(self.token_provider, 'get_access_token', self.token_provider)
        return getter(store_id)

    # ==================== ITEM LOOP ====================

    def limit(self, ctx: RunContext, items: Iterable[Any]) -> List[Any]:
        """Apply the ``max`` option to a source listing."""
        if ctx.max_items is None:
            return list(items)
        return list(islice(items, ctx.max_items))

    def process_all(self, ctx: RunContext, items: List[Any], handler: Callable[[RunContext, Any], None]) -> None:
        total = len(items)
        for processed, item in enumerate(items, start=1):
            ctx.entry = None
            self.item_boundary(ctx, handler, item)
            if processed % self.progress_every == 0:
                r = ctx.result
                self.log.debug(
                    self.context,
                    f'Progress: {processed}/{total}; imported={r.imported}; skipped={r.skipped}; failed={r.failed}.'
                )

    def item_boundary(self, ctx: RunContext, handler: Callable[[RunContext, Any], None], item: Any) -> None:
        """
        Run one item; any exception fails that item only.

        An exception raised after the item's row already succeeded comes from
        a follow-up write: it is reported as a dependent error and the item
        keeps its success.
        """
        try:
            handler(ctx, item)
        except ConfigurationError:
            raise
        except Exception as e:
            db.session.rollback()
            logger.exception(f'{self.label} item failed')
            message = f'Unexpected error: {e}'
            if ctx.entry is not None and ctx.entry.status == 'success':
                self.dependent_error(ctx, f'follow-up for {ctx.entry.source_key}', message)
                return
            if ctx.entry is not None:
                ctx.ledger.mark_result(ctx.entry, 'failed', error_message=message)
                label = ctx.entry.source_key
            else:
                label = self.describe(item)
            ctx.result.failed += 1
            ctx.result.add_error(f'{self.label} {label}: {message}')
            self.log.error(self.context, f'{label}: {message}')

    def run_dependent(self, ctx: RunContext, what: str, step: Callable[..., Any], *args) -> Any:
        """
        Run one follow-up step for an item that already succeeded.

        An exception becomes a dependent error so the remaining steps still
        run. Returns the step's result, or None when it raised.
        """
        try:
            return step(ctx, *args)
        except ConfigurationError:
            raise
        except Exception as e:
            db.session.rollback()
            logger.exception(f'{self.label} {what} failed')
            self.dependent_error(ctx, what, f'Unexpected error: {e}')
            return None

    def describe(self, item: Any) -> str:
        if isinstance(item, dict):
            return str(item.get('id') or item.get('name') or '?')
        return str(item)

    # ==================== LEDGER HELPERS ====================

    def stage(self, ctx: RunContext, key, **fields):
        """Claim or create the ledger row for ``key`` and make it the current entry."""
        entry = ctx.ledger.claim(key, **fields)
        ctx.entry = entry
        return entry

    def skip_finished(self, ctx: RunContext, entry) -> bool:
        """True (and counted as skipped) when an earlier run already succeeded."""
        if entry.status == 'success':
            ctx.result.skipped += 1
            return True
        return False

    def skip_dry_run(self, ctx: RunContext, entry) -> bool:
        if ctx.dry_run:
            ctx.ledger.mark_result(entry, 'skipped', error_message=DRY_RUN_MESSAGE)
            ctx.result.skipped += 1
            return True
        return False

    def succeed(self, ctx: RunContext, entry, destination_id, **fields):
        ctx.ledger.mark_result(entry, 'success', destination_id=destination_id, **fields)
        ctx.result.imported += 1

    def fail(self, ctx: RunContext, entry, error: str, **fields):
        ctx.ledger.mark_result(entry, 'failed', error_message=error, **fields)
        ctx.result.failed += 1
        ctx.result.add_error(f'{self.label} {entry.source_key}: {error}')
        self.log.warn(self.context, f'{entry.source_key}: {error}')

    def skip(self, ctx: RunContext, entry, message: str, **fields):
        ctx.ledger.mark_result(entry, 'skipped', error_message=message, **fields)
        ctx.result.skipped += 1

    def dependent_error(self, ctx: RunContext, what: str, error: str) -> None:
        """Record a failed follow-up write; the parent keeps its status."""
        ctx.result.add_error(f'{self.label} {what}: {error}')
        self.log.warn(self.context, f'{what}: {error}')
