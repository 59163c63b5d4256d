"""
Migration orchestrator.

Runs the selected entity pipelines for one (source, destination) store pair
in dependency order and folds their results into one operator-facing
summary. One entity type failing never stops the next one.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from ..extensions import db
from ..utils.exceptions import ConfigurationError, UnknownEntityTypeError
from .id_remapper import IdRemapper
from .migration_logger import MigrationLogger
from .pipelines import (
    BasePipeline,
    PipelineResult,
    CollectionPipeline,
    ProductPipeline,
    ContactPipeline,
    OrderPipeline,
    CouponPipeline,
    DiscountRulePipeline,
    MediaPipeline,
    LoyaltyPipeline,
)
from .platform_client import PlatformClient
from .token_provider import TokenProvider

logger = logging.getLogger(__name__)

DEPENDENCY_ORDER = (
    'collections',
    'products',
    'contacts',
    'orders',
    'coupons',
    'discount_rules',
    'media',
    'loyalty',
)

PIPELINE_REGISTRY: Dict[str, type] = {
    pipeline.entity_type: pipeline
    for pipeline in (
        CollectionPipeline,
        ProductPipeline,
        ContactPipeline,
        OrderPipeline,
        CouponPipeline,
        DiscountRulePipeline,
        MediaPipeline,
        LoyaltyPipeline,
    )
}


def _validate_registry(registry: Dict[str, type], order: Iterable[str]) -> None:
    order = tuple(order)
    unordered = set(registry) - set(order)
    unregistered = set(order) - set(registry)
    if unordered or unregistered or len(order) != len(set(order)):
        raise RuntimeError(
            f"Pipeline registry does not match dependency order "
            f"(unordered={sorted(unordered)}, unregistered={sorted(unregistered)})"
        )
    for entity_type, pipeline in registry.items():
        if not issubclass(pipeline, BasePipeline):
            raise RuntimeError(f"Pipeline for {entity_type} is not a BasePipeline")


_validate_registry(PIPELINE_REGISTRY, DEPENDENCY_ORDER)


def resolve_entity_types(entity_types: Optional[Iterable[str]] = None) -> List[str]:
    """
    Selected entity types in dependency order; all of them when none given.

    Raises:
        UnknownEntityTypeError: an entity type has no registered pipeline
    """
    if not entity_types:
        return list(DEPENDENCY_ORDER)
    wanted = {str(e).strip().lower() for e in entity_types if str(e).strip()}
    for entity_type in sorted(wanted):
        if entity_type not in PIPELINE_REGISTRY:
            raise UnknownEntityTypeError(entity_type)
    return [e for e in DEPENDENCY_ORDER if e in wanted]


@dataclass
class MigrationSummary:
    """Per-entity results plus run-level errors for one store pair."""
    from_store_id: str
    to_store_id: str
    results: List[PipelineResult] = field(default_factory=list)
    run_errors: List[str] = field(default_factory=list)

    @property
    def errors(self) -> List[str]:
        flattened = list(self.run_errors)
        for result in self.results:
            flattened.extend(result.errors)
        return flattened

    @property
    def has_errors(self) -> bool:
        return bool(self.errors) or any(r.failed for r in self.results)

    @property
    def imported(self) -> int:
        return sum(r.imported for r in self.results)

    @property
    def message(self) -> str:
        if not self.results:
            headline = 'Migration did not run.'
        elif self.has_errors:
            headline = 'Migration completed with some errors.'
        else:
            headline = 'Migration completed.'

        lines = [headline]
        lines.extend(r.summary() for r in self.results)
        errors = self.errors
        if errors:
            lines.append('')
            lines.append('Errors:')
            lines.extend(f'- {error}' for error in errors)
        return '\n'.join(lines)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'from_store_id': self.from_store_id,
            'to_store_id': self.to_store_id,
            'message': self.message,
            'has_errors': self.has_errors,
            'imported': self.imported,
            'results': {r.entity_type: r.to_dict() for r in self.results},
            'errors': self.errors,
        }


class MigrationOrchestrator:
    """
    Runs pipelines for one store pair.

    Args:
        client: PlatformClient shared by every adapter in the run
        token_provider: TokenProvider, or any callable instance_id -> token
        logger: MigrationLogger; bound to the operator per run
        adapters: Adapter overrides passed to every pipeline (tests)
    """

    def __init__(self, client, token_provider, logger: MigrationLogger = None, adapters: Dict[str, Any] = None):
        self.client = client
        self.token_provider = token_provider
        self.logger = logger or MigrationLogger()
        self.adapters = adapters or {}

    @classmethod
    def from_config(cls, config) -> 'MigrationOrchestrator':
        return cls(
            client=PlatformClient.from_config(config),
            token_provider=TokenProvider.from_config(config),
            logger=MigrationLogger(),
        )

    def build_pipeline(self, entity_type: str, log: MigrationLogger, remapper: IdRemapper) -> BasePipeline:
        pipeline_class = PIPELINE_REGISTRY[entity_type]
        return pipeline_class(self.client, self.token_provider, log, remapper, **self.adapters)

    def run(
        self,
        operator_id: int,
        from_store_id: str,
        to_store_id: str,
        entity_types: Optional[Iterable[str]] = None,
        options: Optional[Dict[str, Any]] = None
    ) -> MigrationSummary:
        """
        Migrate the selected entity types from one store to another.

        Args:
            operator_id: User running the migration
            from_store_id: Source store instance id
            to_store_id: Destination store instance id
            entity_types: Subset to run; all when None
            options: Pipeline options (max, dry_run, ...)

        Returns:
            MigrationSummary, always; errors are reported inside it

        Raises:
            UnknownEntityTypeError: before anything runs
        """
        selected = resolve_entity_types(entity_types)
        summary = MigrationSummary(from_store_id, to_store_id)
        log = self.logger.bind(operator_id)

        if not from_store_id or not to_store_id:
            summary.run_errors.append('Both a source and a destination store are required.')
            log.error('Migration', summary.run_errors[-1])
            return summary
        if from_store_id == to_store_id:
            summary.run_errors.append('Source and destination stores must be different.')
            log.error('Migration', summary.run_errors[-1])
            return summary

        log.info('Migration', f"Start: {', '.join(selected)} from={from_store_id} to={to_store_id}.")
        remapper = IdRemapper()

        for entity_type in selected:
            pipeline = self.build_pipeline(entity_type, log, remapper)
            try:
                result = pipeline.run(operator_id, from_store_id, to_store_id, options)
            except ConfigurationError as e:
                result = PipelineResult(entity_type, pipeline.label)
                result.add_error(f'{pipeline.label}: {e.message}')
                log.error(pipeline.context, e.message)
            except Exception as e:
                db.session.rollback()
                logger.exception(f'{entity_type} pipeline crashed')
                result = PipelineResult(entity_type, pipeline.label)
                result.add_error(f'{pipeline.label}: {e}')
            summary.results.append(result)

        log.log('Migration', summary.message, 'warn' if summary.has_errors else 'success')
        return summary
