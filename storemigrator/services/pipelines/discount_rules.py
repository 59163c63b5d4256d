"""
Discount rules pipeline.
"""
import logging

from .base import BasePipeline, RunContext
from ..adapters.discount_rules import DiscountRuleAdapter
from ...models import DiscountRuleMigration
from ...utils.extraction import oldest_first
from ...utils.payloads import strip_keys

logger = logging.getLogger(__name__)

STRIP_FIELDS = ('id', 'revision', 'createdDate', 'updatedDate')


class DiscountRulePipeline(BasePipeline):
    """Create-once copy of automatic discount rules, keyed by source rule id."""

    entity_type = 'discount_rules'
    label = 'Discount rules'
    model = DiscountRuleMigration
    adapter_classes = {'discount_rules': DiscountRuleAdapter}

    def migrate(self, ctx: RunContext) -> None:
        rules = oldest_first(self.limit(ctx, self.discount_rules.list_all(ctx.from_token)))
        self.log.info(self.context, f'Fetched {len(rules)} discount rule(s).')
        self.process_all(ctx, rules, self.migrate_one)

    def migrate_one(self, ctx: RunContext, rule: dict) -> None:
        name = rule.get('name')
        entry = self.stage(ctx, rule.get('id'), source_rule_name=name)
        if self.skip_finished(ctx, entry):
            return
        if self.skip_dry_run(ctx, entry):
            return

        result = self.discount_rules.create(ctx.to_token, strip_keys(rule, STRIP_FIELDS))
        if not result['ok']:
            self.fail(ctx, entry, result['error'])
            return

        self.succeed(ctx, entry, result['id'])
        self.log.success(self.context, f"Created '{name}' -> {result['id']}.")
