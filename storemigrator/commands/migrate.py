"""
CLI commands for running migrations.

A full run can take a long time on a large store; these commands are the
way to drive one from a shell or a one-off job:

flask migration run --from-store=abc --to-store=def --dry-run
"""
import click
from flask import current_app
from flask.cli import with_appcontext

from ..models import LEDGER_MODELS, LEDGER_STATUSES
from ..services.ledger_service import MigrationLedger
from ..services.orchestrator import DEPENDENCY_ORDER, MigrationOrchestrator
from ..utils.exceptions import UnknownEntityTypeError


@click.group('migration')
def migration_cli():
    """Store migration commands."""
    pass


def _operator(operator_id):
    if operator_id is not None:
        return operator_id
    return int(current_app.config['MIGRATION_DEFAULT_OPERATOR_ID'])


@migration_cli.command('run')
@click.option('--from-store', required=True, help='Source store instance id')
@click.option('--to-store', required=True, help='Destination store instance id')
@click.option('--entity', '-e', 'entities', multiple=True, help='Entity type (repeatable; default: all)')
@click.option('--operator-id', type=int, help='Operator id (default: MIGRATION_DEFAULT_OPERATOR_ID)')
@click.option('--max', 'max_items', type=click.IntRange(min=1), help='Max source items per entity type')
@click.option('--dry-run', is_flag=True, help='Stage ledger rows without writing to the destination')
@with_appcontext
def run_migration(from_store, to_store, entities, operator_id, max_items, dry_run):
    """
    Migrate entities from one store to another.

    Safe to re-run: finished items are skipped.
    """
    options = {'dry_run': dry_run}
    if max_items:
        options['max'] = max_items

    orchestrator = MigrationOrchestrator.from_config(current_app.config)
    try:
        summary = orchestrator.run(_operator(operator_id), from_store, to_store, list(entities) or None, options)
    except UnknownEntityTypeError as e:
        raise click.BadParameter(e.message, param_hint='--entity')

    click.echo(f"{'[DRY RUN] ' if dry_run else ''}{summary.message}")
    if summary.has_errors:
        click.get_current_context().exit(1)


@migration_cli.command('entities')
def list_entities():
    """List entity types in dependency order."""
    for position, entity_type in enumerate(DEPENDENCY_ORDER, start=1):
        click.echo(f'{position}. {entity_type}')


@migration_cli.command('ledger')
@click.option('--entity', required=True, type=click.Choice(list(DEPENDENCY_ORDER)), help='Entity type')
@click.option('--from-store', required=True, help='Source store instance id')
@click.option('--to-store', required=True, help='Destination store instance id')
@click.option('--status', type=click.Choice(list(LEDGER_STATUSES)), help='List rows with this status')
@click.option('--operator-id', type=int, help='Operator id (default: MIGRATION_DEFAULT_OPERATOR_ID)')
@with_appcontext
def show_ledger(entity, from_store, to_store, status, operator_id):
    """Show ledger counts for an entity type and store pair."""
    ledger = MigrationLedger(LEDGER_MODELS[entity], _operator(operator_id), from_store, to_store)
    counts = ledger.counts()

    click.echo(f'\n{entity} ledger {from_store} -> {to_store}:')
    for name in LEDGER_STATUSES:
        click.echo(f'  {name}: {counts[name]}')

    if status:
        click.echo(f'\n  {status} rows:')
        for entry in ledger.entries(status=status):
            line = f'    {entry.source_key}'
            if entry.destination_id:
                line += f' -> {entry.destination_id}'
            if entry.error_message:
                line += f' ({entry.error_message})'
            click.echo(line)


def init_app(app):
    """Register CLI commands with the Flask app."""
    app.cli.add_command(migration_cli)
