#!/usr/bin/env python3
"""
Command-line entry point for database migrations.

Usage:
    python -m schemaflow run              # Run all pending migrations
    python -m schemaflow status           # Show migration history
    python -m schemaflow plan             # Show what a run would attempt
    python -m schemaflow reset --yes      # Reset migration history

The database URL comes from --database-url, the config file, or the
DATABASE_URL environment variable.
"""
import argparse
import asyncio
import sys
from typing import List, Optional

import yaml
from sqlalchemy.exc import SQLAlchemyError

from schemaflow.catalog import build_registry
from schemaflow.config import configure_logger, load_config
from schemaflow.database import MigrationDatabase
from schemaflow.errors import ConfigurationError, MigrationError, MigrationRunAborted
from schemaflow.migrations import MigrationOrchestrator, MigrationStatus


STATUS_ICONS = {
    MigrationStatus.COMPLETED: '✅',
    MigrationStatus.FAILED: '❌',
    MigrationStatus.SKIPPED: '⏭️ ',
    MigrationStatus.RUNNING: '⏳',
    MigrationStatus.PENDING: '⏳',
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='schemaflow',
        description='Run ordered database migrations with durable history',
    )
    parser.add_argument('--config', help='Path to JSON or YAML config file')
    parser.add_argument('--database-url', help='Database URL (overrides config and DATABASE_URL)')
    parser.add_argument('--schema-dir', help='Directory holding schema.sql')

    subparsers = parser.add_subparsers(dest='command')

    run_parser = subparsers.add_parser('run', help='Run all pending migrations')
    run_parser.add_argument('--strict', action='store_true',
                            help='Exit non-zero when optional migrations failed')

    status_parser = subparsers.add_parser('status', help='Show migration history')
    status_parser.add_argument('--status', choices=[s.value for s in MigrationStatus],
                               help='Only show records with this status')
    status_parser.add_argument('--recent', type=int, metavar='N',
                               help='Only show the N most recent attempts')

    subparsers.add_parser('plan', help='List migrations a run would attempt')

    reset_parser = subparsers.add_parser('reset', help='Clear migration history')
    reset_parser.add_argument('--yes', action='store_true',
                              help='Confirm the history reset')
    reset_parser.add_argument('--name', help='Only reset this migration')

    return parser


def print_records(records, out=None) -> None:
    """Print history records, one block per migration."""
    out = out or sys.stdout
    print('\n📊 Migration History:\n', file=out)
    if not records:
        print('No migrations have been executed yet.\n', file=out)
        return

    for record in records:
        print(f"{STATUS_ICONS[record.status]} {record.name} (v{record.version})", file=out)
        print(f"   Status: {record.status.value}", file=out)
        if record.completed_at:
            print(f"   Completed: {record.completed_at:%Y-%m-%d %H:%M:%S}", file=out)
        if record.duration_ms:
            print(f"   Duration: {record.duration_ms}ms", file=out)
        if record.error_message:
            print(f"   Error: {record.error_message}", file=out)
        print(file=out)


async def _run(orchestrator, database, args) -> int:
    try:
        await database.ping()
    except SQLAlchemyError as e:
        print(f"❌ Database connection failed: {e}", file=sys.stderr)
        return 1

    print('\n🔄 Starting database migrations...\n')
    try:
        summary = await orchestrator.run()
    except ConfigurationError as e:
        print(f"❌ Invalid migration definitions: {e}", file=sys.stderr)
        return 1
    except MigrationRunAborted as e:
        summary = e.summary

    print(f"\n{'=' * 60}")
    for line in summary.report_lines():
        print(line)
    print(f"{'=' * 60}")

    print_records(await orchestrator.status())

    if args.strict and summary.failed:
        return 1
    return summary.exit_code


async def run_command(args, config, registry=None) -> int:
    """Execute one CLI command against the configured database."""
    database = MigrationDatabase(config.database_url, environment=config.environment)
    try:
        orchestrator = MigrationOrchestrator(
            database,
            registry if registry is not None else build_registry(config.schema_dir),
        )

        if args.command == 'status':
            if args.status:
                records = await orchestrator.reporter.list_by_status(args.status)
            elif args.recent is not None:
                records = await orchestrator.reporter.list_recent(args.recent)
            else:
                records = await orchestrator.status()
            print_records(records)
            return 0

        if args.command == 'plan':
            pending = await orchestrator.plan()
            if not pending:
                print('✓ Nothing to do, all migrations are satisfied')
            for migration in pending:
                flag = 'critical' if migration.critical else 'optional'
                print(f"[{migration.version}] {migration.name} (phase {migration.phase}, {flag})")
            return 0

        if args.command == 'reset':
            if not args.yes:
                print('Refusing to reset migration history without --yes', file=sys.stderr)
                return 2
            if not config.reset_allowed:
                print('Refusing to reset migration history in production '
                      '(set allow_reset to override)', file=sys.stderr)
                return 2
            deleted = await orchestrator.reset(args.name)
            print(f"✓ Migration history reset ({deleted} rows removed)")
            return 0

        return await _run(orchestrator, database, args)

    except MigrationError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1

    finally:
        await database.close()


def main(argv: Optional[List[str]] = None, registry=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command is None:
        args.command = 'run'
        args.strict = False

    try:
        config = load_config(args.config)
    except (OSError, ValueError, yaml.YAMLError) as e:
        print(f"❌ Error: Cannot load config: {e}", file=sys.stderr)
        return 2

    if args.database_url:
        config.database_url = args.database_url
    if args.schema_dir:
        config.schema_dir = args.schema_dir

    configure_logger('schemaflow', log_file=config.log_file, log_level=config.level)

    if not config.database_url:
        if args.command == 'run':
            print('⚠️  DATABASE_URL not set, skipping migration')
            return 0
        print('❌ Error: DATABASE_URL not set', file=sys.stderr)
        return 2

    return asyncio.run(run_command(args, config, registry))


if __name__ == '__main__':
    sys.exit(main())
