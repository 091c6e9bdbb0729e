#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Migration catalogue for the shipment tracker database.

Phases:
    1. Base schema (external schema.sql, critical)
    2. Performance indexes
    3. Column additions
    4. Table creations
    5. Referential integrity and constraints
    6. Data migrations and late additions

Table DDL and constraints target PostgreSQL; probes and data migrations are
portable.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import List, Optional, Tuple

from sqlalchemy import DateTime, String, column, select, table, text, update
from sqlalchemy.engine import Inspector
from sqlalchemy.ext.asyncio import AsyncSession

from schemaflow.migrations import MigrationRegistry, SqlFileMigration
from schemaflow.migrations.migration import Migration
from schemaflow.migrations.operations import (
    AddColumnsMigration,
    CreateIndexesMigration,
    CreateTablesMigration,
    ReplaceValuesMigration,
)
from schemaflow.migrations.probes import run_inspector

logger = logging.getLogger(__name__)

SCHEMA = 'schema-creation'

WAREHOUSES = (
    ('PRETORIA', 650),
    ('KLAPMUTS', 384),
    ('OFFSITE', 384),
)

# (table, column, constraint name); each references users(id)
USER_FOREIGN_KEYS = (
    ('shipments', 'inspected_by', 'fk_shipments_inspected_by'),
    ('shipments', 'received_by', 'fk_shipments_received_by'),
    ('shipments', 'rejected_by', 'fk_shipments_rejected_by'),
    ('supplier_documents', 'verified_by', 'fk_supplier_documents_verified_by'),
)

SOFT_DELETE_TABLES = ('shipments', 'suppliers', 'users')


def calculate_week_date(week_number, today: Optional[date] = None) -> Optional[datetime]:
    """
    Monday of an ISO week, picking the year closest to today.

    A week far behind the current one belongs to next year, far ahead to
    last year; around new year, low weeks in December and high weeks in
    January roll over the same way.

    Args:
        week_number: 1..53 (int or numeric string)
        today: Reference date (defaults to today)

    Returns:
        Midnight of that Monday, or None for an invalid week number
    """
    try:
        week_number = int(str(week_number).strip())
    except (TypeError, ValueError):
        return None
    if not 1 <= week_number <= 53:
        return None

    today = today or date.today()
    current_week = today.isocalendar()[1]
    target_year = today.year

    if today.month == 12 and week_number <= 10:
        target_year += 1
    elif today.month == 1 and week_number >= 45:
        target_year -= 1
    elif week_number < current_week - 20:
        target_year += 1
    elif week_number > current_week + 20:
        target_year -= 1

    week_one_monday = date.fromisocalendar(target_year, 1, 1)
    monday = week_one_monday + timedelta(weeks=week_number - 1)
    return datetime(monday.year, monday.month, monday.day)


@dataclass(frozen=True, repr=False)
class BackfillWeekDatesMigration(Migration):
    """Fill shipments.selected_week_date from week_number."""

    today: Optional[date] = None

    def _shipments(self):
        return table(
            'shipments',
            column('id', String),
            column('week_number', String),
            column('selected_week_date', DateTime),
        )

    def _pending(self):
        shipments = self._shipments()
        return select(shipments.c.id, shipments.c.week_number).where(
            shipments.c.week_number.is_not(None),
            shipments.c.selected_week_date.is_(None),
        )

    async def probe(self, session: AsyncSession) -> bool:
        rows = (await session.execute(self._pending())).all()
        return all(calculate_week_date(row.week_number, self.today) is None for row in rows)

    async def apply(self, session: AsyncSession) -> None:
        shipments = self._shipments()
        rows = (await session.execute(self._pending())).all()

        updated = 0
        for row in rows:
            week_date = calculate_week_date(row.week_number, self.today)
            if week_date is None:
                continue
            await session.execute(
                update(shipments)
                .where(shipments.c.id == row.id)
                .values(selected_week_date=week_date)
            )
            updated += 1

        logger.info('Backfilled %d shipments with week dates', updated)


def _pending_integrity_changes(insp: Inspector) -> Tuple[List[Tuple[str, str, str]], List[str], bool]:
    """Foreign keys, soft-delete columns and audit columns still missing."""
    def columns_of(table_name):
        return {col['name'] for col in insp.get_columns(table_name)}

    foreign_keys = []
    for table_name, column_name, constraint in USER_FOREIGN_KEYS:
        if not insp.has_table(table_name) or column_name not in columns_of(table_name):
            continue
        existing = {fk['name'] for fk in insp.get_foreign_keys(table_name)}
        if constraint not in existing:
            foreign_keys.append((table_name, column_name, constraint))

    soft_delete = [
        table_name for table_name in SOFT_DELETE_TABLES
        if insp.has_table(table_name) and 'deleted_at' not in columns_of(table_name)
    ]
    audit = insp.has_table('users') and 'created_by' not in columns_of('users')

    return foreign_keys, soft_delete, audit


@dataclass(frozen=True, repr=False)
class ReferentialIntegrityMigration(Migration):
    """
    Add user foreign keys, soft-delete columns and user audit columns.

    Foreign keys are only added where the referencing column exists.
    """

    async def probe(self, session: AsyncSession) -> bool:
        foreign_keys, soft_delete, audit = await run_inspector(
            session, _pending_integrity_changes
        )
        return not (foreign_keys or soft_delete or audit)

    async def apply(self, session: AsyncSession) -> None:
        foreign_keys, soft_delete, audit = await run_inspector(
            session, _pending_integrity_changes
        )

        for table_name, column_name, constraint in foreign_keys:
            await session.execute(text(
                f'ALTER TABLE {table_name} ADD CONSTRAINT {constraint} '
                f'FOREIGN KEY ({column_name}) REFERENCES users(id) ON DELETE SET NULL'
            ))
        for table_name in soft_delete:
            await session.execute(text(
                f'ALTER TABLE {table_name} ADD COLUMN deleted_at TIMESTAMP WITH TIME ZONE'
            ))
        if audit:
            await session.execute(text(
                'ALTER TABLE users ADD COLUMN created_by VARCHAR(255), '
                'ADD COLUMN updated_by VARCHAR(255)'
            ))

        logger.info(
            'Added %d foreign keys, %d soft-delete columns%s',
            len(foreign_keys),
            len(soft_delete),
            ', audit columns' if audit else ''
        )


def _seed_warehouses_sql(column_name: str) -> str:
    return '\n'.join(
        f"INSERT INTO warehouse_capacity (warehouse_name, bins_used, {column_name}, updated_at) "
        f"SELECT '{name}', 0, {bins}, CURRENT_TIMESTAMP "
        f"WHERE NOT EXISTS (SELECT 1 FROM warehouse_capacity WHERE warehouse_name = '{name}');"
        for name, bins in WAREHOUSES
    )


NOTIFICATION_TABLES_SQL = """
    CREATE TABLE IF NOT EXISTS notification_preferences (
      id SERIAL PRIMARY KEY,
      user_id TEXT NOT NULL UNIQUE REFERENCES users(id) ON DELETE CASCADE,
      notify_shipment_arrival BOOLEAN DEFAULT true,
      notify_inspection_failed BOOLEAN DEFAULT true,
      notify_inspection_passed BOOLEAN DEFAULT true,
      notify_warehouse_capacity BOOLEAN DEFAULT true,
      notify_delayed_shipment BOOLEAN DEFAULT true,
      notify_post_arrival_update BOOLEAN DEFAULT true,
      notify_workflow_assigned BOOLEAN DEFAULT true,
      email_enabled BOOLEAN DEFAULT true,
      email_frequency VARCHAR(50) DEFAULT 'immediate',
      email_address TEXT,
      created_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP,
      updated_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP
    );

    CREATE TABLE IF NOT EXISTS notification_log (
      id SERIAL PRIMARY KEY,
      user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
      event_type VARCHAR(100) NOT NULL,
      shipment_id TEXT REFERENCES shipments(id) ON DELETE SET NULL,
      subject TEXT NOT NULL,
      message TEXT NOT NULL,
      status VARCHAR(50) DEFAULT 'sent',
      delivery_method VARCHAR(50) DEFAULT 'email',
      sent_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP,
      error_message TEXT
    );

    CREATE TABLE IF NOT EXISTS notification_digest_queue (
      id SERIAL PRIMARY KEY,
      user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
      event_type VARCHAR(100) NOT NULL,
      shipment_id TEXT REFERENCES shipments(id) ON DELETE SET NULL,
      event_data JSONB,
      created_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP,
      processed_at TIMESTAMP WITH TIME ZONE
    );

    CREATE INDEX IF NOT EXISTS idx_notification_prefs_user ON notification_preferences(user_id);
    CREATE INDEX IF NOT EXISTS idx_notification_log_user ON notification_log(user_id);
    CREATE INDEX IF NOT EXISTS idx_notification_log_created ON notification_log(sent_at);
    CREATE INDEX IF NOT EXISTS idx_notification_log_event ON notification_log(event_type);
    CREATE INDEX IF NOT EXISTS idx_digest_queue_user ON notification_digest_queue(user_id);
    CREATE INDEX IF NOT EXISTS idx_digest_queue_processed ON notification_digest_queue(processed_at);
"""

REFRESH_TOKENS_SQL = """
    CREATE TABLE IF NOT EXISTS refresh_tokens (
      id SERIAL PRIMARY KEY,
      user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
      token TEXT NOT NULL UNIQUE,
      expires_at TIMESTAMP WITH TIME ZONE NOT NULL,
      created_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP,
      revoked_at TIMESTAMP WITH TIME ZONE,
      ip_address VARCHAR(45),
      user_agent TEXT,
      CONSTRAINT no_revoked_tokens CHECK (revoked_at IS NULL)
    );

    CREATE INDEX IF NOT EXISTS idx_refresh_tokens_token ON refresh_tokens(token);
    CREATE INDEX IF NOT EXISTS idx_refresh_tokens_user_id ON refresh_tokens(user_id);
    CREATE INDEX IF NOT EXISTS idx_refresh_tokens_expires_at ON refresh_tokens(expires_at);
"""

SUPPLIER_ACCOUNTS_SQL = """
    CREATE TABLE IF NOT EXISTS supplier_accounts (
      id SERIAL PRIMARY KEY,
      supplier_id TEXT NOT NULL UNIQUE REFERENCES suppliers(id) ON DELETE CASCADE,
      email TEXT NOT NULL UNIQUE,
      password_hash TEXT NOT NULL,
      is_verified BOOLEAN DEFAULT false,
      verified_at TIMESTAMP WITH TIME ZONE,
      last_login TIMESTAMP WITH TIME ZONE,
      created_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP,
      updated_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP,
      is_active BOOLEAN DEFAULT true
    );

    CREATE TABLE IF NOT EXISTS supplier_documents (
      id SERIAL PRIMARY KEY,
      shipment_id TEXT NOT NULL REFERENCES shipments(id) ON DELETE CASCADE,
      supplier_id TEXT NOT NULL REFERENCES suppliers(id) ON DELETE CASCADE,
      document_type VARCHAR(50) NOT NULL,
      file_name TEXT NOT NULL,
      file_path TEXT NOT NULL,
      file_size INTEGER,
      mime_type VARCHAR(100),
      uploaded_by TEXT NOT NULL,
      uploaded_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP,
      description TEXT,
      is_verified BOOLEAN DEFAULT false,
      verified_by TEXT,
      verified_at TIMESTAMP WITH TIME ZONE
    );

    CREATE INDEX IF NOT EXISTS idx_supplier_accounts_email ON supplier_accounts(email);
    CREATE INDEX IF NOT EXISTS idx_supplier_accounts_supplier_id ON supplier_accounts(supplier_id);
    CREATE INDEX IF NOT EXISTS idx_supplier_documents_shipment ON supplier_documents(shipment_id);
    CREATE INDEX IF NOT EXISTS idx_supplier_documents_supplier ON supplier_documents(supplier_id);
    CREATE INDEX IF NOT EXISTS idx_supplier_documents_type ON supplier_documents(document_type);
"""

ARCHIVES_SQL = """
    CREATE TABLE IF NOT EXISTS archives (
      id SERIAL PRIMARY KEY,
      file_name VARCHAR(255) NOT NULL UNIQUE,
      archived_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
      total_shipments INTEGER NOT NULL DEFAULT 0,
      data JSONB NOT NULL,
      created_by VARCHAR(255) REFERENCES users(id) ON DELETE SET NULL
    );

    CREATE INDEX IF NOT EXISTS idx_archives_archived_at ON archives(archived_at);
    CREATE INDEX IF NOT EXISTS idx_archives_file_name ON archives(file_name);
"""

COSTING_TABLES_SQL = """
    CREATE TABLE IF NOT EXISTS import_cost_estimates (
      id VARCHAR(255) PRIMARY KEY,
      shipment_id VARCHAR(255),
      supplier_id VARCHAR(255),
      reference_number VARCHAR(100),
      country_of_destination VARCHAR(100) DEFAULT 'South Africa',
      country_of_origin VARCHAR(100),
      port_of_loading VARCHAR(100),
      port_of_discharge VARCHAR(50),
      shipping_line VARCHAR(100),
      routing VARCHAR(255),
      frequency VARCHAR(50),
      transit_time_days INTEGER,
      inco_terms VARCHAR(20),
      inco_term_place VARCHAR(100),
      container_type VARCHAR(50),
      quantity INTEGER DEFAULT 1,
      hs_code VARCHAR(50),
      gross_weight_kg NUMERIC(12,2),
      total_gross_weight_kg NUMERIC(12,2),
      origin_rate_usd NUMERIC(12,2),
      ocean_freight_rate_usd NUMERIC(12,2),
      commodity VARCHAR(255),
      invoice_value_usd NUMERIC(14,2) DEFAULT 0,
      invoice_value_eur NUMERIC(14,2) DEFAULT 0,
      customs_value_zar NUMERIC(14,2) DEFAULT 0,
      supplier_name VARCHAR(255),
      validity_date DATE,
      costing_date DATE DEFAULT CURRENT_DATE,
      payment_terms VARCHAR(100),
      roe_origin NUMERIC(12,6),
      roe_eur NUMERIC(12,6),
      roe_customs NUMERIC(12,6),
      products JSONB DEFAULT '[]'::jsonb,
      origin_charge_usd NUMERIC(12,2) DEFAULT 0,
      origin_charge_eur NUMERIC(12,2) DEFAULT 0,
      origin_charge_zar NUMERIC(14,2) DEFAULT 0,
      total_origin_charges_zar NUMERIC(14,2) DEFAULT 0,
      local_cartage_cpt_klapmuts_20ton_zar NUMERIC(12,2) DEFAULT 0,
      local_cartage_cpt_klapmuts_28ton_zar NUMERIC(12,2) DEFAULT 0,
      transport_dbn_to_pretoria_20ft_zar NUMERIC(12,2) DEFAULT 0,
      transport_dbn_to_pretoria_40ft_zar NUMERIC(12,2) DEFAULT 0,
      transport_dbn_to_whs_zar NUMERIC(12,2) DEFAULT 0,
      unpack_reload_zar NUMERIC(12,2) DEFAULT 0,
      storage_zar NUMERIC(12,2) DEFAULT 0,
      storage_days INTEGER DEFAULT 0,
      outlying_depot_surcharge_zar NUMERIC(12,2) DEFAULT 0,
      local_cartage_dbn_whs_pretoria_opt_a_zar NUMERIC(12,2) DEFAULT 0,
      local_cartage_dbn_whs_pretoria_opt_b_zar NUMERIC(12,2) DEFAULT 0,
      local_cartage_dbn_whs_pretoria_6m_zar NUMERIC(12,2) DEFAULT 0,
      local_cartage_dbn_whs_pretoria_12m_zar NUMERIC(12,2) DEFAULT 0,
      transport_pe_coega_to_pretoria_zar NUMERIC(12,2) DEFAULT 0,
      local_charges_subtotal_zar NUMERIC(14,2) DEFAULT 0,
      shipping_line_charges_zar NUMERIC(12,2) DEFAULT 0,
      cargo_dues_20ft_zar NUMERIC(12,2) DEFAULT 0,
      cargo_dues_40ft_zar NUMERIC(12,2) DEFAULT 0,
      cto_fee_zar NUMERIC(12,2) DEFAULT 0,
      port_health_inspection_zar NUMERIC(12,2) DEFAULT 0,
      daff_inspection_zar NUMERIC(12,2) DEFAULT 0,
      state_vet_cancellation_fee_zar NUMERIC(12,2) DEFAULT 0,
      jnb_turn_in_zar NUMERIC(12,2) DEFAULT 0,
      destination_charges_subtotal_zar NUMERIC(14,2) DEFAULT 0,
      duties_zar NUMERIC(12,2) DEFAULT 0,
      customs_vat_zar NUMERIC(12,2) DEFAULT 0,
      customs_declaration_zar NUMERIC(12,2) DEFAULT 0,
      agency_fee_zar NUMERIC(12,2) DEFAULT 0,
      agency_fee_percentage NUMERIC(5,2) DEFAULT 3.5,
      agency_fee_min NUMERIC(12,2) DEFAULT 1187,
      customs_duty_not_applicable BOOLEAN DEFAULT false,
      customs_subtotal_zar NUMERIC(14,2) DEFAULT 0,
      total_shipping_cost_zar NUMERIC(14,2) DEFAULT 0,
      total_in_warehouse_cost_zar NUMERIC(14,2) DEFAULT 0,
      all_in_warehouse_cost_per_kg_zar NUMERIC(12,4) DEFAULT 0,
      status VARCHAR(50) DEFAULT 'draft',
      notes TEXT,
      created_by VARCHAR(255),
      created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
      updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    );

    CREATE INDEX IF NOT EXISTS idx_cost_estimates_shipment ON import_cost_estimates(shipment_id);
    CREATE INDEX IF NOT EXISTS idx_cost_estimates_supplier ON import_cost_estimates(supplier_id);
    CREATE INDEX IF NOT EXISTS idx_cost_estimates_date ON import_cost_estimates(costing_date);
    CREATE INDEX IF NOT EXISTS idx_cost_estimates_status ON import_cost_estimates(status);

    CREATE TABLE IF NOT EXISTS exchange_rate_cache (
      id SERIAL PRIMARY KEY,
      currency_pair VARCHAR(10) NOT NULL UNIQUE,
      rate NUMERIC(12,6) NOT NULL,
      source VARCHAR(100),
      fetched_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    );
"""


def build_registry(schema_dir='db', today: Optional[date] = None) -> MigrationRegistry:
    """
    Build the ordered registry of shipment tracker migrations.

    Args:
        schema_dir: Directory holding schema.sql and add-rejection-fields.sql
        today: Reference date for the week backfill (tests)

    Returns:
        MigrationRegistry
    """
    schema_dir = Path(schema_dir)
    registry = MigrationRegistry()

    # Phase 1: Schema (external SQL file)
    registry.register(SqlFileMigration(
        name=SCHEMA,
        version='000',
        phase=1,
        critical=True,
        description='Create base schema from schema.sql',
        path=str(schema_dir / 'schema.sql'),
    ))

    # Phase 2: Performance indexes
    registry.register(CreateIndexesMigration(
        name='add-performance-indexes',
        version='001',
        phase=2,
        depends_on={SCHEMA},
        description='Add performance indexes to shipments table',
        indexes=(
            ('idx_shipments_warehouse', 'shipments', 'receiving_warehouse'),
            ('idx_shipments_status_week', 'shipments', 'latest_status, week_number'),
            ('idx_shipments_status_warehouse', 'shipments', 'latest_status, receiving_warehouse'),
            ('idx_shipments_order_ref', 'shipments', 'order_ref'),
            ('idx_shipments_created_at', 'shipments', 'created_at'),
            ('idx_shipments_inspection_status', 'shipments', 'inspection_status'),
            ('idx_shipments_receiving_status', 'shipments', 'receiving_status'),
        ),
    ))

    # Phase 3: Column additions
    registry.register(AddColumnsMigration(
        name='add-available-bins',
        version='002',
        phase=3,
        depends_on={SCHEMA},
        description='Add available_bins column to warehouse_capacity table',
        table_name='warehouse_capacity',
        columns=(('available_bins', 'available_bins INTEGER DEFAULT 0'),),
        followup_sql=_seed_warehouses_sql('available_bins'),
    ))

    registry.register(AddColumnsMigration(
        name='add-total-capacity',
        version='003',
        phase=3,
        depends_on={SCHEMA},
        description='Add total_capacity column to warehouse_capacity table',
        table_name='warehouse_capacity',
        columns=(('total_capacity', 'total_capacity INTEGER DEFAULT 0'),),
        followup_sql=_seed_warehouses_sql('total_capacity'),
    ))

    registry.register(AddColumnsMigration(
        name='add-password-reset',
        version='004',
        phase=3,
        depends_on={SCHEMA},
        description='Add password reset token columns to users table',
        table_name='users',
        columns=(
            ('reset_token', 'reset_token VARCHAR(255)'),
            ('reset_token_expiry', 'reset_token_expiry TIMESTAMP'),
        ),
        followup_sql='CREATE INDEX IF NOT EXISTS idx_users_reset_token ON users(reset_token) '
                     'WHERE reset_token IS NOT NULL;',
        indexes=('idx_users_reset_token',),
    ))

    # Phase 4: Table creations
    registry.register(CreateTablesMigration(
        name='add-notifications-tables',
        version='005',
        phase=4,
        depends_on={SCHEMA},
        description='Create notification preferences, logs, and digest queue tables',
        tables=('notification_preferences', 'notification_log', 'notification_digest_queue'),
        sql=NOTIFICATION_TABLES_SQL,
        indexes=(
            ('idx_notification_prefs_user', 'notification_preferences'),
            ('idx_notification_log_user', 'notification_log'),
            ('idx_notification_log_created', 'notification_log'),
            ('idx_notification_log_event', 'notification_log'),
            ('idx_digest_queue_user', 'notification_digest_queue'),
            ('idx_digest_queue_processed', 'notification_digest_queue'),
        ),
    ))

    registry.register(CreateTablesMigration(
        name='add-refresh-tokens-table',
        version='006',
        phase=4,
        depends_on={SCHEMA},
        description='Create refresh_tokens table for JWT token refresh',
        tables=('refresh_tokens',),
        sql=REFRESH_TOKENS_SQL,
        indexes=(
            ('idx_refresh_tokens_token', 'refresh_tokens'),
            ('idx_refresh_tokens_user_id', 'refresh_tokens'),
            ('idx_refresh_tokens_expires_at', 'refresh_tokens'),
        ),
    ))

    registry.register(CreateTablesMigration(
        name='add-supplier-accounts',
        version='007',
        phase=4,
        depends_on={SCHEMA},
        description='Create supplier portal tables (accounts and documents)',
        tables=('supplier_accounts', 'supplier_documents'),
        sql=SUPPLIER_ACCOUNTS_SQL,
        indexes=(
            ('idx_supplier_accounts_email', 'supplier_accounts'),
            ('idx_supplier_accounts_supplier_id', 'supplier_accounts'),
            ('idx_supplier_documents_shipment', 'supplier_documents'),
            ('idx_supplier_documents_supplier', 'supplier_documents'),
            ('idx_supplier_documents_type', 'supplier_documents'),
        ),
        columns=(('suppliers', 'portal_enabled', 'portal_enabled BOOLEAN DEFAULT true'),),
    ))

    registry.register(CreateTablesMigration(
        name='add-archives-table',
        version='008',
        phase=4,
        depends_on={SCHEMA},
        description='Create archives table for archived shipments',
        tables=('archives',),
        sql=ARCHIVES_SQL,
        indexes=(
            ('idx_archives_archived_at', 'archives'),
            ('idx_archives_file_name', 'archives'),
        ),
    ))

    # Phase 5: Referential integrity and constraints
    registry.register(ReferentialIntegrityMigration(
        name='add-referential-integrity',
        version='009',
        phase=5,
        depends_on={SCHEMA, 'add-notifications-tables', 'add-supplier-accounts'},
        description='Add foreign key constraints and audit columns',
    ))

    # Phase 6: Data migrations and late additions
    registry.register(BackfillWeekDatesMigration(
        name='backfill-week-dates',
        version='010',
        phase=6,
        depends_on={SCHEMA},
        description='Backfill selected_week_date from week_number',
        today=today,
    ))

    registry.register(ReplaceValuesMigration(
        name='fix-supplier-names',
        version='011',
        phase=6,
        depends_on={SCHEMA},
        description='Fix supplier name inconsistencies',
        table_name='suppliers',
        column_name='name',
        replacements=(
            ('AB Mauri ', 'AB Mauri'),
            ('Aromsa', 'AROMSA'),
            ('Shakti Chemicals', 'SHAKTI CHEMICALS'),
            (' Sacco', 'SACCO'),
            ('Deltaris', 'QUERCYL'),
        ),
    ))

    registry.register(ReplaceValuesMigration(
        name='fix-shipment-supplier-names',
        version='012',
        phase=6,
        depends_on={SCHEMA, 'fix-supplier-names'},
        description='Fix shipment supplier name inconsistencies',
        table_name='shipments',
        column_name='supplier',
        replacements=(('Shakti Chemicals', 'SHAKTI CHEMICALS'),),
    ))

    registry.register(SqlFileMigration(
        name='add-rejection-migration',
        version='013',
        phase=6,
        depends_on={SCHEMA},
        description='Add rejection fields to shipments table',
        path=str(schema_dir / 'add-rejection-fields.sql'),
    ))

    registry.register(CreateTablesMigration(
        name='add-costing-tables',
        version='014',
        phase=6,
        depends_on={SCHEMA},
        description='Create import cost estimate and exchange rate tables',
        tables=('import_cost_estimates', 'exchange_rate_cache'),
        sql=COSTING_TABLES_SQL,
        indexes=(
            ('idx_cost_estimates_shipment', 'import_cost_estimates'),
            ('idx_cost_estimates_supplier', 'import_cost_estimates'),
            ('idx_cost_estimates_date', 'import_cost_estimates'),
            ('idx_cost_estimates_status', 'import_cost_estimates'),
        ),
        columns=(
            ('import_cost_estimates', 'country_of_origin', 'country_of_origin VARCHAR(100)'),
            ('import_cost_estimates', 'port_of_loading', 'port_of_loading VARCHAR(100)'),
            ('import_cost_estimates', 'roe_customs', 'roe_customs NUMERIC(12,6)'),
            ('import_cost_estimates', 'products', "products JSONB DEFAULT '[]'::jsonb"),
        ),
    ))

    return registry
