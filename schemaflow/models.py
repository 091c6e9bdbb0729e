#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
SQLAlchemy ORM models for the migration history store
=======================================================

Defines the migration_history table using SQLAlchemy 2.0 ORM with type hints.

Usage:
    from schemaflow.models import Base, MigrationHistory

    # Create table (no-op when it already exists)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    # Query
    async with AsyncSession(engine) as session:
        result = await session.execute(
            select(MigrationHistory).where(MigrationHistory.status == 'FAILED')
        )
        failed = result.scalars().all()
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

HISTORY_TABLE = 'migration_history'


class Base(AsyncAttrs, DeclarativeBase):
    """
    Base class for the engine's ORM models.

    Kept separate from any application metadata so create_all() only ever
    touches the history table.
    """
    pass


class MigrationHistory(Base):
    """
    One row per (name, version) migration attempt.

    Written only by the orchestrator; read by the status reporter.
    """
    __tablename__ = HISTORY_TABLE

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
        comment="Surrogate row ID"
    )

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Migration name"
    )

    version: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        comment="Migration version"
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="PENDING|RUNNING|COMPLETED|FAILED|SKIPPED"
    )

    error_message: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Error detail (FAILED only)"
    )

    executed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="When the attempt started"
    )

    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="When the attempt reached a terminal state"
    )

    duration_ms: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        comment="completed_at - executed_at in milliseconds"
    )

    __table_args__ = (
        UniqueConstraint('name', 'version', name='uq_migration_history_name_version'),
        Index('idx_migration_history_status', 'status'),
        {'comment': 'Migration execution history'}
    )

    def __repr__(self) -> str:
        return (
            f"<MigrationHistory(name='{self.name}', "
            f"version='{self.version}', status='{self.status}')>"
        )
