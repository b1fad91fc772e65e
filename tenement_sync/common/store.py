"""Canonical store schema and data source bookkeeping (SQLAlchemy Core)."""

from __future__ import annotations

from datetime import date
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Engine,
    Float,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    func,
    select,
    update,
)
from sqlalchemy.dialects import postgresql, sqlite

from tenement_sync.common.errors import ConfigurationError
from tenement_sync.common.models import DataSourceConfig, Jurisdiction, SyncStatus
from tenement_sync.common.time_utils import utc_now

metadata = MetaData()

tenements = Table(
    "tenements",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("jurisdiction", String(8), nullable=False),
    Column("number", String(64), nullable=False),
    Column("type", String(128), nullable=False),
    Column("status", String(64), nullable=False),
    Column("holder_name", Text),
    Column("application_date", Date),
    Column("grant_date", Date),
    Column("expiry_date", Date),
    Column("anniversary_date", Date),
    Column("markout_date", Date),
    Column("area_ha", Float),
    Column("section29_flag", Boolean, nullable=False, default=False),
    Column("geometry", JSON),
    Column("last_sync_at", DateTime(timezone=True), nullable=False),
    UniqueConstraint("jurisdiction", "number", name="uq_tenements_jurisdiction_number"),
)

data_sources = Table(
    "data_sources",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(128), nullable=False),
    Column("jurisdiction", String(8), nullable=False),
    Column("endpoint", Text, nullable=False),
    Column("format", String(32), nullable=False),
    Column("sync_status", String(16), nullable=False, default=SyncStatus.PENDING.value),
    Column("is_enabled", Boolean, nullable=False, default=True),
    Column("last_sync_attempt", DateTime(timezone=True)),
    Column("last_sync_success", DateTime(timezone=True)),
    Column("last_error", Text),
    Column("record_count", Integer),
    Column("health_status", String(16)),
    Column("last_health_check", DateTime(timezone=True)),
    UniqueConstraint("jurisdiction", "name", name="uq_data_sources_jurisdiction_name"),
)

TENEMENT_KEY = ("jurisdiction", "number")


def create_store_engine(database_url: str) -> Engine:
    if database_url.startswith("sqlite"):
        return create_engine(database_url, connect_args={"check_same_thread": False})
    return create_engine(database_url, pool_pre_ping=True)


def init_schema(engine: Engine) -> None:
    metadata.create_all(engine)


def dialect_insert(engine: Engine, table: Table):
    """Dialect-specific INSERT supporting ON CONFLICT clauses."""
    name = engine.dialect.name
    if name == "postgresql":
        return postgresql.insert(table)
    if name == "sqlite":
        return sqlite.insert(table)
    raise ConfigurationError(f"Unsupported database dialect for upserts: {name}")


def as_date(value: str | None) -> date | None:
    if not value:
        return None
    return date.fromisoformat(value)


def _row_to_source(row: Any) -> DataSourceConfig:
    return DataSourceConfig(
        id=row.id,
        name=row.name,
        jurisdiction=Jurisdiction.parse(row.jurisdiction),
        endpoint=row.endpoint,
        format=row.format,
        sync_status=row.sync_status,
        is_enabled=bool(row.is_enabled),
        last_sync_attempt=row.last_sync_attempt,
        last_sync_success=row.last_sync_success,
        last_error=row.last_error,
        record_count=row.record_count,
        health_status=row.health_status,
        last_health_check=row.last_health_check,
    )


def seed_data_sources(engine: Engine, sources: dict[Jurisdiction, dict]) -> int:
    """Insert configured sources missing from the store. Existing rows keep their sync history."""
    created = 0
    with engine.begin() as conn:
        for jurisdiction, cfg in sources.items():
            values = {
                "name": cfg["name"],
                "jurisdiction": jurisdiction.value,
                "endpoint": cfg["endpoint"],
                "format": cfg["format"],
                "is_enabled": bool(cfg.get("enabled", True)),
            }
            stmt = (
                dialect_insert(engine, data_sources)
                .values(sync_status=SyncStatus.PENDING.value, **values)
                .on_conflict_do_update(
                    index_elements=["jurisdiction", "name"],
                    set_={"endpoint": values["endpoint"], "format": values["format"], "is_enabled": values["is_enabled"]},
                )
            )
            existing = conn.execute(
                select(data_sources.c.id).where(
                    data_sources.c.jurisdiction == jurisdiction.value,
                    data_sources.c.name == cfg["name"],
                )
            ).first()
            conn.execute(stmt)
            if existing is None:
                created += 1
    return created


def list_enabled_sources(engine: Engine) -> list[DataSourceConfig]:
    query = (
        select(data_sources)
        .where(data_sources.c.is_enabled.is_(True))
        .order_by(data_sources.c.jurisdiction, data_sources.c.name)
    )
    with engine.connect() as conn:
        return [_row_to_source(row) for row in conn.execute(query)]


def get_enabled_source(engine: Engine, jurisdiction: Jurisdiction) -> DataSourceConfig:
    query = (
        select(data_sources)
        .where(
            data_sources.c.jurisdiction == jurisdiction.value,
            data_sources.c.is_enabled.is_(True),
        )
        .order_by(data_sources.c.id)
    )
    with engine.connect() as conn:
        row = conn.execute(query).first()
    if row is None:
        raise ConfigurationError(f"No enabled data source found for jurisdiction: {jurisdiction.value}")
    return _row_to_source(row)


def mark_sync_running(engine: Engine, source_id: int) -> None:
    _update_source(
        engine,
        source_id,
        sync_status=SyncStatus.RUNNING.value,
        last_sync_attempt=utc_now(),
    )


def mark_sync_success(engine: Engine, source_id: int, record_count: int, last_error: str | None = None) -> None:
    _update_source(
        engine,
        source_id,
        sync_status=SyncStatus.SUCCESS.value,
        last_sync_success=utc_now(),
        record_count=record_count,
        last_error=last_error,
    )


def mark_sync_error(engine: Engine, source_id: int, message: str) -> None:
    _update_source(engine, source_id, sync_status=SyncStatus.ERROR.value, last_error=message)


def record_health(engine: Engine, source_id: int, status: str, error: str | None) -> None:
    """Only an unhealthy probe overwrites last_error."""
    values: dict[str, Any] = {"health_status": status, "last_health_check": utc_now()}
    if error is not None:
        values["last_error"] = error
    _update_source(engine, source_id, **values)


def _update_source(engine: Engine, source_id: int, **values: Any) -> None:
    with engine.begin() as conn:
        conn.execute(update(data_sources).where(data_sources.c.id == source_id).values(**values))


def count_by_jurisdiction(engine: Engine) -> dict[str, int]:
    query = (
        select(tenements.c.jurisdiction, func.count())
        .group_by(tenements.c.jurisdiction)
        .order_by(tenements.c.jurisdiction)
    )
    with engine.connect() as conn:
        return {jurisdiction: int(count) for jurisdiction, count in conn.execute(query)}
