from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, bindparam, text

from app.application.ports.cache_store_port import SyncStatusStorePort
from app.domain.entities.sync import SyncStatus
from app.infrastructure.db.mappers.cache_mapper import as_utc, map_row_to_sync_status


class SqlSyncStatusRepository(SyncStatusStorePort):
    def __init__(self, engine):
        self._engine = engine

    def get_status(self, *, chain: str, pool_address: str, sync_type: str) -> SyncStatus | None:
        sql = text(
            """
            SELECT chain, pool_address, sync_type, last_block, updated_at
            FROM sync_status
            WHERE chain = :chain
              AND pool_address = :pool_address
              AND sync_type = :sync_type
            """
        ).columns(updated_at=DateTime(timezone=True))
        with self._engine.connect() as conn:
            row = conn.execute(
                sql,
                {"chain": chain, "pool_address": pool_address.lower(), "sync_type": sync_type},
            ).mappings().first()
        return map_row_to_sync_status(row) if row is not None else None

    def save_status(
        self,
        *,
        chain: str,
        pool_address: str,
        sync_type: str,
        last_block: int | None,
        updated_at: datetime,
    ) -> None:
        sql = text(
            """
            INSERT INTO sync_status (chain, pool_address, sync_type, last_block, updated_at)
            VALUES (:chain, :pool_address, :sync_type, :last_block, :updated_at)
            ON CONFLICT (chain, pool_address, sync_type)
            DO UPDATE SET
                last_block = EXCLUDED.last_block,
                updated_at = EXCLUDED.updated_at
            """
        ).bindparams(bindparam("updated_at", type_=DateTime(timezone=True)))
        with self._engine.begin() as conn:
            conn.execute(
                sql,
                {
                    "chain": chain,
                    "pool_address": pool_address.lower(),
                    "sync_type": sync_type,
                    "last_block": last_block,
                    "updated_at": as_utc(updated_at),
                },
            )
