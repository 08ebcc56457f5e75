"""PostgreSQL repository adapter for the provider sync log.

Implements ISyncLogRepository over ``provider_order_logs``. Entries are
append-only; retention is handled outside the sync engine.
"""

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from ...api.database import database_connection, database_transaction
from ..domain.entities import SyncLogEntry, SyncLogFilters
from ..domain.ports import ISyncLogRepository

if TYPE_CHECKING:
    import asyncpg

logger = logging.getLogger(__name__)


class PostgresSyncLogRepository(ISyncLogRepository):
    """PostgreSQL implementation of ISyncLogRepository."""

    def __init__(self, pool: "asyncpg.Pool"):
        self.pool = pool

    async def append(self, entry: SyncLogEntry) -> None:
        async with database_transaction(self.pool) as conn:
            await conn.execute(
                """
                INSERT INTO provider_order_logs (
                    order_id, provider_id, action, status,
                    response, error_message, created_at
                ) VALUES ($1, $2, $3, $4, $5, $6, $7)
                """,
                entry.order_id,
                entry.provider_id,
                entry.action.value,
                entry.status.value,
                entry.response,
                entry.error_message,
                entry.created_at,
            )

    async def list_logs(
        self,
        filters: SyncLogFilters,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[dict[str, Any]], int]:
        """Return one page of log rows (newest first) and the total count.

        Each row carries a small order summary (link, status, user) and the
        provider name for the admin listing.
        """
        where, args = self._build_where(filters)
        offset = max(page - 1, 0) * limit

        async with database_connection(self.pool) as conn:
            total = await conn.fetchval(
                f"SELECT COUNT(*) FROM provider_order_logs l {where}",
                *args,
            )
            rows = await conn.fetch(
                f"""
                SELECT l.id, l.order_id, l.provider_id, l.action, l.status,
                       l.response, l.error_message, l.created_at,
                       o.link AS order_link, o.status AS order_status,
                       o.provider_order_id, u.username AS order_username,
                       p.name AS provider_name
                FROM provider_order_logs l
                LEFT JOIN new_orders o ON o.id = l.order_id
                LEFT JOIN users u ON u.id = o.user_id
                LEFT JOIN api_providers p ON p.id = l.provider_id
                {where}
                ORDER BY l.created_at DESC, l.id DESC
                LIMIT ${len(args) + 1} OFFSET ${len(args) + 2}
                """,
                *args,
                limit,
                offset,
            )

        logs = []
        for r in rows:
            row = dict(r)
            logs.append({
                "id": row["id"],
                "order_id": row["order_id"],
                "provider_id": row["provider_id"],
                "action": row["action"],
                "status": row["status"],
                "response": row["response"],
                "error_message": row["error_message"],
                "created_at": row["created_at"],
                "order": {
                    "id": row["order_id"],
                    "link": row.get("order_link"),
                    "status": row.get("order_status"),
                    "provider_order_id": row.get("provider_order_id"),
                    "username": row.get("order_username"),
                },
                "provider": {
                    "id": row["provider_id"],
                    "name": row.get("provider_name"),
                },
            })
        return logs, total or 0

    async def stats_since(self, since: datetime) -> list[dict[str, Any]]:
        async with database_connection(self.pool) as conn:
            rows = await conn.fetch(
                """
                SELECT status, action, COUNT(*) AS count
                FROM provider_order_logs
                WHERE created_at >= $1
                GROUP BY status, action
                ORDER BY status, action
                """,
                since,
            )
        return [
            {"status": r["status"], "action": r["action"], "count": r["count"]}
            for r in rows
        ]

    @staticmethod
    def _build_where(filters: SyncLogFilters) -> tuple[str, list[Any]]:
        clauses: list[str] = []
        args: list[Any] = []

        for column, value in (
            ("l.order_id", filters.order_id),
            ("l.provider_id", filters.provider_id),
            ("l.action", filters.action),
            ("l.status", filters.status),
        ):
            if value is not None:
                args.append(value)
                clauses.append(f"{column} = ${len(args)}")

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        return where, args
