"""PostgreSQL repository adapter for order reads and sync updates.

This adapter implements IOrderRepository. Orders live in ``new_orders``;
the provider is reached through the order's service, so every read joins
``services`` to resolve ``provider_id``.
"""

import logging
from typing import TYPE_CHECKING, Any

from ...api.database import database_connection, database_transaction
from ..domain.entities import TERMINAL_STATUSES, Order, OrderUpdate
from ..domain.ports import IOrderRepository

if TYPE_CHECKING:
    import asyncpg

logger = logging.getLogger(__name__)

_ORDER_COLUMNS = """
    o.id, o.status, o.provider_order_id, o.provider_status,
    o.remains, o.start_count, o.charge, o.link, o.qty,
    o.user_id, o.service_id, s.provider_id, o.last_sync_at
"""

# Columns apply_update may write, in a fixed order
_UPDATABLE_COLUMNS = (
    "status",
    "provider_status",
    "remains",
    "start_count",
    "charge",
    "api_response",
    "last_sync_at",
)


class PostgresOrderRepository(IOrderRepository):
    """PostgreSQL implementation of IOrderRepository.

    Reads go through ``database_connection`` and writes through
    ``database_transaction``, so driver failures surface as
    PersistenceError subtypes.
    """

    def __init__(self, pool: "asyncpg.Pool"):
        self.pool = pool

    async def get_orders_by_ids(self, order_ids: list[int]) -> list[Order]:
        if not order_ids:
            return []

        async with database_connection(self.pool) as conn:
            rows = await conn.fetch(
                f"""
                SELECT {_ORDER_COLUMNS}
                FROM new_orders o
                LEFT JOIN services s ON s.id = o.service_id
                WHERE o.id = ANY($1::bigint[])
                ORDER BY o.id
                """,
                order_ids,
            )
        return [self._row_to_order(r) for r in rows]

    async def get_eligible_orders(
        self,
        provider_id: int | None = None,
        limit: int | None = None,
    ) -> list[Order]:
        """Fetch submitted, non-terminal orders, least recently synced first."""
        terminal = [s.value for s in TERMINAL_STATUSES]

        async with database_connection(self.pool) as conn:
            rows = await conn.fetch(
                f"""
                SELECT {_ORDER_COLUMNS}
                FROM new_orders o
                LEFT JOIN services s ON s.id = o.service_id
                WHERE o.provider_order_id IS NOT NULL
                  AND o.status <> ALL($1::text[])
                  AND ($2::int IS NULL OR s.provider_id = $2)
                ORDER BY o.last_sync_at ASC NULLS FIRST, o.id ASC
                LIMIT $3
                """,
                terminal,
                provider_id,
                limit,
            )
        return [self._row_to_order(r) for r in rows]

    async def apply_update(self, update: OrderUpdate) -> None:
        """Write only the fields the update carries, in one transaction."""
        fields = update.changed_fields()
        columns = [c for c in _UPDATABLE_COLUMNS if c in fields]

        assignments = [f"{col} = ${i}" for i, col in enumerate(columns, start=2)]
        assignments.append("updated_at = NOW()")
        values = [fields[c] for c in columns]

        async with database_transaction(self.pool) as conn:
            result = await conn.execute(
                f"UPDATE new_orders SET {', '.join(assignments)} WHERE id = $1",
                update.order_id,
                *values,
            )

        logger.debug(f"Order {update.order_id} updated ({result}): {columns}")

    async def get_order_snapshot(self, order_id: int) -> dict[str, Any] | None:
        async with database_connection(self.pool) as conn:
            row = await conn.fetchrow(
                """
                SELECT o.id, o.user_id, o.service_id, o.link, o.qty, o.price,
                       o.charge, o.status, o.provider_order_id, o.provider_status,
                       o.remains, o.start_count, o.last_sync_at,
                       o.created_at, o.updated_at,
                       u.username AS user_username, u.email AS user_email,
                       s.name AS service_name, s.min_qty, s.max_qty,
                       s.provider_id, p.name AS provider_name
                FROM new_orders o
                LEFT JOIN users u ON u.id = o.user_id
                LEFT JOIN services s ON s.id = o.service_id
                LEFT JOIN api_providers p ON p.id = s.provider_id
                WHERE o.id = $1
                """,
                order_id,
            )
        if row is None:
            return None

        data = dict(row)
        data["user"] = {
            "id": data.get("user_id"),
            "username": data.pop("user_username", None),
            "email": data.pop("user_email", None),
        }
        data["service"] = {
            "id": data.get("service_id"),
            "name": data.pop("service_name", None),
            "min_qty": data.pop("min_qty", None),
            "max_qty": data.pop("max_qty", None),
            "provider_id": data.get("provider_id"),
            "provider_name": data.pop("provider_name", None),
        }
        return data

    async def count_by_provider_status(self) -> list[dict[str, Any]]:
        async with database_connection(self.pool) as conn:
            rows = await conn.fetch(
                """
                SELECT provider_status, COUNT(*) AS count
                FROM new_orders
                WHERE provider_order_id IS NOT NULL
                GROUP BY provider_status
                ORDER BY count DESC
                """
            )
        return [
            {"provider_status": r["provider_status"], "count": r["count"]}
            for r in rows
        ]

    @staticmethod
    def _row_to_order(row: Any) -> Order:
        return Order(
            id=row["id"],
            status=row["status"],
            provider_order_id=row["provider_order_id"],
            provider_status=row["provider_status"],
            remains=row["remains"],
            start_count=row["start_count"],
            charge=row["charge"],
            link=row["link"],
            qty=row["qty"],
            user_id=row["user_id"],
            service_id=row["service_id"],
            provider_id=row["provider_id"],
            last_sync_at=row["last_sync_at"],
        )
