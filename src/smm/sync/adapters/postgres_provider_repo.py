"""PostgreSQL repository adapter for provider configuration.

Providers are read-only to the sync engine. The field-name mapping is
stored as plain columns on ``api_providers`` and folded into a
ProviderApiSpec here.
"""

import logging
from typing import TYPE_CHECKING, Any

from ...api.database import database_connection
from ..domain.entities import Provider, ProviderApiSpec
from ..domain.ports import IProviderRepository

if TYPE_CHECKING:
    import asyncpg

logger = logging.getLogger(__name__)

_SPEC_COLUMNS = tuple(ProviderApiSpec.__dataclass_fields__)


class PostgresProviderRepository(IProviderRepository):
    """PostgreSQL implementation of IProviderRepository."""

    def __init__(self, pool: "asyncpg.Pool", default_timeout: int = 30):
        self.pool = pool
        self.default_timeout = default_timeout

    async def get_providers(self, provider_ids: list[int]) -> dict[int, Provider]:
        if not provider_ids:
            return {}

        async with database_connection(self.pool) as conn:
            rows = await conn.fetch(
                f"""
                SELECT id, name, api_url, api_key, http_method, status,
                       timeout_seconds, {', '.join(_SPEC_COLUMNS)}
                FROM api_providers
                WHERE id = ANY($1::int[])
                """,
                list(set(provider_ids)),
            )
        return {r["id"]: self._row_to_provider(r) for r in rows}

    def _row_to_provider(self, row: Any) -> Provider:
        data = dict(row)
        return Provider(
            id=data["id"],
            name=data.get("name") or "",
            api_url=data.get("api_url") or "",
            api_key=data.get("api_key") or "",
            http_method=(data.get("http_method") or "POST").upper(),
            status=data.get("status") or "inactive",
            timeout_seconds=data.get("timeout_seconds") or self.default_timeout,
            api_spec=ProviderApiSpec.from_mapping(
                {k: data.get(k) for k in _SPEC_COLUMNS}
            ),
        )
