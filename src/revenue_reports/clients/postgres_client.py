"""
Postgres client for the revenue reporting pipeline.

Reads the CRM sync tables and writes the enrichment cache and finished
reports, using SQLAlchemy 2.0 async engine + asyncpg with raw SQL.

Tables read:
- deal_rows (one JSONB row per source record, grouped by source)
- team_members (team, owner_id)
- report_exclusions (entity_name)

Tables written:
- enriched_deals (replaced in full on every run)
- report_outputs (UPSERT on report_name)

Both writes of a run share one transaction.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

import structlog
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from tenacity import retry, stop_after_attempt, wait_exponential

from ..errors import wrap_storage_error
from ..models.report import ReportTable

logger = structlog.get_logger(__name__)

SALES_TEAM = 'sales'
CS_TEAM = 'cs'


def _sanitize_url(url: str) -> str:
    """Remove URL query params that asyncpg does not understand.

    Pooler URLs include ``channel_binding=require`` and ``sslmode=require``
    which are libpq parameters. asyncpg rejects unknown connection params.
    """
    _STRIP_PARAMS = {'channel_binding', 'sslmode'}
    parsed = urlparse(url)
    if not parsed.query:
        return url
    params = parse_qs(parsed.query)
    filtered = {k: v for k, v in params.items() if k not in _STRIP_PARAMS}
    new_query = urlencode(filtered, doseq=True)
    return urlunparse(parsed._replace(query=new_query))


def _normalize_driver(url: str) -> str:
    """Rewrite postgres:// and postgresql:// URLs to the asyncpg driver."""
    if url.startswith('postgres://'):
        return url.replace('postgres://', 'postgresql+asyncpg://', 1)
    if url.startswith('postgresql://') and '+asyncpg' not in url:
        return url.replace('postgresql://', 'postgresql+asyncpg://', 1)
    return url


def _load_json(value: Any) -> dict[str, Any]:
    """asyncpg returns JSONB as text unless a codec is registered."""
    if value is None:
        return {}
    if isinstance(value, (str, bytes)):
        return json.loads(value)
    return dict(value)


class PostgresClient:
    """
    Async Postgres client for report inputs and outputs.

    Reads are retried with exponential backoff; writes run in a single
    transaction each and are not retried. Driver failures surface as
    StorageError subclasses.
    """

    def __init__(self, database_url: str | None = None):
        """
        Initialize with a Postgres connection URL.

        Args:
            database_url: Postgres connection URL. If the URL starts with
                          'postgres://' or 'postgresql://', it will be
                          converted to use asyncpg.
        """
        self._engine: AsyncEngine | None = None
        self._database_url = database_url

    async def connect(self, database_url: str | None = None) -> None:
        """
        Create the async engine. Idempotent, no-op if already connected.

        Args:
            database_url: Override the URL from __init__.
        """
        if self._engine is not None:
            return

        url = database_url or self._database_url
        if not url:
            raise ValueError('database_url is required')

        url = _normalize_driver(_sanitize_url(url))

        self._engine = create_async_engine(
            url,
            pool_size=5,
            max_overflow=5,
            pool_pre_ping=True,
            pool_timeout=30,
            connect_args={'prepared_statement_cache_size': 0},
        )
        logger.info('postgres_client.connected')

    async def close(self) -> None:
        """Dispose of the engine and connection pool."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            logger.info('postgres_client.closed')

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError('PostgresClient not connected, call connect() first')
        return self._engine

    async def verify_connectivity(self) -> bool:
        """Return True if we can execute a simple query."""
        try:
            async with self.engine.begin() as conn:
                await conn.execute(text('SELECT 1'))
            return True
        except Exception:
            logger.exception('postgres_client.connectivity_check_failed')
            return False

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
    )
    async def _fetch_all(self, sql: str, parameters: dict[str, Any] | None = None) -> list[Any]:
        try:
            async with self.engine.begin() as conn:
                result = await conn.execute(text(sql), parameters or {})
                return list(result.fetchall())
        except Exception as e:
            logger.warning('postgres_client.query_failed', error=str(e))
            raise wrap_storage_error(e, {'sql': sql.strip().splitlines()[0]}) from e

    # =========================================================================
    # Reads
    # =========================================================================

    async def fetch_deal_rows(self) -> dict[str, list[dict[str, Any]]]:
        """
        Source rows grouped by source name, in stored row order.

        Returns:
            {source: [row dict keyed by the source's own header text]}
        """
        rows = await self._fetch_all(
            """
            SELECT source, row_data
            FROM deal_rows
            ORDER BY source, row_number
            """
        )
        grouped: dict[str, list[dict[str, Any]]] = {}
        for source, row_data in rows:
            grouped.setdefault(source, []).append(_load_json(row_data))
        logger.info(
            'postgres_client.deal_rows_fetched',
            sources=len(grouped),
            rows=sum(len(v) for v in grouped.values()),
        )
        return grouped

    async def fetch_membership(self) -> dict[str, list[str]] | None:
        """
        Owner ids per team.

        Returns:
            {'sales': [...], 'cs': [...]}, or None if the table is empty
        """
        rows = await self._fetch_all(
            """
            SELECT team, owner_id
            FROM team_members
            ORDER BY team, owner_id
            """
        )
        if not rows:
            return None
        members: dict[str, list[str]] = {SALES_TEAM: [], CS_TEAM: []}
        for team, owner_id in rows:
            team_name = str(team).strip().lower()
            if team_name in members and owner_id:
                members[team_name].append(str(owner_id))
            else:
                logger.warning('postgres_client.unknown_team', team=team)
        return members

    async def fetch_exclusions(self) -> list[str]:
        rows = await self._fetch_all(
            """
            SELECT entity_name
            FROM report_exclusions
            ORDER BY entity_name
            """
        )
        return [name for (name,) in rows if name]

    # =========================================================================
    # Writes
    # =========================================================================

    async def persist_run(
        self,
        rows: Iterable[dict[str, Any]],
        name: str,
        table: ReportTable,
    ) -> int:
        """
        Store one run's enrichment cache and report table together.

        The cache is replaced wholesale and the report is UPSERTed under its
        name, all in a single transaction: a failure at any statement leaves
        both tables as they were before the run.

        Args:
            rows: Enriched record rows; each needs deal_id and entity_key
            name: Report name (the variant value)
            table: Finished report table

        Returns:
            Number of cache rows written
        """
        params = [
            {
                'deal_id': row['deal_id'],
                'entity_key': row['entity_key'],
                'payload': json.dumps(row),
            }
            for row in rows
        ]
        report_params = {
            'report_name': name,
            'generated_at': datetime.now(timezone.utc),
            'payload': json.dumps(table.to_dict()),
        }
        try:
            async with self.engine.begin() as conn:
                await conn.execute(text('DELETE FROM enriched_deals'))
                if params:
                    await conn.execute(
                        text("""
                            INSERT INTO enriched_deals (deal_id, entity_key, payload)
                            VALUES (:deal_id, :entity_key, CAST(:payload AS jsonb))
                        """),
                        params,
                    )
                await conn.execute(
                    text("""
                        INSERT INTO report_outputs (report_name, generated_at, payload)
                        VALUES (:report_name, :generated_at, CAST(:payload AS jsonb))
                        ON CONFLICT (report_name) DO UPDATE SET
                            generated_at = EXCLUDED.generated_at,
                            payload = EXCLUDED.payload
                    """),
                    report_params,
                )
        except Exception as e:
            raise wrap_storage_error(
                e, {'tables': ['enriched_deals', 'report_outputs'], 'report_name': name}
            ) from e

        logger.info(
            'postgres_client.run_persisted',
            report_name=name,
            cache_rows=len(params),
            report_rows=table.row_count,
        )
        return len(params)
