"""Supabase/PostgreSQL implementation of the ReferenceStore interface.

Required Tables:
-----------------

1. mpfs_benchmarks
   - hcpcs, modifier: TEXT (unique together)
   - description: TEXT
   - year: INT, qp_status: TEXT
   - RVU and fee columns: NUMERIC

2. gpci_localities
   - locality_num: TEXT (unique)
   - state_abbr, locality_name: TEXT
   - work_gpci, pe_gpci, mp_gpci: NUMERIC

3. zip_to_locality
   - zip5: TEXT (unique)
   - state_abbr, locality_num, carrier_num: TEXT
   - effective_year: INT

4. opps_addendum_b / dmepos_fee_schedule (optional description sources)

Environment Variables:
----------------------
- SUPABASE_URL: The Supabase project URL
- SUPABASE_SERVICE_ROLE_KEY: The service role key for server-side access
- REFSTORE_TIMEOUT_S: Per-call timeout in seconds

supabase-py is synchronous, so each call runs on the default executor and is
bounded by ``asyncio.wait_for``.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Mapping, Sequence

from app.common.exceptions import PersistenceError, UpstreamUnavailableError
from app.domain.reference_store.repository import DescriptionRow, ReferenceStore
from config.settings import ReferenceStoreSettings, get_reference_store_settings
from observability.logging_config import get_logger
from observability.lookup_metrics import LookupMetrics

logger = get_logger("supabase_reference_store")


class SupabaseClient:
    """Thin wrapper around supabase-py client.

    Provides connection management and error handling.
    """

    def __init__(self, url: str | None = None, key: str | None = None):
        """Initialize Supabase client.

        Raises:
            PersistenceError: If required credentials are missing.
        """
        self._url = url or ""
        self._key = key or ""

        if not self._url or not self._key:
            raise PersistenceError(
                "Supabase credentials not configured. "
                "Set SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY environment variables.",
                operation="init",
            )

        self._client = None

    @property
    def client(self):
        """Lazy-initialize and return the Supabase client."""
        if self._client is None:
            from supabase import create_client

            try:
                self._client = create_client(self._url, self._key)
                logger.info("Supabase client initialized")
            except Exception as e:
                raise PersistenceError(
                    f"Failed to create Supabase client: {e}",
                    operation="init",
                )
        return self._client

    def table(self, name: str):
        """Get a table reference."""
        return self.client.table(name)


class SupabaseReferenceStore(ReferenceStore):
    """Supabase/PostgreSQL implementation of ReferenceStore."""

    def __init__(
        self,
        url: str | None = None,
        key: str | None = None,
        settings: ReferenceStoreSettings | None = None,
    ):
        settings = settings or get_reference_store_settings()
        self._supabase = SupabaseClient(url or settings.supabase_url, key or settings.supabase_key)
        self._timeout_s = settings.timeout_s

    async def _run(self, func: Callable[[], Any]) -> Any:
        loop = asyncio.get_running_loop()
        return await asyncio.wait_for(loop.run_in_executor(None, func), timeout=self._timeout_s)

    def _handle_error(self, operation: str, table: str, error: Exception, *, read: bool = True) -> None:
        """Convert Supabase errors to store errors."""
        logger.error(
            f"Supabase error during {operation}",
            extra={"table": table, "error": str(error) or type(error).__name__},
        )
        LookupMetrics.record_upstream_error(table, operation)
        error_cls = UpstreamUnavailableError if read else PersistenceError
        raise error_cls(
            f"Database error during {operation} on {table}: {error or type(error).__name__}",
            operation=operation,
            table=table,
        ) from error

    async def count_exact(self, table: str) -> int:
        def _query():
            return self._supabase.table(table).select("*", count="exact").limit(1).execute()

        try:
            response = await self._run(_query)
            return response.count if response.count is not None else len(response.data)
        except PersistenceError:
            raise
        except Exception as e:
            self._handle_error("count_exact", table, e)
            return 0  # unreachable

    async def find_by_description_substring(
        self,
        table: str,
        token: str,
        *,
        filters: Mapping[str, Any] | None = None,
        limit: int = 20,
        code_column: str = "hcpcs",
        description_columns: Sequence[str] = ("description",),
    ) -> list[DescriptionRow]:
        columns = ",".join([code_column, *description_columns])
        pattern = f"%{token}%"

        def _query():
            query = self._supabase.table(table).select(columns)
            for column, value in (filters or {}).items():
                query = query.eq(column, value)
            if len(description_columns) == 1:
                query = query.ilike(description_columns[0], pattern)
            else:
                query = query.or_(",".join(f"{c}.ilike.{pattern}" for c in description_columns))
            return query.limit(limit).execute()

        try:
            response = await self._run(_query)
        except PersistenceError:
            raise
        except Exception as e:
            self._handle_error("find_by_description_substring", table, e)
            return []  # unreachable

        rows: list[DescriptionRow] = []
        for row in response.data or []:
            description = next(
                (str(row[c]) for c in description_columns if row.get(c)),
                "",
            )
            rows.append(DescriptionRow(code=str(row.get(code_column) or ""), description=description))
        return rows

    async def find_by_exact_key(
        self,
        table: str,
        column: str,
        value: Any,
    ) -> dict[str, Any] | None:
        def _query():
            return self._supabase.table(table).select("*").eq(column, value).limit(1).execute()

        try:
            response = await self._run(_query)
            return response.data[0] if response.data else None
        except PersistenceError:
            raise
        except Exception as e:
            self._handle_error("find_by_exact_key", table, e)
            return None  # unreachable

    async def upsert(self, table: str, rows: Sequence[Mapping[str, Any]], conflict_key: str) -> None:
        if not rows:
            return
        payload = [dict(row) for row in rows]

        def _write():
            return (
                self._supabase.table(table)
                .upsert(payload, on_conflict=conflict_key, ignore_duplicates=False)
                .execute()
            )

        try:
            await self._run(_write)
            logger.debug(f"Upserted {len(payload)} rows", extra={"table": table})
        except PersistenceError:
            raise
        except Exception as e:
            self._handle_error("upsert", table, e, read=False)
