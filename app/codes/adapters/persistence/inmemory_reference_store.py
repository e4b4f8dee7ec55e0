"""In-memory implementation of the ReferenceStore interface.

Rows are kept per table as plain dicts in insertion order. Suitable for
development, tests and single-instance deployments that seed their data at
startup; production deployments use ``SupabaseReferenceStore``.
"""

from __future__ import annotations

from typing import Any, Mapping, Sequence

from app.domain.reference_store.repository import DescriptionRow, ReferenceStore


def _split_conflict_key(conflict_key: str) -> tuple[str, ...]:
    return tuple(part.strip() for part in conflict_key.split(",") if part.strip())


def _matches_filters(row: Mapping[str, Any], filters: Mapping[str, Any] | None) -> bool:
    if not filters:
        return True
    # Compared as text, the way PostgREST compares query-string filters
    return all(str(row.get(column)) == str(value) for column, value in filters.items())


class InMemoryReferenceStore(ReferenceStore):
    """Dict-backed reference store.

    Thread-safety: This implementation is NOT thread-safe. It is meant to be
    used from a single event loop.
    """

    def __init__(self, tables: Mapping[str, Sequence[Mapping[str, Any]]] | None = None):
        self._tables: dict[str, list[dict[str, Any]]] = {}
        for table, rows in (tables or {}).items():
            self._tables[table] = [dict(row) for row in rows]

    def rows(self, table: str) -> list[dict[str, Any]]:
        """Return a copy of every row in ``table``."""
        return [dict(row) for row in self._tables.get(table, [])]

    async def count_exact(self, table: str) -> int:
        return len(self._tables.get(table, []))

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
        needle = (token or "").lower()
        results: list[DescriptionRow] = []
        if not needle or limit <= 0:
            return results

        for row in self._tables.get(table, []):
            if not _matches_filters(row, filters):
                continue
            texts = [str(row.get(column) or "") for column in description_columns]
            if not any(needle in text.lower() for text in texts):
                continue
            description = next((text for text in texts if text), "")
            results.append(DescriptionRow(code=str(row.get(code_column) or ""), description=description))
            if len(results) >= limit:
                break
        return results

    async def find_by_exact_key(
        self,
        table: str,
        column: str,
        value: Any,
    ) -> dict[str, Any] | None:
        for row in self._tables.get(table, []):
            if row.get(column) == value:
                return dict(row)
        return None

    async def upsert(self, table: str, rows: Sequence[Mapping[str, Any]], conflict_key: str) -> None:
        key_columns = _split_conflict_key(conflict_key)
        existing = self._tables.setdefault(table, [])
        positions = {tuple(row.get(c) for c in key_columns): i for i, row in enumerate(existing)}

        for row in rows:
            key = tuple(row.get(c) for c in key_columns)
            if key in positions:
                existing[positions[key]] = dict(row)
            else:
                positions[key] = len(existing)
                existing.append(dict(row))
