"""Port interface for the reference dataset store.

The resolver, the location inferencer and the bulk importer all talk to the
same tabular store: fee-schedule benchmarks, GPCI localities and the
ZIP-to-locality crosswalk. Adapters implement this interface for a specific
backend (in-memory for tests and local runs, Supabase/PostgreSQL in
production).

Read operations raise ``UpstreamUnavailableError`` when the backend fails;
``upsert`` raises ``PersistenceError``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Mapping, Sequence


# Table names - centralized for consistency
TABLE_MPFS = "mpfs_benchmarks"
TABLE_GPCI = "gpci_localities"
TABLE_ZIP_LOCALITY = "zip_to_locality"
TABLE_OPPS = "opps_addendum_b"
TABLE_DMEPOS = "dmepos_fee_schedule"


@dataclass(frozen=True)
class DescriptionRow:
    """A code and its description as returned by a description search."""

    code: str
    description: str


class ReferenceStore(ABC):
    """Repository interface for reference datasets."""

    @abstractmethod
    async def count_exact(self, table: str) -> int:
        """Return the exact number of rows in ``table``."""
        ...

    @abstractmethod
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
        """Find rows whose description contains ``token`` (case-insensitive).

        Args:
            table: Table to search
            token: Substring to look for
            filters: Column equality filters applied before matching
            limit: Maximum number of rows returned
            code_column: Column holding the code
            description_columns: Columns searched; the first non-empty one is
                returned as the description

        Returns:
            Matching rows in store order (empty if none found)
        """
        ...

    @abstractmethod
    async def find_by_exact_key(
        self,
        table: str,
        column: str,
        value: Any,
    ) -> dict[str, Any] | None:
        """Return the first row where ``column`` equals ``value``, or None."""
        ...

    @abstractmethod
    async def upsert(self, table: str, rows: Sequence[Mapping[str, Any]], conflict_key: str) -> None:
        """Insert or replace ``rows`` keyed on the comma-separated ``conflict_key`` columns.

        Raises:
            PersistenceError: If the write fails
        """
        ...
