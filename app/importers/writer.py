"""Batched, conflict-safe writes of parsed reference records.

Batches are written strictly one after another. The first failed batch stops
the import; the report then carries the rows committed by earlier batches and
the error, and nothing is retried. The importer also reports how many rows
each dataset table currently holds.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Callable, Sequence

from pydantic import BaseModel

from app.domain.reference_store.repository import (
    TABLE_DMEPOS,
    TABLE_GPCI,
    TABLE_MPFS,
    TABLE_OPPS,
    TABLE_ZIP_LOCALITY,
    ReferenceStore,
)
from app.importers.parsers import dedupe_by_key, dedupe_zip_records
from billing_schemas.reference import (
    DatasetKind,
    DatasetStatus,
    DmeposRecord,
    GpciRecord,
    ImportReport,
    MpfsRecord,
    OppsRecord,
    ZipToLocalityRecord,
)
from config.settings import ImportSettings, get_import_settings
from observability.logging_config import get_logger
from observability.lookup_metrics import LookupMetrics
from observability.timing import timed

logger = get_logger("importers.writer")

ProgressCallback = Callable[[int, int], None]


@dataclass(frozen=True)
class DatasetTarget:
    table: str
    conflict_key: str

    @property
    def key_fields(self) -> tuple[str, ...]:
        return tuple(self.conflict_key.split(","))


DATASET_TARGETS: dict[str, DatasetTarget] = {
    "mpfs": DatasetTarget(TABLE_MPFS, "hcpcs,modifier"),
    "gpci": DatasetTarget(TABLE_GPCI, "locality_num"),
    "zip": DatasetTarget(TABLE_ZIP_LOCALITY, "zip5"),
    "opps": DatasetTarget(TABLE_OPPS, "year,hcpcs"),
    "dmepos": DatasetTarget(TABLE_DMEPOS, "year,hcpcs,modifier,state_abbr"),
}


@dataclass
class ImportOptions:
    """How to write one dataset."""

    dataset: DatasetKind
    batch_size: int | None = None
    on_progress: ProgressCallback | None = None
    duplicates_skipped: int = 0


class ReferenceImporter:
    """Writes parsed records to the reference store in sequential batches."""

    def __init__(self, store: ReferenceStore, settings: ImportSettings | None = None) -> None:
        self._store = store
        self._settings = settings or get_import_settings()

    def default_batch_size(self, dataset: DatasetKind) -> int:
        if dataset == "zip":
            return self._settings.zip_batch_size
        if dataset == "gpci":
            return self._settings.gpci_batch_size
        return self._settings.fee_batch_size

    def _report_progress(self, options: ImportOptions, imported: int, total: int) -> None:
        if options.on_progress is None:
            return
        try:
            options.on_progress(imported, total)
        except Exception as exc:  # noqa: BLE001
            # The batch is already committed; a broken progress display must not hide that
            logger.warning(
                "Import progress callback failed",
                extra={"dataset": options.dataset, "imported": imported, "error": str(exc)},
            )

    async def _count(self, dataset: str, target: DatasetTarget) -> DatasetStatus:
        try:
            count = await self._store.count_exact(target.table)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "Could not count reference table",
                extra={"dataset": dataset, "table": target.table, "error": str(exc)},
            )
            LookupMetrics.record_upstream_error(target.table, "count_exact")
            return DatasetStatus(dataset=dataset, table=target.table, error=str(exc) or type(exc).__name__)
        return DatasetStatus(dataset=dataset, table=target.table, row_count=count)

    async def dataset_status(self) -> list[DatasetStatus]:
        """Row counts for every importable dataset, counted concurrently.

        A table that cannot be counted is reported with ``error`` set.
        """
        return list(
            await asyncio.gather(*(self._count(dataset, target) for dataset, target in DATASET_TARGETS.items()))
        )

    async def import_batch(self, records: Sequence[BaseModel], options: ImportOptions) -> ImportReport:
        """Upsert ``records`` in fixed-size batches keyed by the dataset's natural key.

        ``options.on_progress(imported, total)`` runs after each committed batch.
        An unknown dataset or a negative batch size yields a failed report
        without touching the store.
        """
        total = len(records)
        target = DATASET_TARGETS.get(options.dataset)
        batch_size = options.batch_size or self.default_batch_size(options.dataset)

        problem = None
        if target is None:
            problem = f"Unknown dataset {options.dataset!r}; expected one of {sorted(DATASET_TARGETS)}"
        elif batch_size <= 0:
            problem = f"batch_size must be positive, got {batch_size}"
        if problem is not None:
            logger.error(f"Import not started: {problem}", extra={"dataset": options.dataset})
            return ImportReport(
                dataset=options.dataset,
                success=False,
                total=total,
                duplicates_skipped=options.duplicates_skipped,
                error=problem,
            )

        imported = 0
        batches_written = 0

        with timed("import.dataset", {"dataset": options.dataset}):
            for start in range(0, total, batch_size):
                batch = records[start : start + batch_size]
                rows = [record.model_dump() for record in batch]
                try:
                    await self._store.upsert(target.table, rows, target.conflict_key)
                except Exception as exc:  # noqa: BLE001
                    LookupMetrics.record_import_batch(options.dataset, len(rows), success=False)
                    logger.error(
                        f"Import batch {batches_written + 1} failed; stopping",
                        extra={
                            "dataset": options.dataset,
                            "table": target.table,
                            "imported": imported,
                            "total": total,
                            "error": str(exc),
                        },
                    )
                    return ImportReport(
                        dataset=options.dataset,
                        success=False,
                        imported=imported,
                        total=total,
                        duplicates_skipped=options.duplicates_skipped,
                        batches_written=batches_written,
                        error=str(exc) or type(exc).__name__,
                    )

                imported += len(rows)
                batches_written += 1
                LookupMetrics.record_import_batch(options.dataset, len(rows), success=True)
                self._report_progress(options, imported, total)

        logger.info(
            f"Imported {imported} {options.dataset} rows in {batches_written} batches",
            extra={"dataset": options.dataset, "duplicates_skipped": options.duplicates_skipped},
        )
        return ImportReport(
            dataset=options.dataset,
            success=True,
            imported=imported,
            total=total,
            duplicates_skipped=options.duplicates_skipped,
            batches_written=batches_written,
        )

    async def import_mpfs(
        self, records: Sequence[MpfsRecord], on_progress: ProgressCallback | None = None
    ) -> ImportReport:
        return await self.import_batch(records, ImportOptions("mpfs", on_progress=on_progress))

    async def import_gpci(
        self, records: Sequence[GpciRecord], on_progress: ProgressCallback | None = None
    ) -> ImportReport:
        return await self.import_batch(records, ImportOptions("gpci", on_progress=on_progress))

    async def import_zip_locality(
        self, records: Sequence[ZipToLocalityRecord], on_progress: ProgressCallback | None = None
    ) -> ImportReport:
        """Deduplicate by ZIP5, then write; the report counts dropped duplicates."""
        unique, duplicates = dedupe_zip_records(records)
        if duplicates:
            logger.info(f"Skipped {duplicates} duplicate ZIP rows", extra={"dataset": "zip"})
        return await self.import_batch(
            unique,
            ImportOptions("zip", on_progress=on_progress, duplicates_skipped=duplicates),
        )

    async def _import_keyed(
        self, dataset: DatasetKind, records: Sequence[BaseModel], on_progress: ProgressCallback | None
    ) -> ImportReport:
        unique, duplicates = dedupe_by_key(records, DATASET_TARGETS[dataset].key_fields)
        if duplicates:
            logger.info(f"Collapsed {duplicates} rows sharing a natural key", extra={"dataset": dataset})
        return await self.import_batch(
            unique,
            ImportOptions(dataset, on_progress=on_progress, duplicates_skipped=duplicates),
        )

    async def import_opps(
        self, records: Sequence[OppsRecord], on_progress: ProgressCallback | None = None
    ) -> ImportReport:
        """Write OPPS Addendum B rows keyed by year and code."""
        return await self._import_keyed("opps", records, on_progress)

    async def import_dmepos(
        self, records: Sequence[DmeposRecord], on_progress: ProgressCallback | None = None
    ) -> ImportReport:
        """Write DMEPOS fee rows keyed by year, code, modifier and state."""
        return await self._import_keyed("dmepos", records, on_progress)


__all__ = ["ReferenceImporter", "ImportOptions", "DATASET_TARGETS"]
