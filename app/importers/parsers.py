"""Row parsers for CMS reference spreadsheets.

Each parser takes an already-read 2-D grid of cell values and returns typed
records, skipping rows that lack their required key fields. MPFS, GPCI and
ZIP files carry their header in the first row; OPPS and DMEPOS files have a
title block above it. Column layouts are declared as tables rather than read
ad hoc, so a layout change touches one list.

Codes and other identifiers are always handled as text; only the RVU, fee,
payment, GPCI and year columns are converted to numbers.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Sequence

from pydantic import BaseModel

from app.codes.normalizer import normalize_code
from app.common.exceptions import ImportParseError
from app.location.zip_prefixes import US_STATE_SET
from billing_schemas.reference import DmeposRecord, GpciRecord, MpfsRecord, OppsRecord, ZipToLocalityRecord
from config.settings import ImportSettings, get_import_settings
from observability.logging_config import get_logger

logger = get_logger("importers.parsers")

Row = Sequence[Any]

_NON_DIGIT = re.compile(r"[^0-9]")
_MISSING_NUMBER_MARKERS = frozenset({"", "not found"})


def parse_string(value: Any) -> str | None:
    """Trimmed text for a cell, or None for empty cells."""
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return None
    text = str(value).strip()
    return text or None


def parse_number(value: Any) -> float | None:
    """Float for a numeric cell; None for empty, ``not found`` or non-numeric cells."""
    if value is None:
        return None
    if isinstance(value, str) and value.strip().lower() in _MISSING_NUMBER_MARKERS:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(number) else number


def parse_int(value: Any) -> int | None:
    number = parse_number(value)
    return int(number) if number is not None else None


def _cell(row: Row, index: int) -> Any:
    return row[index] if 0 <= index < len(row) else None


@dataclass(frozen=True)
class ColumnSpec:
    """Maps one positional column to a record field."""

    field: str
    index: int
    parse: Callable[[Any], Any] = parse_string


MPFS_COLUMNS: tuple[ColumnSpec, ...] = (
    ColumnSpec("hcpcs", 0, normalize_code),
    ColumnSpec("modifier", 1),
    ColumnSpec("description", 2),
    ColumnSpec("status", 3),
    ColumnSpec("work_rvu", 4, parse_number),
    ColumnSpec("nonfac_pe_rvu", 5, parse_number),
    ColumnSpec("fac_pe_rvu", 6, parse_number),
    ColumnSpec("mp_rvu", 7, parse_number),
    ColumnSpec("nonfac_fee", 8, parse_number),
    ColumnSpec("fac_fee", 9, parse_number),
    ColumnSpec("pctc", 10),
    ColumnSpec("global_days", 11),
    ColumnSpec("mult_surgery_indicator", 12),
    ColumnSpec("conversion_factor", 13, parse_number),
    ColumnSpec("year", 14, parse_int),
    ColumnSpec("qp_status", 15),
    ColumnSpec("source", 16),
)
MPFS_REQUIRED = ("hcpcs",)

GPCI_COLUMNS: tuple[ColumnSpec, ...] = (
    ColumnSpec("locality_num", 0),
    ColumnSpec("state_abbr", 1),
    ColumnSpec("locality_name", 2),
    ColumnSpec("zip_code", 3),
    ColumnSpec("work_gpci", 4, parse_number),
    ColumnSpec("pe_gpci", 5, parse_number),
    ColumnSpec("mp_gpci", 6, parse_number),
)
GPCI_REQUIRED = ("locality_num", "state_abbr", "locality_name", "work_gpci", "pe_gpci", "mp_gpci")


def _map_row(row: Row, columns: Iterable[ColumnSpec]) -> dict[str, Any]:
    return {spec.field: spec.parse(_cell(row, spec.index)) for spec in columns}


def _has_required(values: dict[str, Any], required: Iterable[str]) -> bool:
    return all(values.get(name) not in (None, "") for name in required)


def _data_rows(data: Sequence[Row]) -> Iterable[Row]:
    # Header row is skipped; blank rows are ignored
    for row in data[1:]:
        if row is not None and len(row) > 0:
            yield row


def parse_mpfs_rows(data: Sequence[Row], settings: ImportSettings | None = None) -> list[MpfsRecord]:
    """Parse physician fee schedule rows (17 positional columns)."""
    settings = settings or get_import_settings()
    records: list[MpfsRecord] = []
    for row in _data_rows(data):
        values = _map_row(row, MPFS_COLUMNS)
        if not _has_required(values, MPFS_REQUIRED):
            continue
        if values["conversion_factor"] is None:
            values["conversion_factor"] = settings.default_conversion_factor
        if values["year"] is None:
            values["year"] = settings.default_year
        records.append(MpfsRecord(**values))
    return records


def parse_gpci_rows(data: Sequence[Row]) -> list[GpciRecord]:
    """Parse GPCI locality rows; rows missing any of the three indices are skipped."""
    records: list[GpciRecord] = []
    for row in _data_rows(data):
        values = _map_row(row, GPCI_COLUMNS)
        if _has_required(values, GPCI_REQUIRED):
            records.append(GpciRecord(**values))
    return records


@dataclass(frozen=True)
class ZipHeaderLayout:
    """Column positions found in a ZIP crosswalk header (-1 when absent)."""

    state: int
    zip: int
    carrier: int
    locality: int
    year: int


def locate_zip_columns(header: Row) -> ZipHeaderLayout:
    labels = [str(h).strip().upper() if h is not None else "" for h in header]

    def find(predicate: Callable[[str], bool]) -> int:
        return next((i for i, label in enumerate(labels) if predicate(label)), -1)

    return ZipHeaderLayout(
        state=find(lambda h: "STATE" in h),
        zip=find(lambda h: "ZIP" in h),
        carrier=find(lambda h: "CARRIER" in h),
        locality=find(lambda h: h == "LOCALITY"),
        year=find(lambda h: "YEAR" in h),
    )


def normalize_zip5(value: Any) -> str | None:
    """Digits only, left-padded to five, truncated to five (ZIP+4 keeps its ZIP5)."""
    raw = parse_string(value)
    if not raw:
        return None
    digits = _NON_DIGIT.sub("", raw)
    if not digits:
        return None
    return digits.rjust(5, "0")[:5]


def parse_year_quarter(value: Any) -> int | None:
    """``20261`` (year + quarter) -> 2026."""
    text = parse_string(value)
    if not text or len(text) < 4 or not text[:4].isdigit():
        return None
    return int(text[:4])


def parse_zip_locality_rows(
    data: Sequence[Row],
    *,
    strict: bool = False,
    settings: ImportSettings | None = None,
) -> list[ZipToLocalityRecord]:
    """Parse the CMS ZIP5 crosswalk, locating columns from the header row.

    Raises:
        ImportParseError: When ``strict`` and the header lacks ZIP or LOCALITY.
            Otherwise the problem is logged and no records are returned.
    """
    settings = settings or get_import_settings()
    if not data or data[0] is None:
        return []

    layout = locate_zip_columns(data[0])
    if layout.zip == -1 or layout.locality == -1:
        error = ImportParseError(
            f"Required columns (ZIP, LOCALITY) not found in header: {list(data[0])}"
        )
        if strict:
            raise error
        logger.error(str(error))
        return []

    records: list[ZipToLocalityRecord] = []
    for row in _data_rows(data):
        zip5 = normalize_zip5(_cell(row, layout.zip))
        locality_num = parse_string(_cell(row, layout.locality))
        if not zip5 or not locality_num:
            continue
        records.append(
            ZipToLocalityRecord(
                zip5=zip5,
                state_abbr=parse_string(_cell(row, layout.state)),
                locality_num=locality_num,
                carrier_num=parse_string(_cell(row, layout.carrier)),
                effective_year=parse_year_quarter(_cell(row, layout.year)),
                source=settings.zip_source_label,
            )
        )
    return records


def dedupe_zip_records(records: Iterable[ZipToLocalityRecord]) -> tuple[list[ZipToLocalityRecord], int]:
    """Keep one record per ZIP5.

    A later row replaces the kept one only when its effective year is strictly
    higher; on ties or a missing year the first row seen wins. Output keeps
    first-seen ZIP order.

    Returns:
        (unique records, number of duplicate rows dropped)
    """
    kept: dict[str, ZipToLocalityRecord] = {}
    duplicates = 0
    for record in records:
        existing = kept.get(record.zip5)
        if existing is None:
            kept[record.zip5] = record
            continue
        duplicates += 1
        if record.effective_year is not None and (
            existing.effective_year is None or record.effective_year > existing.effective_year
        ):
            kept[record.zip5] = record
    return list(kept.values()), duplicates


# ----------------------------------------------------------------------
# OPPS Addendum B and DMEPOS fee schedule
#
# Both files open with a title block; the header row is the first one
# carrying an HCPCS label, and columns are found by their labels.
# ----------------------------------------------------------------------


def parse_amount(value: Any) -> float | None:
    """Dollar amounts: ``$1,234.50`` -> 1234.5; empty or ``-`` -> None."""
    if isinstance(value, str):
        value = value.replace("$", "").replace(",", "").strip()
        if value == "-":
            return None
    return parse_number(value)


def parse_fee(value: Any) -> float | None:
    """Like ``parse_amount``, but a zero fee means no fee is published."""
    return parse_amount(value) or None


def parse_hcpcs(value: Any) -> str | None:
    """Canonical code text, or None when shorter than four characters."""
    code = normalize_code(value)
    return code if len(code) >= 4 else None


@dataclass(frozen=True)
class HeaderColumn:
    """Maps the first header cell whose label satisfies ``matches`` to a record field."""

    field: str
    matches: Callable[[str], bool]
    parse: Callable[[Any], Any] = parse_string


OPPS_COLUMNS: tuple[HeaderColumn, ...] = (
    # "HCPCS Code"; title rows that merely mention HCPCS do not start with it
    HeaderColumn("hcpcs", lambda h: h.startswith("HCPCS"), parse_hcpcs),
    HeaderColumn("short_desc", lambda h: "SHORT DESC" in h),
    HeaderColumn("status_indicator", lambda h: h in ("SI", "STATUS INDICATOR")),
    HeaderColumn("apc", lambda h: h == "APC"),
    HeaderColumn("relative_weight", lambda h: h == "RELATIVE WEIGHT", parse_amount),
    HeaderColumn("payment_rate", lambda h: h == "PAYMENT RATE", parse_amount),
    HeaderColumn("national_unadjusted_copayment", lambda h: "NATIONAL" in h and "COPAY" in h, parse_amount),
    HeaderColumn("minimum_unadjusted_copayment", lambda h: "MINIMUM" in h and "COPAY" in h, parse_amount),
)

DMEPOS_COLUMNS: tuple[HeaderColumn, ...] = (
    HeaderColumn("hcpcs", lambda h: h == "HCPCS", parse_hcpcs),
    HeaderColumn("modifier", lambda h: h in ("MOD", "MODIFIER")),
    HeaderColumn("modifier2", lambda h: h == "MOD2"),
    HeaderColumn("jurisdiction", lambda h: h in ("JURIS", "JURISDICTION")),
    HeaderColumn("category", lambda h: h in ("CATG", "CATEGORY")),
    HeaderColumn("ceiling", lambda h: h == "CEILING", parse_fee),
    HeaderColumn("floor", lambda h: h == "FLOOR", parse_fee),
    HeaderColumn("short_desc", lambda h: h in ("DESCRIPTION", "DESC")),
)

# "CA (NR)" is the purchase fee, "CA (R)" the rental fee
_DMEPOS_STATE_COLUMN = re.compile(r"([A-Z]{2})\s*\((NR|R)\)", re.ASCII)
DMEPOS_STATES = US_STATE_SET | {"PR", "VI"}


def _header_labels(row: Row) -> list[str]:
    # Only text cells can be labels
    return [cell.strip().upper() if isinstance(cell, str) else "" for cell in row]


def find_header_row(
    data: Sequence[Row],
    is_key_label: Callable[[str], bool],
    search_rows: int,
) -> tuple[int, list[str]] | None:
    """Index and labels of the first row (within ``search_rows``) holding a key label."""
    for index, row in enumerate(data[:search_rows]):
        if not row:
            continue
        labels = _header_labels(row)
        if any(is_key_label(label) for label in labels):
            return index, labels
    return None


def locate_header_columns(labels: Sequence[str], columns: Iterable[HeaderColumn]) -> dict[str, int]:
    located: dict[str, int] = {}
    for spec in columns:
        index = next((i for i, label in enumerate(labels) if label and spec.matches(label)), -1)
        if index >= 0:
            located[spec.field] = index
    return located


def _map_located(row: Row, columns: Iterable[HeaderColumn], located: dict[str, int]) -> dict[str, Any]:
    return {spec.field: spec.parse(_cell(row, located.get(spec.field, -1))) for spec in columns}


def _locate_or_fail(
    data: Sequence[Row],
    columns: tuple[HeaderColumn, ...],
    dataset: str,
    strict: bool,
    settings: ImportSettings,
) -> tuple[int, list[str], dict[str, int]] | None:
    key_label = columns[0].matches
    header = find_header_row(data, key_label, settings.header_search_rows)
    located = locate_header_columns(header[1], columns) if header else {}
    if header is None or "hcpcs" not in located:
        error = ImportParseError(
            f"No HCPCS header found in the first {settings.header_search_rows} rows of the {dataset} file"
        )
        if strict:
            raise error
        logger.error(str(error))
        return None
    return header[0], header[1], located


def parse_opps_rows(
    data: Sequence[Row],
    *,
    year: int | None = None,
    strict: bool = False,
    settings: ImportSettings | None = None,
) -> list[OppsRecord]:
    """Parse OPPS Addendum B rows found below its HCPCS header.

    Raises:
        ImportParseError: When ``strict`` and no header row is found.
    """
    settings = settings or get_import_settings()
    found = _locate_or_fail(data, OPPS_COLUMNS, "OPPS", strict, settings)
    if found is None:
        return []
    header_index, _, located = found
    logger.debug("OPPS header located", extra={"row": header_index, "columns": located})

    records: list[OppsRecord] = []
    for row in _data_rows(data[header_index:]):
        values = _map_located(row, OPPS_COLUMNS, located)
        if not values["hcpcs"]:
            continue
        records.append(
            OppsRecord(
                year=year or settings.opps_year,
                source_file=settings.opps_source_label,
                **values,
            )
        )
    return records


def locate_state_fee_columns(labels: Sequence[str]) -> list[tuple[int, str, bool]]:
    """``(column, state, is_rental)`` for every ``ST (NR)``/``ST (R)`` label."""
    found: list[tuple[int, str, bool]] = []
    for index, label in enumerate(labels):
        match = _DMEPOS_STATE_COLUMN.fullmatch(label)
        if match and match.group(1) in DMEPOS_STATES:
            found.append((index, match.group(1), match.group(2) == "R"))
    return found


def parse_dmepos_rows(
    data: Sequence[Row],
    *,
    year: int | None = None,
    strict: bool = False,
    settings: ImportSettings | None = None,
) -> list[DmeposRecord]:
    """Parse the DMEPOS fee schedule into one record per state with a fee.

    Files without per-state fee columns yield one record per row, priced at
    the ceiling (or the floor when there is no ceiling).

    Raises:
        ImportParseError: When ``strict`` and no header row is found.
    """
    settings = settings or get_import_settings()
    found = _locate_or_fail(data, DMEPOS_COLUMNS, "DMEPOS", strict, settings)
    if found is None:
        return []
    header_index, labels, located = found
    state_columns = locate_state_fee_columns(labels)
    logger.debug(
        "DMEPOS header located",
        extra={"row": header_index, "columns": located, "state_columns": len(state_columns)},
    )

    records: list[DmeposRecord] = []
    for row in _data_rows(data[header_index:]):
        values = _map_located(row, DMEPOS_COLUMNS, located)
        if not values["hcpcs"]:
            continue
        base = dict(values, year=year or settings.dmepos_year, source_file=settings.dmepos_source_label)

        if not state_columns:
            records.append(DmeposRecord(**base, fee=values["ceiling"] or values["floor"]))
            continue

        fees: dict[str, dict[str, float | None]] = {}
        for index, state, is_rental in state_columns:
            slot = fees.setdefault(state, {"fee": None, "fee_rental": None})
            slot["fee_rental" if is_rental else "fee"] = parse_fee(_cell(row, index))
        for state, slot in fees.items():
            if slot["fee"] is not None or slot["fee_rental"] is not None:
                records.append(DmeposRecord(**base, state_abbr=state, **slot))
    return records


def dedupe_by_key(records: Iterable[BaseModel], key_fields: Sequence[str]) -> tuple[list[BaseModel], int]:
    """Keep the last record per natural key, at the position its key first appeared.

    An upsert batch may not touch the same key twice, and a later row would
    replace the earlier one anyway.
    """
    kept: dict[tuple[Any, ...], BaseModel] = {}
    duplicates = 0
    for record in records:
        key = tuple(getattr(record, name) for name in key_fields)
        if key in kept:
            duplicates += 1
        kept[key] = record
    return list(kept.values()), duplicates


__all__ = [
    "ColumnSpec",
    "HeaderColumn",
    "MPFS_COLUMNS",
    "GPCI_COLUMNS",
    "OPPS_COLUMNS",
    "DMEPOS_COLUMNS",
    "parse_string",
    "parse_number",
    "parse_amount",
    "parse_mpfs_rows",
    "parse_gpci_rows",
    "parse_zip_locality_rows",
    "parse_opps_rows",
    "parse_dmepos_rows",
    "normalize_zip5",
    "dedupe_zip_records",
    "dedupe_by_key",
]
