"""Reference dataset records and import reporting.

One record type per dataset. Field names match the reference store columns so
``model_dump()`` yields upsert-ready rows.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field

DatasetKind = Literal["mpfs", "gpci", "zip", "opps", "dmepos"]


class MpfsRecord(BaseModel):
    """Physician fee schedule row, keyed by ``hcpcs`` + ``modifier``."""

    hcpcs: str = Field(..., min_length=1)
    modifier: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None
    work_rvu: Optional[float] = None
    nonfac_pe_rvu: Optional[float] = None
    fac_pe_rvu: Optional[float] = None
    mp_rvu: Optional[float] = None
    nonfac_fee: Optional[float] = None
    fac_fee: Optional[float] = None
    pctc: Optional[str] = None
    global_days: Optional[str] = None
    mult_surgery_indicator: Optional[str] = None
    conversion_factor: Optional[float] = None
    year: Optional[int] = None
    qp_status: Optional[str] = None
    source: Optional[str] = None


class GpciRecord(BaseModel):
    """Geographic practice cost index row, keyed by ``locality_num``."""

    locality_num: str = Field(..., min_length=1)
    state_abbr: str = Field(..., min_length=1)
    locality_name: str = Field(..., min_length=1)
    zip_code: Optional[str] = None
    work_gpci: float
    pe_gpci: float
    mp_gpci: float


class ZipToLocalityRecord(BaseModel):
    """ZIP5 to CMS locality crosswalk row, keyed by ``zip5``."""

    zip5: str = Field(..., min_length=5, max_length=5)
    state_abbr: Optional[str] = None
    locality_num: str = Field(..., min_length=1)
    carrier_num: Optional[str] = None
    effective_year: Optional[int] = None
    city_name: Optional[str] = None
    county_name: Optional[str] = None
    source: Optional[str] = None


class OppsRecord(BaseModel):
    """OPPS Addendum B row, keyed by ``year`` + ``hcpcs``."""

    year: int
    hcpcs: str = Field(..., min_length=4)
    apc: Optional[str] = None
    status_indicator: Optional[str] = None
    payment_rate: Optional[float] = None
    relative_weight: Optional[float] = None
    short_desc: Optional[str] = None
    # Addendum B ships short descriptors only
    long_desc: Optional[str] = None
    national_unadjusted_copayment: Optional[float] = None
    minimum_unadjusted_copayment: Optional[float] = None
    source_file: Optional[str] = None


class DmeposRecord(BaseModel):
    """DMEPOS fee schedule row for one state, keyed by ``year`` + ``hcpcs`` + ``modifier`` + ``state_abbr``."""

    year: int
    hcpcs: str = Field(..., min_length=4)
    modifier: Optional[str] = None
    modifier2: Optional[str] = None
    jurisdiction: Optional[str] = None
    category: Optional[str] = None
    ceiling: Optional[float] = None
    floor: Optional[float] = None
    fee: Optional[float] = None
    fee_rental: Optional[float] = None
    state_abbr: Optional[str] = None
    short_desc: Optional[str] = None
    source_file: Optional[str] = None


class ImportReport(BaseModel):
    """Outcome of writing one dataset to the reference store.

    ``dataset`` is plain text so a request naming an unknown dataset can still
    be reported.
    """

    dataset: str
    success: bool
    imported: int = 0
    total: int = 0
    duplicates_skipped: int = 0
    batches_written: int = 0
    error: Optional[str] = None


class DatasetStatus(BaseModel):
    """Row count of one reference table; ``error`` is set when it could not be counted."""

    dataset: str
    table: str
    row_count: Optional[int] = None
    error: Optional[str] = None
