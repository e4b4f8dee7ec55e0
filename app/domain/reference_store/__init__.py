"""Reference dataset store port."""

from app.domain.reference_store.repository import (
    TABLE_DMEPOS,
    TABLE_GPCI,
    TABLE_MPFS,
    TABLE_OPPS,
    TABLE_ZIP_LOCALITY,
    DescriptionRow,
    ReferenceStore,
)

__all__ = [
    "ReferenceStore",
    "DescriptionRow",
    "TABLE_MPFS",
    "TABLE_GPCI",
    "TABLE_ZIP_LOCALITY",
    "TABLE_OPPS",
    "TABLE_DMEPOS",
]
