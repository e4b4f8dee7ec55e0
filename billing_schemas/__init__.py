"""Public schema exports for the reference code suite."""

from .codes import (
    CodeWithModifier,
    MatchCandidate,
    QueryValidation,
    RejectedToken,
    ResolutionResult,
    SuggestedCodes,
    ValidatedCode,
)
from .location import LocationEvidence, ZipCandidate
from .reference import (
    DatasetStatus,
    DmeposRecord,
    GpciRecord,
    ImportReport,
    MpfsRecord,
    OppsRecord,
    ZipToLocalityRecord,
)

__all__ = [
    "CodeWithModifier",
    "ValidatedCode",
    "RejectedToken",
    "MatchCandidate",
    "ResolutionResult",
    "QueryValidation",
    "SuggestedCodes",
    "LocationEvidence",
    "ZipCandidate",
    "MpfsRecord",
    "GpciRecord",
    "ZipToLocalityRecord",
    "OppsRecord",
    "DmeposRecord",
    "ImportReport",
    "DatasetStatus",
]
