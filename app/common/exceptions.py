"""Exception hierarchy for the reference code suite."""

from __future__ import annotations


class ReferenceCodeError(Exception):
    """Base error for code resolution and reference data handling."""

    pass


class MasterListError(ReferenceCodeError):
    """Master code list could not be loaded or parsed."""

    pass


class ImportParseError(ReferenceCodeError):
    """A tabular source is missing the columns its dataset requires."""

    pass


class PersistenceError(ReferenceCodeError):
    """Database or storage persistence error."""

    def __init__(self, message: str, operation: str | None = None, table: str | None = None):
        self.operation = operation
        self.table = table
        super().__init__(message)


class UpstreamUnavailableError(PersistenceError):
    """The reference store failed or timed out while serving a read."""

    pass
