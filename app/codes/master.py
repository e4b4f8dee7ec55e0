"""Master code list: canonical code descriptions used by the lexical index.

Entries come from a loader (the built-in common-code table, a DHS-style
``|CODE|Description|`` list file, or an explicit list) and are read-only once
loaded.
"""

from __future__ import annotations

import asyncio
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Sequence

from app.codes.normalizer import normalize_code
from app.common.exceptions import MasterListError
from config.settings import LexicalIndexSettings, get_lexical_index_settings
from observability.logging_config import get_logger

logger = get_logger("master_codes")

SHORT_LABEL_MAX = 40

_DHS_LINE = re.compile(r"^\|([A-Z0-9]{4,5}[A-Z]?)\|(.*)\|\s*$")
_DHS_SKIP_PREFIXES = ("|LIST OF", "|-", "|||", "|This code", "|INCLUDE", "|EXCLUDE", "|CLINICAL")
_HCPCS_LEVEL_II_LETTERS = frozenset("ABCDEGHJKLMPQRSTV")


@dataclass(frozen=True)
class MasterEntry:
    """One reference code definition."""

    code: str
    short_label: str
    long_description: str
    section: str | None = None
    category: str | None = None
    synonyms: tuple[str, ...] = field(default_factory=tuple)


def infer_section(code: str) -> tuple[str, str]:
    """Return ``(section, category)`` for a code from its range.

    Ranges are compared as zero-padded 5-character strings, which orders the
    same as the numeric CPT ranges without converting the code to a number.
    """
    if re.fullmatch(r"[0-9]{4}[MU]", code):
        return "Proprietary Lab Analyses", "Lab"
    if re.fullmatch(r"0[0-9]{3}[A-Z]", code):
        return "Category III", "Emerging Technology"

    if not re.fullmatch(r"[0-9]{5}", code):
        if code[:1] in _HCPCS_LEVEL_II_LETTERS:
            return "HCPCS Level II", "Supplies/Services"
        return "Other", "Other"

    if "99202" <= code <= "99499":
        return "Evaluation and Management", "E&M"
    if "00001" <= code <= "01999":
        return "Anesthesia", "Anesthesia"
    if "10021" <= code <= "69990":
        return "Surgery", "Surgery"
    if "70010" <= code <= "79999":
        return "Radiology", "Imaging"
    if "80047" <= code <= "89398":
        return "Pathology and Laboratory", "Lab"
    if "90281" <= code <= "99199":
        return "Medicine", "Medicine"
    return "Other", "Other"


def short_label_for(description: str) -> str:
    if len(description) > SHORT_LABEL_MAX:
        return description[: SHORT_LABEL_MAX - 3] + "..."
    return description


def build_entry(code: str, description: str, synonyms: Sequence[str] = ()) -> MasterEntry:
    section, category = infer_section(code)
    return MasterEntry(
        code=code,
        short_label=short_label_for(description),
        long_description=description,
        section=section,
        category=category,
        synonyms=tuple(synonyms),
    )


def placeholder_entry(code: str) -> MasterEntry:
    """Synthesize an entry for a code absent from the master list."""
    section, category = infer_section(code)
    return MasterEntry(
        code=code,
        short_label=f"Code {code}",
        long_description=f"Medical procedure code {code}",
        section=section,
        category=category,
    )


def parse_dhs_line(line: str) -> MasterEntry | None:
    """Parse one ``|CODE|Description|`` line; headers and blanks return None."""
    if not line or not line.strip() or line.startswith(_DHS_SKIP_PREFIXES):
        return None

    match = _DHS_LINE.match(line)
    if not match:
        return None

    code = match.group(1).rjust(5, "0")
    description = match.group(2).strip()
    return build_entry(code, description)


# Common codes with plain-language descriptions
COMMON_CODES: tuple[tuple[str, str], ...] = (
    # E&M
    ("99202", "Office visit, new patient, straightforward"),
    ("99203", "Office visit, new patient, low complexity"),
    ("99204", "Office visit, new patient, moderate complexity"),
    ("99205", "Office visit, new patient, high complexity"),
    ("99211", "Office visit, established patient, minimal"),
    ("99212", "Office visit, established patient, straightforward"),
    ("99213", "Office visit, established patient, low complexity"),
    ("99214", "Office visit, established patient, moderate complexity"),
    ("99215", "Office visit, established patient, high complexity"),
    ("99221", "Initial hospital visit, straightforward"),
    ("99222", "Initial hospital visit, moderate complexity"),
    ("99223", "Initial hospital visit, high complexity"),
    ("99231", "Subsequent hospital visit, straightforward"),
    ("99232", "Subsequent hospital visit, moderate complexity"),
    ("99233", "Subsequent hospital visit, high complexity"),
    ("99281", "Emergency room visit, minimal"),
    ("99282", "Emergency room visit, low severity"),
    ("99283", "Emergency room visit, moderate severity"),
    ("99284", "Emergency room visit, high severity"),
    ("99285", "Emergency room visit, high severity with threat"),
    # Lab
    ("80053", "Comprehensive metabolic panel"),
    ("80061", "Lipid panel"),
    ("85025", "Complete blood count with differential"),
    ("85027", "Complete blood count automated"),
    ("84443", "Thyroid stimulating hormone (TSH)"),
    ("84439", "Free thyroxine (T4)"),
    ("82947", "Blood glucose level"),
    ("82306", "Vitamin D level"),
    ("83036", "Hemoglobin A1c"),
    # Imaging
    ("71046", "Chest X-ray, 2 views"),
    ("71045", "Chest X-ray, single view"),
    ("73030", "X-ray shoulder"),
    ("72100", "X-ray lumbar spine, 2-3 views"),
    ("70553", "MRI brain with and without contrast"),
    ("72148", "MRI lumbar spine without contrast"),
    ("74177", "CT abdomen and pelvis with contrast"),
    ("76700", "Ultrasound abdomen complete"),
    ("76856", "Ultrasound pelvis complete"),
    ("77067", "Screening mammography bilateral"),
    # Surgery / procedures
    ("10060", "Incision and drainage of abscess"),
    ("11102", "Tangential skin biopsy, single lesion"),
    ("17000", "Destruction of premalignant lesion, first"),
    ("20610", "Joint injection/aspiration, major joint"),
    ("43239", "Upper GI endoscopy with biopsy"),
    ("45378", "Colonoscopy diagnostic"),
    ("45380", "Colonoscopy with biopsy"),
    ("45385", "Colonoscopy with polyp removal"),
    ("50688", "Insertion of ureteral stent"),
    # Pathology
    ("88305", "Surgical pathology, Level IV"),
    ("88342", "Immunohistochemistry"),
    # Other
    ("90471", "Immunization administration, first vaccine"),
    ("90472", "Immunization administration, additional vaccine"),
    ("96372", "Therapeutic injection, subcutaneous or intramuscular"),
    ("99000", "Specimen handling"),
)


class MasterCodeLoader(ABC):
    """Port for loading the full master code list."""

    @abstractmethod
    async def load_all(self) -> list[MasterEntry]:
        """Load every master entry, in dataset order."""
        ...


class StaticMasterCodeLoader(MasterCodeLoader):
    """Loads the built-in common-code table (or a supplied code table)."""

    def __init__(self, codes: Iterable[tuple[str, str]] | None = None):
        self._codes = tuple(codes) if codes is not None else COMMON_CODES

    async def load_all(self) -> list[MasterEntry]:
        entries: dict[str, MasterEntry] = {}
        for raw_code, description in self._codes:
            code = normalize_code(raw_code)
            if code:
                entries[code] = build_entry(code, description)
        logger.info(f"Loaded {len(entries)} master entries from static table")
        return list(entries.values())


class EntryListMasterCodeLoader(MasterCodeLoader):
    """Serves an explicit list of entries (fixtures, pre-built lists)."""

    def __init__(self, entries: Iterable[MasterEntry]):
        self._entries = list(entries)

    async def load_all(self) -> list[MasterEntry]:
        return list(self._entries)


class DhsCodeListLoader(MasterCodeLoader):
    """Loads a DHS-style code list where each data line is ``|CODE|Description|``."""

    def __init__(self, path: str | Path):
        self._path = Path(path)

    def _read(self) -> list[MasterEntry]:
        if not self._path.is_file():
            raise MasterListError(f"Code list file not found: {self._path}")

        entries: dict[str, MasterEntry] = {}
        with self._path.open(encoding="utf-8", errors="replace") as handle:
            for line in handle:
                entry = parse_dhs_line(line.rstrip("\n"))
                if entry is not None:
                    entries.setdefault(entry.code, entry)
        return list(entries.values())

    async def load_all(self) -> list[MasterEntry]:
        loop = asyncio.get_running_loop()
        entries = await loop.run_in_executor(None, self._read)
        logger.info(
            f"Loaded {len(entries)} master entries from code list",
            extra={"path": str(self._path)},
        )
        return entries


def build_master_loader(settings: LexicalIndexSettings | None = None) -> MasterCodeLoader:
    """Code list file when one is configured, else the built-in common codes."""
    settings = settings or get_lexical_index_settings()
    if settings.dhs_code_list_path is not None:
        return DhsCodeListLoader(settings.dhs_code_list_path)
    return StaticMasterCodeLoader()


__all__ = [
    "MasterEntry",
    "build_master_loader",
    "MasterCodeLoader",
    "StaticMasterCodeLoader",
    "EntryListMasterCodeLoader",
    "DhsCodeListLoader",
    "COMMON_CODES",
    "infer_section",
    "build_entry",
    "placeholder_entry",
    "parse_dhs_line",
]
