"""Strict CPT/HCPCS token validation and reverse-search query checks.

Keeps words like "LEVEL" or "VISIT" from being treated as codes, and decides
whether a free-text description has enough meaningful tokens to search on.
"""

from __future__ import annotations

import re
from typing import Iterable

from billing_schemas.codes import QueryValidation, RejectedToken, ValidatedCode
from observability.logging_config import get_logger

logger = get_logger("code_validator")

CPT_PATTERN = re.compile(r"[0-9]{5}")
HCPCS_PATTERN = re.compile(r"[A-Z][0-9]{4}")
MODIFIER_PATTERN = re.compile(r"[A-Z0-9]{2}")

MIN_TOKEN_LENGTH = 4
MAX_TOKEN_LENGTH = 10
MIN_QUERY_TOKEN_LENGTH = 3

_PREFIXES = (
    re.compile(r"^CPT[\s:.\-]*", re.IGNORECASE),
    re.compile(r"^HCPCS[\s:.\-]*", re.IGNORECASE),
    re.compile(r"^CODE[\s:.\-]*", re.IGNORECASE),
    re.compile(r"^PROCEDURE[\s:.\-]*", re.IGNORECASE),
    re.compile(r"^#"),
)
_LEADING_PUNCT = re.compile(r"^[.,;:()\[\]{}\"']+")
_TRAILING_PUNCT = re.compile(r"[.,;:()\[\]{}\"']+$")
_QUERY_SPLIT = re.compile(r"[^a-z0-9\s]")

# Words that appear on bills in code-like positions but are never codes
REJECTED_WORDS = frozenset({
    "LEVEL", "VISIT", "TOTAL", "CHARGE", "SERVICE", "PRICE", "AMOUNT",
    "PATIENT", "PROVIDER", "HOSPITAL", "CLINIC", "DOCTOR", "NURSE",
    "DATE", "TIME", "PAGE", "BILL", "STATEMENT", "INVOICE", "ACCOUNT",
    "BALANCE", "PAYMENT", "CREDIT", "DEBIT", "INSURANCE", "COPAY",
    "DEDUCTIBLE", "COINSURANCE", "ALLOWED", "BILLED", "PAID", "DUE",
    "DESCRIPTION", "CODE", "PROCEDURE", "DIAGNOSIS", "MODIFIER",
    "UNIT", "UNITS", "QTY", "QUANTITY", "EACH", "ROOM", "EMERGENCY",
    "FACILITY", "OFFICE", "OUTPATIENT", "INPATIENT", "AMBULATORY",
    "PHARMACY", "LABORATORY", "RADIOLOGY", "SURGICAL", "MEDICAL",
    "HEALTH", "CARE", "NAME", "ADDRESS", "PHONE", "FAX", "EMAIL",
    "NOTES", "COMMENTS", "REMARKS", "TYPE", "CLASS", "STATUS",
    "APPROVED", "DENIED", "PENDING", "PROCESSED", "CLAIM", "NUMBER",
    "REF", "REFERENCE", "AUTH", "AUTHORIZATION", "PRIOR", "PRE",
    "POST", "FOLLOW", "FOLLOWUP", "CONSULT", "CONSULTATION",
    "EVAL", "EVALUATION", "EXAM", "EXAMINATION", "TEST", "TESTING",
    "RESULT", "RESULTS", "REPORT", "REPORTS", "SPECIMEN", "SAMPLE",
    "BLOOD", "URINE", "TISSUE", "FLUID", "SCAN", "IMAGING",
    "XRAY", "MRI", "CT", "PET", "ULTRASOUND", "ECHO", "EKG", "ECG",
    "SURGERY", "OPERATION", "ANESTHESIA", "RECOVERY", "ICU",
    "SUPPLY", "SUPPLIES", "EQUIPMENT", "DEVICE", "DRUG", "MEDICATION",
    "RX", "PRESCRIPTION", "INJECTION", "INFUSION", "THERAPY",
    "TREATMENT", "MANAGEMENT", "MONITORING", "SCREENING", "PREVENTION",
    "INITIAL", "SUBSEQUENT", "FINAL", "COMPLETE", "PARTIAL", "LIMITED",
    "SIMPLE", "COMPLEX", "MODERATE", "MINOR", "MAJOR", "ROUTINE",
    "STANDARD", "SPECIAL", "ADDITIONAL", "EXTRA", "OTHER", "MISC",
    "MISCELLANEOUS", "GENERAL", "SPECIFIC", "DETAILED", "COMPREHENSIVE",
    "HIGH", "LOW", "NORMAL", "ABNORMAL", "POSITIVE", "NEGATIVE",
    "PRIMARY", "SECONDARY", "TERTIARY", "MAIN", "SUB", "CATEGORY",
    "GROUP", "SECTION", "PART", "ITEM", "LINE", "ROW", "ENTRY",
    "TRUE", "FALSE", "YES", "NO", "NA", "N/A", "NONE", "NULL",
    "FROM", "TO", "FOR", "WITH", "WITHOUT", "AND", "OR", "THE", "A", "AN",
    # short clinical abbreviations
    "ER", "ED", "PT", "OT", "IV", "IM", "PO", "BID", "TID", "QID",
    "PRN", "STAT", "ASA", "BP", "HR", "RR", "TEMP", "HT", "WT", "BMI",
    # financial terms
    "USD", "DOLLAR", "DOLLARS", "CENTS", "FEE", "FEES", "COST", "COSTS",
    "RATE", "RATES", "TAX", "TAXES", "DISCOUNT", "ADJUSTMENT", "WRITE",
    "WRITEOFF", "REFUND", "REBATE", "COLLECTION",
    "CMPLX", "EMERG", "MGMT", "MGMNT", "HCPCS", "ICD", "REV", "REVENUE", "CPT", "NDC",
})

# Tokens too generic to search descriptions on
REVERSE_SEARCH_STOPWORDS = frozenset({
    "visit", "level", "service", "procedure", "charge", "hospital", "facility",
    "patient", "room", "emergency", "total", "department", "care", "medical",
    "health", "billing", "office", "clinic", "treatment", "therapy", "management",
    "evaluation", "exam", "examination", "consultation", "consult", "initial",
    "subsequent", "follow", "followup", "new", "established", "the", "a", "an",
    "and", "or", "for", "with", "without", "of", "in", "on", "at", "to", "from",
    "by", "as", "is", "are", "was", "were", "be", "been", "being", "have", "has",
    "had", "do", "does", "did", "will", "would", "could", "should", "may", "might",
    "must", "shall", "can", "need", "not", "no", "yes", "all", "each", "every",
    "any", "some", "one", "two", "three", "four", "five", "other", "another",
    "same", "different", "such", "only", "own", "just", "also", "very", "even",
    "more", "most", "less", "least", "than", "then", "now", "here", "there",
    "when", "where", "why", "how", "what", "which", "who", "whom", "whose",
    "this", "that", "these", "those", "it", "its", "they", "their", "them",
    "we", "us", "our", "you", "your", "he", "him", "his", "she", "her", "hers",
})


def _invalid(reason: str) -> ValidatedCode:
    return ValidatedCode(code=None, modifier=None, kind="invalid", reason=reason)


def _classify(code: str, modifier: str | None) -> ValidatedCode | None:
    if CPT_PATTERN.fullmatch(code):
        return ValidatedCode(code=code, modifier=modifier, kind="cpt")
    if HCPCS_PATTERN.fullmatch(code):
        return ValidatedCode(code=code, modifier=modifier, kind="hcpcs")
    return None


def normalize_and_validate_code(raw_token: object) -> ValidatedCode:
    """Validate a raw token pulled from a document as a CPT or HCPCS code."""
    if not raw_token or not isinstance(raw_token, str):
        return _invalid("Empty or non-string input")

    cleaned = raw_token.strip().upper()
    for pattern in _PREFIXES:
        cleaned = pattern.sub("", cleaned)
    cleaned = _TRAILING_PUNCT.sub("", _LEADING_PUNCT.sub("", cleaned)).strip()

    if len(cleaned) < MIN_TOKEN_LENGTH:
        return _invalid(f"Token too short (< {MIN_TOKEN_LENGTH} chars)")
    if len(cleaned) > MAX_TOKEN_LENGTH:
        return _invalid(f"Token too long (> {MAX_TOKEN_LENGTH} chars)")
    if cleaned.isalpha() and cleaned.isascii():
        return _invalid("Purely alphabetic token (likely a word, not a code)")
    if cleaned in REJECTED_WORDS:
        return _invalid(f"Known non-code word: {cleaned}")

    code = cleaned
    modifier: str | None = None

    if "-" in cleaned:
        parts = [p.strip() for p in cleaned.split("-") if p.strip()]
        if len(parts) >= 2:
            code = parts[0]
            if MODIFIER_PATTERN.fullmatch(parts[1]):
                modifier = parts[1]
    elif " " in cleaned:
        parts = cleaned.split()
        if len(parts) >= 2:
            code = parts[0]
            if MODIFIER_PATTERN.fullmatch(parts[1]):
                modifier = parts[1]
    elif re.fullmatch(r"[0-9]{5}[A-Z]{2}", cleaned) or re.fullmatch(r"[A-Z][0-9]{4}[A-Z0-9]{2}", cleaned):
        code, modifier = cleaned[:5], cleaned[5:7]
        logger.debug(f"Extracted inline modifier: {cleaned} -> code={code}, modifier={modifier}")

    classified = _classify(code, modifier)
    if classified is not None:
        return classified

    # Salvage a code embedded in a longer token
    five_digits = re.search(r"\b([0-9]{5})\b", cleaned)
    if five_digits:
        return ValidatedCode(code=five_digits.group(1), modifier=modifier, kind="cpt")

    hcpcs = re.search(r"\b([A-Z][0-9]{4})\b", cleaned)
    if hcpcs:
        return ValidatedCode(code=hcpcs.group(1), modifier=modifier, kind="hcpcs")

    if re.match(r"[0-9]{5}", cleaned):
        remainder = cleaned[5:]
        if not remainder:
            return ValidatedCode(code=cleaned[:5], modifier=None, kind="cpt")
        if len(remainder) == 2 and MODIFIER_PATTERN.fullmatch(remainder):
            return ValidatedCode(code=cleaned[:5], modifier=remainder, kind="cpt")

    return _invalid(
        f'Does not match CPT (5 digits) or HCPCS (letter + 4 digits) format: "{cleaned}"'
    )


def validate_code_tokens(tokens: Iterable[str]) -> tuple[list[ValidatedCode], list[RejectedToken]]:
    """Validate many tokens, de-duplicating valid codes in first-seen order."""
    valid_codes: list[ValidatedCode] = []
    rejected: list[RejectedToken] = []
    seen: set[str] = set()

    for token in tokens:
        result = normalize_and_validate_code(token)
        if result.kind != "invalid" and result.code:
            if result.code not in seen:
                seen.add(result.code)
                valid_codes.append(result)
        else:
            rejected.append(
                RejectedToken(token=str(token), reason=result.reason or "Unknown validation failure")
            )

    return valid_codes, rejected


def tokenize_query(text: str) -> list[str]:
    """Lowercase search tokens of at least 3 chars, stopwords removed."""
    tokens = _QUERY_SPLIT.sub(" ", (text or "").lower()).split()
    return [t for t in tokens if len(t) >= MIN_QUERY_TOKEN_LENGTH and t not in REVERSE_SEARCH_STOPWORDS]


def validate_reverse_search_query(query: object, min_tokens: int = 2) -> QueryValidation:
    """Check a description has at least ``min_tokens`` meaningful tokens."""
    if not query or not isinstance(query, str):
        return QueryValidation(is_valid=False, meaningful_tokens=[], reason="Empty or invalid query")

    meaningful = tokenize_query(query)
    if len(meaningful) < min_tokens:
        return QueryValidation(
            is_valid=False,
            meaningful_tokens=meaningful,
            reason=(
                f"Only {len(meaningful)} meaningful tokens after removing stopwords "
                f"(need {min_tokens})"
            ),
        )
    return QueryValidation(is_valid=True, meaningful_tokens=meaningful)


def extract_potential_codes(text: object) -> list[str]:
    """Find code-shaped substrings in free text, de-duplicated in order."""
    if not text or not isinstance(text, str):
        return []

    tokens: list[str] = []
    tokens.extend(re.findall(r"\b[0-9]{5}\b", text))
    tokens.extend(m.upper() for m in re.findall(r"\b[A-Za-z][0-9]{4}\b", text))
    tokens.extend(
        m.group(0).upper()
        for m in re.finditer(r"\b(?:[0-9]{5}|[A-Za-z][0-9]{4})-[A-Za-z0-9]{2}\b", text)
    )
    return list(dict.fromkeys(tokens))


__all__ = [
    "REJECTED_WORDS",
    "REVERSE_SEARCH_STOPWORDS",
    "normalize_and_validate_code",
    "validate_code_tokens",
    "tokenize_query",
    "validate_reverse_search_query",
    "extract_potential_codes",
]
