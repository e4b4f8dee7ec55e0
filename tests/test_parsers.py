import math

import pytest

from app.common.exceptions import ImportParseError
from app.importers.parsers import (
    dedupe_by_key,
    dedupe_zip_records,
    normalize_zip5,
    parse_amount,
    parse_dmepos_rows,
    parse_gpci_rows,
    parse_mpfs_rows,
    parse_number,
    parse_opps_rows,
    parse_year_quarter,
    parse_zip_locality_rows,
)
from billing_schemas.reference import DmeposRecord, ZipToLocalityRecord
from config.settings import ImportSettings

MPFS_HEADER = [f"col{i}" for i in range(17)]
ZIP_HEADER = ["STATE", "ZIP CODE", "CARRIER", "LOCALITY", "RURAL IND", "LAB CB LOCALITY", "YEAR/QTR"]


def test_parse_number():
    assert parse_number("7.03") == 7.03
    assert parse_number(3) == 3.0
    assert parse_number("") is None
    assert parse_number(" Not Found ") is None
    assert parse_number("n/a") is None
    assert parse_number(math.nan) is None
    assert parse_number(None) is None


def test_parse_mpfs_rows_applies_defaults(import_settings):
    rows = [
        MPFS_HEADER,
        ["29881", None, "Knee arthroscopy", "A", "7.03", "", "", "1.2", "not found", "400.5", "0", "090", "2"],
        ["", None, "No code on this row"],
        [None, None, "Nor on this one"],
        [],
        ["00100", "", "Anesthesia salivary gland", None, None, None, None, None, None, None, None, None, None,
         "32.35", "2025", "QP", "CMS PFS"],
    ]

    records = parse_mpfs_rows(rows, import_settings)

    assert [r.hcpcs for r in records] == ["29881", "00100"]
    knee, anesthesia = records
    assert knee.modifier is None
    assert knee.work_rvu == 7.03
    assert knee.nonfac_pe_rvu is None
    assert knee.nonfac_fee is None
    assert knee.fac_fee == 400.5
    assert knee.global_days == "090"
    assert knee.conversion_factor == import_settings.default_conversion_factor
    assert knee.year == import_settings.default_year

    assert anesthesia.conversion_factor == 32.35
    assert anesthesia.year == 2025
    assert anesthesia.qp_status == "QP"


def test_parse_mpfs_rows_normalizes_codes(import_settings):
    rows = [MPFS_HEADER, ["cpt 45380", "26", "Colonoscopy with biopsy"]]
    records = parse_mpfs_rows(rows, import_settings)
    assert (records[0].hcpcs, records[0].modifier) == ("45380", "26")


def test_parse_gpci_rows_skips_incomplete_rows():
    rows = [
        ["Locality", "State", "Name", "Zip", "Work", "PE", "MP"],
        ["01", "AL", "Alabama", None, "1.0", "0.869", "0.575"],
        ["02", "AK", "Alaska", "99501", "1.5", "1.081", ""],
        ["", "AZ", "Arizona", None, "1.0", "0.975", "0.854"],
    ]

    records = parse_gpci_rows(rows)

    assert len(records) == 1
    assert records[0].locality_num == "01"
    assert records[0].state_abbr == "AL"
    assert (records[0].work_gpci, records[0].pe_gpci, records[0].mp_gpci) == (1.0, 0.869, 0.575)


def test_normalize_zip5():
    assert normalize_zip5("501") == "00501"
    assert normalize_zip5(501) == "00501"
    assert normalize_zip5("10001-1234") == "10001"
    assert normalize_zip5("") is None
    assert normalize_zip5("abc") is None


def test_parse_year_quarter():
    assert parse_year_quarter("20261") == 2026
    assert parse_year_quarter(20254) == 2025
    assert parse_year_quarter("Q1") is None
    assert parse_year_quarter(None) is None


def test_parse_zip_locality_rows(import_settings):
    rows = [
        ZIP_HEADER,
        ["IL", "62704", "06102", "16", None, None, "20261"],
        ["MA", "2115", "14312", "01", None, None, "20254"],
        ["NY", "10001-1234", "13202", "01", None, None, None],
        ["NY", "", "13202", "01", None, None, "20261"],
        ["NY", "10002", "13202", "", None, None, "20261"],
    ]

    records = parse_zip_locality_rows(rows, settings=import_settings)

    assert [r.zip5 for r in records] == ["62704", "02115", "10001"]
    first = records[0]
    assert (first.state_abbr, first.locality_num, first.carrier_num) == ("IL", "16", "06102")
    assert first.effective_year == 2026
    assert first.source == import_settings.zip_source_label
    assert records[2].effective_year is None


def test_zip_header_without_required_columns():
    rows = [["STATE", "CODE", "AREA"], ["IL", "62704", "16"]]

    assert parse_zip_locality_rows(rows) == []
    with pytest.raises(ImportParseError):
        parse_zip_locality_rows(rows, strict=True)


def test_empty_zip_sheet():
    assert parse_zip_locality_rows([]) == []


def _zip(zip5, year, locality="01"):
    return ZipToLocalityRecord(zip5=zip5, locality_num=locality, effective_year=year)


def test_dedupe_prefers_newest_year_then_first_seen():
    records = [
        _zip("10001", 2024, "01"),
        _zip("62704", 2026, "16"),
        _zip("10001", 2026, "02"),
        _zip("10001", 2025, "03"),
        _zip("62704", None, "99"),
        _zip("62704", 2026, "17"),
    ]

    unique, duplicates = dedupe_zip_records(records)

    assert duplicates == 4
    assert [r.zip5 for r in unique] == ["10001", "62704"]
    assert unique[0].locality_num == "02"
    assert unique[1].locality_num == "16"


def test_dedupe_missing_year_is_replaced_by_any_year():
    unique, duplicates = dedupe_zip_records([_zip("10001", None, "01"), _zip("10001", 2020, "02")])
    assert duplicates == 1
    assert unique[0].locality_num == "02"


def test_parse_amount():
    assert parse_amount("$1,234.50") == 1234.5
    assert parse_amount(" 94.2591 ") == 94.2591
    assert parse_amount(12) == 12.0
    assert parse_amount("-") is None
    assert parse_amount("") is None
    assert parse_amount(None) is None
    # zero is a real OPPS amount
    assert parse_amount("$0.00") == 0.0


OPPS_ROWS = [
    ["Addendum B.-Final OPPS Payment by HCPCS Code for CY 2025", None, None],
    [],
    [
        "HCPCS Code",
        "Short Descriptor",
        "SI",
        "APC",
        "Relative Weight",
        "Payment Rate",
        "National Unadjusted Copayment",
        "Minimum Unadjusted Copayment",
    ],
    ["29880", "Knee arthroscopy/surgery", "J1", "5114", "94.2591", "$8,107.69", "$1,621.54", "-"],
    ["G0", "Too short to be a code", "N"],
    ["c1713", "Anchor/screw bn/bn,tis/bn", "N", None, None, None, None, None],
]


def test_parse_opps_rows_finds_header_below_title(import_settings):
    records = parse_opps_rows(OPPS_ROWS, settings=import_settings)

    assert [r.hcpcs for r in records] == ["29880", "C1713"]
    knee = records[0]
    assert knee.short_desc == "Knee arthroscopy/surgery"
    assert (knee.status_indicator, knee.apc) == ("J1", "5114")
    assert knee.relative_weight == 94.2591
    assert knee.payment_rate == 8107.69
    assert knee.national_unadjusted_copayment == 1621.54
    assert knee.minimum_unadjusted_copayment is None
    assert knee.long_desc is None
    assert knee.year == import_settings.opps_year
    assert knee.source_file == import_settings.opps_source_label
    assert records[1].apc is None


def test_parse_opps_rows_year_override(import_settings):
    records = parse_opps_rows(OPPS_ROWS, year=2026, settings=import_settings)
    assert {r.year for r in records} == {2026}


def test_opps_without_header():
    rows = [["Code", "Descriptor"], ["29880", "Knee arthroscopy"]]

    assert parse_opps_rows(rows) == []
    with pytest.raises(ImportParseError):
        parse_opps_rows(rows, strict=True)


def test_header_must_be_near_the_top():
    rows = [["title"], ["notes"], ["more notes"], ["HCPCS Code", "Short Descriptor"], ["29880", "Knee"]]

    assert parse_opps_rows(rows, settings=ImportSettings(header_search_rows=3)) == []
    assert len(parse_opps_rows(rows, settings=ImportSettings(header_search_rows=4))) == 1


DMEPOS_HEADER = [
    "HCPCS", "Mod", "Mod2", "JURIS", "CATG", "Ceiling", "Floor",
    "AL (NR)", "AL (R)", "CA (NR)", "CA (R)", "ZZ (NR)", "Description",
]


def test_parse_dmepos_rows_emits_one_record_per_priced_state(import_settings):
    rows = [
        ["DMEPOS Fee Schedule January 2026"],
        DMEPOS_HEADER,
        ["E0114", "NU", None, "D", "IN", "$55.00", "$40.00", "45.10", None, "0.00", None, "99.00", "Crutches underarm pair"],
        ["E0114", "RR", None, "D", "IN", "5.50", "4.00", None, "4.51", None, "5.02", None, "Crutches underarm pair"],
        ["K0001", "RR", "KH", "D", "IR", None, None, None, None, None, None, None, "Standard wheelchair"],
    ]

    records = parse_dmepos_rows(rows, settings=import_settings)

    assert [(r.hcpcs, r.modifier, r.state_abbr, r.fee, r.fee_rental) for r in records] == [
        ("E0114", "NU", "AL", 45.1, None),
        ("E0114", "RR", "AL", None, 4.51),
        ("E0114", "RR", "CA", None, 5.02),
    ]
    first = records[0]
    assert (first.ceiling, first.floor) == (55.0, 40.0)
    assert (first.jurisdiction, first.category) == ("D", "IN")
    assert first.short_desc == "Crutches underarm pair"
    assert first.year == import_settings.dmepos_year
    assert first.source_file == import_settings.dmepos_source_label


def test_parse_dmepos_rows_without_state_columns(import_settings):
    rows = [
        ["HCPCS", "Mod", "Ceiling", "Floor", "Description"],
        ["A4570", "", "12.50", "10.00", "Splint"],
        ["A4580", None, None, "8.00", "Cast supplies"],
    ]

    records = parse_dmepos_rows(rows, year=2025, settings=import_settings)

    assert [(r.hcpcs, r.modifier, r.state_abbr, r.fee) for r in records] == [
        ("A4570", None, None, 12.5),
        ("A4580", None, None, 8.0),
    ]
    assert {r.year for r in records} == {2025}


def test_dmepos_header_requires_exact_hcpcs_label():
    rows = [["HCPCS Code", "Description"], ["E0114", "Crutches"]]

    assert parse_dmepos_rows(rows) == []
    with pytest.raises(ImportParseError):
        parse_dmepos_rows(rows, strict=True)


def test_dedupe_by_key_keeps_last_row_at_first_position():
    def fee(state, amount, modifier="NU"):
        return DmeposRecord(year=2026, hcpcs="E0114", modifier=modifier, state_abbr=state, fee=amount)

    unique, duplicates = dedupe_by_key(
        [fee("AL", 1.0), fee("CA", 2.0), fee("AL", 3.0), fee("AL", 4.0, modifier="RR")],
        ("year", "hcpcs", "modifier", "state_abbr"),
    )

    assert duplicates == 1
    assert [(r.state_abbr, r.modifier, r.fee) for r in unique] == [("AL", "NU", 3.0), ("CA", "NU", 2.0), ("AL", "RR", 4.0)]
