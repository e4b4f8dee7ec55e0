import pytest

from app.codes.master import (
    COMMON_CODES,
    DhsCodeListLoader,
    StaticMasterCodeLoader,
    build_master_loader,
    infer_section,
    parse_dhs_line,
    placeholder_entry,
)
from app.common.exceptions import MasterListError
from config.settings import LexicalIndexSettings


@pytest.mark.parametrize(
    "code, section",
    [
        ("99213", "Evaluation and Management"),
        ("00100", "Anesthesia"),
        ("45380", "Surgery"),
        ("71046", "Radiology"),
        ("80053", "Pathology and Laboratory"),
        ("96372", "Medicine"),
        ("0075T", "Category III"),
        ("0001U", "Proprietary Lab Analyses"),
        ("E0114", "HCPCS Level II"),
        ("99999", "Other"),
    ],
)
def test_infer_section_compares_codes_as_text(code, section):
    assert infer_section(code)[0] == section


def test_placeholder_entry_for_unknown_code():
    entry = placeholder_entry("99999")
    assert entry.short_label == "Code 99999"
    assert entry.long_description == "Medical procedure code 99999"


def test_parse_dhs_line():
    entry = parse_dhs_line("|45380|Colonoscopy with biopsy|")
    assert entry is not None
    assert (entry.code, entry.long_description, entry.section) == ("45380", "Colonoscopy with biopsy", "Surgery")

    assert parse_dhs_line("|LIST OF CPT/HCPCS CODES|") is None
    assert parse_dhs_line("") is None
    assert parse_dhs_line("not a code line") is None


def test_parse_dhs_line_pads_short_codes():
    entry = parse_dhs_line("|0100|Anesthesia for salivary gland procedures|")
    assert entry is not None
    assert entry.code == "00100"


async def test_static_loader_loads_common_codes():
    entries = await StaticMasterCodeLoader().load_all()
    assert len(entries) == len({code for code, _ in COMMON_CODES})
    assert entries[0].code == COMMON_CODES[0][0]


async def test_dhs_loader_reads_code_list(tmp_path):
    path = tmp_path / "codes.txt"
    path.write_text(
        "\n".join(
            [
                "|LIST OF CPT/HCPCS CODES|",
                "|45378|Colonoscopy diagnostic|",
                "|45380|Colonoscopy with biopsy|",
                "|45380|Duplicate line is ignored|",
                "",
            ]
        ),
        encoding="utf-8",
    )
    entries = await DhsCodeListLoader(path).load_all()
    assert [e.code for e in entries] == ["45378", "45380"]
    assert entries[1].long_description == "Colonoscopy with biopsy"


async def test_dhs_loader_missing_file_raises(tmp_path):
    with pytest.raises(MasterListError):
        await DhsCodeListLoader(tmp_path / "missing.txt").load_all()


def test_build_master_loader(tmp_path):
    assert isinstance(build_master_loader(LexicalIndexSettings()), StaticMasterCodeLoader)

    path = tmp_path / "codes.txt"
    path.write_text("|45380|Colonoscopy with biopsy|\n", encoding="utf-8")
    loader = build_master_loader(LexicalIndexSettings(dhs_code_list_path=path))
    assert isinstance(loader, DhsCodeListLoader)
