from app.codes.validator import (
    extract_potential_codes,
    normalize_and_validate_code,
    tokenize_query,
    validate_code_tokens,
    validate_reverse_search_query,
)


def test_cpt_and_hcpcs_tokens_are_classified():
    cpt = normalize_and_validate_code("99213")
    assert (cpt.code, cpt.kind) == ("99213", "cpt")

    hcpcs = normalize_and_validate_code("j3490")
    assert (hcpcs.code, hcpcs.kind) == ("J3490", "hcpcs")


def test_modifiers_are_split():
    hyphen = normalize_and_validate_code("99284-25")
    assert (hyphen.code, hyphen.modifier) == ("99284", "25")

    spaced = normalize_and_validate_code("99284 25")
    assert (spaced.code, spaced.modifier) == ("99284", "25")

    inline = normalize_and_validate_code("A4570TC")
    assert (inline.code, inline.modifier, inline.kind) == ("A4570", "TC", "hcpcs")


def test_word_like_tokens_are_rejected():
    assert normalize_and_validate_code("LEVEL").kind == "invalid"
    assert normalize_and_validate_code("abc").reason.startswith("Token too short")
    assert normalize_and_validate_code("12345678901").reason.startswith("Token too long")
    assert normalize_and_validate_code(None).kind == "invalid"
    assert normalize_and_validate_code("12AB34").kind == "invalid"


def test_validate_code_tokens_dedupes_and_collects_rejections():
    valid, rejected = validate_code_tokens(["99213", "CPT 99213", "VISIT", "E0114"])
    assert [v.code for v in valid] == ["99213", "E0114"]
    assert [r.token for r in rejected] == ["VISIT"]


def test_tokenize_query_drops_short_tokens_and_stopwords():
    assert tokenize_query("Knee arthroscopy, with the meniscectomy (left)") == [
        "knee",
        "arthroscopy",
        "meniscectomy",
        "left",
    ]
    assert tokenize_query("ER visit") == []


def test_query_validation_requires_meaningful_tokens():
    ok = validate_reverse_search_query("knee arthroscopy")
    assert ok.is_valid
    assert ok.meaningful_tokens == ["knee", "arthroscopy"]

    weak = validate_reverse_search_query("emergency room visit")
    assert not weak.is_valid
    assert weak.reason == "Only 0 meaningful tokens after removing stopwords (need 2)"

    assert validate_reverse_search_query("").reason == "Empty or invalid query"


def test_extract_potential_codes():
    text = "Lines: 99213, E0114 and 99284-25; again 99213"
    assert extract_potential_codes(text) == ["99213", "99284", "E0114", "99284-25"]
    assert extract_potential_codes(None) == []
