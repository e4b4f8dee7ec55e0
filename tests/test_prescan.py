import pytest

from app.codes.adapters.persistence.inmemory_reference_store import InMemoryReferenceStore
from app.common.exceptions import UpstreamUnavailableError
from app.domain.reference_store.repository import TABLE_ZIP_LOCALITY
from app.location.prescan import LocationInferencer, extract_text_from_filename
from app.location.zip_prefixes import derive_state_from_zip_prefix
from observability.lookup_metrics import LookupMetrics


class UnavailableZipStore(InMemoryReferenceStore):
    async def find_by_exact_key(self, table, column, value):
        raise UpstreamUnavailableError("lookup timed out", operation="select", table=table)


class BrokenZipStore(InMemoryReferenceStore):
    async def find_by_exact_key(self, table, column, value):
        raise RuntimeError("boom")


@pytest.fixture
def inferencer(location_settings):
    return LocationInferencer(settings=location_settings)


async def test_city_state_zip_is_high_confidence(inferencer):
    result = await inferencer.scan("Patient address: 123 Main St, Springfield, IL 62704")

    assert result.ran is True
    assert result.zip5 == "62704"
    assert result.state_abbr == "IL"
    assert result.state_source == "text_pattern"
    assert result.confidence == "high"
    assert result.evidence == "patient address: 123 main st, springfield, il 62704"
    assert result.error is None


async def test_digits_inside_longer_numbers_are_not_zips(inferencer):
    result = await inferencer.scan("Fax: (555) 962704")

    assert result.zip5 is None
    assert result.state_abbr is None
    assert result.confidence == "low"
    assert result.candidates_considered == 0


async def test_non_ascii_digits_are_not_zips(inferencer):
    # Arabic-Indic digits for 62704
    result = await inferencer.scan("Billing address: Springfield ٦٢٧٠٤")

    assert result.zip5 is None
    assert result.state_abbr is None
    assert result.candidates_considered == 0


async def test_phone_context_is_demoted(inferencer):
    text = f"Phone line 60601 {'x' * 150} Billing address: Denver CO 80202"

    candidates = inferencer.extract_zip_candidates(text)
    assert [c.zip5 for c in candidates] == ["80202", "60601"]
    assert candidates[0].score == 5
    assert candidates[1].score == -2

    result = await inferencer.scan(text)
    assert (result.zip5, result.state_abbr, result.confidence) == ("80202", "CO", "high")
    assert result.candidates_considered == 2


async def test_zip_plus_four(inferencer):
    result = await inferencer.scan("Mail to Boston MA 02115-1234")
    assert (result.zip5, result.state_abbr, result.state_source) == ("02115", "MA", "text_pattern")


async def test_store_lookup_gives_medium_confidence(location_settings):
    store = InMemoryReferenceStore(
        {TABLE_ZIP_LOCALITY: [{"zip5": "30301", "state_abbr": "ga", "locality_num": "01"}]}
    )
    inferencer = LocationInferencer(store, location_settings)

    result = await inferencer.scan("Statement for services. Remit to ZIP 30301 please.")

    assert result.zip5 == "30301"
    assert result.state_abbr == "GA"
    assert result.state_source == "zip_lookup"
    assert result.confidence == "medium"


async def test_prefix_table_is_the_last_resort(inferencer):
    result = await inferencer.scan("Please remit payment to 62704 today")

    assert (result.zip5, result.state_abbr) == ("62704", "IL")
    assert result.state_source == "zip_lookup"
    assert result.confidence == "medium"


async def test_store_failure_falls_back_to_prefix(location_settings, registry_metrics):
    inferencer = LocationInferencer(UnavailableZipStore(), location_settings)

    result = await inferencer.scan("Please remit payment to 62704 today")

    assert result.state_abbr == "IL"
    assert result.error is None
    errors = registry_metrics.export_json()["counters"][LookupMetrics.UPSTREAM_ERRORS]
    assert sum(errors.values()) == 1


async def test_unexpected_errors_are_reported_not_raised(location_settings):
    inferencer = LocationInferencer(BrokenZipStore(), location_settings)

    result = await inferencer.scan("Please remit payment to 62704 today")

    assert result.ran is True
    assert result.confidence == "low"
    assert result.error == "boom"


@pytest.mark.parametrize("text", ["", "62704", None, "         "])
async def test_short_text_is_not_scanned(inferencer, text):
    result = await inferencer.scan(text)
    assert result.ran is True
    assert result.confidence == "low"
    assert result.error == "No text content to scan"


async def test_out_of_range_zips_are_ignored(inferencer):
    result = await inferencer.scan("Patient account 00100 and more")
    assert result.zip5 is None
    assert result.candidates_considered == 0


def test_text_pattern_requires_a_real_state():
    text = "Springfield, ZZ 62704 and Austin, TX 78701"
    assert LocationInferencer.extract_state_from_text_pattern(text) == "TX"


def test_extract_text_from_filename():
    assert extract_text_from_filename("bill_62704_march.pdf") == "ZIP: 62704"
    assert extract_text_from_filename("62704.pdf") == "ZIP: 62704"
    assert extract_text_from_filename("scan1234567.pdf") == ""
    assert extract_text_from_filename("invoice.pdf") == ""
    assert extract_text_from_filename(None) == ""


async def test_filename_text_can_be_scanned(inferencer):
    result = await inferencer.scan(extract_text_from_filename("bill_62704.pdf"))
    assert (result.zip5, result.state_abbr, result.confidence) == ("62704", "IL", "medium")


@pytest.mark.parametrize(
    "zip5, state",
    [
        ("90210", "CA"),
        ("10001", "MA"),
        ("00501", "PR"),
        ("60601", "IL"),
        ("97201", "OR"),
        ("abc", None),
        ("", None),
    ],
)
def test_derive_state_from_zip_prefix(zip5, state):
    assert derive_state_from_zip_prefix(zip5) == state
