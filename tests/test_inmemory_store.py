from app.codes.adapters.persistence.inmemory_reference_store import InMemoryReferenceStore
from app.domain.reference_store.repository import TABLE_MPFS, TABLE_OPPS, DescriptionRow


async def test_substring_search_is_case_insensitive_and_filtered(mpfs_store):
    rows = await mpfs_store.find_by_description_substring(
        TABLE_MPFS, "MENISC", filters={"year": "2026", "qp_status": "nonQP"}
    )
    assert rows == [
        DescriptionRow(code="29881", description="Knee arthroscopy with meniscectomy"),
        DescriptionRow(code="29880", description="Knee arthroscopy with medial and lateral meniscectomy"),
    ]


async def test_substring_search_respects_limit(mpfs_store):
    rows = await mpfs_store.find_by_description_substring(TABLE_MPFS, "knee", limit=2)
    assert len(rows) == 2


async def test_substring_search_over_several_columns():
    store = InMemoryReferenceStore(
        {TABLE_OPPS: [{"hcpcs": "29880", "long_desc": "", "short_desc": "Knee scope menisc", "year": 2025}]}
    )
    rows = await store.find_by_description_substring(
        TABLE_OPPS, "scope", description_columns=("long_desc", "short_desc")
    )
    assert rows == [DescriptionRow(code="29880", description="Knee scope menisc")]


async def test_missing_table_is_empty():
    store = InMemoryReferenceStore()
    assert await store.count_exact("nope") == 0
    assert await store.find_by_description_substring("nope", "knee") == []
    assert await store.find_by_exact_key("nope", "zip5", "10001") is None


async def test_upsert_and_exact_lookup():
    store = InMemoryReferenceStore()
    await store.upsert("zip_to_locality", [{"zip5": "10001", "state_abbr": "NY"}], "zip5")
    await store.upsert("zip_to_locality", [{"zip5": "10001", "state_abbr": "NJ"}], "zip5")

    assert await store.count_exact("zip_to_locality") == 1
    row = await store.find_by_exact_key("zip_to_locality", "zip5", "10001")
    assert row == {"zip5": "10001", "state_abbr": "NJ"}

    row["state_abbr"] = "changed"
    assert store.rows("zip_to_locality")[0]["state_abbr"] == "NJ"
