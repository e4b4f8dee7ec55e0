"""Shared fixtures: in-memory store, small master lists, explicit settings."""

from __future__ import annotations

import os

os.environ.setdefault("REFCODE_SKIP_DOTENV", "1")

import pytest

from app.codes.adapters.persistence.inmemory_reference_store import InMemoryReferenceStore
from app.codes.master import EntryListMasterCodeLoader, MasterEntry, build_entry
from app.codes.reverse_index import LocalLexicalIndex
from app.domain.reference_store.repository import TABLE_MPFS
from config.settings import (
    ImportSettings,
    LexicalIndexSettings,
    LocationSettings,
    ResolverSettings,
)
from observability.metrics import RegistryMetricsClient, reset_metrics_client, set_metrics_client


@pytest.fixture
def registry_metrics():
    client = RegistryMetricsClient()
    set_metrics_client(client)
    yield client
    reset_metrics_client()


@pytest.fixture
def index_settings() -> LexicalIndexSettings:
    return LexicalIndexSettings()


@pytest.fixture
def resolver_settings() -> ResolverSettings:
    return ResolverSettings()


@pytest.fixture
def location_settings() -> LocationSettings:
    return LocationSettings()


@pytest.fixture
def import_settings() -> ImportSettings:
    return ImportSettings()


@pytest.fixture
def master_entries() -> list[MasterEntry]:
    return [
        build_entry("45378", "Colonoscopy diagnostic"),
        build_entry("45380", "Colonoscopy with biopsy"),
        build_entry("43239", "Upper GI endoscopy with biopsy"),
        build_entry("99284", "Emergency department visit", synonyms=["ER visit"]),
        build_entry("00100", "Anesthesia for salivary gland procedures"),
        build_entry("E0114", "Crutches underarm pair"),
    ]


@pytest.fixture
def master_loader(master_entries) -> EntryListMasterCodeLoader:
    return EntryListMasterCodeLoader(master_entries)


@pytest.fixture
async def ready_index(master_loader, index_settings) -> LocalLexicalIndex:
    index = LocalLexicalIndex(master_loader, index_settings)
    assert await index.initialize()
    return index


def mpfs_row(hcpcs: str, description: str, **overrides) -> dict:
    row = {
        "hcpcs": hcpcs,
        "modifier": None,
        "description": description,
        "year": 2026,
        "qp_status": "nonQP",
    }
    row.update(overrides)
    return row


@pytest.fixture
def mpfs_store() -> InMemoryReferenceStore:
    return InMemoryReferenceStore(
        {
            TABLE_MPFS: [
                mpfs_row("29881", "Knee arthroscopy with meniscectomy"),
                mpfs_row("29880", "Knee arthroscopy with medial and lateral meniscectomy"),
                mpfs_row("27447", "Total knee arthroplasty"),
                mpfs_row("29881", "Knee arthroscopy with meniscectomy", qp_status="QP"),
                mpfs_row("29870", "Knee arthroscopy diagnostic", year=2025),
            ]
        }
    )
