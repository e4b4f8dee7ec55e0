"""Reference store adapters."""

from __future__ import annotations

from app.codes.adapters.persistence.inmemory_reference_store import InMemoryReferenceStore
from app.domain.reference_store.repository import ReferenceStore
from config.settings import ReferenceStoreSettings, get_reference_store_settings


def build_reference_store(settings: ReferenceStoreSettings | None = None) -> ReferenceStore:
    """Create the store selected by ``REFSTORE_BACKEND``."""
    settings = settings or get_reference_store_settings()
    if settings.backend == "supabase":
        from app.codes.adapters.persistence.supabase_reference_store import SupabaseReferenceStore

        return SupabaseReferenceStore(settings=settings)
    return InMemoryReferenceStore()


__all__ = ["InMemoryReferenceStore", "build_reference_store"]
