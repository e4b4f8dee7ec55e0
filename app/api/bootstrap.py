"""API startup/shutdown bootstrap orchestration."""

from __future__ import annotations

from fastapi import FastAPI

from app.codes.adapters.persistence import build_reference_store
from app.codes.master import MasterCodeLoader, build_master_loader
from app.codes.reverse_index import LocalLexicalIndex
from app.codes.reverse_search import ReverseCodeSearch
from app.domain.reference_store.repository import ReferenceStore
from app.importers.writer import ReferenceImporter
from app.location.prescan import LocationInferencer
from config.startup_settings import validate_startup_env
from observability.logging_config import get_logger


class StartupBootstrap:
    """Build the long-lived lookup services once and publish them on ``app.state``.

    ``store`` and ``loader`` override the environment-selected collaborators
    (tests pass in-memory ones).
    """

    def __init__(
        self,
        app: FastAPI,
        store: ReferenceStore | None = None,
        loader: MasterCodeLoader | None = None,
    ) -> None:
        self.app = app
        self.store = store
        self.loader = loader
        self.logger = get_logger("api.bootstrap")

    async def startup(self) -> None:
        validate_startup_env()

        store = self.store or build_reference_store()
        index = LocalLexicalIndex(self.loader or build_master_loader())

        self.app.state.lexical_index = index
        self.app.state.resolver = ReverseCodeSearch(store, index)
        self.app.state.inferencer = LocationInferencer(store)
        self.app.state.importer = ReferenceImporter(store)

        self.app.state.index_ready = False
        self.app.state.index_error = None

        ok = await index.initialize()
        self.app.state.index_ready = ok
        if ok:
            self.logger.info(f"Lexical index ready with {len(index)} entries")
        else:
            self.app.state.index_error = "Master code list failed to load"
            self.logger.error("Lexical index failed to build; fallback search will return no candidates")

    async def shutdown(self) -> None:
        index = getattr(self.app.state, "lexical_index", None)
        if index is not None:
            index.reset()


__all__ = ["StartupBootstrap"]
