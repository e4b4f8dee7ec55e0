"""FastAPI dependency providers for the lookup services.

The services are built once by ``StartupBootstrap`` and live on
``app.state``; these providers hand them to route handlers.
"""

from __future__ import annotations

from fastapi import Request

from app.codes.reverse_index import LocalLexicalIndex
from app.codes.reverse_search import ReverseCodeSearch
from app.importers.writer import ReferenceImporter
from app.location.prescan import LocationInferencer


def get_lexical_index(request: Request) -> LocalLexicalIndex:
    return request.app.state.lexical_index


def get_resolver(request: Request) -> ReverseCodeSearch:
    return request.app.state.resolver


def get_inferencer(request: Request) -> LocationInferencer:
    return request.app.state.inferencer


def get_importer(request: Request) -> ReferenceImporter:
    return request.app.state.importer


__all__ = [
    "get_lexical_index",
    "get_resolver",
    "get_inferencer",
    "get_importer",
]
