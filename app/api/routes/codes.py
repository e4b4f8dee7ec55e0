"""Code normalization, lexical search and reverse resolution endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from app.api.dependencies import get_lexical_index, get_resolver
from app.api.readiness import require_ready
from app.api.schemas.lookup import (
    NormalizeRequest,
    NormalizeResponse,
    ResolveRequest,
    SearchRequest,
    SearchResponse,
)
from app.codes.normalizer import extract_code_and_modifier, is_valid_code_format, normalize_code
from app.codes.reverse_index import LocalLexicalIndex
from app.codes.reverse_search import ReverseCodeSearch
from billing_schemas.codes import ResolutionResult

router = APIRouter(prefix="/codes")


@router.post("/normalize", response_model=NormalizeResponse)
async def normalize(payload: NormalizeRequest) -> NormalizeResponse:
    normalized = normalize_code(payload.value)
    split = extract_code_and_modifier(payload.value)
    return NormalizeResponse(
        normalized=normalized,
        is_valid_format=is_valid_code_format(normalized),
        code=split.code,
        modifier=split.modifier,
    )


@router.post(
    "/search",
    response_model=SearchResponse,
    dependencies=[Depends(require_ready)],
)
async def search(
    payload: SearchRequest,
    index: LocalLexicalIndex = Depends(get_lexical_index),
) -> SearchResponse:
    return SearchResponse(query=payload.query, candidates=index.search(payload.query, payload.max_results))


@router.post("/resolve", response_model=ResolutionResult)
async def resolve(
    payload: ResolveRequest,
    resolver: ReverseCodeSearch = Depends(get_resolver),
) -> ResolutionResult:
    return await resolver.resolve(
        payload.query_text,
        include_opps=payload.include_opps,
        include_dmepos=payload.include_dmepos,
    )
