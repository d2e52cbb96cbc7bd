"""Conversions between the search interface types and Algolia's format."""

from __future__ import annotations

import json
import struct
import uuid
from typing import Any

from .algolia_models import (
    AlgoliaIndexSettings,
    AlgoliaSearchHit,
    AlgoliaSearchQuery,
    AlgoliaSearchResults,
    Document,
    FacetResult,
    FacetValue,
    Schema,
    SearchHit,
    SearchQuery,
    SearchResults,
)

_U64_MAX = 2**64 - 1
_ALGOLIA_FIELDS = ("objectID", "_highlightResult", "_rankingInfo", "_snippetResult")


def _dumps(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), sort_keys=True, ensure_ascii=False)


def _as_u32(value: Any) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= _U64_MAX:
        return None
    return value & 0xFFFFFFFF


def _as_f64(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def _to_f32(value: float) -> float:
    return struct.unpack("f", struct.pack("f", value))[0]


def _strings(value: Any) -> list[str] | None:
    """The string elements of a JSON array, or None if there are none."""
    if not isinstance(value, list):
        return None
    strings = [item for item in value if isinstance(item, str)]
    return strings or None


def _params(provider_params: str | None) -> dict[str, Any] | None:
    if provider_params is None:
        return None
    try:
        params = json.loads(provider_params)
    except json.JSONDecodeError:
        return None
    return params if isinstance(params, dict) else None


def _apply_schema_params(settings: AlgoliaIndexSettings, params: dict[str, Any]) -> None:
    if "typoTolerance" in params:
        settings.typo_tolerance = params["typoTolerance"]
    if (size := _as_u32(params.get("minWordSizefor1Typo"))) is not None:
        settings.min_word_size_for_1_typo = size
    if (size := _as_u32(params.get("minWordSizefor2Typos"))) is not None:
        settings.min_word_size_for_2_typos = size
    if isinstance(params.get("typoToleranceMin"), bool):
        settings.typo_tolerance_min = params["typoToleranceMin"]
    if isinstance(params.get("typoToleranceStrict"), bool):
        settings.typo_tolerance_strict = params["typoToleranceStrict"]
    if "removeStopWords" in params:
        settings.remove_stop_words = params["removeStopWords"]
    if "ignorePlurals" in params:
        settings.ignore_plurals = params["ignorePlurals"]
    if (languages := _strings(params.get("queryLanguages"))) is not None:
        settings.query_languages = languages
    if (languages := _strings(params.get("indexLanguages"))) is not None:
        settings.index_languages = languages
    synonyms = params.get("synonyms")
    if isinstance(synonyms, list):
        objects = [dict(item) for item in synonyms if isinstance(item, dict)]
        if objects:
            settings.synonyms = objects
    if (words := _strings(params.get("stopWords"))) is not None:
        settings.stop_words = words
    if (ranking := _strings(params.get("customRanking"))) is not None:
        settings.custom_ranking = ranking
    if "distinct" in params:
        settings.distinct = params["distinct"]
    if (proximity := _as_u32(params.get("minProximity"))) is not None:
        settings.min_proximity = proximity
    if isinstance(params.get("separatorsToIndex"), str):
        settings.separators_to_index = params["separatorsToIndex"]
    if isinstance(params.get("highlightPreTag"), str):
        settings.highlight_pre_tag = params["highlightPreTag"]
    if isinstance(params.get("highlightPostTag"), str):
        settings.highlight_post_tag = params["highlightPostTag"]


def schema_to_index_settings(schema: Schema) -> AlgoliaIndexSettings:
    """Derive index settings from a schema and its provider parameters."""
    settings = AlgoliaIndexSettings()

    searchable = [f.name for f in schema.fields if f.searchable]
    if searchable:
        settings.searchable_attributes = searchable

    facets = [
        f.name if f.searchable else f"filterOnly({f.name})"
        for f in schema.fields
        if f.facetable
    ]
    if facets:
        settings.attributes_for_faceting = facets

    unretrievable = [f.name for f in schema.fields if not f.retrievable]
    if unretrievable:
        settings.unretrievable_attributes = unretrievable

    params = _params(schema.provider_params)
    if params is not None:
        _apply_schema_params(settings, params)
    return settings


def search_query_to_algolia_query(query: SearchQuery) -> AlgoliaSearchQuery:
    """Build an Algolia query: filters are ORed within a field and ANDed across fields."""
    algolia_query = AlgoliaSearchQuery(
        query=query.query, page=query.page, hits_per_page=query.per_page
    )

    if query.facet_filters:
        groups: dict[str, list[str]] = {}
        for facet_filter in query.facet_filters:
            groups.setdefault(facet_filter.field, []).append(
                f"{facet_filter.field}:{facet_filter.value}"
            )
        if len(groups) == 1:
            algolia_query.facet_filters = list(next(iter(groups.values())))
        else:
            algolia_query.facet_filters = [
                filters[0] if len(filters) == 1 else list(filters)
                for filters in groups.values()
            ]
        algolia_query.facets = list(groups)

    if query.sort_by is not None and query.sort_order is not None:
        orders = query.sort_order.split(",")
        sort = []
        for i, sort_field in enumerate(query.sort_by.split(",")):
            order = orders[i] if i < len(orders) else "asc"
            direction = "desc" if order == "desc" else "asc"
            sort.append(f"{direction}({sort_field.strip()})")
        algolia_query.sort = sort

    algolia_query.get_ranking_info = True
    algolia_query.analytics = True
    algolia_query.synonyms = True
    return algolia_query


def algolia_results_to_search_results(results: AlgoliaSearchResults) -> SearchResults:
    hits = [algolia_hit_to_search_hit(hit) for hit in results.hits]
    facets = [
        FacetResult(
            field=facet_field,
            values=[FacetValue(value=value, count=count) for value, count in values.items()],
        )
        for facet_field, values in (results.facets or {}).items()
    ]
    return SearchResults(
        hits=hits,
        total_hits=results.nb_hits,
        page=results.page,
        per_page=results.hits_per_page,
        facets=facets,
        processing_time_ms=results.processing_time_ms,
    )


def _highlights(highlight_result: Any) -> str:
    highlights: dict[str, Any] = {}
    if isinstance(highlight_result, dict):
        for name, info in highlight_result.items():
            if not isinstance(info, dict):
                continue
            if "value" in info:
                highlights[name] = info["value"]
            if "matchLevel" in info:
                highlights[f"{name}_matchLevel"] = info["matchLevel"]
            if "matchedWords" in info:
                highlights[f"{name}_matchedWords"] = info["matchedWords"]
    return _dumps(highlights)


def _score(ranking_info: Any) -> float:
    info = ranking_info if isinstance(ranking_info, dict) else {}
    for key in ("score", "userScore", "geoDistance"):
        value = _as_f64(info.get(key))
        if value is not None:
            return value
    combined = 1.0
    for key in ("typoScore", "geoScore", "wordsScore", "filtersScore"):
        value = _as_f64(info.get(key))
        combined *= 1.0 if value is None else value
    return combined


def algolia_hit_to_search_hit(hit: AlgoliaSearchHit) -> SearchHit:
    """Strip Algolia's own fields from a hit and summarise highlights and score."""
    data = hit.data
    if isinstance(data, dict):
        data = {key: value for key, value in data.items() if key not in _ALGOLIA_FIELDS}

    return SearchHit(
        id=hit.object_id,
        data=_dumps(data),
        score=_to_f32(_score(hit.ranking_info)) if hit.ranking_info is not None else None,
        highlights=_highlights(hit.highlight_result)
        if hit.highlight_result is not None
        else None,
    )


def document_to_algolia_object(document: Document) -> tuple[str, Any]:
    """Parse a document and set its objectID, generating one when it has no id."""
    try:
        data = json.loads(document.data)
    except json.JSONDecodeError as err:
        raise ValueError(f"Failed to parse document data: {err}") from err
    object_id = document.id if document.id is not None else str(uuid.uuid4())
    if isinstance(data, dict):
        data["objectID"] = object_id
    return object_id, data


def algolia_object_to_document(object_id: str, data: Any) -> Document:
    if isinstance(data, dict):
        data = {key: value for key, value in data.items() if key != "objectID"}
    return Document(id=object_id, data=_dumps(data))