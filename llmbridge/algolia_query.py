"""Builders for advanced Algolia query options and mapping of Algolia failures."""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from .algolia_models import AlgoliaSearchQuery, SearchError, SearchErrorCode

_U64_MAX = 2**64 - 1
_RATE_LIMIT_RETRY_SECONDS = 60


def _as_u32(value: Any) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= _U64_MAX:
        return None
    return value & 0xFFFFFFFF


def create_complex_filter(filters: Iterable[tuple[str, str]], operator: str) -> str:
    """Join field:value filters with AND or OR; any other operator means AND."""
    parts = [f"{field}:{value}" for field, value in filters]
    joiner = " OR " if operator.lower() == "or" else " AND "
    return joiner.join(parts)


def create_advanced_facet_filters(
    filters: Mapping[str, Sequence[str]],
    inter_field_logic: str,
    intra_field_logic: str,
) -> list[Any] | None:
    """Build a nested facet filter structure.

    Values of one field are ORed (one array) or ANDed (one array each) according
    to intra_field_logic; fields are ANDed unless inter_field_logic is "or", in
    which case the groups are flattened into a single array. Returns None when
    there are no filters.
    """
    if not filters:
        return None

    groups: list[Any] = []
    for field, values in filters.items():
        if len(values) == 1:
            groups.append(f"{field}:{values[0]}")
            continue
        field_filters = [f"{field}:{value}" for value in values]
        if intra_field_logic == "and":
            groups.append([[item] for item in field_filters])
        else:
            groups.append(field_filters)

    if inter_field_logic == "or" and len(groups) > 1:
        flattened: list[Any] = []
        for group in groups:
            if isinstance(group, list):
                flattened.extend(group)
            else:
                flattened.append(group)
        return flattened
    return groups


def configure_advanced_highlighting(
    query: AlgoliaSearchQuery,
    highlight_fields: Sequence[str] | None,
    snippet_fields: Sequence[str] | None,
    pre_tag: str | None,
    post_tag: str | None,
    restrict_arrays: bool,
) -> None:
    """Set highlighting and snippet options on a query."""
    if highlight_fields is not None:
        query.attributes_to_highlight = list(highlight_fields)
    if snippet_fields is not None:
        query.attributes_to_snippet = list(snippet_fields)
    if pre_tag is not None:
        query.highlight_pre_tag_override = pre_tag
    if post_tag is not None:
        query.highlight_post_tag_override = post_tag
    query.restrict_highlight_and_snippet_arrays = restrict_arrays


def configure_custom_ranking(
    query: AlgoliaSearchQuery,
    sort_attributes: Sequence[str],
    custom_ranking_formula: str | None,
    distinct_attribute: str | None,
    typo_tolerance: str | None,
) -> None:
    """Set sorting, distinct and typo tolerance; ranking info is always requested.

    Sort attributes without an explicit asc(...) or desc(...) sort ascending.
    The custom ranking formula is accepted but not used by queries.
    """
    if sort_attributes:
        query.sort = [
            attr if attr.startswith(("desc(", "asc(")) else f"asc({attr})"
            for attr in sort_attributes
        ]
    if distinct_attribute is not None:
        query.distinct = distinct_attribute
    if typo_tolerance is not None:
        query.typo_tolerance = typo_tolerance
    query.get_ranking_info = True


def configure_attribute_retrieval(
    query: AlgoliaSearchQuery,
    attributes_to_retrieve: Sequence[str] | None,
    restrict_sources: bool,
) -> None:
    """Limit the retrieved attributes; restricting sources turns analytics off."""
    if attributes_to_retrieve is not None:
        query.attributes_to_retrieve = list(attributes_to_retrieve)
    if restrict_sources:
        query.analytics = False


def apply_provider_query_params(
    query: AlgoliaSearchQuery, provider_params: str | None
) -> None:
    """Apply query options given as a JSON object; unparsable input is ignored."""
    if provider_params is None:
        return
    try:
        params = json.loads(provider_params)
    except json.JSONDecodeError:
        return
    if not isinstance(params, dict):
        return

    numeric = params.get("numericFilters")
    if isinstance(numeric, list):
        strings = [item for item in numeric if isinstance(item, str)]
        if strings:
            query.numeric_filters = strings

    if "tagFilters" in params:
        query.tag_filters = params["tagFilters"]

    if isinstance(params.get("typoTolerance"), str):
        query.typo_tolerance = params["typoTolerance"]

    if isinstance(params.get("synonyms"), bool):
        query.synonyms = params["synonyms"]

    if isinstance(params.get("replaceSynonymsInHighlight"), bool):
        query.replace_synonyms_in_highlight = params["replaceSynonymsInHighlight"]

    proximity = _as_u32(params.get("minProximity"))
    if proximity is not None:
        query.min_proximity = proximity

    if "distinct" in params:
        query.distinct = params["distinct"]


def map_algolia_error(error: BaseException | str) -> SearchError:
    """Classify a failure by its message into a search error."""
    text = str(error)

    if "404" in text or "not found" in text:
        code, message = SearchErrorCode.INTERNAL_ERROR, "Resource not found"
    elif "401" in text or "403" in text or "authentication" in text:
        code, message = SearchErrorCode.AUTHENTICATION_FAILED, "Authentication failed"
    elif "429" in text or "rate limit" in text:
        code, message = SearchErrorCode.RATE_LIMIT_EXCEEDED, "Rate limit exceeded"
    elif "400" in text or "invalid" in text:
        code, message = SearchErrorCode.INVALID_REQUEST, "Invalid query or request"
    elif "unsupported" in text:
        code, message = SearchErrorCode.UNSUPPORTED, "Operation not supported"
    else:
        code, message = SearchErrorCode.INTERNAL_ERROR, f"Internal error: {text}"

    retry_after = (
        _RATE_LIMIT_RETRY_SECONDS if code is SearchErrorCode.RATE_LIMIT_EXCEEDED else None
    )
    return SearchError(code, message, retry_after=retry_after)