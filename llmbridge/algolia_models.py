"""Data types for the search interface and for the Algolia wire format."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class FieldType(Enum):
    TEXT = "text"
    KEYWORD = "keyword"
    INTEGER = "integer"
    FLOAT = "float"
    BOOLEAN = "boolean"
    DATE = "date"
    GEO_POINT = "geo-point"


@dataclass
class FieldDefinition:
    name: str
    field_type: FieldType = FieldType.TEXT
    searchable: bool = False
    facetable: bool = False
    retrievable: bool = True
    sortable: bool = False


@dataclass
class Schema:
    primary_key: str
    fields: list[FieldDefinition] = field(default_factory=list)
    provider_params: str | None = None


@dataclass
class FacetFilter:
    field: str
    value: str


@dataclass
class SearchQuery:
    query: str
    facet_filters: list[FacetFilter] = field(default_factory=list)
    page: int | None = None
    per_page: int | None = None
    sort_by: str | None = None
    sort_order: str | None = None


@dataclass
class Document:
    """A stored document; data is a JSON string."""

    data: str
    id: str | None = None


@dataclass
class SearchHit:
    id: str
    data: str
    score: float | None = None
    highlights: str | None = None


@dataclass
class FacetValue:
    value: str
    count: int


@dataclass
class FacetResult:
    field: str
    values: list[FacetValue] = field(default_factory=list)


@dataclass
class SearchResults:
    hits: list[SearchHit]
    total_hits: int
    page: int
    per_page: int
    facets: list[FacetResult] = field(default_factory=list)
    processing_time_ms: int | None = None


class SearchErrorCode(Enum):
    INVALID_REQUEST = "invalid-request"
    AUTHENTICATION_FAILED = "authentication-failed"
    RATE_LIMIT_EXCEEDED = "rate-limit-exceeded"
    INTERNAL_ERROR = "internal-error"
    UNSUPPORTED = "unsupported"


class SearchError(Exception):
    """A failure reported by, or while talking to, a search provider."""

    def __init__(
        self, code: SearchErrorCode, message: str, retry_after: int | None = None
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.retry_after = retry_after

    def __repr__(self) -> str:
        return f"SearchError({self.code!r}, {self.message!r})"


@dataclass
class AlgoliaIndexSettings:
    searchable_attributes: list[str] | None = None
    attributes_for_faceting: list[str] | None = None
    unretrievable_attributes: list[str] | None = None
    typo_tolerance: Any = None
    min_word_size_for_1_typo: int | None = None
    min_word_size_for_2_typos: int | None = None
    typo_tolerance_min: bool | None = None
    typo_tolerance_strict: bool | None = None
    remove_stop_words: Any = None
    ignore_plurals: Any = None
    query_languages: list[str] | None = None
    index_languages: list[str] | None = None
    synonyms: list[dict[str, Any]] | None = None
    stop_words: list[str] | None = None
    custom_ranking: list[str] | None = None
    distinct: Any = None
    min_proximity: int | None = None
    separators_to_index: str | None = None
    highlight_pre_tag: str | None = None
    highlight_post_tag: str | None = None


@dataclass
class AlgoliaSearchQuery:
    query: str = ""
    filters: str | None = None
    facets: list[str] | None = None
    page: int | None = None
    hits_per_page: int | None = None
    highlight_pre_tag: str | None = None
    highlight_post_tag: str | None = None
    attributes_to_retrieve: list[str] | None = None
    sort: list[str] | None = None
    facet_filters: Any = None
    numeric_filters: list[str] | None = None
    tag_filters: Any = None
    attributes_to_highlight: list[str] | None = None
    attributes_to_snippet: list[str] | None = None
    highlight_pre_tag_override: str | None = None
    highlight_post_tag_override: str | None = None
    restrict_highlight_and_snippet_arrays: bool | None = None
    get_ranking_info: bool | None = None
    distinct: Any = None
    typo_tolerance: str | None = None
    analytics: bool | None = None
    synonyms: bool | None = None
    replace_synonyms_in_highlight: bool | None = None
    min_proximity: int | None = None


@dataclass
class AlgoliaSearchHit:
    """One hit; data holds the whole record as returned, objectID included."""

    object_id: str
    data: Any
    highlight_result: Any = None
    ranking_info: Any = None


@dataclass
class AlgoliaSearchResults:
    hits: list[AlgoliaSearchHit]
    nb_hits: int
    page: int
    hits_per_page: int
    processing_time_ms: int
    facets: dict[str, dict[str, int]] | None = None