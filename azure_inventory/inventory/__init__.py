from .models import (
    DERIVED_FIELD_GROUPS,
    DERIVED_FIELDS,
    EnrichedRecord,
    LookupResult,
    RawRecord,
    ResourceKind,
    Scope,
)
from .scopes import ScopeEnumerator, ScopeEnumerationError
from .query import PagedQueryExecutor, QueryError, QueryState, ScopeAccessError, build_query
from .enricher import ResourceEnricher, summarize_tags
from .redaction import RedactionError, SensitiveValueRedactor
from .aggregator import ResultAggregator
from .pipeline import InventoryPipeline, InventoryRun

__all__ = [
    "DERIVED_FIELD_GROUPS",
    "DERIVED_FIELDS",
    "EnrichedRecord",
    "LookupResult",
    "RawRecord",
    "ResourceKind",
    "Scope",
    "ScopeEnumerator",
    "ScopeEnumerationError",
    "PagedQueryExecutor",
    "QueryError",
    "QueryState",
    "ScopeAccessError",
    "build_query",
    "ResourceEnricher",
    "summarize_tags",
    "RedactionError",
    "SensitiveValueRedactor",
    "ResultAggregator",
    "InventoryPipeline",
    "InventoryRun",
]
