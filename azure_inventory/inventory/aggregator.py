"""
Result aggregation — arrival-ordered record list plus grouped counts for reporting.
"""

from __future__ import annotations

import logging
from collections import Counter, defaultdict
from typing import Any, Optional

from .models import EnrichedRecord, Scope

logger = logging.getLogger("azure_inventory.inventory.aggregator")


class ResultAggregator:
    """
    Collects enriched records in arrival order (scope, page, in-page position).

    Identifier uniqueness is guaranteed by the query executor and is not
    re-checked here. There is a single writer: the pipeline hands over
    records only after concurrent enrichment has finished.
    """

    def __init__(self, scopes: Optional[list[Scope]] = None):
        self.scopes: dict[str, Scope] = {s.id: s for s in scopes or []}
        self.records: list[EnrichedRecord] = []
        self.warnings: list[str] = []
        self.errors: list[str] = []

    def add(self, record: EnrichedRecord):
        self.records.append(record)

    def extend(self, records: list[EnrichedRecord]):
        for record in records:
            self.add(record)

    def add_warning(self, warning: str):
        self.warnings.append(warning)
        logger.warning(warning)

    def add_error(self, error: str):
        self.errors.append(error)
        logger.error(error)

    def scope_name(self, scope_id: str) -> str:
        scope = self.scopes.get(scope_id)
        return scope.name if scope else ""

    def counts_by_type(self) -> dict[str, int]:
        """Overall record count per resource type, most common first."""
        return dict(Counter(r.type for r in self.records).most_common())

    def counts_by_scope(self) -> dict[str, dict[str, int]]:
        """Per-scope record count per resource type, scopes in arrival order."""
        grouped: dict[str, Counter] = defaultdict(Counter)
        for r in self.records:
            grouped[r.scope_id][r.type] += 1
        return {scope_id: dict(counts.most_common()) for scope_id, counts in grouped.items()}

    def summary(self) -> dict[str, Any]:
        return {
            "total_records": len(self.records),
            "scopes_with_records": len({r.scope_id for r in self.records}),
            "by_type": self.counts_by_type(),
            "by_scope": {
                scope_id: {"name": self.scope_name(scope_id), "by_type": counts}
                for scope_id, counts in self.counts_by_scope().items()
            },
            "warnings": list(self.warnings),
            "errors": list(self.errors),
        }
