"""
Inventory pipeline — scopes -> paged query -> enrichment -> redaction -> aggregation.

Fatal conditions (authentication, scope enumeration, query page failures)
propagate to the caller. Scope- and record-level problems are recorded on
the aggregator as warnings and the run continues.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from ..arm.client import ArmClient
from ..config import InventoryConfig
from .aggregator import ResultAggregator
from .enricher import ResourceEnricher
from .models import EnrichedRecord, RawRecord, Scope
from .query import PagedQueryExecutor
from .redaction import RedactionError, SensitiveValueRedactor
from .scopes import ScopeEnumerator

logger = logging.getLogger("azure_inventory.inventory.pipeline")


@dataclass
class InventoryRun:
    """Outcome of one inventory snapshot."""
    run_id: str
    scopes: list[Scope]
    aggregator: ResultAggregator
    query_stats: dict[str, Any] = field(default_factory=dict)
    exported: list[Path] = field(default_factory=list)
    export_failures: list[str] = field(default_factory=list)

    @property
    def records(self) -> list[EnrichedRecord]:
        return self.aggregator.records

    @property
    def no_resources(self) -> bool:
        return not self.aggregator.records

    def summary(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "scopes_queried": len(self.scopes),
            "no_resources": self.no_resources,
            "query": self.query_stats,
            **self.aggregator.summary(),
        }


class InventoryPipeline:
    """Runs one stateless inventory snapshot against an authenticated ARM client."""

    def __init__(self, client: ArmClient, config: InventoryConfig):
        self.client = client
        self.config = config

    async def run(self, run_id: str) -> InventoryRun:
        scopes = await ScopeEnumerator(self.client).enumerate(self.config.subscription_ids)
        aggregator = ResultAggregator(scopes)
        run = InventoryRun(run_id=run_id, scopes=scopes, aggregator=aggregator)
        if not scopes:
            logger.info("No accessible subscriptions; nothing to inventory")
            return run

        executor = PagedQueryExecutor(
            self.client,
            resource_types=self.config.resource_types,
            resource_group=self.config.resource_group,
            page_size=self.config.page_size,
            max_results=self.config.max_results,
            tolerate_permission_errors=self.config.tolerate_permission_errors,
        )
        raw_records = await executor.run(scopes)
        for skipped in executor.skipped_scopes:
            aggregator.warnings.append(str(skipped))
        run.query_stats = {
            "pages_fetched": executor.pages_fetched,
            "records_returned": len(raw_records),
            "duplicates_skipped": executor.duplicates_skipped,
            "truncated_at_limit": executor.truncated,
            "max_results": executor.max_results,
            "scopes_skipped": [e.scope.id for e in executor.skipped_scopes],
        }

        enricher = ResourceEnricher(self.client)
        redactor = SensitiveValueRedactor() if self.config.redact else None
        processed = await self._process_all(raw_records, enricher, redactor, aggregator)
        aggregator.extend(processed)
        aggregator.warnings.extend(enricher.failures)
        if enricher.lookup_failures:
            aggregator.add_warning(
                f"{enricher.lookup_failures} private endpoint NIC lookups unresolved"
            )
        return run

    async def _process_all(
        self,
        raw_records: list[RawRecord],
        enricher: ResourceEnricher,
        redactor: Optional[SensitiveValueRedactor],
        aggregator: ResultAggregator,
    ) -> list[EnrichedRecord]:
        semaphore = asyncio.Semaphore(max(1, self.config.enrichment_concurrency))

        async def process(raw: RawRecord) -> EnrichedRecord:
            async with semaphore:
                record = await enricher.enrich(raw)
            return self._redact(record, redactor, aggregator)

        # gather keeps input order, so arrival order survives concurrent enrichment
        return list(await asyncio.gather(*(process(r) for r in raw_records)))

    @staticmethod
    def _redact(
        record: EnrichedRecord,
        redactor: Optional[SensitiveValueRedactor],
        aggregator: ResultAggregator,
    ) -> EnrichedRecord:
        if redactor is None:
            return record
        try:
            properties = redactor.redact(record.properties)
        except RedactionError as e:
            aggregator.add_error(f"Properties dropped for {record.id}: {e}")
            properties = None
        return dataclasses.replace(record, properties=properties)
