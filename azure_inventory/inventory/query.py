"""
Paged Resource Graph query execution across a set of subscriptions.

Scopes are queried one at a time, pages are followed with $skipToken, and
the whole run stops once the global result limit is reached. A page that
would overshoot the limit is truncated, so a run never returns more than
``max_results`` records.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Optional

import httpx

from ..arm.client import ArmClient, ArmAPIError
from ..config import (
    DEFAULT_MAX_RESULTS,
    DEFAULT_RESOURCE_TYPES,
    MAX_PAGE_SIZE,
    RESOURCE_TYPE_TAGS,
)
from .models import RawRecord, Scope

logger = logging.getLogger("azure_inventory.inventory.query")

_TAG_TO_ARM_TYPE = {tag: arm_type for arm_type, tag in RESOURCE_TYPE_TAGS.items()}


class QueryState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    HAS_MORE = "has_more"
    EXHAUSTED = "exhausted"
    LIMIT_REACHED = "limit_reached"
    DONE = "done"


class QueryError(Exception):
    """A page fetch failed; the run cannot continue."""
    pass


class ScopeAccessError(Exception):
    """A single subscription refused the query (401/403/404)."""
    def __init__(self, scope: Scope, message: str):
        self.scope = scope
        super().__init__(f"Subscription {scope.id} ({scope.name}) not readable: {message}")


def kql_literal(value: str) -> str:
    return "'" + value.replace("\\", "\\\\").replace("'", "\\'") + "'"


def build_query(resource_types: list[str], resource_group: str = "") -> str:
    """Build the KQL filter: type membership plus optional resource-group equality."""
    arm_types = []
    for t in resource_types or DEFAULT_RESOURCE_TYPES:
        key = t.strip().lower()
        arm_type = _TAG_TO_ARM_TYPE.get(key, key)
        if arm_type and arm_type not in arm_types:
            arm_types.append(arm_type)

    lines = [
        "Resources",
        f"| where type in~ ({', '.join(kql_literal(t) for t in arm_types)})",
    ]
    if resource_group:
        lines.append(f"| where resourceGroup =~ {kql_literal(resource_group)}")
    lines.append(
        "| project id, name, type, resourceGroup, location, subscriptionId, properties, tags"
    )
    lines.append("| order by id asc")
    return "\n".join(lines)


class PagedQueryExecutor:
    """
    Runs one Resource Graph query against each scope in turn.

    State machine: IDLE -> FETCHING -> {HAS_MORE -> FETCHING | EXHAUSTED | LIMIT_REACHED} -> DONE.
    """

    def __init__(
        self,
        client: ArmClient,
        resource_types: Optional[list[str]] = None,
        resource_group: str = "",
        page_size: int = MAX_PAGE_SIZE,
        max_results: int = DEFAULT_MAX_RESULTS,
        tolerate_permission_errors: bool = True,
    ):
        if max_results < 0:
            raise ValueError("max_results must not be negative")
        self.client = client
        self.query = build_query(resource_types or DEFAULT_RESOURCE_TYPES, resource_group)
        self.page_size = max(1, min(page_size, MAX_PAGE_SIZE))
        self.max_results = max_results
        self.tolerate_permission_errors = tolerate_permission_errors
        self.state = QueryState.IDLE
        self.pages_fetched = 0
        self.duplicates_skipped = 0
        self.truncated = False
        self.skipped_scopes: list[ScopeAccessError] = []

    async def run(self, scopes: list[Scope]) -> list[RawRecord]:
        records: list[RawRecord] = []
        seen: set[str] = set()

        for scope in scopes:
            if len(records) >= self.max_results:
                self.state = QueryState.LIMIT_REACHED
                break
            try:
                scope_records = await self._run_scope(scope, len(records), seen)
            except ScopeAccessError as e:
                if not self.tolerate_permission_errors:
                    raise QueryError(str(e)) from e
                self.skipped_scopes.append(e)
                logger.warning(f"Skipping scope: {e}")
                continue
            # A scope contributes nothing unless every one of its pages succeeded.
            seen.update(r.id.lower() for r in scope_records)
            records.extend(scope_records)
            if self.state is QueryState.LIMIT_REACHED:
                break

        if self.state is QueryState.LIMIT_REACHED:
            logger.info(f"Result limit of {self.max_results} reached")
        self.state = QueryState.DONE
        logger.info(
            f"Query returned {len(records)} records in {self.pages_fetched} pages "
            f"across {len(scopes)} scopes"
        )
        return records

    async def _run_scope(self, scope: Scope, accepted: int, seen: set[str]) -> list[RawRecord]:
        """Page through one scope. ``accepted`` counts records already taken from earlier scopes."""
        token: Optional[str] = None
        records: list[RawRecord] = []
        scope_seen: set[str] = set()
        duplicates = 0

        while True:
            remaining = self.max_results - accepted - len(records)
            if remaining <= 0:
                self.state = QueryState.LIMIT_REACHED
                break

            self.state = QueryState.FETCHING
            page = await self._fetch_page(scope, min(self.page_size, remaining), token)
            rows = page.get("data") or []
            if not isinstance(rows, list):
                raise QueryError(f"Malformed Resource Graph page for {scope.id}: 'data' is not a list")
            if len(rows) > self.page_size:
                raise QueryError(
                    f"Resource Graph page for {scope.id} exceeded page size "
                    f"({len(rows)} > {self.page_size})"
                )
            self.pages_fetched += 1

            limit_hit = False
            for row in rows:
                record = RawRecord.from_graph_row(row, scope.id)
                key = record.id.lower()
                if not key or key in seen or key in scope_seen:
                    duplicates += 1
                    continue
                if accepted + len(records) >= self.max_results:
                    limit_hit = True
                    break
                scope_seen.add(key)
                records.append(record)
            if limit_hit:
                self.truncated = True
                self.state = QueryState.LIMIT_REACHED
                break

            token = page.get("$skipToken")
            if not token:
                self.state = QueryState.EXHAUSTED
                break
            if accepted + len(records) >= self.max_results:
                self.truncated = True
                self.state = QueryState.LIMIT_REACHED
                break
            self.state = QueryState.HAS_MORE

        self.duplicates_skipped += duplicates
        return records

    async def _fetch_page(self, scope: Scope, top: int, token: Optional[str]) -> dict:
        try:
            return await self.client.query_resources([scope.id], self.query, top=top, skip_token=token)
        except ArmAPIError as e:
            if e.is_permission_error:
                raise ScopeAccessError(scope, e.message) from e
            raise QueryError(f"Resource Graph query failed for {scope.id}: {e}") from e
        except httpx.HTTPError as e:
            raise QueryError(f"Resource Graph query failed for {scope.id}: {e}") from e
