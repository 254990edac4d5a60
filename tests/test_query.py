"""
Tests for PagedQueryExecutor

Tests cover:
- Result count equals min(available, limit) across page chunkings
- Truncation of a page that would overshoot the limit
- Duplicate suppression
- Scope-recoverable vs fatal failures
- KQL construction
"""

import httpx
import pytest

from azure_inventory.arm.client import ArmAPIError
from azure_inventory.inventory.models import Scope
from azure_inventory.inventory.query import (
    PagedQueryExecutor,
    QueryError,
    QueryState,
    build_query,
)
from conftest import FakeArmClient, make_row


def rows_for(scope_id: str, count: int) -> list[dict]:
    return [make_row(scope_id, f"sa{scope_id[-1]}{i:03d}") for i in range(count)]


class TestResultLimit:
    """The executor returns exactly min(N, L) unique records."""

    @pytest.mark.parametrize("available", [0, 1, 7, 25])
    @pytest.mark.parametrize("limit", [1, 5, 25, 100])
    @pytest.mark.parametrize("chunk", [1, 4, 1000])
    async def test_count_is_min_of_available_and_limit(self, available, limit, chunk):
        scope = Scope(id="sub-a", name="A")
        client = FakeArmClient({"sub-a": rows_for("sub-a", available)}, chunk=chunk)
        executor = PagedQueryExecutor(client, max_results=limit, page_size=10)

        records = await executor.run([scope])

        assert len(records) == min(available, limit)
        assert len({r.id for r in records}) == len(records)
        assert executor.state is QueryState.DONE

    async def test_limit_spans_scopes_in_order(self, scopes):
        client = FakeArmClient({s.id: rows_for(s.id, 4) for s in scopes}, chunk=3)
        executor = PagedQueryExecutor(client, max_results=6)

        records = await executor.run(scopes)

        assert [r.scope_id for r in records] == ["sub-a"] * 4 + ["sub-b"] * 2
        # sub-c is never queried once the limit is reached
        assert all(c["subscriptions"] != ["sub-c"] for c in client.calls)

    async def test_requests_never_exceed_remaining_or_page_size(self):
        client = FakeArmClient({"sub-a": rows_for("sub-a", 50)}, chunk=1000)
        executor = PagedQueryExecutor(client, max_results=23, page_size=10)

        await executor.run([Scope(id="sub-a", name="A")])

        assert [c["top"] for c in client.calls] == [10, 10, 3]

    async def test_overshooting_page_is_truncated(self):
        """A server that ignores $top still cannot push the run past the limit."""
        client = FakeArmClient({"sub-a": rows_for("sub-a", 30)}, chunk=10, honor_top=False)
        executor = PagedQueryExecutor(client, max_results=15, page_size=10)

        records = await executor.run([Scope(id="sub-a", name="A")])

        assert len(records) == 15
        assert executor.truncated is True
        assert [r.name for r in records] == [f"saa{i:03d}" for i in range(15)]

    async def test_stops_on_missing_continuation_token(self):
        client = FakeArmClient({"sub-a": rows_for("sub-a", 9)}, chunk=4)
        executor = PagedQueryExecutor(client, max_results=100)

        records = await executor.run([Scope(id="sub-a", name="A")])

        assert len(records) == 9
        assert [c["skip_token"] for c in client.calls] == [None, "4", "8"]
        assert executor.truncated is False

    async def test_zero_limit_issues_no_queries(self):
        client = FakeArmClient({"sub-a": rows_for("sub-a", 3)})
        executor = PagedQueryExecutor(client, max_results=0)

        assert await executor.run([Scope(id="sub-a", name="A")]) == []
        assert client.calls == []

    def test_negative_limit_rejected(self):
        with pytest.raises(ValueError):
            PagedQueryExecutor(FakeArmClient(), max_results=-1)


class TestDuplicates:
    """Identifiers are unique within a run."""

    async def test_duplicate_ids_across_pages_are_dropped(self):
        rows = rows_for("sub-a", 3)
        rows.append(dict(rows[0]))
        client = FakeArmClient({"sub-a": rows}, chunk=2)
        executor = PagedQueryExecutor(client, max_results=10)

        records = await executor.run([Scope(id="sub-a", name="A")])

        assert len(records) == 3
        assert executor.duplicates_skipped == 1

    async def test_duplicate_ids_differing_in_case_are_dropped(self):
        rows = rows_for("sub-a", 1)
        upper = dict(rows[0], id=rows[0]["id"].upper())
        client = FakeArmClient({"sub-a": rows + [upper]})
        records = await PagedQueryExecutor(client).run([Scope(id="sub-a", name="A")])

        assert len(records) == 1


class TestFailures:
    """Scope-level permission errors are skipped; other page failures are fatal."""

    async def test_forbidden_scope_is_skipped_with_warning(self, scopes):
        client = FakeArmClient(
            {s.id: rows_for(s.id, 2) for s in scopes},
            failures={"sub-b": ArmAPIError(403, "AuthorizationFailed", "https://x")},
        )
        executor = PagedQueryExecutor(client)

        records = await executor.run(scopes)

        assert {r.scope_id for r in records} == {"sub-a", "sub-c"}
        assert [e.scope.id for e in executor.skipped_scopes] == ["sub-b"]

    async def test_scope_failing_mid_pagination_contributes_nothing(self, scopes):
        class LaterPageForbidden(FakeArmClient):
            async def query_resources(self, subscriptions, query, top=1000, skip_token=None):
                if subscriptions[0] == "sub-b" and skip_token:
                    raise ArmAPIError(403, "AuthorizationFailed", "https://x")
                return await super().query_resources(subscriptions, query, top, skip_token)

        client = LaterPageForbidden({s.id: rows_for(s.id, 4) for s in scopes}, chunk=2)
        executor = PagedQueryExecutor(client, max_results=10)

        records = await executor.run(scopes)

        assert [r.scope_id for r in records] == ["sub-a"] * 4 + ["sub-c"] * 4
        assert [e.scope.id for e in executor.skipped_scopes] == ["sub-b"]
        assert not executor.truncated

    async def test_forbidden_scope_is_fatal_when_not_tolerated(self, scopes):
        client = FakeArmClient(
            {s.id: rows_for(s.id, 2) for s in scopes},
            failures={"sub-b": ArmAPIError(403, "AuthorizationFailed", "https://x")},
        )
        executor = PagedQueryExecutor(client, tolerate_permission_errors=False)

        with pytest.raises(QueryError):
            await executor.run(scopes)

    async def test_server_error_is_fatal(self, scopes):
        client = FakeArmClient(
            {s.id: rows_for(s.id, 2) for s in scopes},
            failures={"sub-b": ArmAPIError(500, "Internal", "https://x")},
        )
        with pytest.raises(QueryError):
            await PagedQueryExecutor(client).run(scopes)

    async def test_transport_error_is_fatal(self):
        client = FakeArmClient(failures={"sub-a": httpx.ConnectError("refused")})
        with pytest.raises(QueryError):
            await PagedQueryExecutor(client).run([Scope(id="sub-a", name="A")])

    async def test_oversized_page_is_rejected(self):
        client = FakeArmClient({"sub-a": rows_for("sub-a", 20)}, chunk=20, honor_top=False)
        executor = PagedQueryExecutor(client, page_size=5, max_results=100)

        with pytest.raises(QueryError, match="exceeded page size"):
            await executor.run([Scope(id="sub-a", name="A")])


class TestBuildQuery:
    def test_maps_taxonomy_tags_to_arm_types(self):
        query = build_query(["web-site", "Microsoft.Cache/Redis"])
        assert "type in~ ('microsoft.web/sites', 'microsoft.cache/redis')" in query

    def test_resource_group_filter_is_quoted(self):
        query = build_query(["storage-account"], resource_group="rg-o'brien")
        assert "resourceGroup =~ 'rg-o\\'brien'" in query

    def test_no_resource_group_filter_by_default(self):
        assert "resourceGroup =~" not in build_query(["storage-account"])
