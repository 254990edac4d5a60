"""
Tests for InventoryPipeline

Tests cover:
- End-to-end flow across several subscriptions
- Subscription-level failure tolerance
- Empty outcomes (no scopes, no resources)
- Redaction on and off
- Order preservation under concurrent enrichment
"""

import pytest

from azure_inventory.arm.client import ArmAPIError
from azure_inventory.config import InventoryConfig
from azure_inventory.inventory import InventoryPipeline, QueryError
from conftest import FakeArmClient, make_row

SUBSCRIPTIONS = [
    {"subscriptionId": "sub-a", "displayName": "Subscription A", "state": "Enabled"},
    {"subscriptionId": "sub-b", "displayName": "Subscription B", "state": "Enabled"},
    {"subscriptionId": "sub-c", "displayName": "Subscription C", "state": "Enabled"},
]


def client_with(rows_by_scope=None, **kwargs) -> FakeArmClient:
    return FakeArmClient(rows_by_scope=rows_by_scope, subscriptions=SUBSCRIPTIONS, **kwargs)


class TestEndToEnd:
    async def test_failing_subscription_is_skipped_with_one_warning(self):
        client = client_with(
            {
                "sub-a": [make_row("sub-a", "sta1"), make_row("sub-a", "sta2")],
                "sub-b": [make_row("sub-b", "stb1")],
                "sub-c": [make_row("sub-c", "app1", "Microsoft.Web/sites")],
            },
            failures={"sub-b": ArmAPIError(403, "AuthorizationFailed", "https://x")},
        )

        run = await InventoryPipeline(client, InventoryConfig()).run("run1")

        assert [r.raw.name for r in run.records] == ["sta1", "sta2", "app1"]
        assert len(run.aggregator.warnings) == 1
        assert "sub-b" in run.aggregator.warnings[0]
        assert run.query_stats["scopes_skipped"] == ["sub-b"]
        assert run.aggregator.errors == []

    async def test_fatal_query_error_propagates(self):
        client = client_with(
            {"sub-a": [make_row("sub-a", "sta1")]},
            failures={"sub-b": ArmAPIError(500, "InternalServerError", "https://x")},
        )
        with pytest.raises(QueryError):
            await InventoryPipeline(client, InventoryConfig()).run("run1")

    async def test_allow_list_limits_queried_scopes(self):
        client = client_with({"sub-c": [make_row("sub-c", "stc1")]})
        config = InventoryConfig(subscription_ids=["sub-c"])

        run = await InventoryPipeline(client, config).run("run1")

        assert [s.id for s in run.scopes] == ["sub-c"]
        assert {c["subscriptions"][0] for c in client.calls} == {"sub-c"}
        assert run.records[0].storage_fqdn == "stc1.blob.core.windows.net"

    async def test_summary_counts(self):
        client = client_with(
            {
                "sub-a": [make_row("sub-a", "sta1"), make_row("sub-a", "app1", "Microsoft.Web/sites")],
                "sub-c": [make_row("sub-c", "stc1")],
            }
        )
        summary = (await InventoryPipeline(client, InventoryConfig()).run("run1")).summary()

        assert summary["total_records"] == 3
        assert summary["by_type"] == {"microsoft.storage/storageaccounts": 2, "microsoft.web/sites": 1}
        assert summary["by_scope"]["sub-a"]["name"] == "Subscription A"
        assert summary["scopes_queried"] == 3


class TestEmptyOutcomes:
    async def test_no_accessible_scopes(self):
        client = FakeArmClient()
        run = await InventoryPipeline(client, InventoryConfig()).run("run1")

        assert run.scopes == []
        assert run.no_resources
        assert client.calls == []

    async def test_no_resources(self):
        run = await InventoryPipeline(client_with({}), InventoryConfig()).run("run1")

        assert len(run.scopes) == 3
        assert run.no_resources
        assert run.aggregator.warnings == []


class TestRedaction:
    ROWS = {"sub-a": [make_row("sub-a", "app1", "Microsoft.Web/sites", properties={
        "adminPassword": "hunter2",
        "siteConfig": {"linuxFxVersion": "PYTHON|3.12"},
    })]}

    async def test_properties_are_redacted_by_default(self):
        run = await InventoryPipeline(client_with(self.ROWS), InventoryConfig()).run("run1")
        record = run.records[0]

        assert record.properties["adminPassword"] == "REDACTED"
        assert record.raw.properties["adminPassword"] == "hunter2"
        assert record.runtime_stack == "PYTHON|3.12"

    async def test_redaction_can_be_disabled(self):
        config = InventoryConfig(redact=False)
        run = await InventoryPipeline(client_with(self.ROWS), config).run("run1")

        assert run.records[0].properties["adminPassword"] == "hunter2"


class TestConcurrentEnrichment:
    async def test_arrival_order_is_preserved(self):
        nic_id = "/subscriptions/sub-a/resourceGroups/rg/providers/Microsoft.Network/networkInterfaces/nic1"
        rows = []
        for i in range(12):
            if i % 3 == 0:
                rows.append(make_row(
                    "sub-a", f"pe{i:02d}", "Microsoft.Network/privateEndpoints",
                    properties={"networkInterfaces": [{"id": nic_id}]},
                ))
            else:
                rows.append(make_row("sub-a", f"st{i:02d}"))
        nic = {
            "id": nic_id,
            "subscriptionId": "sub-a",
            "properties": {"ipConfigurations": [{"properties": {"privateIPAddress": "10.0.0.4"}}]},
        }
        client = client_with({"sub-a": rows}, chunk=5, nics={nic_id: nic})
        config = InventoryConfig(enrichment_concurrency=3)

        run = await InventoryPipeline(client, config).run("run1")

        assert [r.raw.name for r in run.records] == [row["name"] for row in rows]
        assert all(r.private_ip == "10.0.0.4" for r in run.records if r.raw.name.startswith("pe"))

    async def test_unresolved_lookups_are_summarized(self):
        rows = {"sub-a": [make_row(
            "sub-a", "pe1", "Microsoft.Network/privateEndpoints",
            properties={"networkInterfaces": [{"id": "/subscriptions/sub-x/resourceGroups/rg/providers/Microsoft.Network/networkInterfaces/gone"}]},
        )]}
        run = await InventoryPipeline(client_with(rows), InventoryConfig()).run("run1")

        assert run.records[0].private_ip == ""
        assert run.aggregator.warnings == ["1 private endpoint NIC lookups unresolved"]
