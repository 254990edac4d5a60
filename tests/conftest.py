"""Shared fixtures: an in-memory Resource Graph stand-in and record builders."""

from __future__ import annotations

from typing import Any, Optional

import pytest

from azure_inventory.inventory.models import RawRecord, Scope


def make_row(
    scope_id: str,
    name: str,
    arm_type: str = "Microsoft.Storage/storageAccounts",
    resource_group: str = "rg-app",
    properties: Any = None,
    tags: Optional[dict] = None,
    resource_id: Optional[str] = None,
) -> dict:
    provider_path = arm_type
    return {
        "id": resource_id
        or f"/subscriptions/{scope_id}/resourceGroups/{resource_group}/providers/{provider_path}/{name}",
        "name": name,
        "type": arm_type,
        "resourceGroup": resource_group,
        "location": "westeurope",
        "subscriptionId": scope_id,
        "properties": properties if properties is not None else {},
        "tags": tags or {},
    }


def make_raw(arm_type: str, name: str = "res1", properties: Any = None, **kwargs) -> RawRecord:
    return RawRecord.from_graph_row(make_row("sub-a", name, arm_type, properties=properties, **kwargs))


class FakeArmClient:
    """
    Resource Graph stand-in. Each scope holds a flat row list; the server
    cuts it into chunks of ``chunk`` rows and hands out offsets as $skipToken.
    """

    def __init__(
        self,
        rows_by_scope: Optional[dict[str, list[dict]]] = None,
        chunk: int = 1000,
        honor_top: bool = True,
        failures: Optional[dict[str, Exception]] = None,
        nics: Optional[dict[str, dict]] = None,
        subscriptions: Optional[list[dict]] = None,
    ):
        self.access_token = "token"
        self.rows_by_scope = rows_by_scope or {}
        self.chunk = chunk
        self.honor_top = honor_top
        self.failures = failures or {}
        self.nics = nics or {}
        self.subscriptions = subscriptions or []
        self.calls: list[dict] = []

    async def get_all_pages_stream(self, endpoint: str, params: Optional[dict] = None):
        for sub in self.subscriptions:
            yield sub

    async def query_resources(self, subscriptions, query, top=1000, skip_token=None):
        self.calls.append({
            "subscriptions": list(subscriptions),
            "query": query,
            "top": top,
            "skip_token": skip_token,
        })
        scope_id = subscriptions[0]
        if scope_id in self.failures:
            raise self.failures[scope_id]

        if "networkinterfaces" in query:
            rows = [
                nic for nic_id, nic in self.nics.items()
                if nic_id in query and nic["subscriptionId"] == scope_id
            ]
            return {"totalRecords": len(rows), "count": len(rows), "data": rows}

        rows = self.rows_by_scope.get(scope_id, [])
        offset = int(skip_token) if skip_token else 0
        size = min(self.chunk, top) if self.honor_top else self.chunk
        page = rows[offset:offset + size]
        response = {"totalRecords": len(rows), "count": len(page), "data": page}
        if offset + len(page) < len(rows):
            response["$skipToken"] = str(offset + len(page))
        return response


@pytest.fixture
def scopes() -> list[Scope]:
    return [
        Scope(id="sub-a", name="Subscription A"),
        Scope(id="sub-b", name="Subscription B"),
        Scope(id="sub-c", name="Subscription C"),
    ]
