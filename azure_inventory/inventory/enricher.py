"""
Per-type enrichment — derives endpoint, link and runtime fields from raw resource properties.

Each supported ResourceKind has one handler that fills exactly its own field
group (see DERIVED_FIELD_GROUPS). Unsupported types pass through with every
derived field empty.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Optional

import httpx

from ..arm.client import ArmClient, ArmAPIError
from ..config import (
    REDIS_FQDN_SUFFIX,
    SERVICEBUS_FQDN_SUFFIX,
    SQL_FQDN_SUFFIX,
    STORAGE_FQDN_SUFFIX,
)
from .models import (
    EnrichedRecord,
    LookupResult,
    RawRecord,
    ResourceKind,
    parse_subscription_id,
)
from .query import kql_literal

logger = logging.getLogger("azure_inventory.inventory.enricher")

Handler = Callable[[RawRecord], Awaitable[dict[str, str]]]


def summarize_tags(tags: Optional[dict[str, Any]]) -> str:
    """Flatten tags to 'key=value; key=value' in mapping order. No tags gives ''."""
    if not tags:
        return ""
    return "; ".join(f"{k}={'' if v is None else v}" for k, v in tags.items())


def _properties(raw: RawRecord) -> dict[str, Any]:
    return raw.properties if isinstance(raw.properties, dict) else {}


def _properties_of(item: Any) -> dict[str, Any]:
    props = item.get("properties") if isinstance(item, dict) else None
    return props if isinstance(props, dict) else {}


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def _segments(resource_id: str) -> list[str]:
    return [s for s in (resource_id or "").split("/") if s]


class ResourceEnricher:
    """
    Dispatches each RawRecord to the handler for its ResourceKind.

    The private-endpoint handler reads network interfaces through a Resource
    Graph query scoped to the interface's own subscription; the scope is
    always passed explicitly to the client.
    """

    def __init__(self, client: Optional[ArmClient] = None):
        self.client = client
        self.failures: list[str] = []
        self.lookup_failures = 0
        self._handlers: dict[ResourceKind, Handler] = {
            ResourceKind.PRIVATE_ENDPOINT: self._private_endpoint,
            ResourceKind.PUBLIC_IP: self._public_ip,
            ResourceKind.SQL_DATABASE: self._sql_database,
            ResourceKind.WEB_SITE: self._web_site,
            ResourceKind.STORAGE_ACCOUNT: self._storage_account,
            ResourceKind.REDIS_CACHE: self._redis_cache,
            ResourceKind.SERVICEBUS_NAMESPACE: self._servicebus_namespace,
        }

    async def enrich(self, raw: RawRecord) -> EnrichedRecord:
        fields: dict[str, str] = {}
        handler = self._handlers.get(raw.kind) if raw.kind else None
        if handler:
            try:
                fields = await handler(raw)
            except Exception as e:
                message = f"Enrichment failed for {raw.id}: {type(e).__name__}: {e}"
                self.failures.append(message)
                logger.warning(message)
                fields = {}
        return EnrichedRecord(
            raw=raw,
            properties=raw.properties,
            tag_summary=summarize_tags(raw.tags),
            **fields,
        )

    # ── Handlers ─────────────────────────────────────────────────────────

    async def _private_endpoint(self, raw: RawRecord) -> dict[str, str]:
        nics = _properties(raw).get("networkInterfaces")
        nic_ids = [
            nic.get("id")
            for nic in (nics if isinstance(nics, list) else [])
            if isinstance(nic, dict) and nic.get("id")
        ]
        addresses = []
        for nic_id in nic_ids:
            result = await self.resolve_nic_private_ip(nic_id)
            if result.resolved:
                addresses.append(result.value)
            else:
                self.lookup_failures += 1
                logger.warning(
                    f"Private IP unresolved for {raw.name} via NIC {nic_id}: {result.error}"
                )
        return {
            "private_endpoint_name": raw.name,
            "private_ip": "; ".join(addresses),
        }

    async def _public_ip(self, raw: RawRecord) -> dict[str, str]:
        return {
            "public_endpoint_name": raw.name,
            "public_ip": _text(_properties(raw).get("ipAddress")),
        }

    async def _sql_database(self, raw: RawRecord) -> dict[str, str]:
        segments = _segments(raw.id)
        if len(segments) < 3:
            return {}
        server, database = segments[-3], segments[-1]
        return {"database_link": f"{server}{SQL_FQDN_SUFFIX};Initial Catalog={database}"}

    async def _web_site(self, raw: RawRecord) -> dict[str, str]:
        props = _properties(raw)
        farm = _segments(_text(props.get("serverFarmId")))
        site_config = props.get("siteConfig") if isinstance(props.get("siteConfig"), dict) else {}
        runtime = (
            site_config.get("linuxFxVersion")
            or props.get("linuxFxVersion")
            or site_config.get("windowsFxVersion")
            or props.get("windowsFxVersion")
            or ""
        )
        return {
            "app_service_plan": farm[-1] if farm else "",
            "runtime_stack": _text(runtime),
        }

    async def _storage_account(self, raw: RawRecord) -> dict[str, str]:
        return {"storage_fqdn": f"{raw.name}{STORAGE_FQDN_SUFFIX}"}

    async def _redis_cache(self, raw: RawRecord) -> dict[str, str]:
        return {"redis_fqdn": f"{raw.name}{REDIS_FQDN_SUFFIX}"}

    async def _servicebus_namespace(self, raw: RawRecord) -> dict[str, str]:
        return {"service_bus_fqdn": f"{raw.name}{SERVICEBUS_FQDN_SUFFIX}"}

    # ── Secondary lookup ─────────────────────────────────────────────────

    async def resolve_nic_private_ip(self, nic_id: str) -> LookupResult:
        """Private address of the NIC's first IP configuration, read in the NIC's own subscription."""
        scope_id = parse_subscription_id(nic_id)
        if not scope_id:
            return LookupResult.unresolved("no subscription segment in NIC id")
        if self.client is None:
            return LookupResult.unresolved("no ARM client available")

        query = (
            "Resources\n"
            "| where type =~ 'microsoft.network/networkinterfaces'\n"
            f"| where id =~ {kql_literal(nic_id)}\n"
            "| project id, properties"
        )
        try:
            page = await self.client.query_resources([scope_id], query, top=1)
        except (ArmAPIError, httpx.HTTPError) as e:
            return LookupResult.unresolved(str(e))

        rows = page.get("data") if isinstance(page, dict) else None
        if not isinstance(rows, list) or not rows:
            return LookupResult.unresolved("network interface not found")
        configs = _properties_of(rows[0]).get("ipConfigurations")
        if not isinstance(configs, list) or not configs:
            return LookupResult.unresolved("network interface has no IP configurations")
        address = _properties_of(configs[0]).get("privateIPAddress")
        if not address:
            return LookupResult.unresolved("first IP configuration has no private address")
        return LookupResult.ok(str(address))
