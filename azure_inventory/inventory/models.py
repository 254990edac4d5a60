"""
Inventory data model — scopes, raw Resource Graph rows and enriched records.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from ..config import RESOURCE_TYPE_TAGS


class ResourceKind(str, Enum):
    """Normalized resource taxonomy tags that receive type-specific enrichment."""
    WEB_SITE = "web-site"
    SQL_DATABASE = "sql-database"
    PRIVATE_ENDPOINT = "private-endpoint"
    PUBLIC_IP = "public-ip"
    STORAGE_ACCOUNT = "storage-account"
    REDIS_CACHE = "redis-cache"
    SERVICEBUS_NAMESPACE = "servicebus-namespace"

    @classmethod
    def from_type(cls, resource_type: str) -> Optional["ResourceKind"]:
        """Map an ARM type or a taxonomy tag (any case) to its kind, if supported."""
        key = (resource_type or "").strip().lower()
        tag = RESOURCE_TYPE_TAGS.get(key, key)
        try:
            return cls(tag)
        except ValueError:
            return None


# Derived fields populated for each kind. tag_summary is shared by every record.
DERIVED_FIELD_GROUPS: dict[ResourceKind, tuple[str, ...]] = {
    ResourceKind.PRIVATE_ENDPOINT: ("private_endpoint_name", "private_ip"),
    ResourceKind.PUBLIC_IP: ("public_endpoint_name", "public_ip"),
    ResourceKind.SQL_DATABASE: ("database_link",),
    ResourceKind.WEB_SITE: ("app_service_plan", "runtime_stack"),
    ResourceKind.STORAGE_ACCOUNT: ("storage_fqdn",),
    ResourceKind.REDIS_CACHE: ("redis_fqdn",),
    ResourceKind.SERVICEBUS_NAMESPACE: ("service_bus_fqdn",),
}

DERIVED_FIELDS: tuple[str, ...] = tuple(
    name for group in DERIVED_FIELD_GROUPS.values() for name in group
)


@dataclass(frozen=True)
class Scope:
    """A subscription the caller can read."""
    id: str
    name: str


@dataclass(frozen=True)
class RawRecord:
    """One resource as returned by Resource Graph. Never mutated after creation."""
    id: str
    name: str
    type: str                       # Lowercase ARM type
    resource_group: str
    location: str
    scope_id: str
    properties: Any = None
    tags: dict[str, str] = field(default_factory=dict)

    @property
    def kind(self) -> Optional[ResourceKind]:
        return ResourceKind.from_type(self.type)

    @classmethod
    def from_graph_row(cls, row: dict[str, Any], scope_id: str = "") -> "RawRecord":
        return cls(
            id=row.get("id") or "",
            name=row.get("name") or "",
            type=(row.get("type") or "").lower(),
            resource_group=row.get("resourceGroup") or "",
            location=row.get("location") or "",
            scope_id=row.get("subscriptionId") or scope_id,
            properties=row.get("properties"),
            tags=dict(row.get("tags") or {}),
        )


@dataclass(frozen=True)
class EnrichedRecord:
    """A RawRecord plus derived relationship fields. Absent values are empty strings."""
    raw: RawRecord
    properties: Any = None
    private_endpoint_name: str = ""
    private_ip: str = ""
    public_endpoint_name: str = ""
    public_ip: str = ""
    database_link: str = ""
    app_service_plan: str = ""
    runtime_stack: str = ""
    storage_fqdn: str = ""
    redis_fqdn: str = ""
    service_bus_fqdn: str = ""
    tag_summary: str = ""

    @property
    def id(self) -> str:
        return self.raw.id

    @property
    def scope_id(self) -> str:
        return self.raw.scope_id

    @property
    def type(self) -> str:
        return self.raw.type

    def derived(self) -> dict[str, str]:
        return {name: getattr(self, name) for name in DERIVED_FIELDS}


@dataclass(frozen=True)
class LookupResult:
    """Outcome of a best-effort secondary lookup: a value, or an explicit unresolved marker."""
    value: str = ""
    error: str = ""

    @property
    def resolved(self) -> bool:
        return not self.error

    @classmethod
    def ok(cls, value: str) -> "LookupResult":
        return cls(value=value)

    @classmethod
    def unresolved(cls, error: str) -> "LookupResult":
        return cls(error=error or "unresolved")


def parse_subscription_id(resource_id: str) -> str:
    """Return the subscription segment of an ARM resource id, or ''."""
    segments = [s for s in (resource_id or "").split("/") if s]
    for i, segment in enumerate(segments[:-1]):
        if segment.lower() == "subscriptions":
            return segments[i + 1]
    return ""
