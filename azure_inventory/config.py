"""
Configuration module for the Azure Resource Inventory engine.
Defines all tunable parameters, API endpoints, and operational settings.
"""

from __future__ import annotations

import os
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
from datetime import datetime, timezone


# ─── Tenant Authentication ───────────────────────────────────────────────────

@dataclass
class CertificateAuth:
    """Certificate-based app-only authentication configuration."""
    tenant_id: str
    client_id: str
    certificate_path: str          # Path to base64-encoded PFX
    certificate_password: str = "" # Will be prompted if empty


@dataclass
class DelegatedAuth:
    """Delegated (device code) authentication configuration."""
    tenant_id: str
    client_id: str
    scopes: list[str] = field(default_factory=lambda: [
        "https://management.azure.com/user_impersonation"
    ])


@dataclass
class AuthConfig:
    """Authentication configuration — certificate, delegated or managed identity."""
    mode: str = "certificate"  # "certificate", "delegated" or "managed_identity"
    certificate: Optional[CertificateAuth] = None
    delegated: Optional[DelegatedAuth] = None
    managed_identity_client_id: str = ""  # Empty = system-assigned


# ─── Azure Resource Manager Settings ────────────────────────────────────────

ARM_BASE_URL = "https://management.azure.com"
ARM_SCOPE = "https://management.azure.com/.default"
SUBSCRIPTIONS_API_VERSION = "2022-12-01"
RESOURCE_GRAPH_API_VERSION = "2022-10-01"
RESOURCE_GRAPH_PATH = "/providers/Microsoft.ResourceGraph/resources"

# Rate limiting / throttling
MAX_CONCURRENT_REQUESTS = 4       # Parallel requests to ARM
MAX_RETRIES = 5                   # Retry count for throttled requests
INITIAL_BACKOFF_SECONDS = 2.0     # First retry delay
MAX_BACKOFF_SECONDS = 120.0       # Cap on exponential backoff
BACKOFF_MULTIPLIER = 2.0          # Exponential factor

# Pagination
MAX_PAGE_SIZE = 1000              # Resource Graph $top ceiling
DEFAULT_MAX_RESULTS = 5000
MAX_PAGES_PER_ENDPOINT = 10000    # Safety cap on nextLink loops


# ─── Resource Taxonomy ──────────────────────────────────────────────────────

# ARM type (lowercase) -> normalized taxonomy tag
RESOURCE_TYPE_TAGS = {
    "microsoft.web/sites": "web-site",
    "microsoft.sql/servers/databases": "sql-database",
    "microsoft.network/privateendpoints": "private-endpoint",
    "microsoft.network/publicipaddresses": "public-ip",
    "microsoft.storage/storageaccounts": "storage-account",
    "microsoft.cache/redis": "redis-cache",
    "microsoft.servicebus/namespaces": "servicebus-namespace",
}

DEFAULT_RESOURCE_TYPES = list(RESOURCE_TYPE_TAGS.keys())

# Public endpoint suffixes, appended to the resource name
STORAGE_FQDN_SUFFIX = ".blob.core.windows.net"
REDIS_FQDN_SUFFIX = ".redis.cache.windows.net"
SERVICEBUS_FQDN_SUFFIX = ".servicebus.windows.net"
SQL_FQDN_SUFFIX = ".database.windows.net"


# ─── Redaction ──────────────────────────────────────────────────────────────

REDACTION_KEY_FRAGMENTS = [
    "connectionString",
    "password",
    "secret",
    "apiKey",
    "accessKey",
    "clientSecret",
    "primaryKey",
    "secondaryKey",
]

REDACTED_SENTINEL = "REDACTED"


# ─── Inventory Settings ─────────────────────────────────────────────────────

@dataclass
class InventoryConfig:
    """Controls for scope selection, querying and enrichment."""
    resource_types: list[str] = field(default_factory=lambda: list(DEFAULT_RESOURCE_TYPES))
    resource_group: str = ""              # Optional equality filter
    max_results: int = DEFAULT_MAX_RESULTS
    page_size: int = MAX_PAGE_SIZE
    subscription_ids: list[str] = field(default_factory=list)  # Allow-list; empty = all
    include_managed_identity: bool = False
    tolerate_permission_errors: bool = True
    redact: bool = True
    enrichment_concurrency: int = 8


# ─── Output Configuration ───────────────────────────────────────────────────

@dataclass
class OutputConfig:
    """Output location and format settings."""
    path: str = ""
    timestamp: str = ""
    formats: list[str] = field(default_factory=lambda: ["csv", "json", "markdown"])

    def __post_init__(self):
        if not self.timestamp:
            self.timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        if not self.path:
            self.path = os.path.join(os.getcwd(), "azure_inventory_output")

    @property
    def output_path(self) -> Path:
        return Path(self.path)

    @property
    def output_dir(self) -> Path:
        """Directory receiving artifacts. A `.csv` path names the CSV file itself."""
        p = self.output_path
        return p.parent if p.suffix.lower() == ".csv" else p

    def artifact_path(self, run_id: str, extension: str) -> Path:
        p = self.output_path
        if p.suffix.lower() == ".csv":
            return p.with_suffix(f".{extension}")
        return p / f"azure_inventory_{run_id}.{extension}"


# ─── Master Configuration ───────────────────────────────────────────────────

@dataclass
class EngineConfig:
    """Top-level configuration for the entire engine."""
    auth: AuthConfig = field(default_factory=AuthConfig)
    inventory: InventoryConfig = field(default_factory=InventoryConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    verbose: bool = False

    @classmethod
    def from_file(cls, path: str) -> "EngineConfig":
        """Load configuration from a JSON file."""
        with open(path, "r") as f:
            data = json.load(f)
        config = cls()
        if "auth" in data:
            auth_data = data["auth"]
            config.auth.mode = auth_data.get("mode", "certificate")
            config.auth.managed_identity_client_id = auth_data.get(
                "managed_identity_client_id", ""
            )
            if "certificate" in auth_data:
                c = auth_data["certificate"]
                config.auth.certificate = CertificateAuth(
                    tenant_id=c["tenant_id"],
                    client_id=c["client_id"],
                    certificate_path=c.get("certificate_path", "./base64.txt"),
                    certificate_password=c.get("certificate_password", ""),
                )
            if "delegated" in auth_data:
                d = auth_data["delegated"]
                config.auth.delegated = DelegatedAuth(
                    tenant_id=d["tenant_id"],
                    client_id=d["client_id"],
                )
        if "inventory" in data:
            for k, v in data["inventory"].items():
                if hasattr(config.inventory, k):
                    setattr(config.inventory, k, v)
        if "output" in data:
            for k, v in data["output"].items():
                if hasattr(config.output, k):
                    setattr(config.output, k, v)
        config.verbose = data.get("verbose", False)
        if config.inventory.include_managed_identity:
            config.auth.mode = "managed_identity"
        return config
