"""
CSV exporter — Flat, one-row-per-resource inventory table.
"""

from __future__ import annotations

import csv
from pathlib import Path
from typing import Any

INVENTORY_COLUMNS = [
    "SubscriptionId",
    "SubscriptionName",
    "ResourceGroup",
    "ResourceName",
    "ResourceType",
    "Location",
    "PrivateEndpoint",
    "PrivateIP",
    "PublicEndpoint",
    "PublicIP",
    "DatabaseLink",
    "AppServicePlan",
    "RuntimeStack",
    "StorageAccount",
    "RedisCache",
    "ServiceBus",
    "Tags",
]


def record_to_row(record: Any, subscription_name: str = "") -> dict[str, str]:
    """Flatten an EnrichedRecord to the export columns. Absent values are ''."""
    raw = record.raw
    return {
        "SubscriptionId": raw.scope_id,
        "SubscriptionName": subscription_name,
        "ResourceGroup": raw.resource_group,
        "ResourceName": raw.name,
        "ResourceType": raw.type,
        "Location": raw.location,
        "PrivateEndpoint": record.private_endpoint_name,
        "PrivateIP": record.private_ip,
        "PublicEndpoint": record.public_endpoint_name,
        "PublicIP": record.public_ip,
        "DatabaseLink": record.database_link,
        "AppServicePlan": record.app_service_plan,
        "RuntimeStack": record.runtime_stack,
        "StorageAccount": record.storage_fqdn,
        "RedisCache": record.redis_fqdn,
        "ServiceBus": record.service_bus_fqdn,
        "Tags": record.tag_summary,
    }


def export_csv(run: Any, filepath: Path) -> Path:
    """
    Write the inventory table for a completed run.

    Returns:
        Path to the created CSV file.
    """
    filepath.parent.mkdir(parents=True, exist_ok=True)
    aggregator = run.aggregator

    with open(filepath, "w", newline="", encoding="utf-8-sig") as fh:
        writer = csv.DictWriter(fh, fieldnames=INVENTORY_COLUMNS)
        writer.writeheader()
        for record in aggregator.records:
            writer.writerow(record_to_row(record, aggregator.scope_name(record.scope_id)))

    return filepath
