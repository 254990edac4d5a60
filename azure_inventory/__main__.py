"""
Azure Resource Inventory — Main Orchestrator

Usage:
    python -m azure_inventory --tenant-id <GUID> --client-id <GUID> --cert-path ./base64.txt
    python -m azure_inventory --config config.json
    python -m azure_inventory --delegated --tenant-id <GUID> --client-id <GUID>
    python -m azure_inventory --managed-identity --subscription <GUID> --subscription <GUID>
    python -m azure_inventory --resource-group rg-app --max-results 2000 -o ./inventory.csv

Exit status:
    0  success, including runs that found no resources (no files written)
    1  export failed
    2  authentication failed
    3  subscription enumeration or query failed

This tool is STRICTLY READ-ONLY. It will NEVER modify any subscription.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from . import __version__
from .arm.client import ArmClient
from .auth.authenticator import AuthenticationError, Authenticator
from .config import CertificateAuth, DelegatedAuth, EngineConfig, OutputConfig
from .inventory import InventoryPipeline, InventoryRun, QueryError, ScopeEnumerationError
from .reporting import export_csv, export_json, export_markdown
from .safety.guardian import SafetyGuardian

logger = logging.getLogger("azure_inventory")

EXIT_OK = 0
EXIT_EXPORT_FAILED = 1
EXIT_AUTH_FAILED = 2
EXIT_QUERY_FAILED = 3


def non_negative_int(value: str) -> int:
    number = int(value)
    if number < 0:
        raise argparse.ArgumentTypeError(f"must be zero or greater, got {value}")
    return number


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="azure_inventory",
        description="Azure Resource Inventory (READ-ONLY)",
    )

    # --- Credentials ---
    parser.add_argument(
        "--config", "-c",
        type=Path,
        help="Path to JSON configuration file",
    )
    parser.add_argument("--tenant-id", type=str, default=None, help="Entra tenant ID")
    parser.add_argument("--client-id", type=str, default=None, help="App registration client ID")
    parser.add_argument(
        "--cert-path",
        type=Path,
        help="Path to base64-encoded PFX certificate (default: ./base64.txt)",
    )
    auth_mode = parser.add_mutually_exclusive_group()
    auth_mode.add_argument(
        "--delegated",
        action="store_true",
        help="Use delegated (device-code) authentication instead of certificate",
    )
    auth_mode.add_argument(
        "--managed-identity",
        action="store_true",
        help="Authenticate with the host's managed identity",
    )

    # --- Inventory options ---
    parser.add_argument(
        "--output", "-o",
        type=Path,
        default=None,
        help="Output directory, or a .csv file path (default: ./azure_inventory_output)",
    )
    parser.add_argument(
        "--resource-group",
        type=str,
        default=None,
        help="Only include resources in this resource group",
    )
    parser.add_argument(
        "--max-results",
        type=non_negative_int,
        default=None,
        help="Maximum number of resources to return across all subscriptions",
    )
    parser.add_argument(
        "--subscription",
        action="append",
        default=None,
        dest="subscriptions",
        help="Subscription ID to include (repeatable; default: all accessible)",
    )
    parser.add_argument(
        "--resource-type",
        action="append",
        default=None,
        dest="resource_types",
        help="ARM resource type or taxonomy tag to include (repeatable)",
    )
    parser.add_argument(
        "--fail-on-permission-error",
        action="store_true",
        help="Abort when a subscription refuses the query instead of skipping it",
    )
    parser.add_argument(
        "--no-redact",
        action="store_true",
        help="Export property payloads without masking credential-shaped values",
    )
    parser.add_argument(
        "--formats",
        nargs="+",
        choices=["csv", "json", "markdown"],
        default=None,
        help="Output formats to generate",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> EngineConfig:
    """Build engine configuration from a config file and CLI overrides."""
    if args.config and args.config.exists():
        config = EngineConfig.from_file(str(args.config))
    else:
        config = EngineConfig()

    if args.managed_identity:
        config.auth.mode = "managed_identity"
        config.inventory.include_managed_identity = True
    elif args.delegated:
        config.auth.mode = "delegated"

    if args.tenant_id and args.client_id:
        if config.auth.mode == "delegated":
            config.auth.delegated = DelegatedAuth(
                tenant_id=args.tenant_id,
                client_id=args.client_id,
            )
        elif config.auth.mode == "certificate":
            config.auth.certificate = CertificateAuth(
                tenant_id=args.tenant_id,
                client_id=args.client_id,
                certificate_path=str(args.cert_path or "./base64.txt"),
            )
    if args.cert_path and config.auth.certificate:
        config.auth.certificate.certificate_path = str(args.cert_path)

    inv = config.inventory
    if args.resource_group is not None:
        inv.resource_group = args.resource_group
    if args.max_results is not None:
        inv.max_results = args.max_results
    if args.subscriptions:
        inv.subscription_ids = list(args.subscriptions)
    if args.resource_types:
        inv.resource_types = list(args.resource_types)
    if args.fail_on_permission_error:
        inv.tolerate_permission_errors = False
    if args.no_redact:
        inv.redact = False

    if args.output is not None:
        config.output = OutputConfig(path=str(args.output), formats=config.output.formats)
    if args.formats:
        config.output.formats = list(args.formats)
    config.verbose = config.verbose or args.verbose
    return config


def configure_logging(verbose: bool):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def generate_reports(
    run: InventoryRun,
    config: EngineConfig,
    guardian: SafetyGuardian,
) -> list[Path]:
    """Write every requested format. Failures are recorded on the run, not raised."""
    created = []
    output = config.output
    redacted = config.inventory.redact

    writers = {
        "csv": lambda: export_csv(run, output.artifact_path(run.run_id, "csv")),
        "json": lambda: export_json(
            run,
            output.artifact_path(run.run_id, "json"),
            audit=guardian.get_audit_record(),
            redacted=redacted,
        ),
        "markdown": lambda: export_markdown(
            run, output.artifact_path(run.run_id, "md"), redacted=redacted
        ),
    }
    for fmt in output.formats:
        writer = writers.get(fmt)
        if writer is None:
            continue
        try:
            path = writer()
        except OSError as e:
            run.export_failures.append(fmt)
            run.aggregator.add_error(f"Failed to write {fmt} export: {e}")
            print(f"  ❌ {fmt.upper():9s} {e}")
            continue
        created.append(path)
        print(f"  📄 {fmt.upper():9s} {path}")

    run.exported = created
    return created


def print_summary(run: InventoryRun):
    summary = run.summary()
    print(f"\n  Subscriptions queried: {summary['scopes_queried']}")
    print(f"  Resources:             {summary['total_records']}")
    for rtype, count in summary["by_type"].items():
        print(f"    {rtype:50s} {count:6d}")
    if summary["query"].get("truncated_at_limit"):
        print(f"  ⚠  Result limit ({summary['query']['max_results']}) reached — inventory is partial")
    for w in summary["warnings"]:
        print(f"  ⚠  {w}")
    for e in summary["errors"]:
        print(f"  ❌ {e}")


async def run_inventory(config: EngineConfig, run_id: str) -> tuple[int, Optional[InventoryRun]]:
    """Authenticate, inventory and export. Returns (exit status, run)."""
    guardian = SafetyGuardian()

    print("\n🔐 Authenticating...")
    try:
        token = await Authenticator(config.auth).acquire_token()
    except AuthenticationError as e:
        print(f"❌ Authentication failed: {e}")
        return EXIT_AUTH_FAILED, None
    print("✅ Authentication successful.")

    print("\n" + "=" * 70)
    print(" PHASE 1: INVENTORY")
    print("=" * 70)
    async with ArmClient(access_token=token, guardian=guardian) as client:
        try:
            run = await InventoryPipeline(client, config.inventory).run(run_id)
        except AuthenticationError as e:
            print(f"❌ Authentication failed: {e}")
            return EXIT_AUTH_FAILED, None
        except (ScopeEnumerationError, QueryError) as e:
            print(f"❌ Inventory failed: {e}")
            return EXIT_QUERY_FAILED, None
        run.query_stats.update(client.get_stats())

    print_summary(run)

    if run.no_resources:
        print("\n  No resources found. No output written.")
        return EXIT_OK, run

    print("\n" + "=" * 70)
    print(" PHASE 2: EXPORT")
    print("=" * 70 + "\n")
    generate_reports(run, config, guardian)
    if run.export_failures:
        return EXIT_EXPORT_FAILED, run
    return EXIT_OK, run


async def main_async(argv: Optional[list[str]] = None) -> int:
    """Async entry point."""
    args = parse_args(argv)
    config = build_config(args)
    configure_logging(config.verbose)
    if config.inventory.max_results < 0:
        print(f"❌ max_results must be zero or greater, got {config.inventory.max_results}")
        return EXIT_QUERY_FAILED

    print("=" * 70)
    print(f" Azure Resource Inventory v{__version__}")
    print(" Mode: READ-ONLY — No subscription modifications will be made")
    print("=" * 70)

    run_id = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S") + "_" + uuid.uuid4().hex[:8]
    print(f"\n📋 Run ID: {run_id}")
    print(f"📂 Output: {config.output.output_path.resolve()}")

    status, _ = await run_inventory(config, run_id)
    return status


def main():
    """Synchronous entry point for `python -m azure_inventory`."""
    sys.exit(asyncio.run(main_async()))


if __name__ == "__main__":
    main()
