"""
Azure Resource Inventory
========================
A read-only, multi-subscription Azure resource inventory for migration and
audit planning. Resolves endpoints, connection targets and runtime stacks,
masks credential-shaped values, and exports CSV/JSON/Markdown snapshots.

WARNING: This tool operates in STRICT READ-ONLY mode.
         No write operations will be performed against any subscription.
"""

__version__ = "1.0.0"
__mode__ = "READ-ONLY"
