"""
Safety Guardian — Enforces strict read-only operation against Azure Resource Manager.
Only GET requests and Resource Graph query POSTs ever leave the process.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Optional

logger = logging.getLogger("azure_inventory.safety")

WRITE_METHODS = {"POST", "PUT", "PATCH", "DELETE"}

# ARM uses POST for a handful of read operations; only these are allowed.
SAFE_POST_ENDPOINTS = [
    re.compile(r"/providers/Microsoft\.ResourceGraph/resources$", re.IGNORECASE),
]

# Action endpoints that mutate state or disclose secrets, blocked on any method.
BLOCKED_URL_PATTERNS = [
    re.compile(r"/listKeys$", re.IGNORECASE),
    re.compile(r"/regenerateKey$", re.IGNORECASE),
    re.compile(r"/listConnectionStrings$", re.IGNORECASE),
    re.compile(r"/config/appsettings/list$", re.IGNORECASE),
    re.compile(r"/restart$", re.IGNORECASE),
    re.compile(r"/start$", re.IGNORECASE),
    re.compile(r"/stop$", re.IGNORECASE),
    re.compile(r"/delete$", re.IGNORECASE),
]


class SafetyViolation(Exception):
    """Raised when a write operation is attempted."""
    pass


class SafetyGuardian:
    """
    Validates every outbound HTTP request to ensure read-only operation.
    Keeps an audit record of checks and violations.
    """

    def __init__(self):
        self.violations: list[dict] = []
        self.checks_performed: int = 0
        self.started_at: str = datetime.now(timezone.utc).isoformat()

    def validate_request(self, method: str, url: str) -> bool:
        """
        Validate that a request is read-only.
        Returns True if safe, raises SafetyViolation if not.
        """
        self.checks_performed += 1
        method_upper = method.upper()
        path = url.split("?", 1)[0]

        for pattern in BLOCKED_URL_PATTERNS:
            if pattern.search(path):
                self._record_violation(method_upper, url, "Blocked action URL")
                raise SafetyViolation(
                    f"SAFETY VIOLATION: Action URL blocked: {method_upper} {url}"
                )

        if method_upper in ("GET", "HEAD", "OPTIONS"):
            return True

        if method_upper == "POST":
            for pattern in SAFE_POST_ENDPOINTS:
                if pattern.search(path):
                    return True

        if method_upper in WRITE_METHODS:
            self._record_violation(method_upper, url, "Write HTTP method blocked")
            raise SafetyViolation(
                f"SAFETY VIOLATION: Write method blocked: {method_upper} {url}"
            )

        return True

    def _record_violation(self, method: str, url: str, reason: str):
        violation = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "method": method,
            "url": url,
            "reason": reason,
        }
        self.violations.append(violation)
        logger.critical(f"SAFETY VIOLATION: {reason} — {method} {url}")

    def get_audit_record(self) -> dict:
        """Return the safety audit record for inclusion in exports."""
        return {
            "mode": "READ-ONLY",
            "started_at": self.started_at,
            "checks_performed": self.checks_performed,
            "violations_detected": len(self.violations),
            "violations": self.violations,
            "status": "CLEAN" if not self.violations else "VIOLATIONS_DETECTED",
        }
