"""
Scope enumeration — lists the subscriptions the caller can read.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from ..arm.client import ArmClient, ArmAPIError
from ..auth.authenticator import AuthenticationError
from ..config import SUBSCRIPTIONS_API_VERSION
from .models import Scope

logger = logging.getLogger("azure_inventory.inventory.scopes")


class ScopeEnumerationError(Exception):
    """Raised when the subscription listing itself cannot be read."""
    pass


class ScopeEnumerator:
    """
    Lists accessible subscriptions in ARM order, deduplicated by id.

    An allow-list narrows the result to its intersection with what is
    accessible; allow-list entries the caller cannot see are dropped
    without error.
    """

    def __init__(self, client: Optional[ArmClient]):
        self.client = client

    async def enumerate(self, allow_list: Optional[list[str]] = None) -> list[Scope]:
        if self.client is None or not self.client.access_token:
            raise AuthenticationError("No authenticated session available for scope enumeration.")

        accessible: list[Scope] = []
        seen: set[str] = set()
        try:
            async for sub in self.client.get_all_pages_stream(
                "subscriptions", params={"api-version": SUBSCRIPTIONS_API_VERSION}
            ):
                scope_id = sub.get("subscriptionId") or ""
                if not scope_id or scope_id.lower() in seen:
                    continue
                state = sub.get("state", "Enabled")
                if state and state != "Enabled":
                    logger.info(f"Skipping subscription {scope_id} in state {state}")
                    continue
                seen.add(scope_id.lower())
                accessible.append(Scope(id=scope_id, name=sub.get("displayName") or scope_id))
        except ArmAPIError as e:
            if e.status_code == 401:
                raise AuthenticationError(f"Session rejected while listing subscriptions: {e}")
            raise ScopeEnumerationError(f"Failed to list subscriptions: {e}") from e
        except httpx.HTTPError as e:
            raise ScopeEnumerationError(f"Failed to list subscriptions: {e}") from e

        wanted = [s.strip().lower() for s in (allow_list or []) if s and s.strip()]
        if not wanted:
            logger.info(f"Enumerated {len(accessible)} accessible subscriptions")
            return accessible

        selected = [s for s in accessible if s.id.lower() in wanted]
        missing = set(wanted) - {s.id.lower() for s in selected}
        if missing:
            logger.debug(f"Allow-list entries not accessible, dropped: {sorted(missing)}")
        logger.info(f"Selected {len(selected)} of {len(accessible)} accessible subscriptions")
        return selected
