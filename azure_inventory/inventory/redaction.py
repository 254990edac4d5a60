"""
Sensitive value redaction for resource property payloads.

The payload is serialized to JSON text, credential-shaped values are masked
with regular expressions, and the text is parsed back. Two shapes are masked,
both matching a key that *ends with* one of the configured fragments
(case-insensitive), so ``clientSecret`` matches while ``secretName`` does not:

* JSON members, ``"adminPassword": "hunter2"`` -> ``"adminPassword": "REDACTED"``.
  String and numeric values are masked; objects, arrays, booleans and null are
  left as they are.
* Inline assignments inside string values, such as connection strings,
  ``...;Password=hunter2;...`` -> ``...;Password=REDACTED``. The value is the
  longest run of characters up to a comma, quote, whitespace or closing
  brace. Escaped characters, backslashes included, belong to the value.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Optional

from ..config import REDACTED_SENTINEL, REDACTION_KEY_FRAGMENTS

logger = logging.getLogger("azure_inventory.inventory.redaction")


class RedactionError(Exception):
    """Raised when a redacted payload can no longer be parsed."""
    pass


def _fragment_alternation(fragments: list[str]) -> str:
    # Longest first so "clientSecret" wins over "secret" in the alternation.
    ordered = sorted({f for f in fragments if f}, key=len, reverse=True)
    return "|".join(re.escape(f) for f in ordered)


class SensitiveValueRedactor:
    """Masks values stored under credential-shaped keys. Idempotent."""

    def __init__(
        self,
        fragments: Optional[list[str]] = None,
        sentinel: str = REDACTED_SENTINEL,
    ):
        self.fragments = list(fragments if fragments is not None else REDACTION_KEY_FRAGMENTS)
        self.sentinel = sentinel
        self.values_redacted = 0
        alternation = _fragment_alternation(self.fragments)
        if not alternation:
            self._member_pattern = None
            self._inline_pattern = None
            return
        self._member_pattern = re.compile(
            r'"(?P<key>[^"\\]*(?:' + alternation + r'))"'
            r'(?P<sep>\s*:\s*)'
            r'(?P<value>"(?:[^"\\]|\\.)*"|-?\d+(?:\.\d+)?(?:[eE][+-]?\d+)?)',
            re.IGNORECASE,
        )
        self._inline_pattern = re.compile(
            r'(?P<key>' + alternation + r')\s*[:=]\s*(?P<value>(?:[^,"\s}\\]|\\.)+)',
            re.IGNORECASE,
        )

    def redact(self, payload: Any) -> Any:
        """Return a redacted copy of ``payload``. None is returned unchanged."""
        if payload is None or self._member_pattern is None:
            return payload

        text = json.dumps(payload, ensure_ascii=False, default=str)
        redacted = self.redact_text(text)
        if redacted == text:
            return json.loads(text)
        try:
            return json.loads(redacted)
        except json.JSONDecodeError as e:
            raise RedactionError(f"Redacted payload is not valid JSON: {e}") from e

    def redact_text(self, text: str) -> str:
        """Apply both masking passes to serialized text."""
        if self._member_pattern is None:
            return text
        text = self._member_pattern.sub(self._replace_member, text)
        return self._inline_pattern.sub(self._replace_inline, text)

    def _replace_member(self, match: re.Match) -> str:
        if match.group("value") != f'"{self.sentinel}"':
            self.values_redacted += 1
        return f'"{match.group("key")}"{match.group("sep")}"{self.sentinel}"'

    def _replace_inline(self, match: re.Match) -> str:
        if match.group("value") != self.sentinel:
            self.values_redacted += 1
        return f"{match.group('key')}={self.sentinel}"
