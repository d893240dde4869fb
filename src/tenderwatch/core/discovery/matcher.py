"""
Order to tender matching.

Targeted discovery trusts the tender code the service reports on each
order. Daily discovery cannot, because the order listing rarely carries
it, so it first looks for a tracked tender code inside the order name
and only then falls back to the code on the order detail.
"""

from __future__ import annotations

import logging
from typing import Iterable, Protocol

from tenderwatch.core.normalize import normalize_code

logger = logging.getLogger(__name__)


class HasTenderCode(Protocol):
    code: str
    tender_code: str


def code_prefix(code: str) -> str:
    """Part of a tender code before its last ``-`` segment.

    ``1234-56-LE24`` -> ``1234-56``; codes without a separator have no prefix.
    """
    head, sep, _ = code.rpartition("-")
    return head if sep else ""


class TenderMatcher:
    """Associates candidate orders with tracked tender codes."""

    def __init__(self, known_codes: Iterable[str] = ()):
        self.known_codes = frozenset(normalize_code(c) for c in known_codes if c and c.strip())

    def __contains__(self, code: str) -> bool:
        return normalize_code(code) in self.known_codes

    @staticmethod
    def is_authoritative_match(candidate: HasTenderCode, tender_code: str) -> bool:
        """True when the service-reported tender code equals ``tender_code``.

        Comparison is case-insensitive after trimming; an absent code never
        matches.
        """
        reported = normalize_code(candidate.tender_code)
        return bool(reported) and reported == normalize_code(tender_code)

    def match_by_name(self, order_name: str | None) -> str | None:
        """Find the tracked tender whose code appears in an order name.

        A code matches when the name contains the full code or its prefix.
        With several matches the longest matched text wins (so a full code
        beats a prefix), then the longest code, then the smallest code.

        Returns:
            The matched tender code, or None
        """
        name = normalize_code(order_name)
        if not name:
            return None

        best: tuple[int, int, str] | None = None
        for code in self.known_codes:
            for text in (code, code_prefix(code)):
                if text and text in name:
                    key = (-len(text), -len(code), code)
                    if best is None or key < best:
                        best = key
                    break

        return best[2] if best else None

    def resolve(self, detail: HasTenderCode) -> str | None:
        """Tender code of an order detail, if it is a tracked tender."""
        reported = normalize_code(detail.tender_code)
        if reported and reported in self.known_codes:
            return reported
        logger.debug(
            "Order %s belongs to untracked tender %r, dropped",
            detail.code,
            reported or None,
        )
        return None
