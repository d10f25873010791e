"""
Reference Scanner
=================

Finds candidate asset references inside block content.

Block content is HTML-like markup with JSON fragments embedded in a
``"data": {...}, "mode"`` envelope. Only those fragments are decoded; the
surrounding markup is never parsed. Inside a fragment every positive integer
held by a field whose name does not start with ``_`` (or by an array nested
under such a field) is a candidate local asset ID.

This is a heuristic, not a content model: a column count of 3 is reported
just like an image ID of 3.
"""

from dataclasses import dataclass, field
from typing import Any, Set
import json
import logging

from blockcopy_core.constants import DEFAULT_MAX_DEPTH, ENVELOPE_PATTERN, RESERVED_KEY_PREFIX

logger = logging.getLogger(__name__)


@dataclass
class ScanReport:
    """Outcome of a single scan."""

    candidates: Set[int] = field(default_factory=set)
    envelopes_found: int = 0
    envelopes_skipped: int = 0
    depth_limit_hit: bool = False

    def summary(self) -> str:
        return (
            f"{len(self.candidates)} candidate(s) in {self.envelopes_found} envelope(s), "
            f"{self.envelopes_skipped} malformed"
        )


def _is_candidate(value: Any) -> bool:
    # bool is an int subclass; JSON true/false are never references
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


class ReferenceScanner:
    """
    Scans content text for reference candidates.

    Stateless apart from its depth cap, so one instance can be shared.

    Example:
        scanner = ReferenceScanner()
        ids = scanner.scan(block_html)   # {12, 345}
    """

    def __init__(self, max_depth: int = DEFAULT_MAX_DEPTH):
        self.max_depth = max_depth

    def scan(self, text: str) -> Set[int]:
        """Return the unique candidate IDs found in ``text``."""
        return self.scan_with_report(text).candidates

    def scan_with_report(self, text: str) -> ScanReport:
        """Scan ``text`` and return candidates with envelope statistics."""
        report = ScanReport()
        if not text:
            return report

        for match in ENVELOPE_PATTERN.finditer(text):
            report.envelopes_found += 1
            try:
                data = json.loads(match.group(1))
            except (ValueError, RecursionError) as e:
                report.envelopes_skipped += 1
                logger.debug(f"Skipping malformed block data at offset {match.start(1)}: {e}")
                continue

            self._walk(data, report, depth=0)

        if report.depth_limit_hit:
            logger.warning(f"Block data nested deeper than {self.max_depth} levels; deeper values ignored")

        logger.debug(f"Reference scan: {report.summary()}")
        return report

    def _walk(self, node: Any, report: ScanReport, depth: int) -> None:
        if depth >= self.max_depth:
            report.depth_limit_hit = True
            return

        if isinstance(node, dict):
            items = node.items()
        elif isinstance(node, list):
            items = enumerate(node)
        else:
            return

        for key, value in items:
            if isinstance(key, str) and key.startswith(RESERVED_KEY_PREFIX):
                continue

            if _is_candidate(value):
                report.candidates.add(value)
            elif isinstance(value, (dict, list)):
                self._walk(value, report, depth + 1)


def scan_references(text: str, max_depth: int = DEFAULT_MAX_DEPTH) -> Set[int]:
    """Convenience wrapper around :meth:`ReferenceScanner.scan`."""
    return ReferenceScanner(max_depth=max_depth).scan(text)
