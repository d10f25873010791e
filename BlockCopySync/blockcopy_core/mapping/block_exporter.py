"""
Block Exporter
==============

The "copy block" action: scan content for local asset IDs, resolve them to
locators and rewrite the content into its portable form.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional
import logging

from blockcopy_core.mapping.locator_resolver import LocatorLookup, LocatorResolver
from blockcopy_core.rewriting.token_rewriter import TokenRewriter
from blockcopy_core.scanning.reference_scanner import ReferenceScanner

logger = logging.getLogger(__name__)


@dataclass
class ExportResult:
    """Portable content plus what was and was not resolved."""

    content: str
    resolved: Dict[int, str] = field(default_factory=dict)
    unresolved: List[int] = field(default_factory=list)
    substitutions: int = 0

    @property
    def fully_resolved(self) -> bool:
        return not self.unresolved

    def to_dict(self) -> dict:
        return {
            'content': self.content,
            'resolved': {str(k): v for k, v in self.resolved.items()},
            'unresolved': self.unresolved,
            'substitutions': self.substitutions,
        }


class BlockExporter:
    """Scan -> resolve -> rewrite, for one piece of content at a time."""

    def __init__(self, lookup: LocatorLookup, scanner: Optional[ReferenceScanner] = None):
        self.resolver = LocatorResolver(lookup)
        self.scanner = scanner or ReferenceScanner()
        self.rewriter = TokenRewriter()

    def export(self, content: str) -> ExportResult:
        """
        Produce the portable form of ``content``.

        Raises:
            ResolutionError: if the lookup collaborator fails
        """
        ids = self.scanner.scan(content)
        if not ids:
            return ExportResult(content=content)

        report = self.resolver.resolve_with_report(ids)
        rewritten = self.rewriter.ids_to_urls(content, report.resolved)

        result = ExportResult(
            content=rewritten.text,
            resolved=report.resolved,
            unresolved=sorted(report.unresolved + report.rejected),
            substitutions=rewritten.total,
        )
        if result.unresolved:
            logger.info(f"[Block Copy] Export left {len(result.unresolved)} reference(s) unresolved")
        return result
