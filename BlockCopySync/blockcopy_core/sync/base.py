"""
Sync Result Classes
===================

State and outcome containers for the asset sync pipeline.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional
import logging

logger = logging.getLogger(__name__)


class SyncState(str, Enum):
    """Pipeline states for one content-save event."""
    IDLE = "idle"
    SCANNING = "scanning"
    FETCHING = "fetching"
    REWRITING = "rewriting"
    PERSISTING = "persisting"
    SKIPPED = "skipped"
    FAILED_PARTIAL = "failed_partial"


TERMINAL_STATES = (SyncState.IDLE, SyncState.SKIPPED, SyncState.FAILED_PARTIAL)


@dataclass
class SyncResult:
    """
    Container for one pipeline run.

    Attributes:
        content_id: Identifier of the content that was processed
        original: Content as received
        content: Content after rewriting (equal to original if nothing changed)
        state: Current (after ``run`` returns, terminal) state
        transitions: Every state entered, in order
        locators: Distinct valid image locators found in the content
        resolved: locator -> local asset ID for every locator that resolved
        failures: locator -> reason for every locator that did not
        cache_hits: Locators served from the resolution cache
        uploaded: Locators fetched and uploaded during this run
        substitutions: Sentinel strings replaced in the content
        persisted: Whether the rewritten content was written back
    """
    content_id: Any
    original: str
    content: str
    state: SyncState = SyncState.IDLE
    transitions: List[SyncState] = field(default_factory=list)
    locators: List[str] = field(default_factory=list)
    resolved: Dict[str, int] = field(default_factory=dict)
    failures: Dict[str, str] = field(default_factory=dict)
    cache_hits: int = 0
    uploaded: int = 0
    substitutions: int = 0
    persisted: bool = False

    def enter(self, state: SyncState) -> None:
        """Move to ``state`` and record the transition."""
        self.state = state
        self.transitions.append(state)

    def record_success(self, url: str, asset_id: int, from_cache: bool = False) -> None:
        self.resolved[url] = asset_id
        if from_cache:
            self.cache_hits += 1
        else:
            self.uploaded += 1

    def record_failure(self, url: str, reason: str) -> None:
        self.failures[url] = reason

    @property
    def changed(self) -> bool:
        return self.content != self.original

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def asset_id_for(self, url: str) -> Optional[int]:
        return self.resolved.get(url)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON responses (content omitted)."""
        return {
            'content_id': self.content_id,
            'state': self.state.value,
            'transitions': [s.value for s in self.transitions],
            'locators': len(self.locators),
            'resolved': dict(sorted(self.resolved.items())),
            'failures': dict(sorted(self.failures.items())),
            'cache_hits': self.cache_hits,
            'uploaded': self.uploaded,
            'substitutions': self.substitutions,
            'persisted': self.persisted,
        }

    def summary(self) -> str:
        """Generate a text summary of the run."""
        lines = [
            f"Content: {self.content_id}",
            f"State: {self.state.value}",
            f"Locators found: {len(self.locators)}",
            f"Resolved: {len(self.resolved)} ({self.cache_hits} from cache, {self.uploaded} uploaded)",
            f"Failed: {len(self.failures)}",
            f"Content persisted: {'yes' if self.persisted else 'no'}",
        ]

        if self.failures:
            lines.append("\nFailures:")
            for url, reason in sorted(self.failures.items()):
                lines.append(f"  {url}: {reason}")

        return "\n".join(lines)
