"""
Locator Resolver
================

Turns local asset IDs into environment-independent locators (URLs).

This module provides:
- LocatorResolver: ID -> URL resolution against any asset-store lookup
- ResolutionReport: requested / resolved / unresolved split for logging
- ControlEndpointLookup: lookup collaborator backed by a remote control
  endpoint (``POST /api/v1/resolve-attachments``)

An ID the store cannot resolve is a normal outcome (deleted or private
asset) and is simply left out of the mapping. Only transport and
authorization failures raise.
"""

from dataclasses import dataclass, field, asdict
from typing import Dict, Iterable, List, Optional, Protocol
import logging

import requests

from blockcopy_core.errors import AssetStoreError, ResolutionError
from blockcopy_core.scanning.locator_scanner import is_valid_image_url

logger = logging.getLogger(__name__)


class LocatorLookup(Protocol):
    """Anything that can map a local asset ID to its URL."""

    def url_for_id(self, asset_id: int) -> Optional[str]:
        ...


@dataclass
class ResolutionReport:
    """Result of resolving a batch of IDs."""

    requested: List[int] = field(default_factory=list)
    resolved: Dict[int, str] = field(default_factory=dict)
    unresolved: List[int] = field(default_factory=list)
    rejected: List[int] = field(default_factory=list)  # resolved to a URL that is unsafe to embed or not an image

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        data = asdict(self)
        data['resolved'] = {str(k): v for k, v in self.resolved.items()}
        return data

    @classmethod
    def from_dict(cls, data: dict) -> 'ResolutionReport':
        """Create from dictionary."""
        return cls(
            requested=[int(i) for i in data.get('requested', [])],
            resolved={int(k): v for k, v in data.get('resolved', {}).items()},
            unresolved=[int(i) for i in data.get('unresolved', [])],
            rejected=[int(i) for i in data.get('rejected', [])],
        )


def is_embeddable_url(url: str) -> bool:
    """
    A locator must survive being placed inside a JSON string verbatim and be
    an image URL the importing side will fetch.
    """
    if not url:
        return False
    if any(ch in '"\\' or ch.isspace() or ord(ch) < 0x20 for ch in url):
        return False
    return is_valid_image_url(url)


class LocatorResolver:
    """
    Resolves asset IDs to locators through a lookup collaborator.

    If the collaborator offers ``urls_for_ids`` it is called once for the
    whole batch; otherwise ``url_for_id`` is called per ID.

    Example usage:
        resolver = LocatorResolver(get_asset_store())
        id_to_url = resolver.resolve({12, 345})
    """

    def __init__(self, lookup: LocatorLookup):
        self.lookup = lookup

    def resolve(self, ids: Iterable[int]) -> Dict[int, str]:
        """Return ``{id: url}`` for every resolvable ID."""
        return self.resolve_with_report(ids).resolved

    def resolve_with_report(self, ids: Iterable[int]) -> ResolutionReport:
        """
        Resolve IDs and report which ones could not be resolved.

        Raises:
            ResolutionError: on transport or authorization failure
        """
        report = ResolutionReport(requested=sorted(set(int(i) for i in ids)))
        if not report.requested:
            return report

        try:
            urls = self._lookup_all(report.requested)
        except ResolutionError:
            raise
        except (AssetStoreError, requests.RequestException) as e:
            raise ResolutionError(f"Asset lookup failed: {e}") from e

        for asset_id in report.requested:
            url = urls.get(asset_id)
            if not url:
                report.unresolved.append(asset_id)
            elif not is_embeddable_url(url):
                logger.warning(f"Locator for asset {asset_id} cannot be embedded in content: {url!r}")
                report.rejected.append(asset_id)
            else:
                report.resolved[asset_id] = url

        if report.unresolved:
            logger.debug(f"No locator for {len(report.unresolved)} ID(s): {report.unresolved}")
        logger.info(f"Resolved {len(report.resolved)} of {len(report.requested)} asset ID(s)")
        return report

    def _lookup_all(self, ids: List[int]) -> Dict[int, str]:
        batch = getattr(self.lookup, 'urls_for_ids', None)
        if callable(batch):
            return {int(k): v for k, v in batch(ids).items()}

        urls = {}
        for asset_id in ids:
            url = self.lookup.url_for_id(asset_id)
            if url:
                urls[asset_id] = url
        return urls


class ControlEndpointLookup:
    """
    Lookup collaborator that asks a remote control endpoint for URLs.

    The endpoint accepts ``{"attachment_ids": [...]}`` and answers
    ``{"success": true, "urls": {"<id>": "<url>"}}``.
    """

    def __init__(self, endpoint: str, token: Optional[str] = None,
                 timeout: float = 30, session: Optional[requests.Session] = None):
        self.endpoint = endpoint
        self.token = token
        self.timeout = timeout
        self.session = session or requests.Session()

    def urls_for_ids(self, ids: Iterable[int]) -> Dict[int, str]:
        headers = {'Content-Type': 'application/json'}
        if self.token:
            headers['X-Block-Copy-Token'] = self.token

        try:
            response = self.session.post(
                self.endpoint,
                json={'attachment_ids': [int(i) for i in ids]},
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise ResolutionError(f"Control endpoint unreachable: {e}") from e

        if response.status_code in (401, 403):
            raise ResolutionError("Not allowed to resolve attachments", status_code=response.status_code)
        if not response.ok:
            raise ResolutionError(
                f"Control endpoint returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise ResolutionError(f"Control endpoint returned invalid JSON: {e}") from e

        return {int(k): v for k, v in (payload.get('urls') or {}).items()}

    def url_for_id(self, asset_id: int) -> Optional[str]:
        return self.urls_for_ids([asset_id]).get(int(asset_id))
