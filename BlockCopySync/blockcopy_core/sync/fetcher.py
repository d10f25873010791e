"""
Asset Fetcher
=============

Downloads locator bytes over HTTP with a bounded timeout.
"""

from dataclasses import dataclass
from posixpath import basename
from typing import Optional
from urllib.parse import unquote, urlparse
import logging

import requests

from blockcopy_core.config.settings import FetchConfig
from blockcopy_core.constants import DEFAULT_FETCH_TIMEOUT
from blockcopy_core.errors import FetchError

logger = logging.getLogger(__name__)


@dataclass
class FetchedAsset:
    """Downloaded bytes and what we know about them."""
    url: str
    data: bytes
    filename: str
    content_type: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.data)


def suggested_filename(url: str) -> str:
    """File name to offer the asset store, taken from the URL path."""
    name = unquote(basename(urlparse(url).path))
    return name or "asset"


class AssetFetcher:
    """
    HTTP downloader used by the sync pipeline.

    The session is shared by worker threads; only GET is issued on it.
    """

    def __init__(self, timeout: float = DEFAULT_FETCH_TIMEOUT,
                 user_agent: str = "BlockCopySync/1.0",
                 verify_ssl: bool = True,
                 session: Optional[requests.Session] = None):
        self.timeout = timeout
        self.verify_ssl = verify_ssl
        self.session = session or requests.Session()
        self.headers = {
            'User-Agent': user_agent,
            'Accept': 'image/avif,image/webp,image/apng,image/*,*/*;q=0.8',
        }

    @classmethod
    def from_config(cls, config: FetchConfig) -> 'AssetFetcher':
        return cls(
            timeout=config.timeout_seconds,
            user_agent=config.user_agent,
            verify_ssl=config.verify_ssl,
        )

    def fetch(self, url: str) -> FetchedAsset:
        """
        Download ``url``.

        Raises:
            FetchError: on timeout, transport error, HTTP error status or
                an empty body
        """
        try:
            response = self.session.get(
                url,
                headers=self.headers,
                timeout=self.timeout,
                verify=self.verify_ssl,
            )
            response.raise_for_status()
        except requests.Timeout as e:
            raise FetchError(url, f"timed out after {self.timeout}s") from e
        except requests.RequestException as e:
            raise FetchError(url, str(e)) from e

        data = response.content
        if not data:
            raise FetchError(url, "empty response body")

        content_type = response.headers.get('Content-Type')
        if content_type:
            content_type = content_type.split(';')[0].strip()

        logger.debug(f"Downloaded {url} ({len(data)} bytes)")
        return FetchedAsset(
            url=url,
            data=data,
            filename=suggested_filename(url),
            content_type=content_type,
        )
