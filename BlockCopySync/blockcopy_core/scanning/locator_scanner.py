"""
Sentinel Locator Scanner
========================

Extracts sentinel-wrapped locators from portable content and decides which
of them are image locators worth fetching.
"""

from posixpath import splitext
from typing import List
from urllib.parse import urlparse
import logging

from pydantic import HttpUrl, TypeAdapter, ValidationError

from blockcopy_core.constants import IMAGE_EXTENSIONS, SENTINEL_PATTERN

logger = logging.getLogger(__name__)

_http_url = TypeAdapter(HttpUrl)


def url_extension(url: str) -> str:
    """Lower-cased extension of the URL path, without the dot."""
    path = urlparse(url).path
    return splitext(path)[1].lstrip('.').lower()


def is_valid_image_url(url: str) -> bool:
    """
    Check that ``url`` is an http(s) URL whose path ends in an image extension.

    Args:
        url: Candidate locator

    Returns:
        True if the locator should be fetched
    """
    if not url or url != url.strip():
        return False

    try:
        _http_url.validate_python(url)
    except ValidationError:
        return False

    parsed = urlparse(url)
    if parsed.scheme.lower() not in ('http', 'https') or not parsed.path:
        return False

    return url_extension(url) in IMAGE_EXTENSIONS


def scan_locators(text: str) -> List[str]:
    """
    Return the distinct valid image locators wrapped in sentinels.

    Order follows first appearance in ``text``. Invalid locators are left in
    the content and only logged.
    """
    locators: List[str] = []
    seen = set()
    rejected = 0

    for match in SENTINEL_PATTERN.finditer(text or ""):
        url = match.group(1)
        if url in seen:
            continue
        seen.add(url)

        if is_valid_image_url(url):
            locators.append(url)
        else:
            rejected += 1
            logger.debug(f"Ignoring non-image locator: {url!r}")

    if rejected:
        logger.info(f"Ignored {rejected} sentinel locator(s) that are not valid image URLs")

    return locators
