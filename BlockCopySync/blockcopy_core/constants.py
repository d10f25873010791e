"""
Block Copy Wire Constants
=========================

Markers and patterns shared by the export and import sides. The sentinel
format is a wire-level contract between environments and must stay bit-exact:

    "_image-url-start_<url>_image-url-end_"

The quotes are emitted by the export rewriter and consumed by the import
rewriter.
"""

import re

# Sentinel markers wrapped around a locator while content is portable
SENTINEL_START = "_image-url-start_"
SENTINEL_END = "_image-url-end_"

# Field names with this prefix hold field-mapping metadata, never asset references
RESERVED_KEY_PREFIX = "_"

# Embedded block data envelope: "data": {...}, "mode"
ENVELOPE_PATTERN = re.compile(r'"data"\s*:\s*({.*?})\s*,\s*"mode"')

# Quoted sentinel string, payload captured
SENTINEL_PATTERN = re.compile(
    '"' + re.escape(SENTINEL_START) + r'(.*?)' + re.escape(SENTINEL_END) + '"',
    re.DOTALL,
)

# Image locators are recognised by their path extension only
IMAGE_EXTENSIONS = frozenset(['jpg', 'jpeg', 'png', 'gif', 'webp', 'svg', 'bmp', 'tiff'])

# Defaults
DEFAULT_MAX_DEPTH = 256
DEFAULT_FETCH_TIMEOUT = 300  # seconds, sized for large media downloads
DEFAULT_CACHE_TTL = 3600  # seconds
DEFAULT_MAX_WORKERS = 4
CACHE_KEY_PREFIX = "blockcopy_url_to_id_"


def wrap_locator(url: str) -> str:
    """Return the quoted sentinel form of a locator."""
    return f'"{SENTINEL_START}{url}{SENTINEL_END}"'
