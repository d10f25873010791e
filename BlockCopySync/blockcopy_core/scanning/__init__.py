"""
Scanning Module
===============

Discovers numeric reference candidates in block data and sentinel-wrapped
locators in portable content.
"""

from blockcopy_core.scanning.reference_scanner import (
    ReferenceScanner,
    ScanReport,
    scan_references,
)

from blockcopy_core.scanning.locator_scanner import (
    is_valid_image_url,
    scan_locators,
    url_extension,
)

__all__ = [
    "ReferenceScanner",
    "ScanReport",
    "scan_references",
    "is_valid_image_url",
    "scan_locators",
    "url_extension",
]
