"""
Mapping Module
==============

ID -> locator resolution and the export action built on it.
"""

from blockcopy_core.mapping.locator_resolver import (
    ControlEndpointLookup,
    LocatorLookup,
    LocatorResolver,
    ResolutionReport,
    is_embeddable_url,
)

from blockcopy_core.mapping.block_exporter import (
    BlockExporter,
    ExportResult,
)

__all__ = [
    "ControlEndpointLookup",
    "LocatorLookup",
    "LocatorResolver",
    "ResolutionReport",
    "is_embeddable_url",
    "BlockExporter",
    "ExportResult",
]
