"""
Rewriting Module
================

Position-aware textual substitution of asset references, used in both
directions of a block copy.
"""

from blockcopy_core.rewriting.token_rewriter import (
    RewriteResult,
    TokenRewriter,
    reserved_value_spans,
    rewrite_ids_to_urls,
    rewrite_urls_to_ids,
    string_literal_spans,
)

__all__ = [
    "RewriteResult",
    "TokenRewriter",
    "reserved_value_spans",
    "string_literal_spans",
    "rewrite_ids_to_urls",
    "rewrite_urls_to_ids",
]
