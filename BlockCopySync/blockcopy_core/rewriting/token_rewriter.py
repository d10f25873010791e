"""
Token Rewriter
==============

Structure-preserving substitution of asset references inside block content.

Content is kept as text. Both directions are single regex passes over the
original string, so bytes outside the substituted spans are untouched and the
result does not depend on the iteration order of the mapping.

Export (ID -> locator):
    A mapped ID is replaced when it appears as a JSON value, either quoted
    (``"7"``) or bare (``7``): it must follow ``:``, ``[`` or ``,`` and be
    followed by ``,``, ``]`` or ``}``. That boundary keeps ``7`` from matching
    inside ``147``, ``-7`` or ``1.7``. A match inside a string literal is
    skipped unless the token is that whole literal, so ``"Top 10, 7, 3"`` is
    left alone. Values of ``_``-prefixed fields and sentinels already in the
    text are never touched.

Import (locator -> ID):
    Every exact ``"_image-url-start_<url>_image-url-end_"`` string is replaced
    by the bare integer, quotes included.
"""

from bisect import bisect_right
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Tuple
import logging
import re

from blockcopy_core.constants import RESERVED_KEY_PREFIX, SENTINEL_END, SENTINEL_START, wrap_locator

logger = logging.getLogger(__name__)

_RESERVED_KEY = re.compile(
    '"' + re.escape(RESERVED_KEY_PREFIX) + r'(?:[^"\\]|\\.)*"\s*:\s*'
)
_ANY_SENTINEL = '"' + re.escape(SENTINEL_START) + r'.*?' + re.escape(SENTINEL_END) + '"'
_STRING_LITERAL = re.compile(r'"(?:[^"\\\n]|\\.)*"')


@dataclass
class RewriteResult:
    """Rewritten text plus how many times each mapping key was substituted."""

    text: str
    substitutions: Dict = field(default_factory=dict)

    @property
    def total(self) -> int:
        return sum(self.substitutions.values())


# ============================================================================
# SPAN HELPERS
# ============================================================================

def _string_end(text: str, pos: int) -> int:
    """Index just past the JSON string starting at ``pos`` (an opening quote)."""
    i = pos + 1
    n = len(text)
    while i < n:
        ch = text[i]
        if ch == '\\':
            i += 2
            continue
        if ch == '"':
            return i + 1
        i += 1
    return n


def _value_end(text: str, pos: int) -> int:
    """Index just past the JSON value starting at ``pos``."""
    n = len(text)
    if pos >= n:
        return pos

    ch = text[pos]
    if ch == '"':
        return _string_end(text, pos)

    if ch in '[{':
        depth = 0
        i = pos
        while i < n:
            ch = text[i]
            if ch == '"':
                i = _string_end(text, i)
                continue
            if ch in '[{':
                depth += 1
            elif ch in ']}':
                depth -= 1
                if depth == 0:
                    return i + 1
            i += 1
        return n

    i = pos
    while i < n and text[i] not in ',]}' and not text[i].isspace():
        i += 1
    return i


def reserved_value_spans(text: str) -> List[Tuple[int, int]]:
    """
    Spans of values held by ``_``-prefixed fields, merged and sorted.

    Nested arrays and objects under a reserved field are covered entirely.
    """
    spans = []
    for match in _RESERVED_KEY.finditer(text):
        start = match.end()
        spans.append((start, _value_end(text, start)))

    spans.sort()
    merged: List[Tuple[int, int]] = []
    for start, end in spans:
        if merged and start <= merged[-1][1]:
            if end > merged[-1][1]:
                merged[-1] = (merged[-1][0], end)
        else:
            merged.append((start, end))
    return merged


def string_literal_spans(text: str) -> List[Tuple[int, int]]:
    """
    Spans of double-quoted string literals, quotes included.

    JSON strings cannot hold a raw newline, so an unbalanced quote in
    surrounding markup only affects its own line.
    """
    return [match.span() for match in _STRING_LITERAL.finditer(text)]


def _span_at(spans: List[Tuple[int, int]], starts: List[int], pos: int) -> Optional[Tuple[int, int]]:
    idx = bisect_right(starts, pos) - 1
    if idx >= 0 and pos < spans[idx][1]:
        return spans[idx]
    return None


def _in_spans(spans: List[Tuple[int, int]], starts: List[int], pos: int) -> bool:
    return _span_at(spans, starts, pos) is not None


# ============================================================================
# REWRITER
# ============================================================================

class TokenRewriter:
    """
    Rewrites asset references in both directions.

    Example:
        rewriter = TokenRewriter()
        portable = rewriter.ids_to_urls(content, {7: "https://src.example/a.jpg"}).text
        local = rewriter.urls_to_ids(portable, {"https://src.example/a.jpg": 42}).text
    """

    def ids_to_urls(self, text: str, id_to_url: Mapping[int, str]) -> RewriteResult:
        """Replace mapped numeric IDs with quoted sentinel-wrapped locators."""
        urls = {int(asset_id): url for asset_id, url in id_to_url.items()}
        if not text or not urls:
            return RewriteResult(text=text)

        alternation = "|".join(str(i) for i in sorted(urls, key=lambda i: -len(str(i))))
        pattern = re.compile(
            rf'(?P<sentinel>{_ANY_SENTINEL})'
            rf'|(?P<lead>[:\[,]\s*)(?P<token>"(?:{alternation})"|(?:{alternation}))(?=\s*[,\]}}])',
            re.DOTALL,
        )

        spans = reserved_value_spans(text)
        starts = [start for start, _ in spans]
        strings = string_literal_spans(text)
        string_starts = [start for start, _ in strings]
        counts: Dict[int, int] = {}

        def replace(match: re.Match) -> str:
            if match.group('sentinel') is not None:
                return match.group(0)
            if _in_spans(spans, starts, match.start('token')):
                return match.group(0)
            # Inside a string only the whole literal ("7") counts as a value
            literal = _span_at(strings, string_starts, match.start('token'))
            if literal is not None and literal != match.span('token'):
                return match.group(0)

            asset_id = int(match.group('token').strip('"'))
            counts[asset_id] = counts.get(asset_id, 0) + 1
            return match.group('lead') + wrap_locator(urls[asset_id])

        rewritten = pattern.sub(replace, text)
        logger.debug(f"Export rewrite: {sum(counts.values())} substitution(s) for {len(counts)} ID(s)")
        return RewriteResult(text=rewritten, substitutions=counts)

    def urls_to_ids(self, text: str, url_to_id: Mapping[str, int]) -> RewriteResult:
        """Replace quoted sentinel-wrapped locators with bare numeric IDs."""
        if not text or not url_to_id:
            return RewriteResult(text=text)

        by_token = {wrap_locator(url): (url, int(asset_id)) for url, asset_id in url_to_id.items()}
        pattern = re.compile(
            "|".join(re.escape(token) for token in sorted(by_token, key=len, reverse=True))
        )
        counts: Dict[str, int] = {}

        def replace(match: re.Match) -> str:
            url, asset_id = by_token[match.group(0)]
            counts[url] = counts.get(url, 0) + 1
            return str(asset_id)

        rewritten = pattern.sub(replace, text)
        logger.debug(f"Import rewrite: {sum(counts.values())} substitution(s) for {len(counts)} locator(s)")
        return RewriteResult(text=rewritten, substitutions=counts)


def rewrite_ids_to_urls(text: str, id_to_url: Mapping[int, str]) -> str:
    """Export direction: numeric IDs -> ``"_image-url-start_<url>_image-url-end_"``."""
    return TokenRewriter().ids_to_urls(text, id_to_url).text


def rewrite_urls_to_ids(text: str, url_to_id: Mapping[str, int]) -> str:
    """Import direction: sentinel-wrapped locators -> bare numeric IDs."""
    return TokenRewriter().urls_to_ids(text, url_to_id).text
