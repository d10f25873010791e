"""
Token Rewriter Tests

Run with: pytest tests/test_token_rewriter.py -v
"""

import json

from blockcopy_core.constants import SENTINEL_PATTERN, wrap_locator
from blockcopy_core.rewriting import (
    TokenRewriter,
    reserved_value_spans,
    rewrite_ids_to_urls,
    rewrite_urls_to_ids,
)
from blockcopy_core.scanning import scan_references

URL_A = "https://src.example.com/uploads/a.jpg"
URL_B = "https://src.example.com/uploads/b.png"


class TestIdsToUrls:
    """Tests for the export direction."""

    def test_boundary_example(self):
        """147 is left alone when only 7 is mapped."""
        text = '{"size":147,"image":7,"mode":"preview"}'
        result = rewrite_ids_to_urls(text, {7: "https://x/a.jpg"})
        assert result == (
            '{"size":147,"image":"_image-url-start_https://x/a.jpg_image-url-end_","mode":"preview"}'
        )

    def test_quoted_id_is_replaced(self):
        """A quoted numeric ID is replaced by the quoted sentinel, no doubled quotes."""
        result = rewrite_ids_to_urls('{"image":"7"}', {7: URL_A})
        assert result == '{"image":' + wrap_locator(URL_A) + '}'

    def test_array_members(self):
        """IDs inside arrays are replaced one by one."""
        result = rewrite_ids_to_urls('{"gallery":[7, 8,9]}', {7: URL_A, 9: URL_B})
        assert result == '{"gallery":[' + wrap_locator(URL_A) + ', 8,' + wrap_locator(URL_B) + ']}'

    def test_not_part_of_other_numbers(self):
        """Negative, decimal and text occurrences are untouched."""
        text = '{"a":-7,"b":1.7,"c":"7 apples","d":70}'
        assert rewrite_ids_to_urls(text, {7: URL_A}) == text

    def test_ids_inside_string_values_untouched(self):
        """Text like ", 7," or "16:9," inside a string value is not an ID."""
        text = (
            '<!-- wp:acf/hero {"data":{"image":7,"title":"Top 10, 7, 3",'
            '"ratio":"16:9,","list":"[7]"},"mode":"preview"} /-->'
        )
        result = rewrite_ids_to_urls(text, {7: URL_A, 9: URL_B})
        assert result == text.replace('"image":7', '"image":' + wrap_locator(URL_A))
        assert json.loads(result[result.index("{"):result.rindex("}") + 1])

    def test_reserved_field_untouched(self):
        """Values of _-prefixed fields survive, including nested ones."""
        text = '{"_image":7,"image":7,"_gallery":[7,{"x":7}],"gallery":[7]}'
        result = rewrite_ids_to_urls(text, {7: URL_A})
        assert result == (
            '{"_image":7,"image":' + wrap_locator(URL_A)
            + ',"_gallery":[7,{"x":7}],"gallery":[' + wrap_locator(URL_A) + ']}'
        )

    def test_existing_sentinel_untouched(self):
        """Digits inside an already embedded locator are not rewritten."""
        embedded = wrap_locator("https://src.example.com/7.jpg")
        text = '{"a":' + embedded + ',"b":7}'
        result = rewrite_ids_to_urls(text, {7: URL_A})
        assert result == '{"a":' + embedded + ',"b":' + wrap_locator(URL_A) + '}'

    def test_mapping_order_does_not_matter(self):
        """Overlapping IDs give the same result whatever the mapping order."""
        text = '{"a":7,"b":77,"c":[777,7]}'
        forward = {7: URL_A, 77: URL_B, 777: "https://src.example.com/c.gif"}
        backward = dict(reversed(list(forward.items())))
        assert rewrite_ids_to_urls(text, forward) == rewrite_ids_to_urls(text, backward)

    def test_completeness(self):
        """After export no mapped ID remains as a candidate."""
        text = '<!-- wp:acf/hero {"data":{"image":7,"gallery":[8,9],"count":3},"mode":"preview"} /-->'
        mapping = {7: URL_A, 8: URL_B, 9: "https://src.example.com/c.gif"}
        result = rewrite_ids_to_urls(text, mapping)
        assert scan_references(result) == {3}
        assert len(SENTINEL_PATTERN.findall(result)) == 3

    def test_substitution_counts(self):
        """The rewriter reports substitutions per ID."""
        result = TokenRewriter().ids_to_urls('{"a":7,"b":7,"c":8}', {7: URL_A, 8: URL_B, 9: URL_B})
        assert result.substitutions == {7: 2, 8: 1}
        assert result.total == 3

    def test_empty_mapping_is_identity(self):
        """No mapping, no change."""
        text = '{"image":7}'
        assert rewrite_ids_to_urls(text, {}) == text


class TestUrlsToIds:
    """Tests for the import direction."""

    def test_replaces_quoted_sentinel_with_bare_id(self):
        """The sentinel and its quotes become a bare integer."""
        text = '{"image":' + wrap_locator(URL_A) + '}'
        assert rewrite_urls_to_ids(text, {URL_A: 42}) == '{"image":42}'

    def test_every_occurrence_replaced(self):
        """All occurrences of a locator are replaced."""
        text = '[' + wrap_locator(URL_A) + ',' + wrap_locator(URL_A) + ']'
        result = TokenRewriter().urls_to_ids(text, {URL_A: 5})
        assert result.text == '[5,5]'
        assert result.substitutions == {URL_A: 2}

    def test_unmapped_sentinel_remains(self):
        """Locators without a mapping are left for a later pass."""
        text = '{"a":' + wrap_locator(URL_A) + ',"b":' + wrap_locator(URL_B) + '}'
        result = rewrite_urls_to_ids(text, {URL_A: 5})
        assert result == '{"a":5,"b":' + wrap_locator(URL_B) + '}'

    def test_prefix_locators(self):
        """A locator that prefixes another does not eat into it."""
        longer = URL_A + ".webp"
        text = '{"a":' + wrap_locator(URL_A) + ',"b":' + wrap_locator(longer) + '}'
        result = rewrite_urls_to_ids(text, {URL_A: 1, longer: 2})
        assert result == '{"a":1,"b":2}'


class TestRoundTrip:
    """Export followed by import."""

    def test_round_trip_restores_bare_ids(self):
        """Mapping IDs to locators and back is the identity for bare IDs."""
        text = '<!-- wp:acf/hero {"data":{"image":7,"_image":"field_1","gallery":[8,12]},"mode":"edit"} /-->'
        id_to_url = {7: URL_A, 8: URL_B}
        url_to_id = {url: asset_id for asset_id, url in id_to_url.items()}

        portable = rewrite_ids_to_urls(text, id_to_url)
        assert portable != text
        assert rewrite_urls_to_ids(portable, url_to_id) == text


class TestReservedSpans:
    """Tests for reserved value span detection."""

    def test_spans_cover_nested_values(self):
        """A reserved array value is one span, strings with brackets included."""
        text = '{"_x":[1,"]",{"y":2}],"z":3}'
        spans = reserved_value_spans(text)
        assert len(spans) == 1
        start, end = spans[0]
        assert text[start:end] == '[1,"]",{"y":2}]'
