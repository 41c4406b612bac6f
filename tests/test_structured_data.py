"""
Unit tests for JSON-LD and Open Graph extraction.
"""

from bs4 import BeautifulSoup

from site_extractor.extractors.structured_data import (
    StructuredDataExtractor,
    first_offer,
    flatten_jsonld,
    image_urls,
    name_of,
    node_types,
)


def _extract(head):
    soup = BeautifulSoup(f"<html><head>{head}</head><body></body></html>", "lxml")
    return StructuredDataExtractor().extract(soup)


class TestFlattening:
    """Test the JSON-LD shape helpers."""

    def test_graph_and_arrays(self):
        data = [
            {"@context": "https://schema.org", "@graph": [{"@type": "WebSite"}, {"@type": "Product", "name": "A"}]},
            {"@type": "Organization"},
        ]
        assert [node["@type"] for node in flatten_jsonld(data)] == ["WebSite", "Product", "Organization"]

    def test_node_types_accepts_lists(self):
        assert node_types({"@type": ["Product", "Thing"]}) == ["product", "thing"]
        assert node_types({"name": "untyped"}) == []

    def test_image_urls(self):
        assert image_urls("a.jpg") == ["a.jpg"]
        assert image_urls([{"url": "b.jpg"}, "c.jpg", {"contentUrl": "d.jpg"}, 5]) == ["b.jpg", "c.jpg", "d.jpg"]
        assert image_urls(None) == []

    def test_first_offer(self):
        assert first_offer({"offers": [{"price": "10"}, {"price": "20"}]}) == {"price": "10"}
        assert first_offer({"offers": []}) is None
        assert first_offer({}) is None

    def test_name_of(self):
        assert name_of({"@type": "Brand", "name": "Acme"}) == "Acme"
        assert name_of([{"name": "Jane"}]) == "Jane"
        assert name_of(42) == "42"
        assert name_of(None) is None


class TestStructuredDataExtractor:
    """Test the document pass."""

    def test_first_nodes_by_kind(self):
        result = _extract(
            '<script type="application/ld+json">'
            '{"@graph": [{"@type": "BreadcrumbList", "itemListElement": []},'
            ' {"@type": "Product", "name": "First"}, {"@type": "Product", "name": "Second"}]}'
            "</script>"
            '<script type="application/ld+json">{"@type": "BlogPosting", "headline": "Post"}</script>'
        )

        assert result.product["name"] == "First"
        assert result.article["headline"] == "Post"
        assert result.breadcrumb_list is not None
        assert result.collection is None
        assert result.schema_types == ["breadcrumblist", "product", "blogposting"]

    def test_malformed_block_is_skipped(self):
        result = _extract(
            '<script type="application/ld+json">{"@type": "Product", </script>'
            '<script type="application/ld+json">{"@type": "CollectionPage", "name": "Shoes"}</script>'
        )

        assert result.malformed_blocks == 1
        assert result.product is None
        assert result.collection["name"] == "Shoes"

    def test_open_graph(self):
        result = _extract(
            '<meta property="og:type" content="product">'
            '<meta property="og:image" content=" https://cdn.example.com/a.jpg ">'
            '<meta property="og:image" content="https://cdn.example.com/b.jpg">'
            '<meta property="og:title" content="">'
            '<meta property="article:author" content="Jane">'
        )

        assert result.og_type == "product"
        assert result.open_graph == {"type": "product", "image": "https://cdn.example.com/a.jpg"}

    def test_no_structured_data(self):
        result = _extract("<title>Plain</title>")
        assert result.objects == []
        assert result.schema_types == []
        assert result.og_type is None
