"""
Unit tests for selector-based field extraction.
"""

from bs4 import BeautifulSoup

from site_extractor.extractors.selector_extractor import (
    extract_all,
    extract_images,
    extract_single,
    select,
)
from site_extractor.models.selectors import SelectorRule


PAGE = """
<html><body>
  <h1 class="title">  Red   Shoe </h1>
  <meta itemprop="price" content="">
  <span class="price">49,90 TL</span>
  <ul class="features"><li>Leather</li><li>Rubber sole</li><li>Leather</li></ul>
  <table id="spec">
    <tr><th>Color:</th><td>Red</td></tr>
    <tr><th>Size</th><td>42</td></tr>
  </table>
  <div class="gallery">
    <img src="/img/shoe-1.jpg" alt="Front" width="600" style="height: 400px">
    <img data-src="//cdn.example.com/img/shoe-2.webp">
    <img src="/img/shoe-1.jpg">
    <img src="/icon.svg">
  </div>
  <script type="application/ld+json">{"@type": "Product", "offers": {"price": 19.99}, "image": ["/img/ld.png"]}</script>
</body></html>
"""


def _soup():
    return BeautifulSoup(PAGE, "lxml")


class TestExtractSingle:
    """Test first-success-wins extraction."""

    def test_first_non_empty_rule_wins(self):
        rules = [
            SelectorRule(selector='[itemprop="price"]', attribute="content"),
            SelectorRule(selector=".price"),
        ]
        assert extract_single(_soup(), rules) == "49,90 TL"

    def test_text_is_sanitized(self):
        assert extract_single(_soup(), [SelectorRule(selector="h1.title")]) == "Red Shoe"

    def test_json_path_rule(self):
        rules = [SelectorRule(selector='script[type="application/ld+json"]', json_path="$.offers.price")]
        assert extract_single(_soup(), rules) == "19.99"

    def test_invalid_selector_matches_nothing(self):
        assert select(_soup(), "div[[") == []
        assert extract_single(_soup(), [SelectorRule(selector="div[["), SelectorRule(selector=".price")]) == "49,90 TL"


class TestExtractAll:
    """Test multi-value and tabular extraction."""

    def test_values_deduplicated(self):
        assert extract_all(_soup(), [SelectorRule(selector=".features li")]) == ["Leather", "Rubber sole"]

    def test_tabular_rows(self):
        rules = [SelectorRule(selector="#spec tr", is_tabular_row=True)]
        assert extract_all(_soup(), rules) == ["Color: Red", "Size: 42"]

    def test_first_group_with_results_wins(self):
        site_group = [SelectorRule(selector=".missing li")]
        default_group = [SelectorRule(selector=".features li")]
        assert extract_all(_soup(), site_group, default_group) == ["Leather", "Rubber sole"]

        preferred = [SelectorRule(selector="#spec tr", is_tabular_row=True)]
        assert extract_all(_soup(), preferred, default_group) == ["Color: Red", "Size: 42"]

    def test_nothing_found(self):
        assert extract_all(_soup(), [SelectorRule(selector=".missing")]) is None


class TestExtractImages:
    """Test image extraction and deduplication."""

    def test_rule_images(self):
        images = extract_images(_soup(), "https://shop.example.com/p/red-shoe", [SelectorRule(selector=".gallery img")])
        assert [image.src for image in images] == [
            "https://shop.example.com/img/shoe-1.jpg",
            "https://cdn.example.com/img/shoe-2.webp",
        ]
        first = images[0]
        assert first.alt == "Front"
        assert first.has_alt is True
        assert first.width == "600"
        assert first.height == "400"
        assert images[1].has_alt is False

    def test_json_path_images(self):
        rules = [SelectorRule(selector='script[type="application/ld+json"]', json_path="$.image")]
        images = extract_images(_soup(), "https://shop.example.com/", rules)
        assert [image.src for image in images] == ["https://shop.example.com/img/ld.png"]

    def test_fallback_only_when_rules_find_nothing(self):
        images = extract_images(
            _soup(), "https://shop.example.com/", [SelectorRule(selector=".missing img")], ".gallery img",
        )
        assert len(images) == 2

        no_fallback = extract_images(_soup(), "https://shop.example.com/", [SelectorRule(selector=".missing img")], "")
        assert no_fallback == []
