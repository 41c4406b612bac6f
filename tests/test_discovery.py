"""
Tests for the selector discovery layer.

The LLM only proposes candidates; these tests check that local scoring
decides what ends up in the profile.
"""

import asyncio

import pytest
from bs4 import BeautifulSoup

from site_extractor.adapters.llm_client import LLMResponse
from site_extractor.layers.discovery import (
    TARGET_FIELDS,
    DiscoverySample,
    SelectorDiscoveryLayer,
    build_discovery_prompt,
    parse_candidates,
    relevant_samples,
    score_candidate,
    score_on_sample,
)
from site_extractor.models.record import PageType
from site_extractor.models.selectors import FieldKey, SelectorRule

from tests.conftest import FakeFetcher, FakeLLMClient, FakeSitemapWalker


SITE = "https://shop.example.com"

HOME = "<html><body><nav class='menu'><a href='/urun/a'>A</a></nav><h1>Welcome</h1></body></html>"


def product_html(name, price):
    return f"""<html><body>
<h1 class="product-name">{name}</h1>
<div class="price-box"><span class="price-current">{price}</span></div>
<ul class="specs"><li>Leather</li><li>Rubber</li></ul>
</body></html>"""


PAGES = {
    SITE: HOME,
    f"{SITE}/urun/a": product_html("Shoe A", "10,00 TL"),
    f"{SITE}/urun/b": product_html("Shoe B", "12,00 TL"),
}


def _target(key):
    return next(target for target in TARGET_FIELDS if target.key == key)


def _sample(url, html, page_type):
    return DiscoverySample(url=url, soup=BeautifulSoup(html, "lxml"), html=html, page_type=page_type)


class TestParseCandidates:
    """Test validation of the proposal shape."""

    def test_malformed_entries_dropped(self):
        data = {
            "price": [{"selector": ".price"}, {"selector": ""}, "junk", {"attr": "content"}],
            "title": "not a list",
            "productImages": [{"selector": ".gallery img", "attr": "src"}],
            "unknownField": [{"selector": ".x"}],
        }
        candidates = parse_candidates(data, TARGET_FIELDS)
        assert candidates[FieldKey.PRICE] == [SelectorRule(selector=".price")]
        assert FieldKey.TITLE not in candidates
        assert candidates[FieldKey.PRODUCT_IMAGES][0].attribute == "src"

    def test_feature_table_rows_detected(self):
        data = {"features": [{"selector": "#tab-specification tr"}, {"selector": ".specs li"}]}
        rules = parse_candidates(data, TARGET_FIELDS)[FieldKey.FEATURES]
        assert rules[0].is_tabular_row is True
        assert rules[1].is_tabular_row is False

    def test_prompt_lists_every_field_and_truncates_html(self):
        prompt = build_discovery_prompt("x" * 50, TARGET_FIELDS, 10)
        for target in TARGET_FIELDS:
            assert f'"{target.key.value}"' in prompt
        assert "x" * 11 not in prompt


class TestScoring:
    """Test per-sample and aggregate scores."""

    def test_single_value_match(self):
        soup = BeautifulSoup(product_html("Shoe", "10"), "lxml")
        rule = SelectorRule(selector=".price-current")
        assert score_on_sample(rule, _target(FieldKey.PRICE), soup) == 10

    def test_multiplicity_mismatch(self):
        soup = BeautifulSoup(product_html("Shoe", "10"), "lxml")
        rule = SelectorRule(selector=".specs li")
        assert score_on_sample(rule, _target(FieldKey.PRICE), soup) == 7
        assert score_on_sample(rule, _target(FieldKey.FEATURES), soup) == 10

    def test_no_match_scores_zero(self):
        soup = BeautifulSoup(product_html("Shoe", "10"), "lxml")
        assert score_on_sample(SelectorRule(selector=".nothing"), _target(FieldKey.PRICE), soup) == 0

    def test_found_ratio_dampens_score(self):
        samples = [
            _sample("a", product_html("A", "1"), PageType.PRODUCT),
            _sample("b", "<html><body></body></html>", PageType.PRODUCT),
        ]
        scored = score_candidate(SelectorRule(selector=".price-current"), _target(FieldKey.PRICE), samples)
        assert scored.found_ratio == 0.5
        assert scored.score == pytest.approx(5 * 0.5 ** 0.5)

    def test_relevant_samples_fall_back_to_all(self):
        samples = [_sample("home", HOME, PageType.PAGE)]
        assert relevant_samples(_target(FieldKey.PRICE), samples) == samples


class TestSelectorDiscoveryLayer:
    """Test the full discovery run against fakes."""

    def _layer(self, profile_store, llm):
        fetcher = FakeFetcher(PAGES)
        walker = FakeSitemapWalker([f"{SITE}/urun/a", f"{SITE}/urun/b", f"{SITE}/hakkimizda"])
        return SelectorDiscoveryLayer(llm, profile_store, fetcher=fetcher, sitemap_walker=walker)

    def test_only_verified_selectors_persisted(self, profile_store):
        llm = FakeLLMClient([LLMResponse(data={
            "price": [{"selector": ".does-not-exist"}, {"selector": ".price-current"}],
            "title": [{"selector": ".phantom-title"}],
            "features": [{"selector": ".specs li"}],
        })])
        layer = self._layer(profile_store, llm)

        report = asyncio.run(layer.run(SITE))

        assert len(llm.prompts) == 1
        assert report.representative_url == f"{SITE}/urun/a"
        profile = report.profile
        assert profile.rules_for(FieldKey.PRICE) == [SelectorRule(selector=".price-current")]
        assert profile.rules_for(FieldKey.FEATURES) == [SelectorRule(selector=".specs li")]
        assert FieldKey.TITLE not in profile.selectors
        assert report.persisted is True

        stored = asyncio.run(profile_store.get("shop.example.com"))
        assert stored == profile

    def test_empty_profile_not_persisted(self, profile_store):
        llm = FakeLLMClient([LLMResponse(data={"price": [{"selector": ".nothing"}]})])
        layer = self._layer(profile_store, llm)

        profile = asyncio.run(layer.discover(SITE))

        assert profile.is_empty()
        assert asyncio.run(profile_store.get("shop.example.com")) is None

    def test_llm_failure_returns_empty_profile(self, profile_store):
        llm = FakeLLMClient([LLMResponse(error="LLM request failed")])
        report = asyncio.run(self._layer(profile_store, llm).run(SITE))
        assert report.profile.is_empty()
        assert report.error == "LLM request failed"

    def test_no_samples(self, profile_store):
        llm = FakeLLMClient()
        layer = SelectorDiscoveryLayer(
            llm, profile_store, fetcher=FakeFetcher(error="connection refused"), sitemap_walker=FakeSitemapWalker(),
        )
        report = asyncio.run(layer.run(SITE))
        assert report.profile.is_empty()
        assert report.error
        assert llm.prompts == []

    def test_invalid_site_url(self, profile_store):
        report = asyncio.run(self._layer(profile_store, FakeLLMClient()).run("not a url"))
        assert report.error == "Invalid site URL"


class FlakyFetcher(FakeFetcher):
    """Raises for URLs containing "broken"."""

    async def fetch(self, url, timeout=None):
        if "broken" in url:
            self.calls.append(url)
            raise ValueError("Invalid IDNA hostname")
        return await super().fetch(url, timeout=timeout)


class BrokenSitemapWalker:
    async def collect(self, site_url):
        raise RuntimeError("sitemap parser crashed")


class TestDiscoveryResilience:
    """Test that a single failing collaborator call does not abort discovery."""

    def test_raising_sample_fetch_is_skipped(self, profile_store):
        llm = FakeLLMClient([LLMResponse(data={"price": [{"selector": ".price-current"}]})])
        fetcher = FlakyFetcher(PAGES)
        walker = FakeSitemapWalker([f"{SITE}/urun/a", f"{SITE}/urun/broken", f"{SITE}/urun/b"])
        layer = SelectorDiscoveryLayer(llm, profile_store, fetcher=fetcher, sitemap_walker=walker)

        report = asyncio.run(layer.run(SITE))

        assert f"{SITE}/urun/broken" in fetcher.calls
        assert report.error is None
        assert f"{SITE}/urun/broken" not in [sample["url"] for sample in report.samples]
        assert report.profile.rules_for(FieldKey.PRICE) == [SelectorRule(selector=".price-current")]
        assert report.persisted is True

    def test_sitemap_failure_falls_back_to_site_url(self, profile_store):
        llm = FakeLLMClient([LLMResponse(data={"price": [{"selector": ".nothing"}]})])
        layer = SelectorDiscoveryLayer(
            llm, profile_store, fetcher=FakeFetcher(PAGES), sitemap_walker=BrokenSitemapWalker(),
        )

        report = asyncio.run(layer.run(SITE))

        assert report.error is None
        assert [sample["url"] for sample in report.samples] == [SITE]
        assert report.representative_url == SITE
        assert len(llm.prompts) == 1
