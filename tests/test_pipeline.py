"""
Tests for the page processing pipeline.

Light fetch, optional headless render and optional enrichment run against
fakes; the pipeline must always hand back a record.
"""

import asyncio

import httpx

from site_extractor.adapters.http_fetcher import HttpFetcher, RetryPolicy
from site_extractor.adapters.llm_client import LLMResponse
from site_extractor.layers.enrichment import EnrichmentLayer
from site_extractor.layers.pipeline import PageProcessingLayer
from site_extractor.models.record import FetchMethod, PageType
from site_extractor.models.selectors import FieldKey, SelectorRule, SiteSelectorProfile

from tests.conftest import FakeFetcher, FakeLLMClient, FakeRenderer


URL = "https://shop.example.com/p/red-shoe"


def product_html(paragraph, price='<span class="price">49,90 TL</span>'):
    return f"""<html><head><title>Red Shoe</title></head><body>
<main><h1>Red Shoe</h1>{price}<p>{paragraph}</p></main>
</body></html>"""


class TestPageProcessingLayer:
    """Test stage transitions and fallbacks."""

    def test_complete_light_record_skips_headless(self, profile_store, long_paragraph):
        renderer = FakeRenderer(html="<html>rendered</html>")
        processor = PageProcessingLayer(
            FakeFetcher({URL: product_html(long_paragraph)}), profile_store, renderer=renderer,
        )

        record = asyncio.run(processor.process(URL))

        assert record.fetch_method == FetchMethod.LIGHT
        assert record.price == "49.90"
        assert renderer.calls == []
        assert record.processing_stages == ["light_fetch_pending", "light_fetch_done", "finalized"]

    def test_failed_light_fetch_falls_back_to_headless(self, profile_store, long_paragraph):
        renderer = FakeRenderer(html=product_html(long_paragraph))
        processor = PageProcessingLayer(FakeFetcher(error="timed out"), profile_store, renderer=renderer)

        record = asyncio.run(processor.process(URL))

        assert renderer.calls == [URL]
        assert record.fetch_method == FetchMethod.HEADLESS
        assert record.page_type_guess == PageType.PRODUCT
        assert "headless_done" in record.processing_stages

    def test_rendered_html_replaces_only_when_larger(self, profile_store, long_paragraph):
        light = product_html(long_paragraph, price="")
        renderer = FakeRenderer(html=light + " ")
        processor = PageProcessingLayer(FakeFetcher({URL: light}), profile_store, renderer=renderer)

        record = asyncio.run(processor.process(URL))

        assert renderer.calls == [URL]
        assert record.fetch_method == FetchMethod.LIGHT

    def test_every_fetch_failing_gives_error_record(self, profile_store):
        processor = PageProcessingLayer(
            FakeFetcher(error="connection refused"), profile_store, renderer=FakeRenderer(error="browser crashed"),
        )

        record = asyncio.run(processor.process(URL))

        assert record.page_type_guess == PageType.ERROR
        assert "connection refused" in record.error
        assert record.fetch_method == FetchMethod.NONE
        assert record.processing_stages[-1] == "finalized"

    def test_headless_disabled(self, profile_store):
        processor = PageProcessingLayer(FakeFetcher(error="HTTP 500"), profile_store, renderer=None)
        record = asyncio.run(processor.process(URL, use_headless=True))
        assert record.page_type_guess == PageType.ERROR

    def test_invalid_url(self, profile_store):
        record = asyncio.run(PageProcessingLayer(FakeFetcher(), profile_store).process("not a url"))
        assert record.page_type_guess == PageType.ERROR
        assert record.error == "Invalid URL"

    def test_stored_profile_used(self, profile_store, long_paragraph):
        profile = SiteSelectorProfile(
            hostname="shop.example.com",
            selectors={FieldKey.PRICE: [SelectorRule(selector=".special")]},
        )
        asyncio.run(profile_store.put("shop.example.com", profile))
        html = product_html(long_paragraph, price='<b class="special">10,00 TL</b>')
        processor = PageProcessingLayer(FakeFetcher({URL: html}), profile_store)

        record = asyncio.run(processor.process(URL))

        assert record.site_selectors_used is True
        assert record.price == "10.00"

    def test_enrichment_runs_for_missing_fields(self, profile_store, long_paragraph):
        llm = FakeLLMClient([LLMResponse(data={
            "detectedPageType": "product",
            "productInfo": {"features": ["Hand stitched"], "stockStatus": "In stock"},
        })])
        processor = PageProcessingLayer(
            FakeFetcher({URL: product_html(long_paragraph)}),
            profile_store,
            enrichment=EnrichmentLayer(llm),
        )

        record = asyncio.run(processor.process(URL))

        assert len(llm.prompts) == 1
        assert record.features == ["Hand stitched"]
        assert record.stock_status == "Mevcut"
        assert record.enrichment.detected_type == "product"
        assert record.processing_stages[-3:] == ["enrichment_pending", "enrichment_done", "finalized"]

    def test_enrichment_disabled_per_call(self, profile_store, long_paragraph):
        llm = FakeLLMClient()
        processor = PageProcessingLayer(
            FakeFetcher({URL: product_html(long_paragraph)}), profile_store, enrichment=EnrichmentLayer(llm),
        )
        record = asyncio.run(processor.process(URL, use_enrichment=False))
        assert llm.prompts == []
        assert record.enrichment is None

    def test_provided_html(self, profile_store, long_paragraph):
        fetcher = FakeFetcher()
        processor = PageProcessingLayer(fetcher, profile_store)

        record = asyncio.run(processor.process_html(URL, product_html(long_paragraph)))

        assert fetcher.calls == []
        assert record.fetch_method == FetchMethod.PROVIDED
        assert record.processing_stages == ["finalized"]


class RaisingFetcher:
    async def fetch(self, url, timeout=None):
        raise RuntimeError("socket exploded")


class RaisingLLMClient(FakeLLMClient):
    async def complete_json(self, prompt, purpose="completion"):
        raise RuntimeError("model crashed")


class TestPipelineBoundary:
    """Test that collaborator exceptions end up on the record."""

    def test_fetcher_exception_gives_error_record(self, profile_store):
        record = asyncio.run(PageProcessingLayer(RaisingFetcher(), profile_store).process(URL))

        assert record.page_type_guess == PageType.ERROR
        assert "socket exploded" in record.error
        assert record.processing_stages[-1] == "finalized"

    def test_unencodable_host_gives_error_record(self, profile_store):
        fetcher = HttpFetcher(
            retry_policy=RetryPolicy(max_attempts=1, backoff=lambda attempt: 0),
            transport=httpx.MockTransport(lambda request: httpx.Response(200, text="<html>ok</html>")),
        )

        record = asyncio.run(PageProcessingLayer(fetcher, profile_store).process("https://shop\u200b.example.com/p/red-shoe"))

        assert record.page_type_guess == PageType.ERROR
        assert record.error

    def test_enrichment_exception_recorded(self, profile_store, long_paragraph):
        processor = PageProcessingLayer(
            FakeFetcher({URL: product_html(long_paragraph)}),
            profile_store,
            enrichment=EnrichmentLayer(RaisingLLMClient()),
        )

        record = asyncio.run(processor.process(URL))

        assert record.page_type_guess == PageType.PRODUCT
        assert record.price == "49.90"
        assert "model crashed" in record.enrichment.error
        assert record.processing_stages[-1] == "finalized"
