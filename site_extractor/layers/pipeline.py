"""
Page Processing Layer.

One linear pipeline per URL:

    light fetch -> assemble -> [headless re-fetch] -> [enrichment] -> finalize

Steps never run concurrently; each depends on the previous one's output.
Every fetch stage has its own timeout. The pipeline always returns a
PageRecord; when no HTML could be obtained at all, that record has
page_type_guess = error.
"""
import asyncio
from typing import List, Optional

from site_extractor.adapters.headless import HeadlessRenderer
from site_extractor.adapters.http_fetcher import FetchResult, HttpFetcher
from site_extractor.adapters.profile_store import ProfileStore
from site_extractor.config import config
from site_extractor.extractors.assembler import BaseRecordAssembler
from site_extractor.layers.enrichment import EnrichmentLayer
from site_extractor.layers.fetch_strategy import (
    ProcessingStage,
    enrichment_decision,
    headless_decision,
    should_replace_with_rendered,
)
from site_extractor.models.record import ErrorType, FetchMethod, PageRecord, PageType, error_record
from site_extractor.utils.logger import LayerLogger
from site_extractor.utils.text import hostname_of


class PageProcessingLayer:
    """Fetches, assembles and optionally renders and enriches a single page."""

    def __init__(
        self,
        fetcher: HttpFetcher,
        profile_store: ProfileStore,
        assembler: Optional[BaseRecordAssembler] = None,
        renderer: Optional[HeadlessRenderer] = None,
        enrichment: Optional[EnrichmentLayer] = None,
        light_timeout: float = config.REQUEST_TIMEOUT,
        headless_timeout: float = config.HEADLESS_TIMEOUT,
        enrichment_timeout: float = config.LLM_TIMEOUT,
    ):
        self.fetcher = fetcher
        self.profile_store = profile_store
        self.assembler = assembler or BaseRecordAssembler()
        self.renderer = renderer
        self.enrichment = enrichment
        self.light_timeout = light_timeout
        # Stage timeouts get a margin over the adapter's own timeout.
        self.headless_timeout = headless_timeout + 5
        self.enrichment_timeout = enrichment_timeout + 5
        self.logger = LayerLogger("pipeline")

    async def process(
        self,
        url: str,
        use_headless: bool = True,
        use_enrichment: bool = True,
    ) -> PageRecord:
        stages: List[str] = []

        def enter(stage: ProcessingStage):
            stages.append(stage.value)
            self.logger.log_action("stage", stage.value, url=url)

        hostname = hostname_of(url)
        if not hostname:
            record = error_record(url, "Invalid URL", ErrorType.CLIENT_ERROR)
            record.processing_stages = [ProcessingStage.FINALIZED.value]
            return record
        profile = await self.profile_store.get(hostname)

        # Light fetch
        enter(ProcessingStage.LIGHT_FETCH_PENDING)
        light = await self._light_fetch(url)
        enter(ProcessingStage.LIGHT_FETCH_DONE)

        html: Optional[str] = None
        record: Optional[PageRecord] = None
        if light.ok:
            html = light.html
            record = self.assembler.assemble(html, url, profile)
            record.fetch_method = FetchMethod.LIGHT

        # Headless render
        if use_headless and self.renderer is not None:
            decision = headless_decision(light, record)
            self.logger.log_decision(
                decision="headless" if decision.proceed else "skip_headless",
                reason=decision.reason,
                url=url,
            )
            if decision.proceed:
                enter(ProcessingStage.HEADLESS_PENDING)
                rendered = await self._render(url)
                enter(ProcessingStage.HEADLESS_DONE)
                if rendered.ok and should_replace_with_rendered(html, rendered.html):
                    html = rendered.html
                    record = self.assembler.assemble(html, url, profile)
                    record.fetch_method = FetchMethod.HEADLESS
                elif rendered.ok:
                    self.logger.log_decision(
                        decision="keep_light_record",
                        reason="rendered_html_not_meaningfully_larger",
                        url=url,
                    )

        if record is None or html is None:
            message = light.error or "Empty response"
            record = error_record(url, f"Page could not be fetched: {message}", ErrorType.CLIENT_ERROR)
            self.logger.log_error(record.error, error_type=ErrorType.TOTAL_FAILURE.value, url=url)
            enter(ProcessingStage.FINALIZED)
            record.processing_stages = stages
            return record

        if use_enrichment:
            record = await self._maybe_enrich(record, html, enter)

        enter(ProcessingStage.FINALIZED)
        record.processing_stages = stages
        return record

    async def process_html(self, url: str, html: str, use_enrichment: bool = True) -> PageRecord:
        """Assemble caller-provided HTML; no fetch stages run."""
        stages: List[str] = []

        def enter(stage: ProcessingStage):
            stages.append(stage.value)
            self.logger.log_action("stage", stage.value, url=url)

        hostname = hostname_of(url)
        profile = await self.profile_store.get(hostname) if hostname else None
        record = self.assembler.assemble(html, url, profile)
        if use_enrichment and record.page_type_guess != PageType.ERROR:
            record = await self._maybe_enrich(record, html, enter)
        enter(ProcessingStage.FINALIZED)
        record.processing_stages = stages
        return record

    async def _maybe_enrich(self, record: PageRecord, html: str, enter) -> PageRecord:
        if self.enrichment is None or not self.enrichment.is_available():
            return record
        decision = enrichment_decision(record)
        self.logger.log_decision(
            decision="enrich" if decision.proceed else "skip_enrichment",
            reason=decision.reason,
            url=record.url,
            missing_fields=decision.missing_fields,
        )
        if not decision.proceed:
            return record
        enter(ProcessingStage.ENRICHMENT_PENDING)
        record = await self._enrich(record, html, decision)
        enter(ProcessingStage.ENRICHMENT_DONE)
        return record

    async def _light_fetch(self, url: str) -> FetchResult:
        try:
            return await asyncio.wait_for(self.fetcher.fetch(url), timeout=self.light_timeout)
        except asyncio.TimeoutError:
            self.logger.log_error("Light fetch timed out", error_type=ErrorType.TRANSPORT_FAILURE.value, url=url)
            return FetchResult(url=url, error="Light fetch timed out")
        except Exception as e:
            self.logger.log_error(
                f"Light fetch failed: {e}",
                error_type=ErrorType.TRANSPORT_FAILURE.value,
                url=url,
            )
            return FetchResult(url=url, error=str(e) or type(e).__name__)

    async def _render(self, url: str) -> FetchResult:
        try:
            return await asyncio.wait_for(self.renderer.render(url), timeout=self.headless_timeout)
        except asyncio.TimeoutError:
            self.logger.log_error("Headless render timed out", error_type=ErrorType.TRANSPORT_FAILURE.value, url=url)
            return FetchResult(url=url, error="Headless render timed out")
        except Exception as e:
            self.logger.log_error(
                f"Headless render failed: {e}",
                error_type=ErrorType.TRANSPORT_FAILURE.value,
                url=url,
            )
            return FetchResult(url=url, error=str(e))

    async def _enrich(self, record, html, decision) -> PageRecord:
        try:
            return await asyncio.wait_for(
                self.enrichment.enrich(record, html, decision),
                timeout=self.enrichment_timeout,
            )
        except asyncio.TimeoutError:
            return self.enrichment.reconciler.reconcile(
                record, None, error="Enrichment timed out", requested_fields=decision.missing_fields,
            )
        except Exception as e:
            return self.enrichment.reconciler.reconcile(
                record, None, error=f"Enrichment failed: {e}", requested_fields=decision.missing_fields,
            )
