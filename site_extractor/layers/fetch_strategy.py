"""
Fetch-strategy decisions for one page-processing attempt.

    LIGHT_FETCH_PENDING -> LIGHT_FETCH_DONE
      -> [HEADLESS_PENDING -> HEADLESS_DONE]
      -> [ENRICHMENT_PENDING -> ENRICHMENT_DONE]
      -> FINALIZED

The functions here only decide; the pipeline performs the transitions.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from site_extractor.adapters.http_fetcher import FetchResult
from site_extractor.config import config
from site_extractor.extractors.assembler import is_placeholder_title
from site_extractor.models.record import PageRecord, PageType


class ProcessingStage(str, Enum):
    LIGHT_FETCH_PENDING = "light_fetch_pending"
    LIGHT_FETCH_DONE = "light_fetch_done"
    HEADLESS_PENDING = "headless_pending"
    HEADLESS_DONE = "headless_done"
    ENRICHMENT_PENDING = "enrichment_pending"
    ENRICHMENT_DONE = "enrichment_done"
    FINALIZED = "finalized"


@dataclass
class Decision:
    proceed: bool
    reason: str


@dataclass
class EnrichmentDecision(Decision):
    missing_fields: List[str] = field(default_factory=list)

    @property
    def task(self) -> str:
        """Human-readable task naming exactly the missing fields."""
        if not self.missing_fields:
            return ""
        return "Find the following missing information: " + ", ".join(self.missing_fields)


def _text_length(record: Optional[PageRecord]) -> int:
    return len(record.main_text_content or "") if record else 0


def headless_decision(
    light_result: Optional[FetchResult],
    record: Optional[PageRecord],
    min_text_length: int = config.HEADLESS_MIN_TEXT_LENGTH,
) -> Decision:
    """Whether a headless render should follow the light fetch."""
    if light_result is None or not light_result.ok:
        reason = light_result.error if light_result and light_result.error else "empty_body"
        return Decision(True, f"light_fetch_failed:{reason}")
    if record is None or record.page_type_guess == PageType.ERROR:
        return Decision(True, "light_record_unusable")
    if is_placeholder_title(record.title, record.url):
        return Decision(True, "placeholder_title")
    if _text_length(record) < min_text_length:
        return Decision(True, "little_main_text")
    if record.page_type_guess == PageType.UNKNOWN and _text_length(record) < min_text_length * 2:
        return Decision(True, "unknown_type_with_little_content")
    if record.page_type_guess == PageType.PRODUCT and not record.price:
        return Decision(True, "product_missing_price")
    return Decision(False, "light_record_sufficient")


def enrichment_decision(
    record: PageRecord,
    min_text_length: int = config.ENRICHMENT_MIN_TEXT_LENGTH,
    short_description_length: int = config.SHORT_DESCRIPTION_LENGTH,
) -> EnrichmentDecision:
    """Per-type check for fields an LLM pass could still fill."""
    if _text_length(record) < min_text_length:
        return EnrichmentDecision(False, "main_text_too_short")

    missing: List[str] = []
    page_type = record.page_type_guess
    if page_type == PageType.PRODUCT:
        if not record.features:
            missing.append("features")
        if not record.price:
            missing.append("price")
        if not record.stock_status:
            missing.append("stock status")
        if not record.images:
            missing.append("images")
        if not record.category:
            missing.append("category")
    elif page_type == PageType.BLOG:
        if not record.publish_date:
            missing.append("publish date")
        if not record.blog_content_sample:
            missing.append("summary")
        if not record.blog_categories and not record.tags:
            missing.append("categories and tags")
    elif page_type == PageType.CATEGORY:
        if not record.meta_description or len(record.meta_description) < short_description_length:
            missing.append("category description")

    if not missing:
        return EnrichmentDecision(False, "no_missing_fields")
    return EnrichmentDecision(True, "missing_fields", missing_fields=missing)


def should_replace_with_rendered(
    prior_html: Optional[str],
    rendered_html: Optional[str],
    min_growth_ratio: float = config.HEADLESS_MIN_GROWTH_RATIO,
) -> bool:
    """The rendered HTML replaces the light one only when meaningfully larger."""
    if not rendered_html or not rendered_html.strip():
        return False
    if not prior_html or not prior_html.strip():
        return True
    return len(rendered_html) > len(prior_html) * min_growth_ratio
