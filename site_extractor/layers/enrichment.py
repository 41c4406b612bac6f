"""
Enrichment Layer.

Asks the LLM for the fields the DOM pass could not find and reconciles the
answer into the record.

Principles:
- An LLM value replaces an assembled one only when it is really present
  (not None, not empty, not the string "null")
- Images are unioned, never replaced
- The LLM's page type is stored next to the DOM classification, never
  instead of it
- Failures are recorded on the record; DOM-derived fields stay untouched
"""
from typing import Any, List, Optional

from pydantic import ValidationError

from site_extractor.adapters.llm_client import LLMClient
from site_extractor.config import config
from site_extractor.layers.fetch_strategy import EnrichmentDecision
from site_extractor.models.enrichment import (
    BlogPayload,
    CategoryPayload,
    EnrichmentPayload,
    ProductPayload,
    parse_enrichment_payload,
)
from site_extractor.models.record import EnrichmentRecord, ErrorType, ImageItem, PageRecord
from site_extractor.utils.logger import LayerLogger
from site_extractor.utils.text import (
    is_placeholder_value,
    map_currency_symbol_to_code,
    normalize_price,
    normalize_stock_status,
    resolve_url,
    sanitize_text,
)


DETECTED_TYPE_NAMES = {
    "blogpost": "blog",
    "categorypage": "category",
    "staticpage": "page",
}

RESPONSE_SCHEMA = """{
  "pageTitle": "string or null",
  "metaDescription": "string or null",
  "detectedPageType": "product | blogPost | categoryPage | staticPage | homepage | unknown",
  "productInfo": {
    "productName": "string or null", "price": "string or null", "currency": "string or null",
    "stockStatus": "string or null", "brand": "string or null", "sku": "string or null",
    "features": ["string"], "categoriesFromPage": ["string"], "images": ["absolute or relative URL"],
    "shortDescription": "string or null", "detailedDescription": "string or null"
  },
  "blogPostInfo": {
    "postTitle": "string or null", "author": "string or null", "publishDate": "YYYY-MM-DD or null",
    "summary": "string or null", "categoriesFromPage": ["string"], "tags": ["string"], "images": ["URL"]
  },
  "categoryPageInfo": {"categoryName": "string or null", "description": "string or null", "listedItemUrls": ["URL"]},
  "staticPageInfo": {"pagePurpose": "string or null"}
}"""


def build_enrichment_prompt(record: PageRecord, html: str, task: str, html_limit: int) -> str:
    return f"""You are analysing the HTML of the page {record.url}.
The page was classified as "{record.page_type_guess.value}" from its markup.
{task}.

Fill ONLY values that are visible in the HTML. Use null when a value is absent.
Only include the "...Info" object that matches the detected page type.

Response format:
{RESPONSE_SCHEMA}

HTML (first {html_limit} characters):
```html
{html[:html_limit]}
```"""


def detected_type_name(raw: Optional[str]) -> Optional[str]:
    if not raw:
        return None
    return DETECTED_TYPE_NAMES.get(raw.lower(), raw.lower())


class EnrichmentReconciler:
    """Merges a typed enrichment payload into an assembled record."""

    def __init__(self):
        self.logger = LayerLogger("enrichment_reconciler")

    def reconcile(
        self,
        record: PageRecord,
        payload: Optional[EnrichmentPayload],
        error: Optional[str] = None,
        requested_fields: Optional[List[str]] = None,
    ) -> PageRecord:
        enrichment = EnrichmentRecord(requested_fields=list(requested_fields or []))

        if payload is None:
            enrichment.error = error or "No enrichment result"
            record.enrichment = enrichment
            self.logger.log_error(
                enrichment.error,
                error_type=ErrorType.ENRICHMENT_FAILURE.value,
                url=record.url,
            )
            return record

        enrichment.payload = payload
        enrichment.detected_type = detected_type_name(payload.detected_type)
        applied = enrichment.applied_fields

        self._apply(record, "title", payload.page_title, applied)
        self._apply(record, "meta_description", payload.meta_description, applied)

        if isinstance(payload, ProductPayload):
            self._reconcile_product(record, payload, applied)
        elif isinstance(payload, BlogPayload):
            self._reconcile_blog(record, payload, applied)
        elif isinstance(payload, CategoryPayload):
            self._apply(record, "category", payload.category_name, applied)
            self._apply(record, "meta_description", payload.description, applied)

        record.enrichment = enrichment
        if enrichment.detected_type and enrichment.detected_type != record.page_type_guess.value:
            self.logger.log_decision(
                decision="type_disagreement_kept",
                reason=f"dom={record.page_type_guess.value} llm={enrichment.detected_type}",
                url=record.url,
            )
        self.logger.log_action(
            "reconcile",
            "completed",
            url=record.url,
            payload_kind=payload.kind,
            applied_fields=applied,
        )
        return record

    def _apply(self, record: PageRecord, field: str, value: Any, applied: List[str]) -> bool:
        if is_placeholder_value(value):
            return False
        setattr(record, field, value)
        if field not in applied:
            applied.append(field)
        return True

    def _reconcile_product(self, record: PageRecord, payload: ProductPayload, applied: List[str]):
        if not is_placeholder_value(payload.price):
            price, symbol = normalize_price(payload.price)
            if self._apply(record, "price", price, applied) and symbol and is_placeholder_value(payload.currency):
                self._apply(record, "currency_symbol", symbol, applied)
                self._apply(record, "currency_code", map_currency_symbol_to_code(symbol), applied)
        if not is_placeholder_value(payload.currency):
            code = map_currency_symbol_to_code(payload.currency)
            self._apply(record, "currency_code", code, applied)
            if payload.currency.upper() != code:
                self._apply(record, "currency_symbol", payload.currency, applied)
        self._apply(record, "stock_status", normalize_stock_status(payload.stock_status), applied)
        self._apply(record, "brand", payload.brand, applied)
        self._apply(record, "sku", payload.sku, applied)
        self._apply(record, "features", payload.features, applied)
        if payload.categories_from_page:
            self._apply(record, "category", " > ".join(payload.categories_from_page), applied)
        self._union_images(record, payload.images, applied)

    def _reconcile_blog(self, record: PageRecord, payload: BlogPayload, applied: List[str]):
        self._apply(record, "author", payload.author, applied)
        publish_date = sanitize_text(payload.publish_date)
        self._apply(record, "publish_date", publish_date.split("T")[0] if publish_date else None, applied)
        self._apply(record, "blog_content_sample", payload.summary, applied)
        self._apply(record, "blog_categories", payload.categories_from_page, applied)
        self._apply(record, "tags", payload.tags, applied)
        self._union_images(record, payload.images, applied)

    def _union_images(self, record: PageRecord, urls: Optional[List[str]], applied: List[str]):
        if not urls:
            return
        images = list(record.images or [])
        seen = {image.src for image in images}
        added = 0
        for raw in urls:
            src = resolve_url(raw, record.url)
            if not src or src in seen:
                continue
            seen.add(src)
            images.append(ImageItem(src=src, alt=record.title or "Image"))
            added += 1
        if added:
            record.images = images
            if "images" not in applied:
                applied.append("images")


class EnrichmentLayer:
    """Runs the LLM pass for a record that is missing fields."""

    def __init__(
        self,
        llm_client: LLMClient,
        html_limit: int = config.ENRICHMENT_HTML_LIMIT,
    ):
        self.llm_client = llm_client
        self.html_limit = html_limit
        self.reconciler = EnrichmentReconciler()
        self.logger = LayerLogger("enrichment")

    def is_available(self) -> bool:
        return self.llm_client.is_available()

    async def enrich(self, record: PageRecord, html: str, decision: EnrichmentDecision) -> PageRecord:
        self.logger.log_action(
            "enrich",
            "started",
            url=record.url,
            page_type=record.page_type_guess.value,
            missing_fields=decision.missing_fields,
        )
        prompt = build_enrichment_prompt(record, html, decision.task, self.html_limit)
        response = await self.llm_client.complete_json(prompt, purpose="page_enrichment")
        if not response.ok:
            return self.reconciler.reconcile(
                record, None, error=response.error, requested_fields=decision.missing_fields,
            )
        try:
            payload = parse_enrichment_payload(response.data)
        except ValidationError as e:
            return self.reconciler.reconcile(
                record, None, error=f"Unusable enrichment payload: {e}", requested_fields=decision.missing_fields,
            )
        return self.reconciler.reconcile(record, payload, requested_fields=decision.missing_fields)
