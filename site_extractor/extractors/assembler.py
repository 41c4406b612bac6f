"""
Base record assembler.

Turns raw HTML plus its URL into a PageRecord. Sources are merged in a
fixed order and the order is what makes the result trustworthy:

    selectors (site rules, then defaults)
      -> structured data seeds (overwrite)
      -> classification
      -> type-specific selectors (fill gaps only)
      -> structure, breadcrumb inference, price normalization
      -> main text and fallback synthesis

assemble() never raises; failures come back as an error record.
"""
import re
from typing import Any, Dict, List, Optional

from bs4 import BeautifulSoup

from site_extractor.extractors.classifier import PageTypeClassifier
from site_extractor.extractors.page_structure import (
    MainTextSettings,
    extract_breadcrumbs,
    extract_container_links,
    extract_headings,
    extract_main_text,
    extract_page_links,
    is_home_label,
)
from site_extractor.extractors.selector_extractor import extract_all, extract_images, extract_single
from site_extractor.extractors.structured_data import (
    StructuredData,
    StructuredDataExtractor,
    first_offer,
    image_urls,
    name_of,
)
from site_extractor.models.record import (
    ErrorType,
    ImageItem,
    PageRecord,
    PageType,
    RecordBuilder,
    error_record,
)
from site_extractor.models.selectors import FieldKey, SelectorConfig, SiteSelectorProfile
from site_extractor.utils.logger import LayerLogger
from site_extractor.utils.text import (
    PLACEHOLDER_TITLE,
    hostname_of,
    map_currency_symbol_to_code,
    normalize_price,
    normalize_stock_status,
    placeholder_title,
    resolve_url,
    sanitize_text,
    truncate_at_word,
)


IMAGE_FALLBACK_SELECTOR = "article img, main img, .content img"
NON_PRODUCT_IMAGE = re.compile(r"logo|icon|avatar|sprite|placeholder|spinner|pixel", re.IGNORECASE)
SKU_KEYS = ("sku", "mpn", "gtin13", "gtin14", "gtin8", "gtin", "productID")

TITLE_LIMIT, TITLE_SOFT_LIMIT = 70, 65
DESCRIPTION_LIMIT, DESCRIPTION_SOFT_LIMIT = 160, 155
BLOG_SAMPLE_LIMIT = 300
JSONLD_SAMPLE_LIMIT = 500
MIN_SYNTHESIS_TEXT = 20


def _date_only(value: Any) -> Optional[str]:
    text = sanitize_text(value)
    return text.split("T")[0] if text else None


def _string_list(value: Any) -> List[str]:
    if isinstance(value, str):
        value = value.split(",")
    if not isinstance(value, list):
        return []
    items = []
    for item in value:
        text = sanitize_text(name_of(item) if isinstance(item, dict) else item)
        if text and text not in items:
            items.append(text)
    return items


def is_placeholder_title(title: Optional[str], url: str) -> bool:
    return not title or title in (PLACEHOLDER_TITLE, placeholder_title(url))


class BaseRecordAssembler:
    """Builds a PageRecord from HTML. Holds no per-page state."""

    def __init__(self, text_settings: Optional[MainTextSettings] = None):
        self.logger = LayerLogger("assembler")
        self.structured_extractor = StructuredDataExtractor()
        self.classifier = PageTypeClassifier()
        self.text_settings = text_settings or MainTextSettings()

    def assemble(
        self,
        html: Optional[str],
        url: str,
        site_profile: Optional[SiteSelectorProfile] = None,
    ) -> PageRecord:
        if not html or not html.strip():
            self.logger.log_error("No HTML to assemble", error_type=ErrorType.TOTAL_FAILURE.value, url=url)
            return error_record(url, "No HTML content was available for this page")

        self.logger.log_action("assemble", "started", url=url, html_length=len(html))
        try:
            record = self._assemble(html, url, SelectorConfig(site_profile))
        except Exception as e:
            self.logger.log_error(
                f"Record assembly failed: {e}",
                error_type=ErrorType.PARSE_FAILURE.value,
                url=url,
            )
            return error_record(url, f"Extraction failed: {e}")

        self.logger.log_record_summary(
            url=url,
            page_type=record.page_type_guess.value,
            fields_present=record.get_present_fields(),
            fields_missing=record.get_missing_fields(),
            site_selectors_used=record.site_selectors_used,
        )
        return record

    # =========================================================================
    # PIPELINE
    # =========================================================================

    def _assemble(self, html: str, url: str, selectors: SelectorConfig) -> PageRecord:
        soup = BeautifulSoup(html, "lxml")
        builder = RecordBuilder(url)
        builder.set("html_length", len(html))
        builder.set("site_selectors_used", selectors.has_site_rules)

        # Steps 1-2: selector-derived metadata
        self._extract_metadata(soup, url, selectors, builder)

        # Step 3: structured data seeds
        structured = self.structured_extractor.extract(soup)
        self._apply_open_graph(structured, builder)
        self._seed_from_structured_data(structured, url, builder)

        # Step 4: classification
        classification = self.classifier.classify(
            url, soup, structured.schema_types, builder.get("og_type"), selectors,
        )
        page_type = classification.page_type
        builder.set("page_type_guess", page_type)

        # Step 5: type-specific gap filling
        if page_type == PageType.PRODUCT:
            self._fill_product_gaps(soup, selectors, builder)
        elif page_type == PageType.BLOG:
            self._fill_blog_gaps(soup, selectors, builder)

        # Step 6: structure
        self._extract_structure(soup, url, selectors, structured, builder)

        # Step 7: breadcrumb inference
        self._infer_from_breadcrumbs(page_type, builder)
        if page_type == PageType.CATEGORY:
            builder.fill("category", extract_single(soup, selectors.rules_for(FieldKey.CATEGORY_NAME)))
            builder.fill("category", builder.get("title"))

        self._merge_images(soup, url, selectors, builder)

        # Step 8: price normalization
        self._normalize_price(builder)

        # Steps 9-10: main text and fallback synthesis
        builder.set("main_text_content", extract_main_text(soup, self.text_settings))
        self._synthesize_fallbacks(url, builder)

        return builder.build()

    # =========================================================================
    # METADATA
    # =========================================================================

    def _extract_metadata(self, soup: BeautifulSoup, url: str, selectors: SelectorConfig, builder: RecordBuilder):
        h1 = soup.find("h1")
        h1_text = sanitize_text(h1.get_text(" ")) if h1 else None

        title = extract_single(soup, selectors.rules_for(FieldKey.TITLE)) or h1_text
        host = hostname_of(url)
        if title and (title == url or (host and host in title.lower())):
            title_tag = soup.find("title")
            title = h1_text or (sanitize_text(title_tag.get_text()) if title_tag else None)
        builder.set("title", title or placeholder_title(url))

        builder.set("meta_description", extract_single(soup, selectors.rules_for(FieldKey.META_DESCRIPTION)))

        keywords = extract_single(soup, selectors.rules_for(FieldKey.KEYWORDS))
        if keywords:
            builder.set("keywords", [k.strip() for k in keywords.split(",") if len(k.strip()) > 1])

        builder.set("canonical_url", resolve_url(
            extract_single(soup, selectors.rules_for(FieldKey.CANONICAL_URL)), url,
        ))
        builder.set("og_image", resolve_url(
            extract_single(soup, selectors.rules_for(FieldKey.OG_IMAGE)), url,
        ))

        html_tag = soup.find("html")
        if html_tag is not None:
            builder.set("html_lang", sanitize_text(html_tag.get("lang")))
        robots = soup.find("meta", attrs={"name": "robots"})
        if robots is not None:
            builder.set("meta_robots", sanitize_text(robots.get("content")))

    def _apply_open_graph(self, structured: StructuredData, builder: RecordBuilder):
        og = structured.open_graph
        builder.set("og_type", sanitize_text(og.get("type")))
        builder.set("og_title", sanitize_text(og.get("title")) or builder.get("title"))
        builder.set("og_description", sanitize_text(og.get("description")) or builder.get("meta_description"))

    # =========================================================================
    # STRUCTURED DATA SEEDING
    # =========================================================================

    def _seed_from_structured_data(self, structured: StructuredData, url: str, builder: RecordBuilder):
        if structured.schema_types:
            builder.set("schema_org_types", list(structured.schema_types))
        if structured.objects:
            builder.set("json_ld_data", list(structured.objects))

        if structured.product:
            self._seed_product(structured.product, url, builder)
        elif structured.article:
            self._seed_article(structured.article, url, builder)
        elif structured.collection:
            self._seed_collection(structured.collection, builder)

    def _seed_images(self, node: Dict[str, Any], url: str, alt: Optional[str], builder: RecordBuilder):
        images = []
        for raw in image_urls(node.get("image")):
            src = resolve_url(raw, url)
            if src and src not in [image.src for image in images]:
                images.append(ImageItem(src=src, alt=alt or "Image", has_alt=False))
        builder.seed("images", images)

    def _seed_product(self, node: Dict[str, Any], url: str, builder: RecordBuilder):
        name = sanitize_text(name_of(node.get("name")))
        builder.seed("title", name)
        builder.seed("meta_description", sanitize_text(node.get("description")))
        self._seed_images(node, url, name, builder)

        offer = first_offer(node)
        if offer:
            for key in ("price", "lowPrice", "highPrice"):
                value = offer.get(key)
                if value is not None and str(value).strip():
                    builder.seed("price", str(value).strip())
                    break
            builder.seed("currency_symbol", sanitize_text(offer.get("priceCurrency")))
            builder.seed("stock_status", normalize_stock_status(offer.get("availability")))

        builder.seed("category", sanitize_text(name_of(node.get("category"))))
        builder.seed("brand", sanitize_text(name_of(node.get("brand"))))
        for key in SKU_KEYS:
            sku = sanitize_text(name_of(node.get(key)))
            if sku:
                builder.seed("sku", sku)
                break

        properties = node.get("additionalProperty")
        if isinstance(properties, dict):
            properties = [properties]
        features = []
        for prop in properties if isinstance(properties, list) else []:
            if not isinstance(prop, dict):
                continue
            prop_name = sanitize_text(name_of(prop.get("name")))
            prop_value = sanitize_text(name_of(prop.get("value")))
            if prop_name and prop_value:
                features.append(f"{prop_name}: {prop_value}")
        builder.seed("features", features)

    def _seed_article(self, node: Dict[str, Any], url: str, builder: RecordBuilder):
        builder.seed("title", sanitize_text(name_of(node.get("headline"))) or sanitize_text(name_of(node.get("name"))))
        body = sanitize_text(node.get("articleBody"))
        builder.seed("meta_description", sanitize_text(node.get("description")) or (body[:BLOG_SAMPLE_LIMIT] if body else None))
        builder.seed("publish_date", _date_only(node.get("datePublished")) or _date_only(node.get("dateCreated")))
        builder.seed("blog_categories", _string_list(node.get("articleSection")))
        builder.seed("author", sanitize_text(name_of(node.get("author"))))
        builder.seed("tags", _string_list(node.get("keywords")))
        if body:
            builder.seed("blog_content_sample", body[:JSONLD_SAMPLE_LIMIT])
        self._seed_images(node, url, builder.get("title"), builder)

    def _seed_collection(self, node: Dict[str, Any], builder: RecordBuilder):
        name = sanitize_text(name_of(node.get("name"))) or sanitize_text(name_of(node.get("headline")))
        builder.seed("title", name)
        builder.seed("category", name)
        builder.seed("meta_description", sanitize_text(node.get("description")))

    # =========================================================================
    # TYPE-SPECIFIC GAP FILLING
    # =========================================================================

    def _fill_product_gaps(self, soup: BeautifulSoup, selectors: SelectorConfig, builder: RecordBuilder):
        builder.fill("price", extract_single(soup, selectors.rules_for(FieldKey.PRICE)))
        builder.fill("stock_status", normalize_stock_status(
            extract_single(soup, selectors.rules_for(FieldKey.STOCK_STATUS))
        ))
        builder.fill("features", extract_all(soup, *selectors.rule_groups(FieldKey.FEATURES)))
        builder.fill("category", extract_single(soup, selectors.rules_for(FieldKey.PRODUCT_CATEGORY)))

    def _fill_blog_gaps(self, soup: BeautifulSoup, selectors: SelectorConfig, builder: RecordBuilder):
        builder.fill("publish_date", _date_only(extract_single(soup, selectors.rules_for(FieldKey.PUBLISH_DATE))))

        categories = extract_all(soup, *selectors.rule_groups(FieldKey.BLOG_CATEGORIES)) or []
        builder.fill("blog_categories", [c for c in categories if len(c) > 1])

        sample = extract_single(soup, selectors.rules_for(FieldKey.BLOG_CONTENT_SAMPLE))
        if sample and len(sample) > BLOG_SAMPLE_LIMIT:
            sample = sample[:BLOG_SAMPLE_LIMIT] + "..."
        builder.fill("blog_content_sample", sample)

    # =========================================================================
    # STRUCTURE
    # =========================================================================

    def _extract_structure(
        self,
        soup: BeautifulSoup,
        url: str,
        selectors: SelectorConfig,
        structured: StructuredData,
        builder: RecordBuilder,
    ):
        builder.set("headings", extract_headings(soup))

        links = extract_page_links(soup, url)
        builder.set("all_links", links)
        builder.set("internal_links", [link for link in links if not link.is_external])
        builder.set("external_links", [link for link in links if link.is_external])
        builder.set("navigation_links", extract_container_links(
            soup, url, selectors.rules_for(FieldKey.NAVIGATION_CONTAINER),
        ))
        builder.set("footer_links", extract_container_links(
            soup, url, selectors.rules_for(FieldKey.FOOTER_CONTAINER),
        ))
        builder.set("breadcrumbs", extract_breadcrumbs(
            soup, url, selectors.rules_for(FieldKey.BREADCRUMB_CONTAINER), structured.breadcrumb_list,
        ))

    def _infer_from_breadcrumbs(self, page_type: PageType, builder: RecordBuilder):
        crumbs = builder.get("breadcrumbs") or []
        if not crumbs:
            return

        if page_type == PageType.PRODUCT and builder.is_empty("category") and len(crumbs) >= 2:
            candidate = crumbs[-2].text
            if not is_home_label(candidate):
                builder.fill("category", candidate)
        elif page_type == PageType.BLOG and builder.is_empty("blog_categories") and len(crumbs) >= 2:
            candidate = crumbs[-2].text
            if not is_home_label(candidate):
                builder.fill("blog_categories", [candidate])
        elif page_type == PageType.CATEGORY and builder.is_empty("category"):
            candidate = crumbs[-1].text
            if not is_home_label(candidate):
                builder.fill("category", candidate)

    def _merge_images(self, soup: BeautifulSoup, url: str, selectors: SelectorConfig, builder: RecordBuilder):
        """Structured-data images, then selector images, then the OG image; first src wins."""
        merged: List[ImageItem] = []
        seen = set()
        candidates = list(builder.get("images") or [])
        candidates.extend(extract_images(
            soup, url, selectors.rules_for(FieldKey.PRODUCT_IMAGES), IMAGE_FALLBACK_SELECTOR,
        ))
        og_image = builder.get("og_image")
        if og_image:
            candidates.append(ImageItem(src=og_image, alt=builder.get("title") or "Image"))

        for image in candidates:
            if image.src in seen:
                continue
            seen.add(image.src)
            merged.append(image)
        builder.set("images", merged)

        if not og_image:
            for image in merged:
                if not NON_PRODUCT_IMAGE.search(image.src):
                    builder.set("og_image", image.src)
                    break

    # =========================================================================
    # NORMALIZATION & FALLBACKS
    # =========================================================================

    def _normalize_price(self, builder: RecordBuilder):
        raw_price = builder.get("price")
        if raw_price:
            price, symbol = normalize_price(raw_price)
            builder.set("price", price)
            builder.fill("currency_symbol", symbol)
        builder.fill("currency_code", map_currency_symbol_to_code(builder.get("currency_symbol")))

    def _synthesize_fallbacks(self, url: str, builder: RecordBuilder):
        text = builder.get("main_text_content")
        if not text or len(text) < MIN_SYNTHESIS_TEXT:
            return

        if is_placeholder_title(builder.get("title"), url):
            self.logger.log_fallback(
                from_source="url_placeholder",
                to_source="main_text",
                reason="no_title_found",
                url=url,
            )
            builder.set("title", truncate_at_word(text, TITLE_LIMIT, TITLE_SOFT_LIMIT))
        if builder.is_empty("meta_description"):
            builder.set("meta_description", truncate_at_word(text, DESCRIPTION_LIMIT, DESCRIPTION_SOFT_LIMIT))


_default_assembler: Optional[BaseRecordAssembler] = None


def assemble(html: Optional[str], url: str, profile: Optional[SiteSelectorProfile] = None) -> PageRecord:
    """Assemble a PageRecord with a shared default assembler."""
    global _default_assembler
    if _default_assembler is None:
        _default_assembler = BaseRecordAssembler()
    return _default_assembler.assemble(html, url, profile)
