"""
Page type classification.

Full cascade, first match wins:
1. Structured-data @type
2. Open Graph og:type
3. URL path patterns
4. DOM heuristics
5. unknown

Structured data outranks URL patterns and URL patterns outrank DOM
heuristics, so the order of the steps below must not change.
"""
import re
from dataclasses import dataclass
from typing import Iterable, Optional
from urllib.parse import urlparse

from bs4 import BeautifulSoup

from site_extractor.extractors.selector_extractor import select
from site_extractor.extractors.structured_data import (
    ARTICLE_TYPES,
    COLLECTION_TYPES,
    PRODUCT_TYPES,
)
from site_extractor.models.record import PageType
from site_extractor.models.selectors import (
    FieldKey,
    SEARCH_QUERY_KEYS,
    STATIC_PAGE_KEYWORDS,
    URL_PATTERNS,
    SelectorConfig,
)
from site_extractor.utils.logger import LayerLogger


URL_PATTERN_ORDER = (
    PageType.PRODUCT,
    PageType.BLOG,
    PageType.CATEGORY,
    PageType.COLLECTION,
    PageType.FORUM,
    PageType.SEARCH,
    PageType.ERROR,
)

ADD_TO_CART_SELECTOR = (
    'form[action*="cart"], [class*="add-to-cart"], [id*="add-to-cart"], '
    '[name="add-to-cart"], [class*="addToCart"], [class*="sepete-ekle"]'
)
ADD_TO_CART_TEXT = re.compile(r"add to (cart|bag|basket)|sepete ekle|buy now|satın al", re.IGNORECASE)
PRODUCT_CARD_SELECTOR = '[class*="product-item"], [class*="product-card"], li.product, [class*="product-grid"] > *'
ARTICLE_SELECTOR = 'article.post, [itemtype*="BlogPosting"], [class*="blog-post"], article .entry-content'
COMMENT_SELECTOR = '#comments, .comments, [class*="comment-list"], [id*="disqus"]'


@dataclass
class Classification:
    """A page type together with the cascade step that produced it."""
    page_type: PageType
    reason: str


def _url_parts(url: str):
    try:
        parsed = urlparse(url)
    except ValueError:
        return "", "", ""
    return (parsed.path or "").lower(), (parsed.query or "").lower(), parsed.fragment or ""


def classify_by_url(url: str, soup: Optional[BeautifulSoup] = None) -> Optional[Classification]:
    """URL pattern step of the cascade. Returns None when nothing matched."""
    path, query, fragment = _url_parts(url)

    if path.endswith("/sitemap.xml") or "sitemap_index.xml" in path:
        return Classification(PageType.SITEMAP, "url:sitemap")
    if path.endswith("/robots.txt"):
        return Classification(PageType.ROBOTS, "url:robots")
    if path.rstrip("/").endswith(("/feed", "/rss")):
        return Classification(PageType.FEED, "url:feed")
    if soup is not None and path.endswith(".xml") and (soup.find("rss") or soup.find("feed")):
        return Classification(PageType.FEED, "url:xml_feed")

    for page_type in URL_PATTERN_ORDER:
        for pattern in URL_PATTERNS[page_type.value]:
            if pattern in path:
                return Classification(page_type, f"url:{pattern}")
        if page_type == PageType.SEARCH and any(key in query for key in SEARCH_QUERY_KEYS):
            return Classification(page_type, "url:search_query")

    if path in ("", "/") and not query and not fragment:
        return Classification(PageType.PAGE, "url:root")
    for keyword in STATIC_PAGE_KEYWORDS:
        if keyword in path:
            return Classification(PageType.PAGE, f"url:static:{keyword}")
    return None


def _has_any(soup: BeautifulSoup, rules) -> bool:
    return any(select(soup, rule.selector) for rule in rules if not rule.json_path)


def _has_add_to_cart(soup: BeautifulSoup) -> bool:
    if select(soup, ADD_TO_CART_SELECTOR):
        return True
    for control in soup.find_all(["button", "a", "input"]):
        text = control.get_text(" ") or control.get("value") or ""
        if isinstance(text, str) and ADD_TO_CART_TEXT.search(text):
            return True
    return False


class PageTypeClassifier:
    """Decides the page type of an assembled record."""

    def __init__(self):
        self.logger = LayerLogger("classifier")

    def classify(
        self,
        url: str,
        soup: BeautifulSoup,
        schema_types: Iterable[str],
        og_type: Optional[str],
        selectors: SelectorConfig,
    ) -> Classification:
        result = self._cascade(url, soup, schema_types, og_type, selectors)
        self.logger.log_decision(
            decision=result.page_type.value,
            reason=result.reason,
            url=url,
        )
        return result

    def _cascade(self, url, soup, schema_types, og_type, selectors) -> Classification:
        # 1. Structured data
        types = {schema_type.lower() for schema_type in schema_types or []}
        if types & PRODUCT_TYPES:
            return Classification(PageType.PRODUCT, "structured_data:product")
        if types & ARTICLE_TYPES:
            return Classification(PageType.BLOG, "structured_data:article")
        if types & COLLECTION_TYPES:
            return Classification(PageType.CATEGORY, "structured_data:collection")

        # 2. Open Graph
        og = (og_type or "").lower()
        if "product" in og:
            return Classification(PageType.PRODUCT, "og_type:product")
        if "article" in og:
            return Classification(PageType.BLOG, "og_type:article")

        # 3. URL patterns
        by_url = classify_by_url(url, soup)
        if by_url:
            return by_url

        # 4. DOM heuristics
        if _has_any(soup, selectors.rules_for(FieldKey.PRICE)) and (
            _has_add_to_cart(soup) or _has_any(soup, selectors.rules_for(FieldKey.STOCK_STATUS))
        ):
            return Classification(PageType.PRODUCT, "dom:price_with_cart_or_stock")
        if len(select(soup, PRODUCT_CARD_SELECTOR)) > 2:
            return Classification(PageType.CATEGORY, "dom:product_cards")
        if select(soup, ARTICLE_SELECTOR) or select(soup, COMMENT_SELECTOR):
            return Classification(PageType.BLOG, "dom:article_or_comments")

        # 5. Default
        return Classification(PageType.UNKNOWN, "no_signal")


def quick_guess(url: str, soup: BeautifulSoup) -> PageType:
    """
    Cheap classification for discovery samples: URL patterns and a few
    DOM hints, without structured data.
    """
    path, query, _ = _url_parts(url)
    target = path + ("?" + query if query else "")
    for page_type in (PageType.PRODUCT, PageType.BLOG, PageType.CATEGORY):
        if any(pattern in target for pattern in URL_PATTERNS[page_type.value]):
            return page_type
    if path in ("", "/") or any(keyword in path for keyword in STATIC_PAGE_KEYWORDS):
        return PageType.PAGE

    if select(soup, '[itemprop="price"], form[action*="cart"], [class*="product-detail"], [id*="product-detail"]'):
        return PageType.PRODUCT
    if select(soup, 'article.post, [itemtype*="BlogPosting"], [class*="blog-post"]'):
        return PageType.BLOG
    product_items = len(select(soup, '[class*="product-item"]'))
    if select(soup, '[class*="product-list"], [class*="category-page"]') and product_items > 2:
        return PageType.CATEGORY
    if select(soup, ".pagination") and (product_items > 2 or len(select(soup, '[class*="post-item"]')) > 2):
        return PageType.CATEGORY
    return PageType.UNKNOWN
