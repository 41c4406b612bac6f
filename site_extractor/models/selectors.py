"""
Selector model for the site extractor.

A SelectorRule says where one field lives in a page. Rules are grouped per
FieldKey into a SiteSelectorProfile (one per hostname). Extraction always
consults the hostname profile first and the global DEFAULT_PROFILE second.
"""
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class FieldKey(str, Enum):
    """Closed set of fields a selector profile can describe."""
    TITLE = "title"
    META_DESCRIPTION = "metaDescription"
    KEYWORDS = "keywords"
    OG_IMAGE = "ogImage"
    CANONICAL_URL = "canonicalUrl"
    PRICE = "price"
    STOCK_STATUS = "stockStatus"
    PRODUCT_IMAGES = "productImages"
    FEATURES = "features"
    PRODUCT_CATEGORY = "productCategory"
    PUBLISH_DATE = "publishDate"
    BLOG_CATEGORIES = "blogCategories"
    BLOG_CONTENT_SAMPLE = "blogContentSample"
    CATEGORY_NAME = "categoryName"
    NAVIGATION_CONTAINER = "navigationContainer"
    FOOTER_CONTAINER = "footerContainer"
    BREADCRUMB_CONTAINER = "breadcrumbContainer"


class SelectorRule(BaseModel):
    """
    One way of locating a field.

    attribute: read this attribute instead of the element text.
    is_tabular_row: the selector matches table rows; each row becomes "key: value".
    json_path: the selector matches a JSON-LD script; read this dotted path from it.
    """
    model_config = ConfigDict(frozen=True)

    selector: str
    attribute: Optional[str] = None
    is_tabular_row: bool = False
    json_path: Optional[str] = None


class SiteSelectorProfile(BaseModel):
    """Hostname-scoped selector overrides."""
    hostname: str
    selectors: Dict[FieldKey, List[SelectorRule]] = Field(default_factory=dict)

    def rules_for(self, field: FieldKey) -> List[SelectorRule]:
        return list(self.selectors.get(field, []))

    def is_empty(self) -> bool:
        return not any(self.selectors.values())


def _rules(*entries) -> List[SelectorRule]:
    """Build rules from (selector, attribute) tuples or bare selector strings."""
    rules = []
    for entry in entries:
        if isinstance(entry, SelectorRule):
            rules.append(entry)
        elif isinstance(entry, tuple):
            rules.append(SelectorRule(selector=entry[0], attribute=entry[1]))
        else:
            rules.append(SelectorRule(selector=entry))
    return rules


# ============================================================================
# GLOBAL DEFAULTS
# ============================================================================

DEFAULT_PROFILE = SiteSelectorProfile(
    hostname="*",
    selectors={
        FieldKey.TITLE: _rules(('meta[property="og:title"]', "content"), "title", "h1"),
        FieldKey.META_DESCRIPTION: _rules(
            ('meta[property="og:description"]', "content"),
            ('meta[name="description"]', "content"),
        ),
        FieldKey.KEYWORDS: _rules(('meta[name="keywords"]', "content")),
        FieldKey.OG_IMAGE: _rules(
            ('meta[property="og:image"]', "content"),
            ('meta[property="og:image:secure_url"]', "content"),
        ),
        FieldKey.CANONICAL_URL: _rules(('link[rel="canonical"]', "href")),
        FieldKey.PRICE: _rules(
            ('[itemprop="price"]', "content"),
            '[itemprop="price"]',
            ".price",
            ".product-price",
        ),
        FieldKey.STOCK_STATUS: _rules(
            ('[itemprop="availability"]', "content"),
            '[itemprop="availability"]',
            ".stock-status",
        ),
        FieldKey.PRODUCT_IMAGES: _rules(
            SelectorRule(selector='script[type="application/ld+json"]', json_path="$.image"),
            ('img[itemprop="image"]', "src"),
            (".product-gallery img", "src"),
            ("figure.woocommerce-product-gallery__wrapper img", "src"),
            (".product-gallery__image img", "src"),
            (".product-main-image img", "src"),
            ("img.wp-post-image", "src"),
            ("div.product-image-gallery img.fotorama__img", "src"),
            ("ul.product-images li img", "src"),
            ("img.owl-lazy", "data-src"),
        ),
        FieldKey.FEATURES: _rules(
            '[itemprop="additionalProperty"] [itemprop="value"]',
            SelectorRule(selector="table.shop_attributes tr", is_tabular_row=True),
            ".product-features li",
        ),
        FieldKey.PRODUCT_CATEGORY: _rules(
            ('[itemprop="category"]', "content"),
            '[itemprop="category"]',
            ".posted_in a",
        ),
        FieldKey.PUBLISH_DATE: _rules(
            ('[itemprop="datePublished"]', "content"),
            ('meta[property="article:published_time"]', "content"),
            ("time[datetime]", "datetime"),
        ),
        FieldKey.BLOG_CATEGORIES: _rules(
            ('[itemprop="articleSection"]', "content"),
            '[rel="category tag"]',
        ),
        FieldKey.BLOG_CONTENT_SAMPLE: _rules(
            "article .entry-content p:first-of-type",
            '[itemprop="articleBody"] p:first-of-type',
        ),
        FieldKey.CATEGORY_NAME: _rules("h1.category-title", "h1.page-title", "h1"),
        FieldKey.NAVIGATION_CONTAINER: _rules(
            "header nav", "header .menu", '[role="navigation"]', "#main-navigation", ".main-menu",
        ),
        FieldKey.FOOTER_CONTAINER: _rules("footer", '[role="contentinfo"]', ".footer-menu ul"),
        FieldKey.BREADCRUMB_CONTAINER: _rules(
            '[itemtype*="BreadcrumbList"]',
            'nav[aria-label="breadcrumb"] ol',
            ".breadcrumbs, .breadcrumb",
        ),
    },
)


# Hand-maintained profiles; these win over discovered ones.
MANUAL_SITE_PROFILES: Dict[str, SiteSelectorProfile] = {
    "www.toptanturkiye.com": SiteSelectorProfile(
        hostname="www.toptanturkiye.com",
        selectors={
            FieldKey.TITLE: _rules("h1.title.page-title"),
            FieldKey.PRICE: _rules(
                ".product-info-pricearea .price-current",
                ".product-info-pricearea .price-new",
            ),
            FieldKey.STOCK_STATUS: _rules("#stock > span.label"),
            FieldKey.PRODUCT_IMAGES: _rules(
                (".product-img-box .main-img", "src"),
                (".image-additional a.thumbnail", "href"),
            ),
            FieldKey.FEATURES: [SelectorRule(selector="#tab-specification tr", is_tabular_row=True)],
            FieldKey.NAVIGATION_CONTAINER: _rules("header div.header-bottom nav#navigation"),
            FieldKey.FOOTER_CONTAINER: _rules(
                "footer .container .row .col-sm-3:nth-child(1) ul",
                "footer .container .row .col-sm-3:nth-child(2) ul",
                "footer .container .row .col-sm-3:nth-child(3) ul",
            ),
            FieldKey.BREADCRUMB_CONTAINER: _rules("ul.breadcrumb"),
        },
    ),
}


class SelectorConfig:
    """
    Two-layer selector lookup: hostname profile in front of the defaults.

    Passed explicitly to extraction code instead of living in global
    mutable state.
    """

    def __init__(
        self,
        site_profile: Optional[SiteSelectorProfile] = None,
        default_profile: SiteSelectorProfile = DEFAULT_PROFILE,
    ):
        self.site_profile = site_profile
        self.default_profile = default_profile

    @property
    def has_site_rules(self) -> bool:
        return self.site_profile is not None and not self.site_profile.is_empty()

    def site_rules(self, field: FieldKey) -> List[SelectorRule]:
        return self.site_profile.rules_for(field) if self.site_profile else []

    def default_rules(self, field: FieldKey) -> List[SelectorRule]:
        return self.default_profile.rules_for(field)

    def rules_for(self, field: FieldKey) -> List[SelectorRule]:
        """Site rules followed by default rules."""
        return self.site_rules(field) + self.default_rules(field)

    def rule_groups(self, field: FieldKey) -> List[List[SelectorRule]]:
        """Site and default rules as separate alternatives (for extract_all)."""
        return [group for group in (self.site_rules(field), self.default_rules(field)) if group]


# ============================================================================
# URL PATTERNS
# ============================================================================

URL_PATTERNS: Dict[str, List[str]] = {
    "product": [
        "/urun", "/product", "/p/", "/item/", "_p/", "-p-", "/detay", "/detail",
        "/prod/", "/sp/", "/dp/", "/product-detail/", "/products/",
        "/ecommerce/product/", "/product-page/", "/shop/",
    ],
    "blog": [
        "/blog", "/haber", "/article", "/post/", "/yazi/", "/icerik", "/news",
        "/stories/", "/makale/", "/blog-detail/", "/entry/", "/gundem/",
        "/duyuru/", "/content/", "/blogs/", "/articles/", "/posts/", "/news-item/",
    ],
    "category": [
        "/kategori", "/category", "/collection/", "/c/", "/grup/", "/marka/",
        "/brand/", "/list/", "/liste/", "/categories/", "/cat/",
        "/departments/", "/product-category/",
    ],
    "collection": ["/collection", "/collections/", "/seri/", "/album/"],
    "forum": ["/forum", "/forums/", "/community/", "/board/", "/topic/", "/thread/"],
    "search": ["/search", "/arama/", "/find/", "/results/"],
    "error": ["/404", "/error", "/not-found/", "/sayfa-bulunamadi/"],
}

SEARCH_QUERY_KEYS = ("q=", "query=", "search=")

STATIC_PAGE_KEYWORDS: List[str] = [
    "hakkimizda", "iletisim", "gizlilik", "kvkk", "teslimat", "iade", "sss", "faq",
    "about", "contact", "privacy", "terms", "shipping", "returns", "destek",
    "support", "yardim", "help", "sayfa", "page", "sitemap", "site-map",
    "about-us", "contact-us", "pages", "kurumsal",
]
