"""
Page record model.

PageRecord is the single output of page extraction regardless of how the
HTML was obtained (light fetch or headless render) and whether it was
enriched. Nullable fields mean "not found"; they are never empty strings
or empty lists.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from site_extractor.models.enrichment import EnrichmentPayload


class PageType(str, Enum):
    """Page classification produced by the DOM-side classifier."""
    PRODUCT = "product"
    BLOG = "blog"
    CATEGORY = "category"
    PAGE = "page"
    COLLECTION = "collection"
    FORUM = "forum"
    SEARCH = "search"
    ERROR = "error"
    SITEMAP = "sitemap"
    ROBOTS = "robots"
    FEED = "feed"
    UNKNOWN = "unknown"


class FetchMethod(str, Enum):
    """How the HTML behind a record was obtained."""
    PROVIDED = "provided"
    LIGHT = "light"
    HEADLESS = "headless"
    NONE = "none"


class ImageItem(BaseModel):
    """Image with an absolute src."""
    src: str
    alt: str = "Image"
    width: Optional[str] = None
    height: Optional[str] = None
    has_alt: bool = False


class BreadcrumbItem(BaseModel):
    """Breadcrumb navigation item."""
    text: str
    href: Optional[str] = None
    position: int


class LinkItem(BaseModel):
    href: str
    text: str
    is_external: bool = False


class HeadingItem(BaseModel):
    level: int = Field(ge=1, le=6)
    text: str


class Headings(BaseModel):
    """Headings grouped by level plus a flat list in document order."""
    h1: List[str] = Field(default_factory=list)
    h2: List[str] = Field(default_factory=list)
    h3: List[str] = Field(default_factory=list)
    h4: List[str] = Field(default_factory=list)
    h5: List[str] = Field(default_factory=list)
    h6: List[str] = Field(default_factory=list)
    all: List[HeadingItem] = Field(default_factory=list)


class EnrichmentRecord(BaseModel):
    """LLM-derived data kept alongside the DOM-derived record."""
    detected_type: Optional[str] = None
    payload: Optional[EnrichmentPayload] = None
    requested_fields: List[str] = Field(default_factory=list)
    applied_fields: List[str] = Field(default_factory=list)
    error: Optional[str] = None


class PageRecord(BaseModel):
    """Extracted data for a single page."""
    url: str
    page_type_guess: PageType = PageType.UNKNOWN

    # Core metadata
    title: Optional[str] = None
    meta_description: Optional[str] = None
    keywords: Optional[List[str]] = None
    canonical_url: Optional[str] = None
    og_type: Optional[str] = None
    og_title: Optional[str] = None
    og_description: Optional[str] = None
    og_image: Optional[str] = None
    html_lang: Optional[str] = None
    meta_robots: Optional[str] = None

    # Structured data
    schema_org_types: Optional[List[str]] = None
    json_ld_data: Optional[List[Dict[str, Any]]] = None

    # Product
    price: Optional[str] = None
    currency_symbol: Optional[str] = None
    currency_code: Optional[str] = None
    stock_status: Optional[str] = None
    brand: Optional[str] = None
    sku: Optional[str] = None
    features: Optional[List[str]] = None
    category: Optional[str] = None

    # Blog
    publish_date: Optional[str] = None
    author: Optional[str] = None
    blog_categories: Optional[List[str]] = None
    tags: Optional[List[str]] = None
    blog_content_sample: Optional[str] = None

    # Structure
    headings: Headings = Field(default_factory=Headings)
    images: Optional[List[ImageItem]] = None
    all_links: Optional[List[LinkItem]] = None
    internal_links: Optional[List[LinkItem]] = None
    external_links: Optional[List[LinkItem]] = None
    navigation_links: Optional[List[LinkItem]] = None
    footer_links: Optional[List[LinkItem]] = None
    breadcrumbs: Optional[List[BreadcrumbItem]] = None
    main_text_content: Optional[str] = None

    # Provenance
    site_selectors_used: bool = False
    fetch_method: FetchMethod = FetchMethod.PROVIDED
    html_length: int = 0
    processing_stages: List[str] = Field(default_factory=list)
    enrichment: Optional[EnrichmentRecord] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    extracted_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def comparable(self) -> Dict[str, Any]:
        """Record contents without the time-dependent field."""
        return self.model_dump(exclude={"extracted_at"})

    def get_present_fields(self) -> List[str]:
        return [name for name in TRACKED_FIELDS if getattr(self, name) is not None]

    def get_missing_fields(self) -> List[str]:
        return [name for name in TRACKED_FIELDS if getattr(self, name) is None]


TRACKED_FIELDS = [
    "title", "meta_description", "canonical_url", "og_image", "price",
    "currency_code", "stock_status", "category", "features", "publish_date",
    "author", "blog_categories", "images", "breadcrumbs", "main_text_content",
]


def is_empty_value(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict)):
        return len(value) == 0
    return False


class RecordBuilder:
    """
    Accumulates a PageRecord through an ordered series of merges.

    seed() overwrites whenever the new value is non-empty (authoritative
    sources); fill() only writes into a field that is still empty.
    """

    def __init__(self, url: str):
        self.record = PageRecord(url=url)

    def get(self, field: str) -> Any:
        return getattr(self.record, field)

    def is_empty(self, field: str) -> bool:
        return is_empty_value(self.get(field))

    def seed(self, field: str, value: Any) -> bool:
        if is_empty_value(value):
            return False
        setattr(self.record, field, value)
        return True

    def fill(self, field: str, value: Any) -> bool:
        if not self.is_empty(field) or is_empty_value(value):
            return False
        setattr(self.record, field, value)
        return True

    def set(self, field: str, value: Any):
        setattr(self.record, field, None if is_empty_value(value) else value)

    def build(self) -> PageRecord:
        """Return the record with every empty optional field set to None."""
        for name, info in PageRecord.model_fields.items():
            value = getattr(self.record, name)
            if info.default is None and is_empty_value(value):
                setattr(self.record, name, None)
        return self.record


class ErrorType(str, Enum):
    """Failure categories recorded on records and in logs."""
    TRANSPORT_FAILURE = "transport_failure"
    PARSE_FAILURE = "parse_failure"
    ENRICHMENT_FAILURE = "enrichment_failure"
    DISCOVERY_FAILURE = "discovery_failure"
    TOTAL_FAILURE = "total_failure"
    CLIENT_ERROR = "client_error"


def error_record(
    url: str,
    message: str,
    error_type: ErrorType = ErrorType.CLIENT_ERROR,
    fetch_method: FetchMethod = FetchMethod.NONE,
) -> PageRecord:
    """Terminal record for a page that could not be extracted."""
    return PageRecord(
        url=url,
        page_type_guess=PageType.ERROR,
        error=message,
        error_type=error_type.value,
        fetch_method=fetch_method,
    )
