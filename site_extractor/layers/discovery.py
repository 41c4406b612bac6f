"""
Selector Discovery Layer.

Learns a SiteSelectorProfile for a hostname in two phases:
1. One batched LLM request proposes 1-3 candidate selectors for every target
   field, based on a single representative page.
2. Every candidate is tested locally against all fetched sample pages and
   scored; only candidates that generalise across samples are kept.

The LLM is never trusted for correctness, only for candidate generation.
discover() never raises: an empty profile is a valid outcome.
"""
import asyncio
import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple
from urllib.parse import urlparse

from bs4 import BeautifulSoup

from site_extractor.adapters.http_fetcher import HttpFetcher
from site_extractor.adapters.llm_client import LLMClient
from site_extractor.adapters.profile_store import ProfileStore
from site_extractor.adapters.sitemap import SitemapWalker
from site_extractor.config import config
from site_extractor.extractors.classifier import quick_guess
from site_extractor.extractors.selector_extractor import read_element, select
from site_extractor.models.record import ErrorType, PageType
from site_extractor.models.selectors import FieldKey, SelectorRule, SiteSelectorProfile, URL_PATTERNS
from site_extractor.utils.logger import LayerLogger
from site_extractor.utils.text import hostname_of


FOUND_POINTS = 5
MULTIPLICITY_POINTS = 3
VALUE_POINTS = 2

CONTENT_PAGE_TYPES = (PageType.PRODUCT, PageType.BLOG, PageType.PAGE, PageType.CATEGORY)
SAMPLE_TYPE_PREFERENCE = (PageType.PRODUCT, PageType.BLOG, PageType.CATEGORY)


@dataclass(frozen=True)
class TargetField:
    """A field the discovery prompt asks selectors for."""
    key: FieldKey
    description: str
    attribute: Optional[str] = None
    multiple: bool = False
    page_types: Optional[Tuple[PageType, ...]] = None


TARGET_FIELDS: List[TargetField] = [
    TargetField(FieldKey.TITLE, "Main title/name of the page (product name, post title, category name)",
                page_types=CONTENT_PAGE_TYPES),
    TargetField(FieldKey.PRICE, "Current selling price of the product", page_types=(PageType.PRODUCT,)),
    TargetField(FieldKey.STOCK_STATUS, "Stock / availability text of the product", page_types=(PageType.PRODUCT,)),
    TargetField(FieldKey.PRODUCT_IMAGES, "Main product gallery images", attribute="src", multiple=True,
                page_types=(PageType.PRODUCT,)),
    TargetField(FieldKey.FEATURES, "Product specification / feature list items or table rows", multiple=True,
                page_types=(PageType.PRODUCT,)),
    TargetField(FieldKey.PRODUCT_CATEGORY, "Category the product belongs to", page_types=(PageType.PRODUCT,)),
    TargetField(FieldKey.PUBLISH_DATE, "Publication date of the blog post", page_types=(PageType.BLOG,)),
    TargetField(FieldKey.BLOG_CATEGORIES, "Categories or tags of the blog post", multiple=True,
                page_types=(PageType.BLOG,)),
    TargetField(FieldKey.BLOG_CONTENT_SAMPLE, "First paragraph of the blog post body", page_types=(PageType.BLOG,)),
    TargetField(FieldKey.CATEGORY_NAME, "Heading naming the category on a listing page",
                page_types=(PageType.CATEGORY,)),
    TargetField(FieldKey.NAVIGATION_CONTAINER, "Container element of the main navigation menu",
                page_types=CONTENT_PAGE_TYPES),
    TargetField(FieldKey.FOOTER_CONTAINER, "Container element of the footer link lists",
                page_types=CONTENT_PAGE_TYPES),
    TargetField(FieldKey.BREADCRUMB_CONTAINER, "Container element of the breadcrumb trail",
                page_types=CONTENT_PAGE_TYPES),
]


@dataclass
class DiscoverySample:
    url: str
    soup: BeautifulSoup
    html: str
    page_type: PageType


@dataclass
class CandidateScore:
    rule: SelectorRule
    score: float
    found_ratio: float
    sample_scores: List[int] = field(default_factory=list)


@dataclass
class DiscoveryReport:
    """Everything one discovery run learned, for logging and the API."""
    hostname: str
    profile: SiteSelectorProfile
    samples: List[Dict[str, str]] = field(default_factory=list)
    representative_url: Optional[str] = None
    field_scores: Dict[str, float] = field(default_factory=dict)
    persisted: bool = False
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hostname": self.hostname,
            "profile": self.profile.model_dump(mode="json"),
            "samples": self.samples,
            "representative_url": self.representative_url,
            "field_scores": self.field_scores,
            "persisted": self.persisted,
            "error": self.error,
        }


# ============================================================================
# PROMPT & RESPONSE VALIDATION
# ============================================================================

def build_discovery_prompt(html: str, fields: Sequence[TargetField], html_limit: int) -> str:
    descriptions = "\n".join(
        f'- key: "{target.key.value}", description: "{target.description}", '
        f'attribute: {target.attribute or "text content"}, '
        f'multiple elements expected: {"yes" if target.multiple else "no"}'
        for target in fields
    )
    return f"""Analyze the following HTML content (first {html_limit} characters).
Identify robust CSS selectors for extracting the data points listed below.
For each data point, propose 1 to 3 candidate CSS selectors. Prefer classes,
data attributes and itemprop over brittle ids or positional selectors.

Data points:
{descriptions}

HTML CONTENT:
```html
{html[:html_limit]}
```

Respond with a SINGLE JSON object. Keys are the "key" values above. Each value
is an array of objects with:
1. "selector" (string): the CSS selector
2. "attr" (string, optional): the attribute to read, e.g. "src". Omit it for text content.

Example:
{{"title": [{{"selector": "h1.product-title"}}], "productImages": [{{"selector": ".gallery img", "attr": "src"}}]}}"""


def _is_table_row_selector(selector: str) -> bool:
    last = re.split(r"[\s>+~]+", selector.strip())[-1]
    return bool(re.match(r"tr(?![\w-])", last))


def parse_candidates(data: Dict[str, Any], fields: Sequence[TargetField]) -> Dict[FieldKey, List[SelectorRule]]:
    """
    Validate the LLM's proposal shape. Malformed fields or entries are
    dropped; nothing here raises.
    """
    candidates: Dict[FieldKey, List[SelectorRule]] = {}
    for target in fields:
        raw = data.get(target.key.value)
        if not isinstance(raw, list):
            continue
        rules = []
        for entry in raw:
            if not isinstance(entry, dict):
                continue
            selector = entry.get("selector")
            attr = entry.get("attr")
            if not isinstance(selector, str) or not selector.strip():
                continue
            if attr is not None and (not isinstance(attr, str) or not attr.strip()):
                attr = None
            selector = selector.strip()
            rules.append(SelectorRule(
                selector=selector,
                attribute=attr.strip() if attr else None,
                is_tabular_row=target.key == FieldKey.FEATURES and _is_table_row_selector(selector),
            ))
        if rules:
            candidates[target.key] = rules
    return candidates


# ============================================================================
# SCORING
# ============================================================================

def score_on_sample(rule: SelectorRule, target: TargetField, soup: BeautifulSoup) -> int:
    elements = select(soup, rule.selector)
    if not elements:
        return 0
    score = FOUND_POINTS
    if (target.multiple and len(elements) > 1) or (not target.multiple and len(elements) == 1):
        score += MULTIPLICITY_POINTS
    if read_element(elements[0], rule.attribute):
        score += VALUE_POINTS
    return score


def relevant_samples(target: TargetField, samples: Sequence[DiscoverySample]) -> List[DiscoverySample]:
    if not target.page_types:
        return list(samples)
    matching = [sample for sample in samples if sample.page_type in target.page_types]
    return matching or list(samples)


def score_candidate(rule: SelectorRule, target: TargetField, samples: Sequence[DiscoverySample]) -> CandidateScore:
    """Average per-sample score damped by sqrt of the fraction of samples that matched."""
    scores = [score_on_sample(rule, target, sample.soup) for sample in samples]
    if not scores:
        return CandidateScore(rule=rule, score=0.0, found_ratio=0.0)
    found_ratio = sum(1 for score in scores if score > 0) / len(scores)
    average = sum(scores) / len(scores)
    return CandidateScore(
        rule=rule,
        score=average * math.sqrt(found_ratio),
        found_ratio=found_ratio,
        sample_scores=scores,
    )


# ============================================================================
# LAYER
# ============================================================================

class SelectorDiscoveryLayer:
    """Proposes selectors with one LLM call and verifies them against sample pages."""

    def __init__(
        self,
        llm_client: LLMClient,
        profile_store: ProfileStore,
        fetcher: Optional[HttpFetcher] = None,
        sitemap_walker: Optional[SitemapWalker] = None,
        sample_limit: int = config.DISCOVERY_SAMPLE_LIMIT,
        score_threshold: float = config.DISCOVERY_SCORE_THRESHOLD,
        html_limit: int = config.DISCOVERY_HTML_LIMIT,
        fetch_timeout: float = config.DISCOVERY_FETCH_TIMEOUT,
    ):
        self.llm_client = llm_client
        self.profile_store = profile_store
        self.fetcher = fetcher or HttpFetcher()
        self.sitemap_walker = sitemap_walker or SitemapWalker(self.fetcher)
        self.sample_limit = sample_limit
        self.score_threshold = score_threshold
        self.html_limit = html_limit
        self.fetch_timeout = fetch_timeout
        self.logger = LayerLogger("discovery")

    async def discover(self, site_url: str) -> SiteSelectorProfile:
        """Discover, persist (when non-empty) and return the site's profile."""
        report = await self.run(site_url)
        return report.profile

    async def run(self, site_url: str) -> DiscoveryReport:
        hostname = hostname_of(site_url) or ""
        report = DiscoveryReport(hostname=hostname, profile=SiteSelectorProfile(hostname=hostname))
        self.logger.log_action("discovery", "started", url=site_url, hostname=hostname)

        if not hostname:
            report.error = "Invalid site URL"
            self.logger.log_error(report.error, error_type=ErrorType.DISCOVERY_FAILURE.value, url=site_url)
            return report

        try:
            await self._run(site_url, report)
        except Exception as e:
            report.error = f"Discovery failed: {e}"
            self.logger.log_error(report.error, error_type=ErrorType.DISCOVERY_FAILURE.value, url=site_url)

        self.logger.log_action(
            "discovery",
            "completed",
            hostname=hostname,
            fields=[key.value for key in report.profile.selectors],
            persisted=report.persisted,
        )
        return report

    async def _run(self, site_url: str, report: DiscoveryReport):
        # Step 1: samples
        samples = await self._collect_samples(site_url)
        report.samples = [{"url": sample.url, "page_type": sample.page_type.value} for sample in samples]
        if not samples:
            report.error = "No sample page could be fetched"
            self.logger.log_error(report.error, error_type=ErrorType.DISCOVERY_FAILURE.value, url=site_url)
            return

        # Steps 2-3: representative sample
        representative = self._choose_representative(samples)
        report.representative_url = representative.url

        # Step 4: one batched proposal request
        if not self.llm_client.is_available():
            report.error = "LLM client is not configured"
            self.logger.log_fallback("llm_proposals", "defaults_only", reason="llm_unavailable")
            return
        prompt = build_discovery_prompt(representative.html, TARGET_FIELDS, self.html_limit)
        response = await self.llm_client.complete_json(prompt, purpose="selector_discovery")
        if not response.ok:
            report.error = response.error
            return

        # Step 5: shape validation
        candidates = parse_candidates(response.data, TARGET_FIELDS)

        # Step 6: local verification
        selectors: Dict[FieldKey, List[SelectorRule]] = {}
        for target in TARGET_FIELDS:
            best = self._best_candidate(target, candidates.get(target.key, []), samples)
            if best is None:
                continue
            report.field_scores[target.key.value] = round(best.score, 3)
            accepted = best.score > self.score_threshold
            self.logger.log_decision(
                decision="selector_accepted" if accepted else "selector_rejected",
                reason=f"score={best.score:.2f} threshold={self.score_threshold}",
                field=target.key.value,
                selector=best.rule.selector,
                found_ratio=round(best.found_ratio, 2),
            )
            if accepted:
                selectors[target.key] = [best.rule]

        # Step 7: persist
        report.profile = SiteSelectorProfile(hostname=report.hostname, selectors=selectors)
        if not report.profile.is_empty():
            await self.profile_store.put(report.hostname, report.profile)
            report.persisted = True

    def _best_candidate(
        self,
        target: TargetField,
        rules: Sequence[SelectorRule],
        samples: Sequence[DiscoverySample],
    ) -> Optional[CandidateScore]:
        tested = relevant_samples(target, samples)
        best: Optional[CandidateScore] = None
        for rule in rules:
            scored = score_candidate(rule, target, tested)
            if best is None or scored.score > best.score:
                best = scored
        return best

    def _choose_representative(self, samples: Sequence[DiscoverySample]) -> DiscoverySample:
        for page_type in SAMPLE_TYPE_PREFERENCE:
            for sample in samples:
                if sample.page_type == page_type:
                    return sample
        return samples[0]

    async def _candidate_urls(self, site_url: str) -> List[str]:
        urls = [site_url]
        try:
            sitemap_urls = await self.sitemap_walker.collect(site_url)
        except Exception as e:
            self.logger.log_fallback(
                from_source="sitemap",
                to_source="site_url_only",
                reason=str(e) or type(e).__name__,
            )
            sitemap_urls = []

        for page_type in SAMPLE_TYPE_PREFERENCE:
            patterns = URL_PATTERNS[page_type.value]
            matched = 0
            for url in sitemap_urls:
                if matched >= self.sample_limit:
                    break
                try:
                    path = urlparse(url).path.lower()
                except ValueError:
                    continue
                if url not in urls and any(pattern in path for pattern in patterns):
                    urls.append(url)
                    matched += 1

        for url in sitemap_urls:
            if len(urls) >= self.sample_limit:
                break
            if url not in urls:
                urls.append(url)
        return urls

    async def _collect_samples(self, site_url: str) -> List[DiscoverySample]:
        urls = await self._candidate_urls(site_url)
        results = await asyncio.gather(
            *(self.fetcher.fetch(url, timeout=self.fetch_timeout) for url in urls),
            return_exceptions=True,
        )

        samples = []
        for url, result in zip(urls, results):
            if isinstance(result, Exception):
                self.logger.log_fallback(
                    from_source=url,
                    to_source="next_sample",
                    reason=str(result) or type(result).__name__,
                )
                continue
            if not result.ok:
                self.logger.log_fallback(
                    from_source=url,
                    to_source="next_sample",
                    reason=result.error or "empty_body",
                )
                continue
            soup = BeautifulSoup(result.html, "lxml")
            samples.append(DiscoverySample(url=url, soup=soup, html=result.html, page_type=quick_guess(url, soup)))
        self.logger.log_action(
            "sample_collection",
            "completed",
            requested=len(urls),
            fetched=len(samples),
            types=[sample.page_type.value for sample in samples],
        )
        return samples
