"""
Structural extraction: headings, links, breadcrumbs and main text.

These run on every page regardless of its type.
"""
import copy
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from bs4 import BeautifulSoup, Tag

from site_extractor.config import config
from site_extractor.extractors.selector_extractor import read_element, select, select_one
from site_extractor.models.record import BreadcrumbItem, HeadingItem, Headings, LinkItem
from site_extractor.models.selectors import SelectorRule
from site_extractor.utils.logger import LayerLogger
from site_extractor.utils.text import hostname_of, resolve_url, sanitize_text


logger = LayerLogger("page_structure")

SKIPPED_LINK_PREFIXES = ("#", "javascript:", "mailto:", "tel:")
HOME_LABELS = {"anasayfa", "ana sayfa", "home", "homepage", "home page", "startseite", "accueil"}
HOME_CRUMB_TEXT = "Anasayfa"
BREADCRUMB_ITEM_SELECTOR = 'li, [itemprop="itemListElement"]'

NON_CONTENT_SELECTORS = (
    "header, footer, nav, aside, script, style, noscript, form, button, input, "
    "svg, iframe, .sidebar, [class*=\"related\"], [class*=\"comment\"], "
    "[class*=\"banner\"], [class*=\"popup\"], [class*=\"modal\"], [id*=\"header\"], "
    "[id*=\"footer\"], [class*=\"header\"], [class*=\"footer\"], [class*=\"advert\"], "
    "[class*=\"navigation\"], .breadcrumb, .breadcrumbs, .pagination, .pager, "
    "[aria-hidden=\"true\"], [style*=\"display:none\"], [style*=\"visibility:hidden\"], "
    "link[rel=\"stylesheet\"], [data-nosnippet], .no-extract, .hidden, .visually-hidden"
)
CONTENT_CONTAINERS = ("main", "article", ".content", "#content, #main, #Content, #Main")
LINK_DENSE_TAGS = ["div", "section", "li", "p"]


@dataclass
class MainTextSettings:
    """Limits for main-text extraction; defaults come from config."""
    max_length: int = config.MAX_MAIN_TEXT_LENGTH
    block_max_text: int = config.LINK_BLOCK_MAX_TEXT
    block_min_links: int = config.LINK_BLOCK_MIN_LINKS
    block_chars_per_link: int = config.LINK_BLOCK_CHARS_PER_LINK


# ============================================================================
# HEADINGS
# ============================================================================

def extract_headings(soup: BeautifulSoup) -> Headings:
    headings = Headings()
    for element in soup.find_all(["h1", "h2", "h3", "h4", "h5", "h6"]):
        text = sanitize_text(element.get_text(" "))
        if not text:
            continue
        level = int(element.name[1])
        getattr(headings, element.name).append(text)
        headings.all.append(HeadingItem(level=level, text=text))
    return headings


# ============================================================================
# LINKS
# ============================================================================

def _link_text(anchor: Tag, href: str) -> str:
    text = sanitize_text(anchor.get_text(" ")) or sanitize_text(anchor.get("title"))
    if not text:
        image = anchor.find("img")
        if image is not None:
            text = sanitize_text(image.get("alt"))
    if not text:
        segments = [part for part in href.split("?")[0].split("/") if part]
        text = sanitize_text(segments[-1]) if segments else None
    return text or "Link"


def _collect_links(anchors: Sequence[Tag], page_url: str, seen: set) -> List[LinkItem]:
    page_host = hostname_of(page_url)
    links = []
    for anchor in anchors:
        raw = anchor.get("href")
        if not isinstance(raw, str):
            continue
        raw = raw.strip()
        if not raw or raw.lower().startswith(SKIPPED_LINK_PREFIXES):
            continue
        href = resolve_url(raw, page_url)
        if not href or href == page_url or href in seen:
            continue
        seen.add(href)
        host = hostname_of(href)
        links.append(LinkItem(
            href=href,
            text=_link_text(anchor, href),
            is_external=bool(host and page_host and host != page_host),
        ))
    return links


def extract_page_links(soup: BeautifulSoup, page_url: str) -> List[LinkItem]:
    """Every distinct outgoing link on the page, excluding the page itself."""
    return _collect_links(soup.find_all("a", href=True), page_url, set())


def extract_container_links(
    soup: BeautifulSoup,
    page_url: str,
    rules: Sequence[SelectorRule],
) -> List[LinkItem]:
    """Links inside the containers matched by the rules (navigation, footer)."""
    seen: set = set()
    links: List[LinkItem] = []
    for rule in rules:
        for container in select(soup, rule.selector):
            links.extend(_collect_links(container.find_all("a", href=True), page_url, seen))
    return links


# ============================================================================
# BREADCRUMBS
# ============================================================================

def is_home_label(text: Optional[str]) -> bool:
    return bool(text) and text.strip().lower() in HOME_LABELS


def _breadcrumbs_from_jsonld(node: Dict[str, Any], page_url: str) -> List[BreadcrumbItem]:
    crumbs = []
    elements = node.get("itemListElement") or []
    if isinstance(elements, dict):
        elements = [elements]
    for index, element in enumerate(elements, start=1):
        if not isinstance(element, dict):
            continue
        item = element.get("item")
        name = element.get("name")
        href = None
        if isinstance(item, dict):
            name = name or item.get("name")
            href = item.get("@id") or item.get("url")
        elif isinstance(item, str):
            href = item
        text = sanitize_text(name)
        if not text:
            continue
        try:
            position = int(element.get("position", index))
        except (TypeError, ValueError):
            position = index
        crumbs.append(BreadcrumbItem(text=text, href=resolve_url(href, page_url), position=position))
    return crumbs


def _breadcrumbs_from_dom(container: Tag, page_url: str) -> List[BreadcrumbItem]:
    crumbs = []
    items = select(container, BREADCRUMB_ITEM_SELECTOR)
    for index, item in enumerate(items, start=1):
        if item.get("itemprop") == "itemListElement" or select_one(item, '[itemprop="name"]'):
            name_el = select_one(item, '[itemprop="name"]')
            text = read_element(name_el) if name_el is not None else read_element(item)
            href_el = select_one(item, '[itemprop="item"]')
            raw_href = None
            if href_el is not None:
                raw_href = href_el.get("content") or href_el.get("href")
            if not raw_href:
                anchor = item.find("a", href=True)
                raw_href = anchor.get("href") if anchor is not None else None
            position_el = select_one(item, 'meta[itemprop="position"]')
            try:
                position = int(position_el.get("content")) if position_el is not None else index
            except (TypeError, ValueError):
                position = index
        else:
            anchor = item.find("a", href=True)
            if anchor is not None:
                text = read_element(anchor)
                raw_href = anchor.get("href")
            else:
                text = read_element(item)
                raw_href = None
            position = index
        if text:
            crumbs.append(BreadcrumbItem(text=text, href=resolve_url(raw_href, page_url), position=position))
    return crumbs


def finalize_breadcrumbs(crumbs: List[BreadcrumbItem], page_url: str) -> List[BreadcrumbItem]:
    """Sort, deduplicate and make sure the trail starts at the home page."""
    if not crumbs:
        return []
    crumbs = sorted(crumbs, key=lambda crumb: crumb.position)
    if not is_home_label(crumbs[0].text):
        crumbs.insert(0, BreadcrumbItem(
            text=HOME_CRUMB_TEXT,
            href=resolve_url("/", page_url),
            position=0,
        ))
    unique = []
    seen = set()
    for crumb in crumbs:
        key = (crumb.text, crumb.href)
        if key in seen:
            continue
        seen.add(key)
        unique.append(crumb)
    return [
        BreadcrumbItem(text=crumb.text, href=crumb.href, position=position)
        for position, crumb in enumerate(unique, start=1)
    ]


def extract_breadcrumbs(
    soup: BeautifulSoup,
    page_url: str,
    container_rules: Sequence[SelectorRule],
    jsonld_breadcrumbs: Optional[Dict[str, Any]] = None,
) -> List[BreadcrumbItem]:
    """
    Breadcrumb trail of the page.

    Priority: JSON-LD BreadcrumbList > first DOM container that yields items.
    """
    if jsonld_breadcrumbs:
        crumbs = _breadcrumbs_from_jsonld(jsonld_breadcrumbs, page_url)
        if crumbs:
            logger.log_action("breadcrumb_extraction", "from_jsonld", count=len(crumbs))
            return finalize_breadcrumbs(crumbs, page_url)

    for rule in container_rules:
        for container in select(soup, rule.selector):
            crumbs = _breadcrumbs_from_dom(container, page_url)
            if crumbs:
                logger.log_action("breadcrumb_extraction", "from_dom", count=len(crumbs))
                return finalize_breadcrumbs(crumbs, page_url)
    return []


# ============================================================================
# MAIN TEXT
# ============================================================================

def _is_link_dense(element: Tag, settings: MainTextSettings) -> bool:
    text_length = len(element.get_text(" ", strip=True))
    links = len(element.find_all("a"))
    return (
        text_length < settings.block_max_text
        and links > settings.block_min_links
        and text_length / (links + 1) < settings.block_chars_per_link
    )


def extract_main_text(soup: BeautifulSoup, settings: Optional[MainTextSettings] = None) -> Optional[str]:
    """
    Readable body text with navigation, boilerplate and link farms removed.

    Works on a copy of <body>; the caller's document is left intact.
    """
    settings = settings or MainTextSettings()
    body = soup.body or soup
    clone = copy.copy(body)

    for element in select(clone, NON_CONTENT_SELECTORS):
        if not element.decomposed:
            element.decompose()

    for element in clone.find_all(LINK_DENSE_TAGS):
        if element.decomposed:
            continue
        if _is_link_dense(element, settings):
            element.decompose()
        elif not element.get_text(strip=True) and not element.find(True):
            element.decompose()

    text = None
    for selector in CONTENT_CONTAINERS:
        containers = select(clone, selector)
        if containers:
            text = sanitize_text(" ".join(container.get_text(" ") for container in containers))
            if text:
                break
    if not text:
        text = sanitize_text(clone.get_text(" "))
    if not text:
        return None
    return text[:settings.max_length]
