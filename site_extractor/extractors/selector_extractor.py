"""
Selector-based field extraction.

Reads field values out of a parsed document by trying SelectorRules in
order. Site-specific rules are always passed in front of the defaults by the
caller; these functions only know about ordered rule lists.
"""
import json
import re
from typing import Any, Iterable, List, Optional, Sequence

from bs4 import BeautifulSoup, Tag
from soupsieve import SelectorSyntaxError

from site_extractor.extractors.structured_data import flatten_jsonld, image_urls
from site_extractor.models.record import ImageItem
from site_extractor.models.selectors import SelectorRule
from site_extractor.utils.logger import LayerLogger
from site_extractor.utils.text import resolve_url, sanitize_text


logger = LayerLogger("selector_extractor")

IMAGE_SOURCE_ATTRIBUTES = ("src", "data-src", "data-lazy-src", "data-original")
IMAGE_EXTENSION = re.compile(r"\.(jpeg|jpg|gif|png|webp|avif)(\?|$)", re.IGNORECASE)
MIN_IMAGE_SOURCE_LENGTH = 10
DEFAULT_IMAGE_FALLBACK = "img[src]"

TABLE_KEY_CELL = "th, td:first-child"
TABLE_VALUE_CELL = "td:nth-child(2), td:last-child"


def select(root: Any, selector: str) -> List[Tag]:
    """CSS select that treats an invalid selector as matching nothing."""
    try:
        return root.select(selector)
    except SelectorSyntaxError as e:
        logger.log_error(
            f"Invalid selector skipped: {selector}",
            error_type="parse_failure",
            detail=str(e),
        )
        return []


def select_one(root: Any, selector: str) -> Optional[Tag]:
    found = select(root, selector)
    return found[0] if found else None


def read_element(element: Tag, attribute: Optional[str] = None) -> Optional[str]:
    """Sanitized attribute value or text of an element."""
    if attribute:
        value = element.get(attribute)
        if isinstance(value, list):
            value = " ".join(value)
        return sanitize_text(value)
    return sanitize_text(element.get_text(" "))


def resolve_json_path(element: Tag, json_path: str) -> List[Any]:
    """
    Read a dotted path ("$.offers.price") from the JSON-LD inside a script.

    List values along the way are flattened; nodes without the path are skipped.
    """
    raw = element.string or element.get_text()
    try:
        data = json.loads(raw)
    except ValueError:
        return []

    keys = [key for key in json_path.lstrip("$").split(".") if key]
    values: List[Any] = flatten_jsonld(data) or ([data] if isinstance(data, dict) else [])
    for key in keys:
        next_values = []
        for value in values:
            if isinstance(value, dict) and key in value:
                found = value[key]
                next_values.extend(found if isinstance(found, list) else [found])
        values = next_values
    return values


def _rule_values(soup: BeautifulSoup, rule: SelectorRule) -> List[str]:
    if rule.json_path:
        values = []
        for element in select(soup, rule.selector):
            for value in resolve_json_path(element, rule.json_path):
                if isinstance(value, (int, float)) and not isinstance(value, bool):
                    value = str(value)
                text = sanitize_text(value)
                if text:
                    values.append(text)
        return values
    return [
        value for value in (read_element(el, rule.attribute) for el in select(soup, rule.selector))
        if value
    ]


def extract_single(soup: BeautifulSoup, rules: Sequence[SelectorRule]) -> Optional[str]:
    """First non-empty value produced by the rules, tried in order."""
    for rule in rules:
        if rule.json_path:
            values = _rule_values(soup, rule)
            if values:
                return values[0]
            continue
        element = select_one(soup, rule.selector)
        if element is None:
            continue
        value = read_element(element, rule.attribute)
        if value:
            return value
    return None


def _table_row_text(row: Tag) -> Optional[str]:
    key_cell = select_one(row, TABLE_KEY_CELL)
    value_cell = select_one(row, TABLE_VALUE_CELL)
    key = read_element(key_cell) if key_cell is not None else None
    value = read_element(value_cell) if value_cell is not None and value_cell is not key_cell else None
    if key:
        key = key.rstrip(":").strip()
    if key and value:
        return f"{key}: {value}"
    return key or value or read_element(row)


def _group_values(soup: BeautifulSoup, rules: Iterable[SelectorRule]) -> List[str]:
    results: List[str] = []
    for rule in rules:
        if rule.is_tabular_row:
            values = [_table_row_text(row) for row in select(soup, rule.selector)]
        else:
            values = _rule_values(soup, rule)
        for value in values:
            if value and value not in results:
                results.append(value)
    return results


def extract_all(soup: BeautifulSoup, *rule_groups: Sequence[SelectorRule]) -> Optional[List[str]]:
    """
    Every value matched by a rule group.

    Groups are alternatives: with more than one group, the first group that
    yields anything wins and later groups are not consulted.
    """
    groups = [group for group in rule_groups if group]
    for group in groups:
        results = _group_values(soup, group)
        if results:
            return results
    return None


def _image_source(element: Tag, attribute: Optional[str]) -> Optional[str]:
    candidates = []
    if attribute:
        candidates.append(element.get(attribute))
    candidates.extend(element.get(name) for name in IMAGE_SOURCE_ATTRIBUTES)
    srcset = element.get("data-srcset")
    if srcset:
        candidates.append(srcset.split(",")[0].strip().split(" ")[0])
    for candidate in candidates:
        if isinstance(candidate, str) and candidate.strip():
            return candidate.strip()
    return None


def _dimension(element: Tag, name: str) -> Optional[str]:
    value = element.get(name)
    if value:
        return str(value).strip() or None
    style = element.get("style") or ""
    match = re.search(rf"(?:^|;)\s*{name}\s*:\s*(\d+)px", style)
    return match.group(1) if match else None


def _build_image(element: Tag, src: str) -> ImageItem:
    alt = sanitize_text(element.get("alt"))
    return ImageItem(
        src=src,
        alt=alt or sanitize_text(element.get("title")) or "Image",
        width=_dimension(element, "width"),
        height=_dimension(element, "height"),
        has_alt=bool(alt),
    )


def _accept_image_source(raw: Optional[str], base_url: str) -> Optional[str]:
    if not raw or len(raw) < MIN_IMAGE_SOURCE_LENGTH:
        return None
    absolute = resolve_url(raw, base_url)
    if not absolute or not IMAGE_EXTENSION.search(absolute):
        return None
    return absolute


def extract_images(
    soup: BeautifulSoup,
    base_url: str,
    rules: Sequence[SelectorRule],
    fallback_selector: str = DEFAULT_IMAGE_FALLBACK,
) -> List[ImageItem]:
    """
    Images located by the rules, deduplicated by absolute src.

    The fallback selector is scanned only when the rules found nothing.
    """
    images: List[ImageItem] = []
    seen = set()

    def add(element: Optional[Tag], raw: Optional[str]):
        src = _accept_image_source(raw, base_url)
        if not src or src in seen:
            return
        seen.add(src)
        if element is None:
            images.append(ImageItem(src=src))
        else:
            images.append(_build_image(element, src))

    for rule in rules:
        if rule.json_path:
            for element in select(soup, rule.selector):
                for url in image_urls(resolve_json_path(element, rule.json_path)):
                    add(None, url)
            continue
        for element in select(soup, rule.selector):
            add(element, _image_source(element, rule.attribute))

    if not images and fallback_selector:
        logger.log_fallback(
            from_source="selector_rules",
            to_source=fallback_selector,
            reason="no_images_from_rules",
        )
        for element in select(soup, fallback_selector):
            add(element, _image_source(element, None))

    return images
