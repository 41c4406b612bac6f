"""
Structured-data extraction (JSON-LD and Open Graph).

Every <script type="application/ld+json"> block is parsed once and flattened
into schema nodes; downstream code reads the first Product, Article-like and
Collection-like node from the result instead of re-parsing the page.
"""
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from bs4 import BeautifulSoup

from site_extractor.utils.logger import LayerLogger


PRODUCT_TYPES = {"product"}
ARTICLE_TYPES = {"blogposting", "article", "newsarticle"}
COLLECTION_TYPES = {"collectionpage", "itemlist", "searchresultspage"}
BREADCRUMB_TYPES = {"breadcrumblist"}


@dataclass
class StructuredData:
    """Result of the structured-data pass over one document."""
    objects: List[Dict[str, Any]] = field(default_factory=list)
    schema_types: List[str] = field(default_factory=list)
    product: Optional[Dict[str, Any]] = None
    article: Optional[Dict[str, Any]] = None
    collection: Optional[Dict[str, Any]] = None
    breadcrumb_list: Optional[Dict[str, Any]] = None
    open_graph: Dict[str, str] = field(default_factory=dict)
    malformed_blocks: int = 0

    @property
    def og_type(self) -> Optional[str]:
        return self.open_graph.get("type")


def node_types(node: Dict[str, Any]) -> List[str]:
    """Lowercase @type values of a node; @type may be a string or a list."""
    raw = node.get("@type")
    if isinstance(raw, str):
        return [raw.lower()]
    if isinstance(raw, list):
        return [item.lower() for item in raw if isinstance(item, str)]
    return []


def flatten_jsonld(data: Any) -> List[Dict[str, Any]]:
    """
    Flatten JSON-LD into a list of schema nodes.

    Handles single objects, top-level arrays and @graph containers.
    """
    nodes = []

    if isinstance(data, dict):
        if "@graph" in data:
            nodes.extend(flatten_jsonld(data["@graph"]))
        if "@type" in data:
            nodes.append(data)

    elif isinstance(data, list):
        for item in data:
            nodes.extend(flatten_jsonld(item))

    return nodes


def image_urls(image_data: Any) -> List[str]:
    """
    Normalize a schema.org image value to a list of URLs.

    Handles a string, a list of strings, an ImageObject and a list of
    ImageObjects.
    """
    if isinstance(image_data, str):
        return [image_data]
    if isinstance(image_data, dict):
        url = image_data.get("url") or image_data.get("contentUrl")
        return [url] if isinstance(url, str) else []
    if isinstance(image_data, list):
        urls = []
        for item in image_data:
            urls.extend(image_urls(item))
        return urls
    return []


def first_offer(node: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    offers = node.get("offers")
    if isinstance(offers, list):
        offers = offers[0] if offers else None
    return offers if isinstance(offers, dict) else None


def name_of(value: Any) -> Optional[str]:
    """Read a plain string or the `name` of a nested Thing (brand, author)."""
    if isinstance(value, list):
        value = value[0] if value else None
    if isinstance(value, dict):
        value = value.get("name")
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value if isinstance(value, str) else None


class StructuredDataExtractor:
    """Parses JSON-LD blocks and Open Graph meta tags. No network access."""

    def __init__(self):
        self.logger = LayerLogger("structured_data")

    def extract(self, soup: BeautifulSoup) -> StructuredData:
        result = StructuredData()

        for script in soup.find_all("script", type="application/ld+json"):
            raw = script.string or script.get_text()
            if not raw or not raw.strip():
                continue
            try:
                data = json.loads(raw)
            except ValueError as e:
                result.malformed_blocks += 1
                self.logger.log_error(
                    f"Malformed JSON-LD block skipped: {e}",
                    error_type="parse_failure",
                )
                continue
            result.objects.extend(flatten_jsonld(data))

        for node in result.objects:
            types = node_types(node)
            for schema_type in types:
                if schema_type not in result.schema_types:
                    result.schema_types.append(schema_type)
            type_set = set(types)
            if result.product is None and type_set & PRODUCT_TYPES:
                result.product = node
            if result.article is None and type_set & ARTICLE_TYPES:
                result.article = node
            if result.collection is None and type_set & COLLECTION_TYPES:
                result.collection = node
            if result.breadcrumb_list is None and type_set & BREADCRUMB_TYPES:
                result.breadcrumb_list = node

        result.open_graph = self._extract_open_graph(soup)

        if result.objects:
            self.logger.log_action(
                "jsonld_parse",
                "completed",
                schema_types=result.schema_types,
                total_nodes=len(result.objects),
                malformed_blocks=result.malformed_blocks,
            )
        return result

    def _extract_open_graph(self, soup: BeautifulSoup) -> Dict[str, str]:
        og = {}
        for meta in soup.find_all("meta", attrs={"property": True}):
            prop = meta.get("property", "")
            content = meta.get("content")
            if prop.startswith("og:") and content and content.strip():
                og.setdefault(prop[3:], content.strip())
        return og
