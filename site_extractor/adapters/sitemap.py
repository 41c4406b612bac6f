"""
Sitemap walker.

Finds a site's sitemap (robots.txt directive or common paths) and collects
page URLs from urlset, sitemap index, RSS and Atom documents. Index recursion
is bounded by depth and a visited set, so cyclic indexes terminate.
"""
import gzip
from typing import List, Optional, Set, Tuple
from urllib.parse import urlparse

from lxml import etree

from site_extractor.adapters.http_fetcher import HttpFetcher
from site_extractor.config import config
from site_extractor.utils.logger import LayerLogger


COMMON_SITEMAP_PATHS = [
    "/sitemap.xml",
    "/sitemap_index.xml",
    "/sitemap.xml.gz",
    "/sitemap_index.xml.gz",
    "/sitemap",
    "/sitemaps.xml",
    "/sitemap-index.xml",
    "/post-sitemap.xml",
    "/page-sitemap.xml",
    "/product-sitemap.xml",
    "/category-sitemap.xml",
    "/news-sitemap.xml",
]
GZIP_MAGIC = b"\x1f\x8b"


def _localname(element) -> str:
    tag = element.tag
    if not isinstance(tag, str):
        return ""
    return etree.QName(tag).localname.lower()


def _children(element, name: str):
    return [child for child in element if _localname(child) == name]


def _child_text(element, name: str) -> Optional[str]:
    for child in _children(element, name):
        text = (child.text or "").strip()
        if text:
            return text
    return None


class SitemapWalker:
    """Collects page URLs from a site's sitemaps and feeds."""

    def __init__(
        self,
        fetcher: Optional[HttpFetcher] = None,
        max_depth: int = config.SITEMAP_MAX_DEPTH,
        max_urls: int = 5000,
    ):
        self.fetcher = fetcher or HttpFetcher()
        self.max_depth = max_depth
        self.max_urls = max_urls
        self.logger = LayerLogger("sitemap")

    async def collect(self, site_url: str) -> List[str]:
        """Page URLs listed in the site's sitemap; empty when none is found."""
        sitemap_url, body = await self.find_sitemap(site_url)
        if not sitemap_url:
            self.logger.log_action("sitemap_discovery", "not_found", url=site_url)
            return []

        urls: List[str] = []
        await self._walk(sitemap_url, 0, set(), urls, body=body)
        self.logger.log_action("sitemap_walk", "completed", sitemap=sitemap_url, url_count=len(urls))
        return urls

    async def find_sitemap(self, site_url: str) -> Tuple[Optional[str], Optional[bytes]]:
        """Sitemap URL and its already-fetched body, or (None, None)."""
        parsed = urlparse(site_url)
        if not parsed.scheme or not parsed.netloc:
            self.logger.log_error("Invalid site URL for sitemap discovery", error_type="parse_failure", url=site_url)
            return None, None
        root = f"{parsed.scheme}://{parsed.netloc}"

        path = parsed.path.lower()
        if path.endswith((".xml", ".xml.gz")) or "sitemap" in path:
            body = await self._fetch_body(site_url)
            if body:
                return site_url, body

        robots = await self.fetcher.fetch(f"{root}/robots.txt")
        if robots.ok:
            for line in robots.html.splitlines():
                if line.lower().startswith("sitemap:"):
                    candidate = line.split(":", 1)[1].strip()
                    body = await self._fetch_body(candidate) if candidate else None
                    if body:
                        self.logger.log_decision("sitemap_from_robots", "robots_directive", url=candidate)
                        return candidate, body

        for candidate_path in COMMON_SITEMAP_PATHS:
            candidate = f"{root}{candidate_path}"
            body = await self._fetch_body(candidate)
            if body:
                self.logger.log_decision("sitemap_common_path", "reachable", url=candidate)
                return candidate, body
        return None, None

    async def _fetch_body(self, url: str) -> Optional[bytes]:
        result, body = await self.fetcher.fetch_bytes(url)
        return body if result.ok and body else None

    async def _walk(self, url: str, depth: int, visited: Set[str], urls: List[str], body: Optional[bytes] = None):
        if url in visited or len(urls) >= self.max_urls:
            return
        if depth > self.max_depth:
            self.logger.log_decision("sitemap_depth_limit", "max_depth_reached", url=url, depth=depth)
            return
        visited.add(url)

        if body is None:
            body = await self._fetch_body(url)
        if not body:
            return
        if body[:2] == GZIP_MAGIC:
            try:
                body = gzip.decompress(body)
            except OSError as e:
                self.logger.log_error(f"Could not decompress sitemap: {e}", error_type="parse_failure", url=url)
                return

        try:
            root = etree.fromstring(body, parser=etree.XMLParser(recover=True, resolve_entities=False))
        except etree.XMLSyntaxError as e:
            self.logger.log_error(f"Unparseable sitemap: {e}", error_type="parse_failure", url=url)
            return
        if root is None:
            return

        kind = _localname(root)
        if kind == "sitemapindex":
            for entry in _children(root, "sitemap"):
                loc = _child_text(entry, "loc")
                if loc:
                    await self._walk(loc, depth + 1, visited, urls)
        elif kind == "urlset":
            self._add(urls, (_child_text(entry, "loc") for entry in _children(root, "url")))
        elif kind == "rss":
            for channel in _children(root, "channel"):
                self._add(urls, (_child_text(item, "link") for item in _children(channel, "item")))
        elif kind == "feed":
            links = []
            for entry in _children(root, "entry"):
                for link in _children(entry, "link"):
                    if link.get("href") and link.get("rel", "alternate") == "alternate":
                        links.append(link.get("href"))
                        break
            self._add(urls, links)
        else:
            self.logger.log_decision("sitemap_skipped", f"unknown_root:{kind}", url=url)

    def _add(self, urls: List[str], candidates):
        for candidate in candidates:
            if candidate and candidate not in urls and len(urls) < self.max_urls:
                urls.append(candidate.strip())
