"""
Tests for the HTTP fetcher, sitemap walker and selector profile stores.

Network access is replaced by httpx.MockTransport.
"""

import asyncio
import gzip
import json

import httpx

from site_extractor.adapters.http_fetcher import HttpFetcher, RetryPolicy
from site_extractor.adapters.profile_store import InMemoryProfileStore, JsonFileProfileStore
from site_extractor.adapters.sitemap import SitemapWalker
from site_extractor.models.selectors import FieldKey, MANUAL_SITE_PROFILES, SelectorRule, SiteSelectorProfile


def _fetcher(handler, max_attempts=3):
    return HttpFetcher(
        retry_policy=RetryPolicy(max_attempts=max_attempts, backoff=lambda attempt: 0),
        transport=httpx.MockTransport(handler),
    )


class TestHttpFetcher:
    """Test retries and error results."""

    def test_success(self):
        fetcher = _fetcher(lambda request: httpx.Response(200, text="<html>ok</html>"))
        result = asyncio.run(fetcher.fetch("https://shop.example.com/"))
        assert result.ok
        assert result.html == "<html>ok</html>"
        assert result.attempts == 1

    def test_retries_server_errors(self):
        statuses = iter([503, 502, 200])

        def handler(request):
            status = next(statuses)
            return httpx.Response(status, text="<html>ok</html>" if status == 200 else "")

        result = asyncio.run(_fetcher(handler).fetch("https://shop.example.com/"))
        assert result.ok
        assert result.attempts == 3

    def test_gives_up_after_max_attempts(self):
        result = asyncio.run(_fetcher(lambda request: httpx.Response(429), max_attempts=2).fetch("https://shop.example.com/"))
        assert not result.ok
        assert result.status_code == 429
        assert result.error == "HTTP 429"
        assert result.attempts == 2

    def test_client_errors_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request.url)
            return httpx.Response(404, text="missing")

        result = asyncio.run(_fetcher(handler).fetch("https://shop.example.com/nope"))
        assert not result.ok
        assert len(calls) == 1

    def test_connection_error_returned(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        result = asyncio.run(_fetcher(handler).fetch("https://shop.example.com/"))
        assert not result.ok
        assert "connection refused" in result.error

    def test_invalid_host_returned_as_error(self):
        fetcher = _fetcher(lambda request: httpx.Response(200, text="<html>ok</html>"))
        result = asyncio.run(fetcher.fetch("https://shop\u200b.example.com/"))
        assert not result.ok
        assert result.error
        assert result.attempts == 1

    def test_invalid_url_from_transport_returned_as_error(self):
        def handler(request):
            raise httpx.InvalidURL("Invalid IDNA hostname")

        result = asyncio.run(_fetcher(handler).fetch("https://shop.example.com/"))
        assert not result.ok
        assert "Invalid IDNA hostname" in result.error


URLSET = b"""<?xml version="1.0" encoding="UTF-8"?>
<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">
  <url><loc>https://shop.example.com/urun/a</loc></url>
  <url><loc>https://shop.example.com/urun/b</loc></url>
</urlset>"""

INDEX = b"""<?xml version="1.0" encoding="UTF-8"?>
<sitemapindex xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">
  <sitemap><loc>https://shop.example.com/products.xml.gz</loc></sitemap>
  <sitemap><loc>https://shop.example.com/sitemap_index.xml</loc></sitemap>
  <sitemap><loc>https://shop.example.com/feed.xml</loc></sitemap>
</sitemapindex>"""

RSS = b"""<?xml version="1.0"?>
<rss version="2.0"><channel>
  <item><link>https://shop.example.com/blog/post-1</link></item>
</channel></rss>"""


class TestSitemapWalker:
    """Test discovery and walking of sitemaps."""

    def _walker(self, files, requested=None):
        def handler(request):
            if requested is not None:
                requested.append(str(request.url))
            body = files.get(str(request.url))
            if body is None:
                return httpx.Response(404, text="not found")
            return httpx.Response(200, content=body)

        return SitemapWalker(_fetcher(handler), max_depth=3)

    def test_robots_directive_and_index(self):
        walker = self._walker({
            "https://shop.example.com/robots.txt": b"User-agent: *\nSitemap: https://shop.example.com/sitemap_index.xml\n",
            "https://shop.example.com/sitemap_index.xml": INDEX,
            "https://shop.example.com/products.xml.gz": gzip.compress(URLSET),
            "https://shop.example.com/feed.xml": RSS,
        })
        urls = asyncio.run(walker.collect("https://shop.example.com/"))
        assert urls == [
            "https://shop.example.com/urun/a",
            "https://shop.example.com/urun/b",
            "https://shop.example.com/blog/post-1",
        ]

    def test_each_sitemap_fetched_once(self):
        requested = []
        walker = self._walker({
            "https://shop.example.com/robots.txt": b"Sitemap: https://shop.example.com/sitemap_index.xml\n",
            "https://shop.example.com/sitemap_index.xml": INDEX,
            "https://shop.example.com/products.xml.gz": gzip.compress(URLSET),
            "https://shop.example.com/feed.xml": RSS,
        }, requested)

        asyncio.run(walker.collect("https://shop.example.com/"))

        assert requested.count("https://shop.example.com/sitemap_index.xml") == 1
        assert len(requested) == len(set(requested))

    def test_direct_sitemap_url_fetched_once(self):
        requested = []
        walker = self._walker({"https://shop.example.com/sitemap.xml": URLSET}, requested)

        urls = asyncio.run(walker.collect("https://shop.example.com/sitemap.xml"))

        assert len(urls) == 2
        assert requested == ["https://shop.example.com/sitemap.xml"]

    def test_common_path_fallback(self):
        walker = self._walker({"https://shop.example.com/sitemap.xml": URLSET})
        assert len(asyncio.run(walker.collect("https://shop.example.com"))) == 2

    def test_no_sitemap(self):
        assert asyncio.run(self._walker({}).collect("https://shop.example.com")) == []


def _profile(hostname="shop.example.com"):
    return SiteSelectorProfile(
        hostname=hostname,
        selectors={
            FieldKey.PRICE: [SelectorRule(selector=".price-current")],
            FieldKey.FEATURES: [SelectorRule(selector="#spec tr", is_tabular_row=True)],
        },
    )


class TestProfileStores:
    """Test hostname-keyed profile storage."""

    def test_in_memory_round_trip(self):
        store = InMemoryProfileStore(manual_profiles={})
        asyncio.run(store.put("Shop.Example.com", _profile()))
        assert asyncio.run(store.get("shop.example.com")) == _profile()
        assert asyncio.run(store.get("other.example.com")) is None

    def test_manual_profiles_win(self):
        store = InMemoryProfileStore()
        asyncio.run(store.put("www.toptanturkiye.com", _profile("www.toptanturkiye.com")))
        assert asyncio.run(store.get("www.toptanturkiye.com")) is MANUAL_SITE_PROFILES["www.toptanturkiye.com"]

    def test_json_file_store(self, tmp_path):
        path = tmp_path / "profiles.json"
        store = JsonFileProfileStore(str(path), manual_profiles={})
        asyncio.run(store.put("shop.example.com", _profile()))

        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["shop.example.com"]["selectors"]["price"][0]["selector"] == ".price-current"

        reopened = JsonFileProfileStore(str(path), manual_profiles={})
        assert asyncio.run(reopened.get("shop.example.com")) == _profile()

    def test_unreadable_file_treated_as_empty(self, tmp_path):
        path = tmp_path / "profiles.json"
        path.write_text("{not json", encoding="utf-8")
        store = JsonFileProfileStore(str(path), manual_profiles={})
        assert asyncio.run(store.get("shop.example.com")) is None
