"""
Shared fakes for the site extractor tests.

The fakes stand in for the network-facing adapters (HTTP fetcher, headless
renderer, LLM client, sitemap walker) so every test runs offline.
"""
from typing import Dict, List, Optional

import pytest

from site_extractor.adapters.http_fetcher import FetchResult
from site_extractor.adapters.llm_client import LLMResponse
from site_extractor.adapters.profile_store import InMemoryProfileStore


class FakeFetcher:
    """Serves canned HTML per URL; unknown URLs answer 404."""

    def __init__(self, pages: Optional[Dict[str, str]] = None, error: Optional[str] = None):
        self.pages = pages or {}
        self.error = error
        self.calls: List[str] = []

    async def fetch(self, url: str, timeout: Optional[float] = None) -> FetchResult:
        self.calls.append(url)
        if self.error:
            return FetchResult(url=url, error=self.error, attempts=1)
        if url in self.pages:
            return FetchResult(url=url, html=self.pages[url], status_code=200, final_url=url, attempts=1)
        return FetchResult(url=url, status_code=404, error="HTTP 404", attempts=1)


class FakeRenderer:
    def __init__(self, html: Optional[str] = None, error: Optional[str] = None):
        self.html = html
        self.error = error
        self.calls: List[str] = []

    async def render(self, url: str) -> FetchResult:
        self.calls.append(url)
        if self.error:
            return FetchResult(url=url, error=self.error)
        return FetchResult(url=url, html=self.html, status_code=200, final_url=url)


class FakeLLMClient:
    """Returns queued JSON objects in order and records every prompt."""

    def __init__(self, responses: Optional[List[LLMResponse]] = None, available: bool = True):
        self.responses = list(responses or [])
        self.available = available
        self.prompts: List[str] = []

    def is_available(self) -> bool:
        return self.available

    async def complete_json(self, prompt: str, purpose: str = "completion") -> LLMResponse:
        self.prompts.append(prompt)
        if not self.responses:
            return LLMResponse(error="no response queued")
        return self.responses.pop(0)


class FakeSitemapWalker:
    def __init__(self, urls: Optional[List[str]] = None):
        self.urls = urls or []

    async def collect(self, site_url: str) -> List[str]:
        return list(self.urls)


@pytest.fixture
def profile_store():
    return InMemoryProfileStore(manual_profiles={})


@pytest.fixture
def long_paragraph():
    return (
        "Our handmade leather shoes are stitched by a small workshop in Istanbul. "
        "Each pair is cut from full grain leather, lined with soft calfskin and finished by hand. "
        "The sole is made of natural rubber and can be replaced when it wears out over the years."
    )
