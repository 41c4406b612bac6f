"""Adapters package initialization."""
from site_extractor.adapters.http_fetcher import FetchResult, HttpFetcher, RetryPolicy
from site_extractor.adapters.llm_client import LLMClient, LLMResponse
from site_extractor.adapters.profile_store import InMemoryProfileStore, JsonFileProfileStore, ProfileStore
from site_extractor.adapters.sitemap import SitemapWalker

__all__ = [
    "FetchResult",
    "HttpFetcher",
    "RetryPolicy",
    "LLMClient",
    "LLMResponse",
    "ProfileStore",
    "InMemoryProfileStore",
    "JsonFileProfileStore",
    "SitemapWalker",
]
