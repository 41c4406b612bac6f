"""
Site Extractor - FastAPI Application
Main entry point with REST API endpoints.
"""
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from site_extractor.adapters.headless import HeadlessRenderer
from site_extractor.adapters.http_fetcher import HttpFetcher
from site_extractor.adapters.llm_client import LLMClient
from site_extractor.adapters.profile_store import InMemoryProfileStore, JsonFileProfileStore
from site_extractor.adapters.sitemap import SitemapWalker
from site_extractor.config import config
from site_extractor.layers.discovery import SelectorDiscoveryLayer
from site_extractor.layers.enrichment import EnrichmentLayer
from site_extractor.layers.pipeline import PageProcessingLayer
from site_extractor.utils.logger import get_logger, start_request
from site_extractor.utils.text import hostname_of


# Initialize FastAPI app
app = FastAPI(
    title="Site Extractor",
    description="Extracts structured page records from e-commerce and content sites",
    version="1.0.0",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Initialize layers
fetcher = HttpFetcher()
llm_client = LLMClient()
profile_store = (
    JsonFileProfileStore(config.PROFILE_STORE_PATH)
    if config.PROFILE_STORE_PATH
    else InMemoryProfileStore()
)
page_processor = PageProcessingLayer(
    fetcher=fetcher,
    profile_store=profile_store,
    renderer=HeadlessRenderer() if config.HEADLESS_ENABLED else None,
    enrichment=EnrichmentLayer(llm_client),
)
discovery_layer = SelectorDiscoveryLayer(
    llm_client=llm_client,
    profile_store=profile_store,
    fetcher=fetcher,
    sitemap_walker=SitemapWalker(fetcher),
)

logger = get_logger("main")


# Request models
class ExtractRequest(BaseModel):
    """Request model for page extraction."""
    url: str
    html: Optional[str] = None  # assemble this HTML instead of fetching
    enrich: bool = True
    headless: bool = True


class DiscoverRequest(BaseModel):
    """Request model for selector discovery."""
    url: str


# API Routes
@app.get("/api/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": "1.0.0",
        "llm_configured": llm_client.is_available(),
        "headless_enabled": config.HEADLESS_ENABLED,
    }


@app.post("/api/extract")
async def extract_page(request: ExtractRequest):
    """
    Extract a page record.

    With `html` the given markup is assembled directly; otherwise the page
    is fetched (light, then headless when needed) before assembly.
    """
    trace_id = start_request("extract", url=request.url)
    logger.info(
        "extraction_request",
        html_provided=request.html is not None,
        enrich=request.enrich,
        headless=request.headless,
    )

    try:
        if request.html is not None:
            record = await page_processor.process_html(request.url, request.html, use_enrichment=request.enrich)
        else:
            record = await page_processor.process(
                request.url,
                use_headless=request.headless,
                use_enrichment=request.enrich,
            )
    except Exception as e:
        logger.error("extraction_error", error=str(e))
        raise HTTPException(status_code=500, detail=str(e))

    logger.info(
        "extraction_completed",
        url=record.url,
        page_type=record.page_type_guess.value,
        fetch_method=record.fetch_method.value,
        stages=record.processing_stages,
        error=record.error,
    )
    return {"trace_id": trace_id, "record": record.model_dump(mode="json")}


@app.post("/api/discover-selectors")
async def discover_selectors(request: DiscoverRequest):
    """
    Discover site-specific selectors for a site.

    Always answers with the discovered profile, which may be empty.
    """
    trace_id = start_request("discover_selectors", url=request.url)
    logger.info("discovery_request")

    if not hostname_of(request.url):
        raise HTTPException(status_code=400, detail="Invalid site URL")

    report = await discovery_layer.run(request.url)
    return {"trace_id": trace_id, **report.to_dict()}


@app.get("/api/selectors/{hostname}")
async def get_selectors(hostname: str):
    """Return the stored (or hand-maintained) selector profile for a hostname."""
    start_request("get_selectors", hostname=hostname)
    profile = await profile_store.get(hostname)
    if profile is None:
        raise HTTPException(status_code=404, detail=f"No selector profile for {hostname}")
    return profile.model_dump(mode="json")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=config.HOST, port=config.PORT)
