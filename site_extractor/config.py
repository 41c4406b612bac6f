"""
Configuration management for the site extractor.
Handles environment variables and extraction thresholds.
"""
import os
from typing import List, Optional
from dotenv import load_dotenv

load_dotenv()


def _csv(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class Config:
    """Application configuration loaded from environment variables."""

    # Server settings
    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "8000"))
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_FORMAT: str = os.getenv("LOG_FORMAT", "json")  # json or console

    # Light fetch
    REQUEST_TIMEOUT: int = int(os.getenv("REQUEST_TIMEOUT", "30"))
    FETCH_MAX_ATTEMPTS: int = int(os.getenv("FETCH_MAX_ATTEMPTS", "3"))

    # Headless rendering
    HEADLESS_ENABLED: bool = os.getenv("HEADLESS_ENABLED", "true").lower() == "true"
    HEADLESS_TIMEOUT: int = int(os.getenv("HEADLESS_TIMEOUT", "45"))
    HEADLESS_WAIT_UNTIL: str = os.getenv("HEADLESS_WAIT_UNTIL", "domcontentloaded")
    HEADLESS_BLOCKED_RESOURCES: List[str] = _csv(
        os.getenv("HEADLESS_BLOCKED_RESOURCES", "image,media,font")
    )
    HEADLESS_MIN_TEXT_LENGTH: int = int(os.getenv("HEADLESS_MIN_TEXT_LENGTH", "200"))
    HEADLESS_MIN_GROWTH_RATIO: float = float(os.getenv("HEADLESS_MIN_GROWTH_RATIO", "1.1"))

    # LLM
    CLAUDE_API_KEY: Optional[str] = os.getenv("CLAUDE_API_KEY")
    LLM_MODEL: str = os.getenv("LLM_MODEL", "claude-3-5-haiku-20241022")
    LLM_MAX_TOKENS: int = int(os.getenv("LLM_MAX_TOKENS", "4096"))
    LLM_TIMEOUT: int = int(os.getenv("LLM_TIMEOUT", "90"))

    # Enrichment
    ENRICHMENT_MIN_TEXT_LENGTH: int = int(os.getenv("ENRICHMENT_MIN_TEXT_LENGTH", "100"))
    ENRICHMENT_HTML_LIMIT: int = int(os.getenv("ENRICHMENT_HTML_LIMIT", "25000"))
    SHORT_DESCRIPTION_LENGTH: int = int(os.getenv("SHORT_DESCRIPTION_LENGTH", "50"))

    # Main text extraction
    MAX_MAIN_TEXT_LENGTH: int = int(os.getenv("MAX_MAIN_TEXT_LENGTH", "15000"))
    LINK_BLOCK_MAX_TEXT: int = int(os.getenv("LINK_BLOCK_MAX_TEXT", "100"))
    LINK_BLOCK_MIN_LINKS: int = int(os.getenv("LINK_BLOCK_MIN_LINKS", "2"))
    LINK_BLOCK_CHARS_PER_LINK: int = int(os.getenv("LINK_BLOCK_CHARS_PER_LINK", "20"))

    # Selector discovery
    DISCOVERY_SAMPLE_LIMIT: int = int(os.getenv("DISCOVERY_SAMPLE_LIMIT", "3"))
    DISCOVERY_SCORE_THRESHOLD: float = float(os.getenv("DISCOVERY_SCORE_THRESHOLD", "3.0"))
    DISCOVERY_HTML_LIMIT: int = int(os.getenv("DISCOVERY_HTML_LIMIT", "10000"))
    DISCOVERY_FETCH_TIMEOUT: int = int(os.getenv("DISCOVERY_FETCH_TIMEOUT", "12"))

    # Sitemap walking
    SITEMAP_MAX_DEPTH: int = int(os.getenv("SITEMAP_MAX_DEPTH", "10"))

    # Selector profile storage
    PROFILE_STORE_PATH: Optional[str] = os.getenv("PROFILE_STORE_PATH")

    @classmethod
    def is_llm_configured(cls) -> bool:
        """Check if an LLM API key is configured."""
        return bool(cls.CLAUDE_API_KEY)


config = Config()
