"""
Configuration management for the official-store discovery service.
Handles environment variables and application settings.
"""
import os
from typing import List, Optional
from dotenv import load_dotenv

load_dotenv()


class Config:
    """Application configuration loaded from environment variables."""

    # Server settings
    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "8000"))
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"

    # Web search provider (SearchAPI.io, Google engine)
    # These are loaded from environment variables, NEVER hardcoded
    SEARCHAPI_API_KEY: Optional[str] = os.getenv("SEARCHAPI_API_KEY")
    SEARCHAPI_URL: str = os.getenv("SEARCHAPI_URL", "https://www.searchapi.io/api/v1/search")

    # Generative-model oracle
    CLAUDE_API_KEY: Optional[str] = os.getenv("CLAUDE_API_KEY")
    CLAUDE_MODEL: str = os.getenv("CLAUDE_MODEL", "claude-3-5-haiku-20241022")
    CLAUDE_MAX_TOKENS: int = int(os.getenv("CLAUDE_MAX_TOKENS", "2048"))

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_FORMAT: str = os.getenv("LOG_FORMAT", "json")  # json or console

    # Request settings (seconds)
    NAVIGATION_TIMEOUT: float = float(os.getenv("NAVIGATION_TIMEOUT", "15"))
    PREFETCH_TIMEOUT: float = float(os.getenv("PREFETCH_TIMEOUT", "8"))

    # Headless browser
    BROWSER_HEADLESS: bool = os.getenv("BROWSER_HEADLESS", "true").lower() == "true"
    BROWSER_USER_AGENT: str = os.getenv(
        "BROWSER_USER_AGENT",
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    )

    # Crawl bounds
    MAX_CRAWL_PAGES: int = int(os.getenv("MAX_CRAWL_PAGES", "5"))
    MAX_CRAWL_DEPTH: int = int(os.getenv("MAX_CRAWL_DEPTH", "2"))
    MIN_PRODUCT_SCORE: int = int(os.getenv("MIN_PRODUCT_SCORE", "3"))

    # Persistence
    DISCOVERY_DB_PATH: str = os.getenv("DISCOVERY_DB_PATH", "discovery.db")
    DISCOVERY_TABLE: str = os.getenv("DISCOVERY_TABLE", "site_metadata_discovery")

    @classmethod
    def is_search_api_configured(cls) -> bool:
        """Check if the web search API key is configured."""
        return bool(cls.SEARCHAPI_API_KEY)

    @classmethod
    def is_claude_configured(cls) -> bool:
        """Check if the oracle API key is configured."""
        return bool(cls.CLAUDE_API_KEY)

    @classmethod
    def get_missing_credentials(cls) -> List[str]:
        """Return list of missing credential environment variables."""
        missing = []
        if not cls.SEARCHAPI_API_KEY:
            missing.append("SEARCHAPI_API_KEY")
        if not cls.CLAUDE_API_KEY:
            missing.append("CLAUDE_API_KEY")
        return missing


config = Config()
