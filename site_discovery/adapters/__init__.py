"""Adapters package initialization."""
from site_discovery.adapters.browser import BrowserPage, BrowserSession
from site_discovery.adapters.claude_client import ClaudeClient
from site_discovery.adapters.page_fetcher import PageFetcher
from site_discovery.adapters.search_api import SearchAPIClient
from site_discovery.adapters.store import DiscoveryStore

__all__ = [
    "BrowserPage",
    "BrowserSession",
    "ClaudeClient",
    "PageFetcher",
    "SearchAPIClient",
    "DiscoveryStore",
]
