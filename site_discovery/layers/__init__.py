"""Layers package initialization."""
from site_discovery.layers.discovery import DiscoveryPipeline
from site_discovery.layers.search_form import SearchFormProbe
from site_discovery.layers.search_results import SearchResultCollector
from site_discovery.layers.site_crawler import CrawlMode, CrawlResult, CrawlState, SiteCrawler

__all__ = [
    "DiscoveryPipeline",
    "SearchFormProbe",
    "SearchResultCollector",
    "CrawlMode",
    "CrawlResult",
    "CrawlState",
    "SiteCrawler",
]
