"""
Raw page fetcher used to enrich search hits before site verification.
Tolerates any failure by returning empty text.
"""
import re
from typing import Optional

import httpx
from bs4 import BeautifulSoup

from site_discovery.config import config
from site_discovery.utils.logger import LayerLogger

TOP_TEXT_LIMIT = 1500


class PageFetcher:
    """Plain HTTP GET of arbitrary third-party pages."""

    def __init__(self, timeout: Optional[float] = None, client: Optional[httpx.AsyncClient] = None):
        self.timeout = timeout or config.PREFETCH_TIMEOUT
        self.client = client
        self.logger = LayerLogger("page_fetcher")

    def _get_headers(self) -> dict:
        """Get request headers mimicking a browser."""
        return {
            "User-Agent": config.BROWSER_USER_AGENT,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "ko-KR,ko;q=0.9,en-US;q=0.7,en;q=0.5",
        }

    async def fetch_top_text(self, url: str, limit: int = TOP_TEXT_LIMIT) -> str:
        """
        Visible text at the top of a page.

        Returns "" for non-2xx responses, timeouts and network errors.
        """
        if not url:
            return ""
        try:
            if self.client is not None:
                response = await self.client.get(url, headers=self._get_headers(), timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
                    response = await client.get(url, headers=self._get_headers())
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            self.logger.log_error(
                f"Failed to fetch URL: {str(e)}",
                error_type="http_error",
                url=url
            )
            return ""

        if not response.is_success:
            self.logger.log_action(
                "fetch_top_text",
                "skipped",
                url=url,
                status_code=response.status_code
            )
            return ""

        text = html_to_text(response.text)[:limit]
        self.logger.log_action(
            "fetch_top_text",
            "completed",
            url=url,
            status_code=response.status_code,
            text_length=len(text)
        )
        return text


def html_to_text(html: str) -> str:
    """Script/style-free, whitespace-collapsed text of an HTML document."""
    soup = BeautifulSoup(html or "", "lxml")
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()
    return re.sub(r"\s+", " ", soup.get_text(" ")).strip()
