"""
Web search adapter (SearchAPI.io, Google engine).
Supplies the official-site candidates for a brand + product keyword.
"""
from typing import List, Optional

import httpx

from site_discovery.config import config
from site_discovery.errors import ConfigurationError, UpstreamAPIError
from site_discovery.models.discovery import SearchCandidate
from site_discovery.utils.logger import LayerLogger

MAX_CANDIDATES = 5
QUERY_SUFFIX = (
    "공식 판매 온라인 제품 스토어 official store website official sell online product store"
)


class SearchAPIClient:
    """
    Candidate acquisition through a web search API.

    Errors here are fatal for the request: a missing key raises
    ConfigurationError, an HTTP or API-reported error raises UpstreamAPIError.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        endpoint: Optional[str] = None,
        timeout: float = 30,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key if api_key is not None else config.SEARCHAPI_API_KEY
        self.endpoint = endpoint or config.SEARCHAPI_URL
        self.timeout = timeout
        self.client = client
        self.logger = LayerLogger("search_api")

    def build_query(self, keyword: str) -> str:
        return f"{keyword} {QUERY_SUFFIX}".strip()

    async def search(self, keyword: str) -> List[SearchCandidate]:
        """Top organic results for the official-store query, capped to 5."""
        if not self.api_key:
            self.logger.log_error("SEARCHAPI_API_KEY not found in environment", error_type="config_error")
            raise ConfigurationError("Missing SEARCHAPI_API_KEY in env")

        params = {
            "engine": "google",
            "q": self.build_query(keyword),
            "hl": "ko",
            "gl": "kr",
            "api_key": self.api_key,
        }
        self.logger.log_action("web_search", "started", keyword=keyword)

        try:
            if self.client is not None:
                response = await self.client.get(self.endpoint, params=params, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(self.endpoint, params=params)
        except httpx.HTTPError as e:
            self.logger.log_error(f"Search request failed: {str(e)}", error_type="http_error")
            raise UpstreamAPIError(f"Search API request failed: {str(e)}") from e

        if not response.is_success:
            raise UpstreamAPIError(
                f"Search API request failed: {response.status_code} {response.text}",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamAPIError(
                "Search API returned invalid JSON",
                status_code=response.status_code,
                body=response.text,
            ) from e

        if data.get("error"):
            raise UpstreamAPIError(
                f"Search API error: {data['error']}",
                status_code=response.status_code,
                body=response.text,
            )

        organic = data.get("organic_results") or data.get("results") or data.get("items") or []
        candidates = [
            SearchCandidate(
                title=item.get("title") or "",
                link=item.get("link") or "",
                snippet=item.get("snippet") or "",
            )
            for item in organic[:MAX_CANDIDATES]
            if isinstance(item, dict)
        ]

        self.logger.log_action(
            "web_search",
            "completed",
            keyword=keyword,
            candidates=len(candidates),
            links=[c.link for c in candidates],
        )
        return candidates
