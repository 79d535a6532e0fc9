"""
Exception taxonomy for the discovery pipeline.

Configuration and upstream errors abort a request. Navigation errors
never leave the component that caught them.
"""
from typing import Any, Dict, Optional


class DiscoveryError(Exception):
    """Base exception for the discovery service."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}


class ConfigurationError(DiscoveryError):
    """A required credential or setting is missing."""


class UpstreamAPIError(DiscoveryError):
    """The search API or the oracle API failed."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: str = "",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, context)
        self.status_code = status_code
        self.body = body


class NavigationError(DiscoveryError):
    """A browser navigation or page evaluation failed or timed out."""

    def __init__(self, message: str, url: str = "", context: Optional[Dict[str, Any]] = None):
        super().__init__(message, context)
        self.url = url
