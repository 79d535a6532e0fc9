"""Models package initialization."""
from site_discovery.models.discovery import (
    CandidateCard,
    DiscoveryRecord,
    DiscoveryRequest,
    OfficialSiteDecision,
    ParsedCandidate,
    ProductInfoResult,
    ProductSignals,
    ScoredUrl,
    SearchAttempt,
    SearchCandidate,
    SearchFormCollection,
    SearchFormDescriptor,
    SearchFormProbeResult,
    SearchFormProductItem,
)

__all__ = [
    "CandidateCard",
    "DiscoveryRecord",
    "DiscoveryRequest",
    "OfficialSiteDecision",
    "ParsedCandidate",
    "ProductInfoResult",
    "ProductSignals",
    "ScoredUrl",
    "SearchAttempt",
    "SearchCandidate",
    "SearchFormCollection",
    "SearchFormDescriptor",
    "SearchFormProbeResult",
    "SearchFormProductItem",
]
