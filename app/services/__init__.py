"""Services package: expose all concrete services from one import."""
from .ownership_fetcher import FetchResult, OwnershipFetcher
from .ownership_aggregator import (
    MatchCandidate, OwnershipAggregator, OwnershipEntry,
    build_ownership_map, rank_candidates, select_candidates, validate_threshold,
)
from .detail_enricher import DetailEnricher, non_owners
from .shared_games_service import SharedGamesService
from .steam_auth_service import SteamAuthService

__all__ = [
    'FetchResult',
    'OwnershipFetcher',
    'MatchCandidate',
    'OwnershipAggregator',
    'OwnershipEntry',
    'build_ownership_map',
    'rank_candidates',
    'select_candidates',
    'validate_threshold',
    'DetailEnricher',
    'non_owners',
    'SharedGamesService',
    'SteamAuthService',
]
