"""End-to-end group matching: fetch, aggregate, enrich."""
import logging
from typing import Dict, List, Optional

import sharedgames

from .detail_enricher import DetailEnricher
from .ownership_aggregator import MatchCandidate, OwnershipAggregator, validate_threshold
from .ownership_fetcher import OwnershipFetcher

logger = logging.getLogger('sharedgames.service')


class SharedGamesService:
    """Owns the public ``find_shared_games`` and ``search_game`` operations.

    All state lives in local variables of one call; an instance can serve
    concurrent requests.
    """

    DEFAULT_THRESHOLD = 0.8
    DEFAULT_COUNTRY_CODE = 'us'
    DEFAULT_SEARCH_LIMIT = 20

    def __init__(self, fetcher: OwnershipFetcher, aggregator: OwnershipAggregator,
                 enricher: DetailEnricher, default_threshold: float = DEFAULT_THRESHOLD,
                 default_country_code: str = DEFAULT_COUNTRY_CODE,
                 search_limit: int = DEFAULT_SEARCH_LIMIT) -> None:
        self.fetcher = fetcher
        self.aggregator = aggregator
        self.enricher = enricher
        self.default_threshold = validate_threshold(default_threshold)
        self.default_country_code = default_country_code
        self.search_limit = search_limit

    @classmethod
    def from_config(cls, config: Dict, client=None) -> 'SharedGamesService':
        """Build the service graph from a :func:`sharedgames.load_config` dict."""
        if client is None:
            client = sharedgames.SteamAPIClient(
                config.get('steam_api_key', ''),
                timeout=config.get('api_timeout_seconds', 10))
        fetcher = OwnershipFetcher(
            client,
            mode=config.get('fetch_mode', 'auto'),
            pacing_delay=config.get('pacing_delay_seconds', 0.2),
            paced_above=config.get('paced_above', 5))
        aggregator = OwnershipAggregator(
            fetcher, max_candidates=config.get('max_candidates',
                                               OwnershipAggregator.DEFAULT_MAX_CANDIDATES))
        enricher = DetailEnricher(client)
        return cls(fetcher, aggregator, enricher,
                   default_threshold=config.get('default_threshold', cls.DEFAULT_THRESHOLD),
                   default_country_code=config.get('default_country_code',
                                                   cls.DEFAULT_COUNTRY_CODE),
                   search_limit=config.get('search_limit', cls.DEFAULT_SEARCH_LIMIT))

    def find_shared_games(self, player_ids: List[str], threshold: Optional[float] = None,
                          country_code: Optional[str] = None) -> Dict:
        """Return the games most of the group owns, enriched and ranked.

        Args:
            player_ids:   Requested Steam IDs, in caller order.
            threshold:    Minimum ownership ratio among scanned libraries.
            country_code: Store country code used for prices.

        Returns:
            ``{'games': [...], 'publicProfilesScanned': int,
            'totalProfilesRequested': int}``

        Raises:
            ValueError: If *threshold* is outside [0, 1].
        """
        if threshold is None:
            threshold = self.default_threshold
        country_code = country_code or self.default_country_code
        player_ids = list(player_ids)

        candidates, successful = self.aggregator.aggregate(player_ids, threshold)
        games = self.enricher.enrich_all(candidates, country_code, player_ids)
        logger.info("Shared games for %d players: %d candidates, %d enriched",
                    len(player_ids), len(candidates), len(games))
        return {
            'games': games,
            'publicProfilesScanned': successful,
            'totalProfilesRequested': len(player_ids),
        }

    def search_game(self, query: str, player_ids: List[str],
                    country_code: Optional[str] = None) -> Dict:
        """Look up catalog games by name and report who in the group owns each.

        Libraries that cannot be fetched count as owning nothing.

        Raises:
            sharedgames.SteamAPIError: If the app catalog itself cannot be fetched.
        """
        country_code = country_code or self.default_country_code
        player_ids = list(player_ids)
        needle = query.strip().lower()

        matches = []
        for app in self.fetcher.client.get_app_list():
            name = app.get('name') or ''
            if needle in name.lower():
                matches.append(app)
                if len(matches) >= self.search_limit:
                    break
        if not matches:
            return {'games': []}

        libraries: Dict[str, Dict[int, int]] = {}
        for result in self.fetcher.fetch_all(player_ids):
            if result.ok:
                libraries[result.player_id] = dict(result.games)
        scanned = len(libraries)

        candidates = []
        for app in matches:
            app_id = int(app['appid'])
            owners: List[str] = []
            playtimes: Dict[str, int] = {}
            for player_id in player_ids:
                library = libraries.get(player_id, {})
                if app_id in library and player_id not in playtimes:
                    owners.append(player_id)
                    playtimes[player_id] = library[app_id]
            ratio = len(owners) / scanned if scanned else 0.0
            candidates.append(MatchCandidate(app_id, tuple(owners), playtimes, ratio))

        return {'games': self.enricher.enrich_all(candidates, country_code, player_ids)}
