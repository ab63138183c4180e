"""Store metadata and live player counts for ranked candidates."""
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional

import sharedgames

logger = logging.getLogger('sharedgames.enricher')


def non_owners(requested_ids: List[str], owners) -> List[str]:
    """Requested ids that do not own the game, in requested order."""
    owner_set = set(owners)
    return [player_id for player_id in requested_ids if player_id not in owner_set]


class DetailEnricher:
    """Adds store details and the current player count to match candidates.

    A candidate whose details cannot be fetched (or that the store does not
    know) is dropped; it never fails the whole batch.
    """

    DEFAULT_MAX_WORKERS = 16

    def __init__(self, client, max_workers: int = DEFAULT_MAX_WORKERS) -> None:
        self.client = client
        self.max_workers = max(int(max_workers), 1)

    def enrich(self, candidate, country_code: str,
               requested_ids: List[str]) -> Optional[Dict]:
        """Return the enriched game dict for *candidate*, or None."""
        app_id = candidate.app_id
        try:
            details = self.client.get_app_details(app_id, country_code)
            if details is None:
                logger.debug("No store details for app %s", app_id)
                return None
            player_count = self.client.get_current_players(app_id)
        except sharedgames.SteamAPIError as e:
            logger.warning("Failed to get details for appid %s: %s", app_id, e)
            return None

        game = dict(details)
        game['player_count'] = player_count
        game['owners'] = list(candidate.owners)
        game['nonOwners'] = non_owners(requested_ids, candidate.owners)
        game['playtimes'] = dict(candidate.playtimes)
        return game

    def enrich_all(self, candidates: List, country_code: str,
                   requested_ids: List[str]) -> List[Dict]:
        """Enrich every candidate in parallel, keeping input order and dropping failures."""
        if not candidates:
            return []

        def _enrich(candidate) -> Optional[Dict]:
            try:
                return self.enrich(candidate, country_code, requested_ids)
            except Exception as exc:
                logger.error("Unexpected error enriching app %s: %s", candidate.app_id, exc)
                return None

        max_workers = min(len(candidates), self.max_workers)
        with ThreadPoolExecutor(max_workers=max_workers,
                                thread_name_prefix='sharedgames_enrich') as executor:
            enriched = list(executor.map(_enrich, candidates))
        return [game for game in enriched if game is not None]
