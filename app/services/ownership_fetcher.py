"""Per-player library fetching with failure isolation."""
import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, List, Optional, Tuple

import sharedgames

logger = logging.getLogger('sharedgames.fetcher')


class FetchResult:
    """Outcome of one library fetch.

    ``games`` holds ``(app_id, playtime_minutes)`` pairs when the fetch
    succeeded; ``error`` holds a message when it did not.
    """

    __slots__ = ('player_id', 'games', 'error')

    def __init__(self, player_id: str, games: Optional[List[Tuple[int, int]]] = None,
                 error: Optional[str] = None):
        self.player_id = player_id
        self.games: List[Tuple[int, int]] = list(games or [])
        self.error = error

    @property
    def ok(self) -> bool:
        return self.error is None

    def __repr__(self) -> str:
        if self.ok:
            return f"FetchResult({self.player_id!r}, games={len(self.games)})"
        return f"FetchResult({self.player_id!r}, error={self.error!r})"


class OwnershipFetcher:
    """Fetches owned-game lists for a group of players.

    Two scheduling strategies are available:

    * ``parallel``: every library is requested at once on a thread pool and
      the batch is awaited as a whole; one failure never cancels siblings.
    * ``paced``: libraries are requested one at a time with
      ``pacing_delay`` seconds between requests to stay under Steam's rate
      limits.

    ``auto`` picks ``parallel`` for up to ``paced_above`` players and
    ``paced`` beyond that.
    """

    MODES = ('auto', 'parallel', 'paced')
    DEFAULT_MAX_WORKERS = 8

    def __init__(self, client, mode: str = 'auto', pacing_delay: float = 0.2,
                 paced_above: int = 5, max_workers: int = DEFAULT_MAX_WORKERS,
                 sleep: Callable[[float], None] = time.sleep) -> None:
        """
        Args:
            client:       A :class:`sharedgames.SteamAPIClient` (or any object
                          exposing ``get_owned_games(steam_id)``).
            mode:         One of :attr:`MODES`.
            pacing_delay: Seconds to wait between requests in paced mode.
            paced_above:  Group size above which ``auto`` switches to paced.
            max_workers:  Thread pool cap for parallel mode.
            sleep:        Sleep function, injectable for tests.
        """
        if mode not in self.MODES:
            raise ValueError(f"Unknown fetch mode '{mode}', expected one of {self.MODES}")
        self.client = client
        self.mode = mode
        self.pacing_delay = max(float(pacing_delay), 0.0)
        self.paced_above = paced_above
        self.max_workers = max(int(max_workers), 1)
        self._sleep = sleep

    def fetch(self, player_id: str) -> FetchResult:
        """Fetch one library.  Failures are returned, never raised."""
        try:
            games = self.client.get_owned_games(player_id)
        except sharedgames.SteamAPIError as e:
            logger.warning("Could not fetch games for SteamID %s. Profile may be private. (%s)",
                           player_id, e)
            return FetchResult(player_id, error=str(e))
        logger.debug("Fetched %d games for %s", len(games), player_id)
        return FetchResult(player_id, games=games)

    def uses_pacing(self, count: int) -> bool:
        """Return True when a group of *count* players is fetched sequentially."""
        if self.mode == 'auto':
            return count > self.paced_above
        return self.mode == 'paced'

    def fetch_all(self, player_ids: List[str]) -> List[FetchResult]:
        """Fetch every library and return the results in requested order.

        Duplicated ids are fetched once per occurrence.
        """
        if not player_ids:
            return []
        if self.uses_pacing(len(player_ids)):
            return self._fetch_paced(player_ids)
        return self._fetch_parallel(player_ids)

    def _fetch_paced(self, player_ids: List[str]) -> List[FetchResult]:
        results: List[FetchResult] = []
        for index, player_id in enumerate(player_ids):
            if index and self.pacing_delay:
                self._sleep(self.pacing_delay)
            results.append(self.fetch(player_id))
        return results

    def _fetch_parallel(self, player_ids: List[str]) -> List[FetchResult]:
        results: List[Optional[FetchResult]] = [None] * len(player_ids)
        max_workers = min(len(player_ids), self.max_workers)
        with ThreadPoolExecutor(max_workers=max_workers,
                                thread_name_prefix='sharedgames_lib') as executor:
            future_to_index = {
                executor.submit(self.fetch, player_id): index
                for index, player_id in enumerate(player_ids)
            }
            for future in as_completed(future_to_index):
                index = future_to_index[future]
                try:
                    results[index] = future.result()
                except Exception as exc:
                    player_id = player_ids[index]
                    logger.error("Unexpected error fetching library for %s: %s",
                                 player_id, exc)
                    results[index] = FetchResult(player_id, error=str(exc))
        return results
