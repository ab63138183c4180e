"""Folding player libraries into a shared ownership map and ranking the result."""
import logging
from typing import Dict, Iterable, List, NamedTuple, Tuple

logger = logging.getLogger('sharedgames.aggregator')


class OwnershipEntry:
    """One tracked game: who owns it and how long each owner played it."""

    __slots__ = ('app_id', 'owners', 'playtimes')

    def __init__(self, app_id: int):
        self.app_id = app_id
        self.owners: List[str] = []
        self.playtimes: Dict[str, int] = {}

    def add_owner(self, player_id: str, playtime: int) -> None:
        # A repeated id is listed once but each fetch still counts toward the
        # ratio denominator, so duplicates lower every ownership ratio.
        if player_id not in self.playtimes:
            self.owners.append(player_id)
        self.playtimes[player_id] = playtime


class MatchCandidate(NamedTuple):
    """A game whose ownership ratio passed the threshold."""
    app_id: int
    owners: Tuple[str, ...]
    playtimes: Dict[str, int]
    ownership_ratio: float


def validate_threshold(threshold: float) -> float:
    """Return *threshold* as a float, raising ValueError outside [0, 1]."""
    value = float(threshold)
    if not 0.0 <= value <= 1.0:
        raise ValueError(f"threshold must be between 0 and 1, got {threshold}")
    return value


def build_ownership_map(results: Iterable) -> Tuple[Dict[int, OwnershipEntry], int]:
    """Fold fetch results into a fresh ``app_id -> OwnershipEntry`` map.

    Failed results are skipped.  Owners are recorded in the order the
    results arrive.

    Returns:
        ``(ownership_map, successful_fetch_count)``
    """
    ownership_map: Dict[int, OwnershipEntry] = {}
    successful = 0
    for result in results:
        if not result.ok:
            continue
        successful += 1
        for app_id, playtime in result.games:
            entry = ownership_map.get(app_id)
            if entry is None:
                entry = ownership_map[app_id] = OwnershipEntry(app_id)
            entry.add_owner(result.player_id, playtime)
    return ownership_map, successful


def select_candidates(ownership_map: Dict[int, OwnershipEntry], successful_fetch_count: int,
                      threshold: float) -> List[MatchCandidate]:
    """Return a candidate for every entry owned by at least *threshold* of the scanned players."""
    if successful_fetch_count <= 0:
        return []
    candidates = []
    for entry in ownership_map.values():
        ratio = len(entry.owners) / successful_fetch_count
        if ratio >= threshold:
            candidates.append(MatchCandidate(
                app_id=entry.app_id,
                owners=tuple(entry.owners),
                playtimes=dict(entry.playtimes),
                ownership_ratio=ratio,
            ))
    return candidates


def rank_candidates(candidates: Iterable[MatchCandidate]) -> List[MatchCandidate]:
    """Most owners first, ties broken by ascending app id."""
    return sorted(candidates, key=lambda c: (-len(c.owners), c.app_id))


class OwnershipAggregator:
    """Turns a list of player ids into ranked :class:`MatchCandidate` objects."""

    DEFAULT_MAX_CANDIDATES = 150

    def __init__(self, fetcher, max_candidates: int = DEFAULT_MAX_CANDIDATES) -> None:
        """
        Args:
            fetcher:        An :class:`OwnershipFetcher`.
            max_candidates: How many ranked candidates are kept for enrichment.
        """
        self.fetcher = fetcher
        self.max_candidates = max(int(max_candidates), 0)

    def aggregate(self, player_ids: List[str],
                  threshold: float) -> Tuple[List[MatchCandidate], int]:
        """Fetch, fold, filter, rank and truncate.

        Returns:
            ``(candidates, successful_fetch_count)``.  Candidates are empty when
            no library could be fetched.
        """
        threshold = validate_threshold(threshold)
        results = self.fetcher.fetch_all(player_ids)
        ownership_map, successful = build_ownership_map(results)
        if successful == 0:
            logger.info("No libraries could be fetched for %d players", len(player_ids))
            return [], 0

        ranked = rank_candidates(select_candidates(ownership_map, successful, threshold))
        logger.info("%d of %d games owned by >= %.0f%% of %d scanned players",
                    len(ranked), len(ownership_map), threshold * 100, successful)
        return ranked[:self.max_candidates], successful
