#!/usr/bin/env python3
"""
SharedGames - find the games a group of Steam players has in common.
Fetches every player's library, ranks the games most of the group owns and
enriches them with store details and live player counts.
"""

import argparse
import json
import logging
import os
import secrets
import sys
from typing import Dict, List, Optional, Tuple

import requests
from colorama import init, Fore, Style
from dotenv import load_dotenv

# Initialize colorama for cross-platform colored terminal output
init(autoreset=True)

# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------

def setup_logging(level: str = 'WARNING') -> logging.Logger:
    """Configure the root SharedGames logger.

    Args:
        level: Log level string (DEBUG, INFO, WARNING, ERROR, CRITICAL).
               Defaults to WARNING so normal use is quiet.

    Returns:
        Configured logger instance.
    """
    numeric = getattr(logging, str(level).upper(), logging.WARNING)
    logger = logging.getLogger('sharedgames')
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter('[%(levelname)s] %(name)s: %(message)s'))
        logger.addHandler(handler)
    logger.setLevel(numeric)
    return logger


# Module-level logger used throughout sharedgames.py
logger = setup_logging()


_PLACEHOLDER_VALUES = {'DEMO_MODE', 'DEMO_ID', 'DEMO_KEY', 'YOUR_STEAM_API_KEY_HERE',
                       'YOUR_STEAM_ID_HERE'}


def is_placeholder_value(value: str) -> bool:
    """Check if a value is a placeholder/demo sentinel that should not be used for real API calls."""
    if not value or not isinstance(value, str):
        return True
    return value.startswith('YOUR_') or value in _PLACEHOLDER_VALUES


def is_valid_steam_id(steam_id: str) -> bool:
    """Validate Steam ID format (64-bit SteamID)

    Args:
        steam_id: Steam ID to validate

    Returns:
        True if valid 64-bit Steam ID format, False otherwise
    """
    if not steam_id or not isinstance(steam_id, str):
        return False

    # Steam 64-bit IDs are 17-digit numbers starting with 7656119
    if not steam_id.isdigit():
        return False

    if len(steam_id) != 17:
        return False

    return steam_id.startswith('7656119')


def parse_csv(raw: Optional[str]) -> List[str]:
    """Split a comma-separated value into stripped, non-blank items."""
    if not raw:
        return []
    return [part.strip() for part in raw.split(',') if part.strip()]


def parse_steam_ids(raw: Optional[str]) -> List[str]:
    """Split a comma-separated ``steamids`` value, dropping blanks.

    Order and duplicates are preserved.
    """
    return parse_csv(raw)


def minutes_to_hours(minutes: int) -> float:
    """Convert playtime from minutes to hours, rounded to 1 decimal place"""
    return round((minutes or 0) / 60, 1)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

DEFAULT_CONFIG: Dict = {
    'steam_api_key': '',
    'frontend_url': 'http://localhost:3000',
    'public_url': 'http://localhost:3001',
    'allowed_origins': ['http://localhost:3000'],
    'port': 3001,
    'log_level': 'INFO',
    'secret_key': '',
    'api_timeout_seconds': 10,
    'default_threshold': 0.8,
    'default_country_code': 'us',
    'max_candidates': 150,
    'fetch_mode': 'auto',
    'paced_above': 5,
    'pacing_delay_seconds': 0.2,
    'search_limit': 20,
}


def load_config(config_path: str = 'config.json') -> Dict:
    """Load configuration from defaults, an optional JSON file and the environment.

    Environment variables (a ``.env`` file is honoured) take precedence over
    config file values:

    - STEAM_API_KEY overrides steam_api_key
    - FRONTEND_URL overrides frontend_url
    - PUBLIC_URL (or VERCEL_URL) overrides public_url
    - ALLOWED_ORIGINS (comma-separated) overrides allowed_origins
    - PORT overrides port
    - SHAREDGAMES_LOG_LEVEL overrides log_level
    - SECRET_KEY overrides secret_key
    """
    load_dotenv()
    config = dict(DEFAULT_CONFIG)

    if config_path and os.path.exists(config_path):
        try:
            with open(config_path, 'r') as f:
                file_config = json.load(f)
            if isinstance(file_config, dict):
                config.update(file_config)
            else:
                logger.warning("Ignoring config file %s: top level is not an object", config_path)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Could not read config file %s: %s", config_path, e)

    if os.getenv('STEAM_API_KEY'):
        config['steam_api_key'] = os.getenv('STEAM_API_KEY')
    if os.getenv('FRONTEND_URL'):
        config['frontend_url'] = os.getenv('FRONTEND_URL')
    if os.getenv('PUBLIC_URL'):
        config['public_url'] = os.getenv('PUBLIC_URL')
    elif os.getenv('VERCEL_URL'):
        config['public_url'] = f"https://{os.getenv('VERCEL_URL')}"
    if os.getenv('ALLOWED_ORIGINS'):
        config['allowed_origins'] = parse_csv(os.getenv('ALLOWED_ORIGINS'))
    if os.getenv('PORT'):
        try:
            config['port'] = int(os.getenv('PORT'))
        except ValueError:
            logger.warning("Ignoring non-numeric PORT=%r", os.getenv('PORT'))
    if os.getenv('SHAREDGAMES_LOG_LEVEL'):
        config['log_level'] = os.getenv('SHAREDGAMES_LOG_LEVEL')
    if os.getenv('SECRET_KEY'):
        config['secret_key'] = os.getenv('SECRET_KEY')

    origins = config.get('allowed_origins') or []
    if isinstance(origins, str):
        origins = parse_csv(origins)
    elif not isinstance(origins, (list, tuple)):
        logger.warning("Ignoring allowed_origins of type %s", type(origins).__name__)
        origins = []
    config['allowed_origins'] = [str(origin).strip() for origin in origins if str(origin).strip()]
    if is_placeholder_value(config.get('steam_api_key', '')):
        config['steam_api_key'] = ''
    if not config.get('secret_key'):
        config['secret_key'] = secrets.token_hex(24)
    config['frontend_url'] = str(config['frontend_url']).rstrip('/')
    config['public_url'] = str(config['public_url']).rstrip('/')
    return config


# ---------------------------------------------------------------------------
# Steam Web API client
# ---------------------------------------------------------------------------

class SteamAPIError(Exception):
    """Raised when a Steam lookup fails: transport, HTTP status or payload shape."""


class SteamAPIClient:
    """Client for the Steam Web API and the Steam Store API.

    Every method performs a single request with ``timeout`` applied and raises
    :class:`SteamAPIError` on failure.  Retrying is left to the caller.
    """

    BASE_URL = "https://api.steampowered.com"
    STORE_URL = "https://store.steampowered.com/api"
    MAX_SUMMARY_IDS = 100

    def __init__(self, api_key: str, timeout: int = 10):
        self.api_key = api_key
        self.timeout = timeout
        self.session = requests.Session()
        self._log = logging.getLogger('sharedgames.steam')

    def _get_json(self, url: str, params: Optional[Dict] = None):
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except requests.RequestException as e:
            raise SteamAPIError(f"Request to {url} failed: {e}") from e
        except ValueError as e:
            raise SteamAPIError(f"Malformed JSON from {url}") from e

    def get_owned_games(self, steam_id: str) -> List[Tuple[int, int]]:
        """Return ``(app_id, playtime_minutes)`` pairs for one Steam library.

        An empty public library yields ``[]``.  A private library answers with
        an empty ``response`` object, which is reported as a failure.
        """
        url = f"{self.BASE_URL}/IPlayerService/GetOwnedGames/v0001/"
        params = {
            'key': self.api_key,
            'steamid': steam_id,
            'include_played_free_games': 1,
            'format': 'json'
        }
        data = self._get_json(url, params)
        response = data.get('response') if isinstance(data, dict) else None
        if not isinstance(response, dict):
            raise SteamAPIError(f"Unexpected owned-games payload for {steam_id}")

        games = response.get('games')
        if games is None:
            if response.get('game_count') == 0:
                return []
            raise SteamAPIError(f"Library for {steam_id} is private or unavailable")

        owned: List[Tuple[int, int]] = []
        try:
            for game in games:
                playtime = int(game.get('playtime_forever') or 0)
                owned.append((int(game['appid']), max(playtime, 0)))
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise SteamAPIError(f"Malformed game entry in library of {steam_id}: {e}") from e
        return owned

    def get_app_details(self, app_id: int, country_code: str = 'us') -> Optional[Dict]:
        """Return the store ``data`` object for *app_id*, or None when the store reports no success."""
        url = f"{self.STORE_URL}/appdetails"
        params = {'appids': app_id, 'cc': country_code}
        data = self._get_json(url, params)
        entry = data.get(str(app_id)) if isinstance(data, dict) else None
        if not isinstance(entry, dict) or not entry.get('success'):
            return None
        details = entry.get('data')
        return details if isinstance(details, dict) else None

    def get_current_players(self, app_id: int) -> int:
        """Return the live concurrent player count, 0 when the field is absent."""
        url = f"{self.BASE_URL}/ISteamUserStats/GetNumberOfCurrentPlayers/v1/"
        data = self._get_json(url, {'appid': app_id})
        response = data.get('response', {}) if isinstance(data, dict) else {}
        try:
            return max(int(response.get('player_count') or 0), 0)
        except (TypeError, ValueError, AttributeError):
            return 0

    def get_player_summaries(self, steam_ids: List[str]) -> Dict:
        """Return the raw ``GetPlayerSummaries`` payload for up to 100 Steam IDs."""
        url = f"{self.BASE_URL}/ISteamUser/GetPlayerSummaries/v0002/"
        params = {
            'key': self.api_key,
            'steamids': ','.join(steam_ids[:self.MAX_SUMMARY_IDS]),
            'format': 'json',
        }
        return self._get_json(url, params)

    def get_players(self, steam_ids: List[str]) -> List[Dict]:
        """Return player summaries for any number of Steam IDs, 100 per request."""
        players: List[Dict] = []
        for start in range(0, len(steam_ids), self.MAX_SUMMARY_IDS):
            chunk = steam_ids[start:start + self.MAX_SUMMARY_IDS]
            payload = self.get_player_summaries(chunk)
            players.extend(payload.get('response', {}).get('players', []))
        return players

    def get_friend_list(self, steam_id: str) -> List[Dict]:
        """Return the friend list for *steam_id*.

        Each entry has at least ``steamid``.  An absent friend list is
        returned as ``[]``; a private profile raises (Steam answers 401).
        """
        url = f"{self.BASE_URL}/ISteamUser/GetFriendList/v0001/"
        params = {
            'key': self.api_key,
            'steamid': steam_id,
            'relationship': 'friend',
            'format': 'json',
        }
        data = self._get_json(url, params)
        friendslist = data.get('friendslist') if isinstance(data, dict) else None
        if not isinstance(friendslist, dict):
            return []
        return friendslist.get('friends') or []

    def get_app_list(self) -> List[Dict]:
        """Return the full Steam catalog as ``{'appid', 'name'}`` dicts."""
        url = f"{self.BASE_URL}/ISteamApps/GetAppList/v2/"
        data = self._get_json(url)
        try:
            return data['applist']['apps']
        except (KeyError, TypeError) as e:
            raise SteamAPIError("Malformed app list payload") from e


# ---------------------------------------------------------------------------
# Command line interface
# ---------------------------------------------------------------------------

def print_shared_games(result: Dict, limit: Optional[int] = None) -> None:
    """Print a ``find_shared_games`` result to the terminal."""
    games = result.get('games', [])
    scanned = result.get('publicProfilesScanned', 0)
    requested = result.get('totalProfilesRequested', 0)

    print(f"\n{Fore.GREEN}{'='*60}")
    print(f"{Fore.CYAN}{Style.BRIGHT}Shared games: {len(games)}")
    colour = Fore.WHITE if scanned == requested else Fore.YELLOW
    print(f"{Fore.YELLOW}Public profiles scanned: {colour}{scanned} of {requested}")
    print(f"{Fore.GREEN}{'='*60}")

    for game in games[:limit] if limit else games:
        owners = game.get('owners', [])
        non_owners = game.get('nonOwners', [])
        total = len(owners) + len(non_owners)
        print(f"\n{Fore.CYAN}{Style.BRIGHT}🎮 {game.get('name', 'Unknown Game')}")
        print(f"{Fore.YELLOW}App ID: {Fore.WHITE}{game.get('steam_appid', '?')}")
        print(f"{Fore.YELLOW}Playing now: {Fore.WHITE}{game.get('player_count', 0)}")
        print(f"{Fore.YELLOW}Owned by: {Fore.WHITE}{len(owners)}/{total}")
        group_minutes = sum(game.get('playtimes', {}).values())
        print(f"{Fore.YELLOW}Group playtime: {Fore.WHITE}{minutes_to_hours(group_minutes)} hours")
        if non_owners:
            print(f"{Fore.YELLOW}Missing: {Fore.RED}{', '.join(non_owners)}")

    print(f"{Fore.GREEN}{'='*60}\n")


def main():
    """Main entry point"""
    parser = argparse.ArgumentParser(
        description='SharedGames - find the Steam games your group has in common',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python3 sharedgames.py --steamids 76561198000000001,76561198000000002
  python3 sharedgames.py --steamids A,B,C --threshold 0.6 --cc gb --limit 10
        """
    )
    parser.add_argument('--config', '-c', default='config.json',
                        help='Path to config file (default: config.json)')
    parser.add_argument('--steamids', '-s', required=True,
                        help='Comma-separated 64-bit Steam IDs')
    parser.add_argument('--threshold', '-t', type=float,
                        help='Minimum share of scanned players owning a game (0-1)')
    parser.add_argument('--cc', help='Store country code for prices (default: us)')
    parser.add_argument('--limit', '-n', type=int, metavar='N',
                        help='Only print the first N games')
    parser.add_argument('--log-level', help='Log level (DEBUG, INFO, WARNING, ...)')
    args = parser.parse_args()

    config = load_config(args.config)
    setup_logging(args.log_level or 'WARNING')

    if not config.get('steam_api_key'):
        print(f"{Fore.RED}Error: Please configure your Steam API key in config.json or set STEAM_API_KEY environment variable")
        print(f"{Fore.YELLOW}Get a free key at: https://steamcommunity.com/dev/apikey")
        sys.exit(1)

    steam_ids = parse_steam_ids(args.steamids)
    if not steam_ids:
        print(f"{Fore.RED}Error: --steamids must contain at least one Steam ID")
        sys.exit(1)
    for steam_id in steam_ids:
        if not is_valid_steam_id(steam_id):
            print(f"{Fore.YELLOW}Warning: '{steam_id}' does not look like a 64-bit Steam ID")

    from app.services import SharedGamesService

    service = SharedGamesService.from_config(config)
    print(f"{Fore.CYAN}Fetching {len(steam_ids)} libraries...")
    try:
        result = service.find_shared_games(steam_ids, threshold=args.threshold,
                                           country_code=args.cc)
    except ValueError as e:
        print(f"{Fore.RED}Error: {e}")
        sys.exit(1)
    print_shared_games(result, limit=args.limit)


if __name__ == "__main__":
    main()
