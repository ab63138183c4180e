#!/usr/bin/env python3
"""
SharedGames Web - JSON HTTP backend for the shared-games finder.
Serves player lookups, friend lists, group ownership matching and catalog
search to the browser front end.
"""

import argparse
import logging
import math
import os
import threading
from typing import Dict, List, Optional

from flask import Flask, jsonify, redirect, request, session

import sharedgames
from app.services import SharedGamesService, SteamAuthService

config: Dict = sharedgames.load_config(os.getenv('SHAREDGAMES_CONFIG', 'config.json'))

# Initialize logging early so service module logs are captured
log_level = config.get('log_level', 'INFO')
sharedgames.setup_logging(log_level)
web_logger = logging.getLogger('sharedgames.web')
try:
    os.makedirs('logs', exist_ok=True)
    fh = logging.FileHandler('logs/sharedgames_web.log')
    fh.setFormatter(logging.Formatter('[%(asctime)s] %(levelname)s %(name)s: %(message)s'))
    fh.setLevel(getattr(logging, str(log_level).upper(), logging.INFO))
    web_logger.addHandler(fh)
except OSError:
    web_logger.warning('Could not create log file handler')

if not config.get('steam_api_key'):
    web_logger.warning('STEAM_API_KEY is not configured; Steam Web API calls will fail')

app = Flask(__name__)
app.secret_key = config['secret_key']

# Lazily built service graph, shared by all requests (read-only after creation)
_steam_client: Optional[sharedgames.SteamAPIClient] = None
_service: Optional[SharedGamesService] = None
_auth_service: Optional[SteamAuthService] = None
_services_lock = threading.Lock()


def get_steam_client() -> sharedgames.SteamAPIClient:
    """Return the process-wide Steam client, creating it on first use."""
    global _steam_client
    with _services_lock:
        if _steam_client is None:
            _steam_client = sharedgames.SteamAPIClient(
                config.get('steam_api_key', ''),
                timeout=config.get('api_timeout_seconds', 10))
        return _steam_client


def get_service() -> SharedGamesService:
    """Return the process-wide matching service, creating it on first use."""
    global _service
    client = get_steam_client()
    with _services_lock:
        if _service is None:
            _service = SharedGamesService.from_config(config, client=client)
        return _service


def get_auth_service() -> SteamAuthService:
    """Return the Steam sign-in helper, creating it on first use."""
    global _auth_service
    with _services_lock:
        if _auth_service is None:
            public_url = config.get('public_url', '')
            _auth_service = SteamAuthService(
                realm=public_url,
                return_url=f"{public_url}/auth/steam/return",
                timeout=config.get('api_timeout_seconds', 10))
        return _auth_service


def parse_threshold(raw: Optional[str], default: float) -> float:
    """Parse the ``threshold`` query value.

    Blank or non-numeric values fall back to *default*; a number outside
    [0, 1] raises ValueError.
    """
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    if math.isnan(value):
        return default
    if not 0.0 <= value <= 1.0:
        raise ValueError('threshold must be between 0 and 1')
    return value


# ---------------------------------------------------------------------------
# CORS
# ---------------------------------------------------------------------------

@app.after_request
def apply_cors(response):
    """Echo allowed origins back so the browser front end can read responses."""
    origin = request.headers.get('Origin')
    if not origin:
        return response
    allowed: List[str] = config.get('allowed_origins', [])
    if origin in allowed:
        response.headers['Access-Control-Allow-Origin'] = origin
        response.headers['Access-Control-Allow-Credentials'] = 'true'
        response.headers.add('Vary', 'Origin')
        if request.method == 'OPTIONS':
            response.headers['Access-Control-Allow-Methods'] = 'GET, OPTIONS'
            requested_headers = request.headers.get('Access-Control-Request-Headers')
            if requested_headers:
                response.headers['Access-Control-Allow-Headers'] = requested_headers
    else:
        web_logger.warning('Blocked cross-origin request from %s', origin)
    return response


# ---------------------------------------------------------------------------
# Pages and authentication
# ---------------------------------------------------------------------------

@app.route('/')
def index():
    """Health banner"""
    return 'SharedGames backend is running!'


@app.route('/auth/steam')
def auth_steam():
    """Redirect the browser to Steam's sign-in page."""
    if not config.get('public_url'):
        return jsonify({'error': 'Steam sign-in is not configured'}), 503
    return redirect(get_auth_service().build_login_url())


@app.route('/auth/steam/return')
def auth_steam_return():
    """Handle Steam's OpenID callback and hand the SteamID to the front end."""
    steam_id = get_auth_service().verify(request.args.to_dict())
    if not steam_id:
        web_logger.warning('Steam sign-in failed verification')
        return redirect('/')
    session['steamid'] = steam_id
    web_logger.info('Signed in SteamID %s', steam_id)
    return redirect(f"{config.get('frontend_url', '')}?steamid={steam_id}")


# ---------------------------------------------------------------------------
# Steam profile endpoints
# ---------------------------------------------------------------------------

@app.route('/api/user')
def api_user():
    """Return the raw Steam profile summary for ``steamid``."""
    steam_id = request.args.get('steamid', '').strip()
    if not steam_id:
        return jsonify({'error': 'SteamID is required'}), 400
    try:
        return jsonify(get_steam_client().get_player_summaries([steam_id]))
    except sharedgames.SteamAPIError as e:
        web_logger.error('Error fetching user data: %s', e)
        return jsonify({'error': 'Failed to fetch user data'}), 500


@app.route('/api/friends')
def api_friends():
    """Return ``steamid``'s Steam friends with names and avatars.

    Response JSON::

        {"friendslist": {"friends": [
            {"steamid": "...", "personaname": "...", "avatar": "..."}
        ]}}
    """
    steam_id = request.args.get('steamid', '').strip()
    if not steam_id:
        return jsonify({'error': 'SteamID is required'}), 400

    client = get_steam_client()
    try:
        friends_raw = client.get_friend_list(steam_id)
        if not friends_raw:
            return jsonify({'friendslist': {'friends': []}})

        friend_ids = [f['steamid'] for f in friends_raw if f.get('steamid')]
        players = client.get_players(friend_ids)
    except sharedgames.SteamAPIError as e:
        web_logger.error('Error fetching friends list (profile might be private): %s', e)
        return jsonify({'error': "Could not retrieve friends list. The user's profile may be private."}), 500

    friends = [
        {
            'steamid': player.get('steamid'),
            'personaname': player.get('personaname'),
            'avatar': player.get('avatarfull'),
        }
        for player in players
    ]
    return jsonify({'friendslist': {'friends': friends}})


# ---------------------------------------------------------------------------
# Group matching endpoints
# ---------------------------------------------------------------------------

@app.route('/api/shared-games')
def api_shared_games():
    """Return the games owned by at least ``threshold`` of the readable libraries.

    Query parameters: ``steamids`` (comma-separated, required), ``cc``
    (store country code) and ``threshold`` (0-1, default 0.8).
    Blank entries in ``steamids`` are dropped before counting, so
    ``totalProfilesRequested`` only counts non-blank ids.
    """
    steam_ids = sharedgames.parse_steam_ids(request.args.get('steamids'))
    if not steam_ids:
        return jsonify({'error': 'SteamIDs are required'}), 400

    try:
        threshold = parse_threshold(request.args.get('threshold'),
                                    config.get('default_threshold', 0.8))
    except ValueError as e:
        return jsonify({'error': str(e)}), 400
    country_code = request.args.get('cc', '').strip() or config.get('default_country_code', 'us')

    try:
        result = get_service().find_shared_games(steam_ids, threshold=threshold,
                                                 country_code=country_code)
    except Exception as e:
        web_logger.exception('Error in /api/shared-games endpoint: %s', e)
        return jsonify({'error': 'An unexpected error occurred while fetching shared games.'}), 500
    return jsonify(result)


@app.route('/api/search-game')
def api_search_game():
    """Search the Steam catalog by name and report ownership across ``steamids``."""
    query = request.args.get('query', '').strip()
    steam_ids = sharedgames.parse_steam_ids(request.args.get('steamids'))
    if not query or not steam_ids:
        return jsonify({'error': 'Query and SteamIDs are required'}), 400
    country_code = request.args.get('cc', '').strip() or config.get('default_country_code', 'us')

    try:
        result = get_service().search_game(query, steam_ids, country_code=country_code)
    except Exception as e:
        web_logger.exception('Error searching for game: %s', e)
        return jsonify({'error': 'Failed to search for game.'}), 500
    return jsonify(result)


# ---------------------------------------------------------------------------
# API documentation (OpenAPI 3.0)
# ---------------------------------------------------------------------------

@app.route('/api/openapi.json')
def api_openapi_spec():
    """Serve the OpenAPI 3.0 specification as JSON."""
    from openapi_spec import build_spec
    server_url = request.url_root.rstrip('/')
    return jsonify(build_spec(server_url=server_url))


def main():
    """Main entry point for the web backend"""
    parser = argparse.ArgumentParser(description='SharedGames web backend')
    parser.add_argument('--host', default='0.0.0.0', help='Interface to bind (default: 0.0.0.0)')
    parser.add_argument('--port', type=int, default=None,
                        help='Port to listen on (default: PORT or config value)')
    parser.add_argument('--debug', action='store_true', help='Run Flask in debug mode')
    args = parser.parse_args()

    port = args.port or int(config.get('port', 3001))
    web_logger.info('Server listening on port %d', port)
    app.run(host=args.host, port=port, debug=args.debug)


if __name__ == "__main__":
    main()
