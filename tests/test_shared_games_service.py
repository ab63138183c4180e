#!/usr/bin/env python3
"""End-to-end tests for SharedGamesService with an in-memory Steam client."""
import os
import threading
import unittest

import sys
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import sharedgames
from app.services import SharedGamesService


class FakeSteamClient:
    """In-memory stand-in for sharedgames.SteamAPIClient."""

    def __init__(self, libraries=None, private=(), details=None, players=None,
                 failing_details=(), apps=None, app_list_error=False):
        self.libraries = libraries or {}
        self.private = set(private)
        self.details = details
        self.players = players or {}
        self.failing_details = set(failing_details)
        self.apps = apps or []
        self.app_list_error = app_list_error
        self.detail_calls = []
        self._lock = threading.Lock()

    def get_owned_games(self, steam_id):
        if steam_id in self.private:
            raise sharedgames.SteamAPIError('private')
        return list(self.libraries.get(steam_id, []))

    def get_app_details(self, app_id, country_code='us'):
        with self._lock:
            self.detail_calls.append((app_id, country_code))
        if app_id in self.failing_details:
            raise sharedgames.SteamAPIError('store down')
        if self.details is None:
            return {'steam_appid': app_id, 'name': f'Game {app_id}'}
        return self.details.get(app_id)

    def get_current_players(self, app_id):
        return self.players.get(app_id, 0)

    def get_app_list(self):
        if self.app_list_error:
            raise sharedgames.SteamAPIError('catalog down')
        return self.apps


def make_service(client, **overrides):
    config = dict(sharedgames.DEFAULT_CONFIG)
    config.update({'fetch_mode': 'parallel'})
    config.update(overrides)
    return SharedGamesService.from_config(config, client=client)


class TestFindSharedGames(unittest.TestCase):

    def setUp(self):
        self.client = FakeSteamClient(
            libraries={'A': [(10, 100), (20, 5)], 'B': [(10, 50)]},
            private={'C'},
            details={10: {'name': 'Ten', 'steam_appid': 10},
                     20: {'name': 'Twenty', 'steam_appid': 20}},
            players={10: 1234},
        )
        self.service = make_service(self.client)

    def test_default_threshold_excludes_private_profile(self):
        result = self.service.find_shared_games(['A', 'B', 'C'])
        self.assertEqual(result['publicProfilesScanned'], 2)
        self.assertEqual(result['totalProfilesRequested'], 3)
        self.assertEqual(len(result['games']), 1)
        game = result['games'][0]
        self.assertEqual(game['name'], 'Ten')
        self.assertEqual(game['player_count'], 1234)
        self.assertEqual(game['owners'], ['A', 'B'])
        self.assertEqual(game['nonOwners'], ['C'])
        self.assertEqual(game['playtimes'], {'A': 100, 'B': 50})

    def test_owner_order_follows_request_order(self):
        for _ in range(50):
            result = self.service.find_shared_games(['B', 'A', 'C'])
            self.assertEqual(result['games'][0]['owners'], ['B', 'A'])
            self.assertEqual(result['games'][0]['playtimes'], {'B': 50, 'A': 100})

    def test_half_threshold_includes_boundary(self):
        result = self.service.find_shared_games(['A', 'B', 'C'], threshold=0.5)
        self.assertEqual([g['name'] for g in result['games']], ['Ten', 'Twenty'])
        twenty = result['games'][1]
        self.assertEqual(twenty['owners'], ['A'])
        self.assertEqual(twenty['nonOwners'], ['B', 'C'])
        self.assertEqual(twenty['player_count'], 0)

    def test_owners_and_non_owners_partition_request(self):
        result = self.service.find_shared_games(['A', 'B', 'C'], threshold=0.0)
        for game in result['games']:
            self.assertEqual(sorted(game['owners'] + game['nonOwners']), ['A', 'B', 'C'])
            self.assertEqual(set(game['playtimes']), set(game['owners']))

    def test_everyone_private(self):
        client = FakeSteamClient(private={'A', 'B'})
        result = make_service(client).find_shared_games(['A', 'B'])
        self.assertEqual(result, {'games': [], 'publicProfilesScanned': 0,
                                  'totalProfilesRequested': 2})
        self.assertEqual(client.detail_calls, [])

    def test_country_code_passed_to_store(self):
        self.service.find_shared_games(['A', 'B'], country_code='gb')
        self.assertTrue(self.client.detail_calls)
        self.assertTrue(all(cc == 'gb' for _, cc in self.client.detail_calls))

    def test_default_country_code(self):
        self.service.find_shared_games(['A', 'B'])
        self.assertTrue(all(cc == 'us' for _, cc in self.client.detail_calls))

    def test_invalid_threshold_raises(self):
        with self.assertRaises(ValueError):
            self.service.find_shared_games(['A'], threshold=2)

    def test_enrichment_failure_only_drops_that_game(self):
        self.client.failing_details = {10}
        result = self.service.find_shared_games(['A', 'B', 'C'], threshold=0.5)
        self.assertEqual([g['name'] for g in result['games']], ['Twenty'])
        self.assertEqual(result['publicProfilesScanned'], 2)


class TestCandidateCap(unittest.TestCase):

    def test_single_player_with_200_games_enriches_100(self):
        client = FakeSteamClient(libraries={'A': [(app_id, 0) for app_id in range(1, 201)]})
        service = make_service(client, max_candidates=100)
        result = service.find_shared_games(['A'])
        self.assertEqual(len(result['games']), 100)
        self.assertEqual(len(client.detail_calls), 100)
        self.assertEqual([g['steam_appid'] for g in result['games']], list(range(1, 101)))

    def test_ranking_most_owners_first_then_app_id(self):
        client = FakeSteamClient(libraries={
            'A': [(5, 0), (7, 0), (9, 0)],
            'B': [(9, 0), (7, 0)],
            'C': [(9, 0)],
        })
        result = make_service(client).find_shared_games(['A', 'B', 'C'], threshold=0.0)
        self.assertEqual([g['steam_appid'] for g in result['games']], [9, 7, 5])


class TestPacedService(unittest.TestCase):

    def test_paced_mode_gives_same_result(self):
        client = FakeSteamClient(libraries={'A': [(1, 0)], 'B': [(1, 0)]})
        config = dict(sharedgames.DEFAULT_CONFIG, fetch_mode='paced', pacing_delay_seconds=0)
        service = SharedGamesService.from_config(config, client=client)
        result = service.find_shared_games(['A', 'B'])
        self.assertEqual(result['publicProfilesScanned'], 2)
        self.assertEqual(len(result['games']), 1)


class TestSearchGame(unittest.TestCase):

    def setUp(self):
        self.client = FakeSteamClient(
            libraries={'A': [(620, 300)], 'B': [(400, 10)]},
            private={'C'},
            apps=[
                {'appid': 400, 'name': 'Portal'},
                {'appid': 620, 'name': 'Portal 2'},
                {'appid': 570, 'name': 'Dota 2'},
            ],
        )
        self.service = make_service(self.client)

    def test_case_insensitive_match_with_ownership(self):
        result = self.service.search_game('PORTAL', ['A', 'B', 'C'])
        games = {g['steam_appid']: g for g in result['games']}
        self.assertEqual(set(games), {400, 620})
        self.assertEqual(games[620]['owners'], ['A'])
        self.assertEqual(games[620]['nonOwners'], ['B', 'C'])
        self.assertEqual(games[620]['playtimes'], {'A': 300})
        self.assertEqual(games[400]['owners'], ['B'])

    def test_no_match(self):
        self.assertEqual(self.service.search_game('zelda', ['A']), {'games': []})

    def test_limit_applies(self):
        service = make_service(self.client, search_limit=1)
        result = service.search_game('portal', ['A'])
        self.assertEqual(len(result['games']), 1)

    def test_catalog_failure_raises(self):
        self.client.app_list_error = True
        with self.assertRaises(sharedgames.SteamAPIError):
            self.service.search_game('portal', ['A'])


if __name__ == '__main__':
    unittest.main()
