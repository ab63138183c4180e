"""Steam OpenID 2.0 sign-in."""
import logging
import re
import urllib.parse
from typing import Dict, Optional

import requests

logger = logging.getLogger('sharedgames.auth')


class SteamAuthService:
    """Delegated "Sign in through Steam" flow.

    Steam acts as an OpenID 2.0 provider: the browser is redirected to
    :meth:`build_login_url`, Steam redirects back with signed ``openid.*``
    parameters, and :meth:`verify` asks Steam to confirm the signature
    before trusting the claimed SteamID.

    Args:
        realm:      Public origin of this service, e.g. ``https://example.com``.
        return_url: Absolute callback URL (``<realm>/auth/steam/return``).
        timeout:    HTTP request timeout in seconds.
    """

    OPENID_URL = 'https://steamcommunity.com/openid/login'
    _NS = 'http://specs.openid.net/auth/2.0'
    _IDENTIFIER_SELECT = 'http://specs.openid.net/auth/2.0/identifier_select'
    _CLAIMED_ID_RE = re.compile(r'^https?://steamcommunity\.com/openid/id/(\d{17})/?$')

    def __init__(self, realm: str, return_url: str, timeout: int = 10) -> None:
        self.realm = realm
        self.return_url = return_url
        self.timeout = timeout
        self.session = requests.Session()

    def build_login_url(self) -> str:
        """Return the Steam sign-in URL to redirect the browser to."""
        params = {
            'openid.ns':         self._NS,
            'openid.mode':       'checkid_setup',
            'openid.return_to':  self.return_url,
            'openid.realm':      self.realm,
            'openid.identity':   self._IDENTIFIER_SELECT,
            'openid.claimed_id': self._IDENTIFIER_SELECT,
        }
        return f"{self.OPENID_URL}?{urllib.parse.urlencode(params)}"

    def verify(self, params: Dict[str, str]) -> Optional[str]:
        """Validate a callback's ``openid.*`` parameters with Steam.

        Returns:
            The 17-digit SteamID on success, ``None`` when the assertion is
            missing, forged, aimed at another return URL or cannot be checked.
        """
        if params.get('openid.mode') != 'id_res':
            return None
        if not str(params.get('openid.return_to', '')).startswith(self.return_url):
            logger.warning("OpenID assertion for a different return URL: %s",
                           params.get('openid.return_to'))
            return None
        match = self._CLAIMED_ID_RE.match(str(params.get('openid.claimed_id', '')))
        if not match:
            return None

        check = {k: v for k, v in params.items() if k.startswith('openid.')}
        check['openid.mode'] = 'check_authentication'
        try:
            resp = self.session.post(self.OPENID_URL, data=check, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as e:
            logger.warning("Steam OpenID verification failed: %s", e)
            return None

        if 'is_valid:true' not in resp.text:
            logger.warning("Steam rejected OpenID assertion for %s", match.group(1))
            return None
        return match.group(1)
