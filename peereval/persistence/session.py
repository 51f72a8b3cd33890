"""
Session credentials and token refresh for the remote record store.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Optional

import requests

from ..core.exceptions import AuthorizationError


logger = logging.getLogger("peereval.persistence.session")


class SessionContext:
    """Bearer credentials of the current session.

    Created by the composition root and handed to whatever needs it; there is
    no module-level instance.
    """

    def __init__(self, access_token: Optional[str] = None, refresh_token: Optional[str] = None):
        self._access_token = access_token
        self._refresh_token = refresh_token
        self._lock = threading.Lock()

    @property
    def access_token(self) -> Optional[str]:
        with self._lock:
            return self._access_token

    @property
    def refresh_token(self) -> Optional[str]:
        with self._lock:
            return self._refresh_token

    @property
    def is_authenticated(self) -> bool:
        return self.access_token is not None

    def set_tokens(self, access_token: str, refresh_token: Optional[str] = None) -> None:
        """Store a new token pair. The refresh token is kept if none is given."""
        with self._lock:
            self._access_token = access_token
            if refresh_token is not None:
                self._refresh_token = refresh_token

    def clear(self) -> None:
        """Forget every credential."""
        with self._lock:
            self._access_token = None
            self._refresh_token = None


class TokenRefresher(ABC):
    """Exchanges the refresh token for a new access token."""

    @abstractmethod
    def refresh(self, session: SessionContext) -> bool:
        """Refresh the session in place. Returns True on success."""
        pass


class HttpTokenRefresher(TokenRefresher):
    """Refreshes tokens against the auth service's refresh endpoint."""

    def __init__(self, refresh_url: str, timeout: float = 10.0,
                 http: Optional[requests.Session] = None):
        self._refresh_url = refresh_url
        self._timeout = timeout
        self._http = http or requests.Session()

    def refresh(self, session: SessionContext) -> bool:
        refresh_token = session.refresh_token
        if not refresh_token:
            session.clear()
            raise AuthorizationError("No refresh token available", error_code="no_refresh_token")

        try:
            response = self._http.post(
                self._refresh_url,
                json={"refreshToken": refresh_token},
                timeout=self._timeout
            )
        except requests.RequestException as e:
            logger.error("Token refresh request failed", extra={'error': str(e)})
            return False

        if response.status_code not in (200, 201):
            logger.warning("Token refresh rejected", extra={'status': response.status_code})
            return False

        try:
            payload = response.json()
        except ValueError:
            return False
        if not isinstance(payload, dict):
            logger.warning("Token refresh returned an unexpected body", extra={'status': response.status_code})
            return False
        access_token = payload.get("accessToken")
        if not access_token:
            return False

        session.set_tokens(access_token, payload.get("refreshToken"))
        logger.info("Access token refreshed")
        return True
