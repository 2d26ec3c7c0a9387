import logging
import time
from typing import Callable, List, Optional

import requests

from .config import settings
from .errors import FeatureDisabledError, ProviderError
from .models import Identity

logger = logging.getLogger(__name__)

IdentityListener = Callable[[Optional[Identity]], None]


class AuthProvider:
    """Token verification, sign-out and identity-change listeners."""

    def __init__(self):
        self._listeners: List[IdentityListener] = []

    def verify_token(self, token: str) -> Optional[Identity]:
        raise NotImplementedError

    def revoke(self, identity: Identity):
        raise NotImplementedError

    def subscribe(self, listener: IdentityListener) -> Callable[[], None]:
        """Register a listener; returns the function that removes it."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, identity: Optional[Identity]):
        for listener in list(self._listeners):
            try:
                listener(identity)
            except Exception as e:
                logger.error(f"Identity listener failed: {str(e)}", exc_info=True)

    def sign_out(self, identity: Identity):
        self.revoke(identity)
        logger.info(f"Signed out {identity.uid}")
        self._emit(None)


class IdentityToolkitAuthProvider(AuthProvider):
    """Verifies ID tokens against the Identity Toolkit REST API."""

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None,
                 admin_access_token: Optional[str] = None):
        super().__init__()
        self.api_key = api_key or settings.AUTH_API_KEY
        self.admin_access_token = admin_access_token or settings.AUTH_ADMIN_ACCESS_TOKEN
        self.base_url = (base_url or settings.AUTH_BASE_URL).rstrip("/")
        self.timeout = 10

    def _post(self, action: str, payload: dict, headers: Optional[dict] = None) -> dict:
        if not self.api_key:
            raise FeatureDisabledError("Authentication provider is not configured (AUTH_API_KEY is missing).")
        try:
            response = requests.post(
                f"{self.base_url}/accounts:{action}",
                params={"key": self.api_key},
                json=payload,
                headers=headers,
                timeout=self.timeout
            )
        except requests.RequestException as e:
            logger.error(f"Auth provider request accounts:{action} failed: {str(e)}")
            raise ProviderError(f"Authentication provider unavailable: {str(e)}")
        if response.status_code >= 500:
            logger.error(f"Auth provider accounts:{action} returned {response.status_code}: {response.text}")
            raise ProviderError(f"Authentication provider error: {response.status_code}")
        return {"status_code": response.status_code, "body": response.json() if response.content else {}}

    def verify_token(self, token: str) -> Optional[Identity]:
        if not token:
            return None
        result = self._post("lookup", {"idToken": token})
        if result["status_code"] != 200:
            logger.warning(f"Token rejected by auth provider: {result['body']}")
            return None
        users = result["body"].get("users") or []
        if not users:
            return None
        return Identity(uid=users[0]["localId"], email=users[0].get("email"), id_token=token)

    def revoke(self, identity: Identity):
        """Invalidate every token issued before now."""
        payload = {"validSince": str(int(time.time()))}
        headers = None
        if self.admin_access_token:
            # revoking by user id needs service account credentials
            payload["localId"] = identity.uid
            headers = {"Authorization": f"Bearer {self.admin_access_token}"}
        elif identity.id_token:
            payload["idToken"] = identity.id_token
        else:
            logger.error(f"Cannot revoke tokens for {identity.uid}: no ID token or admin credentials")
            return
        result = self._post("update", payload, headers)
        if result["status_code"] != 200:
            logger.error(f"Failed to revoke tokens for {identity.uid}: {result['body']}")
