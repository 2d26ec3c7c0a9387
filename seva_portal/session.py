"""
Request-scoped authentication state.

A SessionContext is built for every request from the bearer token and
resolves the caller's profile. Routes depend on `get_session`, or on
`require_roles(view)` for role-gated screens.
"""
import logging
from typing import Callable, Iterable, Optional

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from .auth import AuthProvider, IdentityToolkitAuthProvider
from .config import settings
from .database import get_db
from .document_store import DocumentStore
from .errors import RedirectRequired
from .models import Identity
from .services.user_service import UserService

logger = logging.getLogger(__name__)


class SessionContext:
    def __init__(self, store: DocumentStore, auth_provider: AuthProvider):
        self.store = store
        self.auth_provider = auth_provider
        self.users = UserService(store)
        self.identity: Optional[Identity] = None
        self.profile = None
        self.loading = True
        self.redirect_to: Optional[str] = None

    @property
    def role(self) -> Optional[str]:
        return self.profile.role if self.profile is not None else None

    @property
    def is_authenticated(self) -> bool:
        return self.identity is not None and self.profile is not None

    def _clear(self):
        self.identity = None
        self.profile = None

    def on_identity_changed(self, identity: Optional[Identity]):
        """Resolve the profile for a new identity, or clear the session."""
        self.loading = True
        self.redirect_to = None
        try:
            if identity is None:
                self._clear()
                return

            profile = self.users.find_profile(identity.uid)
            if profile is not None:
                self.identity = identity
                self.profile = profile
                return

            logger.error(
                f"Authenticated user with UID {identity.uid} not found in customers, agents or government "
                f"collections. Logging out."
            )
            self._clear()
            self.auth_provider.sign_out(identity)
            self.redirect_to = settings.LANDING_ROUTE
        finally:
            self.loading = False

    def refresh_profile(self):
        if self.identity is None:
            return None
        profile = self.users.find_profile(self.identity.uid)
        if profile is not None:
            self.profile = profile
        return self.profile


_auth_provider: Optional[AuthProvider] = None


def get_auth_provider() -> AuthProvider:
    global _auth_provider
    if _auth_provider is None:
        _auth_provider = IdentityToolkitAuthProvider()
    return _auth_provider


def get_store(db: Session = Depends(get_db)) -> DocumentStore:
    return DocumentStore(db)


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def get_identity(authorization: Optional[str] = Header(None),
                 auth_provider: AuthProvider = Depends(get_auth_provider)) -> Identity:
    """Signed-in identity without a profile requirement (used by registration)."""
    identity = auth_provider.verify_token(_bearer_token(authorization))
    if identity is None:
        raise RedirectRequired(settings.LANDING_ROUTE, "Please sign in to continue.", reason="unauthenticated")
    return identity


def get_session(authorization: Optional[str] = Header(None),
                store: DocumentStore = Depends(get_store),
                auth_provider: AuthProvider = Depends(get_auth_provider)) -> SessionContext:
    session = SessionContext(store, auth_provider)
    session.on_identity_changed(auth_provider.verify_token(_bearer_token(authorization)))

    if session.redirect_to:
        raise RedirectRequired(
            session.redirect_to,
            "Your account exists, but we couldn't load your profile data. "
            "Please contact support or try re-registering.",
            reason="profile_missing"
        )
    if not session.is_authenticated:
        raise RedirectRequired(settings.LANDING_ROUTE, "Please sign in to continue.", reason="unauthenticated")
    return session


def _role_guard(allowed: Iterable[str], name: str) -> Callable[..., SessionContext]:
    allowed = frozenset(allowed)

    def dependency(session: SessionContext = Depends(get_session)) -> SessionContext:
        if session.role not in allowed:
            logger.warning(f"Role '{session.role}' denied for {name}")
            raise RedirectRequired(
                settings.DEFAULT_ROUTE,
                "You do not have permission to view this page.",
                status_code=403,
                reason="forbidden"
            )
        return session

    return dependency


def require_roles(view) -> Callable[..., SessionContext]:
    """Dependency factory enforcing a view's ALLOWED_ROLES."""
    return _role_guard(getattr(view, "ALLOWED_ROLES"), getattr(view, "__name__", str(view)))


def require_any_role(*roles: str) -> Callable[..., SessionContext]:
    return _role_guard(roles, "/".join(roles))
