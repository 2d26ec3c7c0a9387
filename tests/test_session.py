import pytest
from unittest.mock import MagicMock, patch

import requests

from conftest import CUSTOMER_ID, FakeAuthProvider
from seva_portal.auth import IdentityToolkitAuthProvider
from seva_portal.errors import FeatureDisabledError, ProviderError, RedirectRequired
from seva_portal.models import Identity
from seva_portal.session import SessionContext, get_identity, get_session, require_any_role, require_roles
from seva_portal.views import complaints_view, dashboard_view


class TestSessionContext:

    def test_profile_resolved_for_identity(self, store, auth_provider):
        session = get_session(authorization="Bearer customer-token", store=store, auth_provider=auth_provider)

        assert session.is_authenticated
        assert session.role == "customer"
        assert session.profile.id == CUSTOMER_ID
        assert session.loading is False

    def test_admin_is_resolved_from_agents_collection(self, store, auth_provider):
        session = get_session(authorization="Bearer admin-token", store=store, auth_provider=auth_provider)

        assert session.role == "admin"

    def test_missing_token_redirects_to_landing(self, store, auth_provider):
        with pytest.raises(RedirectRequired) as exc_info:
            get_session(authorization=None, store=store, auth_provider=auth_provider)

        assert exc_info.value.status_code == 401
        assert exc_info.value.redirect == "/"
        assert exc_info.value.reason == "unauthenticated"

    def test_identity_without_profile_is_signed_out(self, store, auth_provider):
        with pytest.raises(RedirectRequired) as exc_info:
            get_session(authorization="Bearer orphan-token", store=store, auth_provider=auth_provider)

        assert exc_info.value.reason == "profile_missing"
        assert auth_provider.revoked == ["orphan-1"]

    def test_sign_out_notifies_listeners(self, store):
        provider = FakeAuthProvider()
        session = SessionContext(store, provider)
        session.on_identity_changed(Identity(uid=CUSTOMER_ID))
        unsubscribe = provider.subscribe(session.on_identity_changed)

        provider.sign_out(session.identity)
        unsubscribe()

        assert session.profile is None
        assert session.is_authenticated is False
        assert provider.revoked == [CUSTOMER_ID]

    def test_refresh_profile_picks_up_wallet_changes(self, store, auth_provider):
        from seva_portal.document_store import CUSTOMERS

        session = get_session(authorization="Bearer customer-token", store=store, auth_provider=auth_provider)
        store.update(CUSTOMERS, CUSTOMER_ID, {"wallet_balance": 42.0})

        assert session.refresh_profile().wallet_balance == 42.0

    def test_get_identity_for_registration(self, auth_provider):
        identity = get_identity(authorization="Bearer new-token", auth_provider=auth_provider)

        assert identity.uid == "new-user"


class TestRoleGuards:

    def test_allowed_role_passes(self, store, auth_provider):
        session = get_session(authorization="Bearer admin-token", store=store, auth_provider=auth_provider)

        assert require_roles(complaints_view)(session=session) is session

    def test_wrong_role_redirects_to_dashboard(self, store, auth_provider):
        session = get_session(authorization="Bearer customer-token", store=store, auth_provider=auth_provider)

        with pytest.raises(RedirectRequired) as exc_info:
            require_roles(complaints_view)(session=session)

        assert exc_info.value.status_code == 403
        assert exc_info.value.redirect == "/dashboard"

    def test_dashboard_open_to_every_role(self, store, auth_provider):
        session = get_session(authorization="Bearer government-token", store=store, auth_provider=auth_provider)

        assert require_roles(dashboard_view)(session=session) is session

    def test_require_any_role(self, store, auth_provider):
        session = get_session(authorization="Bearer agent-token", store=store, auth_provider=auth_provider)

        with pytest.raises(RedirectRequired):
            require_any_role("admin")(session=session)


class TestIdentityToolkitAuthProvider:

    @patch('seva_portal.auth.requests.post')
    def test_verify_token_success(self, mock_post):
        mock_response = MagicMock()
        mock_response.status_code = 200
        mock_response.content = b"{}"
        mock_response.json.return_value = {"users": [{"localId": "uid-1", "email": "a@b.in"}]}
        mock_post.return_value = mock_response
        provider = IdentityToolkitAuthProvider(api_key="key", base_url="http://auth.test/v1")
        seen = []
        provider.subscribe(seen.append)

        identity = provider.verify_token("token")

        assert identity == Identity(uid="uid-1", email="a@b.in", id_token="token")
        assert "id_token" not in identity.model_dump()
        # verifying a request's token is not an identity change for other listeners
        assert seen == []
        assert mock_post.call_args[0][0] == "http://auth.test/v1/accounts:lookup"
        assert mock_post.call_args[1]["json"] == {"idToken": "token"}

    @patch('seva_portal.auth.requests.post')
    def test_rejected_token(self, mock_post):
        mock_response = MagicMock()
        mock_response.status_code = 400
        mock_response.content = b"{}"
        mock_response.json.return_value = {"error": {"message": "INVALID_ID_TOKEN"}}
        mock_post.return_value = mock_response
        provider = IdentityToolkitAuthProvider(api_key="key", base_url="http://auth.test/v1")

        assert provider.verify_token("bad") is None

    @patch('seva_portal.auth.requests.post')
    def test_network_failure(self, mock_post):
        mock_post.side_effect = requests.ConnectionError("down")
        provider = IdentityToolkitAuthProvider(api_key="key", base_url="http://auth.test/v1")

        with pytest.raises(ProviderError):
            provider.verify_token("token")

    def test_empty_token_skips_the_provider(self):
        provider = IdentityToolkitAuthProvider(api_key="key", base_url="http://auth.test/v1")

        assert provider.verify_token("") is None

    def test_missing_api_key(self):
        provider = IdentityToolkitAuthProvider(api_key="", base_url="http://auth.test/v1")
        provider.api_key = None

        with pytest.raises(FeatureDisabledError):
            provider.verify_token("token")

    @patch('seva_portal.auth.requests.post')
    def test_revoke_with_callers_id_token(self, mock_post):
        mock_response = MagicMock()
        mock_response.status_code = 200
        mock_response.content = b"{}"
        mock_response.json.return_value = {}
        mock_post.return_value = mock_response
        provider = IdentityToolkitAuthProvider(api_key="key", base_url="http://auth.test/v1")
        provider.admin_access_token = None

        provider.revoke(Identity(uid="uid-1", id_token="caller-token"))

        assert mock_post.call_args[0][0] == "http://auth.test/v1/accounts:update"
        payload = mock_post.call_args[1]["json"]
        assert payload["idToken"] == "caller-token"
        assert "localId" not in payload
        assert int(payload["validSince"]) > 0
        assert mock_post.call_args[1]["headers"] is None

    @patch('seva_portal.auth.requests.post')
    def test_revoke_with_admin_credentials(self, mock_post):
        mock_response = MagicMock()
        mock_response.status_code = 200
        mock_response.content = b"{}"
        mock_response.json.return_value = {}
        mock_post.return_value = mock_response
        provider = IdentityToolkitAuthProvider(
            api_key="key", base_url="http://auth.test/v1", admin_access_token="ya29.admin"
        )

        provider.revoke(Identity(uid="uid-1", id_token="caller-token"))

        payload = mock_post.call_args[1]["json"]
        assert payload["localId"] == "uid-1"
        assert "idToken" not in payload
        assert mock_post.call_args[1]["headers"] == {"Authorization": "Bearer ya29.admin"}

    @patch('seva_portal.auth.requests.post')
    def test_revoke_without_credentials_skips_the_provider(self, mock_post):
        provider = IdentityToolkitAuthProvider(api_key="key", base_url="http://auth.test/v1")
        provider.admin_access_token = None

        provider.revoke(Identity(uid="uid-1"))

        mock_post.assert_not_called()
