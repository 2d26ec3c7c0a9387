import pytest

from conftest import ADMIN_ID, AGENT_ID, CUSTOMER_ID
from seva_portal.errors import InputValidationError, InsufficientFundsError, InvalidTransitionError, PermissionDeniedError
from seva_portal.models import PaymentRequestStatus
from seva_portal.services import WalletService
from seva_portal.services.wallet_service import to_money


@pytest.fixture
def wallets(store, notifications):
    return WalletService(store, notifications)


class TestWalletService:

    def test_to_money_rounds_half_up(self):
        assert str(to_money(10.005)) == "10.01"
        assert str(to_money(None)) == "0.00"

    def test_transfer(self, wallets):
        new_balance = wallets.transfer(CUSTOMER_ID, ADMIN_ID, 99.99)

        assert new_balance == 900.01
        assert wallets.balance(ADMIN_ID) == 10099.99

    def test_transfer_insufficient_funds(self, wallets):
        with pytest.raises(InsufficientFundsError):
            wallets.transfer(CUSTOMER_ID, ADMIN_ID, 1000.01)

        assert wallets.balance(CUSTOMER_ID) == 1000

    def test_transfer_must_be_positive(self, wallets):
        with pytest.raises(InputValidationError):
            wallets.transfer(CUSTOMER_ID, ADMIN_ID, 0)

    def test_request_then_approve(self, wallets, customer, admin, notifications):
        request = wallets.request_balance(customer, 250)
        assert request.status == PaymentRequestStatus.PENDING
        assert "New Balance Request" in [n.title for n in notifications.list_for_user(ADMIN_ID)]

        resolved = wallets.resolve_request(request.id, True, admin)

        assert resolved.status == PaymentRequestStatus.APPROVED
        assert resolved.approved_by == ADMIN_ID
        assert wallets.balance(CUSTOMER_ID) == 1250
        assert "Balance Request Approved" in [n.title for n in notifications.list_for_user(CUSTOMER_ID)]

    def test_reject_does_not_credit(self, wallets, agent, admin):
        request = wallets.request_balance(agent, 100)

        resolved = wallets.resolve_request(request.id, False, admin)

        assert resolved.status == PaymentRequestStatus.REJECTED
        assert wallets.balance(AGENT_ID) == 500

    def test_request_resolves_once(self, wallets, customer, admin):
        request = wallets.request_balance(customer, 100)
        wallets.resolve_request(request.id, True, admin)

        with pytest.raises(InvalidTransitionError):
            wallets.resolve_request(request.id, True, admin)
        assert wallets.balance(CUSTOMER_ID) == 1100

    def test_admin_cannot_request_balance(self, wallets, admin):
        with pytest.raises(PermissionDeniedError):
            wallets.request_balance(admin, 100)

    def test_list_requests_by_status(self, wallets, customer, agent, admin):
        first = wallets.request_balance(customer, 100)
        wallets.request_balance(agent, 200)
        wallets.resolve_request(first.id, True, admin)

        pending = wallets.list_requests(PaymentRequestStatus.PENDING)

        assert [r.user_id for r in pending] == [AGENT_ID]
        assert len(wallets.list_requests()) == 2

    def test_add_balance_to_agent(self, wallets, admin):
        assert wallets.add_balance(AGENT_ID, 300, admin) == 800

    def test_add_balance_only_for_agents(self, wallets, admin):
        from seva_portal.errors import NotFoundError

        with pytest.raises(NotFoundError):
            wallets.add_balance(CUSTOMER_ID, 300, admin)
