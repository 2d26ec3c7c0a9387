import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional

from ..document_store import PAYMENT_REQUESTS, DocumentStore
from ..errors import InputValidationError, InsufficientFundsError, InvalidTransitionError, PermissionDeniedError
from ..models import PaymentRequest, PaymentRequestStatus, Role
from ..utils import now_iso
from .notification_service import NotificationService
from .user_service import UserService

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    return Decimal(str(value or 0)).quantize(CENT, rounding=ROUND_HALF_UP)


class WalletService:
    """Wallet balances, top-up requests and transfers between profiles."""

    def __init__(self, store: DocumentStore, notifications: Optional[NotificationService] = None):
        self.store = store
        self.users = UserService(store)
        self.notifications = notifications or NotificationService(store)

    def balance(self, uid: str) -> float:
        _, doc = self.users.locate(uid)
        return float(to_money(doc.get("wallet_balance")))

    def _adjust(self, uid: str, delta: Decimal) -> float:
        collection, doc = self.users.locate(uid)
        new_balance = to_money(doc.get("wallet_balance")) + delta
        self.store.update(collection, uid, {"wallet_balance": float(new_balance)})
        return float(new_balance)

    def transfer(self, from_uid: str, to_uid: str, amount, owner_label: str = "Payer") -> float:
        """
        Move money between two wallets inside one transaction.
        :return: the payer's new balance
        """
        amount = to_money(amount)
        if amount <= 0:
            raise InputValidationError("Transfer amount must be positive.")
        with self.store.transaction():
            _, payer = self.users.locate(from_uid)
            balance = to_money(payer.get("wallet_balance"))
            if balance < amount:
                raise InsufficientFundsError(owner_label, float(balance), float(amount))
            new_balance = self._adjust(from_uid, -amount)
            self._adjust(to_uid, amount)
        logger.info(f"[Wallet] transfer ₹{amount} {from_uid} -> {to_uid}")
        return new_balance

    def request_balance(self, profile, amount: float) -> PaymentRequest:
        if profile.role not in (Role.AGENT.value, Role.CUSTOMER.value):
            raise PermissionDeniedError("Only agents and customers can request balance.")
        if amount is None or amount <= 0:
            raise InputValidationError("Please enter a valid positive amount.")

        data = {
            "user_id": profile.id,
            "user_name": profile.name,
            "user_role": profile.role,
            "amount": float(to_money(amount)),
            "status": PaymentRequestStatus.PENDING.value,
            "date": now_iso(),
        }
        request_id = self.store.add(PAYMENT_REQUESTS, data)
        self.notifications.notify_admins(
            "New Balance Request",
            f"{profile.name} requested ₹{amount:.2f} to be added to their wallet.",
            "/dashboard/users"
        )
        return PaymentRequest(id=request_id, **data)

    def list_requests(self, status: Optional[PaymentRequestStatus] = None) -> List[PaymentRequest]:
        filters = {"status": status.value} if status else {}
        docs = self.store.query(PAYMENT_REQUESTS, **filters)
        return sorted((PaymentRequest.model_validate(d) for d in docs), key=lambda r: r.date, reverse=True)

    def resolve_request(self, request_id: str, approve: bool, admin) -> PaymentRequest:
        request = PaymentRequest.model_validate(self.store.require(PAYMENT_REQUESTS, request_id))
        if request.status != PaymentRequestStatus.PENDING:
            target = PaymentRequestStatus.APPROVED if approve else PaymentRequestStatus.REJECTED
            raise InvalidTransitionError("Payment request", request.status.value, target.value)

        changes = {
            "status": (PaymentRequestStatus.APPROVED if approve else PaymentRequestStatus.REJECTED).value,
            "approved_by": admin.id,
            "approved_at": now_iso(),
        }
        with self.store.transaction():
            if approve:
                self._adjust(request.user_id, to_money(request.amount))
            doc = self.store.update(PAYMENT_REQUESTS, request_id, changes)

        if approve:
            self.notifications.create_notification(
                request.user_id,
                "Balance Request Approved",
                f"Your request to add ₹{request.amount:.2f} has been approved."
            )
        else:
            self.notifications.create_notification(
                request.user_id,
                "Balance Request Rejected",
                f"Your request to add ₹{request.amount:.2f} has been rejected."
            )
        logger.info(f"[Wallet] payment request {request_id} {changes['status']} by {admin.id}")
        return PaymentRequest.model_validate(doc)

    def add_balance(self, agent_id: str, amount: float, admin) -> float:
        """Direct admin top-up of an agent wallet."""
        if amount is None or amount <= 0:
            raise InputValidationError("Please enter a valid positive amount.")
        self.users.get_agent(agent_id)
        with self.store.transaction():
            new_balance = self._adjust(agent_id, to_money(amount))
        self.notifications.create_notification(
            agent_id,
            "Wallet Credited",
            f"Admin added ₹{amount:.2f} to your wallet."
        )
        logger.info(f"[Wallet] admin {admin.id} added ₹{amount:.2f} to agent {agent_id}")
        return new_balance
