import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_DOWN
from typing import Any, Dict, List, Optional

from ..config import settings
from ..document_store import TASKS, DocumentStore
from ..errors import InvalidAmountError, InvalidTransitionError, PermissionDeniedError
from ..models import ActorRole, EarningsBreakdown, Task, TaskStatus
from ..task_lifecycle import transition
from ..utils import short_id
from .notification_service import NotificationService
from .wallet_service import WalletService

logger = logging.getLogger(__name__)

PAISE = Decimal("0.01")


def _read_field(task: Any, name: str):
    if isinstance(task, dict):
        return task.get(name)
    return getattr(task, name, None)


def _to_decimal(value: Any, field: str, default: Optional[Decimal] = None) -> Decimal:
    if value is None or (isinstance(value, str) and value.strip() == ""):
        if default is not None:
            return default
        raise InvalidAmountError(f"{field} is required")
    if isinstance(value, bool):
        raise InvalidAmountError(f"{field} must be a number, got {value!r}")
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise InvalidAmountError(f"{field} must be a number, got {value!r}")
    if not amount.is_finite():
        raise InvalidAmountError(f"{field} must be a finite number, got {value!r}")
    if amount < 0:
        raise InvalidAmountError(f"{field} cannot be negative, got {value!r}")
    return amount


def calculate_agent_earnings(task: Any, agent_rate: Optional[float] = None,
                             admin_rate: Optional[float] = None) -> EarningsBreakdown:
    """
    Split what was paid for a task between the government fee, the agent and the admin.
    :param task: a Task, a dict or any object with total_paid / government_fee_applicable
    :param agent_rate: agent share of the profit, defaults to AGENT_COMMISSION_RATE
    :param admin_rate: admin share of the profit, defaults to ADMIN_COMMISSION_RATE
    """
    total_paid = _to_decimal(_read_field(task, "total_paid"), "total_paid")
    government_fee = _to_decimal(
        _read_field(task, "government_fee_applicable"), "government_fee_applicable", default=Decimal("0")
    )
    if government_fee > total_paid:
        raise InvalidAmountError(
            f"government fee ₹{government_fee} exceeds the amount paid ₹{total_paid}"
        )

    agent_rate = _to_decimal(settings.AGENT_COMMISSION_RATE if agent_rate is None else agent_rate, "agent_rate")
    admin_rate = _to_decimal(settings.ADMIN_COMMISSION_RATE if admin_rate is None else admin_rate, "admin_rate")

    profit = total_paid - government_fee
    # rounding down keeps agent + admin <= profit whenever the rates sum to at most 1
    agent_commission = (profit * agent_rate).quantize(PAISE, rounding=ROUND_DOWN)
    admin_commission = (profit * admin_rate).quantize(PAISE, rounding=ROUND_DOWN)

    return EarningsBreakdown(
        government_fee=float(government_fee.quantize(PAISE, rounding=ROUND_DOWN)),
        agent_commission=float(agent_commission),
        admin_commission=float(admin_commission),
        commission_rate=float(agent_rate)
    )


class CommissionCalculationService:
    """Agent payouts and the earnings report built on calculate_agent_earnings."""

    def __init__(self, store: DocumentStore, notifications: Optional[NotificationService] = None):
        self.store = store
        self.notifications = notifications or NotificationService(store)
        self.wallets = WalletService(store, self.notifications)

    def process_payout(self, task_id: str, admin) -> Dict[str, Any]:
        """Pay the assigned agent the government fee plus their commission from the admin wallet."""
        task = Task.model_validate(self.store.require(TASKS, task_id))
        if task.status != TaskStatus.COMPLETED:
            raise InvalidTransitionError("Task", task.status.value, TaskStatus.PAID_OUT.value)
        if not task.assigned_agent_id:
            raise PermissionDeniedError("Task has no assigned agent to pay.")

        earnings = calculate_agent_earnings(task)
        payout = Decimal(str(earnings.government_fee)) + Decimal(str(earnings.agent_commission))

        with self.store.transaction():
            if payout > 0:
                self.wallets.transfer(admin.id, task.assigned_agent_id, payout, owner_label="Admin")
            transition(
                task, TaskStatus.PAID_OUT, admin.id, ActorRole.ADMIN, "Payout Processed",
                f"Paid ₹{payout:.2f} to {task.assigned_agent_name or task.assigned_agent_id} "
                f"(Govt. Fee: ₹{earnings.government_fee:.2f}, Commission: ₹{earnings.agent_commission:.2f})."
            )
            self.store.update(TASKS, task.id, task.model_dump(mode="json", include={"status", "history"}))

        self.notifications.create_notification(
            task.assigned_agent_id,
            "Payout Received",
            f"You received ₹{payout:.2f} for task #{short_id(task.id)}.",
            f"/dashboard/task/{task.id}"
        )
        logger.info(f"[Payout] task {task.id} paid ₹{payout:.2f} to {task.assigned_agent_id}")
        return {
            "task_id": task.id,
            "amount": float(payout),
            "earnings": earnings.model_dump()
        }

    def _paid_out_tasks(self, profile) -> List[Task]:
        filters = {"status": TaskStatus.PAID_OUT.value}
        if profile.role == "agent":
            filters["assigned_agent_id"] = profile.id
        return [Task.model_validate(doc) for doc in self.store.query(TASKS, **filters)]

    @staticmethod
    def _paid_at(task: Task) -> str:
        for entry in reversed(task.history):
            if entry.action == "Payout Processed":
                return entry.timestamp
        return task.date

    def _calculate_summary_metrics(self, results: List[Dict[str, Any]]) -> Dict[str, Any]:
        """Totals for all time, the current month and today."""
        today = datetime.now(timezone.utc).date()

        total = Decimal("0.00")
        monthly = Decimal("0.00")
        daily = Decimal("0.00")
        total_count = 0

        for item in results:
            amount = Decimal(str(item["earning"]))
            total += amount
            total_count += 1

            paid_at = datetime.fromisoformat(item["paid_at"].replace("Z", "+00:00"))
            if paid_at.year == today.year and paid_at.month == today.month:
                monthly += amount
            if paid_at.date() == today:
                daily += amount

        return {
            "total_earnings": float(total.quantize(PAISE)),
            "monthly_earnings": float(monthly.quantize(PAISE)),
            "daily_earnings": float(daily.quantize(PAISE)),
            "total_count": total_count,
        }

    def earnings_report(self, profile) -> Dict[str, Any]:
        """Per-task breakdowns for an agent's (or, for an admin, every) paid-out task."""
        results = []
        for task in self._paid_out_tasks(profile):
            earnings = calculate_agent_earnings(task)
            if profile.role == "agent":
                earning = earnings.government_fee + earnings.agent_commission
            else:
                earning = earnings.admin_commission
            results.append({
                "task_id": task.id,
                "service": task.service,
                "customer": task.customer,
                "agent": task.assigned_agent_name,
                "total_paid": task.total_paid,
                "paid_at": self._paid_at(task),
                "earning": round(earning, 2),
                **earnings.model_dump()
            })

        results.sort(key=lambda r: r["paid_at"], reverse=True)
        return {
            "summary": self._calculate_summary_metrics(results),
            "items": results
        }
