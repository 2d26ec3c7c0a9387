import logging
from decimal import Decimal
from typing import List, Optional, Tuple

from ..document_store import CAMP_SUGGESTIONS, CAMPS, DocumentStore
from ..errors import InputValidationError, InsufficientFundsError, InvalidTransitionError, PermissionDeniedError
from ..models import (
    Camp, CampAgent, CampAgentStatus, CampOrigin, CampPayout, CampPayoutRequest, CampSaveRequest, CampStatus,
    CampSuggestion, CampSuggestionRequest, SuggestedBy
)
from ..task_lifecycle import transition_camp
from ..utils import now_iso
from .notification_service import NotificationService
from .user_service import UserService
from .wallet_service import WalletService, to_money

logger = logging.getLogger(__name__)

CAMPS_LINK = "/dashboard/camps"


class CampService:
    def __init__(self, store: DocumentStore, notifications: Optional[NotificationService] = None):
        self.store = store
        self.notifications = notifications or NotificationService(store)
        self.users = UserService(store)
        self.wallets = WalletService(store, self.notifications)

    def _load(self, camp_id: str) -> Camp:
        return Camp.model_validate(self.store.require(CAMPS, camp_id))

    def _save(self, camp: Camp) -> Camp:
        self.store.set(CAMPS, camp.id, camp.model_dump(mode="json"))
        return camp

    @staticmethod
    def _require_admin(profile):
        if profile.role != "admin":
            raise PermissionDeniedError("Only admins can manage camps.")

    def list_camps(self) -> List[Camp]:
        camps = [Camp.model_validate(doc) for doc in self.store.query(CAMPS)]
        return sorted(camps, key=lambda c: c.date)

    def list_suggestions(self) -> List[CampSuggestion]:
        return [CampSuggestion.model_validate(doc) for doc in self.store.query(CAMP_SUGGESTIONS)]

    def _merge_agents(self, existing: List[CampAgent], agent_ids: List[str]) -> Tuple[List[CampAgent], List[str]]:
        """Keep known entries as they are; new ids start as pending."""
        by_id = {entry.agent_id: entry for entry in existing}
        merged, added = [], []
        for agent_id in dict.fromkeys(agent_ids):
            if agent_id in by_id:
                merged.append(by_id[agent_id])
            else:
                self.users.get_agent(agent_id)
                merged.append(CampAgent(agent_id=agent_id))
                added.append(agent_id)
        return merged, added

    def save_camp(self, request: CampSaveRequest, admin, camp_id: Optional[str] = None) -> Camp:
        """Create a camp (optionally from a suggestion) or update an upcoming one."""
        self._require_admin(admin)
        suggestion = None
        if camp_id:
            camp = self._load(camp_id)
            if camp.status != CampStatus.UPCOMING:
                raise InputValidationError("Only upcoming camps can be edited.")
            camp.name = request.name
            camp.location = request.location
            camp.date = request.date
            camp.services = request.services
            camp.other_services = request.other_services
            camp.assigned_agents, added = self._merge_agents(camp.assigned_agents, request.agent_ids)
        else:
            if request.suggestion_id:
                suggestion = CampSuggestion.model_validate(
                    self.store.require(CAMP_SUGGESTIONS, request.suggestion_id)
                )
            agents, added = self._merge_agents([], request.agent_ids)
            camp = Camp(
                id="",
                name=request.name,
                location=request.location,
                date=request.date,
                type=CampOrigin.SUGGESTED if suggestion else CampOrigin.CREATED,
                services=request.services,
                other_services=request.other_services,
                assigned_agents=agents,
            )

        with self.store.transaction():
            if camp_id:
                self._save(camp)
            else:
                camp.id = self.store.add(CAMPS, camp.model_dump(mode="json", exclude={"id"}))
            if suggestion is not None:
                self.store.delete(CAMP_SUGGESTIONS, suggestion.id)

        if suggestion is not None:
            self.notifications.create_notification(
                suggestion.suggested_by.id,
                "Camp Suggestion Approved!",
                f"Your suggestion for a camp at {suggestion.location} has been approved."
            )
        for agent_id in added:
            self.notifications.create_notification(
                agent_id,
                "New Camp Invitation",
                f'You have been invited to join the camp "{camp.name}".',
                CAMPS_LINK
            )
        logger.info(f"[Camp] saved {camp.id} ({camp.type.value}) with {len(camp.assigned_agents)} agent(s)")
        return camp

    def delete_camp(self, camp_id: str, admin) -> bool:
        self._require_admin(admin)
        self._load(camp_id)
        return self.store.delete(CAMPS, camp_id)

    def suggest_camp(self, request: CampSuggestionRequest, agent) -> CampSuggestion:
        if agent.role != "agent":
            raise PermissionDeniedError("Only agents can suggest camps.")
        data = {
            "location": request.location,
            "date": request.date,
            "suggested_by": {"id": agent.id, "name": agent.name},
            "services": request.services,
            "other_services": request.other_services,
        }
        suggestion_id = self.store.add(CAMP_SUGGESTIONS, data)
        self.notifications.notify_admins(
            "New Camp Suggested",
            f"{agent.name} suggested a camp at {request.location}.",
            CAMPS_LINK
        )
        return CampSuggestion(
            id=suggestion_id,
            location=request.location,
            date=request.date,
            suggested_by=SuggestedBy(id=agent.id, name=agent.name),
            services=request.services,
            other_services=request.other_services,
        )

    def approve_suggestion(self, suggestion_id: str, admin, name: Optional[str] = None,
                           agent_ids: Optional[List[str]] = None) -> Camp:
        suggestion = CampSuggestion.model_validate(self.store.require(CAMP_SUGGESTIONS, suggestion_id))
        request = CampSaveRequest(
            name=name or f"Seva Camp at {suggestion.location}",
            location=suggestion.location,
            date=suggestion.date,
            services=suggestion.services,
            other_services=suggestion.other_services,
            agent_ids=agent_ids or [],
            suggestion_id=suggestion_id,
        )
        return self.save_camp(request, admin)

    def reject_suggestion(self, suggestion_id: str, admin) -> bool:
        self._require_admin(admin)
        suggestion = CampSuggestion.model_validate(self.store.require(CAMP_SUGGESTIONS, suggestion_id))
        self.store.delete(CAMP_SUGGESTIONS, suggestion_id)
        self.notifications.create_notification(
            suggestion.suggested_by.id,
            "Camp Suggestion Update",
            f"Your suggestion for a camp at {suggestion.location} was not approved."
        )
        return True

    def respond_to_camp(self, camp_id: str, agent, status: str) -> Camp:
        """An invited agent accepts or rejects; only their own entry changes."""
        new_status = CampAgentStatus(status)
        if new_status == CampAgentStatus.PENDING:
            raise InputValidationError("Respond with accepted or rejected.")
        camp = self._load(camp_id)
        if camp.status != CampStatus.UPCOMING:
            raise InputValidationError("This camp is no longer accepting responses.")
        entry = next((a for a in camp.assigned_agents if a.agent_id == agent.id), None)
        if entry is None:
            raise PermissionDeniedError("You are not invited to this camp.")

        entry.status = new_status
        self._save(camp)
        self.notifications.notify_admins(
            f"Camp Invitation {new_status.value.capitalize()}",
            f'{agent.name} has {new_status.value} the invitation for camp "{camp.name}".',
            CAMPS_LINK
        )
        return camp

    def update_camp_status(self, camp_id: str, status: CampStatus, admin) -> Camp:
        self._require_admin(admin)
        if status == CampStatus.PAID_OUT:
            raise InputValidationError("Use the payout action to mark a camp as paid out.")
        camp = self._load(camp_id)
        camp.status = transition_camp(camp.status, status)
        self._save(camp)
        if status == CampStatus.CANCELLED:
            self.notifications.notify_many(
                [a.agent_id for a in camp.assigned_agents if a.status == CampAgentStatus.ACCEPTED],
                "Camp Cancelled",
                f'The camp "{camp.name}" has been cancelled.',
                CAMPS_LINK
            )
        logger.info(f"[Camp] {camp.id} status -> {camp.status.value}")
        return camp

    def process_camp_payout(self, camp_id: str, request: CampPayoutRequest, admin) -> Camp:
        """Pay accepted agents from the admin wallet and close the camp."""
        self._require_admin(admin)
        camp = self._load(camp_id)
        if camp.status != CampStatus.COMPLETED:
            raise InvalidTransitionError("Camp", camp.status.value, CampStatus.PAID_OUT.value)

        accepted = {a.agent_id for a in camp.assigned_agents if a.status == CampAgentStatus.ACCEPTED}
        items = [item for item in request.payouts if item.amount > 0]
        for item in items:
            if item.agent_id not in accepted:
                raise InputValidationError(f"Agent {item.agent_id} did not accept this camp.")

        total = sum((to_money(item.amount) for item in items), Decimal("0.00"))
        admin_balance = to_money(self.wallets.balance(admin.id))
        if admin_balance < total:
            raise InsufficientFundsError("Admin", float(admin_balance), float(total))

        paid_at = now_iso()
        with self.store.transaction():
            for item in items:
                agent = self.users.get_agent(item.agent_id)
                self.wallets.transfer(admin.id, agent.id, item.amount, owner_label="Admin")
                camp.payouts.append(CampPayout(
                    agent_id=agent.id,
                    agent_name=agent.name,
                    amount=float(to_money(item.amount)),
                    paid_at=paid_at,
                    paid_by=admin.id,
                ))
            camp.admin_earnings = float(to_money(request.admin_earnings))
            camp.status = transition_camp(camp.status, CampStatus.PAID_OUT)
            self._save(camp)

        for payout in camp.payouts:
            self.notifications.create_notification(
                payout.agent_id,
                "Camp Payout Received",
                f'You received ₹{payout.amount:.2f} for the camp "{camp.name}".',
                CAMPS_LINK
            )
        logger.info(f"[Camp Payout] {camp.id} paid ₹{total} to {len(items)} agent(s)")
        return camp
