import logging
from typing import Dict, List, Optional

from ..document_store import AGENTS, SERVICES, TASKS, DocumentStore, new_doc_id
from ..errors import (
    FileValidationError, InputValidationError, InsufficientFundsError, InvalidAmountError, InvalidTransitionError,
    PermissionDeniedError
)
from ..models import (
    ActorRole, AgentApprovalStatus, AgentProfile, Complaint, ComplaintResponse, ComplaintStatus, EarningsBreakdown,
    Feedback, Service, Task, TaskDocument, TaskStatus, TaskType
)
from ..storage import LocalFileStorage
from ..task_lifecycle import append_history, can_transition, transition
from ..utils import UploadCandidate, is_valid_email, is_valid_mobile, now_iso, short_id, validate_files
from .commission_service import calculate_agent_earnings
from .notification_service import NotificationService
from .user_service import UserService
from .wallet_service import WalletService, to_money

logger = logging.getLogger(__name__)

ACTOR_ROLES = {
    "admin": ActorRole.ADMIN,
    "agent": ActorRole.AGENT,
    "customer": ActorRole.CUSTOMER,
}

# cancelling before the money moved
UNPAID_STATUSES = frozenset({TaskStatus.PENDING_PRICE_APPROVAL, TaskStatus.AWAITING_PAYMENT})
# cancelling after payment but before an agent took the work
REFUNDABLE_STATUSES = frozenset({TaskStatus.UNASSIGNED, TaskStatus.PENDING_AGENT_ACCEPTANCE})


def actor_role(profile) -> ActorRole:
    return ACTOR_ROLES.get(profile.role, ActorRole.SYSTEM)


class TaskService:
    """Task creation and every step of the task lifecycle."""

    def __init__(self, store: DocumentStore, storage: Optional[LocalFileStorage] = None,
                 notifications: Optional[NotificationService] = None):
        self.store = store
        self.storage = storage or LocalFileStorage()
        self.notifications = notifications or NotificationService(store)
        self.users = UserService(store)
        self.wallets = WalletService(store, self.notifications)

    # ---------- helpers ----------

    def _load(self, task_id: str) -> Task:
        return Task.model_validate(self.store.require(TASKS, task_id))

    def _save(self, task: Task) -> Task:
        self.store.set(TASKS, task.id, task.model_dump(mode="json"))
        return task

    @staticmethod
    def _require_admin(profile):
        if profile.role != "admin":
            raise PermissionDeniedError("Only admins can perform this action.")

    @staticmethod
    def _require_assigned_agent(task: Task, profile):
        if profile.role != "agent" or task.assigned_agent_id != profile.id:
            raise PermissionDeniedError("Only the assigned agent can perform this action.")

    @staticmethod
    def _require_creator(task: Task, profile):
        if task.creator_id != profile.id:
            raise PermissionDeniedError("Only the task creator can perform this action.")

    def _task_link(self, task: Task) -> str:
        return f"/dashboard/task/{task.id}"

    def _whatsapp_status(self, task: Task):
        self.notifications.send_whatsapp(task.customer_mobile, {
            "1": task.customer,
            "2": short_id(task.id),
            "3": task.status.value,
        })

    def _load_service(self, service_id: str) -> Service:
        doc = self.store.get(SERVICES, service_id)
        if doc is None:
            raise InputValidationError("Please select a service.")
        return Service.model_validate(doc)

    def _is_category(self, service: Service) -> bool:
        if self.store.query(SERVICES, parent_id=service.id):
            return True
        return not service.is_variable and service.customer_rate <= 0

    # ---------- queries ----------

    def get_task(self, task_id: str, profile) -> Task:
        task = self._load(task_id)
        if profile.role == "admin" or profile.id in (task.creator_id, task.assigned_agent_id):
            return task
        raise PermissionDeniedError("You do not have access to this task.")

    def list_tasks(self, profile, status: Optional[TaskStatus] = None) -> List[Task]:
        tasks = [Task.model_validate(doc) for doc in self.store.query(TASKS)]
        if profile.role == "agent":
            tasks = [t for t in tasks if profile.id in (t.creator_id, t.assigned_agent_id)]
        elif profile.role == "customer":
            tasks = [t for t in tasks if t.creator_id == profile.id]
        elif profile.role != "admin":
            tasks = []
        if status is not None:
            tasks = [t for t in tasks if t.status == status]
        return sorted(tasks, key=lambda t: t.date, reverse=True)

    def task_earnings(self, task_id: str, profile) -> EarningsBreakdown:
        return calculate_agent_earnings(self.get_task(task_id, profile))

    # ---------- creation and payment ----------

    def create_task(self, profile, service_id: str, customer_name: str, customer_mobile: str,
                    files: List[UploadCandidate], customer_address: str = "", customer_email: Optional[str] = None,
                    customer_pincode: str = "", form_data: Optional[Dict[str, str]] = None) -> Task:
        if profile.role not in ("customer", "agent"):
            raise PermissionDeniedError("Only customers and agents can create tasks.")
        if not customer_name or not customer_name.strip():
            raise InputValidationError("Please enter the customer name.")
        if not is_valid_mobile(customer_mobile):
            raise InputValidationError("Please enter a valid 10-digit mobile number.")
        if customer_email and not is_valid_email(customer_email):
            raise InputValidationError("Please enter a valid email format.")

        service = self._load_service(service_id)
        if self._is_category(service):
            raise InputValidationError(
                "This appears to be a category. Please select a specific sub-service to proceed."
            )
        if not files:
            raise InputValidationError("Please upload at least one document for the selected service.")
        validation = validate_files(files)
        if not validation.is_valid:
            raise FileValidationError(validation.message)

        is_lead = profile.role == "agent"
        total_paid = 0.0 if service.is_variable else (service.agent_rate if is_lead else service.customer_rate)
        if not service.is_variable and to_money(total_paid) < to_money(service.government_fee):
            raise InvalidAmountError(
                f"The {'agent' if is_lead else 'customer'} rate ₹{total_paid:.2f} for '{service.name}' is below "
                f"the government fee ₹{service.government_fee:.2f}. Please contact an admin to correct the service."
            )
        admin = None
        if not service.is_variable:
            admin = self.users.primary_admin()
            balance = self.wallets.balance(profile.id)
            if to_money(balance) < to_money(total_paid):
                raise InsufficientFundsError("Your", balance, total_paid)

        task_id = new_doc_id()
        documents = [
            TaskDocument(name=doc.name, url=doc.url)
            for doc in self.storage.save_all(f"tasks/{task_id}", files)
        ]
        task = Task(
            id=task_id,
            customer=customer_name.strip(),
            customer_address=customer_address,
            customer_mobile=customer_mobile,
            customer_email=customer_email or None,
            customer_pincode=customer_pincode,
            service=service.name,
            service_id=service.id,
            date=now_iso(),
            status=TaskStatus.PENDING_PRICE_APPROVAL if service.is_variable else TaskStatus.UNASSIGNED,
            total_paid=total_paid,
            government_fee_applicable=service.government_fee,
            customer_rate=service.customer_rate,
            agent_rate=service.agent_rate,
            type=TaskType.AGENT_LEAD if is_lead else TaskType.CUSTOMER_REQUEST,
            creator_id=profile.id,
            documents=documents,
            form_data=form_data or {},
        )
        details = (
            "Awaiting price from admin." if service.is_variable
            else f"Paid ₹{total_paid:.2f} from wallet."
        )
        append_history(task, profile.id, actor_role(profile), "Task Created", details)

        try:
            with self.store.transaction():
                if admin is not None and total_paid > 0:
                    self.wallets.transfer(profile.id, admin.id, total_paid, owner_label="Your")
                self._save(task)
        except Exception:
            self.storage.delete_all(task.documents)
            raise

        self.notifications.notify_admins(
            "New Task Created",
            f"A new {task.type.value.lower()} for '{task.service}' was created by {profile.name}.",
            self._task_link(task)
        )
        logger.info(f"[Task Create] {task.id} {task.status.value} service={task.service_id} creator={profile.id}")
        return task

    def set_price(self, task_id: str, price: float, admin) -> Task:
        self._require_admin(admin)
        if price is None or price <= 0:
            raise InputValidationError("Please enter a valid price.")
        task = self._load(task_id)
        if to_money(price) < to_money(task.government_fee_applicable or 0):
            raise InvalidAmountError(
                f"Price ₹{price:.2f} is below the government fee ₹{task.government_fee_applicable:.2f}."
            )
        transition(task, TaskStatus.AWAITING_PAYMENT, admin.id, ActorRole.ADMIN, "Price Set",
                   f"Final price set to ₹{price:.2f}.")
        task.rate = float(to_money(price))
        task.total_paid = task.rate
        self._save(task)
        self.notifications.create_notification(
            task.creator_id,
            "Price Set for Your Task",
            f"The price for '{task.service}' is ₹{price:.2f}. Please complete the payment.",
            self._task_link(task)
        )
        return task

    def pay_for_task(self, task_id: str, profile) -> Task:
        task = self._load(task_id)
        self._require_creator(task, profile)
        if task.status != TaskStatus.AWAITING_PAYMENT:
            raise InvalidTransitionError("Task", task.status.value, TaskStatus.UNASSIGNED.value)
        amount = task.rate if task.rate is not None else task.total_paid
        admin = self.users.primary_admin()

        with self.store.transaction():
            self.wallets.transfer(profile.id, admin.id, amount, owner_label="Your")
            transition(task, TaskStatus.UNASSIGNED, profile.id, actor_role(profile), "Payment Completed",
                       f"Paid ₹{amount:.2f}.")
            self._save(task)

        self.notifications.notify_admins(
            "Payment Received",
            f"Payment of ₹{amount:.2f} received for task {short_id(task.id)}. Ready for assignment.",
            self._task_link(task)
        )
        return task

    # ---------- assignment ----------

    def _pick_agent(self, service_id: str) -> AgentProfile:
        candidates = self.users.list_agents(approved_only=True, available_only=True, service_id=service_id)
        if not candidates:
            raise InputValidationError("No approved, available agent offers this service.")
        # never-assigned agents sort first; ties keep registration order
        return min(candidates, key=lambda agent: agent.last_assigned.get(service_id, ""))

    def assign_agent(self, task_id: str, admin, agent_id: Optional[str] = None) -> Task:
        self._require_admin(admin)
        task = self._load(task_id)
        if agent_id:
            agent = self.users.get_agent(agent_id)
            if agent.status != AgentApprovalStatus.APPROVED:
                raise InputValidationError(f"Agent {agent.name} is not approved yet.")
        else:
            agent = self._pick_agent(task.service_id)

        with self.store.transaction():
            transition(task, TaskStatus.PENDING_AGENT_ACCEPTANCE, admin.id, ActorRole.ADMIN,
                       "Task Assigned to Agent", f"Task assigned to agent {agent.name} for acceptance.")
            task.assigned_agent_id = agent.id
            task.assigned_agent_name = agent.name
            self._save(task)
            last_assigned = dict(agent.last_assigned)
            last_assigned[task.service_id] = now_iso()
            self.store.update(AGENTS, agent.id, {"last_assigned": last_assigned})

        self.notifications.create_notification(
            agent.id,
            "New Task Invitation",
            f"You have been invited to work on task: {short_id(task.id)}.",
            "/dashboard"
        )
        return task

    def accept_task(self, task_id: str, agent) -> Task:
        task = self._load(task_id)
        self._require_assigned_agent(task, agent)
        transition(task, TaskStatus.ASSIGNED, agent.id, ActorRole.AGENT, "Task Accepted",
                   f"Agent {agent.name} has accepted the task.")
        self._save(task)
        self.notifications.create_notification(
            task.creator_id,
            "Task Accepted!",
            f'Your task for "{task.service}" has been accepted by an agent.',
            self._task_link(task)
        )
        self.notifications.notify_admins(
            "Task Accepted by Agent",
            f"Agent {agent.name} has accepted task {short_id(task.id)}.",
            self._task_link(task)
        )
        return task

    def reject_task(self, task_id: str, agent) -> Task:
        task = self._load(task_id)
        self._require_assigned_agent(task, agent)
        transition(task, TaskStatus.UNASSIGNED, agent.id, ActorRole.AGENT, "Task Rejected",
                   f"Agent {agent.name} rejected the task. It has been returned to the assignment queue.")
        task.assigned_agent_id = None
        task.assigned_agent_name = None
        self._save(task)
        self.notifications.notify_admins(
            "Task Rejected by Agent",
            f"Agent {agent.name} has rejected task {short_id(task.id)}. Please reassign it.",
            self._task_link(task)
        )
        return task

    # ---------- work on the task ----------

    def request_information(self, task_id: str, agent, message: str) -> Task:
        if not message or not message.strip():
            raise InputValidationError("Please enter the details of what you need.")
        task = self._load(task_id)
        self._require_assigned_agent(task, agent)
        transition(task, TaskStatus.AWAITING_DOCUMENTS, agent.id, ActorRole.AGENT, "Information Requested",
                   message.strip())
        self._save(task)
        self.notifications.create_notification(
            task.creator_id,
            "Action Required on Your Task",
            f"More information has been requested for task {short_id(task.id)}.",
            self._task_link(task)
        )
        self._whatsapp_status(task)
        return task

    def upload_documents(self, task_id: str, profile, files: List[UploadCandidate]) -> Task:
        task = self._load(task_id)
        self._require_creator(task, profile)
        if task.status != TaskStatus.AWAITING_DOCUMENTS:
            raise InvalidTransitionError("Task", task.status.value, TaskStatus.ASSIGNED.value)
        if not files:
            raise InputValidationError("Please select at least one file to upload.")

        saved = self.storage.save_all(f"tasks/{task.id}", files)
        task.documents.extend(TaskDocument(name=doc.name, url=doc.url) for doc in saved)
        transition(task, TaskStatus.ASSIGNED, profile.id, actor_role(profile), "Documents Uploaded",
                   f"Uploaded {len(saved)} new document(s).")
        self._save(task)
        if task.assigned_agent_id:
            self.notifications.create_notification(
                task.assigned_agent_id,
                "Documents Uploaded",
                f"The customer uploaded new documents for task {short_id(task.id)}.",
                self._task_link(task)
            )
        return task

    def submit_acknowledgement(self, task_id: str, agent, acknowledgement_number: str) -> Task:
        if not acknowledgement_number or not acknowledgement_number.strip():
            raise InputValidationError("Acknowledgement number required")
        task = self._load(task_id)
        self._require_assigned_agent(task, agent)
        transition(task, TaskStatus.IN_PROGRESS, agent.id, ActorRole.AGENT, "Acknowledgement Submitted",
                   f"Acknowledgement No: {acknowledgement_number.strip()}")
        task.acknowledgement_number = acknowledgement_number.strip()
        self._save(task)
        self.notifications.create_notification(
            task.creator_id,
            "Application Submitted",
            f"Your application for task {short_id(task.id)} was submitted. "
            f"Acknowledgement No: {task.acknowledgement_number}.",
            self._task_link(task)
        )
        return task

    def complete_task(self, task_id: str, agent, acknowledgement_number: Optional[str] = None,
                      certificate: Optional[UploadCandidate] = None) -> Task:
        task = self._load(task_id)
        self._require_assigned_agent(task, agent)
        if not can_transition(task.status, TaskStatus.COMPLETED):
            raise InvalidTransitionError("Task", task.status.value, TaskStatus.COMPLETED.value)
        if certificate is not None:
            certificate_doc = self.storage.save_all(f"tasks/{task.id}/certificate", [certificate])[0]
        else:
            certificate_doc = None

        number = (acknowledgement_number or "").strip() or task.acknowledgement_number
        details = f"Acknowledgement No: {number}" if number else "Task marked as completed."
        transition(task, TaskStatus.COMPLETED, agent.id, ActorRole.AGENT, "Task Completed", details)
        task.acknowledgement_number = number
        if certificate_doc is not None:
            task.final_certificate = certificate_doc
        self._save(task)

        self.notifications.create_notification(
            task.creator_id,
            "Task Completed",
            f"Your task for '{task.service}' has been completed.",
            self._task_link(task)
        )
        self.notifications.notify_admins(
            "Task Completed",
            f"Agent {agent.name} completed task {short_id(task.id)}. It is ready for payout.",
            self._task_link(task)
        )
        self._whatsapp_status(task)
        return task

    # ---------- after completion ----------

    def raise_complaint(self, task_id: str, profile, text: str,
                        files: Optional[List[UploadCandidate]] = None) -> Task:
        if not text or not text.strip():
            raise InputValidationError("Please describe your complaint.")
        task = self._load(task_id)
        self._require_creator(task, profile)
        if task.status in (TaskStatus.CANCELLED, TaskStatus.REFUNDED):
            raise InvalidTransitionError("Task", task.status.value, TaskStatus.COMPLAINT_RAISED.value)
        if task.complaint and task.complaint.status == ComplaintStatus.OPEN:
            raise InputValidationError("A complaint is already open for this task.")

        documents = self.storage.save_all(f"complaints/{task.id}", files) if files else []
        task.complaint = Complaint(text=text.strip(), documents=documents, date=now_iso())
        if task.status == TaskStatus.COMPLETED:
            transition(task, TaskStatus.COMPLAINT_RAISED, profile.id, actor_role(profile), "Complaint Raised",
                       text.strip())
        else:
            # the work is still running or already paid out; keep the status
            append_history(task, profile.id, actor_role(profile), "Complaint Raised", text.strip())
        self._save(task)

        self.notifications.notify_admins(
            "New Complaint Raised",
            f"A complaint was raised for task {short_id(task.id)} ({task.service}).",
            "/dashboard/complaints"
        )
        return task

    def respond_to_complaint(self, task_id: str, admin, text: str,
                             files: Optional[List[UploadCandidate]] = None) -> Task:
        self._require_admin(admin)
        if not text or not text.strip():
            raise InputValidationError("Please enter a response.")
        task = self._load(task_id)
        if task.complaint is None or task.complaint.status != ComplaintStatus.OPEN:
            raise InputValidationError("This task has no open complaint.")

        documents = self.storage.save_all(f"complaints/{task.id}/response", files) if files else []
        task.complaint.status = ComplaintStatus.RESPONDED
        task.complaint.response = ComplaintResponse(text=text.strip(), date=now_iso(), documents=documents)
        if task.status == TaskStatus.COMPLAINT_RAISED:
            transition(task, TaskStatus.COMPLETED, admin.id, ActorRole.ADMIN, "Complaint Responded", text.strip())
        else:
            append_history(task, admin.id, ActorRole.ADMIN, "Complaint Responded", text.strip())
        self._save(task)

        self.notifications.create_notification(
            task.creator_id,
            "Response to Your Complaint",
            f"An admin has responded to your complaint for task {short_id(task.id)}.",
            self._task_link(task)
        )
        return task

    def submit_feedback(self, task_id: str, profile, rating: int, comment: str = "") -> Task:
        task = self._load(task_id)
        self._require_creator(task, profile)
        if task.status not in (TaskStatus.COMPLETED, TaskStatus.PAID_OUT):
            raise InputValidationError("Feedback can only be given for completed tasks.")
        if rating is None or not 1 <= rating <= 5:
            raise InputValidationError("Rating must be between 1 and 5.")

        task.feedback = Feedback(rating=rating, comment=comment or "", date=now_iso())
        append_history(task, profile.id, actor_role(profile), "Feedback Submitted", f"Rated {rating}/5.")
        self._save(task)
        if task.assigned_agent_id:
            self.notifications.create_notification(
                task.assigned_agent_id,
                "New Feedback Received",
                f"You received a {rating}-star rating for task {short_id(task.id)}.",
                self._task_link(task)
            )
        return task

    def cancel_task(self, task_id: str, profile, reason: str = "") -> Task:
        task = self._load(task_id)
        if profile.role != "admin":
            self._require_creator(task, profile)
        details = reason.strip() if reason else ""

        if task.status in UNPAID_STATUSES:
            transition(task, TaskStatus.CANCELLED, profile.id, actor_role(profile), "Task Cancelled",
                       details or "Cancelled before payment.")
            self._save(task)
        elif task.status in REFUNDABLE_STATUSES:
            amount = task.total_paid
            with self.store.transaction():
                if amount > 0:
                    admin = self.users.primary_admin()
                    self.wallets.transfer(admin.id, task.creator_id, amount, owner_label="Admin")
                transition(task, TaskStatus.REFUNDED, profile.id, actor_role(profile), "Task Refunded",
                           f"Refunded ₹{amount:.2f} to the creator. {details}".strip())
                task.assigned_agent_id = None
                task.assigned_agent_name = None
                self._save(task)
        else:
            raise InvalidTransitionError("Task", task.status.value, TaskStatus.CANCELLED.value)

        if profile.id != task.creator_id:
            self.notifications.create_notification(
                task.creator_id,
                f"Task {task.status.value}",
                f"Your task for '{task.service}' was {task.status.value.lower()}.",
                self._task_link(task)
            )
        else:
            self.notifications.notify_admins(
                f"Task {task.status.value}",
                f"{profile.name} cancelled task {short_id(task.id)}.",
                self._task_link(task)
            )
        return task
