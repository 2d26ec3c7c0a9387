import os

import pytest
from unittest.mock import MagicMock, patch

from conftest import ADMIN_ID, AGENT_ID, CUSTOMER_ID, pdf
from seva_portal.document_store import SERVICES, TASKS
from seva_portal.errors import (
    FileValidationError, InputValidationError, InsufficientFundsError, InvalidAmountError, InvalidTransitionError,
    PermissionDeniedError
)
from seva_portal.models import ComplaintStatus, NotificationResult, ServiceUpsertRequest, TaskStatus, TaskType
from seva_portal.services import (
    CatalogService, CommissionCalculationService, NotificationService, TaskService, WhatsAppService
)
from seva_portal.utils import UploadCandidate


def _balance(users, uid):
    return users.find_profile(uid).wallet_balance


class TestCreateTask:

    def test_customer_request_is_paid_from_wallet(self, task_service, customer, users):
        task = task_service.create_task(
            customer, "income_new_application", "Ravi Kumar", "9876543210", [pdf()],
            customer_email="ravi@example.com", form_data={"father_name": "Mohan"}
        )

        assert task.status == TaskStatus.UNASSIGNED
        assert task.type == TaskType.CUSTOMER_REQUEST
        assert task.total_paid == 150
        assert task.form_data == {"father_name": "Mohan"}
        assert len(task.documents) == 1
        assert task.history[0].action == "Task Created"
        assert _balance(users, CUSTOMER_ID) == 850
        assert _balance(users, ADMIN_ID) == 10150

    def test_agent_lead_pays_agent_rate(self, task_service, agent, users):
        task = task_service.create_task(agent, "income_new_application", "Lakshmi", "9876543211", [pdf()])

        assert task.type == TaskType.AGENT_LEAD
        assert task.total_paid == 100
        assert _balance(users, AGENT_ID) == 400

    def test_admins_are_notified(self, task_service, customer, notifications):
        task_service.create_task(customer, "income_new_application", "Ravi", "9876543210", [pdf()])

        titles = [n.title for n in notifications.list_for_user(ADMIN_ID)]
        assert "New Task Created" in titles

    def test_category_is_rejected(self, task_service, customer):
        with pytest.raises(InputValidationError, match="category"):
            task_service.create_task(customer, "income_certificate", "Ravi", "9876543210", [pdf()])

    def test_documents_are_required(self, task_service, customer):
        with pytest.raises(InputValidationError, match="at least one document"):
            task_service.create_task(customer, "income_new_application", "Ravi", "9876543210", [])

    @pytest.mark.parametrize("name,mobile,email", [
        ("", "9876543210", None),
        ("Ravi", "12345", None),
        ("Ravi", "9876543210", "not-an-email"),
    ])
    def test_invalid_form_input(self, task_service, customer, name, mobile, email):
        with pytest.raises(InputValidationError):
            task_service.create_task(customer, "income_new_application", name, mobile, [pdf()], customer_email=email)

    def test_bad_file_type(self, task_service, customer):
        bad = UploadCandidate(filename="a.txt", content_type="text/plain", size=3, content=b"abc")

        with pytest.raises(FileValidationError):
            task_service.create_task(customer, "income_new_application", "Ravi", "9876543210", [bad])

    def test_insufficient_funds_writes_nothing(self, store, task_service, customer, users):
        with pytest.raises(InsufficientFundsError):
            task_service.create_task(customer, "driving_license_application", "Ravi", "9876543210", [pdf()])

        assert store.query(TASKS) == []
        assert _balance(users, CUSTOMER_ID) == 1000

    def test_government_cannot_create(self, task_service, government):
        with pytest.raises(PermissionDeniedError):
            task_service.create_task(government, "income_new_application", "Ravi", "9876543210", [pdf()])


class TestVariablePricing:

    def test_price_then_payment(self, task_service, customer, admin, users):
        task = task_service.create_task(customer, "pan_correction", "Ravi", "9876543210", [pdf()])
        assert task.status == TaskStatus.PENDING_PRICE_APPROVAL
        assert task.total_paid == 0
        assert _balance(users, CUSTOMER_ID) == 1000

        task = task_service.set_price(task.id, 300, admin)
        assert task.status == TaskStatus.AWAITING_PAYMENT
        assert task.rate == 300

        task = task_service.pay_for_task(task.id, customer)
        assert task.status == TaskStatus.UNASSIGNED
        assert _balance(users, CUSTOMER_ID) == 700
        assert _balance(users, ADMIN_ID) == 10300

    def test_only_admin_sets_price(self, task_service, customer):
        task = task_service.create_task(customer, "pan_correction", "Ravi", "9876543210", [pdf()])

        with pytest.raises(PermissionDeniedError):
            task_service.set_price(task.id, 300, customer)

    def test_pay_requires_awaiting_payment(self, task_service, customer):
        task = task_service.create_task(customer, "pan_correction", "Ravi", "9876543210", [pdf()])

        with pytest.raises(InvalidTransitionError):
            task_service.pay_for_task(task.id, customer)

    def test_failed_payment_keeps_status(self, task_service, customer, admin, users):
        task = task_service.create_task(customer, "pan_correction", "Ravi", "9876543210", [pdf()])
        task_service.set_price(task.id, 5000, admin)

        with pytest.raises(InsufficientFundsError):
            task_service.pay_for_task(task.id, customer)

        assert task_service.get_task(task.id, customer).status == TaskStatus.AWAITING_PAYMENT
        assert _balance(users, CUSTOMER_ID) == 1000


class TestTaskWorkflow:

    @pytest.fixture
    def task(self, task_service, customer):
        return task_service.create_task(customer, "income_new_application", "Ravi", "9876543210", [pdf()])

    def test_full_lifecycle(self, task_service, task, customer, admin, agent):
        task = task_service.assign_agent(task.id, admin)
        assert task.status == TaskStatus.PENDING_AGENT_ACCEPTANCE
        assert task.assigned_agent_id == AGENT_ID

        task = task_service.accept_task(task.id, agent)
        assert task.status == TaskStatus.ASSIGNED

        task = task_service.request_information(task.id, agent, "Please upload a clearer Aadhaar copy")
        assert task.status == TaskStatus.AWAITING_DOCUMENTS

        task = task_service.upload_documents(task.id, customer, [pdf("aadhaar_clear.pdf")])
        assert task.status == TaskStatus.ASSIGNED
        assert len(task.documents) == 2

        task = task_service.submit_acknowledgement(task.id, agent, "ACK-123")
        assert task.status == TaskStatus.IN_PROGRESS
        assert task.acknowledgement_number == "ACK-123"

        task = task_service.complete_task(task.id, agent, certificate=pdf("certificate.pdf"))
        assert task.status == TaskStatus.COMPLETED
        assert task.final_certificate.name == "certificate.pdf"
        assert task.acknowledgement_number == "ACK-123"

        actions = [entry.action for entry in task.history]
        assert actions == [
            "Task Created", "Task Assigned to Agent", "Task Accepted", "Information Requested",
            "Documents Uploaded", "Acknowledgement Submitted", "Task Completed",
        ]

    def test_auto_assign_records_last_assignment(self, task_service, task, admin, users):
        task_service.assign_agent(task.id, admin)

        assert "income_new_application" in users.get_agent(AGENT_ID).last_assigned

    def test_auto_assign_without_candidates(self, task_service, task, admin, users):
        users.set_agent_availability(AGENT_ID, False)

        with pytest.raises(InputValidationError):
            task_service.assign_agent(task.id, admin)

    def test_reject_returns_to_queue(self, task_service, task, admin, agent):
        task_service.assign_agent(task.id, admin, AGENT_ID)

        task = task_service.reject_task(task.id, agent)

        assert task.status == TaskStatus.UNASSIGNED
        assert task.assigned_agent_id is None

    def test_only_assigned_agent_can_accept(self, task_service, task, admin, customer):
        task_service.assign_agent(task.id, admin, AGENT_ID)

        with pytest.raises(PermissionDeniedError):
            task_service.accept_task(task.id, customer)

    def test_cannot_complete_before_acceptance(self, task_service, task, admin, agent):
        task_service.assign_agent(task.id, admin, AGENT_ID)

        with pytest.raises(InvalidTransitionError):
            task_service.complete_task(task.id, agent)

    def test_upload_requires_awaiting_documents(self, task_service, task, customer):
        with pytest.raises(InvalidTransitionError):
            task_service.upload_documents(task.id, customer, [pdf()])

    def test_acknowledgement_required(self, task_service, task, admin, agent):
        task_service.assign_agent(task.id, admin, AGENT_ID)
        task_service.accept_task(task.id, agent)

        with pytest.raises(InputValidationError):
            task_service.submit_acknowledgement(task.id, agent, "  ")

    def test_visibility(self, task_service, task, customer, agent, government):
        assert [t.id for t in task_service.list_tasks(customer)] == [task.id]
        assert task_service.list_tasks(agent) == []
        assert task_service.list_tasks(government) == []
        with pytest.raises(PermissionDeniedError):
            task_service.get_task(task.id, agent)


class TestComplaintsAndFeedback:

    @pytest.fixture
    def completed(self, task_service, customer, admin, agent):
        task = task_service.create_task(customer, "income_new_application", "Ravi", "9876543210", [pdf()])
        task_service.assign_agent(task.id, admin, AGENT_ID)
        task_service.accept_task(task.id, agent)
        return task_service.complete_task(task.id, agent, acknowledgement_number="ACK-9")

    def test_complaint_blocks_payout_until_answered(self, task_service, completed, customer, admin):
        task = task_service.raise_complaint(completed.id, customer, "Certificate has a spelling mistake")
        assert task.status == TaskStatus.COMPLAINT_RAISED
        assert task.complaint.status == ComplaintStatus.OPEN

        task = task_service.respond_to_complaint(completed.id, admin, "Corrected copy attached",
                                                 [pdf("corrected.pdf")])
        assert task.status == TaskStatus.COMPLETED
        assert task.complaint.status == ComplaintStatus.RESPONDED
        assert task.complaint.response.documents[0].name == "corrected.pdf"

    def test_second_open_complaint_is_rejected(self, task_service, completed, customer):
        task_service.raise_complaint(completed.id, customer, "First")

        with pytest.raises(InputValidationError):
            task_service.raise_complaint(completed.id, customer, "Second")

    def test_feedback(self, task_service, completed, customer, notifications):
        task = task_service.submit_feedback(completed.id, customer, 5, "Quick service")

        assert task.feedback.rating == 5
        assert "New Feedback Received" in [n.title for n in notifications.list_for_user(AGENT_ID)]

    def test_feedback_requires_completion(self, task_service, customer):
        task = task_service.create_task(customer, "income_new_application", "Ravi", "9876543210", [pdf()])

        with pytest.raises(InputValidationError):
            task_service.submit_feedback(task.id, customer, 4)


class TestCancellation:

    def test_unpaid_task_is_cancelled(self, task_service, customer):
        task = task_service.create_task(customer, "pan_correction", "Ravi", "9876543210", [pdf()])

        task = task_service.cancel_task(task.id, customer, "Changed my mind")

        assert task.status == TaskStatus.CANCELLED

    def test_paid_task_is_refunded(self, task_service, customer, users):
        task = task_service.create_task(customer, "income_new_application", "Ravi", "9876543210", [pdf()])

        task = task_service.cancel_task(task.id, customer)

        assert task.status == TaskStatus.REFUNDED
        assert _balance(users, CUSTOMER_ID) == 1000
        assert _balance(users, ADMIN_ID) == 10000

    def test_started_task_cannot_be_cancelled(self, task_service, customer, admin, agent):
        task = task_service.create_task(customer, "income_new_application", "Ravi", "9876543210", [pdf()])
        task_service.assign_agent(task.id, admin, AGENT_ID)
        task_service.accept_task(task.id, agent)

        with pytest.raises(InvalidTransitionError):
            task_service.cancel_task(task.id, customer)


class TestWhatsAppUpdates:

    def test_status_messages_go_to_customer_mobile(self, store, storage, customer, admin, agent):
        whatsapp = MagicMock()
        whatsapp.send_message.return_value = NotificationResult(success=True, delivered=True, sid="SM1")
        service = TaskService(store, storage, NotificationService(store, whatsapp))
        task = service.create_task(customer, "income_new_application", "Ravi", "9876543210", [pdf()])
        service.assign_agent(task.id, admin, AGENT_ID)
        service.accept_task(task.id, agent)

        service.request_information(task.id, agent, "Need ration card")

        to, variables = whatsapp.send_message.call_args[0]
        assert to == "9876543210"
        assert variables["1"] == "Ravi"
        assert variables["3"] == "Awaiting Documents"

    def test_failed_delivery_does_not_block_completion(self, store, storage, customer, admin, agent):
        whatsapp = MagicMock()
        whatsapp.send_message.return_value = NotificationResult(success=False, error="boom")
        service = TaskService(store, storage, NotificationService(store, whatsapp))
        task = service.create_task(customer, "income_new_application", "Ravi", "9876543210", [pdf()])
        service.assign_agent(task.id, admin, AGENT_ID)
        service.accept_task(task.id, agent)

        task = service.complete_task(task.id, agent)

        assert task.status == TaskStatus.COMPLETED

    @patch('seva_portal.services.whatsapp_service.requests.post')
    def test_ten_digit_mobile_is_sent_with_country_code(self, mock_post, store, storage, customer, admin, agent):
        mock_response = MagicMock()
        mock_response.json.return_value = {"sid": "SM7"}
        mock_post.return_value = mock_response
        whatsapp = WhatsAppService(account_sid="AC1", auth_token="secret", from_number="+14155238886",
                                   content_sid="HX1", use_settings=False)
        service = TaskService(store, storage, NotificationService(store, whatsapp))
        task = service.create_task(customer, "income_new_application", "Ravi", "9876543210", [pdf()])
        service.assign_agent(task.id, admin, AGENT_ID)
        service.accept_task(task.id, agent)

        service.complete_task(task.id, agent)

        assert mock_post.call_args[1]["data"]["To"] == "whatsapp:+919876543210"


class TestGovernmentFeeGuards:

    def test_seeded_pan_lead_can_be_paid_out(self, store, task_service, admin, agent, users):
        task = task_service.create_task(agent, "pan_new_application", "Lakshmi", "9876543211", [pdf()])
        task_service.assign_agent(task.id, admin, AGENT_ID)
        task_service.accept_task(task.id, agent)
        task_service.complete_task(task.id, agent, acknowledgement_number="ACK-PAN")

        result = CommissionCalculationService(store).process_payout(task.id, admin)

        assert task.total_paid >= task.government_fee_applicable
        assert task_service.get_task(task.id, admin).status == TaskStatus.PAID_OUT
        assert result["amount"] >= 107

    def test_lead_below_government_fee_is_rejected_before_payment(self, store, task_service, agent, users):
        store.update(SERVICES, "pan_new_application", {"agent_rate": 100})

        with pytest.raises(InvalidAmountError, match="government fee"):
            task_service.create_task(agent, "pan_new_application", "Lakshmi", "9876543211", [pdf()])

        assert store.query(TASKS) == []
        assert _balance(users, AGENT_ID) == 500

    def test_price_below_government_fee_is_rejected(self, task_service, customer, admin):
        task = task_service.create_task(customer, "pan_correction", "Ravi", "9876543210", [pdf()])

        with pytest.raises(InvalidAmountError):
            task_service.set_price(task.id, 50, admin)

        assert task_service.get_task(task.id, customer).status == TaskStatus.PENDING_PRICE_APPROVAL

    def test_price_equal_to_fee_can_be_paid_out(self, store, task_service, customer, admin, agent):
        task = task_service.create_task(customer, "pan_correction", "Ravi", "9876543210", [pdf()])
        task_service.set_price(task.id, 107, admin)
        task_service.pay_for_task(task.id, customer)
        task_service.assign_agent(task.id, admin, AGENT_ID)
        task_service.accept_task(task.id, agent)
        task_service.complete_task(task.id, agent)

        result = CommissionCalculationService(store).process_payout(task.id, admin)

        assert result["amount"] == pytest.approx(107)

    def test_catalog_rejects_rate_below_fee(self, store, admin):
        request = ServiceUpsertRequest(name="PAN Reprint", customer_rate=200, agent_rate=100, government_fee=107)

        with pytest.raises(InvalidAmountError, match="Agent rate"):
            CatalogService(store).add_service(request, admin)


class TestUploadCleanup:

    def test_failed_payment_removes_stored_uploads(self, store, storage, task_service, customer):
        with patch.object(task_service.wallets, "transfer", side_effect=InsufficientFundsError("Your", 0, 150)):
            with pytest.raises(InsufficientFundsError):
                task_service.create_task(customer, "income_new_application", "Ravi", "9876543210", [pdf()])

        stored = [name for _, _, files in os.walk(storage.root) for name in files]
        assert stored == []
        assert store.query(TASKS) == []
