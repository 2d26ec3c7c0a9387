import pytest

from seva_portal.errors import InvalidTransitionError
from seva_portal.models import ActorRole, CampStatus, Task, TaskStatus
from seva_portal.task_lifecycle import (
    TASK_TRANSITIONS, TERMINAL_STATUSES, append_history, can_transition, transition, transition_camp
)


def _task(status):
    return Task(
        id="task-1", customer="Ravi", service="New Application", service_id="income_new_application",
        date="2024-01-01T00:00:00.000Z", status=status, total_paid=150, creator_id="cust-1"
    )


class TestTaskTransitions:

    def test_every_status_has_a_row(self):
        assert set(TASK_TRANSITIONS) == set(TaskStatus)

    def test_terminal_statuses(self):
        assert TERMINAL_STATUSES == {TaskStatus.PAID_OUT, TaskStatus.CANCELLED, TaskStatus.REFUNDED}

    @pytest.mark.parametrize("current,target", [
        (TaskStatus.PENDING_PRICE_APPROVAL, TaskStatus.AWAITING_PAYMENT),
        (TaskStatus.AWAITING_PAYMENT, TaskStatus.UNASSIGNED),
        (TaskStatus.UNASSIGNED, TaskStatus.PENDING_AGENT_ACCEPTANCE),
        (TaskStatus.PENDING_AGENT_ACCEPTANCE, TaskStatus.ASSIGNED),
        (TaskStatus.PENDING_AGENT_ACCEPTANCE, TaskStatus.UNASSIGNED),
        (TaskStatus.ASSIGNED, TaskStatus.AWAITING_DOCUMENTS),
        (TaskStatus.AWAITING_DOCUMENTS, TaskStatus.ASSIGNED),
        (TaskStatus.IN_PROGRESS, TaskStatus.COMPLETED),
        (TaskStatus.COMPLETED, TaskStatus.COMPLAINT_RAISED),
        (TaskStatus.COMPLAINT_RAISED, TaskStatus.COMPLETED),
        (TaskStatus.COMPLETED, TaskStatus.PAID_OUT),
    ])
    def test_allowed(self, current, target):
        assert can_transition(current, target)

    @pytest.mark.parametrize("current,target", [
        (TaskStatus.UNASSIGNED, TaskStatus.COMPLETED),
        (TaskStatus.AWAITING_PAYMENT, TaskStatus.ASSIGNED),
        (TaskStatus.COMPLAINT_RAISED, TaskStatus.PAID_OUT),
        (TaskStatus.PAID_OUT, TaskStatus.COMPLETED),
        (TaskStatus.CANCELLED, TaskStatus.UNASSIGNED),
    ])
    def test_rejected(self, current, target):
        assert not can_transition(current, target)

    def test_transition_updates_status_and_history(self):
        task = _task(TaskStatus.UNASSIGNED)

        transition(task, TaskStatus.PENDING_AGENT_ACCEPTANCE, "admin-1", ActorRole.ADMIN, "Task Assigned to Agent")

        assert task.status == TaskStatus.PENDING_AGENT_ACCEPTANCE
        assert len(task.history) == 1
        assert task.history[0].actor_role == ActorRole.ADMIN
        assert task.history[0].action == "Task Assigned to Agent"

    def test_invalid_transition_leaves_task_untouched(self):
        task = _task(TaskStatus.UNASSIGNED)

        with pytest.raises(InvalidTransitionError) as exc_info:
            transition(task, TaskStatus.COMPLETED, "agent-1", ActorRole.AGENT, "Task Completed")

        assert task.status == TaskStatus.UNASSIGNED
        assert task.history == []
        assert exc_info.value.current == "Unassigned"
        assert exc_info.value.target == "Completed"

    def test_history_timestamps_never_go_backwards(self):
        task = _task(TaskStatus.UNASSIGNED)
        append_history(task, "cust-1", ActorRole.CUSTOMER, "Task Created", timestamp="2024-05-02T10:00:00.000Z")

        entry = append_history(task, "admin-1", ActorRole.ADMIN, "Note", timestamp="2024-05-01T10:00:00.000Z")

        assert entry.timestamp == "2024-05-02T10:00:00.000Z"


class TestCampTransitions:

    def test_upcoming_can_complete_or_cancel(self):
        assert transition_camp(CampStatus.UPCOMING, CampStatus.COMPLETED) == CampStatus.COMPLETED
        assert transition_camp(CampStatus.UPCOMING, CampStatus.CANCELLED) == CampStatus.CANCELLED

    def test_only_completed_camps_are_paid_out(self):
        assert transition_camp(CampStatus.COMPLETED, CampStatus.PAID_OUT) == CampStatus.PAID_OUT
        with pytest.raises(InvalidTransitionError):
            transition_camp(CampStatus.UPCOMING, CampStatus.PAID_OUT)

    def test_cancelled_is_terminal(self):
        with pytest.raises(InvalidTransitionError):
            transition_camp(CampStatus.CANCELLED, CampStatus.UPCOMING)
