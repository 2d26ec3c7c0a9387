"""
Status transition tables for tasks and camps.

Every status change goes through `transition()` / `transition_camp()`; a
status is never assigned directly.
"""
import logging
from typing import Dict, FrozenSet, Optional

from .errors import InvalidTransitionError
from .models import ActorRole, CampStatus, HistoryEntry, Task, TaskStatus
from .utils import now_iso

logger = logging.getLogger(__name__)

S = TaskStatus

TASK_TRANSITIONS: Dict[TaskStatus, FrozenSet[TaskStatus]] = {
    S.PENDING_PRICE_APPROVAL: frozenset({S.AWAITING_PAYMENT, S.CANCELLED}),
    S.AWAITING_PAYMENT: frozenset({S.UNASSIGNED, S.CANCELLED}),
    S.UNASSIGNED: frozenset({S.PENDING_AGENT_ACCEPTANCE, S.REFUNDED}),
    # rejection hands the task back to the assignment queue
    S.PENDING_AGENT_ACCEPTANCE: frozenset({S.ASSIGNED, S.UNASSIGNED, S.REFUNDED}),
    S.ASSIGNED: frozenset({S.AWAITING_DOCUMENTS, S.IN_PROGRESS, S.COMPLETED}),
    # new uploads go back to the agent for review
    S.AWAITING_DOCUMENTS: frozenset({S.ASSIGNED}),
    S.IN_PROGRESS: frozenset({S.AWAITING_DOCUMENTS, S.COMPLETED}),
    S.COMPLETED: frozenset({S.COMPLAINT_RAISED, S.PAID_OUT}),
    # an answered complaint releases the payout again
    S.COMPLAINT_RAISED: frozenset({S.COMPLETED}),
    S.PAID_OUT: frozenset(),
    S.CANCELLED: frozenset(),
    S.REFUNDED: frozenset(),
}

TERMINAL_STATUSES = frozenset(status for status, targets in TASK_TRANSITIONS.items() if not targets)

CAMP_TRANSITIONS: Dict[CampStatus, FrozenSet[CampStatus]] = {
    CampStatus.UPCOMING: frozenset({CampStatus.COMPLETED, CampStatus.CANCELLED}),
    CampStatus.COMPLETED: frozenset({CampStatus.PAID_OUT}),
    CampStatus.CANCELLED: frozenset(),
    CampStatus.PAID_OUT: frozenset(),
}


def can_transition(current: TaskStatus, target: TaskStatus) -> bool:
    return target in TASK_TRANSITIONS.get(current, frozenset())


def append_history(task: Task, actor_id: str, actor_role: ActorRole, action: str, details: str = "",
                   timestamp: Optional[str] = None) -> HistoryEntry:
    """Append to the task log; timestamps never go backwards."""
    timestamp = timestamp or now_iso()
    if task.history and timestamp < task.history[-1].timestamp:
        timestamp = task.history[-1].timestamp
    entry = HistoryEntry(
        timestamp=timestamp,
        actor_id=actor_id,
        actor_role=actor_role,
        action=action,
        details=details
    )
    task.history.append(entry)
    return entry


def transition(task: Task, target: TaskStatus, actor_id: str, actor_role: ActorRole, action: str,
               details: str = "") -> Task:
    """Validate and apply a status change, recording it in the history."""
    current = task.status
    if not can_transition(current, target):
        raise InvalidTransitionError("Task", current.value, target.value)
    task.status = target
    append_history(task, actor_id, actor_role, action, details)
    logger.info(f"[Task Lifecycle] {task.id}: {current.value} -> {target.value} ({action})")
    return task


def transition_camp(current: CampStatus, target: CampStatus) -> CampStatus:
    if target not in CAMP_TRANSITIONS.get(current, frozenset()):
        raise InvalidTransitionError("Camp", current.value, target.value)
    return target
