"""
Role-gated screens of the dashboard.

Each view is a plain function over data the route already loaded; the
`ALLOWED_ROLES` attribute is enforced by `session.require_roles`.
"""
from collections import Counter
from typing import Any, Dict, List, Optional

from .models import (
    Camp, CampAgentStatus, CampStatus, CampSuggestion, ComplaintStatus, GroupChatMessage, PaymentRequest, Task,
    TaskStatus
)
from .utils import short_id

ALL_ROLES = ("customer", "agent", "admin", "government")


def allowed_roles(*roles):
    def decorator(func):
        func.ALLOWED_ROLES = frozenset(roles)
        return func
    return decorator


def _count(tasks: List[Task], *statuses: TaskStatus) -> int:
    return sum(1 for t in tasks if t.status in statuses)


@allowed_roles(*ALL_ROLES)
def dashboard_view(profile, tasks: List[Task], unread_notifications: int = 0,
                   pending_requests: Optional[List[PaymentRequest]] = None,
                   camps: Optional[List[Camp]] = None) -> Dict[str, Any]:
    by_status = Counter(t.status.value for t in tasks)
    data = {
        "profile": profile.model_dump(mode="json"),
        "role": profile.role,
        "wallet_balance": profile.wallet_balance,
        "unread_notifications": unread_notifications,
        "task_counts": dict(by_status),
    }

    if profile.role == "admin":
        data["summary"] = {
            "awaiting_price": _count(tasks, TaskStatus.PENDING_PRICE_APPROVAL),
            "unassigned": _count(tasks, TaskStatus.UNASSIGNED),
            "ready_for_payout": _count(tasks, TaskStatus.COMPLETED),
            "open_complaints": sum(
                1 for t in tasks if t.complaint and t.complaint.status == ComplaintStatus.OPEN
            ),
            "pending_balance_requests": len(pending_requests or []),
        }
    elif profile.role == "agent":
        assigned = [t for t in tasks if t.assigned_agent_id == profile.id]
        data["summary"] = {
            "invitations": _count(assigned, TaskStatus.PENDING_AGENT_ACCEPTANCE),
            "active": _count(assigned, TaskStatus.ASSIGNED, TaskStatus.AWAITING_DOCUMENTS, TaskStatus.IN_PROGRESS),
            "completed": _count(assigned, TaskStatus.COMPLETED, TaskStatus.PAID_OUT),
            "leads_created": sum(1 for t in tasks if t.creator_id == profile.id),
        }
    elif profile.role == "customer":
        data["summary"] = {
            "awaiting_payment": _count(tasks, TaskStatus.AWAITING_PAYMENT),
            "in_progress": len(tasks) - _count(
                tasks, TaskStatus.COMPLETED, TaskStatus.PAID_OUT, TaskStatus.CANCELLED, TaskStatus.REFUNDED
            ),
            "completed": _count(tasks, TaskStatus.COMPLETED, TaskStatus.PAID_OUT),
        }
    else:
        data["summary"] = {
            "upcoming_camps": sum(1 for c in camps or [] if c.status == CampStatus.UPCOMING),
        }
    return data


def _public_camp(camp: Camp) -> Dict[str, Any]:
    return camp.model_dump(mode="json", exclude={"assigned_agents", "payouts", "admin_earnings"})


@allowed_roles(*ALL_ROLES)
def camps_view(profile, camps: List[Camp],
               suggestions: Optional[List[CampSuggestion]] = None) -> Dict[str, Any]:
    if profile.role == "admin":
        return {
            "camps": [c.model_dump(mode="json") for c in camps],
            "suggestions": [s.model_dump(mode="json") for s in suggestions or []],
        }

    if profile.role == "agent":
        rows = []
        for camp in camps:
            entry = next((a for a in camp.assigned_agents if a.agent_id == profile.id), None)
            if entry is None:
                continue
            row = _public_camp(camp)
            row["my_status"] = entry.status.value
            row["my_payout"] = next((p.amount for p in camp.payouts if p.agent_id == profile.id), None)
            rows.append(row)
        return {"camps": rows}

    if profile.role == "government":
        rows = []
        for camp in camps:
            row = _public_camp(camp)
            row["assigned_agents"] = [
                a.model_dump(mode="json") for a in camp.assigned_agents if a.status == CampAgentStatus.ACCEPTED
            ]
            rows.append(row)
        return {"camps": rows}

    return {"camps": [_public_camp(c) for c in camps if c.status == CampStatus.UPCOMING]}


@allowed_roles("admin")
def complaints_view(tasks: List[Task]) -> List[Dict[str, Any]]:
    """Tasks with a complaint, open ones first, newest first within each group."""
    with_complaint = [t for t in tasks if t.complaint is not None]
    with_complaint.sort(key=lambda t: t.complaint.date, reverse=True)
    with_complaint.sort(key=lambda t: t.complaint.status != ComplaintStatus.OPEN)
    return [
        {
            "task_id": t.id,
            "short_id": short_id(t.id),
            "service": t.service,
            "customer": t.customer,
            "status": t.status.value,
            "assigned_agent_name": t.assigned_agent_name,
            "complaint": t.complaint.model_dump(mode="json"),
        }
        for t in with_complaint
    ]


@allowed_roles("customer")
def documents_view(tasks: List[Task]) -> List[Dict[str, Any]]:
    """Every document the customer uploaded, once per (name, url)."""
    seen = {}
    for task in tasks:
        for doc in task.documents:
            seen.setdefault((doc.name, doc.url), {"name": doc.name, "url": doc.url, "task_id": task.id})
    return list(seen.values())


def display_name(message: GroupChatMessage, viewer) -> str:
    if viewer.role == "admin" or message.sender_id == viewer.id:
        return f"{message.sender_name} ({message.sender_role})"
    if message.sender_role == "Admin":
        return f"{message.sender_name} (Admin)"
    return f"Agent (ID: {short_id(message.sender_id)})"


@allowed_roles("admin", "agent")
def group_chat_view(viewer, messages: List[GroupChatMessage]) -> List[Dict[str, Any]]:
    rows = []
    for message in messages:
        row = message.model_dump(mode="json")
        row["display_name"] = display_name(message, viewer)
        if viewer.role != "admin" and message.sender_id != viewer.id and message.sender_role != "Admin":
            row["sender_name"] = None
        row["is_own"] = message.sender_id == viewer.id
        rows.append(row)
    return rows


@allowed_roles("admin", "agent")
def reports_view(profile, report: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "role": profile.role,
        "earning_label": "Agent earnings" if profile.role == "agent" else "Admin commission",
        **report,
    }
