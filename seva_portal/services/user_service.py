import logging
from typing import List, Optional, Tuple

from ..document_store import AGENTS, CUSTOMERS, GOVERNMENT, DocumentStore
from ..errors import InputValidationError, NotFoundError
from ..models import (
    AgentApprovalStatus, AgentProfile, CustomerProfile, GovernmentProfile, Identity, RegisterRequest,
    parse_profile
)
from ..utils import is_valid_email, is_valid_mobile

logger = logging.getLogger(__name__)

# lookup order used when resolving a signed-in identity
PROFILE_COLLECTIONS = (CUSTOMERS, AGENTS, GOVERNMENT)

_ROLE_COLLECTIONS = {
    "customer": CUSTOMERS,
    "agent": AGENTS,
    "admin": AGENTS,
    "government": GOVERNMENT,
}


def collection_for_role(role: str) -> str:
    try:
        return _ROLE_COLLECTIONS[role]
    except KeyError:
        raise InputValidationError(f"Unknown role: {role}")


def profile_from_document(collection: str, doc: dict):
    """Tag a stored profile document with its role and parse it."""
    data = dict(doc)
    if collection == CUSTOMERS:
        data["role"] = "customer"
    elif collection == AGENTS:
        data["role"] = "admin" if data.get("is_admin") else "agent"
    else:
        data["role"] = "government"
    return parse_profile(data)


class UserService:
    def __init__(self, store: DocumentStore):
        self.store = store

    def find_profile(self, uid: str):
        """Customers first, then agents (admins included), then government."""
        for collection in PROFILE_COLLECTIONS:
            doc = self.store.get(collection, uid)
            if doc is not None:
                return profile_from_document(collection, doc)
        return None

    def locate(self, uid: str) -> Tuple[str, dict]:
        for collection in PROFILE_COLLECTIONS:
            doc = self.store.get(collection, uid)
            if doc is not None:
                return collection, doc
        raise NotFoundError("profiles", uid)

    def register_profile(self, identity: Identity, request: RegisterRequest):
        if self.find_profile(identity.uid) is not None:
            raise InputValidationError("A profile already exists for this account.")
        if request.mobile and not is_valid_mobile(request.mobile):
            raise InputValidationError("Please enter a valid 10-digit mobile number.")
        email = request.email or identity.email or ""
        if email and not is_valid_email(email):
            raise InputValidationError("Please enter a valid email format.")

        common = dict(
            id=identity.uid,
            name=request.name,
            email=email,
            mobile=request.mobile,
            pincode=request.pincode,
            location=request.location,
            wallet_balance=0.0,
        )
        if request.role == "customer":
            profile = CustomerProfile(**common)
        elif request.role == "agent":
            # new agents wait for admin approval before they receive work
            profile = AgentProfile(**common, offered_services=request.offered_services)
        else:
            profile = GovernmentProfile(**common)

        data = profile.model_dump(mode="json", exclude={"role"})
        self.store.set(collection_for_role(request.role), identity.uid, data)
        logger.info(f"Registered {request.role} profile {identity.uid}")
        return profile

    def get_agent(self, agent_id: str) -> AgentProfile:
        doc = self.store.get(AGENTS, agent_id)
        if doc is None or doc.get("is_admin"):
            raise NotFoundError(AGENTS, agent_id)
        return profile_from_document(AGENTS, doc)

    def approve_agent(self, agent_id: str) -> AgentProfile:
        self.get_agent(agent_id)
        doc = self.store.update(AGENTS, agent_id, {"status": AgentApprovalStatus.APPROVED.value})
        logger.info(f"Agent {agent_id} approved")
        return profile_from_document(AGENTS, doc)

    def set_agent_availability(self, agent_id: str, available: bool) -> AgentProfile:
        self.get_agent(agent_id)
        doc = self.store.update(AGENTS, agent_id, {"available": available})
        return profile_from_document(AGENTS, doc)

    def list_agents(self, approved_only: bool = False, available_only: bool = False,
                    service_id: Optional[str] = None) -> List[AgentProfile]:
        agents = []
        for doc in self.store.query(AGENTS):
            if doc.get("is_admin"):
                continue
            agent = profile_from_document(AGENTS, doc)
            if approved_only and agent.status != AgentApprovalStatus.APPROVED:
                continue
            if available_only and not agent.available:
                continue
            if service_id and service_id not in agent.offered_services:
                continue
            agents.append(agent)
        return agents

    def find_admins(self):
        return [profile_from_document(AGENTS, doc) for doc in self.store.query(AGENTS, is_admin=True)]

    def primary_admin(self):
        """The admin account whose wallet collects task payments."""
        admins = self.find_admins()
        if not admins:
            raise NotFoundError(AGENTS, "admin")
        return admins[0]
