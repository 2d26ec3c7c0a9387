from enum import Enum

from pydantic import AliasChoices, BaseModel, Field, TypeAdapter
from typing import Annotated, Any, Dict, List, Literal, Optional, Union


# ================= Enumerations =================

class Role(str, Enum):
    CUSTOMER = "customer"
    AGENT = "agent"
    ADMIN = "admin"
    GOVERNMENT = "government"


class ActorRole(str, Enum):
    ADMIN = "Admin"
    AGENT = "Agent"
    CUSTOMER = "Customer"
    SYSTEM = "System"


class AgentApprovalStatus(str, Enum):
    PENDING = "Pending"
    APPROVED = "Approved"


class TaskStatus(str, Enum):
    PENDING_PRICE_APPROVAL = "Pending Price Approval"
    AWAITING_PAYMENT = "Awaiting Payment"
    UNASSIGNED = "Unassigned"
    PENDING_AGENT_ACCEPTANCE = "Pending Agent Acceptance"
    ASSIGNED = "Assigned"
    AWAITING_DOCUMENTS = "Awaiting Documents"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"
    COMPLAINT_RAISED = "Complaint Raised"
    PAID_OUT = "Paid Out"
    CANCELLED = "Cancelled"
    REFUNDED = "Refunded"


class TaskType(str, Enum):
    CUSTOMER_REQUEST = "Customer Request"
    AGENT_LEAD = "Agent Lead"


class ComplaintStatus(str, Enum):
    OPEN = "Open"
    RESPONDED = "Responded"


class CampStatus(str, Enum):
    UPCOMING = "Upcoming"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"
    PAID_OUT = "Paid Out"


class CampOrigin(str, Enum):
    CREATED = "created"
    SUGGESTED = "suggested"


class CampAgentStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class PaymentRequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


# ================= Profiles =================

class BaseProfile(BaseModel):
    id: str = Field(..., description="Profile id, equal to the auth uid")
    name: str = Field(..., description="Display name")
    email: str = Field("", description="Email address")
    mobile: str = Field("", description="Mobile number")
    pincode: str = Field("", description="Postal code")
    location: str = Field("", description="Town or village")
    wallet_balance: float = Field(0.0, description="Wallet balance (₹)")


class CustomerProfile(BaseProfile):
    role: Literal["customer"] = "customer"
    is_admin: Literal[False] = False


class AgentProfile(BaseProfile):
    role: Literal["agent"] = "agent"
    is_admin: Literal[False] = False
    status: AgentApprovalStatus = Field(AgentApprovalStatus.PENDING, description="Admin approval status")
    available: bool = Field(False, description="Accepting new tasks")
    offered_services: List[str] = Field(default_factory=list, description="Service ids the agent offers")
    last_assigned: Dict[str, str] = Field(default_factory=dict, description="Service id -> ISO time of last assignment")


class AdminProfile(BaseProfile):
    role: Literal["admin"] = "admin"
    is_admin: Literal[True] = True


class GovernmentProfile(BaseProfile):
    role: Literal["government"] = "government"
    is_admin: Literal[False] = False


UserProfile = Annotated[
    Union[CustomerProfile, AgentProfile, AdminProfile, GovernmentProfile],
    Field(discriminator="role")
]

_profile_adapter = TypeAdapter(UserProfile)


def parse_profile(data: Dict[str, Any]):
    return _profile_adapter.validate_python(data)


class Identity(BaseModel):
    uid: str = Field(..., description="Auth provider user id")
    email: Optional[str] = Field(None, description="Email reported by the auth provider")
    id_token: Optional[str] = Field(None, exclude=True, repr=False, description="Token the identity was verified from")


# ================= Service catalog =================

class DocumentOption(BaseModel):
    key: str
    label: str
    type: Literal["document", "text"] = "document"
    is_optional: bool = False
    allowed_file_types: Optional[List[Literal["pdf", "png", "jpg"]]] = None
    placeholder: Optional[str] = None


class DocumentGroup(BaseModel):
    key: str
    label: str
    is_optional: bool = False
    min_required: Optional[int] = None
    type: Literal["documents", "text"] = "documents"
    options: List[DocumentOption] = Field(default_factory=list)


class Service(BaseModel):
    id: Optional[str] = Field(None, description="Service id")
    name: str = Field(..., description="Service name")
    customer_rate: float = Field(0.0, ge=0, description="Price charged to customers")
    agent_rate: float = Field(0.0, ge=0, description="Price charged to agents for leads")
    government_fee: float = Field(0.0, ge=0, description="Statutory fee passed through to the agent")
    document_groups: List[DocumentGroup] = Field(default_factory=list, description="Required documents")
    parent_id: Optional[str] = Field(None, description="Parent category id")
    is_variable: bool = Field(False, description="Price is set per task by an admin")


# ================= Tasks =================

class HistoryEntry(BaseModel):
    timestamp: str
    actor_id: str
    actor_role: ActorRole
    action: str
    details: str = ""


class Document(BaseModel):
    name: str
    url: str


class TaskDocument(Document):
    group_key: Optional[str] = None
    option_key: Optional[str] = None


class ComplaintResponse(BaseModel):
    text: str
    date: str
    documents: List[Document] = Field(default_factory=list)


class Complaint(BaseModel):
    text: str
    status: ComplaintStatus = ComplaintStatus.OPEN
    response: Optional[ComplaintResponse] = None
    documents: List[Document] = Field(default_factory=list)
    date: str


class Feedback(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: str = ""
    date: str


class Task(BaseModel):
    id: str = Field(..., description="Task id")
    customer: str = Field(..., description="Customer name snapshot")
    customer_address: str = ""
    customer_mobile: str = ""
    customer_email: Optional[str] = None
    customer_pincode: str = ""
    service: str = Field(..., description="Service name snapshot")
    service_id: str
    date: str = Field(..., description="Creation time (ISO)")
    status: TaskStatus
    total_paid: float = 0.0
    government_fee_applicable: float = 0.0
    customer_rate: float = 0.0
    agent_rate: float = 0.0
    rate: Optional[float] = Field(None, description="Final price for variable-priced services")
    history: List[HistoryEntry] = Field(default_factory=list)
    acknowledgement_number: Optional[str] = None
    complaint: Optional[Complaint] = None
    feedback: Optional[Feedback] = None
    type: TaskType = TaskType.CUSTOMER_REQUEST
    assigned_agent_id: Optional[str] = None
    assigned_agent_name: Optional[str] = None
    creator_id: str
    documents: List[TaskDocument] = Field(default_factory=list)
    final_certificate: Optional[Document] = None
    form_data: Dict[str, str] = Field(default_factory=dict)


# ================= Camps =================

class CampAgent(BaseModel):
    agent_id: str
    status: CampAgentStatus = CampAgentStatus.PENDING
    approved_by: Optional[str] = None


class CampPayout(BaseModel):
    agent_id: str
    agent_name: str
    amount: float
    paid_at: str
    paid_by: str


class Camp(BaseModel):
    id: str
    name: str
    location: str
    date: str
    status: CampStatus = CampStatus.UPCOMING
    type: CampOrigin = CampOrigin.CREATED
    services: List[str] = Field(default_factory=list)
    other_services: Optional[str] = None
    assigned_agents: List[CampAgent] = Field(default_factory=list)
    payouts: List[CampPayout] = Field(default_factory=list)
    admin_earnings: Optional[float] = None


class SuggestedBy(BaseModel):
    id: str
    name: str


class CampSuggestion(BaseModel):
    id: str
    location: str
    date: str
    suggested_by: SuggestedBy
    services: List[str] = Field(default_factory=list)
    other_services: Optional[str] = None


# ================= Wallet / notifications / chat =================

class PaymentRequest(BaseModel):
    id: str
    user_id: str
    user_name: str
    user_role: Literal["agent", "customer"]
    amount: float
    status: PaymentRequestStatus = PaymentRequestStatus.PENDING
    date: str
    approved_by: Optional[str] = None
    approved_at: Optional[str] = None


class Notification(BaseModel):
    id: str
    user_id: str
    title: str
    description: str
    link: str = "/dashboard"
    read: bool = False
    date: str


class GroupChatMessage(BaseModel):
    id: str
    sender_id: str
    sender_name: str
    sender_role: Literal["Admin", "Agent"]
    text: Optional[str] = None
    file_url: Optional[str] = None
    file_name: Optional[str] = None
    timestamp: str


# ================= Computed results =================

class EarningsBreakdown(BaseModel):
    government_fee: float = Field(..., description="Government fee passed to the agent")
    agent_commission: float = Field(..., description="Agent share of the profit")
    admin_commission: float = Field(..., description="Admin share of the profit")
    commission_rate: float = Field(..., description="Agent commission rate used")


class FileValidationResult(BaseModel):
    is_valid: bool
    message: Optional[str] = None


class NotificationResult(BaseModel):
    success: bool = Field(..., description="False only when the provider rejected the message")
    delivered: bool = Field(False, description="Message accepted by the provider")
    skipped: bool = Field(False, description="Feature disabled, nothing sent")
    sid: Optional[str] = None
    error: Optional[str] = None


# ================= AI extraction =================

class ExtractServiceRequestInfoInput(BaseModel):
    request_text: str = Field(..., min_length=1, description="The text of the service request or customer complaint")


class ExtractServiceRequestInfoOutput(BaseModel):
    required_documents: List[str] = Field(
        ...,
        validation_alias=AliasChoices("required_documents", "requiredDocuments"),
        description="Documents required for the service request"
    )
    potential_agent_skills: List[str] = Field(
        ...,
        validation_alias=AliasChoices("potential_agent_skills", "potentialVleSkills", "potentialAgentSkills"),
        description="Skills an agent needs to fulfil the request"
    )


# ================= Requests =================

class RegisterRequest(BaseModel):
    role: Literal["customer", "agent", "government"] = Field(..., description="Profile type to create")
    name: str = Field(..., min_length=1)
    email: str = ""
    mobile: str = ""
    pincode: str = ""
    location: str = ""
    offered_services: List[str] = Field(default_factory=list, description="Agents only")


class SetPriceRequest(BaseModel):
    price: float = Field(..., gt=0, description="Final price (₹)")


class AssignAgentRequest(BaseModel):
    agent_id: Optional[str] = Field(None, description="Agent to invite; empty picks the least recently assigned agent")


class RequestInfoRequest(BaseModel):
    message: str = Field(..., min_length=1, description="What the customer must provide")


class AcknowledgementRequest(BaseModel):
    acknowledgement_number: str = Field(..., min_length=1)


class FeedbackRequest(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: str = ""


class CancelTaskRequest(BaseModel):
    reason: str = ""


class CampSaveRequest(BaseModel):
    name: str = Field(..., min_length=1)
    location: str = Field(..., min_length=1)
    date: str = Field(..., description="Camp date (ISO)")
    services: List[str] = Field(default_factory=list)
    other_services: Optional[str] = None
    agent_ids: List[str] = Field(default_factory=list, description="Agents invited to the camp")
    suggestion_id: Optional[str] = Field(None, description="Suggestion this camp is created from")


class CampSuggestionRequest(BaseModel):
    location: str = Field(..., min_length=1)
    date: str
    services: List[str] = Field(default_factory=list)
    other_services: Optional[str] = None


class SuggestionApproveRequest(BaseModel):
    name: Optional[str] = Field(None, description="Camp name; defaults to one derived from the location")
    agent_ids: List[str] = Field(default_factory=list, description="Agents invited to the camp")


class CampRespondRequest(BaseModel):
    status: Literal["accepted", "rejected"]


class CampStatusRequest(BaseModel):
    status: CampStatus


class CampPayoutItem(BaseModel):
    agent_id: str
    amount: float = Field(..., ge=0)


class CampPayoutRequest(BaseModel):
    payouts: List[CampPayoutItem] = Field(default_factory=list)
    admin_earnings: float = Field(0.0, ge=0)


class BalanceRequestCreate(BaseModel):
    amount: float = Field(..., gt=0, description="Amount to add (₹)")


class AvailabilityRequest(BaseModel):
    available: bool


class ServiceUpsertRequest(BaseModel):
    name: str = Field(..., min_length=1)
    customer_rate: float = Field(0.0, ge=0)
    agent_rate: float = Field(0.0, ge=0)
    government_fee: float = Field(0.0, ge=0)
    document_groups: List[DocumentGroup] = Field(default_factory=list)
    parent_id: Optional[str] = None
    is_variable: bool = False


class SeedRequest(BaseModel):
    force: bool = Field(False, description="Overwrite services that already exist")


# ================= Responses =================

class ApiResponse(BaseModel):
    success: bool = Field(..., description="Whether the call succeeded")
    message: str = Field(..., description="Human readable result")
    data: Optional[Any] = Field(None, description="Payload")
    request_id: str = Field(..., description="Request id for tracing")


class PagedResponse(ApiResponse):
    total: int = Field(0, description="Total items before pagination")
    page: int = Field(1, description="Page number (1-based)")
    page_size: int = Field(20, description="Items per page")
