import json
import os
import time as _time
import uuid
import logging
from contextlib import asynccontextmanager
from typing import Any, List, Optional

from fastapi import FastAPI, Depends, HTTPException, Request, Query, UploadFile, File, Form
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from .config import settings
from .database import Base, engine
from .document_store import DocumentStore
from .errors import (
    FeatureDisabledError, InsufficientFundsError, InvalidTransitionError, ProviderError, PermissionDeniedError,
    RedirectRequired
)
from .models import (
    AcknowledgementRequest, ApiResponse, AssignAgentRequest, AvailabilityRequest, BalanceRequestCreate,
    CampPayoutRequest, CampRespondRequest, CampSaveRequest, CampStatusRequest, CampSuggestionRequest,
    CancelTaskRequest, ExtractServiceRequestInfoInput, FeedbackRequest, Identity, PagedResponse,
    PaymentRequestStatus, RegisterRequest, RequestInfoRequest, SeedRequest, ServiceUpsertRequest, SetPriceRequest,
    SuggestionApproveRequest, TaskStatus
)
from .services import (
    CampService, CatalogService, ChatService, CommissionCalculationService, NotificationService,
    ServiceRequestExtractor, TaskService, UserService, WalletService, WhatsAppService
)
from .session import SessionContext, get_identity, get_session, get_store, require_any_role, require_roles
from .storage import LocalFileStorage
from .utils import UploadCandidate, paginate
from .views import (
    camps_view, complaints_view, dashboard_view, documents_view, group_chat_view, reports_view
)

# Configure logging
logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    settings.check_commission_rates()
    if not settings.whatsapp_templates_enabled:
        logger.warning("WhatsApp templated notifications are disabled (Twilio settings incomplete).")
    if not settings.ai_enabled:
        logger.warning("AI extraction is disabled (AI_API_KEY is missing).")
    yield


app = FastAPI(
    title=settings.API_TITLE,
    version=settings.API_VERSION,
    description=settings.DESCRIPTION,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Uploaded files are served back from /uploads
os.makedirs(settings.UPLOAD_DIR, exist_ok=True)
app.mount("/uploads", StaticFiles(directory=settings.UPLOAD_DIR), name="uploads")


@app.exception_handler(RedirectRequired)
async def redirect_required_handler(request: Request, exc: RedirectRequired):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": exc.message, "redirect": exc.redirect, "reason": exc.reason},
        headers={"Location": exc.redirect}
    )


# Raised by the auth provider while the session dependency resolves, outside any route's try block
@app.exception_handler(FeatureDisabledError)
async def feature_disabled_handler(request: Request, exc: FeatureDisabledError):
    logger.error(f"[{request.url.path}] feature disabled: {str(exc)}")
    return JSONResponse(status_code=503, content={"detail": str(exc)})


@app.exception_handler(ProviderError)
async def provider_error_handler(request: Request, exc: ProviderError):
    logger.error(f"[{request.url.path}] provider error: {str(exc)}")
    return JSONResponse(status_code=502, content={"detail": str(exc)})


# ================= Dependencies =================

def get_storage() -> LocalFileStorage:
    return LocalFileStorage()


def get_whatsapp_service() -> WhatsAppService:
    return WhatsAppService()


def get_notification_service(store: DocumentStore = Depends(get_store),
                             whatsapp: WhatsAppService = Depends(get_whatsapp_service)) -> NotificationService:
    return NotificationService(store, whatsapp)


def get_task_service(store: DocumentStore = Depends(get_store),
                     storage: LocalFileStorage = Depends(get_storage),
                     notifications: NotificationService = Depends(get_notification_service)) -> TaskService:
    return TaskService(store, storage, notifications)


def get_commission_service(store: DocumentStore = Depends(get_store),
                           notifications: NotificationService = Depends(get_notification_service)):
    return CommissionCalculationService(store, notifications)


def get_camp_service(store: DocumentStore = Depends(get_store),
                     notifications: NotificationService = Depends(get_notification_service)) -> CampService:
    return CampService(store, notifications)


def get_wallet_service(store: DocumentStore = Depends(get_store),
                       notifications: NotificationService = Depends(get_notification_service)) -> WalletService:
    return WalletService(store, notifications)


def get_user_service(store: DocumentStore = Depends(get_store)) -> UserService:
    return UserService(store)


def get_catalog_service(store: DocumentStore = Depends(get_store)) -> CatalogService:
    return CatalogService(store)


def get_chat_service(store: DocumentStore = Depends(get_store),
                     storage: LocalFileStorage = Depends(get_storage),
                     notifications: NotificationService = Depends(get_notification_service)) -> ChatService:
    return ChatService(store, storage, notifications)


def get_extractor() -> ServiceRequestExtractor:
    return ServiceRequestExtractor()


admin_only = require_any_role("admin")


# ================= Helpers =================

def _start(tag: str):
    request_id = str(uuid.uuid4())
    logger.info(f"[{tag}] start | request ID: {request_id}")
    return request_id, _time.time()


def _done(tag: str, request_id: str, start_time: float, summary: str = ""):
    elapsed = round(_time.time() - start_time, 2)
    logger.info(f"[{tag}] done | request ID: {request_id} | elapsed: {elapsed}s{' | ' + summary if summary else ''}")


def _fail(tag: str, request_id: str, start_time: float, e: Exception):
    """Log the failure and convert it into an HTTPException."""
    elapsed = round(_time.time() - start_time, 2)
    if isinstance(e, HTTPException):
        raise e
    if isinstance(e, (InvalidTransitionError, InsufficientFundsError)):
        status_code = 409
    elif isinstance(e, ValueError):
        status_code = 400
    elif isinstance(e, LookupError):
        status_code = 404
    elif isinstance(e, PermissionError):
        status_code = 403
    elif isinstance(e, FeatureDisabledError):
        status_code = 503
    elif isinstance(e, ProviderError):
        status_code = 502
    else:
        status_code = 500

    if status_code >= 500:
        logger.error(f"[{tag}] failed | request ID: {request_id} | elapsed: {elapsed}s | error: {str(e)}",
                     exc_info=status_code == 500)
    else:
        logger.warning(f"[{tag}] rejected | request ID: {request_id} | elapsed: {elapsed}s | {status_code}: {str(e)}")
    detail = str(e) if status_code != 500 else f"Unexpected error: {str(e)}"
    raise HTTPException(status_code=status_code, detail=detail)


def _ok(message: str, data: Any, request_id: str) -> ApiResponse:
    return ApiResponse(success=True, message=message, data=data, request_id=request_id)


def _paged(message: str, rows: List[Any], page: int, page_size: int, request_id: str) -> PagedResponse:
    items, total = paginate(rows, page, page_size)
    return PagedResponse(
        success=True, message=message, data=items, request_id=request_id,
        total=total, page=page, page_size=page_size
    )


async def _read_uploads(files: Optional[List[UploadFile]]) -> List[UploadCandidate]:
    candidates = []
    for f in files or []:
        if not f.filename:
            continue
        content = await f.read()
        candidates.append(UploadCandidate(
            filename=f.filename,
            content_type=f.content_type or "",
            size=len(content),
            content=content
        ))
    return candidates


def _parse_form_data(raw: Optional[str]) -> dict:
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        raise HTTPException(status_code=400, detail="form_data must be a JSON object")
    if not isinstance(data, dict):
        raise HTTPException(status_code=400, detail="form_data must be a JSON object")
    return {str(k): str(v) for k, v in data.items()}


# ================= Config / registration =================

@app.get("/config/public", response_model=ApiResponse, tags=["Config"])
async def public_config():
    return _ok("ok", settings.public_config(), str(uuid.uuid4()))


@app.post("/register", response_model=ApiResponse, tags=["Users"])
async def register(
        request: RegisterRequest,
        identity: Identity = Depends(get_identity),
        users: UserService = Depends(get_user_service)
):
    request_id, start_time = _start("Register")
    try:
        profile = users.register_profile(identity, request)
        _done("Register", request_id, start_time, f"{request.role} {identity.uid}")
        return _ok("Profile created", profile.model_dump(mode="json"), request_id)
    except Exception as e:
        _fail("Register", request_id, start_time, e)


@app.get("/profile", response_model=ApiResponse, tags=["Users"])
async def get_profile(session: SessionContext = Depends(get_session)):
    return _ok("ok", session.profile.model_dump(mode="json"), str(uuid.uuid4()))


# ================= Dashboard views =================

@app.get("/dashboard", response_model=ApiResponse, tags=["Dashboard"])
async def dashboard(
        session: SessionContext = Depends(require_roles(dashboard_view)),
        tasks: TaskService = Depends(get_task_service),
        notifications: NotificationService = Depends(get_notification_service),
        wallets: WalletService = Depends(get_wallet_service),
        camps: CampService = Depends(get_camp_service)
):
    request_id, start_time = _start("Dashboard")
    try:
        profile = session.profile
        pending = wallets.list_requests(PaymentRequestStatus.PENDING) if profile.role == "admin" else []
        data = dashboard_view(
            profile,
            tasks.list_tasks(profile),
            unread_notifications=len(notifications.list_for_user(profile.id, unread_only=True)),
            pending_requests=pending,
            camps=camps.list_camps() if profile.role == "government" else None
        )
        _done("Dashboard", request_id, start_time, profile.role)
        return _ok("ok", data, request_id)
    except Exception as e:
        _fail("Dashboard", request_id, start_time, e)


@app.get("/dashboard/camps", response_model=ApiResponse, tags=["Dashboard"])
async def dashboard_camps(
        session: SessionContext = Depends(require_roles(camps_view)),
        camps: CampService = Depends(get_camp_service)
):
    request_id, start_time = _start("Camps View")
    try:
        profile = session.profile
        suggestions = camps.list_suggestions() if profile.role == "admin" else None
        data = camps_view(profile, camps.list_camps(), suggestions)
        _done("Camps View", request_id, start_time, f"{len(data['camps'])} camps")
        return _ok("ok", data, request_id)
    except Exception as e:
        _fail("Camps View", request_id, start_time, e)


@app.get("/dashboard/complaints", response_model=PagedResponse, tags=["Dashboard"])
async def dashboard_complaints(
        page: int = Query(1, ge=1),
        page_size: int = Query(20, ge=1, le=100),
        session: SessionContext = Depends(require_roles(complaints_view)),
        tasks: TaskService = Depends(get_task_service)
):
    request_id, start_time = _start("Complaints View")
    try:
        rows = complaints_view(tasks.list_tasks(session.profile))
        _done("Complaints View", request_id, start_time, f"{len(rows)} complaints")
        return _paged("ok", rows, page, page_size, request_id)
    except Exception as e:
        _fail("Complaints View", request_id, start_time, e)


@app.get("/dashboard/documents", response_model=PagedResponse, tags=["Dashboard"])
async def dashboard_documents(
        page: int = Query(1, ge=1),
        page_size: int = Query(20, ge=1, le=100),
        session: SessionContext = Depends(require_roles(documents_view)),
        tasks: TaskService = Depends(get_task_service)
):
    request_id, start_time = _start("Documents View")
    try:
        rows = documents_view(tasks.list_tasks(session.profile))
        _done("Documents View", request_id, start_time, f"{len(rows)} documents")
        return _paged("ok", rows, page, page_size, request_id)
    except Exception as e:
        _fail("Documents View", request_id, start_time, e)


@app.get("/dashboard/group-chat", response_model=PagedResponse, tags=["Dashboard"])
async def dashboard_group_chat(
        page: int = Query(1, ge=1),
        page_size: int = Query(50, ge=1, le=200),
        session: SessionContext = Depends(require_roles(group_chat_view)),
        chat: ChatService = Depends(get_chat_service)
):
    request_id, start_time = _start("Group Chat View")
    try:
        rows = group_chat_view(session.profile, chat.list_messages())
        _done("Group Chat View", request_id, start_time, f"{len(rows)} messages")
        return _paged("ok", rows, page, page_size, request_id)
    except Exception as e:
        _fail("Group Chat View", request_id, start_time, e)


@app.get("/dashboard/reports", response_model=ApiResponse, tags=["Dashboard"])
async def dashboard_reports(
        session: SessionContext = Depends(require_roles(reports_view)),
        commission: CommissionCalculationService = Depends(get_commission_service)
):
    request_id, start_time = _start("Reports View")
    try:
        data = reports_view(session.profile, commission.earnings_report(session.profile))
        _done("Reports View", request_id, start_time, f"{data['summary']['total_count']} paid-out tasks")
        return _ok("ok", data, request_id)
    except Exception as e:
        _fail("Reports View", request_id, start_time, e)


# ================= Tasks =================

@app.post("/tasks", response_model=ApiResponse, tags=["Tasks"])
async def create_task(
        service_id: str = Form(...),
        customer_name: str = Form(...),
        customer_mobile: str = Form(...),
        customer_address: str = Form(""),
        customer_email: Optional[str] = Form(None),
        customer_pincode: str = Form(""),
        form_data: Optional[str] = Form(None),
        files: List[UploadFile] = File(None),
        session: SessionContext = Depends(get_session),
        tasks: TaskService = Depends(get_task_service)
):
    request_id, start_time = _start("Task Create")
    logger.info(f"[Task Create] params: service={service_id}, files={len(files or [])}, creator={session.profile.id}")
    try:
        uploads = await _read_uploads(files)
        task = tasks.create_task(
            session.profile,
            service_id=service_id,
            customer_name=customer_name,
            customer_mobile=customer_mobile,
            files=uploads,
            customer_address=customer_address,
            customer_email=customer_email,
            customer_pincode=customer_pincode,
            form_data=_parse_form_data(form_data)
        )
        _done("Task Create", request_id, start_time, f"{task.id} {task.status.value}")
        return _ok("Task created", task.model_dump(mode="json"), request_id)
    except Exception as e:
        _fail("Task Create", request_id, start_time, e)


@app.get("/tasks", response_model=PagedResponse, tags=["Tasks"])
async def list_tasks(
        status: Optional[TaskStatus] = Query(None),
        page: int = Query(1, ge=1),
        page_size: int = Query(20, ge=1, le=100),
        session: SessionContext = Depends(get_session),
        tasks: TaskService = Depends(get_task_service)
):
    request_id, start_time = _start("Task List")
    try:
        rows = [t.model_dump(mode="json") for t in tasks.list_tasks(session.profile, status)]
        _done("Task List", request_id, start_time, f"{len(rows)} tasks")
        return _paged("ok", rows, page, page_size, request_id)
    except Exception as e:
        _fail("Task List", request_id, start_time, e)


@app.get("/tasks/{task_id}", response_model=ApiResponse, tags=["Tasks"])
async def get_task(
        task_id: str,
        session: SessionContext = Depends(get_session),
        tasks: TaskService = Depends(get_task_service)
):
    request_id, start_time = _start("Task Detail")
    try:
        task = tasks.get_task(task_id, session.profile)
        _done("Task Detail", request_id, start_time)
        return _ok("ok", task.model_dump(mode="json"), request_id)
    except Exception as e:
        _fail("Task Detail", request_id, start_time, e)


@app.get("/tasks/{task_id}/earnings", response_model=ApiResponse, tags=["Tasks"])
async def task_earnings(
        task_id: str,
        session: SessionContext = Depends(get_session),
        tasks: TaskService = Depends(get_task_service)
):
    request_id, start_time = _start("Task Earnings")
    try:
        earnings = tasks.task_earnings(task_id, session.profile)
        _done("Task Earnings", request_id, start_time)
        return _ok("ok", earnings.model_dump(), request_id)
    except Exception as e:
        _fail("Task Earnings", request_id, start_time, e)


@app.post("/tasks/{task_id}/price", response_model=ApiResponse, tags=["Tasks"])
async def set_task_price(
        task_id: str,
        request: SetPriceRequest,
        session: SessionContext = Depends(get_session),
        tasks: TaskService = Depends(get_task_service)
):
    request_id, start_time = _start("Task Price")
    try:
        task = tasks.set_price(task_id, request.price, session.profile)
        _done("Task Price", request_id, start_time, f"{task.id} ₹{request.price:.2f}")
        return _ok("Price set", task.model_dump(mode="json"), request_id)
    except Exception as e:
        _fail("Task Price", request_id, start_time, e)


@app.post("/tasks/{task_id}/pay", response_model=ApiResponse, tags=["Tasks"])
async def pay_for_task(
        task_id: str,
        session: SessionContext = Depends(get_session),
        tasks: TaskService = Depends(get_task_service)
):
    request_id, start_time = _start("Task Pay")
    try:
        task = tasks.pay_for_task(task_id, session.profile)
        _done("Task Pay", request_id, start_time, task.id)
        return _ok("Payment completed", task.model_dump(mode="json"), request_id)
    except Exception as e:
        _fail("Task Pay", request_id, start_time, e)


@app.post("/tasks/{task_id}/assign", response_model=ApiResponse, tags=["Tasks"])
async def assign_task(
        task_id: str,
        request: AssignAgentRequest,
        session: SessionContext = Depends(get_session),
        tasks: TaskService = Depends(get_task_service)
):
    request_id, start_time = _start("Task Assign")
    logger.info(f"[Task Assign] params: task={task_id}, agent={request.agent_id or 'auto'}")
    try:
        task = tasks.assign_agent(task_id, session.profile, request.agent_id)
        _done("Task Assign", request_id, start_time, f"{task.id} -> {task.assigned_agent_id}")
        return _ok("Task assigned", task.model_dump(mode="json"), request_id)
    except Exception as e:
        _fail("Task Assign", request_id, start_time, e)


@app.post("/tasks/{task_id}/accept", response_model=ApiResponse, tags=["Tasks"])
async def accept_task(
        task_id: str,
        session: SessionContext = Depends(get_session),
        tasks: TaskService = Depends(get_task_service)
):
    request_id, start_time = _start("Task Accept")
    try:
        task = tasks.accept_task(task_id, session.profile)
        _done("Task Accept", request_id, start_time, task.id)
        return _ok("Task accepted", task.model_dump(mode="json"), request_id)
    except Exception as e:
        _fail("Task Accept", request_id, start_time, e)


@app.post("/tasks/{task_id}/reject", response_model=ApiResponse, tags=["Tasks"])
async def reject_task(
        task_id: str,
        session: SessionContext = Depends(get_session),
        tasks: TaskService = Depends(get_task_service)
):
    request_id, start_time = _start("Task Reject")
    try:
        task = tasks.reject_task(task_id, session.profile)
        _done("Task Reject", request_id, start_time, task.id)
        return _ok("Task rejected", task.model_dump(mode="json"), request_id)
    except Exception as e:
        _fail("Task Reject", request_id, start_time, e)


@app.post("/tasks/{task_id}/request-info", response_model=ApiResponse, tags=["Tasks"])
async def request_task_information(
        task_id: str,
        request: RequestInfoRequest,
        session: SessionContext = Depends(get_session),
        tasks: TaskService = Depends(get_task_service)
):
    request_id, start_time = _start("Task Request Info")
    try:
        task = tasks.request_information(task_id, session.profile, request.message)
        _done("Task Request Info", request_id, start_time, task.id)
        return _ok("Request sent", task.model_dump(mode="json"), request_id)
    except Exception as e:
        _fail("Task Request Info", request_id, start_time, e)


@app.post("/tasks/{task_id}/documents", response_model=ApiResponse, tags=["Tasks"])
async def upload_task_documents(
        task_id: str,
        files: List[UploadFile] = File(None),
        session: SessionContext = Depends(get_session),
        tasks: TaskService = Depends(get_task_service)
):
    request_id, start_time = _start("Task Documents")
    try:
        uploads = await _read_uploads(files)
        task = tasks.upload_documents(task_id, session.profile, uploads)
        _done("Task Documents", request_id, start_time, f"{len(uploads)} file(s)")
        return _ok("Documents uploaded", task.model_dump(mode="json"), request_id)
    except Exception as e:
        _fail("Task Documents", request_id, start_time, e)


@app.post("/tasks/{task_id}/acknowledgement", response_model=ApiResponse, tags=["Tasks"])
async def submit_acknowledgement(
        task_id: str,
        request: AcknowledgementRequest,
        session: SessionContext = Depends(get_session),
        tasks: TaskService = Depends(get_task_service)
):
    request_id, start_time = _start("Task Acknowledgement")
    try:
        task = tasks.submit_acknowledgement(task_id, session.profile, request.acknowledgement_number)
        _done("Task Acknowledgement", request_id, start_time, task.id)
        return _ok("Acknowledgement saved", task.model_dump(mode="json"), request_id)
    except Exception as e:
        _fail("Task Acknowledgement", request_id, start_time, e)


@app.post("/tasks/{task_id}/complete", response_model=ApiResponse, tags=["Tasks"])
async def complete_task(
        task_id: str,
        acknowledgement_number: Optional[str] = Form(None),
        certificate: Optional[UploadFile] = File(None),
        session: SessionContext = Depends(get_session),
        tasks: TaskService = Depends(get_task_service)
):
    request_id, start_time = _start("Task Complete")
    try:
        uploads = await _read_uploads([certificate] if certificate is not None else [])
        task = tasks.complete_task(
            task_id, session.profile,
            acknowledgement_number=acknowledgement_number,
            certificate=uploads[0] if uploads else None
        )
        _done("Task Complete", request_id, start_time, task.id)
        return _ok("Task completed", task.model_dump(mode="json"), request_id)
    except Exception as e:
        _fail("Task Complete", request_id, start_time, e)


@app.post("/tasks/{task_id}/complaint", response_model=ApiResponse, tags=["Tasks"])
async def raise_complaint(
        task_id: str,
        text: str = Form(...),
        files: List[UploadFile] = File(None),
        session: SessionContext = Depends(get_session),
        tasks: TaskService = Depends(get_task_service)
):
    request_id, start_time = _start("Task Complaint")
    try:
        uploads = await _read_uploads(files)
        task = tasks.raise_complaint(task_id, session.profile, text, uploads)
        _done("Task Complaint", request_id, start_time, f"{task.id} {task.status.value}")
        return _ok("Complaint raised", task.model_dump(mode="json"), request_id)
    except Exception as e:
        _fail("Task Complaint", request_id, start_time, e)


@app.post("/tasks/{task_id}/complaint/response", response_model=ApiResponse, tags=["Tasks"])
async def respond_to_complaint(
        task_id: str,
        text: str = Form(...),
        files: List[UploadFile] = File(None),
        session: SessionContext = Depends(get_session),
        tasks: TaskService = Depends(get_task_service)
):
    request_id, start_time = _start("Complaint Response")
    try:
        uploads = await _read_uploads(files)
        task = tasks.respond_to_complaint(task_id, session.profile, text, uploads)
        _done("Complaint Response", request_id, start_time, task.id)
        return _ok("Response sent", task.model_dump(mode="json"), request_id)
    except Exception as e:
        _fail("Complaint Response", request_id, start_time, e)


@app.post("/tasks/{task_id}/feedback", response_model=ApiResponse, tags=["Tasks"])
async def submit_feedback(
        task_id: str,
        request: FeedbackRequest,
        session: SessionContext = Depends(get_session),
        tasks: TaskService = Depends(get_task_service)
):
    request_id, start_time = _start("Task Feedback")
    try:
        task = tasks.submit_feedback(task_id, session.profile, request.rating, request.comment)
        _done("Task Feedback", request_id, start_time, f"{task.id} rating={request.rating}")
        return _ok("Feedback submitted", task.model_dump(mode="json"), request_id)
    except Exception as e:
        _fail("Task Feedback", request_id, start_time, e)


@app.post("/tasks/{task_id}/cancel", response_model=ApiResponse, tags=["Tasks"])
async def cancel_task(
        task_id: str,
        request: CancelTaskRequest,
        session: SessionContext = Depends(get_session),
        tasks: TaskService = Depends(get_task_service)
):
    request_id, start_time = _start("Task Cancel")
    try:
        task = tasks.cancel_task(task_id, session.profile, request.reason)
        _done("Task Cancel", request_id, start_time, f"{task.id} {task.status.value}")
        return _ok(f"Task {task.status.value.lower()}", task.model_dump(mode="json"), request_id)
    except Exception as e:
        _fail("Task Cancel", request_id, start_time, e)


@app.post("/tasks/{task_id}/payout", response_model=ApiResponse, tags=["Tasks"])
async def process_task_payout(
        task_id: str,
        session: SessionContext = Depends(admin_only),
        commission: CommissionCalculationService = Depends(get_commission_service)
):
    request_id, start_time = _start("Task Payout")
    try:
        result = commission.process_payout(task_id, session.profile)
        _done("Task Payout", request_id, start_time, f"{task_id} ₹{result['amount']:.2f}")
        return _ok("Payout processed", result, request_id)
    except Exception as e:
        _fail("Task Payout", request_id, start_time, e)


# ================= Camps =================

@app.post("/camps", response_model=ApiResponse, tags=["Camps"])
async def create_camp(
        request: CampSaveRequest,
        session: SessionContext = Depends(admin_only),
        camps: CampService = Depends(get_camp_service)
):
    request_id, start_time = _start("Camp Save")
    try:
        camp = camps.save_camp(request, session.profile)
        _done("Camp Save", request_id, start_time, camp.id)
        return _ok("Camp created", camp.model_dump(mode="json"), request_id)
    except Exception as e:
        _fail("Camp Save", request_id, start_time, e)


@app.put("/camps/{camp_id}", response_model=ApiResponse, tags=["Camps"])
async def update_camp(
        camp_id: str,
        request: CampSaveRequest,
        session: SessionContext = Depends(admin_only),
        camps: CampService = Depends(get_camp_service)
):
    request_id, start_time = _start("Camp Save")
    try:
        camp = camps.save_camp(request, session.profile, camp_id=camp_id)
        _done("Camp Save", request_id, start_time, camp.id)
        return _ok("Camp updated", camp.model_dump(mode="json"), request_id)
    except Exception as e:
        _fail("Camp Save", request_id, start_time, e)


@app.delete("/camps/{camp_id}", response_model=ApiResponse, tags=["Camps"])
async def delete_camp(
        camp_id: str,
        session: SessionContext = Depends(admin_only),
        camps: CampService = Depends(get_camp_service)
):
    request_id, start_time = _start("Camp Delete")
    try:
        camps.delete_camp(camp_id, session.profile)
        _done("Camp Delete", request_id, start_time, camp_id)
        return _ok("Camp deleted", {"id": camp_id}, request_id)
    except Exception as e:
        _fail("Camp Delete", request_id, start_time, e)


@app.post("/camps/{camp_id}/respond", response_model=ApiResponse, tags=["Camps"])
async def respond_to_camp(
        camp_id: str,
        request: CampRespondRequest,
        session: SessionContext = Depends(get_session),
        camps: CampService = Depends(get_camp_service)
):
    request_id, start_time = _start("Camp Respond")
    try:
        camp = camps.respond_to_camp(camp_id, session.profile, request.status)
        _done("Camp Respond", request_id, start_time, f"{camp_id} {request.status}")
        return _ok(f"Invitation {request.status}", camps_view(session.profile, [camp])["camps"], request_id)
    except Exception as e:
        _fail("Camp Respond", request_id, start_time, e)


@app.post("/camps/{camp_id}/status", response_model=ApiResponse, tags=["Camps"])
async def update_camp_status(
        camp_id: str,
        request: CampStatusRequest,
        session: SessionContext = Depends(admin_only),
        camps: CampService = Depends(get_camp_service)
):
    request_id, start_time = _start("Camp Status")
    try:
        camp = camps.update_camp_status(camp_id, request.status, session.profile)
        _done("Camp Status", request_id, start_time, f"{camp_id} {camp.status.value}")
        return _ok("Camp status updated", camp.model_dump(mode="json"), request_id)
    except Exception as e:
        _fail("Camp Status", request_id, start_time, e)


@app.post("/camps/{camp_id}/payout", response_model=ApiResponse, tags=["Camps"])
async def process_camp_payout(
        camp_id: str,
        request: CampPayoutRequest,
        session: SessionContext = Depends(admin_only),
        camps: CampService = Depends(get_camp_service)
):
    request_id, start_time = _start("Camp Payout")
    try:
        camp = camps.process_camp_payout(camp_id, request, session.profile)
        _done("Camp Payout", request_id, start_time, f"{camp_id} {len(camp.payouts)} payout(s)")
        return _ok("Camp payout processed", camp.model_dump(mode="json"), request_id)
    except Exception as e:
        _fail("Camp Payout", request_id, start_time, e)


@app.post("/camp-suggestions", response_model=ApiResponse, tags=["Camps"])
async def suggest_camp(
        request: CampSuggestionRequest,
        session: SessionContext = Depends(get_session),
        camps: CampService = Depends(get_camp_service)
):
    request_id, start_time = _start("Camp Suggest")
    try:
        suggestion = camps.suggest_camp(request, session.profile)
        _done("Camp Suggest", request_id, start_time, suggestion.id)
        return _ok("Suggestion sent", suggestion.model_dump(mode="json"), request_id)
    except Exception as e:
        _fail("Camp Suggest", request_id, start_time, e)


@app.get("/camp-suggestions", response_model=ApiResponse, tags=["Camps"])
async def list_camp_suggestions(
        session: SessionContext = Depends(admin_only),
        camps: CampService = Depends(get_camp_service)
):
    suggestions = camps.list_suggestions()
    return _ok("ok", [s.model_dump(mode="json") for s in suggestions], str(uuid.uuid4()))


@app.post("/camp-suggestions/{suggestion_id}/approve", response_model=ApiResponse, tags=["Camps"])
async def approve_camp_suggestion(
        suggestion_id: str,
        request: SuggestionApproveRequest,
        session: SessionContext = Depends(admin_only),
        camps: CampService = Depends(get_camp_service)
):
    request_id, start_time = _start("Camp Suggestion Approve")
    try:
        camp = camps.approve_suggestion(suggestion_id, session.profile, request.name, request.agent_ids)
        _done("Camp Suggestion Approve", request_id, start_time, f"{suggestion_id} -> {camp.id}")
        return _ok("Suggestion approved", camp.model_dump(mode="json"), request_id)
    except Exception as e:
        _fail("Camp Suggestion Approve", request_id, start_time, e)


@app.post("/camp-suggestions/{suggestion_id}/reject", response_model=ApiResponse, tags=["Camps"])
async def reject_camp_suggestion(
        suggestion_id: str,
        session: SessionContext = Depends(admin_only),
        camps: CampService = Depends(get_camp_service)
):
    request_id, start_time = _start("Camp Suggestion Reject")
    try:
        camps.reject_suggestion(suggestion_id, session.profile)
        _done("Camp Suggestion Reject", request_id, start_time, suggestion_id)
        return _ok("Suggestion rejected", {"id": suggestion_id}, request_id)
    except Exception as e:
        _fail("Camp Suggestion Reject", request_id, start_time, e)


# ================= Wallet and agents =================

@app.post("/payment-requests", response_model=ApiResponse, tags=["Wallet"])
async def create_payment_request(
        request: BalanceRequestCreate,
        session: SessionContext = Depends(get_session),
        wallets: WalletService = Depends(get_wallet_service)
):
    request_id, start_time = _start("Balance Request")
    try:
        payment_request = wallets.request_balance(session.profile, request.amount)
        _done("Balance Request", request_id, start_time, f"₹{request.amount:.2f}")
        return _ok("Balance request sent", payment_request.model_dump(mode="json"), request_id)
    except Exception as e:
        _fail("Balance Request", request_id, start_time, e)


@app.get("/payment-requests", response_model=PagedResponse, tags=["Wallet"])
async def list_payment_requests(
        status: Optional[PaymentRequestStatus] = Query(None),
        page: int = Query(1, ge=1),
        page_size: int = Query(20, ge=1, le=100),
        session: SessionContext = Depends(admin_only),
        wallets: WalletService = Depends(get_wallet_service)
):
    request_id, start_time = _start("Balance Request List")
    try:
        rows = [r.model_dump(mode="json") for r in wallets.list_requests(status)]
        _done("Balance Request List", request_id, start_time, f"{len(rows)} requests")
        return _paged("ok", rows, page, page_size, request_id)
    except Exception as e:
        _fail("Balance Request List", request_id, start_time, e)


@app.post("/payment-requests/{payment_request_id}/approve", response_model=ApiResponse, tags=["Wallet"])
async def approve_payment_request(
        payment_request_id: str,
        session: SessionContext = Depends(admin_only),
        wallets: WalletService = Depends(get_wallet_service)
):
    request_id, start_time = _start("Balance Request Approve")
    try:
        payment_request = wallets.resolve_request(payment_request_id, True, session.profile)
        _done("Balance Request Approve", request_id, start_time, payment_request_id)
        return _ok("Balance added", payment_request.model_dump(mode="json"), request_id)
    except Exception as e:
        _fail("Balance Request Approve", request_id, start_time, e)


@app.post("/payment-requests/{payment_request_id}/reject", response_model=ApiResponse, tags=["Wallet"])
async def reject_payment_request(
        payment_request_id: str,
        session: SessionContext = Depends(admin_only),
        wallets: WalletService = Depends(get_wallet_service)
):
    request_id, start_time = _start("Balance Request Reject")
    try:
        payment_request = wallets.resolve_request(payment_request_id, False, session.profile)
        _done("Balance Request Reject", request_id, start_time, payment_request_id)
        return _ok("Request rejected", payment_request.model_dump(mode="json"), request_id)
    except Exception as e:
        _fail("Balance Request Reject", request_id, start_time, e)


@app.get("/agents", response_model=ApiResponse, tags=["Agents"])
async def list_agents(
        approved_only: bool = Query(False),
        available_only: bool = Query(False),
        service_id: Optional[str] = Query(None),
        session: SessionContext = Depends(admin_only),
        users: UserService = Depends(get_user_service)
):
    agents = users.list_agents(approved_only, available_only, service_id)
    return _ok("ok", [a.model_dump(mode="json") for a in agents], str(uuid.uuid4()))


@app.post("/agents/{agent_id}/approve", response_model=ApiResponse, tags=["Agents"])
async def approve_agent(
        agent_id: str,
        session: SessionContext = Depends(admin_only),
        users: UserService = Depends(get_user_service),
        notifications: NotificationService = Depends(get_notification_service)
):
    request_id, start_time = _start("Agent Approve")
    try:
        agent = users.approve_agent(agent_id)
        notifications.create_notification(
            agent_id, "Account Approved", "Your agent account has been approved. You can now receive tasks."
        )
        _done("Agent Approve", request_id, start_time, agent_id)
        return _ok("Agent approved", agent.model_dump(mode="json"), request_id)
    except Exception as e:
        _fail("Agent Approve", request_id, start_time, e)


@app.post("/agents/{agent_id}/availability", response_model=ApiResponse, tags=["Agents"])
async def set_agent_availability(
        agent_id: str,
        request: AvailabilityRequest,
        session: SessionContext = Depends(get_session),
        users: UserService = Depends(get_user_service)
):
    request_id, start_time = _start("Agent Availability")
    try:
        if session.role != "admin" and session.profile.id != agent_id:
            raise PermissionDeniedError("You can only change your own availability.")
        agent = users.set_agent_availability(agent_id, request.available)
        _done("Agent Availability", request_id, start_time, f"{agent_id} available={request.available}")
        return _ok("Availability updated", agent.model_dump(mode="json"), request_id)
    except Exception as e:
        _fail("Agent Availability", request_id, start_time, e)


@app.post("/agents/{agent_id}/balance", response_model=ApiResponse, tags=["Agents"])
async def add_agent_balance(
        agent_id: str,
        request: BalanceRequestCreate,
        session: SessionContext = Depends(admin_only),
        wallets: WalletService = Depends(get_wallet_service)
):
    request_id, start_time = _start("Agent Balance")
    try:
        balance = wallets.add_balance(agent_id, request.amount, session.profile)
        _done("Agent Balance", request_id, start_time, f"{agent_id} +₹{request.amount:.2f}")
        return _ok("Balance added", {"agent_id": agent_id, "wallet_balance": balance}, request_id)
    except Exception as e:
        _fail("Agent Balance", request_id, start_time, e)


# ================= Notifications =================

@app.get("/notifications", response_model=PagedResponse, tags=["Notifications"])
async def list_notifications(
        unread_only: bool = Query(False),
        page: int = Query(1, ge=1),
        page_size: int = Query(20, ge=1, le=100),
        session: SessionContext = Depends(get_session),
        notifications: NotificationService = Depends(get_notification_service)
):
    request_id = str(uuid.uuid4())
    rows = [n.model_dump(mode="json") for n in notifications.list_for_user(session.profile.id, unread_only)]
    return _paged("ok", rows, page, page_size, request_id)


@app.post("/notifications/read-all", response_model=ApiResponse, tags=["Notifications"])
async def mark_all_notifications_read(
        session: SessionContext = Depends(get_session),
        notifications: NotificationService = Depends(get_notification_service)
):
    request_id, start_time = _start("Notifications Read All")
    try:
        count = notifications.mark_all_read(session.profile.id)
        _done("Notifications Read All", request_id, start_time, f"{count} updated")
        return _ok("Notifications marked as read", {"updated": count}, request_id)
    except Exception as e:
        _fail("Notifications Read All", request_id, start_time, e)


@app.post("/notifications/{notification_id}/read", response_model=ApiResponse, tags=["Notifications"])
async def mark_notification_read(
        notification_id: str,
        session: SessionContext = Depends(get_session),
        notifications: NotificationService = Depends(get_notification_service)
):
    request_id, start_time = _start("Notification Read")
    try:
        notification = notifications.mark_read(notification_id, session.profile.id)
        _done("Notification Read", request_id, start_time, notification_id)
        return _ok("Notification marked as read", notification.model_dump(mode="json"), request_id)
    except Exception as e:
        _fail("Notification Read", request_id, start_time, e)


# ================= Service catalog =================

@app.get("/services", response_model=ApiResponse, tags=["Services"])
async def list_services(catalog: CatalogService = Depends(get_catalog_service)):
    return _ok("ok", [s.model_dump(mode="json") for s in catalog.list_services()], str(uuid.uuid4()))


@app.get("/services/tree", response_model=ApiResponse, tags=["Services"])
async def service_tree(catalog: CatalogService = Depends(get_catalog_service)):
    return _ok("ok", catalog.service_tree(), str(uuid.uuid4()))


@app.post("/services", response_model=ApiResponse, tags=["Services"])
async def add_service(
        request: ServiceUpsertRequest,
        session: SessionContext = Depends(admin_only),
        catalog: CatalogService = Depends(get_catalog_service)
):
    request_id, start_time = _start("Service Add")
    try:
        service = catalog.add_service(request, session.profile)
        _done("Service Add", request_id, start_time, service.id)
        return _ok("Service added", service.model_dump(mode="json"), request_id)
    except Exception as e:
        _fail("Service Add", request_id, start_time, e)


@app.put("/services/{service_id}", response_model=ApiResponse, tags=["Services"])
async def update_service(
        service_id: str,
        request: ServiceUpsertRequest,
        session: SessionContext = Depends(admin_only),
        catalog: CatalogService = Depends(get_catalog_service)
):
    request_id, start_time = _start("Service Update")
    try:
        service = catalog.update_service(service_id, request, session.profile)
        _done("Service Update", request_id, start_time, service_id)
        return _ok("Service updated", service.model_dump(mode="json"), request_id)
    except Exception as e:
        _fail("Service Update", request_id, start_time, e)


@app.delete("/services/{service_id}", response_model=ApiResponse, tags=["Services"])
async def delete_service(
        service_id: str,
        session: SessionContext = Depends(admin_only),
        catalog: CatalogService = Depends(get_catalog_service)
):
    request_id, start_time = _start("Service Delete")
    try:
        catalog.delete_service(service_id, session.profile)
        _done("Service Delete", request_id, start_time, service_id)
        return _ok("Service deleted", {"id": service_id}, request_id)
    except Exception as e:
        _fail("Service Delete", request_id, start_time, e)


@app.post("/services/seed", response_model=ApiResponse, tags=["Services"])
async def seed_services(
        request: SeedRequest,
        session: SessionContext = Depends(admin_only),
        catalog: CatalogService = Depends(get_catalog_service)
):
    request_id, start_time = _start("Service Seed")
    try:
        result = catalog.seed_services(force=request.force)
        _done("Service Seed", request_id, start_time, str(result))
        return _ok("Default services seeded", result, request_id)
    except Exception as e:
        _fail("Service Seed", request_id, start_time, e)


# ================= Group chat =================

@app.get("/group-chat/messages", response_model=PagedResponse, tags=["Group Chat"])
async def list_group_chat_messages(
        page: int = Query(1, ge=1),
        page_size: int = Query(50, ge=1, le=200),
        session: SessionContext = Depends(require_roles(group_chat_view)),
        chat: ChatService = Depends(get_chat_service)
):
    rows = group_chat_view(session.profile, chat.list_messages())
    return _paged("ok", rows, page, page_size, str(uuid.uuid4()))


@app.post("/group-chat/messages", response_model=ApiResponse, tags=["Group Chat"])
async def post_group_chat_message(
        text: Optional[str] = Form(None),
        file: Optional[UploadFile] = File(None),
        session: SessionContext = Depends(require_roles(group_chat_view)),
        chat: ChatService = Depends(get_chat_service)
):
    request_id, start_time = _start("Group Chat Post")
    try:
        uploads = await _read_uploads([file] if file is not None else [])
        message = chat.post_message(session.profile, text, uploads[0] if uploads else None)
        _done("Group Chat Post", request_id, start_time, message.id)
        return _ok("Message sent", group_chat_view(session.profile, [message])[0], request_id)
    except Exception as e:
        _fail("Group Chat Post", request_id, start_time, e)


# ================= AI =================

@app.post("/ai/extract", response_model=ApiResponse, tags=["AI"])
async def extract_service_request_info(
        request: ExtractServiceRequestInfoInput,
        session: SessionContext = Depends(get_session),
        extractor: ServiceRequestExtractor = Depends(get_extractor)
):
    request_id, start_time = _start("AI Extract")
    logger.info(f"[AI Extract] params: text length={len(request.request_text)}")
    try:
        result = extractor.extract(request)
        _done("AI Extract", request_id, start_time,
              f"{len(result.required_documents)} documents, {len(result.potential_agent_skills)} skills")
        return _ok("ok", result.model_dump(), request_id)
    except Exception as e:
        _fail("AI Extract", request_id, start_time, e)
