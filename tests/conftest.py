import pytest
import sys
import os

# Add the project root to sys.path so seva_portal can be imported
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "../")))

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from seva_portal import orm_models  # noqa: F401  registers the documents table
from seva_portal.auth import AuthProvider
from seva_portal.database import Base
from seva_portal.document_store import AGENTS, CUSTOMERS, GOVERNMENT, DocumentStore
from seva_portal.models import Identity
from seva_portal.services import CatalogService, NotificationService, TaskService
from seva_portal.services.user_service import UserService
from seva_portal.storage import LocalFileStorage
from seva_portal.utils import UploadCandidate

ADMIN_ID = "admin-1"
AGENT_ID = "agent-1"
CUSTOMER_ID = "cust-1"
GOVERNMENT_ID = "gov-1"

TOKENS = {
    "admin-token": Identity(uid=ADMIN_ID, email="admin@example.com"),
    "agent-token": Identity(uid=AGENT_ID, email="agent@example.com"),
    "customer-token": Identity(uid=CUSTOMER_ID, email="customer@example.com"),
    "government-token": Identity(uid=GOVERNMENT_ID, email="gov@example.com"),
    "orphan-token": Identity(uid="orphan-1", email="orphan@example.com"),
    "new-token": Identity(uid="new-user", email="new@example.com"),
}


class FakeAuthProvider(AuthProvider):
    """Maps fixed bearer tokens to identities and records revocations."""

    def __init__(self, tokens=None):
        super().__init__()
        self.tokens = dict(tokens or TOKENS)
        self.revoked = []

    def verify_token(self, token):
        if not token:
            return None
        return self.tokens.get(token)

    def revoke(self, identity):
        self.revoked.append(identity.uid)


def pdf(name="aadhaar.pdf", size=None):
    content = b"%PDF-1.4 test"
    return UploadCandidate(
        filename=name,
        content_type="application/pdf",
        size=len(content) if size is None else size,
        content=content
    )


@pytest.fixture
def db_session():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def store(db_session):
    store = DocumentStore(db_session)
    store.set(AGENTS, ADMIN_ID, {
        "name": "Asha Admin", "email": "admin@example.com", "mobile": "9000000001",
        "wallet_balance": 10000.0, "is_admin": True,
    })
    store.set(AGENTS, AGENT_ID, {
        "name": "Vikram Agent", "email": "agent@example.com", "mobile": "9000000002",
        "wallet_balance": 500.0, "is_admin": False, "status": "Approved", "available": True,
        "offered_services": ["income_new_application", "pan_new_application", "pan_correction"],
        "last_assigned": {},
    })
    store.set(CUSTOMERS, CUSTOMER_ID, {
        "name": "Chitra Customer", "email": "customer@example.com", "mobile": "9876543210",
        "wallet_balance": 1000.0,
    })
    store.set(GOVERNMENT, GOVERNMENT_ID, {
        "name": "Gopal Officer", "email": "gov@example.com", "mobile": "9000000004",
        "wallet_balance": 0.0,
    })
    CatalogService(store).seed_services()
    return store


@pytest.fixture
def users(store):
    return UserService(store)


@pytest.fixture
def admin(users):
    return users.find_profile(ADMIN_ID)


@pytest.fixture
def agent(users):
    return users.find_profile(AGENT_ID)


@pytest.fixture
def customer(users):
    return users.find_profile(CUSTOMER_ID)


@pytest.fixture
def government(users):
    return users.find_profile(GOVERNMENT_ID)


@pytest.fixture
def storage(tmp_path):
    return LocalFileStorage(root=str(tmp_path / "uploads"))


@pytest.fixture
def notifications(store):
    return NotificationService(store)


@pytest.fixture
def task_service(store, storage, notifications):
    return TaskService(store, storage, notifications)


@pytest.fixture
def auth_provider():
    return FakeAuthProvider()


@pytest.fixture
def client(store, storage, auth_provider):
    from fastapi.testclient import TestClient

    from seva_portal import main
    from seva_portal.services import WhatsAppService
    from seva_portal.session import get_auth_provider, get_store

    main.app.dependency_overrides[get_store] = lambda: store
    main.app.dependency_overrides[get_auth_provider] = lambda: auth_provider
    main.app.dependency_overrides[main.get_storage] = lambda: storage
    main.app.dependency_overrides[main.get_whatsapp_service] = lambda: WhatsAppService(use_settings=False)
    try:
        yield TestClient(main.app)
    finally:
        main.app.dependency_overrides.clear()
