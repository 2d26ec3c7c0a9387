import copy
import logging
import uuid
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from .errors import NotFoundError
from .orm_models import DocumentRecord

logger = logging.getLogger(__name__)

# Collection names
CUSTOMERS = "customers"
AGENTS = "agents"
GOVERNMENT = "government"
SERVICES = "services"
TASKS = "tasks"
CAMPS = "camps"
CAMP_SUGGESTIONS = "camp_suggestions"
PAYMENT_REQUESTS = "payment_requests"
NOTIFICATIONS = "notifications"
GROUP_CHAT_MESSAGES = "group_chat_messages"


def new_doc_id() -> str:
    return uuid.uuid4().hex[:20]


class DocumentStore:
    """Collection-scoped document access on top of the `documents` table.

    Writes are flushed immediately and committed by the outermost
    `transaction()` block, so a service method can group several document
    writes (wallet debit + credit + task update) into one commit.
    """

    def __init__(self, db: Session):
        self.db = db
        self._depth = 0

    def _record(self, collection: str, doc_id: str) -> Optional[DocumentRecord]:
        return self.db.query(DocumentRecord).filter(
            DocumentRecord.collection == collection,
            DocumentRecord.doc_id == doc_id
        ).first()

    @staticmethod
    def _to_dict(record: DocumentRecord) -> Dict[str, Any]:
        data = copy.deepcopy(record.data or {})
        data["id"] = record.doc_id
        return data

    @contextmanager
    def transaction(self):
        self._depth += 1
        try:
            yield self
            if self._depth == 1:
                self.db.commit()
        except Exception:
            if self._depth == 1:
                self.db.rollback()
            raise
        finally:
            self._depth -= 1

    def _autocommit(self):
        if self._depth == 0:
            self.db.commit()
        else:
            self.db.flush()

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        if not doc_id:
            return None
        record = self._record(collection, doc_id)
        return self._to_dict(record) if record else None

    def require(self, collection: str, doc_id: str) -> Dict[str, Any]:
        doc = self.get(collection, doc_id)
        if doc is None:
            raise NotFoundError(collection, doc_id)
        return doc

    def add(self, collection: str, data: Dict[str, Any], doc_id: Optional[str] = None) -> str:
        doc_id = doc_id or data.get("id") or new_doc_id()
        body = {k: v for k, v in data.items() if k != "id"}
        self.db.add(DocumentRecord(collection=collection, doc_id=doc_id, data=copy.deepcopy(body)))
        self._autocommit()
        logger.debug(f"[store] add {collection}/{doc_id}")
        return doc_id

    def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        body = {k: v for k, v in data.items() if k != "id"}
        record = self._record(collection, doc_id)
        if record is None:
            self.db.add(DocumentRecord(collection=collection, doc_id=doc_id, data=copy.deepcopy(body)))
        else:
            # assign a new object so the JSON column is marked dirty
            record.data = copy.deepcopy(body)
        self._autocommit()

    def update(self, collection: str, doc_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        record = self._record(collection, doc_id)
        if record is None:
            raise NotFoundError(collection, doc_id)
        merged = copy.deepcopy(record.data or {})
        merged.update({k: copy.deepcopy(v) for k, v in changes.items() if k != "id"})
        record.data = merged
        self._autocommit()
        return self._to_dict(record)

    def delete(self, collection: str, doc_id: str) -> bool:
        record = self._record(collection, doc_id)
        if record is None:
            return False
        self.db.delete(record)
        self._autocommit()
        return True

    def query(self, collection: str, **filters: Any) -> List[Dict[str, Any]]:
        """Equality filters only, in insertion order."""
        records = self.db.query(DocumentRecord).filter(
            DocumentRecord.collection == collection
        ).order_by(DocumentRecord.id).all()

        results = []
        for record in records:
            data = record.data or {}
            if all(data.get(key) == value for key, value in filters.items()):
                results.append(self._to_dict(record))
        return results
