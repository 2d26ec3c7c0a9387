import logging
from typing import Dict, Iterable, List, Optional

from ..document_store import AGENTS, NOTIFICATIONS, DocumentStore
from ..errors import PermissionDeniedError
from ..models import Notification, NotificationResult
from ..utils import now_iso
from .whatsapp_service import WhatsAppService

logger = logging.getLogger(__name__)


class NotificationService:
    def __init__(self, store: DocumentStore, whatsapp: Optional[WhatsAppService] = None):
        self.store = store
        self.whatsapp = whatsapp

    def create_notification(self, user_id: Optional[str], title: str, description: str,
                            link: Optional[str] = None) -> Optional[str]:
        if not user_id:
            return None
        return self.store.add(NOTIFICATIONS, {
            "user_id": user_id,
            "title": title,
            "description": description,
            "link": link or "/dashboard",
            "read": False,
            "date": now_iso(),
        })

    def admin_ids(self) -> List[str]:
        return [doc["id"] for doc in self.store.query(AGENTS, is_admin=True)]

    def notify_many(self, user_ids: Iterable[str], title: str, description: str,
                    link: Optional[str] = None) -> int:
        count = 0
        for user_id in user_ids:
            if self.create_notification(user_id, title, description, link):
                count += 1
        return count

    def notify_admins(self, title: str, description: str, link: Optional[str] = None) -> int:
        """Best effort: a failure here never aborts the action that triggered it."""
        try:
            admin_ids = self.admin_ids()
            if not admin_ids:
                logger.info("No admin users found to notify.")
                return 0
            return self.notify_many(admin_ids, title, description, link)
        except Exception as e:
            logger.error(f"Error creating notifications for admins: {str(e)}", exc_info=True)
            return 0

    def send_whatsapp(self, mobile: Optional[str], content_variables: Dict[str, str]) -> Optional[NotificationResult]:
        if not self.whatsapp or not mobile:
            return None
        result = self.whatsapp.send_message(mobile, content_variables)
        if not result.success:
            logger.warning(f"WhatsApp delivery to {mobile} failed: {result.error}")
        return result

    def list_for_user(self, user_id: str, unread_only: bool = False) -> List[Notification]:
        docs = self.store.query(NOTIFICATIONS, user_id=user_id)
        items = [Notification.model_validate(doc) for doc in docs]
        if unread_only:
            items = [n for n in items if not n.read]
        return sorted(items, key=lambda n: n.date, reverse=True)

    def mark_read(self, notification_id: str, user_id: str) -> Notification:
        doc = self.store.require(NOTIFICATIONS, notification_id)
        if doc.get("user_id") != user_id:
            raise PermissionDeniedError("You can only update your own notifications.")
        return Notification.model_validate(self.store.update(NOTIFICATIONS, notification_id, {"read": True}))

    def mark_all_read(self, user_id: str) -> int:
        count = 0
        with self.store.transaction():
            for doc in self.store.query(NOTIFICATIONS, user_id=user_id, read=False):
                self.store.update(NOTIFICATIONS, doc["id"], {"read": True})
                count += 1
        return count
