import logging
from typing import List, Optional

from ..document_store import AGENTS, GROUP_CHAT_MESSAGES, DocumentStore
from ..errors import InputValidationError, PermissionDeniedError
from ..models import GroupChatMessage
from ..storage import LocalFileStorage
from ..utils import UploadCandidate, now_iso
from .notification_service import NotificationService

logger = logging.getLogger(__name__)

CHAT_LINK = "/dashboard/group-chat"


class ChatService:
    """The single group chat room shared by admins and agents."""

    def __init__(self, store: DocumentStore, storage: Optional[LocalFileStorage] = None,
                 notifications: Optional[NotificationService] = None):
        self.store = store
        self.storage = storage or LocalFileStorage()
        self.notifications = notifications or NotificationService(store)

    def list_messages(self) -> List[GroupChatMessage]:
        messages = [GroupChatMessage.model_validate(doc) for doc in self.store.query(GROUP_CHAT_MESSAGES)]
        return sorted(messages, key=lambda m: m.timestamp)

    def post_message(self, profile, text: Optional[str] = None,
                     file: Optional[UploadCandidate] = None) -> GroupChatMessage:
        if profile.role not in ("admin", "agent"):
            raise PermissionDeniedError("Only admins and agents can use the group chat.")
        text = (text or "").strip()
        if not text and file is None:
            raise InputValidationError("Message is empty.")

        data = {
            "sender_id": profile.id,
            "sender_name": profile.name,
            "sender_role": "Admin" if profile.role == "admin" else "Agent",
            "text": text or None,
            "file_url": None,
            "file_name": None,
            "timestamp": now_iso(),
        }
        notification_text = text
        if file is not None:
            saved = self.storage.save_all("group_chat_files", [file])[0]
            data["file_url"] = saved.url
            data["file_name"] = saved.name
            if not text:
                notification_text = f"Sent a file: {saved.name}"

        message_id = self.store.add(GROUP_CHAT_MESSAGES, data)

        participants = [doc["id"] for doc in self.store.query(AGENTS) if doc["id"] != profile.id]
        self.notifications.notify_many(
            participants,
            "New message in Group Chat",
            f'{profile.name}: "{notification_text}"',
            CHAT_LINK
        )
        logger.info(f"[Group Chat] message {message_id} from {profile.id}, notified {len(participants)}")
        return GroupChatMessage(id=message_id, **data)
