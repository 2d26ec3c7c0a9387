from .ai_service import ServiceRequestExtractor
from .camp_service import CampService
from .catalog_service import CatalogService
from .chat_service import ChatService
from .commission_service import CommissionCalculationService, calculate_agent_earnings
from .notification_service import NotificationService
from .task_service import TaskService
from .user_service import UserService
from .wallet_service import WalletService
from .whatsapp_service import WhatsAppService

__all__ = [
    "ServiceRequestExtractor",
    "CampService",
    "CatalogService",
    "ChatService",
    "CommissionCalculationService",
    "calculate_agent_earnings",
    "NotificationService",
    "TaskService",
    "UserService",
    "WalletService",
    "WhatsAppService"
]
