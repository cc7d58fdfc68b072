"""
Business logic services.
Selection handling, weekly payment orchestration and the persistence-backed services behind them.
"""

from .export_service import ExportService, kitchen_summary
from .menu_integration_service import MenuIntegrationService
from .menu_service import MenuService
from .order_service import OrderService
from .payment_gateway import PaymentGateway, StripeCheckoutGateway
from .payment_orchestrator import PaymentOrchestrator, PaymentOutcome, PaymentState
from .selection_store import SelectionStore
from .session import OrderSession, SessionRegistry
from .user_service import UserService

__all__ = [
    "ExportService",
    "kitchen_summary",
    "MenuIntegrationService",
    "MenuService",
    "OrderService",
    "PaymentGateway",
    "StripeCheckoutGateway",
    "PaymentOrchestrator",
    "PaymentOutcome",
    "PaymentState",
    "SelectionStore",
    "OrderSession",
    "SessionRegistry",
    "UserService",
]
