"""
Engine state store and the components that read and mutate it.
"""

from tableside.store.cart import CartLedger, adjust_line
from tableside.store.gateway import TransitionGateway, TransitionResult
from tableside.store.handoff import CheckoutResult, ConsumeResult, PendingOrderHandoff
from tableside.store.menu import MenuCache
from tableside.store.orders import OrderCache, today_revenue
from tableside.store.persistence import PersistenceLayer
from tableside.store.polling import DashboardView, Poller, RequestSequence, ViewKind
from tableside.store.session import SessionStore
from tableside.store.state import AppState, EngineUsageError, reduce
from tableside.store.store import Store

__all__ = [
    "AppState",
    "CartLedger",
    "CheckoutResult",
    "ConsumeResult",
    "DashboardView",
    "EngineUsageError",
    "MenuCache",
    "OrderCache",
    "PendingOrderHandoff",
    "PersistenceLayer",
    "Poller",
    "RequestSequence",
    "SessionStore",
    "Store",
    "TransitionGateway",
    "TransitionResult",
    "ViewKind",
    "adjust_line",
    "reduce",
    "today_revenue",
]
