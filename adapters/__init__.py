"""
Adapters package (collaborators the engine talks to).

Public API:
- Store, InMemoryStore
- Notifier, LoggingNotifier, RecordingNotifier, SafeNotifier, best_effort
- PaymentGateway, HttpPaymentGateway, InMemoryPaymentGateway
"""

from .notifier import LoggingNotifier, Notifier, RecordingNotifier, SafeNotifier, best_effort
from .payment_gateway import HttpPaymentGateway, InMemoryPaymentGateway, PaymentGateway
from .store import InMemoryStore, Store

__all__ = [
    "Store",
    "InMemoryStore",
    "Notifier",
    "LoggingNotifier",
    "RecordingNotifier",
    "SafeNotifier",
    "best_effort",
    "PaymentGateway",
    "HttpPaymentGateway",
    "InMemoryPaymentGateway",
]
