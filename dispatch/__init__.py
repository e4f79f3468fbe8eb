#Expose the high-level dispatch pieces:
#Policy (deadlines + cancellation reasons)
#Session registry (live offers, one timer per ride)
#Dispatch coordinator (the "one call" entry point for offering a ride)
#Reconciliation sweep (scheduled releases + stuck rides)

from .policy import DispatchPolicy, default_dispatch_policy
from .session import DispatchRecord, DispatchSession, SessionRegistry
from .dispatcher import DispatchCoordinator, Offer, RecoveryReport #the main entry point to dispatch a ride to drivers
from .recovery import ReconciliationSweep, SweepReport

__all__ = [
    "DispatchPolicy",
    "default_dispatch_policy",
    "DispatchRecord",
    "DispatchSession",
    "SessionRegistry",
    "DispatchCoordinator",
    "Offer",
    "RecoveryReport",
    "ReconciliationSweep",
    "SweepReport",
]
