"""State (pending-change ledger)"""
from .ledger import ChangeKind, ChangeLedger, PendingChange, Batches

__all__ = ["ChangeKind", "ChangeLedger", "PendingChange", "Batches"]
