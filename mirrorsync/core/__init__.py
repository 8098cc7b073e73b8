"""Core functionality"""
from .ssh_manager import SFTPTransport, RemoteSession, RemoteEntry
from .sync_engine import Reconciler, SyncReport
from .orchestrator import SyncOrchestrator, SyncState

__all__ = [
    "SFTPTransport", "RemoteSession", "RemoteEntry",
    "Reconciler", "SyncReport",
    "SyncOrchestrator", "SyncState",
]
