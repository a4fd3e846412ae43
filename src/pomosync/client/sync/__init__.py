"""Cross-session synchronization: transport, reconciliation and backoff."""

from pomosync.client.sync.channel import SyncChannel
from pomosync.client.sync.reconciler import RemoteActionReconciler
from pomosync.client.sync.retry import ReconnectPolicy, backoff_delays, retry_with_backoff

__all__ = [
    "ReconnectPolicy",
    "RemoteActionReconciler",
    "SyncChannel",
    "backoff_delays",
    "retry_with_backoff",
]
