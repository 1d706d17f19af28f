from duka_sync.usecase.queue.enqueuer import MutationEnqueuer
from duka_sync.usecase.queue.sync_engine import (Outcome, RetryPolicy,
                                                 SyncEngine, classify_error,
                                                 utc_now)
from duka_sync.usecase.queue.sync_queue import SyncQueue

__all__ = [
    "MutationEnqueuer",
    "Outcome",
    "RetryPolicy",
    "SyncEngine",
    "SyncQueue",
    "classify_error",
    "utc_now",
]
