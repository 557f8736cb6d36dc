"""Scale event grouping, batch allocation and reconciliation."""

from weighbatch.batching.allocator import BatchCodeAllocator, batch_code_prefix
from weighbatch.batching.grouping import GroupingKey, group_events
from weighbatch.batching.queries import batch_statistics, fetch_batch_detail, fetch_batches
from weighbatch.batching.reconciler import ReconciliationEngine, reconcile
from weighbatch.batching.rollup import recompute_detail_rollup, recompute_rollups

__all__ = [
    "BatchCodeAllocator",
    "batch_code_prefix",
    "GroupingKey",
    "group_events",
    "batch_statistics",
    "fetch_batch_detail",
    "fetch_batches",
    "ReconciliationEngine",
    "reconcile",
    "recompute_detail_rollup",
    "recompute_rollups",
]
