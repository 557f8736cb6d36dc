"""Batch item mutations and their audit trail."""

from weighbatch.mutation.audit import fetch_item_history, snapshot_item
from weighbatch.mutation.service import mutate_item

__all__ = ["fetch_item_history", "snapshot_item", "mutate_item"]
