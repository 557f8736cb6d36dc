"""SAP transmission state machine and client."""

from weighbatch.transmission.sap_client import SapClient, TransmissionSink, build_transmission_rows
from weighbatch.transmission.service import (
    begin_transmission,
    finalize_items,
    promote_batch,
    reopen_batch,
)
from weighbatch.transmission.state import ALLOWED_TRANSITIONS, rollup_batch_status, transition

__all__ = [
    "SapClient",
    "TransmissionSink",
    "build_transmission_rows",
    "begin_transmission",
    "finalize_items",
    "promote_batch",
    "reopen_batch",
    "ALLOWED_TRANSITIONS",
    "rollup_batch_status",
    "transition",
]
