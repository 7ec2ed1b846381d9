"""
Billing Module

Per-minute credit settlement and the ledger history view.
"""
from .engine import (
    Settlement,
    compute_billable_minutes,
    compute_settlement,
    settle_conversation,
    upsert_ledger_entry,
    upsert_session_record,
    billing_history,
)

__all__ = [
    "Settlement",
    "compute_billable_minutes",
    "compute_settlement",
    "settle_conversation",
    "upsert_ledger_entry",
    "upsert_session_record",
    "billing_history",
]
