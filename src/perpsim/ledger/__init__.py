"""Ledger access: JSON-RPC clients and forked ledgers."""

from perpsim.ledger.client import (
    LedgerClient,
    RawLog,
    Receipt,
    TransactionInfo,
    TxRequest,
    Web3LedgerClient,
)
from perpsim.ledger.fork import (
    AnvilForkManager,
    ForkHandle,
    ForkManager,
    find_free_port,
    fork_session,
    is_fork_tooling_installed,
)

__all__ = [
    "AnvilForkManager",
    "ForkHandle",
    "ForkManager",
    "LedgerClient",
    "RawLog",
    "Receipt",
    "TransactionInfo",
    "TxRequest",
    "Web3LedgerClient",
    "find_free_port",
    "fork_session",
    "is_fork_tooling_installed",
]
