"""Simulation exception hierarchy.

Provides structured exceptions for fork, ledger and simulation operations
with clear classification for callers deciding whether to retry.

Exception hierarchy:
- SimulationError (base)
  - ForkUnavailable (fork tooling missing, not retryable)
  - ForkStartTimeout (fork never became reachable, not retried)
  - LedgerTransportError (RPC transport failure, retry is the caller's choice)
    - SnapshotReadError (transport failure while reading account/market state)
  - CallReverted (a simulated or replayed call reverted)
  - NoOrdersGenerated (strategy produced an empty order list)

CallReverted never escapes the public entry points: dry-run, forensics and
strategy batch turn it into success=False plus a revert reason.
"""

from __future__ import annotations

FOUNDRY_INSTALL_HINT = "Install Foundry: https://getfoundry.sh"


class SimulationError(Exception):
    """Base exception for all simulation errors."""

    pass


class ForkUnavailable(SimulationError):
    """Fork tooling binary is not installed or cannot be executed.

    Attributes:
        binary: Binary that was looked up
        hint: Actionable install hint
    """

    def __init__(self, binary: str, hint: str = FOUNDRY_INSTALL_HINT) -> None:
        self.binary = binary
        self.hint = hint
        super().__init__(f"{binary} not found. {hint}")


class ForkStartTimeout(SimulationError):
    """Forked ledger did not become reachable in time.

    Attributes:
        timeout_ms: Startup timeout in milliseconds
        detail: Extra context (stderr tail, exit code)
    """

    def __init__(self, timeout_ms: int, detail: str = "") -> None:
        self.timeout_ms = timeout_ms
        self.detail = detail
        msg = f"Fork failed to start within {timeout_ms}ms"
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(msg)


class LedgerTransportError(SimulationError):
    """RPC transport failure (connection refused, timeout, bad response).

    Attributes:
        op: Ledger operation that failed (call, get_receipt, ...)
    """

    def __init__(self, op: str, message: str | None = None) -> None:
        self.op = op
        super().__init__(message or f"Ledger transport failure during {op}")


class SnapshotReadError(LedgerTransportError):
    """Transport failure while reading account or market state."""

    pass


class CallReverted(SimulationError):
    """A simulated or replayed call reverted.

    Attributes:
        reason: Human-readable revert reason (decoded where possible)
        data: Raw revert data as hex string, if the node returned any
    """

    def __init__(self, reason: str, data: str | None = None) -> None:
        self.reason = reason
        self.data = data
        super().__init__(reason)


class NoOrdersGenerated(SimulationError):
    """Strategy generator returned no orders."""

    def __init__(self, strategy: str) -> None:
        self.strategy = strategy
        super().__init__(f"Strategy '{strategy}' generated no orders")
