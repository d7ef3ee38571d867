"""
Execution State Layer

Provides the records and helpers the bridge execution manager drives:
- Status / Process / Execution: the recorded progress of a step
- StatusManager: the only writer of those records
- SettlementPoller / repeat_until_done: destination-side settlement wait
- CancellationToken: cooperative stop flag
- Collaborator interfaces (wallet session, guards, transfer API)
"""

from .models import (
    Execution,
    ExecutionSettings,
    InvalidTransitionError,
    Process,
    Status,
    TransactionHandle,
)

from .cancellation import CancellationToken

from .status_manager import StatusManager

from .collaborators import (
    AllowanceGuard,
    BalanceGuard,
    ChainDirectory,
    ChainSwitchNegotiator,
    ChainSwitchResult,
    SwitchContinue,
    SwitchDeclined,
    TransferApiClient,
    WalletSession,
)

from .polling import SettlementPoller, repeat_until_done

__all__ = [
    # Models
    "Execution",
    "ExecutionSettings",
    "InvalidTransitionError",
    "Process",
    "Status",
    "TransactionHandle",
    # Cancellation
    "CancellationToken",
    # Recorder
    "StatusManager",
    # Collaborators
    "AllowanceGuard",
    "BalanceGuard",
    "ChainDirectory",
    "ChainSwitchNegotiator",
    "ChainSwitchResult",
    "SwitchContinue",
    "SwitchDeclined",
    "TransferApiClient",
    "WalletSession",
    # Polling
    "SettlementPoller",
    "repeat_until_done",
]
