"""
Execution state models.

An ``Execution`` hangs off a ``Step`` and records its progress as an ordered
list of ``Process`` entries. Both are only mutated through ``StatusManager``.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ..bridge.models import Token


class Status(str, Enum):
    """Lifecycle status shared by processes and executions."""

    STARTED = "STARTED"
    ACTION_REQUIRED = "ACTION_REQUIRED"   # Waiting on the user/wallet
    PENDING = "PENDING"                   # Submitted, waiting on the network
    DONE = "DONE"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (Status.DONE, Status.FAILED)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Process:
    """One named phase of an execution."""

    id: str
    message: str
    status: Status = Status.STARTED
    started_at: datetime = field(default_factory=_utcnow)
    done_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None

    # Transaction info
    tx_hash: Optional[str] = None
    tx_link: Optional[str] = None

    # Error info
    error_message: Optional[str] = None
    html_error_message: Optional[str] = None
    error_code: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "message": self.message,
            "status": self.status.value,
            "startedAt": self.started_at.isoformat(),
            "doneAt": self.done_at.isoformat() if self.done_at else None,
            "failedAt": self.failed_at.isoformat() if self.failed_at else None,
            "txHash": self.tx_hash,
            "txLink": self.tx_link,
            "errorMessage": self.error_message,
            "htmlErrorMessage": self.html_error_message,
            "errorCode": self.error_code,
        }


@dataclass
class Execution:
    """Run-time progress and outcome of a step."""

    status: Status = Status.PENDING
    process: List[Process] = field(default_factory=list)

    # Filled on completion
    from_amount: Optional[str] = None
    to_amount: Optional[str] = None
    to_token: Optional[Token] = None
    gas_used: Optional[str] = None

    def find_process(self, process_id: str) -> Optional[Process]:
        return next((p for p in self.process if p.id == process_id), None)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "process": [p.to_dict() for p in self.process],
            "fromAmount": self.from_amount,
            "toAmount": self.to_amount,
            "toToken": self.to_token.to_dict() if self.to_token else None,
            "gasUsed": self.gas_used,
        }


@dataclass
class TransactionHandle:
    """A transaction known to the wallet session."""

    hash: str
    raw: Any = None


SwitchChainHook = Callable[[Any], Awaitable[Any]]


@dataclass
class ExecutionSettings:
    """Caller preferences for a single execution."""

    infinite_approval: bool = False
    switch_chain_hook: Optional[SwitchChainHook] = None


class InvalidTransitionError(Exception):
    """Raised when a status change would break the execution state machine."""

    def __init__(
        self,
        from_status: Status,
        to_status: Status,
        message: Optional[str] = None,
    ):
        self.from_status = from_status
        self.to_status = to_status
        self.message = message or f"Cannot transition from {from_status.value} to {to_status.value}"
        super().__init__(self.message)
