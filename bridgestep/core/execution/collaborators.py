"""
Collaborator interfaces used by the execution manager.

Wallet plumbing, allowance handling, balance checks and chain switching are
provided by the caller; only their contracts live here.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Optional, Union

from ..bridge.constants import ChainId
from ..bridge.models import Chain, Step, Token
from .cancellation import CancellationToken
from .models import SwitchChainHook, TransactionHandle

if TYPE_CHECKING:  # pragma: no cover
    from ...types import StatusResponse, StepTransactionResponse
    from .status_manager import StatusManager


class WalletSession(ABC):
    """Signs, broadcasts and looks up transactions for one user."""

    @abstractmethod
    async def get_address(self) -> str:
        """Address of the signer."""

    @abstractmethod
    async def send_transaction(self, request: Dict[str, Any]) -> TransactionHandle:
        """Sign and broadcast ``request``."""

    @abstractmethod
    async def get_transaction(self, tx_hash: str) -> Optional[TransactionHandle]:
        """Look up an already broadcast transaction."""

    @abstractmethod
    async def wait_for_transaction(self, handle: TransactionHandle) -> Any:
        """
        Wait until ``handle`` is included.

        Raises:
            TransactionReplacedError: If another transaction superseded it
        """


class ChainDirectory(ABC):
    """Resolves chain ids to chain metadata."""

    @abstractmethod
    async def get_chain_by_id(self, chain_id: ChainId) -> Chain:
        """Raises ``ChainNotFoundError`` for unknown chains."""


class AllowanceGuard(ABC):
    """Makes sure ``spender`` may move ``amount`` of ``token``."""

    @abstractmethod
    async def ensure(
        self,
        session: WalletSession,
        step: Step,
        chain: Chain,
        token: Token,
        amount: str,
        spender: str,
        status_manager: "StatusManager",
        infinite_approval: bool,
        cancellation: CancellationToken,
    ) -> None:
        pass


class BalanceGuard(ABC):
    """Verifies the signer can fund the step."""

    @abstractmethod
    async def ensure(self, session: WalletSession, step: Step) -> None:
        """Raises ``InsufficientBalanceError`` when funds are short."""


@dataclass(frozen=True)
class SwitchContinue:
    """Chain switch succeeded; continue with ``session``."""

    session: WalletSession


@dataclass(frozen=True)
class SwitchDeclined:
    """The user declined or cancelled the chain switch."""

    reason: Optional[str] = None


ChainSwitchResult = Union[SwitchContinue, SwitchDeclined]


class ChainSwitchNegotiator(ABC):
    """Attaches the session to the step's source chain."""

    @abstractmethod
    async def ensure(
        self,
        session: WalletSession,
        status_manager: "StatusManager",
        step: Step,
        switch_chain_hook: Optional[SwitchChainHook],
        cancellation: CancellationToken,
    ) -> ChainSwitchResult:
        pass


class TransferApiClient(ABC):
    """Prepares step transactions and reports settlement status."""

    @abstractmethod
    async def get_step_transaction(self, step: Step) -> "StepTransactionResponse":
        pass

    @abstractmethod
    async def get_status(
        self,
        tool: str,
        from_chain_id: ChainId,
        to_chain_id: ChainId,
        tx_hash: str,
    ) -> "StatusResponse":
        pass
