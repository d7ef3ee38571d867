"""
Error Classification

Defines the error taxonomy for bridge step execution and the translation of
raw wallet/provider failures into a closed set of categories.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from html import escape
from typing import TYPE_CHECKING, Any, Dict, Optional

if TYPE_CHECKING:  # pragma: no cover
    from ..bridge.models import Step
    from ..execution.models import Process, TransactionHandle


class ErrorCategory(str, Enum):
    """Categories of errors recorded on a failed process."""

    NETWORK = "network"           # Network/connectivity issues
    RATE_LIMIT = "rate_limit"     # API rate limits
    TIMEOUT = "timeout"           # Operation timed out
    INSUFFICIENT_FUNDS = "insufficient_funds"  # Not enough balance
    TRANSACTION_REVERTED = "transaction_reverted"  # On-chain revert
    TRANSACTION_UNDERPRICED = "transaction_underpriced"  # Fee too low / nonce reuse
    USER_REJECTED = "user_rejected"  # Signature request declined in the wallet
    SLIPPAGE = "slippage"         # Slippage exceeded
    PROVIDER = "provider"         # Transfer API returned something unusable
    SETTLEMENT_FAILED = "settlement_failed"  # Destination side reported failure
    UNKNOWN = "unknown"           # Unclassified error


@dataclass
class ErrorContext:
    """Additional context about an error."""

    category: ErrorCategory = ErrorCategory.UNKNOWN
    recoverable: bool = True
    suggested_action: Optional[str] = None
    chain_id: Optional[int] = None
    tx_hash: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)


class ExecutionError(Exception):
    """
    Base class for failures recorded on an execution.

    ``code`` is always one of ``ErrorCategory`` so callers can branch on it
    without parsing messages.
    """

    def __init__(
        self,
        message: str,
        code: ErrorCategory = ErrorCategory.UNKNOWN,
        html_message: Optional[str] = None,
        context: Optional[ErrorContext] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.html_message = html_message or escape(message)
        self.context = context or ErrorContext(category=code)


class ServerError(ExecutionError):
    """The transfer API answered with something that cannot be used."""

    def __init__(self, message: str, context: Optional[ErrorContext] = None):
        super().__init__(
            message,
            code=ErrorCategory.PROVIDER,
            context=context or ErrorContext(category=ErrorCategory.PROVIDER, recoverable=False),
        )


class TransactionPreparationError(ServerError):
    """No transaction request could be prepared for the step."""


class InsufficientBalanceError(ExecutionError):
    """Signer does not hold enough funds for the step."""

    def __init__(
        self,
        message: str = "Insufficient balance",
        required: Optional[str] = None,
        available: Optional[str] = None,
        token: Optional[str] = None,
    ):
        super().__init__(
            message,
            code=ErrorCategory.INSUFFICIENT_FUNDS,
            context=ErrorContext(
                category=ErrorCategory.INSUFFICIENT_FUNDS,
                recoverable=False,
                suggested_action="Add funds to wallet or reduce transaction amount",
                details={
                    "required": required,
                    "available": available,
                    "token": token,
                },
            ),
        )


class WalletError(ExecutionError):
    """Submission or confirmation failure translated by ``parse_wallet_error``."""


class SettlementFailedError(ExecutionError):
    """The status backend reported the transfer as failed."""

    def __init__(
        self,
        message: str = "Transfer failed on the receiving chain",
        tx_hash: Optional[str] = None,
        substatus: Optional[str] = None,
    ):
        super().__init__(
            message,
            code=ErrorCategory.SETTLEMENT_FAILED,
            context=ErrorContext(
                category=ErrorCategory.SETTLEMENT_FAILED,
                recoverable=False,
                tx_hash=tx_hash,
                suggested_action="Contact support with the sending transaction hash",
                details={"substatus": substatus} if substatus else {},
            ),
        )


class PollTimeoutError(ExecutionError):
    """A bounded poll gave up before a terminal answer arrived."""

    def __init__(self, message: str = "Polling timed out", elapsed_seconds: Optional[float] = None):
        super().__init__(
            message,
            code=ErrorCategory.TIMEOUT,
            context=ErrorContext(
                category=ErrorCategory.TIMEOUT,
                recoverable=True,
                suggested_action="Check the transfer status again later",
                details={"elapsed_seconds": elapsed_seconds} if elapsed_seconds is not None else {},
            ),
        )


class TransactionReplacedError(Exception):
    """
    Raised by a wallet session while waiting for a transaction that has been
    superseded by another one carrying the same intent (speed-up or cancel).
    """

    def __init__(
        self,
        replacement: Optional["TransactionHandle"],
        reason: str = "replaced",
        message: Optional[str] = None,
    ):
        self.replacement = replacement
        self.reason = reason
        super().__init__(message or f"Transaction {reason}")


class ChainNotFoundError(KeyError):
    """Requested chain is not known to the chain directory."""

    def __init__(self, chain_id: Any):
        self.chain_id = chain_id
        super().__init__(f"Unknown chain: {chain_id}")


# EIP-1193 "user rejected request" and the ethers.js equivalent
USER_REJECTED_CODES = {4001, "4001", "ACTION_REJECTED"}

_PATTERNS = (
    (ErrorCategory.USER_REJECTED, ("user rejected", "user denied", "rejected by user", "request rejected")),
    (ErrorCategory.RATE_LIMIT, ("rate limit", "too many requests", "429", "throttl", "quota exceeded")),
    (ErrorCategory.INSUFFICIENT_FUNDS, ("insufficient", "not enough", "balance too low", "exceeds balance")),
    (ErrorCategory.TRANSACTION_UNDERPRICED, ("underpriced", "nonce too low", "replacement fee too low", "max fee per gas less than")),
    (ErrorCategory.SLIPPAGE, ("slippage", "price impact", "price changed")),
    (ErrorCategory.TRANSACTION_REVERTED, ("revert", "execution reverted", "transaction failed", "out of gas")),
    (ErrorCategory.TIMEOUT, ("timeout", "timed out", "deadline")),
    (ErrorCategory.NETWORK, ("connection", "network", "unreachable", "refused", "dns", "socket", "ssl")),
)

_RECOVERABLE = {
    ErrorCategory.NETWORK,
    ErrorCategory.RATE_LIMIT,
    ErrorCategory.TIMEOUT,
    ErrorCategory.SLIPPAGE,
    ErrorCategory.TRANSACTION_UNDERPRICED,
    ErrorCategory.USER_REJECTED,
    ErrorCategory.UNKNOWN,
}

_SUGGESTED_ACTIONS = {
    ErrorCategory.USER_REJECTED: "Approve the request in your wallet to continue",
    ErrorCategory.RATE_LIMIT: "Wait before retrying",
    ErrorCategory.INSUFFICIENT_FUNDS: "Add funds to wallet",
    ErrorCategory.TRANSACTION_UNDERPRICED: "Retry with a higher gas price",
    ErrorCategory.SLIPPAGE: "Request a new quote",
    ErrorCategory.TRANSACTION_REVERTED: "Review transaction parameters",
    ErrorCategory.TIMEOUT: "Retry with longer timeout",
    ErrorCategory.NETWORK: "Check network connectivity",
}

_USER_MESSAGES = {
    ErrorCategory.USER_REJECTED: "The transaction was rejected in the wallet.",
    ErrorCategory.RATE_LIMIT: "Too many requests were sent. Please try again shortly.",
    ErrorCategory.INSUFFICIENT_FUNDS: "Your wallet does not hold enough funds to pay for this transaction.",
    ErrorCategory.TRANSACTION_UNDERPRICED: "The transaction was underpriced and could not be accepted.",
    ErrorCategory.SLIPPAGE: "The price moved beyond the allowed slippage.",
    ErrorCategory.TRANSACTION_REVERTED: "The transaction was reverted.",
    ErrorCategory.TIMEOUT: "The transaction timed out.",
    ErrorCategory.NETWORK: "A network error occurred while talking to the wallet.",
    ErrorCategory.UNKNOWN: "An unknown error occurred.",
}


def classify_error(error: BaseException) -> ErrorContext:
    """
    Classify an exception and return its error context.

    Already typed ``ExecutionError`` instances keep their own context;
    everything else is matched on its ``code`` attribute and message.
    """
    if isinstance(error, ExecutionError):
        return error.context

    code = getattr(error, "code", None)
    if code in USER_REJECTED_CODES:
        category = ErrorCategory.USER_REJECTED
    else:
        message = str(error).lower()
        category = next(
            (cat for cat, patterns in _PATTERNS if any(p in message for p in patterns)),
            ErrorCategory.UNKNOWN,
        )

    return ErrorContext(
        category=category,
        recoverable=category in _RECOVERABLE,
        suggested_action=_SUGGESTED_ACTIONS.get(category, "Retry operation"),
    )


def parse_wallet_error(
    error: BaseException,
    step: Optional["Step"] = None,
    process: Optional["Process"] = None,
) -> ExecutionError:
    """
    Translate a raw wallet/provider exception into an ``ExecutionError``.

    Pure function: nothing is recorded here. The HTML message links the
    process transaction when one is known.
    """
    if isinstance(error, ExecutionError):
        return error

    context = classify_error(error)
    if process is not None:
        context.tx_hash = process.tx_hash
    if step is not None:
        context.chain_id = step.action.from_chain_id
    context.details.setdefault("raw", str(error))

    message = _USER_MESSAGES.get(context.category, _USER_MESSAGES[ErrorCategory.UNKNOWN])
    html_message = escape(message)
    if process is not None and process.tx_link:
        html_message += (
            f'<br>Transaction: <a href="{escape(process.tx_link)}" target="_blank" '
            f'rel="nofollow noreferrer">{escape(process.tx_hash or process.tx_link)}</a>'
        )
    if context.suggested_action:
        html_message += f"<br>{escape(context.suggested_action)}."

    wallet_error = WalletError(
        message,
        code=context.category,
        html_message=html_message,
        context=context,
    )
    wallet_error.__cause__ = error
    return wallet_error
