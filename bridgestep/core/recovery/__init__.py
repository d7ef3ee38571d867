"""
Error Recovery Module

Provides the error taxonomy and the classification used to record
failures on an execution.
"""

from .errors import (
    ChainNotFoundError,
    ErrorCategory,
    ErrorContext,
    ExecutionError,
    InsufficientBalanceError,
    PollTimeoutError,
    ServerError,
    SettlementFailedError,
    TransactionPreparationError,
    TransactionReplacedError,
    WalletError,
    classify_error,
    parse_wallet_error,
)

__all__ = [
    "ChainNotFoundError",
    "ErrorCategory",
    "ErrorContext",
    "ExecutionError",
    "InsufficientBalanceError",
    "PollTimeoutError",
    "ServerError",
    "SettlementFailedError",
    "TransactionPreparationError",
    "TransactionReplacedError",
    "WalletError",
    "classify_error",
    "parse_wallet_error",
]
