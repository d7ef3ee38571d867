from .status import (
    StatusResponse,
    StepTransactionResponse,
    TokenInfo,
    TransactionInfo,
)

__all__ = [
    "StatusResponse",
    "StepTransactionResponse",
    "TokenInfo",
    "TransactionInfo",
]
