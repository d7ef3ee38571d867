"""Bridge step execution components."""

from typing import TYPE_CHECKING

from .models import Action, Chain, Estimate, Step, Token

if TYPE_CHECKING:  # pragma: no cover
    from .chain_registry import ChainRegistry
    from .manager import BridgeExecutionManager

__all__ = [
    "Action",
    "BridgeExecutionManager",
    "Chain",
    "ChainRegistry",
    "Estimate",
    "Step",
    "Token",
]


def __getattr__(name: str):  # pragma: no cover - simple thunk
    if name == "BridgeExecutionManager":
        from .manager import BridgeExecutionManager as _BridgeExecutionManager

        return _BridgeExecutionManager
    if name == "ChainRegistry":
        from .chain_registry import ChainRegistry as _ChainRegistry

        return _ChainRegistry
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
