"""Typed models used by the bridge subsystem."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from .constants import ChainId

if TYPE_CHECKING:  # pragma: no cover
    from ..execution.models import Execution


@dataclass
class Token:
    """Token identity as used by the transfer API."""

    address: str
    symbol: str = ""
    decimals: int = 18
    chain_id: Optional[ChainId] = None
    name: str = ""
    price_usd: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Token":
        return cls(
            address=data["address"],
            symbol=data.get("symbol", ""),
            decimals=int(data.get("decimals", 18)),
            chain_id=data.get("chainId"),
            name=data.get("name", ""),
            price_usd=data.get("priceUSD") or data.get("priceUsd"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "symbol": self.symbol,
            "decimals": self.decimals,
            "chainId": self.chain_id,
            "name": self.name,
            "priceUSD": self.price_usd,
        }


@dataclass
class Action:
    """What the step moves: source chain/token into destination chain/token."""

    from_chain_id: ChainId
    to_chain_id: ChainId
    from_token: Token
    to_token: Token
    from_amount: str                        # Smallest units
    from_address: Optional[str] = None
    to_address: Optional[str] = None
    slippage: float = 0.03

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Action":
        return cls(
            from_chain_id=data["fromChainId"],
            to_chain_id=data["toChainId"],
            from_token=Token.from_dict(data["fromToken"]),
            to_token=Token.from_dict(data["toToken"]),
            from_amount=str(data["fromAmount"]),
            from_address=data.get("fromAddress"),
            to_address=data.get("toAddress"),
            slippage=float(data.get("slippage", 0.03)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fromChainId": self.from_chain_id,
            "toChainId": self.to_chain_id,
            "fromToken": self.from_token.to_dict(),
            "toToken": self.to_token.to_dict(),
            "fromAmount": self.from_amount,
            "fromAddress": self.from_address,
            "toAddress": self.to_address,
            "slippage": self.slippage,
        }


@dataclass
class Estimate:
    """Quoted outcome of the step."""

    from_amount: str
    to_amount: str
    to_amount_min: str = "0"
    approval_address: str = ""              # Spender the allowance guard authorizes
    execution_duration: float = 0.0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Estimate":
        return cls(
            from_amount=str(data["fromAmount"]),
            to_amount=str(data["toAmount"]),
            to_amount_min=str(data.get("toAmountMin", "0")),
            approval_address=data.get("approvalAddress", ""),
            execution_duration=float(data.get("executionDuration", 0.0)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fromAmount": self.from_amount,
            "toAmount": self.to_amount,
            "toAmountMin": self.to_amount_min,
            "approvalAddress": self.approval_address,
            "executionDuration": self.execution_duration,
        }


@dataclass
class Step:
    """One hop of a cross-chain transfer. Owned by the caller."""

    id: str
    tool: str
    action: Action
    estimate: Estimate
    type: str = "cross"
    execution: Optional["Execution"] = None
    transaction_request: Optional[Dict[str, Any]] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Step":
        return cls(
            id=data["id"],
            tool=data["tool"],
            type=data.get("type", "cross"),
            action=Action.from_dict(data["action"]),
            estimate=Estimate.from_dict(data["estimate"]),
            transaction_request=data.get("transactionRequest"),
        )

    def to_dict(self, include_execution: bool = True) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "type": self.type,
            "tool": self.tool,
            "action": self.action.to_dict(),
            "estimate": self.estimate.to_dict(),
        }
        if self.transaction_request is not None:
            data["transactionRequest"] = self.transaction_request
        if include_execution and self.execution is not None:
            data["execution"] = self.execution.to_dict()
        return data


@dataclass
class Chain:
    """Chain metadata resolved by the chain directory."""

    id: ChainId
    key: str
    name: str
    native_token: Token
    block_explorer_urls: List[str] = field(default_factory=list)

    def is_native_token(self, address: str) -> bool:
        return address.lower() == self.native_token.address.lower()

    def tx_link(self, tx_hash: str) -> str:
        """Explorer URL for ``tx_hash`` (first configured explorer)."""
        if not self.block_explorer_urls:
            return ""
        return f"{self.block_explorer_urls[0].rstrip('/')}/tx/{tx_hash}"
