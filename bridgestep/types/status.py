from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    """Base for transfer API payloads (camelCase on the wire)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class TokenInfo(ApiModel):
    address: str = Field(description="Token contract address")
    symbol: str = Field(default="", description="Token ticker")
    decimals: int = Field(default=18, description="Token decimals")
    chain_id: Optional[int] = Field(default=None, description="Chain the token lives on")
    name: str = Field(default="", description="Token display name")
    price_usd: Optional[str] = Field(default=None, alias="priceUSD", description="Spot price in USD")


class TransactionInfo(ApiModel):
    tx_hash: Optional[str] = Field(default=None, description="Transaction hash")
    tx_link: Optional[str] = Field(default=None, description="Block explorer link")
    amount: Optional[str] = Field(default=None, description="Amount moved in smallest units")
    token: Optional[TokenInfo] = Field(default=None, description="Token moved")
    chain_id: Optional[int] = Field(default=None, description="Chain of the transaction")
    gas_used: Optional[str] = Field(default=None, description="Gas used by the transaction")


class StatusResponse(ApiModel):
    status: str = Field(description="PENDING, NOT_FOUND, DONE or FAILED")
    substatus: Optional[str] = Field(default=None, description="Finer-grained status detail")
    substatus_message: Optional[str] = Field(default=None, description="Human readable substatus")
    tool: Optional[str] = Field(default=None, description="Bridge that carried the transfer")
    sending: Optional[TransactionInfo] = Field(default=None, description="Source chain side")
    receiving: Optional[TransactionInfo] = Field(default=None, description="Destination chain side")


class StepTransactionResponse(ApiModel):
    id: Optional[str] = Field(default=None, description="Step identifier echoed by the API")
    tool: Optional[str] = Field(default=None, description="Bridge identifier")
    transaction_request: Optional[Dict[str, Any]] = Field(
        default=None,
        description="Ready to send transaction, absent when the API could not prepare one",
    )
