"""Async client for the transfer quoting/status API."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx

from ..config import settings
from ..core.bridge.constants import ChainId
from ..core.bridge.models import Step
from ..core.execution.collaborators import TransferApiClient
from ..types import StatusResponse, StepTransactionResponse
from .base import Provider


class TransferApiProvider(Provider, TransferApiClient):
    """Thin wrapper around the transfer API endpoints the executor needs."""

    name = "transfer_api"

    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout_s: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or settings.transfer_api_base_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.transfer_api_key
        self.timeout_s = timeout_s or settings.request_timeout_seconds
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {
            "accept": "application/json",
            "content-type": "application/json",
            "user-agent": "bridgestep/0.1",
        }
        if self.api_key:
            headers["x-lifi-api-key"] = self.api_key
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout_s,
            transport=self._transport,
        ) as client:
            response = await client.request(method, path, json=json, params=params, headers=self._headers())
            response.raise_for_status()
            return response

    async def get_step_transaction(self, step: Step) -> StepTransactionResponse:
        """Ask the API to populate ``transactionRequest`` for ``step``."""

        resp = await self._request(
            "POST",
            "/advanced/stepTransaction",
            json=step.to_dict(include_execution=False),
        )
        return StepTransactionResponse.model_validate(resp.json())

    async def get_status(
        self,
        tool: str,
        from_chain_id: ChainId,
        to_chain_id: ChainId,
        tx_hash: str,
    ) -> StatusResponse:
        """Cross-chain settlement status for a source transaction."""

        params = {
            "bridge": tool,
            "fromChain": from_chain_id,
            "toChain": to_chain_id,
            "txHash": tx_hash,
        }
        resp = await self._request("GET", "/status", params=params)
        return StatusResponse.model_validate(resp.json())

    async def get_chains(self) -> List[Dict[str, Any]]:
        """Raw chain list used by the chain registry."""

        resp = await self._request("GET", "/chains")
        payload = resp.json()
        if isinstance(payload, dict):
            return list(payload.get("chains") or [])
        return list(payload or [])

    async def ready(self) -> bool:
        return bool(self.base_url)

    async def health_check(self) -> Dict[str, Any]:
        try:
            chains = await self.get_chains()
        except httpx.HTTPError as exc:
            return {"status": "error", "error": str(exc)}
        return {"status": "ok", "chains": len(chains)}
