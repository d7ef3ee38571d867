"""Chain directory backed by built-in metadata and the transfer API chain list."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional

import httpx

from ...config import settings
from ..execution.collaborators import ChainDirectory
from ..recovery.errors import ChainNotFoundError
from .constants import CHAIN_METADATA, NATIVE_PLACEHOLDER, ChainId
from .models import Chain, Token

if TYPE_CHECKING:  # pragma: no cover
    from ...providers.transfer_api import TransferApiProvider


def _chain_from_metadata(chain_id: ChainId, details: Dict[str, Any]) -> Chain:
    return Chain(
        id=chain_id,
        key=details['key'],
        name=details['name'],
        native_token=Token(
            address=details.get('native_token', NATIVE_PLACEHOLDER),
            symbol=details.get('native_symbol', ''),
            decimals=details.get('native_decimals', 18),
            chain_id=chain_id,
        ),
        block_explorer_urls=list(details.get('explorers', [])),
    )


class ChainRegistry(ChainDirectory):
    """Chain metadata with caching.

    Starts from ``CHAIN_METADATA``. When a transfer API provider is given the
    registry refreshes from its ``/chains`` endpoint; remote entries override
    built-in ones and stale data is kept if a refresh fails.

    Usage:
        registry = ChainRegistry(transfer_api=TransferApiProvider())
        chain = await registry.get_chain_by_id(137)
        chain.tx_link("0xabc")  # "https://polygonscan.com/tx/0xabc"
    """

    def __init__(
        self,
        *,
        transfer_api: Optional["TransferApiProvider"] = None,
        cache_ttl_seconds: Optional[int] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._api = transfer_api
        self._cache_ttl = cache_ttl_seconds or settings.chain_cache_ttl_seconds
        self._logger = logger or logging.getLogger(__name__)

        self._chains: Dict[ChainId, Chain] = {
            chain_id: _chain_from_metadata(chain_id, details)
            for chain_id, details in CHAIN_METADATA.items()
        }
        self._last_refresh: Optional[datetime] = None
        self._loading = False

    async def ensure_loaded(self) -> bool:
        """Refresh from the API when stale. Returns True if any data is available."""
        if self._api is not None and self._needs_refresh():
            try:
                await self._refresh()
            except (httpx.HTTPError, ValueError, TypeError) as exc:
                self._logger.warning("Failed to refresh chain registry: %s", exc)
        return bool(self._chains)

    def _needs_refresh(self) -> bool:
        if self._last_refresh is None:
            return True
        elapsed = (datetime.now() - self._last_refresh).total_seconds()
        return elapsed > self._cache_ttl

    async def _refresh(self) -> None:
        if self._loading or self._api is None:
            return
        self._loading = True

        try:
            chains_data = await self._api.get_chains()
            loaded = self._process_chains(chains_data)
            self._last_refresh = datetime.now()
            self._logger.info("Chain registry refreshed: %d chains", loaded)
        finally:
            self._loading = False

    def _process_chains(self, chains_data: List[Dict[str, Any]]) -> int:
        """Merge raw chain entries into the registry; returns how many were used."""
        loaded = 0
        for raw in chains_data:
            chain_id = raw.get('id')
            if chain_id is None or raw.get('disabled', False):
                continue

            native = raw.get('nativeToken') or {}
            decimals = native.get('decimals')
            explorers = (raw.get('metamask') or {}).get('blockExplorerUrls') or []
            fallback = CHAIN_METADATA.get(chain_id, {})

            self._chains[chain_id] = Chain(
                id=chain_id,
                key=raw.get('key') or fallback.get('key', str(chain_id)),
                name=raw.get('name') or fallback.get('name', str(chain_id)),
                native_token=Token(
                    address=native.get('address') or fallback.get('native_token', NATIVE_PLACEHOLDER),
                    symbol=native.get('symbol') or raw.get('coin') or fallback.get('native_symbol', ''),
                    decimals=int(decimals if decimals is not None else fallback.get('native_decimals', 18)),
                    chain_id=chain_id,
                    name=native.get('name', ''),
                ),
                block_explorer_urls=list(explorers) or list(fallback.get('explorers', [])),
            )
            loaded += 1
        return loaded

    async def get_chain_by_id(self, chain_id: ChainId) -> Chain:
        await self.ensure_loaded()
        chain = self._chains.get(chain_id)
        if chain is None:
            raise ChainNotFoundError(chain_id)
        return chain

    def get_supported_chains(self) -> List[Chain]:
        return sorted(self._chains.values(), key=lambda c: str(c.name).lower())
