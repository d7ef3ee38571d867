"""
Settlement polling.

``repeat_until_done`` is a plain repeat-with-delay combinator; the
``SettlementPoller`` builds the status probe on top of it.
"""

import asyncio
import time
from typing import Any, Awaitable, Callable, Optional, TypeVar

import httpx
import structlog
from pydantic import ValidationError

from ...config import settings
from ...types import StatusResponse
from ..bridge.constants import ChainId
from ..recovery.errors import PollTimeoutError, ServerError, SettlementFailedError
from .collaborators import TransferApiClient

T = TypeVar("T")

Probe = Callable[[], Awaitable[Optional[T]]]
Sleep = Callable[[float], Awaitable[Any]]
Clock = Callable[[], float]

_slog = structlog.stdlib.get_logger("bridgestep.settlement")


async def repeat_until_done(
    probe: Probe,
    interval_seconds: float,
    *,
    max_duration_seconds: Optional[float] = None,
    sleep: Sleep = asyncio.sleep,
    clock: Clock = time.monotonic,
) -> T:
    """
    Call ``probe`` until it returns something other than ``None``.

    Exceptions raised by ``probe`` end the loop immediately. With
    ``max_duration_seconds`` set, a ``PollTimeoutError`` is raised instead of
    sleeping past the ceiling.
    """
    started = clock()
    while True:
        result = await probe()
        if result is not None:
            return result

        elapsed = clock() - started
        if max_duration_seconds is not None and elapsed + interval_seconds > max_duration_seconds:
            raise PollTimeoutError(
                f"No terminal answer after {elapsed:.0f}s",
                elapsed_seconds=elapsed,
            )
        await sleep(interval_seconds)


class SettlementPoller:
    """Waits until the transfer API reports the destination side as settled."""

    PENDING_STATUSES = frozenset({"PENDING", "NOT_FOUND"})

    def __init__(
        self,
        transfer_api: TransferApiClient,
        *,
        interval_seconds: Optional[float] = None,
        max_duration_seconds: Optional[float] = None,
        sleep: Sleep = asyncio.sleep,
        clock: Clock = time.monotonic,
    ):
        self._api = transfer_api
        self.interval_seconds = (
            interval_seconds
            if interval_seconds is not None
            else settings.status_poll_interval_seconds
        )
        self.max_duration_seconds = (
            max_duration_seconds
            if max_duration_seconds is not None
            else settings.status_poll_max_duration_seconds
        )
        self._sleep = sleep
        self._clock = clock

    async def wait_for_receiving_transaction(
        self,
        tool: str,
        from_chain_id: ChainId,
        to_chain_id: ChainId,
        tx_hash: str,
    ) -> StatusResponse:
        """
        Block until the transfer is ``DONE`` and return the full status.

        Raises:
            SettlementFailedError: Backend reported ``FAILED``
            ServerError: ``DONE`` without receiving details
            PollTimeoutError: Configured ceiling exceeded
        """
        log = _slog.bind(tool=tool, from_chain=from_chain_id, to_chain=to_chain_id, tx_hash=tx_hash)
        attempts = 0

        async def probe() -> Optional[StatusResponse]:
            nonlocal attempts
            attempts += 1
            try:
                response = await self._api.get_status(tool, from_chain_id, to_chain_id, tx_hash)
            except (httpx.HTTPError, ValidationError, OSError, asyncio.TimeoutError) as exc:
                log.debug("settlement_probe_failed", attempt=attempts, error=str(exc))
                return None

            log.debug("settlement_probe", attempt=attempts, status=response.status, substatus=response.substatus)
            if response.status == "DONE":
                return response
            if response.status in self.PENDING_STATUSES:
                return None
            raise SettlementFailedError(
                response.substatus_message or f"Transfer reported {response.status}",
                tx_hash=tx_hash,
                substatus=response.substatus,
            )

        status = await repeat_until_done(
            probe,
            self.interval_seconds,
            max_duration_seconds=self.max_duration_seconds,
            sleep=self._sleep,
            clock=self._clock,
        )

        if status.receiving is None:
            raise ServerError("Status does not contain receiving information")

        log.info("settlement_done", attempts=attempts, receiving_tx=status.receiving.tx_hash)
        return status
