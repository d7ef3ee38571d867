"""BridgeExecutionManager drives one bridge step from approval to settlement."""

from __future__ import annotations

import logging
from typing import Callable, Optional

from ...config import settings as app_settings
from ...logging_config import step_context
from ...types import StatusResponse
from ..execution.cancellation import CancellationToken
from ..execution.collaborators import (
    AllowanceGuard,
    BalanceGuard,
    ChainDirectory,
    ChainSwitchNegotiator,
    SwitchDeclined,
    TransferApiClient,
    WalletSession,
)
from ..execution.models import (
    Execution,
    ExecutionSettings,
    Process,
    Status,
    TransactionHandle,
)
from ..execution.polling import SettlementPoller
from ..execution.status_manager import StatusManager
from ..recovery.errors import (
    ExecutionError,
    TransactionPreparationError,
    TransactionReplacedError,
    parse_wallet_error,
)
from .constants import (
    CROSS_PROCESS_ID,
    CROSS_PROCESS_MESSAGE,
    FUNDS_RECEIVED_MESSAGE,
    PREPARE_FAILED_MESSAGE,
    TRANSFER_STARTED_MESSAGE,
    WAIT_FAILED_MESSAGE,
    WAIT_FOR_TX_PROCESS_ID,
    WAIT_FOR_TX_PROCESS_MESSAGE,
)
from .models import Chain, Step, Token

ErrorParser = Callable[[BaseException, Step, Process], ExecutionError]


class BridgeExecutionManager:
    """Executes a single cross-chain step.

    Safe to call again after a crash: a crossing process that already carries
    a transaction hash is looked up instead of broadcast a second time, and
    one already confirmed goes straight to the settlement wait.
    Business failures are recorded on the execution before being raised;
    declined continuations return the execution unchanged.
    """

    def __init__(
        self,
        *,
        chain_directory: ChainDirectory,
        transfer_api: TransferApiClient,
        allowance_guard: AllowanceGuard,
        balance_guard: BalanceGuard,
        chain_switcher: ChainSwitchNegotiator,
        poller: Optional[SettlementPoller] = None,
        error_parser: ErrorParser = parse_wallet_error,
        cancellation: Optional[CancellationToken] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._logger = logger or logging.getLogger(__name__)
        self._chains = chain_directory
        self._api = transfer_api
        self._allowance = allowance_guard
        self._balance = balance_guard
        self._switcher = chain_switcher
        self._poller = poller or SettlementPoller(transfer_api)
        self._parse_error = error_parser
        self.cancellation = cancellation or CancellationToken()

    @property
    def should_continue(self) -> bool:
        return self.cancellation.should_continue

    def set_should_continue(self, value: bool) -> None:
        if value:
            self.cancellation.reset()
        else:
            self.cancellation.cancel()

    async def execute(
        self,
        *,
        session: WalletSession,
        step: Step,
        status_manager: StatusManager,
        settings: Optional[ExecutionSettings] = None,
    ) -> Execution:
        with step_context(step.id, step.tool):
            return await self._execute(session, step, status_manager, settings)

    async def _execute(
        self,
        session: WalletSession,
        step: Step,
        status_manager: StatusManager,
        settings: Optional[ExecutionSettings],
    ) -> Execution:
        settings = settings or ExecutionSettings(infinite_approval=app_settings.infinite_approval)
        action = step.action
        execution = status_manager.init_execution(step)
        if execution.is_terminal:
            self._logger.info(f"Step {step.id} already {execution.status.value}, nothing to do")
            return execution

        from_chain = await self._chains.get_chain_by_id(action.from_chain_id)
        to_chain = await self._chains.get_chain_by_id(action.to_chain_id)

        # Allowance (skipped once the transfer is broadcast)
        previous = execution.find_process(CROSS_PROCESS_ID)
        if previous is None or not previous.tx_hash:
            if not from_chain.is_native_token(action.from_token.address):
                try:
                    await self._allowance.ensure(
                        session,
                        step,
                        from_chain,
                        action.from_token,
                        action.from_amount,
                        step.estimate.approval_address,
                        status_manager,
                        settings.infinite_approval,
                        self.cancellation,
                    )
                except Exception:
                    if not execution.is_terminal:
                        status_manager.update_execution(step, Status.FAILED)
                    raise

        # Transaction
        cross_process = status_manager.find_or_create_process(
            CROSS_PROCESS_ID, step, CROSS_PROCESS_MESSAGE
        )

        if cross_process.status is Status.DONE:
            self._logger.info(
                f"Step {step.id}: transfer {cross_process.tx_hash} already confirmed, resuming settlement"
            )
        elif not await self._send_and_confirm(
            session, step, status_manager, settings, cross_process, from_chain
        ):
            return execution

        # Settlement
        wait_process = status_manager.find_or_create_process(
            WAIT_FOR_TX_PROCESS_ID, step, WAIT_FOR_TX_PROCESS_MESSAGE
        )
        status_manager.update_process(step, wait_process.id, Status.PENDING)

        try:
            status = await self._poller.wait_for_receiving_transaction(
                step.tool,
                from_chain.id,
                to_chain.id,
                cross_process.tx_hash,
            )
        except Exception as e:
            status_manager.update_process(
                step, wait_process.id, Status.FAILED,
                error_message=WAIT_FAILED_MESSAGE,
                error_code=_error_code(e),
            )
            status_manager.update_execution(step, Status.FAILED)
            raise

        self._complete(step, status_manager, wait_process, to_chain, status)
        return execution

    async def _send_and_confirm(
        self,
        session: WalletSession,
        step: Step,
        status_manager: StatusManager,
        settings: ExecutionSettings,
        cross_process: Process,
        from_chain: Chain,
    ) -> bool:
        """Broadcast (or look up) the crossing transaction and wait for it.

        Returns False when the user stopped before broadcasting.
        """
        try:
            if cross_process.tx_hash:
                tx = await session.get_transaction(cross_process.tx_hash)
                if tx is None:
                    raise LookupError(f"Transaction {cross_process.tx_hash} not found")
            else:
                await self._balance.ensure(session, step)

                await self._personalize_step(session, step)
                prepared = await self._api.get_step_transaction(step)
                transaction_request = prepared.transaction_request
                if not transaction_request:
                    status_manager.update_process(
                        step, cross_process.id, Status.FAILED,
                        error_message=PREPARE_FAILED_MESSAGE,
                    )
                    status_manager.update_execution(step, Status.FAILED)
                    raise TransactionPreparationError(PREPARE_FAILED_MESSAGE)
                step.transaction_request = transaction_request

                # The wallet may have moved to another chain since the quote
                switch = await self._switcher.ensure(
                    session,
                    status_manager,
                    step,
                    settings.switch_chain_hook,
                    self.cancellation,
                )
                if isinstance(switch, SwitchDeclined):
                    self._logger.info(f"Step {step.id}: chain switch declined, stopping")
                    return False
                session = switch.session

                status_manager.update_process(step, cross_process.id, Status.ACTION_REQUIRED)
                if not self.should_continue:
                    self._logger.info(f"Step {step.id}: cancelled before broadcast")
                    return False

                tx = await session.send_transaction(transaction_request)
                status_manager.update_process(
                    step, cross_process.id, Status.PENDING,
                    tx_hash=tx.hash,
                    tx_link=from_chain.tx_link(tx.hash),
                )

            await session.wait_for_transaction(tx)
        except TransactionPreparationError:
            raise
        except Exception as e:
            if isinstance(e, TransactionReplacedError) and e.replacement is not None:
                self._logger.info(
                    f"Step {step.id}: transaction {e.reason}, now tracking {e.replacement.hash}"
                )
                self._track_replacement(step, status_manager, cross_process, from_chain, e.replacement)
            else:
                parsed = self._record_failure(step, status_manager, cross_process, e)
                if parsed is e:
                    raise
                raise parsed from e

        status_manager.update_process(
            step, cross_process.id, Status.DONE,
            message=TRANSFER_STARTED_MESSAGE,
        )
        return True

    async def _personalize_step(self, session: WalletSession, step: Step) -> None:
        """Fill sender/recipient with the signer address when the quote left them open."""
        if step.action.from_address and step.action.to_address:
            return
        address = await session.get_address()
        step.action.from_address = step.action.from_address or address
        step.action.to_address = step.action.to_address or address

    def _track_replacement(
        self,
        step: Step,
        status_manager: StatusManager,
        process: Process,
        chain: Chain,
        replacement: TransactionHandle,
    ) -> None:
        status_manager.update_process(
            step, process.id, Status.PENDING,
            tx_hash=replacement.hash,
            tx_link=chain.tx_link(replacement.hash),
        )

    def _record_failure(
        self,
        step: Step,
        status_manager: StatusManager,
        process: Process,
        error: BaseException,
    ) -> ExecutionError:
        parsed = self._parse_error(error, step, process)
        status_manager.update_process(
            step, process.id, Status.FAILED,
            error_message=parsed.message,
            html_error_message=parsed.html_message,
            error_code=_error_code(parsed),
        )
        status_manager.update_execution(step, Status.FAILED)
        self._logger.error(f"Step {step.id} failed: {parsed.message} ({error})")
        return parsed

    def _complete(
        self,
        step: Step,
        status_manager: StatusManager,
        wait_process: Process,
        to_chain: Chain,
        status: StatusResponse,
    ) -> None:
        receiving = status.receiving
        status_manager.update_process(
            step, wait_process.id, Status.DONE,
            tx_hash=receiving.tx_hash,
            tx_link=to_chain.tx_link(receiving.tx_hash) if receiving.tx_hash else receiving.tx_link,
            message=FUNDS_RECEIVED_MESSAGE,
        )
        status_manager.update_execution(
            step, Status.DONE,
            from_amount=status.sending.amount if status.sending else None,
            to_amount=receiving.amount,
            to_token=Token.from_dict(receiving.token.model_dump(by_alias=True)) if receiving.token else None,
            gas_used=status.sending.gas_used if status.sending else None,
        )


def _error_code(error: BaseException) -> Optional[str]:
    code = getattr(error, "code", None)
    if code is None:
        return None
    return getattr(code, "value", str(code))
