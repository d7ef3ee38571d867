"""
Tests for the Bridge Execution Manager

Covers sequencing, resumability, cancellation, replacement handling and
failure recording for a single bridge step.
"""

import pytest
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock

from bridgestep.core.bridge.chain_registry import ChainRegistry
from bridgestep.core.bridge.constants import (
    CROSS_PROCESS_ID,
    NATIVE_PLACEHOLDER,
    WAIT_FOR_TX_PROCESS_ID,
)
from bridgestep.core.bridge.manager import BridgeExecutionManager
from bridgestep.core.bridge.models import Action, Estimate, Step, Token
from bridgestep.core.execution import (
    ExecutionSettings,
    SettlementPoller,
    Status,
    StatusManager,
    SwitchContinue,
    SwitchDeclined,
    TransactionHandle,
    TransferApiClient,
    WalletSession,
)
from bridgestep.core.recovery.errors import (
    ErrorCategory,
    InsufficientBalanceError,
    SettlementFailedError,
    TransactionPreparationError,
    TransactionReplacedError,
    WalletError,
)
from bridgestep.types import StatusResponse, StepTransactionResponse


USER = "0x1111111111111111111111111111111111111111"
SPENDER = "0x2222222222222222222222222222222222222222"
TX_REQUEST = {"to": SPENDER, "data": "0xdeadbeef", "value": "0x0", "chainId": 137}


# =============================================================================
# Fakes
# =============================================================================

class FakeSession(WalletSession):
    """Wallet session that records every call."""

    def __init__(self, send_hash: str = "0xsent", wait_error: Optional[Exception] = None,
                 send_error: Optional[Exception] = None):
        self.send_hash = send_hash
        self.wait_error = wait_error
        self.send_error = send_error
        self.sent: List[Dict[str, Any]] = []
        self.looked_up: List[str] = []
        self.waited: List[str] = []

    async def get_address(self) -> str:
        return USER

    async def send_transaction(self, request):
        if self.send_error:
            raise self.send_error
        self.sent.append(request)
        return TransactionHandle(hash=self.send_hash)

    async def get_transaction(self, tx_hash):
        self.looked_up.append(tx_hash)
        return TransactionHandle(hash=tx_hash)

    async def wait_for_transaction(self, handle):
        self.waited.append(handle.hash)
        if self.wait_error:
            raise self.wait_error
        return {"status": 1}


class FakeTransferApi(TransferApiClient):
    """Transfer API returning scripted status responses."""

    def __init__(self, statuses: List[Any], transaction_request: Optional[Dict[str, Any]] = TX_REQUEST):
        self.statuses = list(statuses)
        self.transaction_request = transaction_request
        self.prepared: List[Step] = []
        self.status_calls: List[tuple] = []

    async def get_step_transaction(self, step):
        self.prepared.append(step)
        return StepTransactionResponse(transaction_request=self.transaction_request)

    async def get_status(self, tool, from_chain_id, to_chain_id, tx_hash):
        self.status_calls.append((tool, from_chain_id, to_chain_id, tx_hash))
        item = self.statuses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


def done_status(sending_hash: str = "0xsent") -> StatusResponse:
    return StatusResponse.model_validate({
        "status": "DONE",
        "tool": "hop",
        "sending": {
            "txHash": sending_hash,
            "amount": "1000000",
            "chainId": 137,
            "gasUsed": "21000",
        },
        "receiving": {
            "txHash": "0xrecv",
            "amount": "990000",
            "chainId": 42161,
            "token": {
                "address": "0xaf88d065e77c8cC2239327C5EDb3A432268e5831",
                "symbol": "USDC",
                "decimals": 6,
                "chainId": 42161,
                "priceUSD": "1.00",
            },
        },
    })


def pending_status(status: str = "PENDING") -> StatusResponse:
    return StatusResponse(status=status)


def make_step(from_token_address: str = "0x2791Bca1f2de4661ED88A30C99A7a9449Aa84174") -> Step:
    return Step(
        id="step-1",
        tool="hop",
        action=Action(
            from_chain_id=137,
            to_chain_id=42161,
            from_token=Token(address=from_token_address, symbol="USDC", decimals=6, chain_id=137),
            to_token=Token(address="0xaf88d065e77c8cC2239327C5EDb3A432268e5831", symbol="USDC",
                           decimals=6, chain_id=42161),
            from_amount="1000000",
        ),
        estimate=Estimate(
            from_amount="1000000",
            to_amount="990000",
            to_amount_min="985000",
            approval_address=SPENDER,
        ),
    )


def make_manager(api: FakeTransferApi, session: FakeSession, switch_result=None):
    allowance = AsyncMock()
    balance = AsyncMock()
    switcher = AsyncMock()
    switcher.ensure.return_value = switch_result or SwitchContinue(session)
    poller = SettlementPoller(api, interval_seconds=5, sleep=AsyncMock())
    manager = BridgeExecutionManager(
        chain_directory=ChainRegistry(),
        transfer_api=api,
        allowance_guard=allowance,
        balance_guard=balance,
        chain_switcher=switcher,
        poller=poller,
    )
    return manager, allowance, balance, switcher


# =============================================================================
# Happy path
# =============================================================================

class TestHappyPath:
    """Full run from allowance to settlement."""

    @pytest.mark.asyncio
    async def test_execution_completes(self):
        session = FakeSession()
        api = FakeTransferApi([pending_status("NOT_FOUND"), done_status()])
        manager, allowance, balance, switcher = make_manager(api, session)
        step = make_step()

        execution = await manager.execute(session=session, step=step, status_manager=StatusManager())

        assert execution is step.execution
        assert execution.status == Status.DONE
        assert execution.from_amount == "1000000"
        assert execution.to_amount == "990000"
        assert execution.to_token.symbol == "USDC"
        assert execution.to_token.chain_id == 42161
        assert execution.gas_used == "21000"

        cross = execution.find_process(CROSS_PROCESS_ID)
        assert cross.status == Status.DONE
        assert cross.tx_hash == "0xsent"
        assert cross.tx_link == "https://polygonscan.com/tx/0xsent"
        assert cross.message == "Transfer started: "

        wait = execution.find_process(WAIT_FOR_TX_PROCESS_ID)
        assert wait.status == Status.DONE
        assert wait.tx_hash == "0xrecv"
        assert wait.tx_link == "https://arbiscan.io/tx/0xrecv"
        assert wait.message == "Funds Received:"

        assert session.sent == [TX_REQUEST]
        assert api.status_calls == [("hop", 137, 42161, "0xsent")] * 2
        balance.ensure.assert_awaited_once()
        switcher.ensure.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_allowance_receives_spender_and_live_token(self):
        session = FakeSession()
        api = FakeTransferApi([done_status()])
        manager, allowance, _, _ = make_manager(api, session)
        step = make_step()
        status_manager = StatusManager()

        await manager.execute(
            session=session,
            step=step,
            status_manager=status_manager,
            settings=ExecutionSettings(infinite_approval=True),
        )

        allowance.ensure.assert_awaited_once()
        args = allowance.ensure.call_args.args
        assert args[3] is step.action.from_token
        assert args[4] == "1000000"
        assert args[5] == SPENDER
        assert args[6] is status_manager
        assert args[7] is True
        assert args[8] is manager.cancellation

    @pytest.mark.asyncio
    async def test_step_is_personalized_with_signer(self):
        session = FakeSession()
        api = FakeTransferApi([done_status()])
        manager, _, _, _ = make_manager(api, session)
        step = make_step()

        await manager.execute(session=session, step=step, status_manager=StatusManager())

        assert step.action.from_address == USER
        assert step.action.to_address == USER
        assert step.transaction_request == TX_REQUEST

    @pytest.mark.asyncio
    async def test_native_token_skips_allowance(self):
        session = FakeSession()
        api = FakeTransferApi([done_status()])
        manager, allowance, _, _ = make_manager(api, session)
        step = make_step(from_token_address=NATIVE_PLACEHOLDER)

        execution = await manager.execute(session=session, step=step, status_manager=StatusManager())

        allowance.ensure.assert_not_awaited()
        assert execution.status == Status.DONE


# =============================================================================
# Resume
# =============================================================================

class TestResume:
    """Re-invocation after the transaction was broadcast."""

    @pytest.mark.asyncio
    async def test_existing_hash_is_looked_up_not_resent(self):
        session = FakeSession()
        api = FakeTransferApi([pending_status(), done_status("0xold")])
        manager, allowance, balance, switcher = make_manager(api, session)
        step = make_step()
        status_manager = StatusManager()
        status_manager.init_execution(step)
        status_manager.find_or_create_process(CROSS_PROCESS_ID, step, "Prepare Transaction")
        status_manager.update_process(step, CROSS_PROCESS_ID, Status.PENDING, tx_hash="0xold")

        execution = await manager.execute(session=session, step=step, status_manager=status_manager)

        allowance.ensure.assert_not_awaited()
        balance.ensure.assert_not_awaited()
        switcher.ensure.assert_not_awaited()
        assert api.prepared == []
        assert session.sent == []
        assert session.looked_up == ["0xold"]
        assert session.waited == ["0xold"]
        assert api.status_calls[-1][3] == "0xold"
        assert execution.status == Status.DONE

    @pytest.mark.asyncio
    async def test_resume_keeps_process_history(self):
        session = FakeSession()
        api = FakeTransferApi([done_status("0xold")])
        manager, _, _, _ = make_manager(api, session)
        step = make_step()
        status_manager = StatusManager()
        status_manager.init_execution(step)
        status_manager.find_or_create_process("allowanceProcess", step, "Set Allowance")
        status_manager.update_process(step, "allowanceProcess", Status.DONE)
        status_manager.find_or_create_process(CROSS_PROCESS_ID, step, "Prepare Transaction")
        status_manager.update_process(step, CROSS_PROCESS_ID, Status.PENDING, tx_hash="0xold")

        execution = await manager.execute(session=session, step=step, status_manager=status_manager)

        assert [p.id for p in execution.process] == [
            "allowanceProcess",
            CROSS_PROCESS_ID,
            WAIT_FOR_TX_PROCESS_ID,
        ]

    @pytest.mark.asyncio
    async def test_confirmed_crossing_goes_straight_to_settlement(self):
        session = FakeSession(wait_error=ConnectionError("rpc reset"))
        api = FakeTransferApi([done_status("0xold")])
        manager, allowance, _, _ = make_manager(api, session)
        step = make_step()
        status_manager = StatusManager()
        status_manager.init_execution(step)
        status_manager.find_or_create_process(CROSS_PROCESS_ID, step, "Prepare Transaction")
        status_manager.update_process(step, CROSS_PROCESS_ID, Status.PENDING, tx_hash="0xold")
        status_manager.update_process(step, CROSS_PROCESS_ID, Status.DONE)
        status_manager.find_or_create_process(WAIT_FOR_TX_PROCESS_ID, step, "Wait for Receiving Chain")
        status_manager.update_process(step, WAIT_FOR_TX_PROCESS_ID, Status.PENDING)

        execution = await manager.execute(session=session, step=step, status_manager=status_manager)

        allowance.ensure.assert_not_awaited()
        assert session.looked_up == []
        assert session.waited == []
        assert api.status_calls == [("hop", 137, 42161, "0xold")]
        assert execution.status == Status.DONE
        assert execution.find_process(CROSS_PROCESS_ID).status == Status.DONE

    @pytest.mark.asyncio
    async def test_confirmed_crossing_settlement_failure_is_recorded(self):
        session = FakeSession(wait_error=ConnectionError("rpc reset"))
        api = FakeTransferApi([StatusResponse(status="FAILED", substatus="REFUNDED")])
        manager, _, _, _ = make_manager(api, session)
        step = make_step()
        status_manager = StatusManager()
        status_manager.init_execution(step)
        status_manager.find_or_create_process(CROSS_PROCESS_ID, step, "Prepare Transaction")
        status_manager.update_process(step, CROSS_PROCESS_ID, Status.PENDING, tx_hash="0xold")
        status_manager.update_process(step, CROSS_PROCESS_ID, Status.DONE)

        with pytest.raises(SettlementFailedError):
            await manager.execute(session=session, step=step, status_manager=status_manager)

        assert step.execution.status == Status.FAILED
        assert step.execution.find_process(CROSS_PROCESS_ID).status == Status.DONE
        assert step.execution.find_process(WAIT_FOR_TX_PROCESS_ID).status == Status.FAILED

    @pytest.mark.asyncio
    async def test_terminal_execution_is_returned_unchanged(self):
        session = FakeSession()
        api = FakeTransferApi([done_status()])
        manager, allowance, _, _ = make_manager(api, session)
        step = make_step()
        await manager.execute(session=session, step=step, status_manager=StatusManager())
        allowance.reset_mock()

        execution = await manager.execute(session=session, step=step, status_manager=StatusManager())

        assert execution.status == Status.DONE
        allowance.ensure.assert_not_awaited()
        assert len(session.sent) == 1


# =============================================================================
# Cancellation
# =============================================================================

class TestCancellation:
    """Declined chain switch and cancellation checkpoint."""

    @pytest.mark.asyncio
    async def test_cancel_before_broadcast_stops(self):
        session = FakeSession()
        api = FakeTransferApi([done_status()])
        manager, _, _, switcher = make_manager(api, session)

        async def cancel_during_switch(*args, **kwargs):
            manager.set_should_continue(False)
            return SwitchContinue(session)

        switcher.ensure.side_effect = cancel_during_switch
        step = make_step()

        execution = await manager.execute(session=session, step=step, status_manager=StatusManager())

        assert session.sent == []
        assert api.status_calls == []
        cross = execution.find_process(CROSS_PROCESS_ID)
        assert cross.status == Status.ACTION_REQUIRED
        assert cross.tx_hash is None
        assert execution.status == Status.PENDING

    @pytest.mark.asyncio
    async def test_cancelled_run_can_be_resumed(self):
        session = FakeSession()
        api = FakeTransferApi([done_status()])
        manager, _, _, _ = make_manager(api, session)
        manager.set_should_continue(False)
        step = make_step()
        status_manager = StatusManager()

        await manager.execute(session=session, step=step, status_manager=status_manager)
        manager.set_should_continue(True)
        execution = await manager.execute(session=session, step=step, status_manager=status_manager)

        assert manager.should_continue is True
        assert len(session.sent) == 1
        assert execution.status == Status.DONE

    @pytest.mark.asyncio
    async def test_declined_chain_switch_returns_unchanged(self):
        session = FakeSession()
        api = FakeTransferApi([done_status()])
        manager, _, _, _ = make_manager(api, session, switch_result=SwitchDeclined("user closed dialog"))
        step = make_step()

        execution = await manager.execute(session=session, step=step, status_manager=StatusManager())

        assert session.sent == []
        assert execution.status == Status.PENDING
        assert execution.find_process(CROSS_PROCESS_ID).status == Status.STARTED

    @pytest.mark.asyncio
    async def test_switched_session_is_used_for_broadcast(self):
        original = FakeSession()
        switched = FakeSession(send_hash="0xswitched")
        api = FakeTransferApi([done_status("0xswitched")])
        manager, _, _, _ = make_manager(api, original, switch_result=SwitchContinue(switched))
        step = make_step()

        execution = await manager.execute(session=original, step=step, status_manager=StatusManager())

        assert original.sent == []
        assert switched.sent == [TX_REQUEST]
        assert execution.find_process(CROSS_PROCESS_ID).tx_hash == "0xswitched"


# =============================================================================
# Replacement
# =============================================================================

class TestReplacement:
    """Wallet-level transaction replacement."""

    @pytest.mark.asyncio
    async def test_replacement_tracked_as_pending(self):
        replaced = TransactionReplacedError(TransactionHandle(hash="0xnew"), reason="repriced")
        session = FakeSession(wait_error=replaced)
        api = FakeTransferApi([done_status("0xnew")])
        manager, _, _, _ = make_manager(api, session)
        history: List[tuple] = []

        def record(snapshot: Step) -> None:
            process = snapshot.execution.find_process(CROSS_PROCESS_ID)
            if process is not None:
                history.append((process.status, process.tx_hash))

        step = make_step()
        execution = await manager.execute(
            session=session,
            step=step,
            status_manager=StatusManager(update_callback=record),
        )

        assert (Status.PENDING, "0xsent") in history
        assert (Status.PENDING, "0xnew") in history
        assert execution.status != Status.FAILED
        cross = execution.find_process(CROSS_PROCESS_ID)
        assert cross.tx_hash == "0xnew"
        assert cross.tx_link == "https://polygonscan.com/tx/0xnew"
        assert api.status_calls[0][3] == "0xnew"

    @pytest.mark.asyncio
    async def test_replacement_without_reference_fails(self):
        session = FakeSession(wait_error=TransactionReplacedError(None, reason="cancelled"))
        api = FakeTransferApi([done_status()])
        manager, _, _, _ = make_manager(api, session)
        step = make_step()

        with pytest.raises(WalletError):
            await manager.execute(session=session, step=step, status_manager=StatusManager())

        assert step.execution.status == Status.FAILED


# =============================================================================
# Failures
# =============================================================================

class TestFailures:
    """Failures are recorded before they are raised."""

    @pytest.mark.asyncio
    async def test_missing_transaction_request(self):
        session = FakeSession()
        api = FakeTransferApi([], transaction_request=None)
        manager, _, _, switcher = make_manager(api, session)
        step = make_step()

        with pytest.raises(TransactionPreparationError) as exc_info:
            await manager.execute(session=session, step=step, status_manager=StatusManager())

        assert exc_info.value.message == "Unable to prepare Transaction"
        assert step.execution.status == Status.FAILED
        cross = step.execution.find_process(CROSS_PROCESS_ID)
        assert cross.status == Status.FAILED
        assert cross.error_message == "Unable to prepare Transaction"
        switcher.ensure.assert_not_awaited()
        assert session.sent == []

    @pytest.mark.asyncio
    async def test_confirmation_revert_is_classified(self):
        cause = RuntimeError("execution reverted: STF")
        session = FakeSession(wait_error=cause)
        api = FakeTransferApi([])
        manager, _, _, _ = make_manager(api, session)
        step = make_step()

        with pytest.raises(WalletError) as exc_info:
            await manager.execute(session=session, step=step, status_manager=StatusManager())

        assert exc_info.value.code == ErrorCategory.TRANSACTION_REVERTED
        assert exc_info.value.__cause__ is cause
        cross = step.execution.find_process(CROSS_PROCESS_ID)
        assert cross.status == Status.FAILED
        assert cross.error_code == "transaction_reverted"
        assert "https://polygonscan.com/tx/0xsent" in cross.html_error_message
        assert step.execution.status == Status.FAILED
        assert api.status_calls == []

    @pytest.mark.asyncio
    async def test_user_rejection_on_send(self):
        class RejectedError(Exception):
            code = 4001

        session = FakeSession(send_error=RejectedError("MetaMask Tx Signature: denied"))
        api = FakeTransferApi([])
        manager, _, _, _ = make_manager(api, session)
        step = make_step()

        with pytest.raises(WalletError) as exc_info:
            await manager.execute(session=session, step=step, status_manager=StatusManager())

        assert exc_info.value.code == ErrorCategory.USER_REJECTED
        assert step.execution.find_process(CROSS_PROCESS_ID).error_code == "user_rejected"

    @pytest.mark.asyncio
    async def test_insufficient_balance_passes_through(self):
        session = FakeSession()
        api = FakeTransferApi([])
        manager, _, balance, _ = make_manager(api, session)
        error = InsufficientBalanceError(required="1000000", available="10", token="USDC")
        balance.ensure.side_effect = error
        step = make_step()

        with pytest.raises(InsufficientBalanceError) as exc_info:
            await manager.execute(session=session, step=step, status_manager=StatusManager())

        assert exc_info.value is error
        assert api.prepared == []
        cross = step.execution.find_process(CROSS_PROCESS_ID)
        assert cross.error_code == "insufficient_funds"
        assert step.execution.status == Status.FAILED

    @pytest.mark.asyncio
    async def test_allowance_failure_marks_execution_failed(self):
        session = FakeSession()
        api = FakeTransferApi([])
        manager, allowance, _, _ = make_manager(api, session)
        allowance.ensure.side_effect = RuntimeError("approval rejected")
        step = make_step()

        with pytest.raises(RuntimeError):
            await manager.execute(session=session, step=step, status_manager=StatusManager())

        assert step.execution.status == Status.FAILED
        assert step.execution.find_process(CROSS_PROCESS_ID) is None

    @pytest.mark.asyncio
    async def test_settlement_failure_is_recorded(self):
        session = FakeSession()
        api = FakeTransferApi([pending_status(), StatusResponse(status="FAILED", substatus="REFUNDED")])
        manager, _, _, _ = make_manager(api, session)
        step = make_step()

        with pytest.raises(SettlementFailedError):
            await manager.execute(session=session, step=step, status_manager=StatusManager())

        assert step.execution.find_process(CROSS_PROCESS_ID).status == Status.DONE
        wait = step.execution.find_process(WAIT_FOR_TX_PROCESS_ID)
        assert wait.status == Status.FAILED
        assert wait.error_message == "Failed waiting"
        assert wait.error_code == "settlement_failed"
        assert step.execution.status == Status.FAILED
        assert len(api.status_calls) == 2

    @pytest.mark.asyncio
    async def test_failed_execution_is_not_retried(self):
        session = FakeSession()
        api = FakeTransferApi([], transaction_request=None)
        manager, _, _, _ = make_manager(api, session)
        step = make_step()
        status_manager = StatusManager()

        with pytest.raises(TransactionPreparationError):
            await manager.execute(session=session, step=step, status_manager=status_manager)

        execution = await manager.execute(session=session, step=step, status_manager=status_manager)

        assert execution.status == Status.FAILED
        assert len(api.prepared) == 1
