#!/usr/bin/env python3
"""Transaction sequencing for price updates and governance instructions.

A price update on fee-token chains is two separate transactions: an
approval letting the contract draw the fee, then the update itself. The
chain gives no atomicity, so progress is tracked in an UpdateSubmission
whose final state tells the caller exactly how far the sequence got.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .errors import TransactionFailedError
from .models import TxResult

logger = logging.getLogger(__name__)

# Submits one transaction and returns its hash
SubmitStep = Callable[[], Awaitable[str]]
# Waits for a transaction hash and returns the confirmation payload
WaitStep = Callable[[str], Awaitable[Any]]

STEP_APPROVE = "approve"
STEP_UPDATE = "update"
STEP_GOVERNANCE = "governance"


class UpdateState(Enum):
    NOT_STARTED = "not_started"
    FEE_APPROVED = "fee_approved"
    UPDATE_SUBMITTED = "update_submitted"
    CONFIRMED = "confirmed"
    FAILED = "failed"


_TRANSITIONS: dict[UpdateState, frozenset[UpdateState]] = {
    UpdateState.NOT_STARTED: frozenset({
        UpdateState.FEE_APPROVED,
        UpdateState.UPDATE_SUBMITTED,
        UpdateState.FAILED
    }),
    UpdateState.FEE_APPROVED: frozenset({UpdateState.UPDATE_SUBMITTED, UpdateState.FAILED}),
    UpdateState.UPDATE_SUBMITTED: frozenset({UpdateState.CONFIRMED, UpdateState.FAILED}),
    UpdateState.CONFIRMED: frozenset(),
    UpdateState.FAILED: frozenset(),
}


@dataclass(slots=True)
class UpdateSubmission:
    """Progress of one update submission.

    Attributes:
        state: Current protocol state
        failed_step: Step that failed when state is FAILED
        approval_tx_id: Hash of the confirmed fee approval, if any
        update_tx_id: Hash of the submitted update, if any
        result: Final result once CONFIRMED
    """

    state: UpdateState = UpdateState.NOT_STARTED
    failed_step: str | None = None
    approval_tx_id: str | None = None
    update_tx_id: str | None = None
    result: TxResult | None = None

    def advance(self, new_state: UpdateState) -> None:
        """Move to a new state, rejecting transitions the protocol does not allow."""
        if new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(
                f"Invalid update transition {self.state.value} -> {new_state.value}"
            )
        self.state = new_state

    def fail(self, step: str) -> None:
        self.advance(UpdateState.FAILED)
        self.failed_step = step

    @property
    def fee_approved_but_unused(self) -> bool:
        """True when the fee approval was confirmed but the update did not go through."""
        return (
            self.state is UpdateState.FAILED
            and self.failed_step == STEP_UPDATE
            and self.approval_tx_id is not None
        )


class FeeApprovedUpdate:
    """Runs the approve-then-update sequence for a single price update.

    Each step is submitted and confirmed before the next one starts. A
    failing approval stops the sequence before the update is sent. A
    failing update leaves the approval in place; nothing is revoked or
    retried here.
    """

    def __init__(self, wait_for_transaction: WaitStep) -> None:
        """
        Initialize the FeeApprovedUpdate.

        Args:
            wait_for_transaction: Coroutine confirming a transaction hash
        """
        self.wait_for_transaction: WaitStep = wait_for_transaction
        self.submission: UpdateSubmission = UpdateSubmission()

    async def execute(
        self,
        submit_update: SubmitStep,
        approve_fee: SubmitStep | None = None
    ) -> TxResult:
        """
        Run the sequence.

        Args:
            submit_update: Sends the update transaction
            approve_fee: Sends the fee approval; omitted on chains where the
                fee travels with the update itself

        Returns:
            Hash and confirmation payload of the update transaction

        Raises:
            TransactionFailedError: Tagged with the step that failed
        """
        if self.submission.state is not UpdateState.NOT_STARTED:
            raise RuntimeError("Update submission has already been executed")

        if approve_fee is not None:
            approval_tx_id = await self._submit(STEP_APPROVE, approve_fee)
            await self._confirm(STEP_APPROVE, approval_tx_id)
            self.submission.approval_tx_id = approval_tx_id
            self.submission.advance(UpdateState.FEE_APPROVED)
            logger.info(f"✓ Fee approval confirmed: {approval_tx_id}")

        update_tx_id = await self._submit(STEP_UPDATE, submit_update)
        self.submission.update_tx_id = update_tx_id
        self.submission.advance(UpdateState.UPDATE_SUBMITTED)
        logger.info(f"Update transaction submitted: {update_tx_id}")

        info = await self._confirm(STEP_UPDATE, update_tx_id)
        result = TxResult(id=update_tx_id, info=info)
        self.submission.result = result
        self.submission.advance(UpdateState.CONFIRMED)
        logger.info(f"✓ Update transaction confirmed: {update_tx_id}")
        return result

    async def _submit(self, step: str, submit: SubmitStep) -> str:
        try:
            return await submit()
        except Exception as e:
            self.submission.fail(step)
            logger.error(f"✗ Failed to submit {step} transaction: {e}")
            raise TransactionFailedError(step, str(e), submission=self.submission) from e

    async def _confirm(self, step: str, tx_id: str) -> Any:
        try:
            return await self.wait_for_transaction(tx_id)
        except Exception as e:
            self.submission.fail(step)
            if self.submission.fee_approved_but_unused:
                logger.error(
                    f"✗ Update {tx_id} failed after fee approval "
                    f"{self.submission.approval_tx_id}; approval left unconsumed"
                )
            else:
                logger.error(f"✗ {step} transaction {tx_id} failed: {e}")
            raise TransactionFailedError(
                step, str(e), tx_id=tx_id, submission=self.submission
            ) from e


async def execute_single_transaction(
    submit: SubmitStep,
    wait_for_transaction: WaitStep,
    step: str = STEP_GOVERNANCE
) -> TxResult:
    """Submit one transaction and wait for it, as governance instructions do.

    Raises:
        TransactionFailedError: Tagged with ``step`` if submission or confirmation fails
    """
    try:
        tx_id = await submit()
    except Exception as e:
        logger.error(f"✗ Failed to submit {step} transaction: {e}")
        raise TransactionFailedError(step, str(e)) from e

    logger.info(f"{step} transaction submitted: {tx_id}")
    try:
        info = await wait_for_transaction(tx_id)
    except Exception as e:
        logger.error(f"✗ {step} transaction {tx_id} failed: {e}")
        raise TransactionFailedError(step, str(e), tx_id=tx_id) from e

    logger.info(f"✓ {step} transaction confirmed: {tx_id}")
    return TxResult(id=tx_id, info=info)
