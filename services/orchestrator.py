# FILE: services/orchestrator.py
"""
Transaction Orchestrator

idle -> awaiting_confirmation -> submitting -> polling -> settled -> idle

Holds at most one pending Proposal. Nothing reaches the gateway's submit
until confirm() is called on a proposal in awaiting_confirmation.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, FrozenSet, List, Optional, Tuple

import config
from core.currency import gateway_token_address
from core.errors import GatewayFailure, IntentArcError, InvalidTransition, ProposalConflict, SubmissionFailure
from core.intent import IntentAction
from core.orchestrator_state import OrchestratorState
from models.proposal import Proposal
from models.transaction import SubmissionRequest, TransactionRecord, TransactionStatus
from services.chain_gateway import ChainGateway, YieldSource, call_gateway

# -----------------------------
# Logging
# -----------------------------
logger = logging.getLogger("transaction_orchestrator")
logger.setLevel(logging.INFO)
if not logger.handlers:
    fh = logging.FileHandler("transaction_orchestrator.log")
    formatter = logging.Formatter("%(asctime)s - %(levelname)s - %(message)s")
    fh.setFormatter(formatter)
    logger.addHandler(fh)

S = OrchestratorState

ALLOWED_TRANSITIONS: Dict[OrchestratorState, FrozenSet[OrchestratorState]] = {
    S.IDLE: frozenset({S.AWAITING_CONFIRMATION}),
    # self-loop is an explicit replacement of the pending proposal
    S.AWAITING_CONFIRMATION: frozenset({S.AWAITING_CONFIRMATION, S.SUBMITTING, S.IDLE}),
    S.SUBMITTING: frozenset({S.POLLING, S.SETTLED}),
    # polling -> idle only when a new proposal abandons the outstanding poll
    S.POLLING: frozenset({S.SETTLED, S.IDLE}),
    S.SETTLED: frozenset({S.IDLE}),
}

SettledCallback = Callable[[TransactionRecord], Optional[Awaitable[None]]]


def build_submission_request(proposal: Proposal) -> SubmissionRequest:
    """
    Resolved parameters only: the raw intent never reaches the gateway.

    Swaps and savings moves settle back into the sender's own wallet, so
    `to` is the sender and `to_token` names what comes back. The gateway
    decides how (or whether) it can execute them.
    """
    if proposal.action.is_transfer():
        return SubmissionRequest(
            action=proposal.action,
            sender=proposal.sender,
            to=proposal.recipient_address,
            amount=proposal.amount,
            token=proposal.token,
            token_address=gateway_token_address(proposal.token),
        )
    token = proposal.from_currency or proposal.token
    return SubmissionRequest(
        action=proposal.action,
        sender=proposal.sender,
        to=proposal.sender,
        amount=proposal.amount,
        token=token,
        token_address=gateway_token_address(token),
        to_token=proposal.to_currency,
    )


class TransactionOrchestrator:
    def __init__(
        self,
        gateway: ChainGateway,
        yield_source: Optional[YieldSource] = None,
        *,
        poll_interval: Optional[float] = None,
        poll_timeout: Optional[float] = None,
        gateway_timeout: Optional[float] = None,
        on_settled: Optional[SettledCallback] = None,
    ):
        self.gateway = gateway
        self.yield_source = yield_source
        self.poll_interval = config.POLL_INTERVAL_S if poll_interval is None else poll_interval
        self.poll_timeout = config.POLL_TIMEOUT_S if poll_timeout is None else poll_timeout
        self.gateway_timeout = gateway_timeout
        self.on_settled = on_settled

        self.state: OrchestratorState = S.IDLE
        self.proposal: Optional[Proposal] = None
        self.record: Optional[TransactionRecord] = None
        self.transitions: List[Tuple[OrchestratorState, OrchestratorState]] = []
        self._poll_task: Optional[asyncio.Task] = None

    # -----------------------------
    # State bookkeeping
    # -----------------------------
    def _transition(self, target: OrchestratorState, reason: str = "") -> None:
        if target not in ALLOWED_TRANSITIONS[self.state]:
            raise InvalidTransition(self.state.value, f"move to {target.value}")
        logger.info(f"[TRANSITION] {self.state.value} -> {target.value} {reason}".rstrip())
        self.transitions.append((self.state, target))
        self.state = target

    def _require(self, expected: OrchestratorState, attempted: str) -> None:
        if self.state is not expected:
            raise InvalidTransition(self.state.value, attempted)

    # -----------------------------
    # Public operations
    # -----------------------------
    async def propose(self, proposal: Proposal, replace: bool = False) -> None:
        if not proposal.requires_confirmation:
            raise ValueError("Only successful, state-changing proposals can await confirmation")

        if self.state is S.SUBMITTING:
            raise InvalidTransition(self.state.value, "propose")

        if self.state is S.AWAITING_CONFIRMATION:
            if not replace:
                raise ProposalConflict("A proposal is already awaiting confirmation")
            self._transition(S.AWAITING_CONFIRMATION, "(replaced)")
            self.proposal = proposal
            return

        if self.state is S.POLLING:
            await self._abandon_poll()
            self._transition(S.IDLE, "(poll abandoned)")

        self._transition(S.AWAITING_CONFIRMATION)
        self.proposal = proposal

    def cancel(self) -> Proposal:
        self._require(S.AWAITING_CONFIRMATION, "cancel")
        cancelled = self.proposal
        self.proposal = None
        self._transition(S.IDLE, "(cancelled)")
        return cancelled

    async def confirm(self) -> TransactionRecord:
        """
        Submit the pending proposal. Returns the record as soon as a hash is
        known (state polling) or immediately when submission failed.
        """
        self._require(S.AWAITING_CONFIRMATION, "confirm")
        proposal = self.proposal
        self.proposal = None
        self._transition(S.SUBMITTING)

        record = TransactionRecord(
            action=proposal.action,
            sender=proposal.sender,
            amount=proposal.amount,
            token=proposal.token,
            recipient_address=proposal.recipient_address,
            expected_amount=proposal.rate_quote.expected_amount if proposal.rate_quote else None,
            yield_earned=proposal.yield_quote.yield_earned if proposal.yield_quote else None,
        )
        self.record = record

        try:
            request = build_submission_request(proposal)
            tx_hash = await call_gateway(
                self.gateway.submit(request), operation="submit", timeout=self.gateway_timeout
            )
        except IntentArcError as e:
            logger.error(f"[ERROR] submission failed kind={e.kind.value} reason={e.reason}")
            record.mark_failed(e.to_failure())
            self._transition(S.SETTLED, "(submission failed)")
            await self._finish(record)
            return record
        except asyncio.CancelledError:
            # Caller timed out or disconnected mid-submit
            logger.error("[ERROR] submission interrupted before a hash was returned")
            record.mark_failed(
                SubmissionFailure(
                    reason="submission_interrupted",
                    message=(
                        "Submission was interrupted before the network answered. "
                        "Check your wallet before trying again."
                    ),
                ).to_failure()
            )
            self._transition(S.SETTLED, "(submission interrupted)")
            await self._finish(record)
            raise

        record.hash = tx_hash
        record.submitted_at = datetime.now(timezone.utc)
        logger.info(f"[SUBMITTED] hash={tx_hash} action={record.action.value} amount={record.amount} token={record.token}")
        self._transition(S.POLLING)
        self._poll_task = asyncio.create_task(self._poll(record))
        return record

    async def wait_for_settlement(self) -> Optional[TransactionRecord]:
        """Block until the outstanding poll finishes. Returns the latest record."""
        task = self._poll_task
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass
        return self.record

    async def close(self) -> None:
        """Session end: stop polling, drop any pending proposal."""
        if self.state is S.POLLING:
            await self._abandon_poll()
            self._transition(S.IDLE, "(closed)")
        elif self.state is S.AWAITING_CONFIRMATION:
            self.cancel()

    # -----------------------------
    # Polling
    # -----------------------------
    async def poll_once(self, record: TransactionRecord) -> bool:
        """One status check. Returns True when the record is terminal."""
        try:
            report = await call_gateway(
                self.gateway.get_status(record.hash), operation="get_status", timeout=self.gateway_timeout
            )
        except GatewayFailure as e:
            # Status unknown this tick; try again on the next one
            logger.warning(f"[POLL] hash={record.hash} gateway failure reason={e.reason}")
            return False
        if record.apply_status(report):
            logger.info(f"[POLL] hash={record.hash} status={record.status.value} confirmations={record.confirmations}")
        return record.is_terminal

    async def _poll(self, record: TransactionRecord) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.poll_timeout
        while True:
            if await self.poll_once(record):
                break
            if loop.time() + self.poll_interval > deadline:
                record.timed_out = True
                logger.warning(f"[POLL] hash={record.hash} timed out after {self.poll_timeout}s, status still pending")
                break
            await asyncio.sleep(self.poll_interval)

        self._poll_task = None
        self._transition(S.SETTLED, f"({record.status.value})")
        await self._finish(record)

    async def _abandon_poll(self) -> None:
        task = self._poll_task
        self._poll_task = None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        record = self.record
        if record is not None and record.hash is not None and not record.is_terminal:
            record.poll_cancelled = True
            logger.info(f"[POLL] hash={record.hash} cancelled, status still pending")
            await self._notify(record)

    async def _notify(self, record: TransactionRecord) -> None:
        if self.on_settled is not None:
            result = self.on_settled(record)
            if asyncio.iscoroutine(result):
                await result

    async def _finish(self, record: TransactionRecord) -> None:
        if (
            record.status is TransactionStatus.CONFIRMED
            and record.action is IntentAction.DEPOSIT
            and self.yield_source is not None
        ):
            try:
                await call_gateway(
                    self.yield_source.record_deposit(record.sender, record.settled_at or datetime.now(timezone.utc)),
                    operation="record_deposit",
                    timeout=self.gateway_timeout,
                )
            except GatewayFailure as e:
                logger.warning(f"[DEPOSIT] could not record deposit date reason={e.reason}")

        await self._notify(record)
        self._transition(S.IDLE)
