# FILE: services/session.py
"""
Per-session pipeline: text -> Intent -> Proposal -> state machine.

Parser and resolver are stateless and shared. Every session owns its own
orchestrator, so one user's pending proposal never leaks into another's.
"""

import logging
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from core.errors import ParseFailure
from core.intent import IntentAction
from core.orchestrator_state import OrchestratorState
from models.transaction import TransactionRecord, TransactionStatus
from services import messages
from services.action_resolver import ActionResolver
from services.chain_gateway import ChainGateway, YieldSource
from services.intent_parser import IntentParser, accept_intent
from services.orchestrator import TransactionOrchestrator
from services.utils import deep_serialize

logger = logging.getLogger("session")
logger.setLevel(logging.INFO)
if not logger.handlers:
    fh = logging.FileHandler("session.log")
    formatter = logging.Formatter("%(asctime)s - %(levelname)s - %(message)s")
    fh.setFormatter(formatter)
    logger.addHandler(fh)

CONFIRM_WORDS = {"yes", "y", "confirm", "confirmed", "ok", "okay", "go", "go ahead", "do it", "proceed"}
CANCEL_WORDS = {"no", "n", "cancel", "stop", "abort", "never mind", "nevermind"}


class SessionReply(BaseModel):
    type: str
    message: str
    data: Optional[Dict[str, Any]] = None


class ChatSession:
    def __init__(
        self,
        session_id: str,
        sender_address: str,
        parser: IntentParser,
        resolver: ActionResolver,
        orchestrator: TransactionOrchestrator,
    ):
        self.session_id = session_id
        self.sender_address = sender_address
        self.parser = parser
        self.resolver = resolver
        self.orchestrator = orchestrator
        if self.orchestrator.on_settled is None:
            self.orchestrator.on_settled = self._on_settled
        self.history: List[TransactionRecord] = []
        self.notices: List[str] = []

    @property
    def state(self) -> OrchestratorState:
        return self.orchestrator.state

    def _on_settled(self, record: TransactionRecord) -> None:
        self.history.append(record)
        notice = messages.settlement_message(record)
        if notice:
            self.notices.append(notice)
        logger.info(
            f"[SETTLED] session={self.session_id} hash={record.hash} status={record.status.value} timed_out={record.timed_out}"
        )

    # -----------------------------
    # Chat entry point
    # -----------------------------
    async def handle_message(self, text: str) -> SessionReply:
        text = (text or "").strip()
        word = text.lower().rstrip(".!")
        logger.info(f"[MESSAGE] session={self.session_id} state={self.state.value} text={text!r}")

        if word in CONFIRM_WORDS:
            return await self.confirm()
        if word in CANCEL_WORDS:
            return self.cancel()

        intent = accept_intent(await self.parser.parse(text))
        if intent is None:
            failure = ParseFailure(reason="unrecognized_command", message=messages.HELP_TEXT).to_failure()
            logger.info(f"[INTENT] session={self.session_id} none")
            return SessionReply(type="help", message=messages.HELP_TEXT, data={"failure": deep_serialize(failure)})

        logger.info(f"[INTENT] session={self.session_id} {intent.model_dump(by_alias=True, mode='json')}")
        proposal = await self.resolver.resolve(intent, self.sender_address)
        data = {"proposal": deep_serialize(proposal)}

        if proposal.failure is not None:
            return SessionReply(type="failure", message=messages.failure_message(proposal.failure), data=data)
        if intent.action is IntentAction.BALANCE:
            return SessionReply(type="balance", message=messages.balance_message(proposal), data=data)
        if proposal.no_op:
            return SessionReply(type="no_op", message=messages.proposal_message(proposal), data=data)

        replaced = self.state.has_pending_proposal()
        in_flight = self.orchestrator.record if self.state is OrchestratorState.POLLING else None
        await self.orchestrator.propose(proposal, replace=True)

        message = messages.proposal_message(proposal, replaced=replaced)
        data = {**data, "replaced": replaced}
        if in_flight is not None and in_flight.poll_cancelled:
            message = f"{messages.settlement_message(in_flight)}\n\n{message}"
            data["untracked_transaction"] = deep_serialize(in_flight)
        return SessionReply(type="proposal", message=message, data=data)

    # -----------------------------
    # Confirmation
    # -----------------------------
    async def confirm(self) -> SessionReply:
        if not self.state.has_pending_proposal():
            return SessionReply(type="info", message=messages.NOTHING_PENDING_TEXT)
        record = await self.orchestrator.confirm()
        data = {"transaction": deep_serialize(record)}
        if record.status is TransactionStatus.FAILED and record.hash is None:
            return SessionReply(type="failure", message=messages.submitted_message(record), data=data)
        return SessionReply(type="submitted", message=messages.submitted_message(record), data=data)

    def cancel(self) -> SessionReply:
        if not self.state.has_pending_proposal():
            return SessionReply(type="info", message=messages.NOTHING_PENDING_TEXT)
        self.orchestrator.cancel()
        return SessionReply(type="cancelled", message=messages.CANCELLED_TEXT)

    async def close(self) -> None:
        await self.orchestrator.close()

    def snapshot(self) -> Dict[str, Any]:
        return deep_serialize(
            {
                "session_id": self.session_id,
                "sender_address": self.sender_address,
                "state": self.state,
                "in_flight": self.state.is_in_flight(),
                "pending_proposal": self.orchestrator.proposal,
                "transaction": self.orchestrator.record,
                "history": self.history,
                "notices": self.notices,
            }
        )


class SessionRegistry:
    """Creates and looks up sessions by id."""

    def __init__(
        self,
        parser: IntentParser,
        resolver: ActionResolver,
        gateway: ChainGateway,
        yield_source: Optional[YieldSource] = None,
        **orchestrator_options,
    ):
        self.parser = parser
        self.resolver = resolver
        self.gateway = gateway
        self.yield_source = yield_source
        self.orchestrator_options = orchestrator_options
        self.sessions: Dict[str, ChatSession] = {}

    def get(self, session_id: str) -> Optional[ChatSession]:
        return self.sessions.get(session_id)

    def get_or_create(self, session_id: str, sender_address: str) -> ChatSession:
        session = self.sessions.get(session_id)
        if session is not None:
            if session.sender_address.lower() != sender_address.lower():
                raise ValueError(f"Session {session_id} belongs to a different sender")
            return session
        orchestrator = TransactionOrchestrator(self.gateway, self.yield_source, **self.orchestrator_options)
        session = ChatSession(session_id, sender_address, self.parser, self.resolver, orchestrator)
        self.sessions[session_id] = session
        logger.info(f"[SESSION] created id={session_id} sender={sender_address}")
        return session

    async def close(self, session_id: str) -> bool:
        session = self.sessions.pop(session_id, None)
        if session is None:
            return False
        await session.close()
        logger.info(f"[SESSION] closed id={session_id}")
        return True

    async def close_all(self) -> None:
        for session_id in list(self.sessions):
            await self.close(session_id)


def build_session_registry() -> SessionRegistry:
    """Wire the configured parser, gateway and market sources into one registry."""
    from services.intent_parser import build_intent_parser
    from services.market import StaticRateSource, StaticYieldSource
    from services.web3_gateway import build_chain_gateway

    gateway = build_chain_gateway()
    yield_source = StaticYieldSource()
    resolver = ActionResolver(gateway, StaticRateSource(), yield_source)
    return SessionRegistry(build_intent_parser(), resolver, gateway, yield_source)
