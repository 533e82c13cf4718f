# FILE: services/memory_gateway.py
"""
In-process Chain Gateway for local runs, demos and tests.

Balances live in memory, hashes are deterministic and every submitted
transaction confirms after a configurable number of status polls. Swaps and
savings moves are simulated the same way as transfers.
"""

import hashlib
import logging
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from web3 import Web3

from core.currency import BASE_STABLE, CURRENCY_REGISTRY
from core.errors import SubmissionFailure
from models.transaction import StatusReport, SubmissionRequest, TransactionStatus
from services.chain_gateway import ChainGateway

logger = logging.getLogger("memory_gateway")


def _symbol_for(token_address: Optional[str]) -> Optional[str]:
    if token_address is None:
        return BASE_STABLE
    for entry in CURRENCY_REGISTRY.values():
        if entry.token_address.lower() == token_address.lower():
            return entry.symbol
    return None


class InMemoryChainGateway(ChainGateway):
    def __init__(
        self,
        address_book: Optional[Dict[str, str]] = None,
        balances: Optional[Dict[Tuple[str, str], str]] = None,
        gas_estimate: str = "0.015",
        polls_until_confirmed: int = 1,
    ):
        self.address_book = {k.strip().lower(): v for k, v in (address_book or {}).items()}
        self.balances: Dict[Tuple[str, str], Decimal] = {
            (addr.lower(), symbol): Decimal(amount) for (addr, symbol), amount in (balances or {}).items()
        }
        self.gas_estimate = gas_estimate
        self.polls_until_confirmed = polls_until_confirmed
        self.rejected_senders: set = set()

        self.submitted: List[SubmissionRequest] = []
        self._outcomes: Dict[str, TransactionStatus] = {}
        self._scripted: List[TransactionStatus] = []
        self._polls: Dict[str, int] = {}
        self._nonce = 0

    # -----------------------------
    # Test / demo helpers
    # -----------------------------
    def set_balance(self, address: str, symbol: str, amount: str) -> None:
        self.balances[(address.lower(), symbol)] = Decimal(amount)

    def script_next_outcome(self, status: TransactionStatus) -> None:
        """Final receipt status for the next submitted transaction."""
        self._scripted.append(status)

    # -----------------------------
    # ChainGateway
    # -----------------------------
    async def resolve_recipient(self, name_or_address: str) -> Optional[str]:
        candidate = (name_or_address or "").strip()
        if Web3.is_address(candidate):
            return Web3.to_checksum_address(candidate)
        return self.address_book.get(candidate.lower())

    async def estimate_gas(self, sender: str, to: str, amount: str, token_address: Optional[str] = None) -> str:
        if _symbol_for(token_address) is None:
            raise ValueError(f"Unsupported token for gas estimation: {token_address}")
        return self.gas_estimate

    async def get_balance(self, address: str, token_address: Optional[str] = None) -> str:
        symbol = _symbol_for(token_address)
        if symbol is None:
            raise ValueError(f"Unsupported token: {token_address}")
        return str(self.balances.get((address.lower(), symbol), Decimal("0")))

    async def submit(self, request: SubmissionRequest) -> str:
        if request.sender.lower() in self.rejected_senders:
            raise SubmissionFailure(
                reason="wallet_rejected",
                message="The wallet rejected the transaction.",
            )
        self._nonce += 1
        digest = hashlib.sha256(f"{request.sender}:{request.to}:{request.amount}:{self._nonce}".encode()).hexdigest()
        tx_hash = "0x" + digest
        self.submitted.append(request)
        self._outcomes[tx_hash] = self._scripted.pop(0) if self._scripted else TransactionStatus.CONFIRMED
        self._polls[tx_hash] = 0
        logger.info(
            f"[SUBMIT] hash={tx_hash} action={request.action.value} amount={request.amount} "
            f"token={request.token} to_token={request.to_token}"
        )
        return tx_hash

    async def get_status(self, tx_hash: str) -> StatusReport:
        if tx_hash not in self._polls:
            return StatusReport(status=TransactionStatus.PENDING, confirmations=0)
        self._polls[tx_hash] += 1
        polls = self._polls[tx_hash]
        if polls < self.polls_until_confirmed:
            return StatusReport(status=TransactionStatus.PENDING, confirmations=0)
        return StatusReport(status=self._outcomes[tx_hash], confirmations=polls - self.polls_until_confirmed + 1)
