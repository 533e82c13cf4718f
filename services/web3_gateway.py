# FILE: services/web3_gateway.py
"""
Chain Gateway backed by web3.py against the Arc JSON-RPC endpoint.

Arc uses USDC as its native gas currency, so native transfers and fees are
both denominated in USDC with 18 decimals. ERC-20 tokens go through the
token contract with the decimals recorded in the currency registry.
"""

import logging
from decimal import Decimal
from typing import Dict, Optional

from web3 import AsyncWeb3, Web3
from web3.exceptions import TransactionNotFound

import config
from core.currency import CURRENCY_REGISTRY
from core.errors import SubmissionFailure
from models.transaction import StatusReport, SubmissionRequest, TransactionStatus
from services.chain_gateway import ChainGateway

# -----------------------------
# Logging
# -----------------------------
logger = logging.getLogger("web3_gateway")
logger.setLevel(logging.INFO)
if not logger.handlers:
    fh = logging.FileHandler("web3_gateway.log")
    formatter = logging.Formatter("%(asctime)s - %(levelname)s - %(message)s")
    fh.setFormatter(formatter)
    logger.addHandler(fh)

ERC20_ABI = [
    {
        "name": "transfer",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [{"name": "to", "type": "address"}, {"name": "amount", "type": "uint256"}],
        "outputs": [{"name": "", "type": "bool"}],
    },
    {
        "name": "balanceOf",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "account", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
]

NATIVE_DECIMALS = 18


def to_base_units(amount: str, decimals: int) -> int:
    """'1.5' with 6 decimals -> 1500000. Sub-unit dust is rejected."""
    scaled = Decimal(amount).scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise ValueError(f"Amount {amount} has more than {decimals} decimal places")
    return int(scaled)


def from_base_units(value: int, decimals: int) -> str:
    return format(Decimal(value).scaleb(-decimals).normalize(), "f")


def _decimals_for(token_address: str) -> int:
    for entry in CURRENCY_REGISTRY.values():
        if entry.token_address.lower() == token_address.lower():
            return entry.decimals
    raise ValueError(f"Unsupported token: {token_address}")


class Web3ChainGateway(ChainGateway):
    def __init__(
        self,
        rpc_url: str,
        chain_id: int,
        address_book: Optional[Dict[str, str]] = None,
        private_key: str = "",
        w3: Optional[AsyncWeb3] = None,
    ):
        self.w3 = w3 or AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(rpc_url))
        self.chain_id = chain_id
        self.address_book = {k.strip().lower(): v for k, v in (address_book or {}).items()}
        self.private_key = private_key

    def _token(self, token_address: str):
        return self.w3.eth.contract(address=Web3.to_checksum_address(token_address), abi=ERC20_ABI)

    async def _fee_for(self, gas_units: int) -> str:
        gas_price = await self.w3.eth.gas_price
        return from_base_units(gas_units * gas_price, NATIVE_DECIMALS)

    # -----------------------------
    # ChainGateway
    # -----------------------------
    async def resolve_recipient(self, name_or_address: str) -> Optional[str]:
        candidate = (name_or_address or "").strip()
        if Web3.is_address(candidate):
            return Web3.to_checksum_address(candidate)
        known = self.address_book.get(candidate.lower())
        if known and Web3.is_address(known):
            return Web3.to_checksum_address(known)
        return None

    async def estimate_gas(self, sender: str, to: str, amount: str, token_address: Optional[str] = None) -> str:
        sender = Web3.to_checksum_address(sender)
        to = Web3.to_checksum_address(to)
        if token_address is None:
            gas_units = await self.w3.eth.estimate_gas(
                {"from": sender, "to": to, "value": to_base_units(amount, NATIVE_DECIMALS)}
            )
        else:
            units = to_base_units(amount, _decimals_for(token_address))
            gas_units = await self._token(token_address).functions.transfer(to, units).estimate_gas({"from": sender})
        return await self._fee_for(gas_units)

    async def get_balance(self, address: str, token_address: Optional[str] = None) -> str:
        address = Web3.to_checksum_address(address)
        if token_address is None:
            wei = await self.w3.eth.get_balance(address)
            return from_base_units(wei, NATIVE_DECIMALS)
        raw = await self._token(token_address).functions.balanceOf(address).call()
        return from_base_units(raw, _decimals_for(token_address))

    async def submit(self, request: SubmissionRequest) -> str:
        # Only plain transfers have an on-chain path; no swap venue or USYC vault call is wired
        if not request.action.is_transfer():
            raise SubmissionFailure(
                reason="unsupported_action",
                message=(
                    f"{request.action.value.capitalize()} from {request.token} to {request.to_token} "
                    "can't be executed on Arc yet. Nothing was sent."
                ),
                detail={"action": request.action.value, "from": request.token, "to": request.to_token},
            )
        if not self.private_key:
            raise SubmissionFailure(
                reason="signer_unavailable",
                message="No signing wallet is connected.",
            )
        account = self.w3.eth.account.from_key(self.private_key)
        if account.address.lower() != request.sender.lower():
            raise SubmissionFailure(
                reason="signer_mismatch",
                message="The connected wallet does not match the sender address.",
                detail={"sender": request.sender},
            )

        network_id = await self.w3.eth.chain_id
        if network_id != self.chain_id:
            raise SubmissionFailure(
                reason="wrong_network",
                message=f"Wallet is on chain {network_id}, expected {self.chain_id}. Switch networks and try again.",
                detail={"chain_id": network_id, "expected": self.chain_id},
            )

        sender = Web3.to_checksum_address(request.sender)
        to = Web3.to_checksum_address(request.to)
        nonce = await self.w3.eth.get_transaction_count(sender)
        gas_price = await self.w3.eth.gas_price

        if request.token_address is None:
            tx = {"from": sender, "to": to, "value": to_base_units(request.amount, NATIVE_DECIMALS)}
            tx["gas"] = await self.w3.eth.estimate_gas(tx)
        else:
            units = to_base_units(request.amount, _decimals_for(request.token_address))
            tx = await self._token(request.token_address).functions.transfer(to, units).build_transaction(
                {"from": sender}
            )
        tx.update({"nonce": nonce, "gasPrice": gas_price, "chainId": self.chain_id})
        tx.pop("maxFeePerGas", None)
        tx.pop("maxPriorityFeePerGas", None)

        signed = account.sign_transaction(tx)
        raw = getattr(signed, "raw_transaction", None) or getattr(signed, "rawTransaction")
        tx_hash = await self.w3.eth.send_raw_transaction(raw)
        hex_hash = Web3.to_hex(tx_hash)
        logger.info(f"[SUBMIT] hash={hex_hash} action={request.action.value} amount={request.amount} token={request.token}")
        return hex_hash

    async def get_status(self, tx_hash: str) -> StatusReport:
        try:
            receipt = await self.w3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            return StatusReport(status=TransactionStatus.PENDING, confirmations=0)
        if receipt is None:
            return StatusReport(status=TransactionStatus.PENDING, confirmations=0)

        current_block = await self.w3.eth.block_number
        confirmations = max(0, current_block - receipt["blockNumber"])
        status = TransactionStatus.CONFIRMED if receipt["status"] == 1 else TransactionStatus.FAILED
        return StatusReport(status=status, confirmations=confirmations)


def build_chain_gateway() -> ChainGateway:
    """Gateway selected by GATEWAY_BACKEND."""
    if config.GATEWAY_BACKEND == "memory":
        from services.memory_gateway import InMemoryChainGateway

        return InMemoryChainGateway(address_book=config.ADDRESS_BOOK, gas_estimate=config.FALLBACK_GAS_ESTIMATE)
    return Web3ChainGateway(
        rpc_url=config.ARC_RPC_URL,
        chain_id=config.ARC_CHAIN_ID,
        address_book=config.ADDRESS_BOOK,
        private_key=config.SIGNER_PRIVATE_KEY,
    )
