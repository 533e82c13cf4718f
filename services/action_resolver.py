# FILE: services/action_resolver.py
"""
Intent -> Proposal.

One sub-path per action family. Every failure is attached to the returned
Proposal as a typed Failure; nothing escapes resolve() as an exception and
nothing is guessed (an unresolved recipient is a failure, not an address).
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Callable, List, Optional

import config
from core.currency import (
    BASE_STABLE,
    CURRENCY_REGISTRY,
    YIELD_TOKEN,
    gateway_token_address,
    get_currency,
    is_supported_pair,
)
from core.errors import GatewayFailure, IntentArcError, ResolutionFailure
from core.intent import Intent, IntentAction
from models.proposal import BalanceLine, Proposal, RateQuote, YieldQuote
from services.chain_gateway import ChainGateway, RateSource, YieldSource, call_gateway
from services.market import quantize_amount

# -----------------------------
# Logging
# -----------------------------
logger = logging.getLogger("action_resolver")
logger.setLevel(logging.INFO)
if not logger.handlers:
    fh = logging.FileHandler("action_resolver.log")
    formatter = logging.Formatter("%(asctime)s - %(levelname)s - %(message)s")
    fh.setFormatter(formatter)
    logger.addHandler(fh)

DAYS_PER_YEAR = Decimal("365")


def compute_yield_earned(amount: str, apy: str, days_held: int) -> str:
    """amount * APY * (days_held / 365), APY given in percent."""
    earned = Decimal(amount) * (Decimal(apy) / Decimal("100")) * (Decimal(days_held) / DAYS_PER_YEAR)
    return quantize_amount(earned)


class ActionResolver:
    def __init__(
        self,
        gateway: ChainGateway,
        rate_source: RateSource,
        yield_source: YieldSource,
        *,
        timeout: Optional[float] = None,
        fallback_gas: Optional[str] = None,
        default_holding_days: Optional[int] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.gateway = gateway
        self.rate_source = rate_source
        self.yield_source = yield_source
        self.timeout = config.GATEWAY_TIMEOUT_S if timeout is None else timeout
        self.fallback_gas = fallback_gas or config.FALLBACK_GAS_ESTIMATE
        self.default_holding_days = (
            config.DEFAULT_HOLDING_DAYS if default_holding_days is None else default_holding_days
        )
        self.clock = clock

    async def resolve(self, intent: Intent, sender_address: str) -> Proposal:
        logger.info(f"[RESOLVE] action={intent.action.value} amount={intent.amount} token={intent.token} sender={sender_address}")
        try:
            if not intent.action.is_read_only() and intent.amount_decimal() <= 0:
                raise ResolutionFailure(
                    reason="invalid_amount",
                    message="The amount must be greater than zero.",
                    detail={"amount": intent.amount},
                )

            if intent.action.is_transfer():
                proposal = await self._resolve_transfer(intent, sender_address)
            elif intent.action is IntentAction.BALANCE:
                proposal = await self._resolve_balance(intent, sender_address)
            elif intent.action.is_conversion():
                proposal = await self._resolve_convert(intent, sender_address)
            elif intent.action is IntentAction.DEPOSIT:
                proposal = await self._resolve_deposit(intent, sender_address)
            elif intent.action is IntentAction.WITHDRAW:
                proposal = await self._resolve_withdraw(intent, sender_address)
            else:
                raise ResolutionFailure(
                    reason="unsupported_action",
                    message=f"I can't do '{intent.action.value}' yet.",
                )
        except IntentArcError as e:
            logger.warning(f"[RESOLUTION_FAILED] kind={e.kind.value} reason={e.reason} detail={e.detail}")
            return Proposal.from_intent(intent, sender_address, failure=e.to_failure())

        logger.info(
            f"[PROPOSAL] action={proposal.action.value} amount={proposal.amount} "
            f"recipient={proposal.recipient_address} gas={proposal.gas_estimate}"
        )
        return proposal

    # -----------------------------
    # Helpers
    # -----------------------------
    async def _call(self, awaitable, operation: str):
        return await call_gateway(awaitable, operation=operation, timeout=self.timeout)

    async def _estimate_gas(self, sender: str, to: str, amount: str, token_address: Optional[str]):
        """Measured fee, or the labelled fallback constant when the gateway cannot answer."""
        try:
            gas = await self._call(self.gateway.estimate_gas(sender, to, amount, token_address), "estimate_gas")
            return gas, "measured"
        except GatewayFailure as e:
            logger.warning(f"[GAS_FALLBACK] reason={e.reason} detail={e.detail}")
            return self.fallback_gas, "fallback"

    def _gateway_decimal(self, value, operation: str) -> Decimal:
        try:
            number = Decimal(value)
        except (InvalidOperation, TypeError, ValueError):
            number = None
        if number is None or not number.is_finite():
            raise GatewayFailure(
                reason="malformed_response",
                message="The network returned a value I could not read.",
                detail={"operation": operation, "value": str(value)},
            )
        return number

    async def _get_apy(self) -> str:
        apy = await self._call(self.yield_source.get_current_apy(), "get_current_apy")
        self._gateway_decimal(apy, "get_current_apy")
        return apy

    async def _require_balance(self, sender: str, symbol: str, amount: str) -> str:
        balance = await self._call(
            self.gateway.get_balance(sender, gateway_token_address(symbol)), f"get_balance:{symbol}"
        )
        if self._gateway_decimal(balance, f"get_balance:{symbol}") < Decimal(amount):
            raise ResolutionFailure(
                reason="insufficient_balance",
                message=f"You only have {balance} {symbol}, which is not enough for {amount} {symbol}.",
                detail={"balance": balance, "required": amount, "token": symbol},
            )
        return balance

    # -----------------------------
    # send / pay / transfer
    # -----------------------------
    async def _resolve_transfer(self, intent: Intent, sender: str) -> Proposal:
        if not intent.recipient:
            raise ResolutionFailure(
                reason="missing_recipient",
                message="Who should receive the funds? Try: 'Send $50 to 0x…'.",
            )
        address = await self._call(self.gateway.resolve_recipient(intent.recipient), "resolve_recipient")
        if not address:
            raise ResolutionFailure(
                reason="unresolved_recipient",
                message=(
                    f"I couldn't find a wallet address for '{intent.recipient}'. "
                    "Please give me their 0x address."
                ),
                detail={"recipient": intent.recipient},
            )

        symbol = intent.token or BASE_STABLE
        gas, source = await self._estimate_gas(sender, address, intent.amount, gateway_token_address(symbol))
        return Proposal.from_intent(
            intent,
            sender,
            recipient_address=address,
            gas_estimate=gas,
            gas_estimate_source=source,
        )

    # -----------------------------
    # balance
    # -----------------------------
    async def _resolve_balance(self, intent: Intent, sender: str) -> Proposal:
        symbols = [intent.token] if intent.token else list(CURRENCY_REGISTRY)
        apy = None
        lines: List[BalanceLine] = []
        for symbol in symbols:
            balance = await self._call(
                self.gateway.get_balance(sender, gateway_token_address(symbol)), f"get_balance:{symbol}"
            )
            line = BalanceLine(token=symbol, balance=balance)
            if get_currency(symbol).is_yield_bearing:
                if apy is None:
                    apy = await self._get_apy()
                line.apy = apy
            lines.append(line)
        return Proposal.from_intent(intent, sender, balances=lines)

    # -----------------------------
    # convert / swap
    # -----------------------------
    async def _resolve_convert(self, intent: Intent, sender: str) -> Proposal:
        from_currency = intent.from_currency or intent.token or BASE_STABLE
        to_currency = intent.to_currency
        if not to_currency or not is_supported_pair(from_currency, to_currency):
            raise ResolutionFailure(
                reason="unsupported_pair",
                message=f"Converting {from_currency} to {to_currency or '?'} isn't supported. I can convert between USDC and EURC.",
                detail={"from": from_currency, "to": to_currency},
            )

        if from_currency == to_currency:
            quote = RateQuote(
                from_token=from_currency,
                to_token=to_currency,
                amount=intent.amount,
                expected_amount=intent.amount,
                price_impact="0",
                gas_estimate="0",
            )
            return Proposal.from_intent(
                intent,
                sender,
                from_currency=from_currency,
                to_currency=to_currency,
                rate_quote=quote,
                no_op=True,
            )

        quote = await self._call(
            self.rate_source.get_rate_quote(from_currency, to_currency, intent.amount), "get_rate_quote"
        )
        return Proposal.from_intent(
            intent,
            sender,
            from_currency=from_currency,
            to_currency=to_currency,
            rate_quote=quote,
            gas_estimate=quote.gas_estimate,
            gas_estimate_source=quote.gas_estimate_source or "fallback",
        )

    # -----------------------------
    # deposit (USDC -> USYC)
    # -----------------------------
    async def _resolve_deposit(self, intent: Intent, sender: str) -> Proposal:
        from_currency = intent.from_currency or intent.token or BASE_STABLE
        if from_currency != BASE_STABLE:
            raise ResolutionFailure(
                reason="unsupported_deposit_currency",
                message=f"Savings deposits take {BASE_STABLE}. Convert your {from_currency} first.",
                detail={"from": from_currency},
            )
        await self._require_balance(sender, BASE_STABLE, intent.amount)
        apy = await self._get_apy()

        # Informational only: no interest is credited here
        projected = quantize_amount(Decimal(intent.amount) * Decimal(apy) / Decimal("100"))
        vault = get_currency(YIELD_TOKEN).token_address
        gas, source = await self._estimate_gas(sender, vault, intent.amount, gateway_token_address(BASE_STABLE))
        return Proposal.from_intent(
            intent,
            sender,
            from_currency=BASE_STABLE,
            to_currency=YIELD_TOKEN,
            gas_estimate=gas,
            gas_estimate_source=source,
            yield_quote=YieldQuote(apy=apy, projected_annual_yield=projected),
        )

    # -----------------------------
    # withdraw (USYC -> USDC)
    # -----------------------------
    async def _resolve_withdraw(self, intent: Intent, sender: str) -> Proposal:
        await self._require_balance(sender, YIELD_TOKEN, intent.amount)
        apy = await self._get_apy()
        deposited_at = await self._call(self.yield_source.get_deposit_date(sender), "get_deposit_date")

        if deposited_at is not None:
            days_held = max(0, (self.clock() - deposited_at).days)
            holding_source = "deposit_record"
        else:
            # Stand-in period; labelled so it is never mistaken for a real calculation
            days_held = self.default_holding_days
            holding_source = "placeholder"

        vault = get_currency(YIELD_TOKEN).token_address
        gas, source = await self._estimate_gas(sender, vault, intent.amount, gateway_token_address(YIELD_TOKEN))
        return Proposal.from_intent(
            intent,
            sender,
            from_currency=YIELD_TOKEN,
            to_currency=BASE_STABLE,
            gas_estimate=gas,
            gas_estimate_source=source,
            yield_quote=YieldQuote(
                apy=apy,
                days_held=days_held,
                holding_period_source=holding_source,
                yield_earned=compute_yield_earned(intent.amount, apy, days_held),
            ),
        )
