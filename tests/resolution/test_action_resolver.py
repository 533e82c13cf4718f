import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

from web3 import Web3

from core.errors import FailureKind
from core.intent import Intent
from models.proposal import RateQuote
from services import messages
from services.action_resolver import ActionResolver, compute_yield_earned
from tests.conftest import ALICE, NOW, SENDER


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------

def make_intent(**fields):
    fields.setdefault("confidence", 0.9)
    return Intent(**fields)


def _resolve(resolver, **fields):
    return asyncio.run(resolver.resolve(make_intent(**fields), SENDER))


# ---------------------------------------------------------------------
# SEND / PAY / TRANSFER
# ---------------------------------------------------------------------

def test_send_resolves_recipient_and_gas(resolver):
    proposal = _resolve(resolver, action="send", amount="50", recipient="Alice")

    assert proposal.ok
    assert proposal.recipient_address == ALICE
    assert proposal.gas_estimate == "0.015"
    assert proposal.gas_estimate_source == "measured"
    assert proposal.amount == "50"
    assert proposal.token == "USDC"
    assert proposal.requires_confirmation


def test_raw_address_resolves_to_checksum(resolver):
    proposal = _resolve(resolver, action="pay", amount="5", token="EURC", recipient=ALICE.lower())
    assert proposal.recipient_address == Web3.to_checksum_address(ALICE.lower())


def test_unknown_recipient_is_failure_without_address(resolver):
    proposal = _resolve(resolver, action="send", amount="50", recipient="Bob")

    assert not proposal.ok
    assert proposal.failure.kind is FailureKind.RESOLUTION
    assert proposal.failure.reason == "unresolved_recipient"
    assert proposal.recipient_address is None
    assert not proposal.requires_confirmation


def test_gas_failure_uses_labelled_fallback(resolver, gateway):
    gateway.estimate_gas = AsyncMock(side_effect=RuntimeError("rpc down"))
    proposal = _resolve(resolver, action="send", amount="50", recipient="Alice")

    assert proposal.ok
    assert proposal.gas_estimate == "0.015"
    assert proposal.gas_estimate_source == "fallback"


def test_native_and_token_gas_paths(resolver, gateway):
    gateway.estimate_gas = AsyncMock(return_value="0.02")
    _resolve(resolver, action="send", amount="50", recipient="Alice")
    _resolve(resolver, action="send", amount="50", token="EURC", recipient="Alice")

    native_call, token_call = gateway.estimate_gas.await_args_list
    assert native_call.args[3] is None
    assert token_call.args[3] == "0x89B50855Aa3bE2F677cD6303Cec089B5F319D72a"


def test_zero_amount_is_invalid(resolver):
    proposal = _resolve(resolver, action="send", amount="0", recipient="Alice")
    assert proposal.failure.reason == "invalid_amount"


# ---------------------------------------------------------------------
# BALANCE
# ---------------------------------------------------------------------

def test_balance_for_every_token(resolver):
    proposal = _resolve(resolver, action="balance")

    lines = {line.token: line for line in proposal.balances}
    assert lines["USDC"].balance == "1000.50"
    assert lines["EURC"].balance == "850.25"
    assert lines["USYC"].balance == "500.75"
    assert lines["USYC"].apy == "5.0"
    assert lines["USDC"].apy is None
    assert not proposal.requires_confirmation


def test_balance_for_one_token(resolver):
    proposal = _resolve(resolver, action="balance", token="EURC")
    assert [line.token for line in proposal.balances] == ["EURC"]


def test_gateway_timeout_is_gateway_failure(gateway, rate_source, yield_source):
    async def slow(*_args, **_kwargs):
        await asyncio.sleep(1)

    gateway.get_balance = slow
    resolver = ActionResolver(gateway, rate_source, yield_source, timeout=0.01)
    proposal = _resolve(resolver, action="balance")

    assert proposal.failure.kind is FailureKind.GATEWAY
    assert proposal.failure.reason == "gateway_timeout"


# ---------------------------------------------------------------------
# CONVERT
# ---------------------------------------------------------------------

def test_convert_gets_rate_quote(resolver):
    proposal = _resolve(resolver, action="convert", amount="100", fromCurrency="USDC", toCurrency="EURC")

    assert proposal.ok
    assert proposal.rate_quote.expected_amount == "95.000000"
    assert proposal.rate_quote.price_impact == "0.001"
    assert proposal.recipient_address is None
    assert proposal.requires_confirmation


def test_static_rate_gas_is_labelled_fallback(resolver):
    proposal = _resolve(resolver, action="convert", amount="100", fromCurrency="USDC", toCurrency="EURC")

    assert proposal.gas_estimate == "0.015"
    assert proposal.gas_estimate_source == "fallback"
    assert "estimate, not measured on the network" in messages.proposal_message(proposal)


def test_quoted_gas_keeps_its_label(resolver, rate_source):
    async def quote(from_token, to_token, amount):
        return RateQuote(
            from_token=from_token,
            to_token=to_token,
            amount=amount,
            expected_amount="95",
            price_impact="0.001",
            gas_estimate="0.002",
            gas_estimate_source="measured",
        )

    rate_source.get_rate_quote = quote
    proposal = _resolve(resolver, action="convert", amount="100", fromCurrency="USDC", toCurrency="EURC")

    assert proposal.gas_estimate == "0.002"
    assert proposal.gas_estimate_source == "measured"


def test_same_token_convert_is_no_op(resolver):
    proposal = _resolve(resolver, action="convert", amount="100", fromCurrency="USDC", toCurrency="USDC")

    assert proposal.ok
    assert proposal.no_op
    assert proposal.rate_quote.expected_amount == "100"
    assert not proposal.requires_confirmation


def test_unsupported_pair_fails_fast(resolver, rate_source):
    rate_source.get_rate_quote = AsyncMock()
    proposal = _resolve(resolver, action="swap", amount="100", fromCurrency="USDC", toCurrency="USYC")

    assert proposal.failure.reason == "unsupported_pair"
    rate_source.get_rate_quote.assert_not_awaited()


# ---------------------------------------------------------------------
# DEPOSIT / WITHDRAW
# ---------------------------------------------------------------------

def test_deposit_quotes_apy(resolver):
    proposal = _resolve(resolver, action="deposit", amount="1000", fromCurrency="USDC", toCurrency="USYC")

    assert proposal.ok
    assert proposal.yield_quote.apy == "5.0"
    assert proposal.yield_quote.projected_annual_yield == "50.000000"
    assert proposal.to_currency == "USYC"


def test_deposit_needs_enough_balance(resolver, gateway):
    gateway.set_balance(SENDER, "USDC", "10")
    proposal = _resolve(resolver, action="deposit", amount="50", fromCurrency="USDC")
    assert proposal.failure.reason == "insufficient_balance"


def test_deposit_only_from_base_stable(resolver):
    proposal = _resolve(resolver, action="deposit", amount="10", fromCurrency="EURC")
    assert proposal.failure.reason == "unsupported_deposit_currency"


def test_withdraw_without_deposit_record_uses_labelled_placeholder(resolver):
    proposal = _resolve(resolver, action="withdraw", amount="100", fromCurrency="USYC", toCurrency="USDC")

    quote = proposal.yield_quote
    assert quote.days_held == 30
    assert quote.holding_period_source == "placeholder"
    assert quote.yield_earned == "0.410958"


def test_withdraw_uses_recorded_deposit_date(resolver, yield_source):
    asyncio.run(yield_source.record_deposit(SENDER, NOW - timedelta(days=365)))
    proposal = _resolve(resolver, action="withdraw", amount="100", fromCurrency="USYC")

    quote = proposal.yield_quote
    assert quote.days_held == 365
    assert quote.holding_period_source == "deposit_record"
    assert quote.yield_earned == "5.000000"


def test_withdraw_needs_enough_usyc(resolver):
    proposal = _resolve(resolver, action="withdraw", amount="600", fromCurrency="USYC")
    assert proposal.failure.reason == "insufficient_balance"


def test_deposit_and_withdraw_do_not_target_a_contract(resolver):
    deposit = _resolve(resolver, action="deposit", amount="10", fromCurrency="USDC")
    withdraw = _resolve(resolver, action="withdraw", amount="10", fromCurrency="USYC")

    assert deposit.ok and withdraw.ok
    assert deposit.recipient_address is None
    assert withdraw.recipient_address is None


def test_malformed_balance_is_gateway_failure(resolver, gateway):
    gateway.get_balance = AsyncMock(return_value="not-a-number")
    proposal = _resolve(resolver, action="deposit", amount="10", fromCurrency="USDC")

    assert proposal.failure.kind is FailureKind.GATEWAY
    assert proposal.failure.reason == "malformed_response"


def test_malformed_apy_is_gateway_failure(resolver, yield_source):
    yield_source.get_current_apy = AsyncMock(return_value="NaN")
    proposal = _resolve(resolver, action="withdraw", amount="10", fromCurrency="USYC")

    assert proposal.failure.kind is FailureKind.GATEWAY
    assert proposal.failure.reason == "malformed_response"


def test_compute_yield_earned():
    assert compute_yield_earned("1000", "5.0", 365) == "50.000000"
    assert compute_yield_earned("1000", "5.0", 0) == "0.000000"
