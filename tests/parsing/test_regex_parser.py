import asyncio
import pytest

from core.intent import IntentAction
from services.intent_parser import RegexIntentParser, accept_intent, scan_currency_cues

parser = RegexIntentParser(confidence=0.9)


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------

def _parse(text: str):
    return asyncio.run(parser.parse(text))


# ---------------------------------------------------------------------
# SEND / PAY
# ---------------------------------------------------------------------

@pytest.mark.parametrize(
    "text, token",
    [
        ("Send $50 to Alice", "USDC"),
        ("Send €50 to Alice", "EURC"),
        ("Send 50 USDC to Alice", "USDC"),
        ("send 50 euros to Alice", "EURC"),
    ],
)
def test_send_forms(text, token):
    intent = _parse(text)
    assert intent is not None
    assert intent.action is IntentAction.SEND
    assert intent.amount == "50"
    assert intent.token == token
    assert intent.recipient == "Alice"
    assert intent.confidence == 0.9


def test_usd_cue_never_matches_inside_usdc():
    assert scan_currency_cues("50 USDC") == ["USDC"]
    assert scan_currency_cues("50 USD and 3 EURC") == ["USDC", "EURC"]


def test_transfer_verb_is_kept():
    intent = _parse("Transfer 20 EURC to 0x742d35Cc6634C0532925a3b844Bc454e4438f44e")
    assert intent.action is IntentAction.TRANSFER
    assert intent.token == "EURC"
    assert intent.recipient == "0x742d35Cc6634C0532925a3b844Bc454e4438f44e"


def test_thousands_separators_are_stripped():
    intent = _parse("Send 1,250.50 USDC to Bob")
    assert intent.amount == "1250.50"


def test_trailing_punctuation_not_part_of_recipient():
    assert _parse("Send $5 to Alice.").recipient == "Alice"


def test_pay_recipient_first():
    intent = _parse("Pay Bob 20 euros")
    assert intent.action is IntentAction.PAY
    assert intent.amount == "20"
    assert intent.token == "EURC"
    assert intent.recipient == "Bob"


def test_pay_amount_first():
    intent = _parse("pay $12.5 to Carol")
    assert intent.action is IntentAction.PAY
    assert intent.amount == "12.5"
    assert intent.recipient == "Carol"


def test_send_wins_over_later_pay():
    intent = _parse("please send 25 dollars to bob to pay rent")
    assert intent.action is IntentAction.SEND
    assert intent.recipient == "bob"


# ---------------------------------------------------------------------
# CONVERT
# ---------------------------------------------------------------------

def test_convert_with_explicit_symbols():
    intent = _parse("Convert 100 USDC to EURC")
    assert intent.action is IntentAction.CONVERT
    assert intent.amount == "100"
    assert intent.from_currency == "USDC"
    assert intent.to_currency == "EURC"


def test_convert_with_fiat_words():
    intent = _parse("Convert 100 euros to dollars")
    assert intent.from_currency == "EURC"
    assert intent.to_currency == "USDC"


def test_convert_infers_source_from_target():
    intent = _parse("swap 40 into euros")
    assert intent.from_currency == "USDC"
    assert intent.to_currency == "EURC"


def test_convert_without_amount_is_no_intent():
    assert _parse("Convert euros to dollars") is None


# ---------------------------------------------------------------------
# DEPOSIT / WITHDRAW
# ---------------------------------------------------------------------

def test_deposit_into_savings():
    intent = _parse("Put 1000 USDC into savings")
    assert intent.action is IntentAction.DEPOSIT
    assert intent.amount == "1000"
    assert intent.from_currency == "USDC"
    assert intent.to_currency == "USYC"


def test_withdraw_to_checking():
    intent = _parse("Move 500 USYC to checking")
    assert intent.action is IntentAction.WITHDRAW
    assert intent.from_currency == "USYC"
    assert intent.to_currency == "USDC"


def test_withdraw_from_savings():
    intent = _parse("withdraw 75 from savings")
    assert intent.action is IntentAction.WITHDRAW
    assert intent.amount == "75"


# ---------------------------------------------------------------------
# BALANCE
# ---------------------------------------------------------------------

def test_balance_all_tokens():
    intent = _parse("Check my balance")
    assert intent.action is IntentAction.BALANCE
    assert intent.token is None


def test_balance_in_currency():
    assert _parse("Show my balance in euros").token == "EURC"
    assert _parse("what's my USDC balance").token == "USDC"


def test_bare_balance():
    assert _parse("balance?").action is IntentAction.BALANCE


# ---------------------------------------------------------------------
# NO MATCH
# ---------------------------------------------------------------------

@pytest.mark.parametrize("text", ["hello", "", "asdf qwer", "Send money to Alice"])
def test_unmatched_text_returns_none(text):
    assert _parse(text) is None


def test_accept_intent_gates_on_threshold():
    intent = _parse("Send $50 to Alice")
    assert accept_intent(intent, threshold=0.7) is intent
    assert accept_intent(intent, threshold=0.95) is None
    assert accept_intent(None, threshold=0.7) is None
