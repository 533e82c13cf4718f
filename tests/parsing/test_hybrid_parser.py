import asyncio
import pytest
from unittest.mock import AsyncMock, MagicMock

from agents.intent_agent import IntentCandidate
from core.intent import IntentAction
from services.intent_parser import FallbackIntentParser, GenerativeIntentParser, RegexIntentParser


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------

def make_agent(candidate=None, side_effect=None):
    agent = MagicMock()
    if side_effect is not None:
        agent.run = AsyncMock(side_effect=side_effect)
    else:
        agent.run = AsyncMock(return_value=MagicMock(output=candidate))
    return agent


def candidate(**fields):
    base = {
        "action": "send",
        "amount": "50",
        "token": "USDC",
        "recipient": "Alice",
        "fromCurrency": "USDC",
        "toCurrency": None,
        "confidence": 0.95,
    }
    base.update(fields)
    return IntentCandidate(**base)


# ---------------------------------------------------------------------
# GENERATIVE PARSER ACCEPTANCE RULES
# ---------------------------------------------------------------------

def test_confident_candidate_becomes_intent():
    parser = GenerativeIntentParser(make_agent(candidate()), threshold=0.7, timeout=1)
    intent = asyncio.run(parser.parse("Send $50 to Alice"))

    assert intent.action is IntentAction.SEND
    assert intent.amount == "50"
    assert intent.recipient == "Alice"
    assert intent.raw_input == "Send $50 to Alice"


@pytest.mark.parametrize(
    "fields",
    [
        {"confidence": 0.5},
        {"action": None},
        {"action": "borrow"},
        {"amount": None},
        {"recipient": ""},
        {"token": "DOGE"},
    ],
)
def test_rejected_candidates_are_no_intent(fields):
    parser = GenerativeIntentParser(make_agent(candidate(**fields)), threshold=0.7, timeout=1)
    assert asyncio.run(parser.parse("whatever")) is None


def test_balance_candidate_needs_no_amount_or_recipient():
    parser = GenerativeIntentParser(
        make_agent(candidate(action="balance", amount=None, recipient="", token="EURC")),
        threshold=0.7,
        timeout=1,
    )
    intent = asyncio.run(parser.parse("how many euros do I have"))
    assert intent.action is IntentAction.BALANCE
    assert intent.token == "EURC"


def test_agent_timeout_raises():
    async def slow(_text):
        await asyncio.sleep(1)

    parser = GenerativeIntentParser(make_agent(side_effect=slow), threshold=0.7, timeout=0.01)
    with pytest.raises(asyncio.TimeoutError):
        asyncio.run(parser.parse("Send $50 to Alice"))


# ---------------------------------------------------------------------
# FALLBACK SELECTION
# ---------------------------------------------------------------------

def test_fallback_used_when_model_fails():
    primary = GenerativeIntentParser(make_agent(side_effect=RuntimeError("quota")), threshold=0.7, timeout=1)
    parser = FallbackIntentParser(primary, RegexIntentParser(confidence=0.9))

    intent = asyncio.run(parser.parse("Send €50 to Alice"))
    assert intent.action is IntentAction.SEND
    assert intent.token == "EURC"
    assert intent.confidence == 0.9


def test_fallback_used_when_model_returns_nothing():
    primary = GenerativeIntentParser(make_agent(candidate(confidence=0.1)), threshold=0.7, timeout=1)
    parser = FallbackIntentParser(primary, RegexIntentParser(confidence=0.9))

    intent = asyncio.run(parser.parse("Convert 100 USDC to EURC"))
    assert intent.action is IntentAction.CONVERT


def test_model_answer_preferred_over_rules():
    primary = GenerativeIntentParser(
        make_agent(candidate(recipient="Alice Smith", confidence=0.8)), threshold=0.7, timeout=1
    )
    parser = FallbackIntentParser(primary, RegexIntentParser(confidence=0.9))

    intent = asyncio.run(parser.parse("Send $50 to Alice Smith"))
    assert intent.recipient == "Alice Smith"
    assert intent.confidence == 0.8


def test_both_strategies_yield_nothing_for_gibberish():
    primary = GenerativeIntentParser(make_agent(candidate(action=None, confidence=0.0)), threshold=0.7, timeout=1)
    parser = FallbackIntentParser(primary, RegexIntentParser(confidence=0.9))
    assert asyncio.run(parser.parse("zzz")) is None
