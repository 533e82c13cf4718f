# FILE: services/intent_parser.py
"""
Text -> Intent.

Two strategies behind one interface:
- RegexIntentParser: ordered rule list, first match wins, fixed confidence
- GenerativeIntentParser: pydantic_ai agent, rejected below the confidence threshold

FallbackIntentParser runs the generative parser and drops back to the rules
whenever it yields nothing or fails.
"""

import logging
import re
from abc import ABC, abstractmethod
from asyncio import wait_for
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import ValidationError

import config
from core.currency import BASE_STABLE, SECONDARY_STABLE, YIELD_TOKEN
from core.intent import Intent, IntentAction

# -----------------------------
# Logging
# -----------------------------
logger = logging.getLogger("intent_parser")
logger.setLevel(logging.INFO)
if not logger.handlers:
    fh = logging.FileHandler("intent_parser.log")
    formatter = logging.Formatter("%(asctime)s - %(levelname)s - %(message)s")
    fh.setFormatter(formatter)
    logger.addHandler(fh)

# -----------------------------
# Shared fragments
# -----------------------------
AMOUNT = r"(?P<amount>\d{1,3}(?:,\d{3})+(?:\.\d+)?|\d+(?:\.\d+)?)"
PREFIX = r"(?:[$€]\s*)?"
UNIT = r"(?:USDC|EURC|USYC|USD|EUR|dollars?|euros?|bucks)"
RECIPIENT = r"(?P<recipient>[^\s,!?]+)"

# Order of alternatives matters only inside a single position; the scan keeps text order.
CUE_RE = re.compile(
    r"(?P<usd>\$|\bUSD\b|\bdollars?\b|\bbucks\b)"
    r"|(?P<eur>€|\bEUR\b|\beuros?\b)"
    r"|(?P<symbol>\b(?:USDC|EURC|USYC)\b)"
    r"|(?P<yield>\bsavings\b|\byield\b)",
    re.IGNORECASE,
)


def scan_currency_cues(text: str, include_yield: bool = False) -> List[str]:
    """
    Currency symbols implied by the text, in order of appearance.
    $/USD/dollars -> USDC, €/EUR/euros -> EURC, savings/yield -> USYC.
    """
    found = []
    for m in CUE_RE.finditer(text):
        if m.group("usd"):
            found.append(BASE_STABLE)
        elif m.group("eur"):
            found.append(SECONDARY_STABLE)
        elif m.group("symbol"):
            found.append(m.group("symbol").upper())
        elif include_yield and m.group("yield"):
            found.append(YIELD_TOKEN)
    return found


def cue_symbol(word: Optional[str]) -> Optional[str]:
    if not word:
        return None
    cues = scan_currency_cues(word, include_yield=True)
    return cues[0] if cues else None


def clean_amount(raw: str) -> str:
    return raw.replace(",", "")


def clean_recipient(raw: str) -> str:
    return raw.strip().rstrip(".;:")


# ---------------------------------------------------------------------
# Extractors: (match, raw text) -> Intent fields
# ---------------------------------------------------------------------
def _extract_send(m: re.Match, text: str) -> Dict[str, Any]:
    cues = scan_currency_cues(text)
    token = cues[0] if cues else BASE_STABLE
    return {
        "action": IntentAction(m.group("verb").lower()),
        "amount": clean_amount(m.group("amount")),
        "token": token,
        "from_currency": token,
        "recipient": clean_recipient(m.group("recipient")),
    }


def _extract_pay(m: re.Match, text: str) -> Dict[str, Any]:
    cues = scan_currency_cues(text)
    token = cues[0] if cues else BASE_STABLE
    return {
        "action": IntentAction.PAY,
        "amount": clean_amount(m.group("amount")),
        "token": token,
        "from_currency": token,
        "recipient": clean_recipient(m.group("recipient")),
    }


def _extract_convert(m: re.Match, text: str) -> Dict[str, Any]:
    to_currency = cue_symbol(m.group("target"))
    source_cues = scan_currency_cues(m.group("source"))
    if source_cues:
        from_currency = source_cues[0]
    elif to_currency == BASE_STABLE:
        from_currency = SECONDARY_STABLE
    else:
        from_currency = BASE_STABLE
    return {
        "action": IntentAction.CONVERT,
        "amount": clean_amount(m.group("amount")),
        "token": from_currency,
        "from_currency": from_currency,
        "to_currency": to_currency,
    }


def _extract_deposit(m: re.Match, text: str) -> Dict[str, Any]:
    cues = [c for c in scan_currency_cues(m.group(0)) if c != YIELD_TOKEN]
    from_currency = cues[0] if cues else BASE_STABLE
    return {
        "action": IntentAction.DEPOSIT,
        "amount": clean_amount(m.group("amount")),
        "token": from_currency,
        "from_currency": from_currency,
        "to_currency": YIELD_TOKEN,
    }


def _extract_withdraw(m: re.Match, text: str) -> Dict[str, Any]:
    return {
        "action": IntentAction.WITHDRAW,
        "amount": clean_amount(m.group("amount")),
        "token": YIELD_TOKEN,
        "from_currency": YIELD_TOKEN,
        "to_currency": BASE_STABLE,
    }


def _extract_balance(m: re.Match, text: str) -> Dict[str, Any]:
    groups = m.groupdict()
    token = cue_symbol(groups.get("pre")) or cue_symbol(groups.get("post"))
    return {"action": IntentAction.BALANCE, "token": token}


@dataclass(frozen=True)
class IntentRule:
    name: str
    pattern: "re.Pattern[str]"
    extract: Callable[[re.Match, str], Dict[str, Any]]


def _rule(name: str, pattern: str, extract) -> IntentRule:
    return IntentRule(name=name, pattern=re.compile(pattern, re.IGNORECASE), extract=extract)


# Priority order: transfer family, convert, deposit, withdraw, balance.
DEFAULT_RULES: Tuple[IntentRule, ...] = (
    _rule(
        "send",
        rf"\b(?P<verb>send|transfer)\s+{PREFIX}{AMOUNT}\s*(?:{UNIT}\b)?\s*to\s+{RECIPIENT}",
        _extract_send,
    ),
    _rule(
        "pay_amount_first",
        rf"\bpay\s+{PREFIX}{AMOUNT}\s*(?:{UNIT}\b)?\s*to\s+{RECIPIENT}",
        _extract_pay,
    ),
    _rule(
        "pay_recipient_first",
        rf"\bpay\s+(?:to\s+)?(?P<recipient>(?!{UNIT}\b)[^\s,!?$€\d][^\s,!?]*)\s+{PREFIX}{AMOUNT}\s*(?:{UNIT}\b)?",
        _extract_pay,
    ),
    _rule(
        "convert",
        rf"\b(?:convert|exchange|swap)\s+(?P<source>{PREFIX}{AMOUNT}\s*(?:{UNIT}\b)?)\s*(?:to|into|for)\s+(?P<target>{UNIT})\b",
        _extract_convert,
    ),
    _rule(
        "deposit_to_savings",
        rf"\b(?:deposit|put|save|move|stake)\s+{PREFIX}{AMOUNT}\s*(?:{UNIT}\b)?\s*(?:into|in|to)\s+(?:my\s+|the\s+)?(?:savings|yield)\b",
        _extract_deposit,
    ),
    _rule(
        "deposit",
        rf"\bdeposit\s+{PREFIX}{AMOUNT}\s*(?:{UNIT}\b)?",
        _extract_deposit,
    ),
    _rule(
        "withdraw_from_savings",
        rf"\b(?:withdraw|move|redeem|take)\s+{PREFIX}{AMOUNT}\s*(?:{UNIT}\b)?\s*"
        rf"(?:(?:from|out\s+of)\s+(?:my\s+|the\s+)?savings|to\s+(?:my\s+)?checking)\b",
        _extract_withdraw,
    ),
    _rule(
        "withdraw",
        rf"\b(?:withdraw|redeem)\s+{PREFIX}{AMOUNT}\s*(?:{UNIT}\b)?",
        _extract_withdraw,
    ),
    _rule(
        "balance_query",
        r"\b(?:check|show|what(?:'|’)?s|what\s+is|get|view|see)\s+(?:me\s+)?(?:my\s+|the\s+)?"
        r"(?:(?P<pre>USDC|EURC|USYC|USD|EUR|savings)\s+)?balances?\b"
        r"(?:\s+in\s+(?P<post>USDC|EURC|USYC|USD|EUR|dollars|euros|savings))?",
        _extract_balance,
    ),
    _rule(
        "how_much",
        r"\bhow\s+much\s+(?:(?P<pre>USDC|EURC|USYC|USD|EUR|dollars|euros|money)\s+)?(?:do\s+i\s+have|is\s+in\s+my\s+(?:wallet|account|savings))",
        _extract_balance,
    ),
    _rule(
        "bare_balance",
        r"^\s*(?:my\s+)?(?:(?P<pre>USDC|EURC|USYC|USD|EUR|savings)\s+)?balances?\s*\??\s*$",
        _extract_balance,
    ),
)


# ---------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------
class IntentParser(ABC):
    """
    parse(text) -> Intent | None. None means "no intent", never a guess.
    """

    @abstractmethod
    async def parse(self, text: str) -> Optional[Intent]:
        pass


class RegexIntentParser(IntentParser):
    def __init__(self, rules: Tuple[IntentRule, ...] = DEFAULT_RULES, confidence: Optional[float] = None):
        self.rules = rules
        self.confidence = config.DETERMINISTIC_CONFIDENCE if confidence is None else confidence

    def match(self, text: str) -> Optional[Intent]:
        text = (text or "").strip()
        if not text:
            return None
        for rule in self.rules:
            m = rule.pattern.search(text)
            if not m:
                continue
            try:
                intent = Intent(**rule.extract(m, text), confidence=self.confidence, raw_input=text)
            except ValidationError as e:
                logger.warning(f"[RULE_REJECTED] rule={rule.name} errors={e.errors()}")
                continue
            logger.info(f"[RULE_MATCH] rule={rule.name} action={intent.action.value} amount={intent.amount}")
            return intent
        logger.info(f"[NO_MATCH] text='{text[:100]}'")
        return None

    async def parse(self, text: str) -> Optional[Intent]:
        return self.match(text)


class GenerativeIntentParser(IntentParser):
    def __init__(self, agent, threshold: Optional[float] = None, timeout: Optional[float] = None):
        self.agent = agent
        self.threshold = config.INTENT_CONFIDENCE_THRESHOLD if threshold is None else threshold
        self.timeout = config.GATEWAY_TIMEOUT_S if timeout is None else timeout

    def candidate_to_intent(self, candidate, text: str) -> Optional[Intent]:
        """Apply the acceptance rules to a model output. Anything short of them is no intent."""
        if candidate is None or candidate.confidence < self.threshold:
            return None
        action_value = (candidate.action or "").strip().lower()
        if action_value not in {a.value for a in IntentAction}:
            return None
        action = IntentAction(action_value)
        if action.requires_amount() and not (candidate.amount or "").strip():
            return None
        if action.requires_recipient() and not (candidate.recipient or "").strip():
            return None
        try:
            return Intent(
                action=action,
                amount=candidate.amount if action.requires_amount() else None,
                token=candidate.token,
                recipient=candidate.recipient or "",
                from_currency=candidate.fromCurrency,
                to_currency=candidate.toCurrency,
                confidence=candidate.confidence,
                raw_input=text,
            )
        except ValidationError as e:
            logger.warning(f"[CANDIDATE_REJECTED] errors={e.errors()}")
            return None

    async def parse(self, text: str) -> Optional[Intent]:
        result = await wait_for(self.agent.run(text), timeout=self.timeout)
        candidate = result.output if hasattr(result, "output") else result
        return self.candidate_to_intent(candidate, text)


class FallbackIntentParser(IntentParser):
    def __init__(self, primary: IntentParser, fallback: IntentParser):
        self.primary = primary
        self.fallback = fallback

    async def parse(self, text: str) -> Optional[Intent]:
        try:
            intent = await self.primary.parse(text)
        except Exception as e:
            logger.warning(f"[PRIMARY_FAILED] falling back to rules: {e}")
            intent = None
        if intent is not None:
            return intent
        return await self.fallback.parse(text)


def accept_intent(intent: Optional[Intent], threshold: Optional[float] = None) -> Optional[Intent]:
    """Caller-side gate: intents under the threshold count as no intent."""
    limit = config.INTENT_CONFIDENCE_THRESHOLD if threshold is None else threshold
    if intent is None or not intent.is_confident(limit):
        return None
    return intent


def build_intent_parser() -> IntentParser:
    """Generative parser with rule fallback when a model key is configured, rules alone otherwise."""
    rules = RegexIntentParser()
    if not config.GOOGLE_API_KEY:
        logger.info("[PARSER] GOOGLE_API_KEY not set; using rule-based parser only")
        return rules
    from agents.intent_agent import build_intent_agent

    return FallbackIntentParser(GenerativeIntentParser(build_intent_agent()), rules)
