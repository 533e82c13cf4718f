# FILE: models/proposal.py
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from core.errors import Failure
from core.intent import Intent, IntentAction

# -----------------------------
# Rate Quote (Rate Source → Resolver)
# -----------------------------
class RateQuote(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    from_token: str = Field(..., alias="fromToken")
    to_token: str = Field(..., alias="toToken")
    amount: str
    expected_amount: str = Field(..., alias="expectedAmount")
    price_impact: str = Field(..., alias="priceImpact")
    gas_estimate: str = Field(..., alias="gasEstimate")
    # "fallback" when the fee is a configured constant rather than a network estimate
    gas_estimate_source: Optional[Literal["measured", "fallback"]] = Field(None, alias="gasEstimateSource")

# -----------------------------
# Yield Quote (deposit / withdraw)
# -----------------------------
class YieldQuote(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    apy: str = Field(..., description="Annual percentage yield, e.g. '5.0' for 5%")
    projected_annual_yield: Optional[str] = Field(None, alias="projectedAnnualYield")
    days_held: Optional[int] = Field(None, alias="daysHeld")
    # "placeholder" means no deposit date was on record and the configured stand-in period was used
    holding_period_source: Optional[Literal["deposit_record", "placeholder"]] = Field(
        None, alias="holdingPeriodSource"
    )
    yield_earned: Optional[str] = Field(None, alias="yieldEarned")

# -----------------------------
# Balance line (balance action)
# -----------------------------
class BalanceLine(BaseModel):
    token: str
    balance: str
    apy: Optional[str] = None

# -----------------------------
# Proposal (Resolver → Orchestrator)
# -----------------------------
class Proposal(BaseModel):
    """
    An intent enriched with execution-ready facts.
    amount/token are copied verbatim from the intent.
    """

    model_config = ConfigDict(populate_by_name=True)

    intent: Intent
    sender: str
    action: IntentAction
    amount: Optional[str] = None
    token: Optional[str] = None
    recipient: str = ""
    recipient_address: Optional[str] = Field(None, alias="recipientAddress")
    from_currency: Optional[str] = Field(None, alias="fromCurrency")
    to_currency: Optional[str] = Field(None, alias="toCurrency")

    gas_estimate: Optional[str] = Field(None, alias="gasEstimate")
    gas_estimate_source: Optional[Literal["measured", "fallback"]] = Field(None, alias="gasEstimateSource")

    rate_quote: Optional[RateQuote] = Field(None, alias="rateQuote")
    yield_quote: Optional[YieldQuote] = Field(None, alias="yieldQuote")
    balances: List[BalanceLine] = Field(default_factory=list)

    no_op: bool = Field(False, alias="noOp")
    failure: Optional[Failure] = None

    @classmethod
    def from_intent(cls, intent: Intent, sender: str, **facts) -> "Proposal":
        fields = {
            "intent": intent,
            "sender": sender,
            "action": intent.action,
            "amount": intent.amount,
            "token": intent.token,
            "recipient": intent.recipient,
            "from_currency": intent.from_currency,
            "to_currency": intent.to_currency,
        }
        # Resolved currencies may refine the parsed ones; amount/token never change
        fields.update(facts)
        return cls(**fields)

    @property
    def ok(self) -> bool:
        return self.failure is None

    @property
    def requires_confirmation(self) -> bool:
        return self.ok and not self.no_op and not self.action.is_read_only()
