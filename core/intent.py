# core/intent.py
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from core.currency import BASE_STABLE, is_known_symbol, normalize_symbol


class IntentAction(str, Enum):
    """
    Closed set of actions a command can express.
    """

    SEND = "send"
    PAY = "pay"
    TRANSFER = "transfer"
    CONVERT = "convert"
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"
    SWAP = "swap"
    BALANCE = "balance"

    # -----------------------------
    # Semantic helpers (SAFE)
    # -----------------------------
    def is_transfer(self) -> bool:
        return self in {IntentAction.SEND, IntentAction.PAY, IntentAction.TRANSFER}

    def is_conversion(self) -> bool:
        return self in {IntentAction.CONVERT, IntentAction.SWAP}

    def is_read_only(self) -> bool:
        return self is IntentAction.BALANCE

    def requires_amount(self) -> bool:
        return self is not IntentAction.BALANCE

    def requires_recipient(self) -> bool:
        return self.is_transfer()


def parse_amount(value: str) -> Decimal:
    """Decimal view of an amount string. Raises ValueError for anything not a finite, non-negative number."""
    try:
        amount = Decimal(value)
    except (InvalidOperation, TypeError):
        raise ValueError(f"Amount must be a decimal string, got {value!r}")
    if not amount.is_finite() or amount < 0:
        raise ValueError(f"Amount must be a non-negative number, got {value!r}")
    return amount


class Intent(BaseModel):
    """
    The parsed meaning of one user message.
    Immutable. Input to exactly one resolution call.
    This does NOT resolve addresses.
    This does NOT talk to the chain.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    action: IntentAction
    amount: Optional[str] = None
    # None only for balance, where it means "every registry token"
    token: Optional[str] = None
    recipient: str = ""
    from_currency: Optional[str] = Field(None, alias="fromCurrency")
    to_currency: Optional[str] = Field(None, alias="toCurrency")
    confidence: float = Field(..., ge=0.0, le=1.0)
    raw_input: str = Field("", exclude=True)

    # -----------------------------
    # Validators
    # -----------------------------
    @field_validator("amount", mode="before")
    @classmethod
    def amount_is_decimal_string(cls, v: Any):
        if v is None:
            return None
        if isinstance(v, float):
            raise ValueError("Amount must be a decimal string, not a float")
        v = str(v).strip()
        if not v:
            return None
        parse_amount(v)
        return v

    @field_validator("token", "from_currency", "to_currency", mode="before")
    @classmethod
    def symbol_in_registry(cls, v: Any):
        if v is None or (isinstance(v, str) and not v.strip()):
            return None
        if not is_known_symbol(v):
            raise ValueError(f"Unknown currency symbol: {v!r}")
        return normalize_symbol(v)

    @field_validator("recipient", mode="before")
    @classmethod
    def recipient_is_text(cls, v: Any):
        return (v or "").strip()

    @model_validator(mode="after")
    def check_required_fields(self):
        if self.action.requires_amount() and self.amount is None:
            raise ValueError(f"Action '{self.action.value}' requires an amount")
        return self

    @model_validator(mode="before")
    @classmethod
    def default_token(cls, data: Any):
        if not isinstance(data, dict):
            return data
        action = data.get("action")
        action_value = action.value if isinstance(action, IntentAction) else str(action or "").lower()
        if action_value != IntentAction.BALANCE.value and not data.get("token"):
            data = dict(data)
            data["token"] = data.get("from_currency") or data.get("fromCurrency") or BASE_STABLE
        return data

    # -----------------------------
    # Accessors
    # -----------------------------
    def amount_decimal(self) -> Decimal:
        return parse_amount(self.amount) if self.amount is not None else Decimal("0")

    def is_confident(self, threshold: float) -> bool:
        return self.confidence >= threshold
