# core/currency.py
from typing import Dict, FrozenSet, Optional, Tuple

from pydantic import BaseModel, ConfigDict


class CurrencyEntry(BaseModel):
    """
    Static description of one on-chain token.
    Read-only at runtime.
    """

    model_config = ConfigDict(frozen=True)

    symbol: str
    token_address: str
    decimals: int
    is_native: bool = False
    is_yield_bearing: bool = False
    display_name: str = ""


# -----------------------------
# Logical symbols
# -----------------------------
BASE_STABLE = "USDC"
SECONDARY_STABLE = "EURC"
YIELD_TOKEN = "USYC"

# Fiat-style symbols users type, mapped onto the tokens that carry them
SYMBOL_ALIASES: Dict[str, str] = {
    "USD": BASE_STABLE,
    "EUR": SECONDARY_STABLE,
}

# -----------------------------
# Registry (SINGLE SOURCE OF TRUTH)
# -----------------------------
CURRENCY_REGISTRY: Dict[str, CurrencyEntry] = {
    "USDC": CurrencyEntry(
        symbol="USDC",
        # Native gas token on Arc
        token_address="0x3600000000000000000000000000000000000000",
        decimals=18,
        is_native=True,
        display_name="US Dollar Coin",
    ),
    "EURC": CurrencyEntry(
        symbol="EURC",
        token_address="0x89B50855Aa3bE2F677cD6303Cec089B5F319D72a",
        decimals=6,
        display_name="Euro Coin",
    ),
    "USYC": CurrencyEntry(
        symbol="USYC",
        token_address="0xe9185F0c5F296Ed1797AaE4238D26CCaBEadb86C",
        decimals=6,
        is_yield_bearing=True,
        display_name="Yield-bearing USDC",
    ),
}

SUPPORTED_PAIRS: FrozenSet[Tuple[str, str]] = frozenset(
    {
        ("USDC", "EURC"),
        ("EURC", "USDC"),
        ("USDC", "USDC"),
        ("EURC", "EURC"),
        ("USYC", "USYC"),
    }
)


def normalize_symbol(symbol: Optional[str]) -> Optional[str]:
    """Upper-case a symbol and fold USD/EUR onto their tokens. Unknown symbols pass through."""
    if symbol is None:
        return None
    symbol = symbol.strip().upper()
    if not symbol:
        return None
    return SYMBOL_ALIASES.get(symbol, symbol)


def is_known_symbol(symbol: Optional[str]) -> bool:
    return normalize_symbol(symbol) in CURRENCY_REGISTRY


def get_currency(symbol: str) -> CurrencyEntry:
    """Raises KeyError for symbols outside the registry."""
    normalized = normalize_symbol(symbol)
    if normalized not in CURRENCY_REGISTRY:
        raise KeyError(symbol)
    return CURRENCY_REGISTRY[normalized]


def is_supported_pair(from_symbol: str, to_symbol: str) -> bool:
    return (normalize_symbol(from_symbol), normalize_symbol(to_symbol)) in SUPPORTED_PAIRS


def gateway_token_address(symbol: str) -> Optional[str]:
    """
    Token identifier to hand to the Chain Gateway.
    None selects the native-currency path.
    """
    entry = get_currency(symbol)
    return None if entry.is_native else entry.token_address
